"""
Tests for configuration and logging setup.
"""
import logging
from pathlib import Path

import pytest

from mystats.config.database import DatabaseConfig
from mystats.config.settings import Settings
from mystats.utils.logger_setup import setup_logging


class TestSettings:
    """Test Settings configuration class."""

    def test_project_root_detection(self):
        project_root = Settings.PROJECT_ROOT
        assert isinstance(project_root, Path)
        assert (project_root / "src" / "mystats").exists()

    def test_default_paths(self):
        assert str(Settings.DATA_DIR).endswith("data")
        assert str(Settings.LOGS_DIR).endswith("logs")

    def test_get_db_path_default(self):
        db_path = Settings.get_db_path()
        assert str(db_path).endswith("mystats.duckdb")
        assert db_path.parent == Settings.DATA_DIR

    def test_get_db_path_custom(self):
        custom_path = Path("/custom/path/test.duckdb")
        assert Settings.get_db_path(custom_path) == custom_path

    def test_alignment_defaults(self):
        assert Settings.TIMEZONE == "Europe/Helsinki"
        assert Settings.REFERENCE_HOUR == 6
        assert Settings.MAX_DAY_OF_YEAR == 366

    def test_ensure_directories(self, tmp_path, monkeypatch):
        monkeypatch.setattr(Settings, "DATA_DIR", tmp_path / "data")
        monkeypatch.setattr(Settings, "LOGS_DIR", tmp_path / "logs")
        Settings.ensure_directories()
        assert (tmp_path / "data").is_dir()
        assert (tmp_path / "logs").is_dir()


class TestDatabaseConfig:
    """Test DatabaseConfig table vocabulary."""

    def test_all_tables(self):
        assert DatabaseConfig.get_all_tables() == ["Summary", "BestEffort", "Split", "DailySteps", "HeartRate"]

    def test_known_table(self):
        assert DatabaseConfig.is_known_table("Summary")
        assert not DatabaseConfig.is_known_table("summary")

    def test_join_column_present_in_activity_tables(self):
        for table in (DatabaseConfig.SUMMARY_TABLE, DatabaseConfig.BEST_EFFORT_TABLE, DatabaseConfig.SPLIT_TABLE):
            assert DatabaseConfig.JOIN_COLUMN in DatabaseConfig.get_columns(table)

    def test_get_columns_unknown_table(self):
        assert DatabaseConfig.get_columns("Nope") == []


class TestLoggerSetup:
    @pytest.fixture
    def logger_name(self):
        name = "mystats_test_logger"
        yield name
        logger = logging.getLogger(name)
        for handler in list(logger.handlers):
            handler.close()
            logger.removeHandler(handler)

    def test_console_and_file_handlers(self, tmp_path, logger_name):
        logger = setup_logging(logger_name, logging.DEBUG, log_dir=tmp_path)
        assert logger.level == logging.DEBUG
        assert len(logger.handlers) == 2
        logger.info("hello")
        for handler in logger.handlers:
            handler.flush()
        assert "hello" in (tmp_path / f"{logger_name}.log").read_text(encoding="utf-8")

    def test_second_call_does_not_add_handlers(self, tmp_path, logger_name):
        setup_logging(logger_name, log_dir=tmp_path)
        logger = setup_logging(logger_name, logging.WARNING, log_dir=tmp_path)
        assert len(logger.handlers) == 2
        assert logger.level == logging.WARNING

    def test_console_only(self, logger_name):
        logger = setup_logging(logger_name, file_output=False)
        assert len(logger.handlers) == 1
