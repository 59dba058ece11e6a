"""Configuration management for mystats."""

from .database import DatabaseConfig
from .settings import Settings

__all__ = ["Settings", "DatabaseConfig"]
