"""Database table vocabulary shared by the query builder and the ingestion path."""

from typing import Dict, List


class DatabaseConfig:
    """Database-specific configuration."""

    SUMMARY_TABLE = "Summary"
    BEST_EFFORT_TABLE = "BestEffort"
    SPLIT_TABLE = "Split"
    DAILY_STEPS_TABLE = "DailySteps"
    HEART_RATE_TABLE = "HeartRate"

    # Column shared by activity tables, used for implicit joins
    JOIN_COLUMN = "ExternalID"

    # Table definitions: (table_name -> ordered column list)
    TABLES: Dict[str, List[str]] = {
        SUMMARY_TABLE: [
            "Year", "Month", "Day", "Week", "ExternalID", "Name", "Type",
            "WorkoutType", "Distance", "Elevation", "ElapsedTime", "MovingTime",
        ],
        BEST_EFFORT_TABLE: ["ExternalID", "Name", "ElapsedTime", "MovingTime", "Distance"],
        SPLIT_TABLE: ["ExternalID", "Split", "ElapsedTime", "MovingTime", "Distance", "ElevationDiff"],
        DAILY_STEPS_TABLE: ["Year", "Month", "Day", "Week", "TotalSteps", "StepGoal"],
        HEART_RATE_TABLE: [
            "Year", "Month", "Day", "Week", "WellnessMinAvgHR", "WellnessMaxAvgHR", "RestingHR",
        ],
    }

    # Columns referenced by filter predicates
    SPORT_COLUMN = "Type"
    WORKOUT_COLUMN = "WorkoutType"
    YEAR_COLUMN = "Year"
    MONTH_COLUMN = "Month"
    DAY_COLUMN = "Day"
    NAME_COLUMN = "Name"

    # Workout type with missing values read as an empty string
    WORKOUT_OR_EMPTY = "coalesce(WorkoutType, '')"

    # Qualified with the first table once a join is in place
    FILTER_COLUMNS = (SPORT_COLUMN, WORKOUT_COLUMN, YEAR_COLUMN, MONTH_COLUMN, DAY_COLUMN)

    DEFAULT_TABLE = SUMMARY_TABLE

    @classmethod
    def get_all_tables(cls) -> List[str]:
        """Get all known table names."""
        return list(cls.TABLES.keys())

    @classmethod
    def is_known_table(cls, table_name: str) -> bool:
        """Check if a table belongs to the schema vocabulary."""
        return table_name in cls.TABLES

    @classmethod
    def get_columns(cls, table_name: str) -> List[str]:
        """Get the column list of a table."""
        return list(cls.TABLES.get(table_name, []))
