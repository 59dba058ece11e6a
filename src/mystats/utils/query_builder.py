"""
Secure query building utilities with parameterized query support.

Queries are described by a list of column expressions plus an ordered list of
query options (``with_table``, ``with_sports``, ``with_years`` ...). Options are
small immutable values validated when they are created; ``build_query`` folds
them into a ``QueryConfig`` and emits a ``BoundQuery`` whose text only carries
``?`` placeholders for user supplied values.

Example:
    bound = build_query(
        ["Year", "Week", "sum(Distance)"],
        with_table(DatabaseConfig.SUMMARY_TABLE),
        with_sports("Run", "Trail Run"),
        with_years(2023, 2024),
        with_order(OrderConfig(group_by=["Week", "Year"], order_by=["Week", "Year"])),
    )
    conn.execute(bound.text, list(bound.params))
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from mystats.backend.errors import BadOptionsError
from mystats.config.database import DatabaseConfig

logger = logging.getLogger(__name__)

PLACEHOLDER = "?"

# Column expressions come from the internal vocabulary: identifiers, table
# prefixes, aggregate calls, simple arithmetic and aliases.
_EXPRESSION_PATTERN = re.compile(r"^[A-Za-z0-9_.()*/+\-, ]+$")

# Words that would start another clause or statement inside a column expression
_CLAUSE_KEYWORDS = frozenset({
    "select", "from", "where", "union", "join", "group", "order", "limit", "having",
    "offset", "window", "qualify", "intersect", "except", "insert", "update",
    "delete", "drop", "create", "alter", "attach", "copy", "pragma", "call",
})

# Fixed expressions that need characters the pattern does not allow
TRUSTED_EXPRESSIONS = frozenset({DatabaseConfig.WORKOUT_OR_EMPTY})


def validate_column_name(expression: str) -> str:
    """
    Validate a column expression before it is interpolated into query text.

    Args:
        expression: Column name or expression (e.g. "sum(Distance)/1000 as total")

    Returns:
        The expression unchanged

    Raises:
        BadOptionsError: If the expression contains characters outside the vocabulary
            or a keyword that would open another clause
    """
    if not isinstance(expression, str) or not expression.strip():
        raise BadOptionsError(f"invalid column expression: {expression!r}")
    if expression in TRUSTED_EXPRESSIONS:
        return expression
    if not _EXPRESSION_PATTERN.match(expression) or "--" in expression:
        raise BadOptionsError(f"invalid column expression: {expression!r}")
    words = set(re.findall(r"[a-z_]+", expression.lower()))
    if words & _CLAUSE_KEYWORDS:
        raise BadOptionsError(f"invalid column expression: {expression!r}")
    return expression


@dataclass(frozen=True)
class OrderConfig:
    """Grouping, ordering and row limit of a query. A limit of 0 is unbounded."""

    group_by: Sequence[str] = ()
    order_by: Sequence[str] = ()
    limit: int = 0

    def __post_init__(self) -> None:
        object.__setattr__(self, "group_by", tuple(validate_column_name(c) for c in self.group_by))
        object.__setattr__(self, "order_by", tuple(validate_column_name(c) for c in self.order_by))
        if self.limit is None:
            object.__setattr__(self, "limit", 0)
        if isinstance(self.limit, bool) or not isinstance(self.limit, int) or self.limit < 0:
            raise BadOptionsError(f"limit must be a non-negative integer, got {self.limit!r}")


@dataclass(frozen=True)
class BoundQuery:
    """Query text with positional placeholders and its ordered parameter values."""

    text: str
    params: Tuple[Any, ...] = ()

    @property
    def placeholder_count(self) -> int:
        return self.text.count(PLACEHOLDER)


# ----------------------------- Query options -----------------------------

@dataclass(frozen=True)
class TableOption:
    name: str


@dataclass(frozen=True)
class SportsOption:
    values: Tuple[str, ...]


@dataclass(frozen=True)
class WorkoutsOption:
    values: Tuple[str, ...]


@dataclass(frozen=True)
class YearsOption:
    values: Tuple[int, ...]


@dataclass(frozen=True)
class DayOfYearOption:
    day: int
    month: int


@dataclass(frozen=True)
class NameOption:
    value: str


@dataclass(frozen=True)
class ExternalIdOption:
    value: int


@dataclass(frozen=True)
class OrderOption:
    order: OrderConfig


QueryOption = Union[
    TableOption, SportsOption, WorkoutsOption, YearsOption,
    DayOfYearOption, NameOption, ExternalIdOption, OrderOption,
]


def _check_strings(kind: str, values: Sequence[Any]) -> Tuple[str, ...]:
    for value in values:
        if not isinstance(value, str):
            raise BadOptionsError(f"{kind} values must be strings, got {value!r}")
    return tuple(values)


def _check_int(kind: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise BadOptionsError(f"{kind} must be an integer, got {value!r}")
    return value


def with_table(name: str) -> TableOption:
    """Select a source table. A second distinct table is joined on the shared id column."""
    if not DatabaseConfig.is_known_table(name):
        raise BadOptionsError(f"unknown table: {name!r}")
    return TableOption(name)


def with_sports(*values: str) -> SportsOption:
    return SportsOption(_check_strings("sport", values))


def with_workouts(*values: str) -> WorkoutsOption:
    return WorkoutsOption(_check_strings("workout", values))


def with_years(*values: int) -> YearsOption:
    return YearsOption(tuple(_check_int("year", v) for v in values))


def with_day_of_year(day: int, month: int) -> DayOfYearOption:
    """Limit rows to dates up to and including ``month``/``day`` of each year."""
    day = _check_int("day", day)
    month = _check_int("month", month)
    if not 1 <= month <= 12:
        raise BadOptionsError(f"month must be within 1..12, got {month}")
    if not 1 <= day <= 31:
        raise BadOptionsError(f"day must be within 1..31, got {day}")
    return DayOfYearOption(day=day, month=month)


def with_name(value: str) -> NameOption:
    if not isinstance(value, str) or not value:
        raise BadOptionsError(f"name must be a non-empty string, got {value!r}")
    return NameOption(value)


def with_external_id(value: int) -> ExternalIdOption:
    value = _check_int("external id", value)
    if value <= 0:
        raise BadOptionsError(f"external id must be positive, got {value}")
    return ExternalIdOption(value)


def with_order(order: OrderConfig) -> OrderOption:
    if not isinstance(order, OrderConfig):
        raise BadOptionsError(f"expected OrderConfig, got {type(order).__name__}")
    return OrderOption(order)


# ------------------------------ Build stage ------------------------------

_SPORT = "sport"
_WORKOUT = "workout"
_YEAR = "year"
_DAY_OF_YEAR = "day_of_year"
_NAME = "name"
_EXTERNAL_ID = "external_id"


@dataclass
class QueryConfig:
    """Build-time accumulation of query options."""

    tables: List[str] = field(default_factory=list)
    # Predicate kinds in order of first appearance, with their merged values
    predicates: Dict[str, List[Any]] = field(default_factory=dict)
    day_of_year: Optional[Tuple[int, int]] = None
    order: Optional[OrderConfig] = None

    def add_values(self, kind: str, values: Sequence[Any]) -> None:
        if not values:
            return
        self.predicates.setdefault(kind, []).extend(values)

    def apply(self, option: QueryOption) -> None:
        if isinstance(option, TableOption):
            if option.name in self.tables:
                logger.warning(f"Table {option.name} already selected in {self.tables}")
                return
            self.tables.append(option.name)
        elif isinstance(option, SportsOption):
            self.add_values(_SPORT, option.values)
        elif isinstance(option, WorkoutsOption):
            self.add_values(_WORKOUT, option.values)
        elif isinstance(option, YearsOption):
            self.add_values(_YEAR, option.values)
        elif isinstance(option, DayOfYearOption):
            # The union of two year-to-date cutoffs is the later one
            cutoff = (option.month, option.day)
            if self.day_of_year is None or cutoff > self.day_of_year:
                self.day_of_year = cutoff
            self.predicates.setdefault(_DAY_OF_YEAR, [])
        elif isinstance(option, NameOption):
            self.add_values(_NAME, [option.value])
        elif isinstance(option, ExternalIdOption):
            self.add_values(_EXTERNAL_ID, [option.value])
        elif isinstance(option, OrderOption):
            self.order = option.order
        else:
            raise BadOptionsError(f"unsupported query option: {option!r}")


class SecureQueryBuilder:
    """Secure query builder with positional parameter binding."""

    def __init__(self, config: QueryConfig):
        self.config = config
        self.params: List[Any] = []

    def add_parameter(self, value: Any) -> str:
        """Add a parameter and return its placeholder."""
        self.params.append(value)
        return PLACEHOLDER

    def column(self, name: str) -> str:
        """Qualify filter columns with the primary table once tables are joined."""
        if len(self.config.tables) > 1 and name in DatabaseConfig.FILTER_COLUMNS:
            return f"{self.config.tables[0]}.{name}"
        return name

    def build_or_group(self, column: str, values: Sequence[Any], operator: str = "=") -> str:
        """Build ``(col=? or col=? ...)`` for a list of values."""
        conditions = [f"{column}{operator}{self.add_parameter(v)}" for v in values]
        return "(" + " or ".join(conditions) + ")"

    def build_join_conditions(self) -> List[str]:
        primary = self.config.tables[0]
        join = DatabaseConfig.JOIN_COLUMN
        return [f"{primary}.{join}={table}.{join}" for table in self.config.tables[1:]]

    def build_day_of_year_condition(self) -> str:
        month, day = self.config.day_of_year
        month_col = self.column(DatabaseConfig.MONTH_COLUMN)
        day_col = self.column(DatabaseConfig.DAY_COLUMN)
        return (
            f"({month_col}<{self.add_parameter(month)} or "
            f"({month_col}={self.add_parameter(month)} and {day_col}<={self.add_parameter(day)}))"
        )

    def build_name_condition(self, values: Sequence[str]) -> str:
        if DatabaseConfig.BEST_EFFORT_TABLE in self.config.tables:
            column = f"{DatabaseConfig.BEST_EFFORT_TABLE}.{DatabaseConfig.NAME_COLUMN}"
            return self.build_or_group(column, values)
        column = f"{DatabaseConfig.SUMMARY_TABLE}.{DatabaseConfig.NAME_COLUMN}"
        return self.build_or_group(column, values, operator=" like ")

    def build_where_conditions(self) -> List[str]:
        conditions = self.build_join_conditions()
        for kind, values in self.config.predicates.items():
            if kind == _SPORT:
                conditions.append(self.build_or_group(self.column(DatabaseConfig.SPORT_COLUMN), values))
            elif kind == _WORKOUT:
                conditions.append(self.build_or_group(self.column(DatabaseConfig.WORKOUT_COLUMN), values))
            elif kind == _YEAR:
                conditions.append(self.build_or_group(self.column(DatabaseConfig.YEAR_COLUMN), values))
            elif kind == _DAY_OF_YEAR:
                conditions.append(self.build_day_of_year_condition())
            elif kind == _NAME:
                conditions.append(self.build_name_condition(values))
            elif kind == _EXTERNAL_ID:
                for table in self.config.tables:
                    conditions.append(self.build_or_group(f"{table}.{DatabaseConfig.JOIN_COLUMN}", values))
        return conditions

    def build(self, fields: Sequence[str]) -> BoundQuery:
        query_parts = [
            f"select {','.join(fields)}",
            f"from {','.join(self.config.tables)}",
        ]

        where_conditions = self.build_where_conditions()
        if where_conditions:
            query_parts.append(f"where {' and '.join(where_conditions)}")

        order = self.config.order
        if order is not None:
            if order.group_by:
                query_parts.append(f"group by {','.join(order.group_by)}")
            if order.order_by:
                query_parts.append(f"order by {','.join(order.order_by)}")
            if order.limit:
                query_parts.append(f"limit {int(order.limit)}")

        return BoundQuery(" ".join(query_parts), tuple(self.params))


def build_query(fields: Sequence[str], *options: QueryOption) -> BoundQuery:
    """
    Build a parameterized query from column expressions and query options.

    Args:
        fields: Ordered column expressions for the select list
        *options: Query options created with the ``with_*`` factories

    Returns:
        BoundQuery with ``?`` placeholders and matching parameter values

    Raises:
        BadOptionsError: If no fields are given or an option is invalid
    """
    if isinstance(fields, str):
        raise BadOptionsError("fields must be a sequence of column expressions, not a string")
    fields = [validate_column_name(f) for f in fields]
    if not fields:
        raise BadOptionsError("no fields given for select")

    config = QueryConfig()
    for option in options:
        config.apply(option)
    if not config.tables:
        config.tables.append(DatabaseConfig.DEFAULT_TABLE)

    bound = SecureQueryBuilder(config).build(fields)
    logger.debug(f"Built query: {bound.text}")
    return bound
