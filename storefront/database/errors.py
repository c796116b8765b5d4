"""
Constraint Violation Errors

Typed error taxonomy for writes rejected by the storage layer, and the
translation of driver-level ``IntegrityError`` into it.

PostgreSQL drivers (asyncpg, psycopg2) report a SQLSTATE code and usually
the violated constraint's name. SQLite only reports a message, e.g.
``UNIQUE constraint failed: users.email`` or ``FOREIGN KEY constraint failed``.
"""

import re
from contextlib import contextmanager
from typing import Iterator, Optional, Tuple

import structlog
from sqlalchemy.exc import IntegrityError

logger = structlog.get_logger(__name__)


class StorefrontError(Exception):
    """Base class for all storefront errors"""


class ConstraintViolation(StorefrontError):
    """
    A write was rejected because it would break a schema invariant.

    Attributes:
        constraint: Name of the violated constraint, when the backend reports it
        table: Table the violation was reported on, when known
        columns: Columns involved, when known
        detail: Raw backend message
    """

    kind = "constraint"

    def __init__(
        self,
        detail: str,
        constraint: Optional[str] = None,
        table: Optional[str] = None,
        columns: Tuple[str, ...] = (),
    ):
        self.detail = detail
        self.constraint = constraint
        self.table = table
        self.columns = tuple(columns)
        super().__init__(self._format())

    def _format(self) -> str:
        parts = [f"{self.kind} violation"]
        if self.constraint:
            parts.append(f"constraint={self.constraint}")
        if self.table:
            parts.append(f"table={self.table}")
        if self.columns:
            parts.append(f"columns={','.join(self.columns)}")
        return f"{' '.join(parts)}: {self.detail}"


class NotNullViolation(ConstraintViolation):
    """A required field was omitted"""
    kind = "not-null"


class UniquenessViolation(ConstraintViolation):
    """Duplicate value in a unique or primary key column/tuple"""
    kind = "uniqueness"


class ForeignKeyViolation(ConstraintViolation):
    """Reference to a missing parent row, or a parent delete/update blocked by a dependent"""
    kind = "foreign-key"


class CheckConstraintViolation(ConstraintViolation):
    """Row fails a domain predicate"""
    kind = "check"


class RowNotFoundError(StorefrontError):
    """Keyed write against a row that does not exist"""


class AuditLogImmutableError(StorefrontError):
    """Audit log rows may only be appended"""


# SQLSTATE class 23 - integrity constraint violation
_SQLSTATE_MAP = {
    "23502": NotNullViolation,
    "23505": UniquenessViolation,
    "23503": ForeignKeyViolation,
    "23001": ForeignKeyViolation,  # restrict_violation
    "23514": CheckConstraintViolation,
}

_SQLITE_PATTERNS = [
    (re.compile(r"NOT NULL constraint failed: (?P<target>.+)"), NotNullViolation),
    (re.compile(r"UNIQUE constraint failed: (?P<target>.+)"), UniquenessViolation),
    (re.compile(r"FOREIGN KEY constraint failed"), ForeignKeyViolation),
    (re.compile(r"CHECK constraint failed: (?P<target>.+)"), CheckConstraintViolation),
]


def _sqlstate(orig: BaseException) -> Optional[str]:
    for attr in ("sqlstate", "pgcode"):
        code = getattr(orig, attr, None)
        if code:
            return str(code)
    cause = orig.__cause__
    if cause is not None:
        code = getattr(cause, "sqlstate", None)
        if code:
            return str(code)
    return None


def _postgres_details(orig: BaseException) -> Tuple[Optional[str], Optional[str], Tuple[str, ...]]:
    """Constraint, table and column names from asyncpg or psycopg2 errors"""
    # asyncpg exposes them on the wrapped exception, psycopg2 on ``diag``
    source = getattr(orig, "diag", None) or orig.__cause__ or orig
    constraint = getattr(source, "constraint_name", None)
    table = getattr(source, "table_name", None)
    column = getattr(source, "column_name", None)
    return constraint, table, (column,) if column else ()


def _sqlite_details(target: str) -> Tuple[Optional[str], Optional[str], Tuple[str, ...]]:
    """
    Parse the target of a SQLite constraint message.

    ``users.email`` / ``categories.parent_id, categories.name`` name columns;
    anything else is a check constraint name or expression.
    """
    target = target.strip()
    qualified = [part.strip() for part in target.split(",")]
    if all(re.fullmatch(r"\w+\.\w+", part) for part in qualified):
        table = qualified[0].split(".")[0]
        columns = tuple(part.split(".")[1] for part in qualified)
        return None, table, columns
    return target, None, ()


def translate_integrity_error(exc: IntegrityError) -> ConstraintViolation:
    """
    Map a SQLAlchemy ``IntegrityError`` to the constraint violation taxonomy.

    Args:
        exc: Error raised by a flush, commit or statement execution

    Returns:
        ConstraintViolation: The specific violation subclass
    """
    orig = exc.orig if exc.orig is not None else exc
    message = str(orig).strip()

    code = _sqlstate(orig)
    if code in _SQLSTATE_MAP:
        constraint, table, columns = _postgres_details(orig)
        return _SQLSTATE_MAP[code](message, constraint=constraint, table=table, columns=columns)

    for pattern, error_cls in _SQLITE_PATTERNS:
        match = pattern.search(message)
        if match:
            target = match.groupdict().get("target")
            if target is None:
                return error_cls(message)
            constraint, table, columns = _sqlite_details(target)
            return error_cls(message, constraint=constraint, table=table, columns=columns)

    # Unknown integrity failure; keep it in the taxonomy
    return ConstraintViolation(message)


@contextmanager
def constraint_guard(operation: str) -> Iterator[None]:
    """
    Re-raise ``IntegrityError`` raised inside the block as a ConstraintViolation.

    Example:
        with constraint_guard("insert users"):
            await session.flush()
    """
    try:
        yield
    except IntegrityError as e:
        violation = translate_integrity_error(e)
        logger.warning(
            "Constraint violation",
            operation=operation,
            violation=type(violation).__name__,
            constraint=violation.constraint,
            table=violation.table,
            columns=list(violation.columns),
        )
        raise violation from e
