"""
Database Module
"""
from .connection import (
    check_database_health,
    close_database,
    create_schema,
    drop_schema,
    get_db,
    get_engine,
    init_database,
)
from .errors import (
    CheckConstraintViolation,
    ConstraintViolation,
    ForeignKeyViolation,
    NotNullViolation,
    RowNotFoundError,
    StorefrontError,
    UniquenessViolation,
)
from .models import Base

__all__ = [
    "init_database",
    "close_database",
    "get_db",
    "get_engine",
    "create_schema",
    "drop_schema",
    "check_database_health",
    "Base",
    "StorefrontError",
    "ConstraintViolation",
    "NotNullViolation",
    "UniquenessViolation",
    "ForeignKeyViolation",
    "CheckConstraintViolation",
    "RowNotFoundError",
]
