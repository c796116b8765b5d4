"""
Schema DDL Rendering

Renders the schema's data-definition statements (CREATE TYPE / TABLE /
INDEX) for a target dialect without connecting to a database.
"""

from typing import List

from sqlalchemy import create_mock_engine

from storefront.database.models import Base

SUPPORTED_DIALECTS = ("postgresql", "sqlite", "mysql")


def render_ddl(dialect_name: str = "postgresql") -> str:
    """
    Render the full schema as SQL.

    Args:
        dialect_name: One of ``SUPPORTED_DIALECTS``

    Returns:
        str: Semicolon-terminated statements in dependency order
    """
    if dialect_name not in SUPPORTED_DIALECTS:
        raise ValueError(f"Dialect must be one of: {list(SUPPORTED_DIALECTS)}")

    statements: List[str] = []

    def executor(sql, *multiparams, **params):
        statements.append(str(sql.compile(dialect=engine.dialect)).strip() + ";")

    engine = create_mock_engine(f"{dialect_name}://", executor)
    Base.metadata.create_all(engine, checkfirst=False)
    return "\n\n".join(statements) + "\n"
