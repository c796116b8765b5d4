"""
Lookup Table Seeding

Loads the fixed rows of the five lookup tables at provisioning time.
Seeding is idempotent: rows that already exist (by primary key or unique
name) are skipped.
"""

from typing import Any, Dict, List

import structlog
from sqlalchemy.dialects import mysql, postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.database.models import (
    Base,
    Country,
    Currency,
    OrderStatus,
    OrderStatusCode,
    PaymentMethod,
    ShipmentStatus,
    ShipmentStatusCode,
)

logger = structlog.get_logger(__name__)


COUNTRIES: List[Dict[str, Any]] = [
    {"iso_code": "US", "name": "United States"},
    {"iso_code": "CA", "name": "Canada"},
    {"iso_code": "GB", "name": "United Kingdom"},
]

CURRENCIES: List[Dict[str, Any]] = [
    {"currency_code": "USD", "name": "US Dollar", "symbol": "$"},
    {"currency_code": "CAD", "name": "Canadian Dollar", "symbol": "$"},
    {"currency_code": "GBP", "name": "British Pound", "symbol": "£"},
]

PAYMENT_METHODS: List[Dict[str, Any]] = [
    {"method_name": "Credit Card"},
    {"method_name": "PayPal"},
    {"method_name": "Bank Transfer"},
]

ORDER_STATUSES: List[Dict[str, Any]] = [
    {"status_code": OrderStatusCode.PENDING.value, "status_name": "Pending"},
    {"status_code": OrderStatusCode.PAID.value, "status_name": "Paid"},
    {"status_code": OrderStatusCode.PROCESSING.value, "status_name": "Processing"},
    {"status_code": OrderStatusCode.SHIPPED.value, "status_name": "Shipped"},
    {"status_code": OrderStatusCode.DELIVERED.value, "status_name": "Delivered"},
    {"status_code": OrderStatusCode.CANCELLED.value, "status_name": "Cancelled"},
    {"status_code": OrderStatusCode.REFUNDED.value, "status_name": "Refunded"},
]

SHIPMENT_STATUSES: List[Dict[str, Any]] = [
    {"status_code": ShipmentStatusCode.LABEL_CREATED.value, "status_name": "Label Created"},
    {"status_code": ShipmentStatusCode.IN_TRANSIT.value, "status_name": "In Transit"},
    {"status_code": ShipmentStatusCode.OUT_FOR_DELIVERY.value, "status_name": "Out for Delivery"},
    {"status_code": ShipmentStatusCode.DELIVERED.value, "status_name": "Delivered"},
    {"status_code": ShipmentStatusCode.EXCEPTION.value, "status_name": "Exception"},
]

# Dependency order is irrelevant here; lookup tables reference nothing
LOOKUP_DATA = [
    (Country, COUNTRIES),
    (Currency, CURRENCIES),
    (PaymentMethod, PAYMENT_METHODS),
    (OrderStatus, ORDER_STATUSES),
    (ShipmentStatus, SHIPMENT_STATUSES),
]


def _insert_ignoring_duplicates(session: AsyncSession, model: type[Base], records: List[Dict[str, Any]]):
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert(model).values(records).on_conflict_do_nothing()
    if dialect == "sqlite":
        return sqlite.insert(model).values(records).on_conflict_do_nothing()
    if dialect in ("mysql", "mariadb"):
        return mysql.insert(model).values(records).prefix_with("IGNORE")
    raise NotImplementedError(f"Lookup seeding is not supported on dialect '{dialect}'")


async def execute_batch_insert(session: AsyncSession, model: type[Base], records: List[Dict[str, Any]]) -> int:
    """
    Insert lookup rows, skipping any that already exist.

    Returns:
        int: Number of rows actually inserted
    """
    if not records:
        return 0

    stmt = _insert_ignoring_duplicates(session, model, records)
    result = await session.execute(stmt)
    inserted = max(result.rowcount, 0)
    logger.info(
        f"Seeded {model.__tablename__}",
        inserted=inserted,
        skipped=len(records) - inserted,
    )
    return inserted


async def seed_lookup_data(session: AsyncSession) -> Dict[str, int]:
    """
    Load all lookup tables.

    The caller owns the transaction (``get_db()`` commits on exit).

    Returns:
        dict: Rows inserted per table
    """
    logger.info("Seeding lookup tables...")
    counts = {}
    for model, records in LOOKUP_DATA:
        counts[model.__tablename__] = await execute_batch_insert(session, model, records)
    return counts
