"""
Business Rule Hooks

Application-level checks for invariants the schema implies but does not
enforce. None of these are storage guarantees: the database accepts rows
that break them, so callers run the relevant hook before writing.

- Category tree acyclicity
- Order addresses owned by the ordering user
- Order and line total arithmetic
- At most one default billing / shipping address per user
- Coupon activity, validity window and usage caps
- Order and shipment status transitions
"""

from datetime import datetime
from typing import Dict, FrozenSet, Optional

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.database.errors import StorefrontError
from storefront.database.models import (
    Address,
    Category,
    Coupon,
    Order,
    OrderCoupon,
    OrderItem,
    OrderStatusCode,
    ShipmentStatusCode,
)

logger = structlog.get_logger(__name__)


class BusinessRuleViolation(StorefrontError):
    """
    A write breaks an application-level rule.

    Not a ``ConstraintViolation``: the storage layer itself would accept
    the write.
    """

    def __init__(self, rule: str, message: str):
        self.rule = rule
        self.message = message
        super().__init__(f"{rule}: {message}")


def _reject(rule: str, message: str, **context) -> None:
    logger.warning("Business rule violated", rule=rule, message=message, **context)
    raise BusinessRuleViolation(rule, message)


# =============================================================================
# CATALOG
# =============================================================================

async def ensure_category_parent_acyclic(
    session: AsyncSession,
    category_id: Optional[int],
    new_parent_id: Optional[int],
) -> None:
    """
    Reject a parent assignment that would make a category its own ancestor.

    Walks the ancestors of ``new_parent_id``; if ``category_id`` is among
    them (or is the new parent itself) the tree would contain a cycle.

    Args:
        session: Database session
        category_id: Category being written; None for a new category
        new_parent_id: Proposed parent; None for a root
    """
    if new_parent_id is None or category_id is None:
        return

    seen = set()
    current: Optional[int] = new_parent_id
    while current is not None:
        if current == category_id:
            _reject(
                "category_cycle",
                f"Category {category_id} cannot be placed under its own descendant {new_parent_id}",
                category_id=category_id,
                parent_id=new_parent_id,
            )
        if current in seen:
            _reject(
                "category_cycle",
                f"Ancestors of category {new_parent_id} already form a cycle",
                category_id=category_id,
                parent_id=new_parent_id,
            )
        seen.add(current)
        result = await session.execute(
            select(Category.parent_id).where(Category.category_id == current)
        )
        current = result.scalar_one_or_none()


# =============================================================================
# ORDERS
# =============================================================================

async def ensure_order_addresses_owned(session: AsyncSession, order: Order) -> None:
    """Billing and shipping addresses must belong to the order's user"""
    address_ids = {order.billing_address_id, order.shipping_address_id}
    result = await session.execute(
        select(Address.address_id, Address.user_id).where(Address.address_id.in_(address_ids))
    )
    owners = dict(result.all())

    for role, address_id in (("billing", order.billing_address_id), ("shipping", order.shipping_address_id)):
        owner = owners.get(address_id)
        if owner != order.user_id:
            _reject(
                "order_address_owner",
                f"{role.capitalize()} address {address_id} does not belong to user {order.user_id}",
                address_id=address_id,
                owner=owner,
            )


def ensure_order_totals(order: Order) -> None:
    """grand_total = subtotal + shipping + tax - discount"""
    expected = (
        (order.subtotal_cents or 0)
        + (order.shipping_cents or 0)
        + (order.tax_cents or 0)
        - (order.discount_cents or 0)
    )
    if order.grand_total_cents != expected:
        _reject(
            "order_total",
            f"Grand total {order.grand_total_cents} does not match computed total {expected}",
            expected=expected,
            actual=order.grand_total_cents,
        )


def ensure_line_total(item: OrderItem) -> None:
    """line_total = unit_price * quantity"""
    expected = item.unit_price_cents * item.quantity
    if item.line_total_cents != expected:
        _reject(
            "order_line_total",
            f"Line total {item.line_total_cents} does not match {item.unit_price_cents} x {item.quantity}",
            expected=expected,
            actual=item.line_total_cents,
        )


# =============================================================================
# ADDRESSES
# =============================================================================

async def ensure_single_default_address(
    session: AsyncSession,
    user_id: int,
    address_id: Optional[int] = None,
    is_default_billing: bool = False,
    is_default_shipping: bool = False,
) -> None:
    """
    A user has at most one default billing and one default shipping address.

    Args:
        session: Database session
        user_id: Owner of the address being written
        address_id: Address being updated (excluded from the count); None on insert
        is_default_billing: Proposed billing flag
        is_default_shipping: Proposed shipping flag
    """
    flags = (
        ("billing", is_default_billing, Address.is_default_billing),
        ("shipping", is_default_shipping, Address.is_default_shipping),
    )
    for kind, requested, column in flags:
        if not requested:
            continue
        stmt = select(func.count()).select_from(Address).where(Address.user_id == user_id, column.is_(True))
        if address_id is not None:
            stmt = stmt.where(Address.address_id != address_id)
        existing = (await session.execute(stmt)).scalar_one()
        if existing:
            _reject(
                "default_address",
                f"User {user_id} already has a default {kind} address",
                user_id=user_id,
            )


# =============================================================================
# COUPONS
# =============================================================================

async def ensure_coupon_usable(
    session: AsyncSession,
    coupon: Coupon,
    user_id: int,
    at: Optional[datetime] = None,
) -> None:
    """
    A coupon may be applied when it is active, ``at`` lies inside
    ``[valid_from, valid_to]``, and neither ``max_uses`` nor
    ``per_user_limit`` has been reached.
    """
    at = at or datetime.now()

    if not coupon.is_active:
        _reject("coupon_inactive", f"Coupon {coupon.code} is not active", coupon_id=coupon.coupon_id)

    if not (coupon.valid_from <= at <= coupon.valid_to):
        _reject(
            "coupon_window",
            f"Coupon {coupon.code} is valid from {coupon.valid_from} to {coupon.valid_to}",
            coupon_id=coupon.coupon_id,
        )

    if coupon.max_uses is not None:
        used = (
            await session.execute(
                select(func.count()).select_from(OrderCoupon).where(OrderCoupon.coupon_id == coupon.coupon_id)
            )
        ).scalar_one()
        if used >= coupon.max_uses:
            _reject(
                "coupon_max_uses",
                f"Coupon {coupon.code} has been used {used} of {coupon.max_uses} times",
                coupon_id=coupon.coupon_id,
            )

    if coupon.per_user_limit is not None:
        used_by_user = (
            await session.execute(
                select(func.count())
                .select_from(OrderCoupon)
                .join(Order, Order.order_id == OrderCoupon.order_id)
                .where(OrderCoupon.coupon_id == coupon.coupon_id, Order.user_id == user_id)
            )
        ).scalar_one()
        if used_by_user >= coupon.per_user_limit:
            _reject(
                "coupon_per_user_limit",
                f"User {user_id} has used coupon {coupon.code} {used_by_user} of {coupon.per_user_limit} times",
                coupon_id=coupon.coupon_id,
                user_id=user_id,
            )


# =============================================================================
# STATUS TRANSITIONS
# =============================================================================

ORDER_STATUS_TRANSITIONS: Dict[OrderStatusCode, FrozenSet[OrderStatusCode]] = {
    OrderStatusCode.PENDING: frozenset({OrderStatusCode.PAID, OrderStatusCode.CANCELLED}),
    OrderStatusCode.PAID: frozenset(
        {OrderStatusCode.PROCESSING, OrderStatusCode.CANCELLED, OrderStatusCode.REFUNDED}
    ),
    OrderStatusCode.PROCESSING: frozenset(
        {OrderStatusCode.SHIPPED, OrderStatusCode.CANCELLED, OrderStatusCode.REFUNDED}
    ),
    OrderStatusCode.SHIPPED: frozenset({OrderStatusCode.DELIVERED, OrderStatusCode.REFUNDED}),
    OrderStatusCode.DELIVERED: frozenset({OrderStatusCode.REFUNDED}),
    OrderStatusCode.CANCELLED: frozenset(),
    OrderStatusCode.REFUNDED: frozenset(),
}

SHIPMENT_STATUS_TRANSITIONS: Dict[ShipmentStatusCode, FrozenSet[ShipmentStatusCode]] = {
    ShipmentStatusCode.LABEL_CREATED: frozenset({ShipmentStatusCode.IN_TRANSIT, ShipmentStatusCode.EXCEPTION}),
    ShipmentStatusCode.IN_TRANSIT: frozenset(
        {ShipmentStatusCode.OUT_FOR_DELIVERY, ShipmentStatusCode.DELIVERED, ShipmentStatusCode.EXCEPTION}
    ),
    ShipmentStatusCode.OUT_FOR_DELIVERY: frozenset({ShipmentStatusCode.DELIVERED, ShipmentStatusCode.EXCEPTION}),
    ShipmentStatusCode.EXCEPTION: frozenset(
        {ShipmentStatusCode.IN_TRANSIT, ShipmentStatusCode.OUT_FOR_DELIVERY, ShipmentStatusCode.DELIVERED}
    ),
    ShipmentStatusCode.DELIVERED: frozenset(),
}


def _validate_transition(rule: str, enum_cls, table, current: int, new: int) -> None:
    try:
        current_status, new_status = enum_cls(current), enum_cls(new)
    except ValueError:
        _reject(rule, f"Unknown status code in transition {current} -> {new}")
    if current_status == new_status:
        return
    if new_status not in table[current_status]:
        _reject(
            rule,
            f"Cannot move from {current_status.name} to {new_status.name}",
            current=current_status.name,
            new=new_status.name,
        )


def validate_order_status_transition(current: int, new: int) -> None:
    """Check an order status change against ``ORDER_STATUS_TRANSITIONS``"""
    _validate_transition("order_status_transition", OrderStatusCode, ORDER_STATUS_TRANSITIONS, current, new)


def validate_shipment_status_transition(current: int, new: int) -> None:
    """Check a shipment status change against ``SHIPMENT_STATUS_TRANSITIONS``"""
    _validate_transition(
        "shipment_status_transition", ShipmentStatusCode, SHIPMENT_STATUS_TRANSITIONS, current, new
    )
