"""
Repositories

Typed async read/write access path per entity, keyed by the entity's
primary or composite key.

Writes are executed so the database evaluates every constraint at write
time:

- ``add`` flushes immediately;
- ``update`` and ``delete`` are single statements, so multi-column changes
  are checked together and ON DELETE / ON UPDATE actions are applied by the
  database, transitively and atomically.

On a violation the session's transaction is rolled back and a
``ConstraintViolation`` subclass is raised. Reads always refresh from the
database, so rows removed or changed by a cascade are never served from the
session's identity map.
"""

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Generic, Iterable, List, Optional, Type, TypeVar, Union

import structlog
from sqlalchemy import and_, delete, func, inspect, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from storefront.database.errors import (
    AuditLogImmutableError,
    ConstraintViolation,
    RowNotFoundError,
    constraint_guard,
)
from storefront.database.models import (
    Address,
    AuditAction,
    AuditLog,
    Base,
    Cart,
    CartItem,
    Category,
    Country,
    Coupon,
    Currency,
    Customer,
    Inventory,
    Order,
    OrderCoupon,
    OrderItem,
    OrderStatus,
    Payment,
    PaymentMethod,
    Product,
    ProductCategory,
    ProductReview,
    Shipment,
    ShipmentItem,
    ShipmentStatus,
    User,
    Vendor,
    Warehouse,
)

logger = structlog.get_logger(__name__)

ModelT = TypeVar("ModelT", bound=Base)
Key = Union[Any, tuple]


class Repository(Generic[ModelT]):
    """
    Generic typed access path for one mapped table.

    Subclasses set ``model`` and add the read paths backed by the table's
    indexes.

    Example:
        users = UserRepository(session)
        user = await users.add(User(email="a@example.com", ...))
        await users.update(user.user_id, phone="555-0100")
        await users.delete(user.user_id)
    """

    model: Type[ModelT]

    def __init__(self, session: AsyncSession):
        self.session = session

    @property
    def table_name(self) -> str:
        return self.model.__tablename__

    # -------------------------------------------------------------------------
    # Keys
    # -------------------------------------------------------------------------

    def _key_clause(self, key: Key):
        columns = inspect(self.model).primary_key
        values = key if isinstance(key, tuple) else (key,)
        if len(values) != len(columns):
            raise ValueError(
                f"{self.model.__name__} key has {len(columns)} column(s), got {len(values)} value(s)"
            )
        return and_(*(column == value for column, value in zip(columns, values)))

    @asynccontextmanager
    async def _atomic(self, operation: str) -> AsyncIterator[None]:
        """Translate integrity errors and abort the whole transaction on violation"""
        try:
            with constraint_guard(f"{operation} {self.table_name}"):
                yield
        except ConstraintViolation:
            await self.session.rollback()
            raise

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def get(self, key: Key) -> Optional[ModelT]:
        """Fetch one row by primary key (tuple for composite keys)"""
        return await self.session.get(self.model, key, populate_existing=True)

    async def list_by(self, **filters: Any) -> List[ModelT]:
        """All rows whose columns equal ``filters``, in primary key order"""
        stmt = (
            select(self.model)
            .filter_by(**filters)
            .order_by(*inspect(self.model).primary_key)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def count(self, **filters: Any) -> int:
        stmt = select(func.count()).select_from(self.model).filter_by(**filters)
        return (await self.session.execute(stmt)).scalar_one()

    async def _scalars(self, stmt) -> List[ModelT]:
        result = await self.session.execute(stmt.execution_options(populate_existing=True))
        return list(result.scalars().all())

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    async def add(self, row: ModelT) -> ModelT:
        """
        Insert a row.

        Args:
            row: Transient model instance

        Returns:
            The same instance, refreshed with database-generated values

        Raises:
            ConstraintViolation: If any constraint rejects the row
        """
        async with self._atomic("insert"):
            self.session.add(row)
            await self.session.flush()
        await self.session.refresh(row)
        logger.debug("Row inserted", table=self.table_name)
        return row

    async def add_all(self, rows: Iterable[ModelT]) -> List[ModelT]:
        """Insert several rows in one flush; all or none are written"""
        rows = list(rows)
        async with self._atomic("insert"):
            self.session.add_all(rows)
            await self.session.flush()
        logger.debug("Rows inserted", table=self.table_name, count=len(rows))
        return rows

    async def update(self, key: Key, **values: Any) -> ModelT:
        """
        Update one row with a single statement.

        All column changes are evaluated together by the database. Changing
        a primary key propagates to every ON UPDATE CASCADE reference.

        Raises:
            RowNotFoundError: If no row has ``key``
            ConstraintViolation: If the new values break a constraint
        """
        stmt = (
            update(self.model)
            .where(self._key_clause(key))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        async with self._atomic("update"):
            result = await self.session.execute(stmt)
        if result.rowcount == 0:
            raise RowNotFoundError(f"{self.model.__name__} {key!r} not found")
        logger.debug("Row updated", table=self.table_name, columns=sorted(values))

        new_key = self._key_after_update(key, values)
        return await self.get(new_key)

    def _key_after_update(self, key: Key, values: dict) -> Key:
        columns = inspect(self.model).primary_key
        old = key if isinstance(key, tuple) else (key,)
        new = tuple(values.get(column.key, value) for column, value in zip(columns, old))
        return new if isinstance(key, tuple) else new[0]

    async def delete(self, key: Key) -> bool:
        """
        Delete one row with a single statement.

        Dependent rows are cascaded, nulled or protect the row according to
        their foreign key declarations.

        Returns:
            bool: Whether a row was deleted

        Raises:
            ForeignKeyViolation: If a dependent row blocks the delete
        """
        stmt = (
            delete(self.model)
            .where(self._key_clause(key))
            .execution_options(synchronize_session=False)
        )
        async with self._atomic("delete"):
            result = await self.session.execute(stmt)
        logger.debug("Row deleted", table=self.table_name, deleted=result.rowcount)
        return result.rowcount > 0


# =============================================================================
# LOOKUP TABLES
# =============================================================================

class CountryRepository(Repository[Country]):
    model = Country

    async def by_iso_code(self, iso_code: str) -> Optional[Country]:
        rows = await self._scalars(select(Country).where(Country.iso_code == iso_code))
        return rows[0] if rows else None


class CurrencyRepository(Repository[Currency]):
    model = Currency


class PaymentMethodRepository(Repository[PaymentMethod]):
    model = PaymentMethod

    async def by_name(self, method_name: str) -> Optional[PaymentMethod]:
        rows = await self._scalars(select(PaymentMethod).where(PaymentMethod.method_name == method_name))
        return rows[0] if rows else None


class OrderStatusRepository(Repository[OrderStatus]):
    model = OrderStatus


class ShipmentStatusRepository(Repository[ShipmentStatus]):
    model = ShipmentStatus


# =============================================================================
# CORE ENTITIES
# =============================================================================

class UserRepository(Repository[User]):
    model = User

    async def by_email(self, email: str) -> Optional[User]:
        rows = await self._scalars(select(User).where(User.email == email))
        return rows[0] if rows else None


class CustomerRepository(Repository[Customer]):
    model = Customer

    async def for_user(self, user_id: int) -> Optional[Customer]:
        rows = await self._scalars(select(Customer).where(Customer.user_id == user_id))
        return rows[0] if rows else None


class AddressRepository(Repository[Address]):
    model = Address

    async def for_user(self, user_id: int) -> List[Address]:
        return await self._scalars(
            select(Address).where(Address.user_id == user_id).order_by(Address.address_id)
        )


class VendorRepository(Repository[Vendor]):
    model = Vendor


class CategoryRepository(Repository[Category]):
    model = Category

    async def by_slug(self, slug: str) -> Optional[Category]:
        rows = await self._scalars(select(Category).where(Category.slug == slug))
        return rows[0] if rows else None

    async def children(self, parent_id: Optional[int]) -> List[Category]:
        """Direct children of ``parent_id``; roots when ``parent_id`` is None"""
        condition = Category.parent_id.is_(None) if parent_id is None else Category.parent_id == parent_id
        return await self._scalars(select(Category).where(condition).order_by(Category.name))

    async def for_product(self, product_id: int) -> List[Category]:
        return await self._scalars(
            select(Category)
            .join(ProductCategory, ProductCategory.category_id == Category.category_id)
            .where(ProductCategory.product_id == product_id)
            .order_by(Category.category_id)
        )


class ProductRepository(Repository[Product]):
    model = Product

    async def by_sku(self, sku: str) -> Optional[Product]:
        rows = await self._scalars(select(Product).where(Product.sku == sku))
        return rows[0] if rows else None

    async def by_vendor(self, vendor_id: Optional[int]) -> List[Product]:
        condition = Product.vendor_id.is_(None) if vendor_id is None else Product.vendor_id == vendor_id
        return await self._scalars(select(Product).where(condition).order_by(Product.product_id))

    async def active(self, is_active: bool = True) -> List[Product]:
        return await self._scalars(
            select(Product).where(Product.is_active == is_active).order_by(Product.product_id)
        )

    async def in_category(self, category_id: int) -> List[Product]:
        return await self._scalars(
            select(Product)
            .join(ProductCategory, ProductCategory.product_id == Product.product_id)
            .where(ProductCategory.category_id == category_id)
            .order_by(Product.product_id)
        )


class ProductCategoryRepository(Repository[ProductCategory]):
    model = ProductCategory


class WarehouseRepository(Repository[Warehouse]):
    model = Warehouse


class InventoryRepository(Repository[Inventory]):
    """
    Inventory rows keyed by ``(product_id, warehouse_id)``.

    ``adjust`` applies deltas relative to the stored value in one statement;
    the row lock taken by the UPDATE serialises concurrent writers, so two
    concurrent decrements can never both read the same stale quantity.
    """

    model = Inventory

    async def for_warehouse(self, warehouse_id: int) -> List[Inventory]:
        return await self._scalars(
            select(Inventory).where(Inventory.warehouse_id == warehouse_id).order_by(Inventory.product_id)
        )

    async def lock(self, product_id: int, warehouse_id: int) -> Optional[Inventory]:
        """
        Read a row with ``SELECT ... FOR UPDATE``.

        The lock is held until the surrounding transaction ends. SQLite has
        no row locks and serialises writers per database instead.
        """
        stmt = (
            select(Inventory)
            .where(self._key_clause((product_id, warehouse_id)))
            .with_for_update()
        )
        rows = await self._scalars(stmt)
        return rows[0] if rows else None

    async def adjust(
        self,
        product_id: int,
        warehouse_id: int,
        on_hand_delta: int = 0,
        reserved_delta: int = 0,
    ) -> Inventory:
        """
        Add deltas to the on-hand and reserved quantities.

        Raises:
            RowNotFoundError: If there is no inventory row for the pair
            CheckConstraintViolation: If either quantity would go negative
        """
        stmt = (
            update(Inventory)
            .where(self._key_clause((product_id, warehouse_id)))
            .values(
                qty_on_hand=Inventory.qty_on_hand + on_hand_delta,
                qty_reserved=Inventory.qty_reserved + reserved_delta,
            )
            .execution_options(synchronize_session=False)
        )
        async with self._atomic("adjust"):
            result = await self.session.execute(stmt)
        if result.rowcount == 0:
            raise RowNotFoundError(f"No inventory for product {product_id} in warehouse {warehouse_id}")

        logger.info(
            "Inventory adjusted",
            product_id=product_id,
            warehouse_id=warehouse_id,
            on_hand_delta=on_hand_delta,
            reserved_delta=reserved_delta,
        )
        return await self.get((product_id, warehouse_id))


# =============================================================================
# ORDERS AND PAYMENTS
# =============================================================================

class CartRepository(Repository[Cart]):
    model = Cart

    async def for_user(self, user_id: int) -> Optional[Cart]:
        rows = await self._scalars(select(Cart).where(Cart.user_id == user_id))
        return rows[0] if rows else None


class CartItemRepository(Repository[CartItem]):
    model = CartItem

    async def for_cart(self, cart_id: int) -> List[CartItem]:
        return await self._scalars(
            select(CartItem).where(CartItem.cart_id == cart_id).order_by(CartItem.product_id)
        )


class OrderRepository(Repository[Order]):
    model = Order

    async def for_user(self, user_id: int) -> List[Order]:
        return await self._scalars(
            select(Order).where(Order.user_id == user_id).order_by(Order.order_id)
        )

    async def with_status(self, status_code: int) -> List[Order]:
        return await self._scalars(
            select(Order).where(Order.status_code == status_code).order_by(Order.order_id)
        )

    async def get_detail(self, order_id: int) -> Optional[Order]:
        """Order with its lines, payments, shipments (and their lines) and coupons loaded"""
        stmt = (
            select(Order)
            .where(Order.order_id == order_id)
            .options(
                selectinload(Order.items),
                selectinload(Order.payments),
                selectinload(Order.shipments).selectinload(Shipment.items),
                selectinload(Order.coupons),
            )
        )
        rows = await self._scalars(stmt)
        return rows[0] if rows else None


class OrderItemRepository(Repository[OrderItem]):
    model = OrderItem

    async def for_order(self, order_id: int) -> List[OrderItem]:
        return await self._scalars(
            select(OrderItem).where(OrderItem.order_id == order_id).order_by(OrderItem.order_item_id)
        )


class PaymentRepository(Repository[Payment]):
    model = Payment

    async def for_order(self, order_id: int) -> List[Payment]:
        return await self._scalars(
            select(Payment).where(Payment.order_id == order_id).order_by(Payment.payment_id)
        )


class ShipmentRepository(Repository[Shipment]):
    model = Shipment

    async def for_order(self, order_id: int) -> List[Shipment]:
        return await self._scalars(
            select(Shipment).where(Shipment.order_id == order_id).order_by(Shipment.shipment_id)
        )


class ShipmentItemRepository(Repository[ShipmentItem]):
    model = ShipmentItem

    async def for_order_item(self, order_item_id: int) -> List[ShipmentItem]:
        return await self._scalars(
            select(ShipmentItem)
            .where(ShipmentItem.order_item_id == order_item_id)
            .order_by(ShipmentItem.shipment_id)
        )


# =============================================================================
# REVIEWS, PROMOTIONS AND AUDITING
# =============================================================================

class ProductReviewRepository(Repository[ProductReview]):
    model = ProductReview

    async def for_product(self, product_id: int) -> List[ProductReview]:
        return await self._scalars(
            select(ProductReview)
            .where(ProductReview.product_id == product_id)
            .order_by(ProductReview.review_id)
        )


class CouponRepository(Repository[Coupon]):
    model = Coupon

    async def by_code(self, code: str) -> Optional[Coupon]:
        rows = await self._scalars(select(Coupon).where(Coupon.code == code))
        return rows[0] if rows else None


class OrderCouponRepository(Repository[OrderCoupon]):
    model = OrderCoupon


class AuditLogRepository(Repository[AuditLog]):
    """Append-only access to the audit log"""

    model = AuditLog

    async def record(
        self,
        entity_type: str,
        entity_id: int,
        action: AuditAction,
        changed_by: Optional[int] = None,
        details: Optional[dict] = None,
    ) -> AuditLog:
        return await self.add(
            AuditLog(
                entity_type=entity_type,
                entity_id=entity_id,
                action=action,
                changed_by=changed_by,
                details=details,
            )
        )

    async def for_entity(self, entity_type: str, entity_id: int) -> List[AuditLog]:
        return await self._scalars(
            select(AuditLog)
            .where(AuditLog.entity_type == entity_type, AuditLog.entity_id == entity_id)
            .order_by(AuditLog.audit_id)
        )

    async def update(self, key: Key, **values: Any) -> AuditLog:
        raise AuditLogImmutableError("Audit log entries cannot be updated")

    async def delete(self, key: Key) -> bool:
        raise AuditLogImmutableError("Audit log entries cannot be deleted")

