"""
Database Models - Storefront Schema

This module defines the relational schema of the storefront. Tables are
declared in dependency order (referenced before referencing):

Lookup Tables:
- Country, Currency, PaymentMethod, OrderStatus, ShipmentStatus

Core Entities:
- User, Customer, Address, Vendor, Category, Product, ProductCategory,
  Warehouse, Inventory

Orders and Payments:
- Cart, CartItem, Order, OrderItem, Payment, Shipment, ShipmentItem

Reviews, Promotions and Auditing:
- ProductReview, Coupon, OrderCoupon, AuditLog

Every invariant the database can express is declared here: primary and
composite keys, foreign keys with their ON DELETE / ON UPDATE actions,
unique constraints and named check constraints. Business rules that the
schema does not enforce live in ``storefront.quality.rules``.

Money is stored as integer minor currency units (cents).
"""

from datetime import datetime, date
from decimal import Decimal
from enum import Enum, IntEnum
from typing import Optional, List

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    Numeric,
    SmallInteger,
    String,
    Text,
    UniqueConstraint,
    false,
    func,
    true,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


# SQLite only autoincrements INTEGER PRIMARY KEY columns
BigIntId = BigInteger().with_variant(Integer(), "sqlite")
SmallIntId = SmallInteger().with_variant(Integer(), "sqlite")
JSONDocument = JSON().with_variant(JSONB(), "postgresql")

NAMING_CONVENTION = {
    "ix": "ix_%(table_name)s_%(column_0_name)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class Base(DeclarativeBase):
    """Base class for all database models"""
    metadata = MetaData(naming_convention=NAMING_CONVENTION)


# =============================================================================
# ENUMERATIONS
# =============================================================================

class OrderStatusCode(IntEnum):
    """Seeded order status codes (rows of ``order_statuses``)"""
    PENDING = 1
    PAID = 2
    PROCESSING = 3
    SHIPPED = 4
    DELIVERED = 5
    CANCELLED = 6
    REFUNDED = 7


class ShipmentStatusCode(IntEnum):
    """Seeded shipment status codes (rows of ``shipment_statuses``)"""
    LABEL_CREATED = 1
    IN_TRANSIT = 2
    OUT_FOR_DELIVERY = 3
    DELIVERED = 4
    EXCEPTION = 5


class DiscountType(str, Enum):
    """Coupon discount type"""
    PERCENT = "PERCENT"
    FIXED = "FIXED"


class AuditAction(str, Enum):
    """Audited mutation kind"""
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


# =============================================================================
# REFERENCE AND LOOKUP TABLES
# =============================================================================

class Country(Base):
    """Countries used by addresses and warehouses"""
    __tablename__ = "countries"

    country_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    iso_code: Mapped[str] = mapped_column(String(2), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)


class Currency(Base):
    """ISO 4217 currencies, keyed by their three-letter code"""
    __tablename__ = "currencies"

    currency_code: Mapped[str] = mapped_column(String(3), primary_key=True)
    name: Mapped[str] = mapped_column(String(50), nullable=False)
    symbol: Mapped[str] = mapped_column(String(10), nullable=False)


class PaymentMethod(Base):
    __tablename__ = "payment_methods"

    payment_method_id: Mapped[int] = mapped_column(SmallIntId, primary_key=True, autoincrement=True)
    method_name: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)


class OrderStatus(Base):
    """
    Order status lookup.

    Any order may reference any status code present here; transitions are
    not checked by the schema.
    """
    __tablename__ = "order_statuses"

    status_code: Mapped[int] = mapped_column(SmallInteger, primary_key=True, autoincrement=False)
    status_name: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)


class ShipmentStatus(Base):
    __tablename__ = "shipment_statuses"

    status_code: Mapped[int] = mapped_column(SmallInteger, primary_key=True, autoincrement=False)
    status_name: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)


# =============================================================================
# CORE ENTITIES
# =============================================================================

class User(Base):
    """
    Users (customers and admins)

    Deleting a user cascades to its customer profile, addresses, cart and
    reviews. Orders are not cascaded: a user with orders cannot be deleted.
    """
    __tablename__ = "users"

    user_id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String(60), nullable=False)  # bcrypt
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(String(30))
    is_admin: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=false())

    # Audit
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, server_default=func.now(), onupdate=func.now()
    )

    # Relationships
    customer: Mapped[Optional["Customer"]] = relationship(
        back_populates="user", uselist=False, cascade="all, delete-orphan", passive_deletes=True
    )
    addresses: Mapped[List["Address"]] = relationship(
        back_populates="user", cascade="all, delete-orphan", passive_deletes=True
    )
    cart: Mapped[Optional["Cart"]] = relationship(
        back_populates="user", uselist=False, cascade="all, delete-orphan", passive_deletes=True
    )
    reviews: Mapped[List["ProductReview"]] = relationship(
        back_populates="user", cascade="all, delete-orphan", passive_deletes=True
    )
    # Restricted by the database; never nulled out by the ORM
    orders: Mapped[List["Order"]] = relationship(back_populates="user", passive_deletes="all")

    __table_args__ = (
        Index("idx_users_email", "email"),
    )


class Customer(Base):
    """
    Optional one-to-one customer profile of a user.

    ``customer_id`` is assigned by the caller. It stays BIGINT on SQLite so
    it is not a rowid alias and an omitted key is refused there as well.
    """
    __tablename__ = "customers"

    customer_id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    user_id: Mapped[int] = mapped_column(
        BigIntId,
        ForeignKey("users.user_id", name="fk_customers_user", ondelete="CASCADE", onupdate="CASCADE"),
        unique=True,
        nullable=False,
    )
    birth_date: Mapped[Optional[date]] = mapped_column(Date)
    marketing_opt_in: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )

    user: Mapped["User"] = relationship(back_populates="customer")


class Address(Base):
    """
    Shipping/billing addresses of a user.

    The default flags are not unique per user at the storage level; see
    ``storefront.quality.rules.ensure_single_default_address``.
    """
    __tablename__ = "addresses"

    address_id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        BigIntId,
        ForeignKey("users.user_id", name="fk_addresses_user", ondelete="CASCADE", onupdate="CASCADE"),
        nullable=False,
    )
    label: Mapped[str] = mapped_column(String(100), nullable=False)  # e.g. 'Home', 'Office'
    line1: Mapped[str] = mapped_column(String(255), nullable=False)
    line2: Mapped[Optional[str]] = mapped_column(String(255))
    city: Mapped[str] = mapped_column(String(100), nullable=False)
    state_region: Mapped[Optional[str]] = mapped_column(String(100))
    postal_code: Mapped[Optional[str]] = mapped_column(String(30))
    country_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("countries.country_id", name="fk_addresses_country", onupdate="CASCADE"),
        nullable=False,
    )
    is_default_billing: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )
    is_default_shipping: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )

    # Audit
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, server_default=func.now(), onupdate=func.now()
    )

    user: Mapped["User"] = relationship(back_populates="addresses")

    __table_args__ = (
        Index("idx_addresses_user", "user_id"),
    )


class Vendor(Base):
    """Suppliers. Deleting a vendor keeps its products with a null vendor."""
    __tablename__ = "vendors"

    vendor_id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(200), unique=True, nullable=False)
    contact_email: Mapped[Optional[str]] = mapped_column(String(255))
    contact_phone: Mapped[Optional[str]] = mapped_column(String(50))
    website_url: Mapped[Optional[str]] = mapped_column(String(255))

    products: Mapped[List["Product"]] = relationship(back_populates="vendor", passive_deletes=True)


class Category(Base):
    """
    Product categories (self-referencing tree)

    Root categories have a null parent. Sibling names are unique under the
    same parent. Deleting a parent flattens its children to roots. No cycle
    check is enforced by the schema.
    """
    __tablename__ = "categories"

    category_id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    parent_id: Mapped[Optional[int]] = mapped_column(
        BigIntId,
        ForeignKey(
            "categories.category_id",
            name="fk_categories_parent",
            ondelete="SET NULL",
            onupdate="CASCADE",
        ),
    )
    name: Mapped[str] = mapped_column(String(150), nullable=False)
    slug: Mapped[str] = mapped_column(String(160), unique=True, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=true())

    parent: Mapped[Optional["Category"]] = relationship(
        back_populates="children", remote_side=[category_id]
    )
    children: Mapped[List["Category"]] = relationship(back_populates="parent", passive_deletes=True)

    __table_args__ = (
        UniqueConstraint("parent_id", "name", name="uq_categories_parent_name"),
    )


class Product(Base):
    """
    Product catalog

    Price is stored in minor currency units of ``currency_code``.
    """
    __tablename__ = "products"

    product_id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    sku: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    vendor_id: Mapped[Optional[int]] = mapped_column(
        BigIntId,
        ForeignKey("vendors.vendor_id", name="fk_products_vendor", ondelete="SET NULL", onupdate="CASCADE"),
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    price_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    currency_code: Mapped[str] = mapped_column(
        String(3),
        ForeignKey("currencies.currency_code", name="fk_products_currency", onupdate="CASCADE"),
        nullable=False,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=true())

    # Audit
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, server_default=func.now(), onupdate=func.now()
    )

    # Relationships
    vendor: Mapped[Optional["Vendor"]] = relationship(back_populates="products")
    categories: Mapped[List["Category"]] = relationship(
        secondary="product_categories", passive_deletes=True
    )
    inventory: Mapped[List["Inventory"]] = relationship(
        back_populates="product", cascade="all, delete-orphan", passive_deletes=True
    )

    __table_args__ = (
        CheckConstraint("price_cents >= 0", name="ck_products_price_nonneg"),
        Index("idx_products_vendor", "vendor_id"),
        Index("idx_products_active", "is_active"),
    )


class ProductCategory(Base):
    """Many-to-many junction: Product <-> Category"""
    __tablename__ = "product_categories"

    product_id: Mapped[int] = mapped_column(
        BigIntId,
        ForeignKey(
            "products.product_id",
            name="fk_product_categories_product",
            ondelete="CASCADE",
            onupdate="CASCADE",
        ),
        primary_key=True,
    )
    category_id: Mapped[int] = mapped_column(
        BigIntId,
        ForeignKey(
            "categories.category_id",
            name="fk_product_categories_category",
            ondelete="CASCADE",
            onupdate="CASCADE",
        ),
        primary_key=True,
    )

    __table_args__ = (
        Index("idx_product_categories_category", "category_id"),
    )


class Warehouse(Base):
    """Physical stock location"""
    __tablename__ = "warehouses"

    warehouse_id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(150), unique=True, nullable=False)
    country_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("countries.country_id", name="fk_warehouses_country", onupdate="CASCADE"),
        nullable=False,
    )
    city: Mapped[str] = mapped_column(String(100), nullable=False)

    inventory: Mapped[List["Inventory"]] = relationship(
        back_populates="warehouse", cascade="all, delete-orphan", passive_deletes=True
    )


class Inventory(Base):
    """
    Inventory per product per warehouse

    Both quantities are non-negative at all times. Concurrent adjustments
    go through ``InventoryRepository`` which locks the row.
    """
    __tablename__ = "inventory"

    product_id: Mapped[int] = mapped_column(
        BigIntId,
        ForeignKey("products.product_id", name="fk_inventory_product", ondelete="CASCADE", onupdate="CASCADE"),
        primary_key=True,
    )
    warehouse_id: Mapped[int] = mapped_column(
        BigIntId,
        ForeignKey(
            "warehouses.warehouse_id",
            name="fk_inventory_warehouse",
            ondelete="CASCADE",
            onupdate="CASCADE",
        ),
        primary_key=True,
    )
    qty_on_hand: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    qty_reserved: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")

    product: Mapped["Product"] = relationship(back_populates="inventory")
    warehouse: Mapped["Warehouse"] = relationship(back_populates="inventory")

    __table_args__ = (
        CheckConstraint("qty_on_hand >= 0 AND qty_reserved >= 0", name="ck_inventory_nonneg"),
        Index("idx_inventory_warehouse", "warehouse_id"),
    )


# =============================================================================
# ORDERS AND PAYMENTS
# =============================================================================

class Cart(Base):
    """Pre-order container; at most one per user"""
    __tablename__ = "carts"

    cart_id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        BigIntId,
        ForeignKey("users.user_id", name="fk_carts_user", ondelete="CASCADE", onupdate="CASCADE"),
        unique=True,
        nullable=False,
    )

    # Audit
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, server_default=func.now(), onupdate=func.now()
    )

    user: Mapped["User"] = relationship(back_populates="cart")
    items: Mapped[List["CartItem"]] = relationship(
        back_populates="cart", cascade="all, delete-orphan", passive_deletes=True
    )


class CartItem(Base):
    __tablename__ = "cart_items"

    cart_id: Mapped[int] = mapped_column(
        BigIntId,
        ForeignKey("carts.cart_id", name="fk_cart_items_cart", ondelete="CASCADE", onupdate="CASCADE"),
        primary_key=True,
    )
    product_id: Mapped[int] = mapped_column(
        BigIntId,
        ForeignKey("products.product_id", name="fk_cart_items_product", onupdate="CASCADE"),
        primary_key=True,
    )
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)

    cart: Mapped["Cart"] = relationship(back_populates="items")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_cart_items_quantity_positive"),
    )


class Order(Base):
    """
    Orders

    Money fields are independent columns; the grand total arithmetic is a
    business rule (``storefront.quality.rules.ensure_order_totals``). The
    billing and shipping addresses are not required by the schema to belong
    to the ordering user.
    """
    __tablename__ = "orders"

    order_id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        BigIntId,
        ForeignKey("users.user_id", name="fk_orders_user", onupdate="CASCADE"),
        nullable=False,
    )
    billing_address_id: Mapped[int] = mapped_column(
        BigIntId,
        ForeignKey("addresses.address_id", name="fk_orders_billing_address", onupdate="CASCADE"),
        nullable=False,
    )
    shipping_address_id: Mapped[int] = mapped_column(
        BigIntId,
        ForeignKey("addresses.address_id", name="fk_orders_shipping_address", onupdate="CASCADE"),
        nullable=False,
    )
    currency_code: Mapped[str] = mapped_column(
        String(3),
        ForeignKey("currencies.currency_code", name="fk_orders_currency", onupdate="CASCADE"),
        nullable=False,
    )
    payment_method_id: Mapped[int] = mapped_column(
        SmallIntId,
        ForeignKey("payment_methods.payment_method_id", name="fk_orders_payment_method", onupdate="CASCADE"),
        nullable=False,
    )
    status_code: Mapped[int] = mapped_column(
        SmallInteger,
        ForeignKey("order_statuses.status_code", name="fk_orders_status", onupdate="CASCADE"),
        nullable=False,
    )

    # Measures (minor currency units)
    subtotal_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    shipping_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    tax_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    discount_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    grand_total_cents: Mapped[int] = mapped_column(Integer, nullable=False)

    # Timestamps
    placed_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, server_default=func.now(), onupdate=func.now()
    )

    # Relationships
    user: Mapped["User"] = relationship(back_populates="orders")
    items: Mapped[List["OrderItem"]] = relationship(
        back_populates="order", cascade="all, delete-orphan", passive_deletes=True
    )
    payments: Mapped[List["Payment"]] = relationship(
        back_populates="order", cascade="all, delete-orphan", passive_deletes=True
    )
    shipments: Mapped[List["Shipment"]] = relationship(
        back_populates="order", cascade="all, delete-orphan", passive_deletes=True
    )
    coupons: Mapped[List["Coupon"]] = relationship(secondary="order_coupons", passive_deletes=True)

    __table_args__ = (
        CheckConstraint("subtotal_cents >= 0", name="ck_orders_subtotal_nonneg"),
        CheckConstraint("shipping_cents >= 0", name="ck_orders_shipping_nonneg"),
        CheckConstraint("tax_cents >= 0", name="ck_orders_tax_nonneg"),
        CheckConstraint("discount_cents >= 0", name="ck_orders_discount_nonneg"),
        CheckConstraint("grand_total_cents >= 0", name="ck_orders_grand_total_nonneg"),
        Index("idx_orders_user", "user_id"),
        Index("idx_orders_status", "status_code"),
    )


class OrderItem(Base):
    """
    Order line

    Product identity and price are copied at purchase time so later product
    edits do not alter historical orders.
    """
    __tablename__ = "order_items"

    order_item_id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    order_id: Mapped[int] = mapped_column(
        BigIntId,
        ForeignKey("orders.order_id", name="fk_order_items_order", ondelete="CASCADE", onupdate="CASCADE"),
        nullable=False,
    )
    product_id: Mapped[int] = mapped_column(
        BigIntId,
        ForeignKey("products.product_id", name="fk_order_items_product", onupdate="CASCADE"),
        nullable=False,
    )
    sku: Mapped[str] = mapped_column(String(64), nullable=False)
    product_name: Mapped[str] = mapped_column(String(255), nullable=False)
    unit_price_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    line_total_cents: Mapped[int] = mapped_column(Integer, nullable=False)

    order: Mapped["Order"] = relationship(back_populates="items")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_order_items_quantity_positive"),
        CheckConstraint("unit_price_cents >= 0", name="ck_order_items_unit_price_nonneg"),
        CheckConstraint("line_total_cents >= 0", name="ck_order_items_line_total_nonneg"),
        Index("idx_order_items_order", "order_id"),
    )


class Payment(Base):
    """Payments; an order may be split across several"""
    __tablename__ = "payments"

    payment_id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    order_id: Mapped[int] = mapped_column(
        BigIntId,
        ForeignKey("orders.order_id", name="fk_payments_order", ondelete="CASCADE", onupdate="CASCADE"),
        nullable=False,
    )
    payment_method_id: Mapped[int] = mapped_column(
        SmallIntId,
        ForeignKey("payment_methods.payment_method_id", name="fk_payments_method", onupdate="CASCADE"),
        nullable=False,
    )
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    currency_code: Mapped[str] = mapped_column(
        String(3),
        ForeignKey("currencies.currency_code", name="fk_payments_currency", onupdate="CASCADE"),
        nullable=False,
    )
    authorization_code: Mapped[Optional[str]] = mapped_column(String(100))
    successful: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=false())
    processed_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    order: Mapped["Order"] = relationship(back_populates="payments")

    __table_args__ = (
        CheckConstraint("amount_cents >= 0", name="ck_payments_amount_nonneg"),
        Index("idx_payments_order", "order_id"),
    )


class Shipment(Base):
    __tablename__ = "shipments"

    shipment_id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    order_id: Mapped[int] = mapped_column(
        BigIntId,
        ForeignKey("orders.order_id", name="fk_shipments_order", ondelete="CASCADE", onupdate="CASCADE"),
        nullable=False,
    )
    tracking_number: Mapped[Optional[str]] = mapped_column(String(100))
    carrier: Mapped[Optional[str]] = mapped_column(String(100))
    status_code: Mapped[int] = mapped_column(
        SmallInteger,
        ForeignKey("shipment_statuses.status_code", name="fk_shipments_status", onupdate="CASCADE"),
        nullable=False,
    )
    shipped_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    delivered_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    order: Mapped["Order"] = relationship(back_populates="shipments")
    items: Mapped[List["ShipmentItem"]] = relationship(
        back_populates="shipment", cascade="all, delete-orphan", passive_deletes=True
    )

    __table_args__ = (
        Index("idx_shipments_order", "order_id"),
    )


class ShipmentItem(Base):
    """Portion of an order line's quantity carried by one shipment"""
    __tablename__ = "shipment_items"

    shipment_id: Mapped[int] = mapped_column(
        BigIntId,
        ForeignKey(
            "shipments.shipment_id",
            name="fk_shipment_items_shipment",
            ondelete="CASCADE",
            onupdate="CASCADE",
        ),
        primary_key=True,
    )
    order_item_id: Mapped[int] = mapped_column(
        BigIntId,
        ForeignKey(
            "order_items.order_item_id",
            name="fk_shipment_items_order_item",
            ondelete="CASCADE",
            onupdate="CASCADE",
        ),
        primary_key=True,
    )
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)

    shipment: Mapped["Shipment"] = relationship(back_populates="items")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_shipment_items_quantity_positive"),
    )


# =============================================================================
# REVIEWS, PROMOTIONS AND AUDITING
# =============================================================================

class ProductReview(Base):
    """Product reviews; one per user per product"""
    __tablename__ = "product_reviews"

    review_id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    product_id: Mapped[int] = mapped_column(
        BigIntId,
        ForeignKey("products.product_id", name="fk_reviews_product", ondelete="CASCADE", onupdate="CASCADE"),
        nullable=False,
    )
    user_id: Mapped[int] = mapped_column(
        BigIntId,
        ForeignKey("users.user_id", name="fk_reviews_user", ondelete="CASCADE", onupdate="CASCADE"),
        nullable=False,
    )
    rating: Mapped[int] = mapped_column(SmallInteger, nullable=False)
    title: Mapped[Optional[str]] = mapped_column(String(200))
    body: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, server_default=func.now()
    )

    user: Mapped["User"] = relationship(back_populates="reviews")

    __table_args__ = (
        UniqueConstraint("product_id", "user_id", name="uq_reviews_user_product"),
        CheckConstraint("rating BETWEEN 1 AND 5", name="ck_reviews_rating_range"),
        Index("idx_reviews_product", "product_id"),
    )


class Coupon(Base):
    """
    Coupons / promotions

    Either a fixed amount off (``discount_value_cents``) or a percentage off
    (``percent_off``), as selected by ``discount_type``. Usage caps are
    declared here and enforced by ``storefront.quality.rules``.
    """
    __tablename__ = "coupons"

    coupon_id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    code: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(String(255))
    discount_type: Mapped[DiscountType] = mapped_column(
        SQLEnum(DiscountType, name="discount_type"), nullable=False
    )
    discount_value_cents: Mapped[int] = mapped_column(Integer, nullable=False)  # for FIXED
    percent_off: Mapped[Optional[Decimal]] = mapped_column(Numeric(5, 2))  # for PERCENT, e.g. 15.00
    max_uses: Mapped[Optional[int]] = mapped_column(Integer)
    per_user_limit: Mapped[Optional[int]] = mapped_column(Integer)
    valid_from: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    valid_to: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=true())

    __table_args__ = (
        CheckConstraint(
            "(discount_type = 'FIXED' AND discount_value_cents > 0) OR "
            "(discount_type = 'PERCENT' AND percent_off IS NOT NULL AND percent_off > 0)",
            name="ck_coupons_value",
        ),
        CheckConstraint("discount_value_cents >= 0", name="ck_coupons_discount_value_nonneg"),
        CheckConstraint("max_uses IS NULL OR max_uses >= 0", name="ck_coupons_max_uses_nonneg"),
        CheckConstraint(
            "per_user_limit IS NULL OR per_user_limit >= 0", name="ck_coupons_per_user_limit_nonneg"
        ),
    )


class OrderCoupon(Base):
    """Many-to-many junction: coupons applied to orders"""
    __tablename__ = "order_coupons"

    order_id: Mapped[int] = mapped_column(
        BigIntId,
        ForeignKey("orders.order_id", name="fk_order_coupons_order", ondelete="CASCADE", onupdate="CASCADE"),
        primary_key=True,
    )
    coupon_id: Mapped[int] = mapped_column(
        BigIntId,
        ForeignKey("coupons.coupon_id", name="fk_order_coupons_coupon", onupdate="CASCADE"),
        primary_key=True,
    )


class AuditLog(Base):
    """
    Append-only record of entity mutations

    The actor reference is nulled when the acting user is deleted so the
    history itself is retained.
    """
    __tablename__ = "audit_logs"

    audit_id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    action: Mapped[AuditAction] = mapped_column(SQLEnum(AuditAction, name="audit_action"), nullable=False)
    changed_by: Mapped[Optional[int]] = mapped_column(
        BigIntId,
        ForeignKey("users.user_id", name="fk_audit_user", ondelete="SET NULL", onupdate="CASCADE"),
    )
    changed_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, server_default=func.now()
    )
    details: Mapped[Optional[dict]] = mapped_column(JSONDocument)

    __table_args__ = (
        CheckConstraint("entity_id >= 0", name="ck_audit_logs_entity_id_nonneg"),
    )
