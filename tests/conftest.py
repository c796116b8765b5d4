"""
Test Suite Configuration
"""
import pytest
from datetime import datetime, timedelta
from types import SimpleNamespace
from typing import AsyncGenerator

import polars as pl
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from storefront.config import Settings
from storefront.database.connection import create_engine, create_schema, create_session_factory
from storefront.database.models import (
    Address,
    Coupon,
    DiscountType,
    Inventory,
    Order,
    OrderItem,
    OrderStatusCode,
    Payment,
    Product,
    Shipment,
    ShipmentItem,
    ShipmentStatusCode,
    User,
    Vendor,
    Warehouse,
)
from storefront.database.repositories import (
    AddressRepository,
    CountryRepository,
    CouponRepository,
    InventoryRepository,
    OrderItemRepository,
    OrderRepository,
    PaymentMethodRepository,
    PaymentRepository,
    ProductRepository,
    ShipmentItemRepository,
    ShipmentRepository,
    UserRepository,
    VendorRepository,
    WarehouseRepository,
)
from storefront.database.seed import seed_lookup_data


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """Create test settings"""
    return Settings(
        APP_ENV="testing",
        DEBUG=True,
    )


@pytest.fixture
async def test_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """Per-test SQLite database file with foreign keys enabled and the full schema"""
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'storefront.db'}")
    await create_schema(engine)

    yield engine

    await engine.dispose()


@pytest.fixture
async def session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Session on an empty schema"""
    session_factory = create_session_factory(test_engine)

    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
async def test_db(session) -> AsyncSession:
    """Session on a schema with seeded lookup tables"""
    await seed_lookup_data(session)
    await session.commit()
    return session


def _make_user(email: str, **overrides) -> User:
    values = {
        "email": email,
        "password_hash": "$2b$12$" + "x" * 53,
        "first_name": "Jane",
        "last_name": "Doe",
    }
    values.update(overrides)
    return User(**values)


def _make_address(user_id: int, country_id: int, **overrides) -> Address:
    values = {
        "user_id": user_id,
        "label": "Home",
        "line1": "1 Main St",
        "city": "Springfield",
        "country_id": country_id,
    }
    values.update(overrides)
    return Address(**values)


def _make_coupon(code: str, **overrides) -> Coupon:
    now = datetime.now()
    values = {
        "code": code,
        "discount_type": DiscountType.FIXED,
        "discount_value_cents": 500,
        "valid_from": now - timedelta(days=1),
        "valid_to": now + timedelta(days=30),
    }
    values.update(overrides)
    return Coupon(**values)


@pytest.fixture
def make_user():
    """Factory for transient users"""
    return _make_user


@pytest.fixture
def make_address():
    """Factory for transient addresses"""
    return _make_address


@pytest.fixture
def make_coupon():
    """Factory for transient coupons"""
    return _make_coupon


@pytest.fixture
async def store(test_db) -> SimpleNamespace:
    """
    A committed storefront with one user who has placed one order.

    Returns ids only; model instances are expired by any later rollback.
    """
    db = test_db
    us = await CountryRepository(db).by_iso_code("US")
    card = await PaymentMethodRepository(db).by_name("Credit Card")

    user = await UserRepository(db).add(_make_user("jane@example.com"))
    address = await AddressRepository(db).add(
        _make_address(user.user_id, us.country_id, is_default_billing=True, is_default_shipping=True)
    )
    vendor = await VendorRepository(db).add(Vendor(name="Acme Supplies", contact_email="sales@acme.test"))
    product = await ProductRepository(db).add(
        Product(
            sku="SKU-001",
            vendor_id=vendor.vendor_id,
            name="Wireless Mouse",
            price_cents=2999,
            currency_code="USD",
        )
    )
    warehouse = await WarehouseRepository(db).add(
        Warehouse(name="Central", country_id=us.country_id, city="Columbus")
    )
    await InventoryRepository(db).add(
        Inventory(
            product_id=product.product_id,
            warehouse_id=warehouse.warehouse_id,
            qty_on_hand=10,
            qty_reserved=2,
        )
    )
    order = await OrderRepository(db).add(
        Order(
            user_id=user.user_id,
            billing_address_id=address.address_id,
            shipping_address_id=address.address_id,
            currency_code="USD",
            payment_method_id=card.payment_method_id,
            status_code=OrderStatusCode.PENDING,
            subtotal_cents=5998,
            shipping_cents=500,
            tax_cents=480,
            discount_cents=0,
            grand_total_cents=6978,
        )
    )
    item = await OrderItemRepository(db).add(
        OrderItem(
            order_id=order.order_id,
            product_id=product.product_id,
            sku=product.sku,
            product_name=product.name,
            unit_price_cents=2999,
            quantity=2,
            line_total_cents=5998,
        )
    )
    await db.commit()

    return SimpleNamespace(
        country_id=us.country_id,
        payment_method_id=card.payment_method_id,
        user_id=user.user_id,
        address_id=address.address_id,
        vendor_id=vendor.vendor_id,
        product_id=product.product_id,
        warehouse_id=warehouse.warehouse_id,
        order_id=order.order_id,
        order_item_id=item.order_item_id,
    )


@pytest.fixture
async def coupon(test_db) -> Coupon:
    """Committed FIXED coupon, valid now"""
    row = await CouponRepository(test_db).add(_make_coupon("WELCOME5"))
    await test_db.commit()
    return row


@pytest.fixture
async def fulfilment(store, test_db) -> SimpleNamespace:
    """A captured payment and one shipment carrying the whole order line"""
    db = test_db
    payment = await PaymentRepository(db).add(
        Payment(
            order_id=store.order_id,
            payment_method_id=store.payment_method_id,
            amount_cents=6978,
            currency_code="USD",
            authorization_code="AUTH-0001",
            successful=True,
        )
    )
    shipment = await ShipmentRepository(db).add(
        Shipment(
            order_id=store.order_id,
            status_code=ShipmentStatusCode.LABEL_CREATED,
            carrier="UPS",
            tracking_number="1Z999",
        )
    )
    await ShipmentItemRepository(db).add(
        ShipmentItem(shipment_id=shipment.shipment_id, order_item_id=store.order_item_id, quantity=2)
    )
    await db.commit()

    return SimpleNamespace(payment_id=payment.payment_id, shipment_id=shipment.shipment_id)


@pytest.fixture
def sample_orders_df() -> pl.DataFrame:
    """Create sample orders DataFrame for testing"""
    return pl.DataFrame({
        "order_id": [1, 2, 3],
        "user_id": [10, 10, 11],
        "status_code": [1, 5, 6],
        "subtotal_cents": [10000, 20000, 5000],
        "shipping_cents": [500, 0, 599],
        "tax_cents": [800, 1600, 400],
        "discount_cents": [1000, 0, 0],
        "grand_total_cents": [10300, 21600, 5999],
    })


@pytest.fixture
def sample_addresses_df() -> pl.DataFrame:
    """Create sample addresses DataFrame for testing"""
    return pl.DataFrame({
        "address_id": [1, 2, 3, 4],
        "user_id": [10, 10, 11, 11],
        "is_default_billing": [True, False, True, False],
        "is_default_shipping": [False, True, True, False],
    })


@pytest.fixture
def sample_inventory_df() -> pl.DataFrame:
    """Create sample inventory DataFrame for testing"""
    return pl.DataFrame({
        "product_id": [1, 1, 2],
        "warehouse_id": [1, 2, 1],
        "qty_on_hand": [10, 0, 5],
        "qty_reserved": [2, 0, 5],
    })
