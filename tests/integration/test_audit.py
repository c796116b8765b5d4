"""
Integration Tests - Database Audit and Provisioning
"""
import pytest

from storefront.database.connection import check_database_health, close_database, get_db, init_database
from storefront.database.errors import NotNullViolation
from storefront.database.models import OrderCoupon, User
from storefront.database.repositories import (
    AddressRepository,
    CountryRepository,
    CouponRepository,
    InventoryRepository,
    OrderCouponRepository,
    OrderRepository,
    UserRepository,
)
from storefront.database.seed import seed_lookup_data
from storefront.main import provision, teardown
from storefront.quality.validators import ValidationStatus, audit_database, load_frame


class TestAuditDatabase:
    """Tests for audit_database"""

    async def test_consistent_store_passes(self, store, test_db):
        """Test every audit passes on consistent data"""
        results = await audit_database(test_db)

        assert set(results) == {
            "orders",
            "order_items",
            "addresses",
            "inventory",
            "product_reviews",
            "coupon_usage",
        }
        assert all(r.status == ValidationStatus.PASSED for r in results.values())
        # No reviews or coupons yet
        assert results["product_reviews"].total_checks == 0

    async def test_broken_order_total_fails(self, store, test_db):
        """Test grand total that does not add up is reported"""
        await OrderRepository(test_db).update(store.order_id, grand_total_cents=1)

        results = await audit_database(test_db)

        assert results["orders"].status == ValidationStatus.FAILED
        assert not results["orders"].check("grand_total_arithmetic").passed

    async def test_two_default_addresses_fail(self, store, test_db, make_address):
        """Test second default billing address is reported"""
        await AddressRepository(test_db).add(
            make_address(store.user_id, store.country_id, label="Office", is_default_billing=True)
        )

        results = await audit_database(test_db)

        check = results["addresses"].check("max_1_is_default_billing_per_user_id")
        assert not check.passed
        assert check.details["offending_groups"] == [store.user_id]

    async def test_over_reservation_is_a_warning(self, store, test_db):
        """Test reserved above on-hand yields a partial result"""
        await InventoryRepository(test_db).adjust(store.product_id, store.warehouse_id, reserved_delta=20)

        results = await audit_database(test_db)

        assert results["inventory"].status == ValidationStatus.PARTIAL
        assert results["inventory"].warning_count == 1

    async def test_coupon_over_redemption_fails(self, store, test_db, make_coupon):
        """Test usage above max_uses is reported"""
        coupon = await CouponRepository(test_db).add(make_coupon("ZERO", max_uses=0))
        await OrderCouponRepository(test_db).add(OrderCoupon(order_id=store.order_id, coupon_id=coupon.coupon_id))

        results = await audit_database(test_db)

        assert results["coupon_usage"].status == ValidationStatus.FAILED
        assert not results["coupon_usage"].check("coupon_max_uses").passed
        assert results["coupon_usage"].check("coupon_per_user_limit").passed

    async def test_load_frame(self, test_db):
        """Test query results become a DataFrame with named columns"""
        from sqlalchemy import select
        from storefront.database.models import Country

        df = await load_frame(test_db, select(Country.iso_code, Country.name).order_by(Country.iso_code))

        assert df.columns == ["iso_code", "name"]
        assert df["iso_code"].to_list() == ["CA", "GB", "US"]


class TestSeeding:
    """Tests for lookup seeding"""

    async def test_seed_is_idempotent(self, session):
        """Test a second seed inserts nothing and keeps row counts"""
        first = await seed_lookup_data(session)
        await session.commit()
        second = await seed_lookup_data(session)
        await session.commit()

        assert first == {
            "countries": 3,
            "currencies": 3,
            "payment_methods": 3,
            "order_statuses": 7,
            "shipment_statuses": 5,
        }
        assert sum(second.values()) == 0
        assert await CountryRepository(session).count() == 3


class TestProvisioning:
    """Tests for database lifecycle entry points"""

    @pytest.fixture
    def database_url(self, tmp_path) -> str:
        return f"sqlite+aiosqlite:///{tmp_path / 'provisioned.db'}"

    async def test_provision_creates_and_seeds(self, database_url):
        """Test provisioning twice is safe"""
        first = await provision(url=database_url, seed=True)
        second = await provision(url=database_url, seed=True)

        assert first["order_statuses"] == 7
        assert sum(second.values()) == 0

    async def test_get_db_translates_commit_errors(self, database_url):
        """Test integrity errors raised on commit surface as constraint violations"""
        await provision(url=database_url, seed=False)
        await init_database(database_url)
        try:
            with pytest.raises(NotNullViolation):
                async with get_db() as db:
                    db.add(User(email="late@example.com"))

            async with get_db() as db:
                assert await UserRepository(db).count() == 0

            health = await check_database_health()
            assert health["status"] == "healthy"
            assert health["dialect"] == "sqlite"
        finally:
            await close_database()

    async def test_teardown_and_rebuild(self, database_url):
        """Test dropping the schema and provisioning over an existing one"""
        from sqlalchemy import inspect

        from storefront.database.connection import create_engine

        await provision(url=database_url, seed=True)
        await teardown(url=database_url)

        engine = create_engine(database_url)
        async with engine.connect() as conn:
            tables = await conn.run_sync(lambda sync_conn: inspect(sync_conn).get_table_names())
        await engine.dispose()
        assert tables == []

        counts = await provision(url=database_url, drop_existing=True, seed=True)
        assert counts["currencies"] == 3
