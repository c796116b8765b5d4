"""
Unit Tests - DDL Rendering
"""
import pytest

from storefront.database.ddl import SUPPORTED_DIALECTS, render_ddl
from storefront.database.models import Base


class TestRenderDdl:
    """Tests for render_ddl"""

    def test_postgresql_schema(self):
        """Test tables, named constraints and indexes are rendered"""
        ddl = render_ddl("postgresql")

        for table in Base.metadata.tables:
            assert f"CREATE TABLE {table} (" in ddl
        assert "CONSTRAINT ck_coupons_value CHECK" in ddl
        assert "CONSTRAINT fk_orders_user FOREIGN KEY(user_id) REFERENCES users (user_id) ON UPDATE CASCADE" in ddl
        assert "ON DELETE SET NULL" in ddl
        assert "CREATE INDEX idx_orders_status ON orders (status_code)" in ddl
        assert "JSONB" in ddl

    def test_referenced_tables_come_first(self):
        """Test dependency order of CREATE TABLE statements"""
        ddl = render_ddl("postgresql")

        assert ddl.index("CREATE TABLE currencies (") < ddl.index("CREATE TABLE products (")
        assert ddl.index("CREATE TABLE orders (") < ddl.index("CREATE TABLE order_items (")

    @pytest.mark.parametrize("dialect", SUPPORTED_DIALECTS)
    def test_every_dialect_renders(self, dialect):
        """Test each supported dialect compiles the whole schema"""
        ddl = render_ddl(dialect)

        assert ddl.count("CREATE TABLE") == len(Base.metadata.tables)

    def test_unsupported_dialect(self):
        """Test unknown dialects are refused"""
        with pytest.raises(ValueError):
            render_ddl("oracle")
