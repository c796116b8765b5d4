"""
Unit Tests - Business Rules
"""
import pytest

from storefront.database.errors import ConstraintViolation
from storefront.database.models import Order, OrderItem, OrderStatusCode, ShipmentStatusCode
from storefront.quality.rules import (
    ORDER_STATUS_TRANSITIONS,
    BusinessRuleViolation,
    ensure_line_total,
    ensure_order_totals,
    validate_order_status_transition,
    validate_shipment_status_transition,
)


class TestTotals:
    """Tests for order and line arithmetic"""

    def test_matching_grand_total(self):
        """Test subtotal + shipping + tax - discount"""
        order = Order(
            subtotal_cents=10000,
            shipping_cents=500,
            tax_cents=800,
            discount_cents=1000,
            grand_total_cents=10300,
        )

        ensure_order_totals(order)

    def test_mismatched_grand_total(self):
        """Test wrong grand total is rejected"""
        order = Order(
            subtotal_cents=10000,
            shipping_cents=500,
            tax_cents=800,
            discount_cents=0,
            grand_total_cents=10300,
        )

        with pytest.raises(BusinessRuleViolation) as exc_info:
            ensure_order_totals(order)

        assert exc_info.value.rule == "order_total"

    def test_unset_amounts_count_as_zero(self):
        """Test columns left to their defaults"""
        ensure_order_totals(Order(subtotal_cents=2500, grand_total_cents=2500))

    def test_line_total(self):
        """Test unit price x quantity"""
        ensure_line_total(OrderItem(unit_price_cents=2999, quantity=2, line_total_cents=5998))

        with pytest.raises(BusinessRuleViolation):
            ensure_line_total(OrderItem(unit_price_cents=2999, quantity=2, line_total_cents=2999))

    def test_rule_violation_is_not_a_constraint_violation(self):
        """Test hooks never masquerade as storage errors"""
        assert not issubclass(BusinessRuleViolation, ConstraintViolation)


class TestOrderTransitions:
    """Tests for validate_order_status_transition"""

    @pytest.mark.parametrize(
        "current,new",
        [
            (OrderStatusCode.PENDING, OrderStatusCode.PAID),
            (OrderStatusCode.PAID, OrderStatusCode.PROCESSING),
            (OrderStatusCode.PROCESSING, OrderStatusCode.SHIPPED),
            (OrderStatusCode.SHIPPED, OrderStatusCode.DELIVERED),
            (OrderStatusCode.DELIVERED, OrderStatusCode.REFUNDED),
            (OrderStatusCode.PENDING, OrderStatusCode.CANCELLED),
        ],
    )
    def test_allowed(self, current, new):
        """Test forward transitions"""
        validate_order_status_transition(current, new)

    @pytest.mark.parametrize(
        "current,new",
        [
            (OrderStatusCode.PENDING, OrderStatusCode.SHIPPED),
            (OrderStatusCode.DELIVERED, OrderStatusCode.PENDING),
            (OrderStatusCode.CANCELLED, OrderStatusCode.PAID),
            (OrderStatusCode.REFUNDED, OrderStatusCode.DELIVERED),
        ],
    )
    def test_rejected(self, current, new):
        """Test skipped or backward transitions"""
        with pytest.raises(BusinessRuleViolation) as exc_info:
            validate_order_status_transition(current, new)

        assert exc_info.value.rule == "order_status_transition"

    def test_same_status_is_allowed(self):
        """Test re-writing the current status"""
        validate_order_status_transition(3, 3)

    def test_unknown_code(self):
        """Test codes outside the seeded set"""
        with pytest.raises(BusinessRuleViolation):
            validate_order_status_transition(1, 99)

    def test_every_status_has_an_entry(self):
        """Test the transition table covers all codes"""
        assert set(ORDER_STATUS_TRANSITIONS) == set(OrderStatusCode)


class TestShipmentTransitions:
    """Tests for validate_shipment_status_transition"""

    def test_exception_can_resume(self):
        """Test a shipment recovers from an exception"""
        validate_shipment_status_transition(ShipmentStatusCode.EXCEPTION, ShipmentStatusCode.IN_TRANSIT)

    def test_delivered_is_terminal(self):
        """Test nothing follows delivery"""
        with pytest.raises(BusinessRuleViolation):
            validate_shipment_status_transition(ShipmentStatusCode.DELIVERED, ShipmentStatusCode.IN_TRANSIT)
