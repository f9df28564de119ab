"""Tests for the Order aggregate: creation and state transitions."""
import re
from datetime import timedelta

import pytest

from order_lifecycle.domain.exceptions import InvalidTransitionError, ValidationError
from order_lifecycle.domain.models import Order, OrderItem, OrderStatus, ShippingAddress

from tests.conftest import NOW, make_order

ADDRESS = ShippingAddress(street="ул. Ленина, 1", city="Москва", postal_code="101000", country="RU")


def _item(**overrides):
    data = dict(id="i1", product_id="p1", name="Кружка", unit_price=700, quantity=3)
    data.update(overrides)
    return OrderItem(**data)


class TestOrderCreation:
    def test_create_computes_total(self):
        order = make_order()
        assert order.total_amount == 1500 * 2 + 4000
        assert order.status == OrderStatus.PENDING
        assert order.version == 1

    def test_order_number_format(self):
        order = make_order()
        assert re.fullmatch(r"ORD-260310-[0-9A-F]{6}", order.order_number)

    def test_item_subtotal(self):
        assert _item().subtotal == 2100

    def test_empty_items_rejected(self):
        with pytest.raises(ValidationError):
            Order.create("c", "Имя", "a@b.c", "cr", [], ADDRESS, NOW)

    def test_zero_quantity_rejected(self):
        with pytest.raises(ValidationError):
            Order.create("c", "Имя", "a@b.c", "cr", [_item(quantity=0)], ADDRESS, NOW)

    def test_negative_price_rejected(self):
        with pytest.raises(ValidationError):
            Order.create("c", "Имя", "a@b.c", "cr", [_item(unit_price=-1)], ADDRESS, NOW)


class TestOrderTransitions:
    def test_happy_path_to_delivered(self):
        order = make_order()
        order.mark_as_paid("pay_1", NOW)
        order.ship("TRACK-1", "DHL", NOW + timedelta(hours=1))
        order.mark_as_delivered(NOW + timedelta(days=2))

        assert order.status == OrderStatus.DELIVERED
        assert order.payment_reference == "pay_1"
        assert order.tracking_number == "TRACK-1"
        assert order.shipped_at == NOW + timedelta(hours=1)
        assert order.delivered_at == NOW + timedelta(days=2)

    def test_ship_trims_and_requires_tracking(self):
        order = make_order(OrderStatus.PAID)
        with pytest.raises(ValidationError):
            order.ship("   ", "DHL", NOW)
        with pytest.raises(ValidationError):
            order.ship("T1", "", NOW)
        assert order.status == OrderStatus.PAID

        order.ship("  T1 ", " DHL ", NOW)
        assert order.tracking_number == "T1"
        assert order.carrier == "DHL"

    def test_ship_pending_order_fails(self):
        order = make_order(OrderStatus.PENDING)
        with pytest.raises(InvalidTransitionError) as exc:
            order.ship("T1", "DHL", NOW)
        assert exc.value.operation == "ship"
        assert exc.value.current_status == OrderStatus.PENDING

    def test_cancel_requires_reason(self):
        order = make_order(OrderStatus.PAID)
        with pytest.raises(ValidationError):
            order.cancel(" ", NOW)

    def test_cancel_is_irreversible(self):
        order = make_order(OrderStatus.PAID)
        order.cancel("Передумал", NOW)
        assert order.status == OrderStatus.CANCELED
        assert order.cancellation_reason == "Передумал"
        with pytest.raises(InvalidTransitionError):
            order.cancel("Еще раз", NOW)
        with pytest.raises(InvalidTransitionError):
            order.mark_as_paid("pay_2", NOW)

    def test_double_refund_fails(self):
        order = make_order(OrderStatus.SHIPPED)
        order.refund("re_1", NOW)
        assert order.status == OrderStatus.REFUNDED
        with pytest.raises(InvalidTransitionError):
            order.refund("re_2", NOW)
        assert order.refund_reference == "re_1"

    def test_transition_updates_timestamp(self):
        order = make_order(OrderStatus.PAID)
        later = NOW + timedelta(minutes=5)
        order.cancel("Нет в наличии", later)
        assert order.updated_at == later

    def test_return_request_from_completed_remembers_status(self):
        order = make_order(OrderStatus.COMPLETED)
        previous = order.request_return(NOW)
        assert previous == OrderStatus.COMPLETED
        assert order.status == OrderStatus.VALIDATION_PENDING

        order.resume_after_return_rejection(previous, NOW)
        assert order.status == OrderStatus.COMPLETED

    def test_completed_is_closed_to_other_operations(self):
        order = make_order(OrderStatus.COMPLETED)
        with pytest.raises(InvalidTransitionError):
            order.refund("re_1", NOW)
        with pytest.raises(InvalidTransitionError):
            order.open_dispute(NOW)

    def test_return_chain(self):
        order = make_order(OrderStatus.DELIVERED, delivered_at=NOW)
        order.request_return(NOW)
        order.mark_return_shipped(NOW)
        order.mark_return_received(NOW)
        order.refund_return("re_9", NOW)
        assert order.status == OrderStatus.REFUNDED
        assert order.refund_reference == "re_9"

    def test_return_received_requires_shipped(self):
        order = make_order(OrderStatus.VALIDATION_PENDING)
        with pytest.raises(InvalidTransitionError):
            order.mark_return_received(NOW)

    def test_dispute_close_returns_to_delivered(self):
        order = make_order(OrderStatus.DELIVERED, delivered_at=NOW)
        order.open_dispute(NOW)
        assert order.status == OrderStatus.DISPUTE_OPENED
        order.close_dispute(NOW)
        assert order.status == OrderStatus.DELIVERED

    def test_complete_sets_completed_at(self):
        order = make_order(OrderStatus.DELIVERED, delivered_at=NOW)
        order.complete(NOW + timedelta(days=3))
        assert order.status == OrderStatus.COMPLETED
        assert order.completed_at == NOW + timedelta(days=3)
