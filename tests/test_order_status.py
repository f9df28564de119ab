"""Tests for OrderStatus guards and the transition table."""
import pytest

from order_lifecycle.domain.exceptions import InvalidStatusError
from order_lifecycle.domain.models import ORDER_TRANSITIONS, TERMINAL_ORDER_STATUSES, OrderStatus


class TestTransitionTable:
    def test_every_status_has_an_entry(self):
        assert set(ORDER_TRANSITIONS) == set(OrderStatus)

    def test_targets_are_known_statuses(self):
        for targets in ORDER_TRANSITIONS.values():
            assert targets <= set(OrderStatus)

    def test_refunded_and_canceled_have_no_exits(self):
        assert ORDER_TRANSITIONS[OrderStatus.REFUNDED] == frozenset()
        assert ORDER_TRANSITIONS[OrderStatus.CANCELED] == frozenset()

    def test_completed_only_reopens_for_return(self):
        assert OrderStatus.COMPLETED.allowed_transitions() == frozenset({OrderStatus.VALIDATION_PENDING})

    def test_pending_cannot_skip_to_shipped(self):
        assert not OrderStatus.PENDING.can_transition_to(OrderStatus.SHIPPED)
        assert OrderStatus.PENDING.can_transition_to(OrderStatus.PAID)

    def test_terminal_statuses(self):
        assert TERMINAL_ORDER_STATUSES == {OrderStatus.COMPLETED, OrderStatus.REFUNDED, OrderStatus.CANCELED}
        assert all(status.is_terminal() for status in TERMINAL_ORDER_STATUSES)
        assert not OrderStatus.DELIVERED.is_terminal()


class TestGuards:
    @pytest.mark.parametrize("status", list(OrderStatus))
    def test_can_be_cancelled(self, status):
        assert status.can_be_cancelled() == (status in {OrderStatus.PENDING, OrderStatus.PAID})

    @pytest.mark.parametrize("status", list(OrderStatus))
    def test_can_be_shipped(self, status):
        assert status.can_be_shipped() == (status == OrderStatus.PAID)

    @pytest.mark.parametrize("status", list(OrderStatus))
    def test_can_be_refunded(self, status):
        expected = status in {OrderStatus.PAID, OrderStatus.SHIPPED, OrderStatus.DELIVERED}
        assert status.can_be_refunded() == expected

    @pytest.mark.parametrize("status", list(OrderStatus))
    def test_guards_agree_with_table(self, status):
        if status.can_be_cancelled():
            assert status.can_transition_to(OrderStatus.CANCELED)
        if status.can_be_refunded():
            assert status.can_transition_to(OrderStatus.REFUNDED)
        if status.can_request_return():
            assert status.can_transition_to(OrderStatus.VALIDATION_PENDING)
        if status.can_be_completed():
            assert status.can_transition_to(OrderStatus.COMPLETED)

    def test_only_delivered_opens_dispute(self):
        assert [s for s in OrderStatus if s.can_open_dispute()] == [OrderStatus.DELIVERED]


class TestParse:
    def test_parses_string(self):
        assert OrderStatus.parse("SHIPPED") is OrderStatus.SHIPPED

    def test_passes_through_enum(self):
        assert OrderStatus.parse(OrderStatus.PAID) is OrderStatus.PAID

    @pytest.mark.parametrize("value", ["shipped", "LOST", "", None])
    def test_rejects_unknown_value(self, value):
        with pytest.raises(InvalidStatusError):
            OrderStatus.parse(value)
