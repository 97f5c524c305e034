"""
Unit tests for the order lifecycle tracker
"""

from unittest.mock import AsyncMock, Mock

import pytest

from DropshipHub.exceptions import ProviderNotFoundError
from DropshipHub.schemas.dropship_schemas import OrderState, OrderStatus
from DropshipHub.services.order_tracking_service import (
    MAX_HISTORY,
    OrderLifecycleTracker,
    is_terminal,
    is_valid_transition,
)
from DropshipHub.tests.fakes import FakeClock


def snapshot(state: OrderState) -> OrderStatus:
    return OrderStatus(order_id="order-1", status=state)


class TestTransitions:
    @pytest.mark.parametrize("current, new", [
        (OrderState.PENDING, OrderState.PROCESSING),
        (OrderState.PROCESSING, OrderState.SHIPPED),
        (OrderState.SHIPPED, OrderState.DELIVERED),
        (OrderState.PENDING, OrderState.SHIPPED),
        (OrderState.PENDING, OrderState.CANCELLED),
        (OrderState.PROCESSING, OrderState.CANCELLED),
        (OrderState.DELIVERED, OrderState.DELIVERED),
    ])
    def test_valid(self, current, new):
        assert is_valid_transition(current, new)

    @pytest.mark.parametrize("current, new", [
        (OrderState.SHIPPED, OrderState.CANCELLED),
        (OrderState.DELIVERED, OrderState.CANCELLED),
        (OrderState.SHIPPED, OrderState.PROCESSING),
        (OrderState.DELIVERED, OrderState.SHIPPED),
        (OrderState.CANCELLED, OrderState.PENDING),
    ])
    def test_invalid(self, current, new):
        assert not is_valid_transition(current, new)

    def test_terminal_states(self):
        assert is_terminal(OrderState.DELIVERED)
        assert is_terminal(OrderState.CANCELLED)
        assert not is_terminal(OrderState.SHIPPED)


class TestOrderLifecycleTracker:
    def setup_method(self):
        self.clock = FakeClock()
        self.service = Mock()
        self.service.get_order_status = AsyncMock()
        self.tracker = OrderLifecycleTracker(
            self.service, base_interval=10, max_interval=100, backoff_factor=2, sleep=self.clock.sleep
        )

    @pytest.mark.asyncio
    async def test_refresh_records_provider_snapshot(self):
        self.service.get_order_status.return_value = snapshot(OrderState.PROCESSING)

        status = await self.tracker.refresh("order-1", "printful")

        assert status.status == OrderState.PROCESSING
        self.service.get_order_status.assert_awaited_once_with("order-1", "printful")
        tracked = self.tracker.get_tracked("order-1", "printful")
        assert tracked.state == OrderState.PROCESSING
        assert tracked.polls == 1

    @pytest.mark.asyncio
    async def test_unexpected_transition_still_recorded(self):
        self.service.get_order_status.side_effect = [snapshot(OrderState.SHIPPED), snapshot(OrderState.PROCESSING)]

        await self.tracker.refresh("order-1", "spocket")
        await self.tracker.refresh("order-1", "spocket")

        tracked = self.tracker.get_tracked("order-1", "spocket")
        assert [s.status for s in tracked.history] == [OrderState.SHIPPED, OrderState.PROCESSING]

    @pytest.mark.asyncio
    async def test_poll_until_terminal(self):
        self.service.get_order_status.side_effect = [
            snapshot(OrderState.PENDING),
            snapshot(OrderState.PROCESSING),
            snapshot(OrderState.SHIPPED),
            snapshot(OrderState.DELIVERED),
        ]

        status = await self.tracker.poll_until_terminal("order-1", "printful")

        assert status.status == OrderState.DELIVERED
        assert self.service.get_order_status.await_count == 4
        assert self.clock.sleeps == [10, 10, 10]

    @pytest.mark.asyncio
    async def test_poll_budget(self):
        self.service.get_order_status.return_value = snapshot(OrderState.PROCESSING)

        status = await self.tracker.poll_until_terminal("order-1", "printful", max_polls=3)

        assert status.status == OrderState.PROCESSING
        assert self.service.get_order_status.await_count == 3

    @pytest.mark.asyncio
    async def test_terminal_polls_taper(self):
        self.service.get_order_status.return_value = snapshot(OrderState.CANCELLED)

        intervals = []
        for _ in range(4):
            await self.tracker.refresh("order-1", "printful")
            intervals.append(self.tracker.next_poll_interval("order-1", "printful"))

        assert intervals == [20, 40, 80, 100]

    def test_untracked_order_uses_base_interval(self):
        assert self.tracker.next_poll_interval("unknown", "printful") == 10

    @pytest.mark.asyncio
    async def test_provider_errors_propagate(self):
        self.service.get_order_status.side_effect = ProviderNotFoundError("Order not found")
        with pytest.raises(ProviderNotFoundError):
            await self.tracker.poll_until_terminal("order-1", "printful")

    @pytest.mark.asyncio
    async def test_history_keeps_state_changes_only(self):
        self.service.get_order_status.return_value = snapshot(OrderState.PROCESSING)

        await self.tracker.poll_until_terminal("order-1", "printful", max_polls=50)

        tracked = self.tracker.get_tracked("order-1", "printful")
        assert tracked.polls == 50
        assert len(tracked.history) == 1
        assert tracked.current.status == OrderState.PROCESSING

    @pytest.mark.asyncio
    async def test_history_is_capped(self):
        flapping = [OrderState.PENDING, OrderState.PROCESSING] * MAX_HISTORY
        self.service.get_order_status.side_effect = [snapshot(state) for state in flapping]

        for _ in flapping:
            await self.tracker.refresh("order-1", "spocket")

        assert len(self.tracker.get_tracked("order-1", "spocket").history) == MAX_HISTORY

    @pytest.mark.asyncio
    async def test_forget(self):
        self.service.get_order_status.return_value = snapshot(OrderState.DELIVERED)
        await self.tracker.refresh("order-1", "Printful")

        assert self.tracker.forget("order-1", "printful") is True
        assert self.tracker.get_tracked("order-1", "printful") is None
        assert self.tracker.forget("order-1", "printful") is False
