"""
Order Lifecycle Tracking Service.

Follows orders through the canonical lifecycle

    pending -> processing -> shipped -> delivered
    pending | processing -> cancelled

by re-polling the provider. The tracker never advances an order itself: every
recorded state is one the provider reported. Once an order is terminal, polling
is still allowed but the suggested interval tapers off.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from DropshipHub.schemas.dropship_schemas import OrderState, OrderStatus

logger = logging.getLogger(__name__)

MAX_HISTORY = 20

TERMINAL_STATES = frozenset({OrderState.DELIVERED, OrderState.CANCELLED})

_FORWARD_ORDER = [OrderState.PENDING, OrderState.PROCESSING, OrderState.SHIPPED, OrderState.DELIVERED]
_CANCELLABLE_FROM = frozenset({OrderState.PENDING, OrderState.PROCESSING})


def is_terminal(state: OrderState) -> bool:
    return state in TERMINAL_STATES


def is_valid_transition(current: OrderState, new: OrderState) -> bool:
    """Staying put and moving forward (skipping steps allowed) are valid."""
    if current == new:
        return True
    if new == OrderState.CANCELLED:
        return current in _CANCELLABLE_FROM
    if current in TERMINAL_STATES:
        return False
    return _FORWARD_ORDER.index(new) > _FORWARD_ORDER.index(current)


@dataclass
class TrackedOrder:
    """
    One tracked order. ``history`` keeps the snapshot at each state change,
    oldest first, capped at MAX_HISTORY entries; ``latest`` is the last poll.
    """
    order_id: str
    provider: str
    history: List[OrderStatus] = field(default_factory=list)
    latest: Optional[OrderStatus] = None
    polls: int = 0
    terminal_polls: int = 0
    last_polled_at: Optional[datetime] = None

    @property
    def current(self) -> Optional[OrderStatus]:
        return self.latest

    @property
    def state(self) -> Optional[OrderState]:
        return self.current.status if self.current else None

    @property
    def terminal(self) -> bool:
        return self.state is not None and is_terminal(self.state)


class OrderLifecycleTracker:
    """Polls order status through the dropshipping service and records transitions"""

    def __init__(
        self,
        service,
        base_interval: float = 60.0,
        max_interval: float = 3600.0,
        backoff_factor: float = 2.0,
        sleep=asyncio.sleep,
    ):
        self.service = service
        self.base_interval = base_interval
        self.max_interval = max_interval
        self.backoff_factor = backoff_factor
        self._sleep = sleep
        self._orders: Dict[Tuple[str, str], TrackedOrder] = {}

    def get_tracked(self, order_id: str, provider: str) -> Optional[TrackedOrder]:
        return self._orders.get((provider.lower(), order_id))

    def forget(self, order_id: str, provider: str) -> bool:
        """Stop tracking an order; False if it was not tracked"""
        return self._orders.pop((provider.lower(), order_id), None) is not None

    async def refresh(self, order_id: str, provider: str) -> OrderStatus:
        """
        Fetch the provider's current status and record it.

        An unexpected transition (e.g. delivered -> processing) is logged but
        still recorded, since the provider is authoritative.
        """
        status = await self.service.get_order_status(order_id, provider)

        key = (provider.lower(), order_id)
        tracked = self._orders.get(key)
        if tracked is None:
            tracked = self._orders[key] = TrackedOrder(order_id=order_id, provider=provider.lower())
        tracked.polls += 1
        tracked.last_polled_at = datetime.now(timezone.utc)

        previous = tracked.state
        if previous is None:
            tracked.history.append(status)
        elif status.status != previous:
            if is_valid_transition(previous, status.status):
                logger.info(f"Order {order_id} ({provider}) moved {previous.value} -> {status.status.value}")
            else:
                logger.warning(
                    f"Order {order_id} ({provider}) reported unexpected transition "
                    f"{previous.value} -> {status.status.value}"
                )
            tracked.history.append(status)
            del tracked.history[:-MAX_HISTORY]
        tracked.latest = status
        tracked.terminal_polls = tracked.terminal_polls + 1 if is_terminal(status.status) else 0
        return status

    def next_poll_interval(self, order_id: str, provider: str) -> float:
        """Base interval while the order is live; grows with each poll once terminal"""
        tracked = self.get_tracked(order_id, provider)
        if tracked is None or not tracked.terminal:
            return self.base_interval

        interval = self.base_interval * (self.backoff_factor ** tracked.terminal_polls)
        return min(interval, self.max_interval)

    async def poll_until_terminal(self, order_id: str, provider: str, max_polls: int = 100) -> OrderStatus:
        """
        Poll until the order is delivered or cancelled, or max_polls is reached.

        Returns the last snapshot either way; provider errors propagate.
        """
        status = await self.refresh(order_id, provider)
        polls = 1
        while not is_terminal(status.status) and polls < max_polls:
            await self._sleep(self.next_poll_interval(order_id, provider))
            status = await self.refresh(order_id, provider)
            polls += 1

        if not is_terminal(status.status):
            logger.warning(f"Order {order_id} ({provider}) still {status.status.value} after {polls} polls")
        return status
