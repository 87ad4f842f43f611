"""In-process event bus.

Delivers domain events to the handlers subscribed at publish time, in
subscription order, before ``publish`` returns. A handler that raises is
logged and skipped; the remaining handlers still run.
"""

import inspect
from collections import defaultdict
from collections.abc import Awaitable, Callable, Iterable

import structlog

from bookmarket.domain.base import DomainEvent

logger = structlog.get_logger()

EventHandler = Callable[[DomainEvent], Awaitable[None] | None]
Unsubscribe = Callable[[], None]


class EventBus:
    """Synchronous in-process publish/subscribe for domain events.

    Handlers may be plain functions or coroutine functions.

    Example:
        bus = EventBus()
        unsubscribe = bus.subscribe("order.created", handle_order_created)
        await bus.publish(order.collect_events())
        unsubscribe()
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[EventHandler]] = defaultdict(list)
        self._all_handlers: list[EventHandler] = []

    def subscribe(self, event_type: str, handler: EventHandler) -> Unsubscribe:
        """Register a handler for one event type.

        Args:
            event_type: Event type string (e.g., 'listing.held').
            handler: Callable receiving the event.

        Returns:
            Function removing this subscription.
        """
        self._handlers[event_type].append(handler)

        def unsubscribe() -> None:
            handlers = self._handlers.get(event_type, [])
            if handler in handlers:
                handlers.remove(handler)

        return unsubscribe

    def subscribe_all(self, handler: EventHandler) -> Unsubscribe:
        """Register a handler receiving every event."""
        self._all_handlers.append(handler)

        def unsubscribe() -> None:
            if handler in self._all_handlers:
                self._all_handlers.remove(handler)

        return unsubscribe

    def handler_count(self, event_type: str | None = None) -> int:
        """Count subscriptions, for one type or in total."""
        if event_type is not None:
            return len(self._handlers.get(event_type, [])) + len(self._all_handlers)
        return sum(len(h) for h in self._handlers.values()) + len(self._all_handlers)

    def clear(self) -> None:
        """Remove every subscription."""
        self._handlers.clear()
        self._all_handlers.clear()

    async def publish(self, events: DomainEvent | Iterable[DomainEvent]) -> None:
        """Deliver events to their current subscribers.

        Args:
            events: One event or several, delivered in order.
        """
        if isinstance(events, DomainEvent):
            events = [events]
        for event in events:
            await self._dispatch(event)

    async def _dispatch(self, event: DomainEvent) -> None:
        handlers = list(self._handlers.get(event.event_type, [])) + list(self._all_handlers)
        logger.debug(
            "Publishing event",
            event_type=event.event_type,
            aggregate_id=event.aggregate_id,
            handler_count=len(handlers),
        )
        for handler in handlers:
            try:
                result = handler(event)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception(
                    "Event handler failed",
                    event_type=event.event_type,
                    event_id=str(event.event_id),
                    handler=getattr(handler, "__qualname__", repr(handler)),
                )
