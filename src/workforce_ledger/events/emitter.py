"""Post-commit publisher for ledger events.

The gateway hands every event collected during a transaction to the
emitter once the transaction has committed. Subscribers are notified in
registration order. A subscriber that raises is logged and reported back
to the caller; the remaining subscribers still run and the ledger change
stays committed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Iterable, Union

from workforce_ledger.events.types import DomainEvent, EventCategory

logger = logging.getLogger(__name__)

EventHandler = Callable[[DomainEvent], None]
AsyncEventHandler = Callable[[DomainEvent], Awaitable[None]]
AnyHandler = Union[EventHandler, AsyncEventHandler]

EventTypes = Union[type[DomainEvent], list[type[DomainEvent]]]
Categories = Union[EventCategory, list[EventCategory]]


@dataclass
class Subscription:
    handler: AnyHandler
    is_async: bool
    # Empty means no filter
    event_types: frozenset[str] = frozenset()
    categories: frozenset[EventCategory] = frozenset()

    def wants(self, event: DomainEvent) -> bool:
        if self.event_types and event.event_type not in self.event_types:
            return False
        return not self.categories or event.category in self.categories


def _as_list(value):
    return value if isinstance(value, list) else [value]


class AsyncEventEmitter:
    """Routes ledger events to subscribers by event type or category.

    Usage:
        emitter = AsyncEventEmitter()

        async def notify_approver(event: LeaveRequested) -> None:
            await queue.put(event.to_dict())

        emitter.on(LeaveRequested, notify_approver)
        gateway = LedgerGateway(session_factory, emitter=emitter)
    """

    def __init__(self) -> None:
        self._subscriptions: list[Subscription] = []

    def _subscribe(
        self,
        handler: AnyHandler,
        is_async: bool,
        event_types: EventTypes | None = None,
        categories: Categories | None = None,
    ) -> None:
        names = frozenset(t.__name__ for t in _as_list(event_types)) if event_types else frozenset()
        cats = frozenset(_as_list(categories)) if categories else frozenset()
        self._subscriptions.append(Subscription(handler, is_async, names, cats))

    def on(self, event_type: EventTypes, handler: AsyncEventHandler) -> None:
        """Subscribe a coroutine to one or more event classes."""
        self._subscribe(handler, True, event_types=event_type)

    def on_sync(self, event_type: EventTypes, handler: EventHandler) -> None:
        """Subscribe a plain function to one or more event classes."""
        self._subscribe(handler, False, event_types=event_type)

    def on_category(self, category: Categories, handler: AsyncEventHandler) -> None:
        self._subscribe(handler, True, categories=category)

    def on_all(self, handler: AsyncEventHandler) -> None:
        self._subscribe(handler, True)

    def off(self, handler: AnyHandler) -> None:
        """Drop every subscription of a handler."""
        self._subscriptions = [s for s in self._subscriptions if s.handler is not handler]

    async def emit(self, event: DomainEvent) -> list[Exception]:
        """Deliver one event and return the exceptions subscribers raised."""
        errors: list[Exception] = []
        for subscription in list(self._subscriptions):
            if not subscription.wants(event):
                continue
            try:
                if subscription.is_async:
                    await subscription.handler(event)
                else:
                    subscription.handler(event)
            except Exception as exc:
                logger.exception(
                    "Subscriber %r failed on %s %s",
                    subscription.handler,
                    event.event_type,
                    event.metadata.event_id,
                )
                errors.append(exc)
        return errors

    async def emit_all(self, events: Iterable[DomainEvent]) -> list[Exception]:
        """Deliver events in the order they were recorded."""
        errors: list[Exception] = []
        for event in events:
            errors.extend(await self.emit(event))
        return errors
