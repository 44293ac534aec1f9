# chatrelay/infrastructure/event_dispatcher.py
from collections import defaultdict
from collections.abc import Awaitable, Callable

from chatrelay.domain.events import Event

EventHandler = Callable[[Event], Awaitable[None]]


class EventDispatcher:
    """In-process domain event bus; handlers run in registration order."""

    def __init__(self) -> None:
        self.handlers: dict[type[Event], list[EventHandler]] = defaultdict(list)

    def register(self, event_type: type[Event], handler: EventHandler) -> None:
        self.handlers[event_type].append(handler)

    async def dispatch(self, event: Event) -> None:
        for handler in self.handlers[type(event)]:
            await handler(event)
