# chatrelay/tests/unit/test_event_dispatcher.py
import pytest

from chatrelay.domain.events import Envelope, EnvelopeDispatched, Event
from chatrelay.infrastructure.event_dispatcher import EventDispatcher


class _Other(Event):
    pass


@pytest.mark.asyncio
async def test_event_dispatcher_runs_handlers_in_order():
    dispatcher = EventDispatcher()
    calls = []

    async def first(event):
        calls.append(("first", event))

    async def second(event):
        calls.append(("second", event))

    async def unrelated(event):
        calls.append(("unrelated", event))

    dispatcher.register(EnvelopeDispatched, first)
    dispatcher.register(EnvelopeDispatched, second)
    dispatcher.register(_Other, unrelated)

    event = EnvelopeDispatched(
        channel="room:1", envelope=Envelope(event="messageReceived"), delivered=2
    )
    await dispatcher.dispatch(event)

    assert calls == [("first", event), ("second", event)]


@pytest.mark.asyncio
async def test_event_without_handlers_is_ignored():
    await EventDispatcher().dispatch(_Other())
