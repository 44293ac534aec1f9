# chatrelay/infrastructure/event_handlers.py
from chatrelay.domain.events import EnvelopeDispatched
from chatrelay.infrastructure.redis_client import RedisClient


class EventHandlers:
    """Mirrors dispatched envelopes onto redis for out-of-process subscribers.

    Channels follow the audience of the event: ``room:{id}`` for room traffic
    and membership changes, ``user:{id}`` for direct messages.
    """

    def __init__(self, redis_client: RedisClient):
        self.redis_client = redis_client

    async def publish_envelope(self, event: EnvelopeDispatched) -> None:
        message_data = event.envelope.to_wire()
        message_data["delivered"] = event.delivered
        await self.redis_client.publish_json(event.channel, message_data)
