# chatrelay/realtime/delivery.py
import asyncio
import logging
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum

from chatrelay.domain.events import Envelope
from chatrelay.realtime.connection import Connection
from chatrelay.realtime.registry import ConnectionRegistry


class DeliveryStatus(str, Enum):
    DELIVERED = "delivered"
    DUPLICATE = "duplicate"
    TIMED_OUT = "timed_out"
    FAILED = "failed"


@dataclass(frozen=True)
class DeliveryOutcome:
    connection_id: str
    user_id: int
    status: DeliveryStatus
    error: str | None = None

    @property
    def delivered(self) -> bool:
        return self.status == DeliveryStatus.DELIVERED


class DeliveryEngine:
    """Pushes one envelope to many connections, each push on its own.

    A slow or broken connection only affects its own outcome. Pushes that
    raise are logged and their connection is dropped from the registry; a
    timeout is logged and left for the socket's own disconnect handling.
    Nothing is retried.
    """

    def __init__(
        self,
        registry: ConnectionRegistry,
        logger: logging.Logger,
        timeout_seconds: float = 5.0,
    ):
        self.registry = registry
        self.logger = logger
        self.timeout_seconds = timeout_seconds

    async def dispatch(
        self, targets: Iterable[Connection], envelope: Envelope
    ) -> list[DeliveryOutcome]:
        targets = list(targets)
        if not targets:
            return []
        outcomes = await asyncio.gather(
            *(self._push(connection, envelope) for connection in targets)
        )
        delivered = sum(1 for outcome in outcomes if outcome.delivered)
        self.logger.debug(
            f"Event {envelope.event_id} ({envelope.event}) delivered to "
            f"{delivered}/{len(outcomes)} connections"
        )
        return list(outcomes)

    async def _push(self, connection: Connection, envelope: Envelope) -> DeliveryOutcome:
        try:
            sent = await asyncio.wait_for(
                connection.send(envelope), timeout=self.timeout_seconds
            )
        except asyncio.TimeoutError:
            self.logger.warning(
                f"Timed out delivering event {envelope.event_id} "
                f"to connection {connection.connection_id}"
            )
            return DeliveryOutcome(
                connection.connection_id,
                connection.user_id,
                DeliveryStatus.TIMED_OUT,
                "timeout",
            )
        except Exception as e:
            self.logger.error(
                f"Failed to deliver event {envelope.event_id} "
                f"to connection {connection.connection_id}: {e!s}"
            )
            self.registry.unregister(connection.connection_id)
            return DeliveryOutcome(
                connection.connection_id,
                connection.user_id,
                DeliveryStatus.FAILED,
                str(e),
            )
        status = DeliveryStatus.DELIVERED if sent else DeliveryStatus.DUPLICATE
        return DeliveryOutcome(connection.connection_id, connection.user_id, status)
