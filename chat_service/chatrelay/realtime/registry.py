# chatrelay/realtime/registry.py
import logging

from chatrelay.realtime.connection import Connection


class ConnectionRegistry:
    """Live connections per user, for this server process only.

    None of the methods await, so each one runs to completion on the event
    loop without interleaving with another coroutine.
    """

    def __init__(self, logger: logging.Logger):
        self.logger = logger
        self._by_user: dict[int, dict[str, Connection]] = {}
        self._by_id: dict[str, Connection] = {}

    def __len__(self) -> int:
        return len(self._by_id)

    def register(self, user_id: int, connection: Connection) -> str:
        existing = self._by_id.get(connection.connection_id)
        if existing is connection and existing.user_id == user_id:
            return connection.connection_id
        if existing is not None:
            self.unregister(connection.connection_id)

        connection.user_id = user_id
        self._by_id[connection.connection_id] = connection
        self._by_user.setdefault(user_id, {})[connection.connection_id] = connection
        self.logger.info(
            f"Registered connection {connection.connection_id} for user {user_id}"
        )
        return connection.connection_id

    def unregister(self, connection_id: str) -> None:
        connection = self._by_id.pop(connection_id, None)
        if connection is None:
            return
        user_connections = self._by_user.get(connection.user_id)
        if user_connections is not None:
            user_connections.pop(connection_id, None)
            if not user_connections:
                del self._by_user[connection.user_id]
        self.logger.info(
            f"Unregistered connection {connection_id} for user {connection.user_id}"
        )

    def get(self, connection_id: str) -> Connection | None:
        return self._by_id.get(connection_id)

    def connections_for(self, user_id: int) -> frozenset[Connection]:
        return frozenset(self._by_user.get(user_id, {}).values())

    def clear(self) -> list[Connection]:
        """Drop every connection and return them so the caller can close them."""
        connections = list(self._by_id.values())
        self._by_id.clear()
        self._by_user.clear()
        return connections
