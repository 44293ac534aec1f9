# chatrelay/tests/support.py
import asyncio
from typing import Any, Optional

from fastapi import WebSocketDisconnect
from httpx import AsyncClient

TEST_PASSWORD = "testpassword"


class FakeTransport:
    """Stands in for a WebSocket on the sending side."""

    def __init__(self, delay: float = 0, fail: Optional[Exception] = None):
        self.delay = delay
        self.fail = fail
        self.sent: list[dict[str, Any]] = []
        self.closed_with: Optional[int] = None

    async def send_json(self, data: Any) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail is not None:
            raise self.fail
        self.sent.append(data)

    async def close(self, code: int = 1000) -> None:
        self.closed_with = code

    def events(self, name: str) -> list[dict[str, Any]]:
        return [frame for frame in self.sent if frame["event"] == name]


class FakeWebSocket(FakeTransport):
    """FakeTransport that also replays a fixed list of inbound frames."""

    def __init__(self, frames: list[Any], app: Any = None):
        super().__init__()
        self.frames = list(frames)
        self.app = app
        self.accepted = False

    async def accept(self) -> None:
        self.accepted = True

    async def receive_json(self) -> Any:
        if not self.frames:
            raise WebSocketDisconnect(code=1000)
        frame = self.frames.pop(0)
        if isinstance(frame, Exception):
            raise frame
        return frame


async def login(client: AsyncClient, username: str) -> dict[str, str]:
    response = await client.post(
        "/api/v1/auth/login",
        data={"username": username, "password": TEST_PASSWORD},
    )
    assert response.status_code == 200, f"Login failed: {response.json()}"
    return {"Authorization": f"Bearer {response.json()['access_token']}"}
