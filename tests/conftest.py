"""Shared fixtures: in-memory scripts, a fast-timer registry and fake sockets."""
from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional, Type

import pytest
import pytest_asyncio

from tableread import performance
from tableread.registry import RoomRegistry
from tableread.schemas import Participant, Script

# Short enough to keep the suite quick, long enough to act before it fires.
FAST_DELAY = 0.05


class FakeSocket:
    """Records everything the server would have pushed down a websocket."""

    def __init__(self):
        self.sent: List[Dict[str, Any]] = []
        self.closed: Optional[int] = None

    async def send_json(self, payload: Dict[str, Any]) -> None:
        self.sent.append(payload)

    async def close(self, code: int = 1000) -> None:
        self.closed = code

    def of_type(self, msg_type: str) -> List[Dict[str, Any]]:
        return [m for m in self.sent if m.get("type") == msg_type]

    def last(self, msg_type: str) -> Optional[Dict[str, Any]]:
        found = self.of_type(msg_type)
        return found[-1] if found else None

    def clear(self) -> None:
        self.sent.clear()


class YieldingSocket(FakeSocket):
    """Gives the event loop a turn on every send, like a real network write."""

    async def send_json(self, payload: Dict[str, Any]) -> None:
        await asyncio.sleep(0)
        await super().send_json(payload)


def script_from(beats, characters=("Lead", "Sidekick"), title="Test Piece") -> Script:
    return Script.model_validate({
        "title": title,
        "characters": [{"name": c} for c in characters],
        "beats": beats,
    })


@pytest.fixture
def dialogue_script() -> Script:
    return script_from([
        {"type": "dialogue", "character": "Lead", "text": "First line."},
        {"type": "dialogue", "character": "Sidekick", "text": "Second line."},
        {"type": "direction", "text": "A pause."},
        {"type": "dialogue", "character": "Lead", "text": "Last line."},
    ])


@pytest.fixture
def direction_first_script() -> Script:
    return script_from([
        {"type": "direction", "text": "Lights up."},
        {"type": "dialogue", "character": "Lead", "text": "Hello."},
        {"type": "dialogue", "character": "Sidekick", "text": "Goodbye."},
    ])


@pytest_asyncio.fixture
async def registry():
    reg = RoomRegistry(auto_advance_delay=FAST_DELAY)
    yield reg
    for room in reg:
        reg.remove(room.code)


class Table:
    """A room plus the sockets of everyone sitting at it."""

    def __init__(
        self,
        registry: RoomRegistry,
        script: Script,
        host_name: str = "Amy",
        socket_cls: Type[FakeSocket] = FakeSocket,
    ):
        self.registry = registry
        self.socket_cls = socket_cls
        self.host = Participant(name=host_name)
        self.room = registry.create_room(self.host, script)
        self.sockets: Dict[str, FakeSocket] = {self.host.id: socket_cls()}
        self.room.connections[self.host.id] = self.sockets[self.host.id]

    @property
    def host_ws(self) -> FakeSocket:
        return self.sockets[self.host.id]

    async def add_player(self, name: str) -> Participant:
        player = Participant(name=name)
        ws = self.socket_cls()
        self.sockets[player.id] = ws
        await performance.join(self.room, player, ws)
        return player

    def clear(self) -> None:
        for ws in self.sockets.values():
            ws.clear()


@pytest.fixture
def make_table(registry):
    def _make(script: Script, host_name: str = "Amy", socket_cls: Type[FakeSocket] = FakeSocket) -> Table:
        return Table(registry, script, host_name, socket_cls)

    return _make
