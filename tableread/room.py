from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional

from fastapi import WebSocket

from .constants import STATE_LOBBY, STATE_PERFORMANCE
from .schemas import Beat, Participant, PlayerListEntry, Script

logger = logging.getLogger(__name__)


class Room:
    """Runtime state and active websocket connections for one table read."""

    def __init__(self, code: str, host: Participant, script: Script):
        self.code = code
        self.host = host
        self.players: List[Participant] = []
        self.script = script
        # character name -> participant id (None while unassigned)
        self.assignments: Dict[str, Optional[str]] = {name: None for name in script.character_names}
        self.state = STATE_LOBBY
        self.current_beat: int = 0
        # active websocket connections: participant id -> websocket
        self.connections: Dict[str, WebSocket] = {}
        # Pending direction-beat auto-advance; re-validated when it fires
        self.auto_advance_task: Optional[asyncio.Task] = None

    # ---------------------------------------------------------------------
    # Membership
    # ---------------------------------------------------------------------

    @property
    def host_id(self) -> str:
        return self.host.id

    def is_host(self, participant_id: Optional[str]) -> bool:
        return participant_id == self.host.id

    def member(self, participant_id: Optional[str]) -> Optional[Participant]:
        """Host or player with *participant_id*, if still in the room."""
        if participant_id is None:
            return None
        if participant_id == self.host.id:
            return self.host
        for p in self.players:
            if p.id == participant_id:
                return p
        return None

    def find_player_by_name(self, name: Optional[str]) -> Optional[Participant]:
        """First player (not host) whose display name equals *name*."""
        if not name:
            return None
        for p in self.players:
            if p.name == name:
                return p
        return None

    def find_member_by_name(self, name: Optional[str]) -> Optional[Participant]:
        if name and name == self.host.name:
            return self.host
        return self.find_player_by_name(name)

    def name_of(self, participant_id: Optional[str]) -> Optional[str]:
        p = self.member(participant_id)
        return p.name if p else None

    def add_player(self, player: Participant) -> None:
        self.players.append(player)

    def remove_player(self, participant_id: str) -> Optional[Participant]:
        player = self.member(participant_id)
        if player is None or player is self.host:
            return None
        self.players = [p for p in self.players if p.id != participant_id]
        self.connections.pop(participant_id, None)
        return player

    def release_characters(self, participant_id: str) -> List[str]:
        """Unassign every character held by *participant_id*; returns their names."""
        released = [char for char, owner in self.assignments.items() if owner == participant_id]
        for char in released:
            self.assignments[char] = None
        return released

    # ---------------------------------------------------------------------
    # Casting & beats
    # ---------------------------------------------------------------------

    def all_characters_assigned(self) -> bool:
        """No partial casts: every character needs an owner before curtain up."""
        return all(owner is not None for owner in self.assignments.values())

    def assignment_names(self) -> Dict[str, Optional[str]]:
        return {char: self.name_of(owner) for char, owner in self.assignments.items()}

    def player_list(self) -> List[PlayerListEntry]:
        entries = [PlayerListEntry(id=self.host.id, name=self.host.name, is_host=True)]
        entries.extend(PlayerListEntry(id=p.id, name=p.name, is_host=False) for p in self.players)
        return entries

    @property
    def beat_count(self) -> int:
        return len(self.script.beats)

    def current_beat_obj(self) -> Optional[Beat]:
        if 0 <= self.current_beat < self.beat_count:
            return self.script.beats[self.current_beat]
        return None

    def active_player_id(self) -> Optional[str]:
        """Assignee of the current dialogue beat's character, else ``None``."""
        beat = self.current_beat_obj()
        if beat is None or not beat.is_dialogue:
            return None
        return self.assignments.get(beat.character)

    @property
    def in_performance(self) -> bool:
        return self.state == STATE_PERFORMANCE

    def cancel_auto_advance(self) -> None:
        task = self.auto_advance_task
        self.auto_advance_task = None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    # -------------------- Broadcasting helpers -------------------- #

    async def send_to(self, participant_id: str, payload: Dict[str, Any]) -> None:
        ws = self.connections.get(participant_id)
        if ws is None:
            return
        try:
            await ws.send_json(payload)
        except Exception:
            # Socket already gone; its disconnect handler will clean up.
            logger.warning("Room %s: failed to send %s to %s", self.code, payload.get("type"), participant_id)

    async def broadcast(self, payload: Dict[str, Any]) -> None:
        """Send *payload* to every active websocket connection in the room."""
        for pid in list(self.connections):
            await self.send_to(pid, payload)


__all__ = ["Room"]
