"""Session gateway: maps each websocket to a room/role and routes its messages.

A connection's role is decided here, by the create/join handlers, and is
re-read on every privileged action. Nothing a client sends can promote it.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from fastapi import WebSocket
from pydantic import ValidationError

from . import performance
from .catalogue import ScriptCatalogue
from .constants import (
    ERR_ALREADY_IN_ROOM,
    ERR_ALREADY_STARTED,
    ERR_BAD_REQUEST,
    ERR_NAME_REQUIRED,
    ERR_NO_SCRIPTS,
    ERR_ROOM_NOT_FOUND,
    ROLE_HOST,
    ROLE_PLAYER,
    STATE_LOBBY,
)
from .registry import RoomRegistry
from .room import Room
from .schemas import (
    BootPlayerRequest,
    ClaimCharacterRequest,
    CreateRoomRequest,
    ErrorReply,
    ForceAssignRequest,
    JoinedReply,
    JoinRoomRequest,
    Participant,
    RoomCreatedReply,
)

logger = logging.getLogger(__name__)


@dataclass
class Session:
    """What the server knows about one live connection."""

    room_code: Optional[str] = None
    role: Optional[str] = None
    participant: Optional[Participant] = None

    @property
    def is_host(self) -> bool:
        return self.role == ROLE_HOST

    @property
    def participant_id(self) -> Optional[str]:
        return self.participant.id if self.participant else None

    def bind(self, room: Room, role: str, participant: Participant) -> None:
        self.room_code = room.code
        self.role = role
        self.participant = participant


class Gateway:
    def __init__(self, registry: RoomRegistry, catalogue: ScriptCatalogue):
        self.registry = registry
        self.catalogue = catalogue

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def current_room(self, session: Session) -> Optional[Room]:
        """The caller's room, provided it still exists and they are still in it."""
        if not session.room_code:
            return None
        room = self.registry.get(session.room_code)
        if room is None or room.member(session.participant_id) is None:
            return None
        return room

    @staticmethod
    async def send_error(ws: WebSocket, request: Optional[str], message: str) -> None:
        await ws.send_json(ErrorReply(request=request, message=message).model_dump())

    # ------------------------------------------------------------------
    # Create / join
    # ------------------------------------------------------------------

    async def create_room(self, session: Session, ws: WebSocket, data: Dict[str, Any]) -> None:
        if self.current_room(session) is not None:
            await self.send_error(ws, "create_room", ERR_ALREADY_IN_ROOM)
            return
        req = CreateRoomRequest.model_validate(data)
        if not req.name:
            await self.send_error(ws, "create_room", ERR_NAME_REQUIRED)
            return
        script = self.catalogue.get(req.script_index)
        if script is None:
            await self.send_error(ws, "create_room", ERR_NO_SCRIPTS)
            return

        host = Participant(name=req.name)
        room = self.registry.create_room(host, script)
        room.connections[host.id] = ws
        session.bind(room, ROLE_HOST, host)

        await ws.send_json(RoomCreatedReply(code=room.code, you=host, script=script.summary()).model_dump())

    async def join_room(self, session: Session, ws: WebSocket, data: Dict[str, Any]) -> None:
        if self.current_room(session) is not None:
            await self.send_error(ws, "join_room", ERR_ALREADY_IN_ROOM)
            return
        req = JoinRoomRequest.model_validate(data)
        room = self.registry.get(req.code)
        if room is None:
            await self.send_error(ws, "join_room", ERR_ROOM_NOT_FOUND)
            return

        async with self.registry.lock(room.code):
            if self.registry.get(room.code) is not room:
                await self.send_error(ws, "join_room", ERR_ROOM_NOT_FOUND)
                return
            # A started room refuses everyone, named or not.
            if room.state != STATE_LOBBY:
                await self.send_error(ws, "join_room", ERR_ALREADY_STARTED)
                return
            if not req.name:
                await self.send_error(ws, "join_room", ERR_NAME_REQUIRED)
                return

            player = Participant(name=req.name)
            try:
                await performance.join(room, player, ws)
            except performance.JoinError as exc:
                await self.send_error(ws, "join_room", exc.message)
                return
            session.bind(room, ROLE_PLAYER, player)

            await ws.send_json(
                JoinedReply(
                    you=player,
                    name=player.name,
                    script=room.script.summary(),
                    assignments=room.assignment_names(),
                ).model_dump()
            )
            await performance.announce_join(room)

    # ------------------------------------------------------------------
    # In-room actions
    # ------------------------------------------------------------------

    def _resolve_target(self, room: Room, target_id: Optional[str], target_name: Optional[str]) -> Optional[str]:
        if target_id:
            member = room.member(target_id)
        else:
            member = room.find_member_by_name(target_name)
        return member.id if member else None

    async def force_assign(self, room: Room, session: Session, data: Dict[str, Any]) -> None:
        req = ForceAssignRequest.model_validate(data)
        if req.to_player_id is None and req.to_player is None:
            # Only an explicit null clears; a frame with no target names nobody.
            if "to_player" not in data:
                logger.debug("Room %s: force_assign without a target dropped", room.code)
                return
            target_id = None
        else:
            target_id = self._resolve_target(room, req.to_player_id, req.to_player)
            if target_id is None:
                return
        await performance.force_assign(self.registry, room, session.participant_id, req.character, target_id)

    async def boot_player(self, room: Room, session: Session, data: Dict[str, Any]) -> None:
        req = BootPlayerRequest.model_validate(data)
        if req.player_id:
            target = room.member(req.player_id)
        else:
            target = room.find_player_by_name(req.player_name)
        if target is None:
            return
        await performance.boot_player(self.registry, room, session.participant_id, target.id)

    # ------------------------------------------------------------------
    # Primary dispatcher used by websocket endpoint
    # ------------------------------------------------------------------

    async def handle_ws_message(self, session: Session, ws: WebSocket, data: Any) -> None:
        if not isinstance(data, dict):
            return
        msg_type = data.get("type")

        if msg_type == "ping":
            await ws.send_json({"type": "pong"})
            return

        try:
            if msg_type == "create_room":
                await self.create_room(session, ws, data)
                return
            if msg_type == "join_room":
                await self.join_room(session, ws, data)
                return
        except ValidationError:
            await self.send_error(ws, msg_type, ERR_BAD_REQUEST)
            return

        room = self.current_room(session)
        if room is None:
            logger.debug("Dropping %r from connection outside any room", msg_type)
            return
        async with self.registry.lock(room.code):
            # The room may have closed, or dropped us, while we waited.
            if self.current_room(session) is not room:
                logger.debug("Room %s: %r dropped, caller no longer seated", room.code, msg_type)
                return
            await self.dispatch(room, session, msg_type, data)

    async def dispatch(self, room: Room, session: Session, msg_type: Any, data: Dict[str, Any]) -> None:
        """Route one in-room message. The caller holds the room lock."""
        caller_id = session.participant_id
        try:
            if msg_type == "claim_character":
                req = ClaimCharacterRequest.model_validate(data)
                await performance.claim_character(room, caller_id, req.character, req.claim)
            elif msg_type == "force_assign":
                if session.is_host:
                    await self.force_assign(room, session, data)
            elif msg_type == "boot_player":
                if session.is_host:
                    await self.boot_player(room, session, data)
            elif msg_type == "start_performance":
                if session.is_host:
                    await performance.start_performance(self.registry, room, caller_id)
            elif msg_type == "beat_done":
                await performance.beat_done(self.registry, room, caller_id)
            else:
                logger.debug("Room %s: unknown message type %r", room.code, msg_type)
        except ValidationError:
            logger.debug("Room %s: malformed %r payload dropped", room.code, msg_type)

    async def handle_disconnect(self, session: Session) -> None:
        if not session.room_code or session.participant is None:
            return
        room = self.registry.get(session.room_code)
        if room is None:
            return
        async with self.registry.lock(room.code):
            await performance.handle_disconnect(self.registry, room, session.participant.id)


__all__ = ["Session", "Gateway"]
