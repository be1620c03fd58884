"""Room state machine: casting, curtain up and beat progression.

Broadcasts suspend, so two operations on one room could otherwise interleave.
Every public operation runs under ``registry.lock(room.code)``: the gateway
takes it for each inbound message and the direction-beat auto-advance takes
it before acting. Helpers here never acquire it themselves, as the lock is
not reentrant. Boot drops the target before its first await.

Authorization failures and structural no-ops return ``False`` without
telling the caller anything; only :class:`JoinError` carries a message back.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Optional

from fastapi import WebSocket

from .constants import (
    ERR_ALREADY_STARTED,
    KICK_REASON,
    STATE_ENDED,
    STATE_LOBBY,
    STATE_PERFORMANCE,
)
from .registry import RoomRegistry
from .room import Room
from .schemas import BeatEvent, Participant

logger = logging.getLogger(__name__)


class JoinError(Exception):
    """Validation failure reported back to the requester only."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

# ---------------------------------------------------------------------------
# Room-wide snapshots
# ---------------------------------------------------------------------------

async def broadcast_player_list(room: Room) -> None:
    await room.broadcast({
        "type": "player_list",
        "players": [p.model_dump() for p in room.player_list()],
    })


async def broadcast_assignments(room: Room) -> None:
    await room.broadcast({"type": "assignments", "assignments": room.assignment_names()})
    await room.broadcast({"type": "casting_complete", "complete": room.all_characters_assigned()})

# ---------------------------------------------------------------------------
# Lobby
# ---------------------------------------------------------------------------

async def join(room: Room, player: Participant, ws: Optional[WebSocket] = None) -> None:
    if room.state != STATE_LOBBY:
        raise JoinError(ERR_ALREADY_STARTED)
    room.add_player(player)
    if ws is not None:
        room.connections[player.id] = ws
    logger.info("%s joined room %s", player.name, room.code)


async def announce_join(room: Room) -> None:
    await broadcast_player_list(room)
    await broadcast_assignments(room)


async def claim_character(room: Room, participant_id: str, character: str, claim: Optional[bool] = None) -> bool:
    """Toggle *character* for the caller: claim if free, release if theirs.

    Passing *claim* pins the intent instead, so repeating a claim or an
    unclaim is a no-op rather than flipping the assignment back.
    """
    if room.state != STATE_LOBBY or character not in room.assignments:
        return False
    if room.member(participant_id) is None:
        return False

    owner = room.assignments[character]
    if owner is not None and owner != participant_id:
        # First come, single owner: someone else holds it.
        logger.debug("Room %s: claim on %s by %s dropped (held by %s)", room.code, character, participant_id, owner)
        return False

    mine = owner == participant_id
    if claim is None:
        claim = not mine
    if claim == mine:
        return False
    room.assignments[character] = participant_id if claim else None
    await broadcast_assignments(room)
    return True


async def force_assign(
    registry: RoomRegistry,
    room: Room,
    caller_id: str,
    character: str,
    target_id: Optional[str],
) -> bool:
    """Host-only unconditional set of *character* to *target_id* (``None`` clears)."""
    if not room.is_host(caller_id):
        return False
    if room.state not in (STATE_LOBBY, STATE_PERFORMANCE):
        return False
    if character not in room.assignments:
        return False
    if target_id is not None and room.member(target_id) is None:
        return False

    room.assignments[character] = target_id
    await broadcast_assignments(room)
    if room.in_performance:
        # The active speaker may have changed.
        await emit_current_beat(registry, room)
    return True


async def boot_player(registry: RoomRegistry, room: Room, caller_id: str, target_id: Optional[str]) -> bool:
    if not room.is_host(caller_id):
        return False
    target = room.member(target_id)
    if target is None or target is room.host:
        return False

    # Never leave the playhead waiting on a line nobody owns.
    if room.in_performance and room.active_player_id() == target.id:
        beat = room.current_beat_obj()
        room.assignments[beat.character] = room.host.id

    room.release_characters(target.id)
    target_ws = room.connections.get(target.id)
    room.remove_player(target.id)

    if target_ws is not None:
        try:
            await target_ws.send_json({"type": "kicked", "reason": KICK_REASON})
            await target_ws.close(code=4002)
        except Exception:
            logger.debug("Room %s: booted socket for %s already closed", room.code, target.name)

    await broadcast_player_list(room)
    await broadcast_assignments(room)
    if room.in_performance:
        await emit_current_beat(registry, room)

    logger.info("%s booted from room %s", target.name, room.code)
    return True

# ---------------------------------------------------------------------------
# Performance
# ---------------------------------------------------------------------------

async def start_performance(registry: RoomRegistry, room: Room, caller_id: str) -> bool:
    if not room.is_host(caller_id) or room.state != STATE_LOBBY:
        return False
    if not room.all_characters_assigned():
        return False

    room.state = STATE_PERFORMANCE
    room.current_beat = 0
    logger.info("Performance started in room %s", room.code)
    await room.broadcast({"type": "performance_started", "title": room.script.title})

    if room.beat_count == 0:
        await _end_performance(room)
        return True
    await emit_current_beat(registry, room)
    return True


async def beat_done(registry: RoomRegistry, room: Room, caller_id: str) -> bool:
    """Mark the current dialogue line as delivered by its owner (or the host)."""
    if room.state != STATE_PERFORMANCE:
        return False
    beat = room.current_beat_obj()
    if beat is None or not beat.is_dialogue:
        # Direction beats advance on their own timer.
        return False
    if caller_id != room.assignments.get(beat.character) and not room.is_host(caller_id):
        logger.debug("Room %s: beat_done from %s dropped (not the active player)", room.code, caller_id)
        return False

    await advance_beat(registry, room)
    return True


async def advance_beat(registry: RoomRegistry, room: Room) -> None:
    if room.state != STATE_PERFORMANCE:
        return
    room.cancel_auto_advance()

    room.current_beat += 1
    if room.current_beat >= room.beat_count:
        await _end_performance(room)
        return
    await emit_current_beat(registry, room)


async def _end_performance(room: Room) -> None:
    room.state = STATE_ENDED
    room.cancel_auto_advance()
    logger.info("Performance ended in room %s", room.code)
    await room.broadcast({"type": "performance_ended"})


async def emit_current_beat(registry: RoomRegistry, room: Room) -> None:
    if room.state != STATE_PERFORMANCE:
        return
    beat = room.current_beat_obj()
    if beat is None:
        return

    active_id = room.active_player_id()
    event = BeatEvent(
        index=room.current_beat,
        total=room.beat_count,
        beat=beat,
        active_player=room.name_of(active_id),
        active_player_id=active_id,
    )
    await room.broadcast({"type": "beat", **event.model_dump()})

    if beat.is_direction:
        _schedule_auto_advance(registry, room)


def _schedule_auto_advance(registry: RoomRegistry, room: Room) -> None:
    # A re-broadcast of the same beat keeps the timer already running for it.
    pending = room.auto_advance_task
    if pending is not None and not pending.done() and pending is not asyncio.current_task():
        return
    room.auto_advance_task = asyncio.create_task(
        _auto_advance_after_delay(registry, room.code, room.current_beat, registry.auto_advance_delay)
    )


async def _auto_advance_after_delay(registry: RoomRegistry, code: str, beat_index: int, delay: float) -> None:
    await asyncio.sleep(delay)
    if registry.get(code) is None:
        logger.debug("Room %s: auto-advance for closed room ignored", code)
        return
    async with registry.lock(code):
        room = registry.get(code)
        if room is None or room.current_beat != beat_index or room.state != STATE_PERFORMANCE:
            logger.debug("Room %s: stale auto-advance for beat %d ignored", code, beat_index)
            return
        room.auto_advance_task = None
        await advance_beat(registry, room)

# ---------------------------------------------------------------------------
# Departures
# ---------------------------------------------------------------------------

async def handle_disconnect(registry: RoomRegistry, room: Room, participant_id: str) -> None:
    if registry.get(room.code) is not room:
        return

    if room.is_host(participant_id):
        room.connections.pop(participant_id, None)
        await room.broadcast({"type": "host_left"})
        registry.remove(room.code)
        logger.info("Room %s closed (host disconnected)", room.code)
        return

    player = room.remove_player(participant_id)
    if player is None:
        return
    # Known gap: an active line held by this player is not handed to anyone.
    room.release_characters(participant_id)
    await broadcast_player_list(room)
    await broadcast_assignments(room)
    logger.info("%s left room %s", player.name, room.code)


__all__ = [
    "JoinError",
    "broadcast_player_list",
    "broadcast_assignments",
    "join",
    "announce_join",
    "claim_character",
    "force_assign",
    "boot_player",
    "start_performance",
    "beat_done",
    "advance_beat",
    "emit_current_beat",
    "handle_disconnect",
]
