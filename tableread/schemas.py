"""Pydantic data schemas used across the table-read service.

Script definitions, runtime participants, websocket requests and the
events pushed back to clients all live here so other modules can import
from a single location.
"""
from __future__ import annotations

import uuid
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from .constants import BEAT_DIALOGUE, BEAT_DIRECTION

# -----------------------------
# Script catalogue
# -----------------------------

class Character(BaseModel):
    name: str
    difficulty: Optional[str] = None
    # Derived at load time from the beat list; never read from the JSON file.
    line_count: int = 0


class Beat(BaseModel):
    """One unit of script content: a spoken line or a stage direction."""

    type: Literal["dialogue", "direction"]
    character: Optional[str] = None
    text: str

    @model_validator(mode="after")
    def _dialogue_needs_character(self) -> "Beat":
        if self.type == BEAT_DIALOGUE and not self.character:
            raise ValueError("dialogue beats must name a character")
        return self

    @property
    def is_dialogue(self) -> bool:
        return self.type == BEAT_DIALOGUE

    @property
    def is_direction(self) -> bool:
        return self.type == BEAT_DIRECTION


class Script(BaseModel):
    title: str
    author: Optional[str] = None
    description: Optional[str] = None
    characters: List[Character]
    beats: List[Beat]

    @property
    def character_names(self) -> List[str]:
        return [c.name for c in self.characters]

    def summary(self) -> "ScriptSummary":
        return ScriptSummary(title=self.title, characters=self.characters)


class ScriptSummary(BaseModel):
    """What a client needs to render the cast screen after create/join."""

    title: str
    characters: List[Character]


class CharacterListing(BaseModel):
    name: str
    line_count: int
    difficulty: Optional[str] = None


class ScriptListing(BaseModel):
    id: int
    title: str
    author: Optional[str] = None
    description: Optional[str] = None
    characters: List[CharacterListing]
    beat_count: int

# -----------------------------
# Runtime
# -----------------------------

def new_participant_id() -> str:
    return uuid.uuid4().hex


class Participant(BaseModel):
    """A connected host or player. *name* is display-only and may repeat."""

    id: str = Field(default_factory=new_participant_id)
    name: str


class PlayerListEntry(BaseModel):
    id: str
    name: str
    is_host: bool


class BeatEvent(BaseModel):
    index: int
    total: int
    beat: Beat
    active_player: Optional[str] = None
    active_player_id: Optional[str] = None

# -----------------------------
# Websocket requests (client -> server)
# -----------------------------

class _NamedRequest(BaseModel):
    name: str = ""

    @field_validator("name", mode="before")
    @classmethod
    def _strip_name(cls, v):
        if v is None:
            return ""
        return str(v).strip()


class CreateRoomRequest(_NamedRequest):
    script_index: int = 0

    @field_validator("script_index", mode="before")
    @classmethod
    def _coerce_index(cls, v):
        # Out-of-range or junk indexes fall back to the first script.
        try:
            return int(v)
        except (TypeError, ValueError):
            return 0


class JoinRoomRequest(_NamedRequest):
    code: str = ""

    @field_validator("code", mode="before")
    @classmethod
    def _normalise_code(cls, v):
        if v is None:
            return ""
        return str(v).strip().upper()


class ClaimCharacterRequest(BaseModel):
    character: str
    # Omitted: toggle. True/False: explicit claim / unclaim, both idempotent.
    claim: Optional[bool] = None


class ForceAssignRequest(BaseModel):
    character: str
    # ``None`` clears the assignment.
    to_player: Optional[str] = None
    to_player_id: Optional[str] = None


class BootPlayerRequest(BaseModel):
    player_name: Optional[str] = None
    player_id: Optional[str] = None


# ------ Gateway replies ------ #

class RoomCreatedReply(BaseModel):
    type: Literal["room_created"] = "room_created"
    code: str
    you: Participant
    script: ScriptSummary


class JoinedReply(BaseModel):
    type: Literal["joined"] = "joined"
    ok: bool = True
    you: Participant
    name: str
    script: ScriptSummary
    assignments: Dict[str, Optional[str]]


class ErrorReply(BaseModel):
    type: Literal["error"] = "error"
    request: Optional[str] = None
    message: str


__all__ = [
    # catalogue
    "Character",
    "Beat",
    "Script",
    "ScriptSummary",
    "CharacterListing",
    "ScriptListing",
    # runtime
    "Participant",
    "PlayerListEntry",
    "BeatEvent",
    "new_participant_id",
    # requests / replies
    "CreateRoomRequest",
    "JoinRoomRequest",
    "ClaimCharacterRequest",
    "ForceAssignRequest",
    "BootPlayerRequest",
    "RoomCreatedReply",
    "JoinedReply",
    "ErrorReply",
]
