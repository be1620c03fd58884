# Room codes avoid glyphs that are easy to misread aloud or on a projector (0/O, 1/I).
CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
CODE_LENGTH = 4

STATE_LOBBY = "lobby"
STATE_PERFORMANCE = "performance"
STATE_ENDED = "ended"

BEAT_DIALOGUE = "dialogue"
BEAT_DIRECTION = "direction"

ROLE_HOST = "host"
ROLE_PLAYER = "player"

# User-facing validation messages (sent only to the requester).
ERR_NAME_REQUIRED = "Please enter your name."
ERR_ROOM_NOT_FOUND = "Room not found. Check your code and try again."
ERR_ALREADY_STARTED = "Performance already started."
ERR_NO_SCRIPTS = "No scripts available."
ERR_ALREADY_IN_ROOM = "You are already in a room."
ERR_BAD_REQUEST = "Invalid request."

KICK_REASON = "You were removed by the host."

__all__ = [
    "CODE_ALPHABET",
    "CODE_LENGTH",
    "STATE_LOBBY",
    "STATE_PERFORMANCE",
    "STATE_ENDED",
    "BEAT_DIALOGUE",
    "BEAT_DIRECTION",
    "ROLE_HOST",
    "ROLE_PLAYER",
    "ERR_NAME_REQUIRED",
    "ERR_ROOM_NOT_FOUND",
    "ERR_ALREADY_STARTED",
    "ERR_NO_SCRIPTS",
    "ERR_ALREADY_IN_ROOM",
    "ERR_BAD_REQUEST",
    "KICK_REASON",
]
