"""Multiplayer table-read server: rooms, casting and a shared playhead."""

__version__ = "0.1.0"
