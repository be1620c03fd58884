"""Script catalogue: loads the JSON script files once at startup."""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from pydantic import ValidationError

from .schemas import CharacterListing, Script, ScriptListing

logger = logging.getLogger(__name__)


class CatalogueError(Exception):
    """A script file could not be read or did not match the script schema."""


def prepare_script(script: Script) -> Script:
    """Return a copy of *script* with every character's ``line_count`` filled in."""
    counts = {c.name: 0 for c in script.characters}
    for beat in script.beats:
        if beat.is_dialogue and beat.character in counts:
            counts[beat.character] += 1
    characters = [c.model_copy(update={"line_count": counts[c.name]}) for c in script.characters]
    return script.model_copy(update={"characters": characters})


def load_scripts(directory: Path) -> List[Script]:
    """Parse every ``*.json`` file in *directory*, sorted by filename.

    Line counts are left as parsed; :class:`ScriptCatalogue` derives them.
    """
    if not directory.is_dir():
        logger.warning("Scripts directory %s does not exist; catalogue is empty", directory)
        return []

    scripts: List[Script] = []
    for path in sorted(directory.glob("*.json")):
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
            script = Script.model_validate(raw)
        except (OSError, json.JSONDecodeError, ValidationError) as exc:
            raise CatalogueError(f"Could not load script {path.name}: {exc}") from exc
        scripts.append(script)
        logger.debug("Loaded script %r from %s (%d beats)", script.title, path.name, len(script.beats))
    return scripts


class ScriptCatalogue:
    """Immutable, index-addressed list of prepared scripts."""

    def __init__(self, scripts: Iterable[Script]):
        self._scripts: Tuple[Script, ...] = tuple(prepare_script(s) for s in scripts)

    @classmethod
    def from_directory(cls, directory: Path) -> "ScriptCatalogue":
        catalogue = cls(load_scripts(directory))
        logger.info("Script catalogue loaded: %d script(s) from %s", len(catalogue), directory)
        return catalogue

    def __len__(self) -> int:
        return len(self._scripts)

    def get(self, index: Optional[int]) -> Optional[Script]:
        """Script at *index*, falling back to the first script when out of range."""
        if not self._scripts:
            return None
        if isinstance(index, int) and not isinstance(index, bool) and 0 <= index < len(self._scripts):
            return self._scripts[index]
        return self._scripts[0]

    def listings(self) -> List[ScriptListing]:
        return [
            ScriptListing(
                id=i,
                title=s.title,
                author=s.author,
                description=s.description,
                characters=[
                    CharacterListing(name=c.name, line_count=c.line_count, difficulty=c.difficulty)
                    for c in s.characters
                ],
                beat_count=len(s.beats),
            )
            for i, s in enumerate(self._scripts)
        ]


__all__ = ["CatalogueError", "ScriptCatalogue", "load_scripts", "prepare_script"]
