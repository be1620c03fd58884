"""Runtime configuration read from environment variables."""
from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Optional

PROJECT_ROOT = Path(__file__).resolve().parents[1]


def _env_str(key: str, default: str) -> str:
    v = (os.environ.get(key) or "").strip()
    return v if v else default


def _env_int(key: str, default: int) -> int:
    try:
        return int(os.environ[key])
    except (KeyError, ValueError):
        return default


def _env_float(key: str, default: float) -> float:
    try:
        return float(os.environ[key])
    except (KeyError, ValueError):
        return default


def _env_path(key: str, default: Path) -> Path:
    p = (os.environ.get(key) or "").strip()
    if not p:
        return default
    pp = Path(p)
    return pp if pp.is_absolute() else (PROJECT_ROOT / pp).resolve()


@dataclass(frozen=True)
class Settings:
    host: str = "0.0.0.0"
    port: int = 3000
    scripts_dir: Path = PROJECT_ROOT / "scripts"
    static_dir: Path = PROJECT_ROOT / "public"
    # Seconds a direction beat stays on screen before the playhead moves on.
    auto_advance_delay: float = 4.0
    ws_ping_interval: float = 25.0
    ws_ping_timeout: float = 60.0
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        defaults = cls()
        return cls(
            host=_env_str("TABLEREAD_HOST", defaults.host),
            port=_env_int("PORT", defaults.port),
            scripts_dir=_env_path("TABLEREAD_SCRIPTS_DIR", defaults.scripts_dir),
            static_dir=_env_path("TABLEREAD_STATIC_DIR", defaults.static_dir),
            auto_advance_delay=_env_float("TABLEREAD_AUTO_ADVANCE_SECONDS", defaults.auto_advance_delay),
            ws_ping_interval=_env_float("TABLEREAD_WS_PING_INTERVAL", defaults.ws_ping_interval),
            ws_ping_timeout=_env_float("TABLEREAD_WS_PING_TIMEOUT", defaults.ws_ping_timeout),
            log_level=_env_str("TABLEREAD_LOG_LEVEL", defaults.log_level).upper(),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_env()


__all__ = ["Settings", "get_settings", "PROJECT_ROOT"]
