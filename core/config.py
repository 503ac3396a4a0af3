from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env exactly once (this module should be imported early by main.py)
load_dotenv()

# ---------- Project Paths ----------
# core/ sits at: <ROOT>/core/config.py
ROOT: Path = Path(__file__).resolve().parents[1]

DATA_DIR: Path = Path(os.getenv("DATA_DIR", str(ROOT / "data"))).resolve()

# default remains ./data/racemaster.db
DB_PATH: Path = Path(os.getenv("DB_PATH", str(DATA_DIR / "racemaster.db"))).resolve()

DATA_DIR.mkdir(parents=True, exist_ok=True)


# ---------- Environment Helpers ----------
def env(key: str, default: str | None = None) -> str | None:
    """Small helper to read env vars consistently."""
    return os.getenv(key, default)

def env_bool(key: str, default: bool = False) -> bool:
    """Parse bool-like env vars."""
    val = os.getenv(key)
    if val is None:
        return default
    return val.strip().lower() in ("1", "true", "yes", "y", "on")

def env_int(key: str, default: int | None = None) -> int | None:
    """Parse int env vars (Discord ids, hours, minutes). Blank or junk -> default."""
    val = os.getenv(key)
    if val is None or not val.strip():
        return default
    try:
        return int(val.strip())
    except ValueError:
        return default


# ---------- Storage ----------
# "sqlite" (default) or "json"
STORAGE_BACKEND: str = (env("STORAGE_BACKEND", "sqlite") or "sqlite").strip().lower()

# ---------- Discord ----------
GUILD_ID: int | None = env_int("GUILD_ID")
LADDER_CHANNEL_ID: int | None = env_int("LADDER_CHANNEL_ID")
RACE_DIRECTOR_ROLE_ID: int | None = env_int("RACE_DIRECTOR_ROLE_ID")

# ---------- Top 10 ----------
TOP10_APPROVAL_CHANNEL_ID: int | None = env_int("TOP10_APPROVAL_CHANNEL_ID")
TOP10_BOARD_CHANNEL_ID: int | None = env_int("TOP10_BOARD_CHANNEL_ID")
TOP10_ROLE_ID: int | None = env_int("TOP10_ROLE_ID")
TOP10_REQUIRE_PROOF: bool = env_bool("TOP10_REQUIRE_PROOF", True)
TOP10_COOLDOWN_HOURS: int = env_int("TOP10_COOLDOWN_HOURS", 24) or 24

# ---------- ET draw ----------
ET_DRAW_WINDOW_MINUTES: int = env_int("ET_DRAW_WINDOW_MINUTES", 60) or 60
