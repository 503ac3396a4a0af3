"""Per-user, per-category submission cooldown after an approval."""

from __future__ import annotations

import logging
import threading
import time
from typing import Dict, Optional

from .db import DocumentStore

log = logging.getLogger(__name__)

COOLDOWNS_KEY = "cooldowns"
HOUR_MS = 60 * 60 * 1000
DEFAULT_COOLDOWN_MS = 24 * HOUR_MS


def now_ms() -> int:
    return int(time.time() * 1000)


def format_duration(ms: int) -> str:
    """Compact "5h 3m" text for refusal messages. Rounds up to the minute."""
    total_min = max(0, -(-int(ms) // 60_000))
    hours, minutes = divmod(total_min, 60)
    if hours and minutes:
        return f"{hours}h {minutes}m"
    if hours:
        return f"{hours}h"
    return f"{minutes}m"


class CooldownTracker:
    def __init__(self, store: DocumentStore, window_ms: int = DEFAULT_COOLDOWN_MS):
        self.store = store
        self.window_ms = int(window_ms)
        self._lock = threading.RLock()
        doc = store.load(COOLDOWNS_KEY, {"cooldowns": {}})
        self._records: Dict[str, int] = {
            k: int(v) for k, v in (doc.get("cooldowns") or {}).items()
        }

    @staticmethod
    def _key(user_id, category: str) -> str:
        return f"{user_id}:{category}"

    def _save(self) -> None:
        self.store.save(COOLDOWNS_KEY, {"cooldowns": dict(self._records)})

    def last_approval(self, user_id, category: str) -> Optional[int]:
        with self._lock:
            return self._records.get(self._key(user_id, category))

    def remaining(self, user_id, category: str, now: Optional[int] = None) -> int:
        """Milliseconds until a new submission is allowed (0 = allowed)."""
        now = now_ms() if now is None else now
        last = self.last_approval(user_id, category)
        if last is None:
            return 0
        return max(0, last + self.window_ms - now)

    def check_allowed(self, user_id, category: str, now: Optional[int] = None) -> bool:
        return self.remaining(user_id, category, now) == 0

    def record_approval(self, user_id, category: str, now: Optional[int] = None) -> None:
        now = now_ms() if now is None else now
        with self._lock:
            self._records[self._key(user_id, category)] = int(now)
            self._save()

    def clear(self) -> None:
        with self._lock:
            n = len(self._records)
            self._records.clear()
            self._save()
        log.info("Cleared %d cooldown record(s).", n)
