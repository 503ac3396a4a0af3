"""Top 10 boards (track / street), ranked by ET."""

from __future__ import annotations

import logging
import threading
from dataclasses import asdict, dataclass, replace
from typing import Any, Dict, List, Optional, Set

from .db import DocumentStore
from .errors import InvalidCategory

log = logging.getLogger(__name__)

LEADERBOARD_KEY = "leaderboard"
CATEGORIES = ("track", "street")
BOARD_SIZE = 10


@dataclass
class LeaderboardEntry:
    user_id: str
    display_name: str
    et: str
    et_value: float
    mph: str
    mph_value: float
    proof_url: Optional[str]
    approved_at: int
    approved_by: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "LeaderboardEntry":
        return cls(
            user_id=str(d["user_id"]),
            display_name=str(d.get("display_name") or d["user_id"]),
            et=str(d["et"]),
            et_value=float(d["et_value"]),
            mph=str(d["mph"]),
            mph_value=float(d["mph_value"]),
            proof_url=d.get("proof_url"),
            approved_at=int(d["approved_at"]),
            approved_by=str(d.get("approved_by") or ""),
        )


def sort_key(entry: LeaderboardEntry):
    # lower ET wins; earlier approval breaks ties; user id keeps it deterministic
    return (entry.et_value, entry.approved_at, entry.user_id)


def check_category(category: str) -> str:
    c = (category or "").strip().lower()
    if c not in CATEGORIES:
        raise InvalidCategory()
    return c


class LeaderboardStore:
    def __init__(self, store: DocumentStore, size: int = BOARD_SIZE):
        self.store = store
        self.size = size
        self._lock = threading.RLock()

        doc = store.load(LEADERBOARD_KEY, {c: [] for c in CATEGORIES})
        self._boards: Dict[str, List[LeaderboardEntry]] = {}
        for c in CATEGORIES:
            entries = [LeaderboardEntry.from_dict(d) for d in doc.get(c) or []]
            entries.sort(key=sort_key)
            self._boards[c] = entries[: self.size]

    def _save(self) -> None:
        self.store.save(
            LEADERBOARD_KEY,
            {c: [e.to_dict() for e in self._boards[c]] for c in CATEGORIES},
        )

    def insert(self, category: str, entry: LeaderboardEntry) -> List[LeaderboardEntry]:
        """
        Put `entry` on the board, replacing the same user's previous entry.

        Anyone pushed past the top 10 (including the new entry) is dropped.
        """
        category = check_category(category)
        with self._lock:
            board = [e for e in self._boards[category] if e.user_id != entry.user_id]
            board.append(replace(entry))
            board.sort(key=sort_key)
            dropped = board[self.size:]
            self._boards[category] = board[: self.size]
            self._save()
            result = [replace(e) for e in self._boards[category]]

        for e in dropped:
            log.info("Top10 %s: %s fell off the board (ET %s).", category, e.user_id, e.et)
        return result

    def reset(self, category: str = "all") -> None:
        with self._lock:
            if category == "all":
                targets = list(CATEGORIES)
            else:
                targets = [check_category(category)]
            for c in targets:
                self._boards[c] = []
            self._save()
        log.info("Top10 reset: %s", ", ".join(targets))

    def board(self, category: str) -> List[LeaderboardEntry]:
        """Copies of the entries; edit through insert/rename, not the result."""
        category = check_category(category)
        with self._lock:
            return [replace(e) for e in self._boards[category]]

    def boards(self) -> Dict[str, List[LeaderboardEntry]]:
        with self._lock:
            return {c: [replace(e) for e in self._boards[c]] for c in CATEGORIES}

    def rank_of(self, category: str, user_id) -> Optional[int]:
        uid = str(user_id)
        for i, e in enumerate(self.board(category), start=1):
            if e.user_id == uid:
                return i
        return None

    def rename(self, category: str, user_id, display_name: str) -> bool:
        category = check_category(category)
        uid = str(user_id)
        with self._lock:
            for e in self._boards[category]:
                if e.user_id == uid:
                    if e.display_name == display_name:
                        return False
                    e.display_name = display_name
                    self._save()
                    return True
        return False

    def member_ids(self) -> Set[str]:
        with self._lock:
            return {e.user_id for c in CATEGORIES for e in self._boards[c]}
