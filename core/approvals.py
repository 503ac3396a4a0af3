# core/approvals.py
# Top 10 submission intake + moderator decisions.
#
# Flow:
#   submit()  -> PendingSlip stored, id handed to the approval card buttons
#   resolve() -> deny: slip dropped
#                approve: board insert + cooldown + slip dropped (committed),
#                then best-effort name lookup and role sync
#
# Collaborators may fail; they never undo a committed approval.

from __future__ import annotations

import logging
import math
import re
import secrets
import threading
from dataclasses import asdict, dataclass, field, replace
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Tuple

from .cooldowns import CooldownTracker, now_ms
from .db import DocumentStore
from .errors import (
    CollaboratorError,
    CooldownActive,
    DuplicatePending,
    InvalidDecision,
    InvalidValue,
    ProofRequired,
    SlipNotFound,
)
from .leaderboard import LeaderboardEntry, LeaderboardStore, check_category

log = logging.getLogger(__name__)

PENDING_KEY = "pending"

APPROVE = "approve"
DENY = "deny"

APPROVE_PREFIX = "top10_approve:"
DENY_PREFIX = "top10_deny:"
APPROVAL_ACTION_TEMPLATE = r"top10_(?P<decision>approve|deny):(?P<slip_id>[\w-]+)"

ET_SUFFIXES = ("secs", "sec", "s")
MPH_SUFFIXES = ("mph",)

NameResolver = Callable[[str], Awaitable[Optional[str]]]


class RoleSyncCollaborator:
    """Keeps a tagging role in line with current board membership."""

    async def reconcile(self, member_ids: Set[str]) -> None:
        raise NotImplementedError


def placeholder_name(user_id) -> str:
    return f"User {user_id}"


def parse_measurement(raw: Optional[str], suffixes: Tuple[str, ...] = ()) -> Tuple[str, float]:
    """
    Normalize "10.52", " 10,52s ", "131.7 mph" -> ("10.52", 10.52).

    Anything that isn't a positive finite number raises InvalidValue.
    """
    text = (raw or "").strip().lower().replace(",", ".")
    for suffix in suffixes:
        if text.endswith(suffix):
            text = text[: -len(suffix)].strip()
            break

    if not re.fullmatch(r"\d+(\.\d+)?|\.\d+", text):
        raise InvalidValue(f"`{(raw or '').strip() or '(blank)'}` is not a valid number.")

    value = float(text)
    if not math.isfinite(value) or value <= 0:
        raise InvalidValue(f"`{raw.strip()}` must be greater than zero.")

    if text.startswith("."):
        text = "0" + text
    return text, value


@dataclass
class PendingSlip:
    slip_id: str
    user_id: str
    category: str
    et: str
    et_value: float
    mph: str
    mph_value: float
    proof_url: Optional[str]
    submitted_at: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "PendingSlip":
        return cls(
            slip_id=str(d["slip_id"]),
            user_id=str(d["user_id"]),
            category=str(d["category"]),
            et=str(d["et"]),
            et_value=float(d["et_value"]),
            mph=str(d["mph"]),
            mph_value=float(d["mph_value"]),
            proof_url=d.get("proof_url"),
            submitted_at=int(d["submitted_at"]),
        )


@dataclass
class Resolution:
    slip: PendingSlip
    decision: str
    moderator_id: str
    # set on approve when the run made the top 10
    entry: Optional[LeaderboardEntry] = None
    rank: Optional[int] = None
    board: List[LeaderboardEntry] = field(default_factory=list)

    @property
    def approved(self) -> bool:
        return self.decision == APPROVE


def parse_approval_action(custom_id: str) -> Optional[Tuple[str, str]]:
    """top10_approve:<id> / top10_deny:<id> -> (decision, slip_id)."""
    if custom_id.startswith(APPROVE_PREFIX):
        return APPROVE, custom_id[len(APPROVE_PREFIX):]
    if custom_id.startswith(DENY_PREFIX):
        return DENY, custom_id[len(DENY_PREFIX):]
    return None


class ApprovalWorkflow:
    def __init__(
        self,
        store: DocumentStore,
        leaderboard: LeaderboardStore,
        cooldowns: CooldownTracker,
        *,
        require_proof: bool = True,
        name_resolver: Optional[NameResolver] = None,
        role_sync: Optional[RoleSyncCollaborator] = None,
    ):
        self.store = store
        self.leaderboard = leaderboard
        self.cooldowns = cooldowns
        self.require_proof = require_proof
        self.name_resolver = name_resolver
        self.role_sync = role_sync
        self._lock = threading.RLock()

        doc = store.load(PENDING_KEY, {"pending": {}})
        self._pending: Dict[str, PendingSlip] = {
            sid: PendingSlip.from_dict(d) for sid, d in (doc.get("pending") or {}).items()
        }

    def _save(self) -> None:
        self.store.save(
            PENDING_KEY,
            {"pending": {sid: s.to_dict() for sid, s in self._pending.items()}},
        )

    def get(self, slip_id: str) -> Optional[PendingSlip]:
        with self._lock:
            return self._pending.get(slip_id)

    def pending(self) -> List[PendingSlip]:
        with self._lock:
            return sorted(self._pending.values(), key=lambda s: s.submitted_at)

    # -----------------------------
    # Intake
    # -----------------------------
    def submit(
        self,
        user_id,
        category: str,
        et_raw: str,
        mph_raw: str,
        proof_url: Optional[str] = None,
        now: Optional[int] = None,
    ) -> PendingSlip:
        now = now_ms() if now is None else now
        uid = str(user_id)
        category = check_category(category)
        et, et_value = parse_measurement(et_raw, ET_SUFFIXES)
        mph, mph_value = parse_measurement(mph_raw, MPH_SUFFIXES)

        if self.require_proof and not proof_url:
            raise ProofRequired()

        with self._lock:
            remaining = self.cooldowns.remaining(uid, category, now)
            if remaining > 0:
                raise CooldownActive(remaining)

            if any(s.user_id == uid and s.category == category for s in self._pending.values()):
                raise DuplicatePending()

            slip_id = secrets.token_urlsafe(12)
            while slip_id in self._pending:
                slip_id = secrets.token_urlsafe(12)

            slip = PendingSlip(
                slip_id=slip_id,
                user_id=uid,
                category=category,
                et=et,
                et_value=et_value,
                mph=mph,
                mph_value=mph_value,
                proof_url=proof_url,
                submitted_at=now,
            )
            self._pending[slip_id] = slip
            self._save()

        log.info("Top10 submission %s: user=%s %s ET=%s MPH=%s", slip_id, uid, category, et, mph)
        return slip

    # -----------------------------
    # Decisions
    # -----------------------------
    def _commit(self, slip_id: str, decision: str, moderator_id: str, now: int) -> Resolution:
        with self._lock:
            slip = self._pending.get(slip_id)
            if slip is None:
                raise SlipNotFound()

            res = Resolution(slip=slip, decision=decision, moderator_id=moderator_id)
            if decision == APPROVE:
                entry = LeaderboardEntry(
                    user_id=slip.user_id,
                    display_name=placeholder_name(slip.user_id),
                    et=slip.et,
                    et_value=slip.et_value,
                    mph=slip.mph,
                    mph_value=slip.mph_value,
                    proof_url=slip.proof_url,
                    approved_at=now,
                    approved_by=moderator_id,
                )
                res.board = self.leaderboard.insert(slip.category, entry)
                res.rank = self.leaderboard.rank_of(slip.category, slip.user_id)
                if res.rank is not None:
                    res.entry = res.board[res.rank - 1]
                self.cooldowns.record_approval(slip.user_id, slip.category, now)

            del self._pending[slip_id]
            self._save()

        log.info(
            "Top10 slip %s %sd by %s (user=%s %s rank=%s)",
            slip_id,
            decision,
            moderator_id,
            slip.user_id,
            slip.category,
            res.rank,
        )
        return res

    async def resolve(
        self,
        slip_id: str,
        decision: str,
        moderator_id,
        now: Optional[int] = None,
    ) -> Resolution:
        if decision not in (APPROVE, DENY):
            raise InvalidDecision()
        now = now_ms() if now is None else now

        res = self._commit(slip_id, decision, str(moderator_id), now)
        if not res.approved:
            return res

        if res.entry is not None:
            await self._resolve_name(res)
        await self.sync_roles()
        return res

    async def _resolve_name(self, res: Resolution) -> None:
        if self.name_resolver is None:
            return
        try:
            name = await self.name_resolver(res.slip.user_id)
            if not name:
                raise CollaboratorError(f"no display name for {res.slip.user_id}")
        except Exception as e:
            log.warning("Top10 name lookup failed for %s: %r", res.slip.user_id, e)
            return

        self.leaderboard.rename(res.slip.category, res.slip.user_id, name)
        res.entry = replace(res.entry, display_name=name)
        res.board = [res.entry if e.user_id == res.entry.user_id else e for e in res.board]

    async def sync_roles(self) -> None:
        """Push current board membership to the role collaborator (best effort)."""
        if self.role_sync is None:
            return
        try:
            await self.role_sync.reconcile(self.leaderboard.member_ids())
        except Exception as e:
            log.exception("Top10 role sync failed: %r", CollaboratorError(str(e)))
