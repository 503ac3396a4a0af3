# core/bracket.py
# Single-elimination drag ladder:
# - random pairing with bye rotation (no repeat byes while avoidable)
# - winner selection + auto-finalize when only one racer is left
# - round advancement
# - LadderRegistry: active ladders keyed by the id of the message showing them

from __future__ import annotations

import logging
import random
import re
import threading
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from .errors import (
    AlreadyComplete,
    InsufficientRacers,
    InvalidMatchIndex,
    InvalidSide,
    LadderNotFound,
    NotAllDecided,
    TooManyRacers,
)

log = logging.getLogger(__name__)

DEFAULT_EVENT_NAME = "Drag Event"
# 25 components per message: 12 races (24 buttons) + "Start Round"
MAX_LADDER_RACERS = 25

MENTION_RE = re.compile(r"^<@!?(\d+)>$")
SPLIT_RE = re.compile(r"\r?\n|,")

# secrets-grade randomness for seeding; tests pass their own random.Random
_system_rng = random.SystemRandom()


# -----------------------------
# Data model
# -----------------------------
@dataclass(frozen=True)
class Racer:
    raw: str
    user_id: Optional[str]
    label: str
    mention: str
    is_mention: bool

    @property
    def identity(self) -> str:
        """Key used to spot the same racer listed twice."""
        if self.user_id:
            return f"user:{self.user_id}"
        return f"name:{self.raw.casefold()}"


@dataclass
class Match:
    a: Racer
    b: Racer
    winner: Optional[Racer] = None


@dataclass
class LadderState:
    event_name: str
    round: int = 1
    matches: List[Match] = field(default_factory=list)
    bye: Optional[Racer] = None
    complete: bool = False
    champion: Optional[Racer] = None
    bye_history: List[str] = field(default_factory=list)

    def all_decided(self) -> bool:
        return all(m.winner is not None for m in self.matches)

    def advancing(self) -> List[Racer]:
        """Match winners (in match order) plus the bye racer, if any."""
        winners = [m.winner for m in self.matches if m.winner is not None]
        if self.bye is not None:
            winners.append(self.bye)
        return winners


# -----------------------------
# Parsing
# -----------------------------
def parse_racer_token(token: str, labels: Optional[Mapping[str, str]] = None) -> Racer:
    """
    Parse one racer token.

    Mentions (<@123> / <@!123>) keep the mention for ladder text, and a clean
    label for buttons (buttons can't render mentions). `labels` maps user id ->
    display name when the caller could resolve members.
    """
    t = token.strip()
    m = MENTION_RE.match(t)
    if m:
        user_id = m.group(1)
        label = (labels or {}).get(user_id) or f"@{user_id}"
        return Racer(
            raw=t,
            user_id=user_id,
            label=label,
            mention=f"<@{user_id}>",
            is_mention=True,
        )

    return Racer(raw=t, user_id=None, label=t, mention=t, is_mention=False)


def split_racer_list(text: str) -> List[str]:
    """One racer per line or comma-separated; blanks dropped."""
    return [s.strip() for s in SPLIT_RE.split(text or "") if s.strip()]


def dedupe_racers(racers: Iterable[Racer]) -> List[Racer]:
    seen = set()
    out: List[Racer] = []
    for r in racers:
        if r.identity in seen:
            continue
        seen.add(r.identity)
        out.append(r)
    return out


# -----------------------------
# Pairing
# -----------------------------
def shuffle(items: List[Racer], rng: Optional[random.Random] = None) -> List[Racer]:
    """Fisher-Yates shuffle on a copy."""
    rng = rng or _system_rng
    a = list(items)
    for i in range(len(a) - 1, 0, -1):
        j = rng.randrange(i + 1)
        a[i], a[j] = a[j], a[i]
    return a


def build_matches(
    racers: List[Racer],
    bye_history: Iterable[str] = (),
    rng: Optional[random.Random] = None,
) -> Tuple[List[Match], Optional[Racer]]:
    """
    Shuffle and pair racers.

    With an odd count one racer sits out as the bye: preferably one whose raw
    token isn't in `bye_history`; if everybody already had a bye, any racer.
    """
    rng = rng or _system_rng
    shuffled = shuffle(racers, rng)
    history = set(bye_history)
    bye: Optional[Racer] = None

    if len(shuffled) % 2 == 1:
        eligible = [i for i, r in enumerate(shuffled) if r.raw not in history]
        if eligible:
            bye_index = eligible[rng.randrange(len(eligible))]
        else:
            bye_index = rng.randrange(len(shuffled))
        bye = shuffled.pop(bye_index)

    matches = [Match(a=shuffled[i], b=shuffled[i + 1]) for i in range(0, len(shuffled), 2)]
    return matches, bye


# -----------------------------
# Ladder lifecycle
# -----------------------------
def create_ladder(
    event_name: str,
    tokens: Iterable[str],
    labels: Optional[Mapping[str, str]] = None,
    rng: Optional[random.Random] = None,
    max_racers: int = MAX_LADDER_RACERS,
) -> LadderState:
    racers = dedupe_racers(
        parse_racer_token(t, labels) for t in tokens if t and t.strip()
    )
    if len(racers) < 2:
        raise InsufficientRacers()
    if len(racers) > max_racers:
        raise TooManyRacers(
            f"A ladder can hold at most {max_racers} racers (got {len(racers)})."
        )

    matches, bye = build_matches(racers, [], rng)
    state = LadderState(
        event_name=(event_name or "").strip() or DEFAULT_EVENT_NAME,
        matches=matches,
        bye=bye,
    )
    if bye is not None:
        state.bye_history.append(bye.raw)

    log.info(
        "Ladder created: event=%r racers=%d matches=%d bye=%s",
        state.event_name,
        len(racers),
        len(matches),
        bye.raw if bye else None,
    )
    return state


def try_finalize(state: LadderState) -> bool:
    """Crown the champion once the round is decided and one racer is left."""
    if state.complete or not state.all_decided():
        return False

    advancing = state.advancing()
    if len(advancing) == 1:
        state.complete = True
        state.champion = advancing[0]
        log.info("Ladder %r complete: champion=%s", state.event_name, state.champion.raw)
        return True
    return False


def declare_winner(state: LadderState, match_index, side: str) -> Match:
    if state.complete:
        raise AlreadyComplete()

    try:
        idx = int(match_index)
    except (TypeError, ValueError):
        raise InvalidMatchIndex()
    if idx < 0 or idx >= len(state.matches):
        raise InvalidMatchIndex()
    if side not in ("a", "b"):
        raise InvalidSide()

    match = state.matches[idx]
    match.winner = match.a if side == "a" else match.b
    log.debug("Round %d race %d winner=%s", state.round, idx + 1, match.winner.raw)

    # a single remaining racer ends the event without an extra "next round" click
    try_finalize(state)
    return match


def next_round_available(state: LadderState) -> bool:
    """True when "Start Round N" makes sense (2+ racers would remain)."""
    return not state.complete and state.all_decided() and len(state.advancing()) > 1


def advance_round(state: LadderState, rng: Optional[random.Random] = None) -> LadderState:
    if state.complete:
        raise AlreadyComplete()
    if not state.all_decided():
        raise NotAllDecided()

    advancing = state.advancing()
    if len(advancing) == 1:
        try_finalize(state)
        return state

    state.round += 1
    matches, bye = build_matches(advancing, state.bye_history, rng)
    state.matches = matches
    state.bye = bye
    if bye is not None:
        state.bye_history.append(bye.raw)

    log.info(
        "Ladder %r advanced to round %d: matches=%d bye=%s",
        state.event_name,
        state.round,
        len(matches),
        bye.raw if bye else None,
    )
    return state


# -----------------------------
# Button actions
# -----------------------------
NEXT_ROUND_ID = "next_round"
# custom_id patterns the button classes register with discord.py
WIN_ACTION_TEMPLATE = r"win:(?P<index>\d+):(?P<side>[a-z]+)"
NEXT_ROUND_TEMPLATE = NEXT_ROUND_ID


def win_action_id(match_index: int, side: str) -> str:
    return f"win:{match_index}:{side}"


def parse_ladder_action(custom_id: str) -> Optional[Tuple[str, Optional[int], Optional[str]]]:
    """
    Decode a ladder button id.

    Returns ("next_round", None, None), ("win", index, side), or None when
    the id isn't a ladder action. Malformed win ids raise InvalidMatchIndex.
    """
    if custom_id == NEXT_ROUND_ID:
        return ("next_round", None, None)
    if not custom_id.startswith("win:"):
        return None

    parts = custom_id.split(":")
    if len(parts) != 3:
        raise InvalidMatchIndex()
    try:
        idx = int(parts[1])
    except ValueError:
        raise InvalidMatchIndex()
    return ("win", idx, parts[2])


# -----------------------------
# Registry
# -----------------------------
class LadderRegistry:
    """Active ladders by message id. In memory only; restarts drop them."""

    def __init__(self, rng: Optional[random.Random] = None):
        self._ladders: Dict[int, LadderState] = {}
        self._lock = threading.RLock()
        self._rng = rng

    def __len__(self) -> int:
        return len(self._ladders)

    def __contains__(self, message_id: int) -> bool:
        return message_id in self._ladders

    def add(self, message_id: int, state: LadderState) -> None:
        with self._lock:
            self._ladders[message_id] = state

    def get(self, message_id: int) -> LadderState:
        with self._lock:
            state = self._ladders.get(message_id)
        if state is None:
            raise LadderNotFound()
        return state

    def remove(self, message_id: int) -> Optional[LadderState]:
        with self._lock:
            return self._ladders.pop(message_id, None)

    def clear(self) -> int:
        with self._lock:
            n = len(self._ladders)
            self._ladders.clear()
        return n

    def declare_winner(self, message_id: int, match_index: int, side: str) -> LadderState:
        with self._lock:
            state = self.get(message_id)
            declare_winner(state, match_index, side)
            return state

    def advance_round(self, message_id: int) -> LadderState:
        with self._lock:
            state = self.get(message_id)
            return advance_round(state, self._rng)
