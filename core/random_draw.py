"""No-repeat random draws for dial-in ET picks.

Values are quantized to integer units of ``10**-precision`` so range math and
"already drawn" checks are exact. A value drawn for a (scope, range) can't be
drawn again for that same (scope, range) until the window has passed.
"""

from __future__ import annotations

import logging
import secrets
import threading
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, DecimalException
from typing import Dict, Optional, Tuple

from .cooldowns import now_ms
from .errors import Exhausted, InvalidRange, TemporarilyExhausted

log = logging.getLogger(__name__)

DEFAULT_WINDOW_MS = 60 * 60 * 1000
DEFAULT_PRECISION = 2
MAX_PRECISION = 6
# bounds past this are refused before scaling
MAX_MAGNITUDE = Decimal(10) ** 12

BucketKey = Tuple[str, int, int, int]


class RandomSource:
    """Uniform integers from the OS CSPRNG."""

    def randint(self, lo: int, hi: int) -> int:
        return lo + secrets.randbelow(hi - lo + 1)


def quantize(value, precision: int = DEFAULT_PRECISION) -> int:
    """5.02 at precision 2 -> 502 (half-up)."""
    try:
        d = Decimal(str(value).strip())
    except DecimalException:
        raise InvalidRange(f"`{value}` is not a number.")
    if not d.is_finite():
        raise InvalidRange(f"`{value}` is not a finite number.")
    if abs(d) >= MAX_MAGNITUDE:
        raise InvalidRange(f"`{value}` is too large.")
    try:
        return int(d.scaleb(precision).to_integral_value(rounding=ROUND_HALF_UP))
    except DecimalException:
        raise InvalidRange(f"`{value}` can't be used at {precision} decimals.")


def format_quantized(q: int, precision: int = DEFAULT_PRECISION) -> str:
    return f"{Decimal(q).scaleb(-precision):.{precision}f}"


def retry_budget(total_possible: int) -> int:
    return min(max(100, 20 * total_possible), 10_000)


@dataclass(frozen=True)
class DrawResult:
    text: str
    quantized: int
    low: int
    high: int
    precision: int
    total_possible: int
    remaining: int

    @property
    def low_text(self) -> str:
        return format_quantized(self.low, self.precision)

    @property
    def high_text(self) -> str:
        return format_quantized(self.high, self.precision)


class DedupRandomGenerator:
    def __init__(
        self,
        source: Optional[RandomSource] = None,
        window_ms: int = DEFAULT_WINDOW_MS,
    ):
        self.source = source or RandomSource()
        self.window_ms = int(window_ms)
        self._buckets: Dict[BucketKey, Dict[int, int]] = {}
        self._lock = threading.RLock()

    def _purge(self, now: int) -> None:
        cutoff = now - self.window_ms
        for key in list(self._buckets):
            bucket = self._buckets[key]
            for value, ts in list(bucket.items()):
                if ts <= cutoff:
                    del bucket[value]
            if not bucket:
                del self._buckets[key]

    def history_size(self, scope: str, low: int, high: int, precision: int) -> int:
        with self._lock:
            return len(self._buckets.get((scope, low, high, precision), {}))

    def draw(
        self,
        scope: str,
        lo,
        hi,
        precision: int = DEFAULT_PRECISION,
        now: Optional[int] = None,
    ) -> DrawResult:
        # bool is an int subclass; True is not a precision
        if isinstance(precision, bool) or not isinstance(precision, int):
            raise InvalidRange(f"Decimals must be between 0 and {MAX_PRECISION}.")
        if precision < 0 or precision > MAX_PRECISION:
            raise InvalidRange(f"Decimals must be between 0 and {MAX_PRECISION}.")
        now = now_ms() if now is None else now

        q_lo, q_hi = quantize(lo, precision), quantize(hi, precision)
        low, high = min(q_lo, q_hi), max(q_lo, q_hi)
        if high < low:
            raise InvalidRange()
        total = high - low + 1
        key = (scope, low, high, precision)

        with self._lock:
            self._purge(now)
            bucket = self._buckets.setdefault(key, {})

            if len(bucket) >= total:
                raise Exhausted(total)

            for _ in range(retry_budget(total)):
                value = self.source.randint(low, high)
                if value not in bucket:
                    break
            else:
                log.warning(
                    "ET draw retry budget spent: scope=%s range=%d..%d used=%d/%d",
                    scope, low, high, len(bucket), total,
                )
                raise TemporarilyExhausted(total)

            bucket[value] = now
            remaining = total - len(bucket)

        log.debug("ET draw scope=%s range=%d..%d -> %d", scope, low, high, value)
        return DrawResult(
            text=format_quantized(value, precision),
            quantized=value,
            low=low,
            high=high,
            precision=precision,
            total_possible=total,
            remaining=remaining,
        )
