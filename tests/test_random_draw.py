"""Tests for core/random_draw.py: quantizing and no-repeat draws."""

import pytest

from core.errors import Exhausted, InvalidRange, TemporarilyExhausted
from core.random_draw import (
    DedupRandomGenerator,
    RandomSource,
    format_quantized,
    quantize,
    retry_budget,
)

MINUTE = 60_000


class StuckSource(RandomSource):
    """Always returns the low end of the range."""

    def __init__(self):
        self.calls = 0

    def randint(self, lo, hi):
        self.calls += 1
        return lo


class TestQuantize:
    @pytest.mark.parametrize(
        "value,precision,expected",
        [
            ("5.02", 2, 502),
            (5.02, 2, 502),
            ("5.005", 2, 501),
            ("10", 0, 10),
            ("10.5", 0, 11),
            ("-1.25", 1, -13),
            (" 7.1 ", 3, 7100),
        ],
    )
    def test_values(self, value, precision, expected):
        assert quantize(value, precision) == expected

    @pytest.mark.parametrize("value", ["abc", "", "inf", "NaN"])
    def test_rejects_non_numbers(self, value):
        with pytest.raises(InvalidRange):
            quantize(value, 2)

    @pytest.mark.parametrize("value", ["1e999999", "-1e999999", "1e12", "123456789012345"])
    def test_rejects_huge_values(self, value):
        with pytest.raises(InvalidRange):
            quantize(value, 2)

    def test_largest_allowed_value(self):
        assert quantize("999999999999.99", 2) == 99999999999999

    def test_format(self):
        assert format_quantized(502, 2) == "5.02"
        assert format_quantized(500, 2) == "5.00"
        assert format_quantized(7, 0) == "7"
        assert format_quantized(-13, 1) == "-1.3"


class TestRandomSource:
    def test_inclusive_bounds(self):
        src = RandomSource()
        seen = {src.randint(1, 3) for _ in range(300)}
        assert seen == {1, 2, 3}


class TestDraw:
    def test_three_values_then_exhausted(self):
        gen = DedupRandomGenerator()
        drawn = [gen.draw("guild:1", "5.00", "5.02", now=0).text for _ in range(3)]
        assert sorted(drawn) == ["5.00", "5.01", "5.02"]

        with pytest.raises(Exhausted) as exc:
            gen.draw("guild:1", "5.00", "5.02", now=0)
        assert exc.value.total_possible == 3

    def test_bounds_are_order_independent(self):
        gen = DedupRandomGenerator()
        res = gen.draw("s", "5.02", "5.00", now=0)
        assert (res.low, res.high) == (500, 502)
        assert res.low_text == "5.00"
        assert res.high_text == "5.02"
        # same bucket either way round
        gen.draw("s", "5.00", "5.02", now=0)
        gen.draw("s", 5.02, 5.0, now=0)
        with pytest.raises(Exhausted):
            gen.draw("s", "5.00", "5.02", now=0)

    def test_result_fields(self):
        gen = DedupRandomGenerator()
        res = gen.draw("s", "10", "10.5", precision=1, now=0)
        assert res.total_possible == 6
        assert res.remaining == 5
        assert res.precision == 1
        assert 100 <= res.quantized <= 105
        assert res.text == format_quantized(res.quantized, 1)

    def test_single_value_range(self):
        gen = DedupRandomGenerator()
        assert gen.draw("s", "9.99", "9.99", now=0).text == "9.99"
        with pytest.raises(Exhausted):
            gen.draw("s", "9.99", "9.99", now=0)

    def test_scopes_are_independent(self):
        gen = DedupRandomGenerator()
        gen.draw("a", "1", "1", precision=0, now=0)
        assert gen.draw("b", "1", "1", precision=0, now=0).text == "1"

    def test_precision_makes_a_different_bucket(self):
        gen = DedupRandomGenerator()
        gen.draw("s", "1", "1", precision=0, now=0)
        assert gen.draw("s", "1", "1", precision=2, now=0).text == "1.00"

    def test_window_expiry(self):
        gen = DedupRandomGenerator(window_ms=60 * MINUTE)
        gen.draw("s", "1", "1", precision=0, now=0)
        with pytest.raises(Exhausted):
            gen.draw("s", "1", "1", precision=0, now=59 * MINUTE)
        assert gen.draw("s", "1", "1", precision=0, now=60 * MINUTE).text == "1"

    def test_expired_buckets_are_dropped(self):
        gen = DedupRandomGenerator(window_ms=MINUTE)
        gen.draw("s", "1", "5", precision=0, now=0)
        assert gen.history_size("s", 1, 5, 0) == 1
        gen.draw("other", "1", "5", precision=0, now=2 * MINUTE)
        assert gen.history_size("s", 1, 5, 0) == 0

    def test_temporarily_exhausted(self):
        src = StuckSource()
        gen = DedupRandomGenerator(source=src)
        assert gen.draw("s", "1", "2", precision=0, now=0).text == "1"

        src.calls = 0
        with pytest.raises(TemporarilyExhausted) as exc:
            gen.draw("s", "1", "2", precision=0, now=0)
        assert exc.value.total_possible == 2
        assert src.calls == retry_budget(2)
        # nothing recorded by the failed draw
        assert gen.history_size("s", 1, 2, 0) == 1

    @pytest.mark.parametrize("precision", [-1, 7, 1.5, True, False])
    def test_bad_precision(self, precision):
        with pytest.raises(InvalidRange):
            DedupRandomGenerator().draw("s", "1", "2", precision=precision)

    def test_bad_bound(self):
        with pytest.raises(InvalidRange):
            DedupRandomGenerator().draw("s", "fast", "2")

    def test_huge_bound(self):
        gen = DedupRandomGenerator()
        with pytest.raises(InvalidRange):
            gen.draw("s", "1e999999", "1", 2, now=0)
        assert gen.history_size("s", 100, 100, 2) == 0


class TestRetryBudget:
    def test_floor_and_cap(self):
        assert retry_budget(1) == 100
        assert retry_budget(50) == 1000
        assert retry_budget(10_000) == 10_000
