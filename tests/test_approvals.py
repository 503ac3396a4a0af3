"""Tests for core/approvals.py: submission intake and moderator decisions."""

import asyncio

import pytest

from core.approvals import (
    APPROVE,
    DENY,
    ApprovalWorkflow,
    RoleSyncCollaborator,
    parse_approval_action,
    parse_measurement,
    ET_SUFFIXES,
    MPH_SUFFIXES,
)
from core.cooldowns import HOUR_MS, CooldownTracker
from core.db import MemoryDocumentStore
from core.errors import (
    CooldownActive,
    DuplicatePending,
    InvalidCategory,
    InvalidDecision,
    InvalidValue,
    ProofRequired,
    SlipNotFound,
)
from core.leaderboard import LeaderboardStore

PROOF = "https://cdn.example.com/slip.png"


class FakeRoleSync(RoleSyncCollaborator):
    def __init__(self, fail=False):
        self.calls = []
        self.fail = fail

    async def reconcile(self, member_ids):
        self.calls.append(set(member_ids))
        if self.fail:
            raise RuntimeError("discord is down")


def make_workflow(store=None, **kwargs):
    store = store or MemoryDocumentStore()
    lb = LeaderboardStore(store)
    ct = CooldownTracker(store)
    return ApprovalWorkflow(store, lb, ct, **kwargs)


def resolve(wf, slip_id, decision=APPROVE, moderator="mod", now=1_000):
    return asyncio.run(wf.resolve(slip_id, decision, moderator, now=now))


# ============================================================================
# parse_measurement
# ============================================================================


class TestParseMeasurement:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("10.52", ("10.52", 10.52)),
            (" 10.52 ", ("10.52", 10.52)),
            ("10,52", ("10.52", 10.52)),
            ("10.52s", ("10.52", 10.52)),
            ("10.52 sec", ("10.52", 10.52)),
            (".98", ("0.98", 0.98)),
            ("9", ("9", 9.0)),
        ],
    )
    def test_et(self, raw, expected):
        assert parse_measurement(raw, ET_SUFFIXES) == expected

    def test_mph_suffix(self):
        assert parse_measurement("131.7 MPH", MPH_SUFFIXES) == ("131.7", 131.7)

    @pytest.mark.parametrize("raw", ["", "   ", "abc", "-10.5", "0", "0.000", "inf", "nan", "1e3", "10.5.2", None])
    def test_rejects(self, raw):
        with pytest.raises(InvalidValue):
            parse_measurement(raw, ET_SUFFIXES)


# ============================================================================
# submit
# ============================================================================


class TestSubmit:
    def test_creates_pending_slip(self):
        wf = make_workflow()
        slip = wf.submit(42, "track", "10.52", "131.7", PROOF, now=5)
        assert slip.user_id == "42"
        assert slip.category == "track"
        assert slip.et_value == 10.52
        assert slip.mph_value == 131.7
        assert slip.submitted_at == 5
        assert wf.get(slip.slip_id) == slip
        assert len(slip.slip_id) >= 16

    def test_slip_ids_are_unique(self):
        wf = make_workflow(require_proof=False)
        ids = {wf.submit(i, "track", "10", "130").slip_id for i in range(50)}
        assert len(ids) == 50

    def test_bad_values(self):
        wf = make_workflow()
        with pytest.raises(InvalidValue):
            wf.submit(1, "track", "fast", "130", PROOF)
        with pytest.raises(InvalidValue):
            wf.submit(1, "track", "10.5", "-3", PROOF)

    def test_bad_category(self):
        wf = make_workflow()
        with pytest.raises(InvalidCategory):
            wf.submit(1, "drift", "10.5", "130", PROOF)

    def test_proof_required(self):
        wf = make_workflow(require_proof=True)
        with pytest.raises(ProofRequired):
            wf.submit(1, "track", "10.5", "130")

    def test_proof_optional_when_disabled(self):
        wf = make_workflow(require_proof=False)
        assert wf.submit(1, "track", "10.5", "130").proof_url is None

    def test_one_pending_per_user_and_category(self):
        wf = make_workflow()
        wf.submit(1, "track", "10.5", "130", PROOF)
        with pytest.raises(DuplicatePending):
            wf.submit(1, "track", "10.4", "131", PROOF)
        # other category is fine
        wf.submit(1, "street", "12.0", "115", PROOF)
        assert len(wf.pending()) == 2

    def test_pending_survives_restart(self):
        store = MemoryDocumentStore()
        slip = make_workflow(store).submit(1, "track", "10.5", "130", PROOF, now=9)
        again = make_workflow(store)
        assert again.get(slip.slip_id) == slip
        assert store.load("pending")["pending"][slip.slip_id]["et"] == "10.5"


class TestCooldownGate:
    def test_rejected_within_24h_of_approval(self):
        wf = make_workflow()
        slip = wf.submit(1, "track", "10.5", "130", PROOF, now=0)
        resolve(wf, slip.slip_id, now=1_000)

        with pytest.raises(CooldownActive) as exc:
            wf.submit(1, "track", "10.4", "130", PROOF, now=1_000 + HOUR_MS)
        assert exc.value.remaining_ms == 23 * HOUR_MS

    def test_allowed_after_24h(self):
        wf = make_workflow()
        slip = wf.submit(1, "track", "10.5", "130", PROOF, now=0)
        resolve(wf, slip.slip_id, now=1_000)
        wf.submit(1, "track", "10.4", "130", PROOF, now=1_000 + 24 * HOUR_MS)

    def test_deny_does_not_start_cooldown(self):
        wf = make_workflow()
        slip = wf.submit(1, "track", "10.5", "130", PROOF, now=0)
        resolve(wf, slip.slip_id, DENY, now=1_000)
        wf.submit(1, "track", "10.4", "130", PROOF, now=2_000)


# ============================================================================
# resolve
# ============================================================================


class TestResolve:
    def test_approve_inserts_entry(self):
        wf = make_workflow()
        slip = wf.submit(1, "track", "10.5", "130", PROOF, now=0)
        res = resolve(wf, slip.slip_id, moderator=77, now=500)

        assert res.approved
        assert res.rank == 1
        assert res.entry.user_id == "1"
        assert res.entry.approved_by == "77"
        assert res.entry.approved_at == 500
        assert res.entry.proof_url == PROOF
        assert wf.get(slip.slip_id) is None
        assert wf.leaderboard.rank_of("track", 1) == 1

    def test_deny_discards(self):
        wf = make_workflow()
        slip = wf.submit(1, "track", "10.5", "130", PROOF, now=0)
        res = resolve(wf, slip.slip_id, DENY)
        assert not res.approved
        assert res.entry is None
        assert wf.pending() == []
        assert wf.leaderboard.board("track") == []

    def test_second_resolve_is_not_found(self):
        wf = make_workflow()
        slip = wf.submit(1, "track", "10.5", "130", PROOF, now=0)
        resolve(wf, slip.slip_id)
        with pytest.raises(SlipNotFound):
            resolve(wf, slip.slip_id)
        with pytest.raises(SlipNotFound):
            resolve(wf, slip.slip_id, DENY)

    def test_unknown_slip(self):
        with pytest.raises(SlipNotFound):
            resolve(make_workflow(), "nope")

    def test_unknown_decision(self):
        wf = make_workflow()
        slip = wf.submit(1, "track", "10.5", "130", PROOF, now=0)
        with pytest.raises(InvalidDecision):
            resolve(wf, slip.slip_id, "maybe")
        assert wf.get(slip.slip_id) is not None

    def test_outside_top_ten_returns_no_entry(self):
        wf = make_workflow(require_proof=False)
        for i in range(10):
            s = wf.submit(i, "street", f"{11 + i / 10:.1f}", "120", now=0)
            resolve(wf, s.slip_id, now=10 + i)

        slow = wf.submit("slow", "street", "15.0", "95", now=100)
        res = resolve(wf, slow.slip_id, now=200)
        assert res.approved
        assert res.entry is None
        assert res.rank is None
        assert len(res.board) == 10
        # cooldown still applies to a run that missed the cut
        assert not wf.cooldowns.check_allowed("slow", "street", now=300)

    def test_display_name_resolved(self):
        async def names(user_id):
            return {"1": "Big Mike"}.get(user_id)

        wf = make_workflow(name_resolver=names)
        slip = wf.submit(1, "track", "10.5", "130", PROOF, now=0)
        res = resolve(wf, slip.slip_id)
        assert res.entry.display_name == "Big Mike"
        assert wf.leaderboard.board("track")[0].display_name == "Big Mike"
        assert res.board[0].display_name == "Big Mike"
        assert wf.store.load("leaderboard")["track"][0]["display_name"] == "Big Mike"

    def test_name_lookup_failure_keeps_approval(self):
        async def names(user_id):
            raise RuntimeError("lookup failed")

        wf = make_workflow(name_resolver=names)
        slip = wf.submit(1, "track", "10.5", "130", PROOF, now=0)
        res = resolve(wf, slip.slip_id)
        assert res.entry.display_name == "User 1"
        assert wf.leaderboard.rank_of("track", 1) == 1

    def test_role_sync_gets_board_members(self):
        sync = FakeRoleSync()
        wf = make_workflow(role_sync=sync)
        s1 = wf.submit(1, "track", "10.5", "130", PROOF, now=0)
        s2 = wf.submit(2, "street", "12.5", "110", PROOF, now=0)
        resolve(wf, s1.slip_id)
        resolve(wf, s2.slip_id)
        assert sync.calls == [{"1"}, {"1", "2"}]

    def test_role_sync_failure_does_not_roll_back(self):
        wf = make_workflow(role_sync=FakeRoleSync(fail=True))
        slip = wf.submit(1, "track", "10.5", "130", PROOF, now=0)
        res = resolve(wf, slip.slip_id, now=1_000)
        assert res.rank == 1
        assert wf.get(slip.slip_id) is None
        assert not wf.cooldowns.check_allowed("1", "track", now=2_000)

    def test_deny_skips_role_sync(self):
        sync = FakeRoleSync()
        wf = make_workflow(role_sync=sync)
        slip = wf.submit(1, "track", "10.5", "130", PROOF, now=0)
        resolve(wf, slip.slip_id, DENY)
        assert sync.calls == []


class TestParseApprovalAction:
    def test_approve(self):
        assert parse_approval_action("top10_approve:abc-123") == (APPROVE, "abc-123")

    def test_deny(self):
        assert parse_approval_action("top10_deny:xyz") == (DENY, "xyz")

    def test_other(self):
        assert parse_approval_action("win:0:a") is None
