"""Tests for the ladder and approval button items in cogs/."""

import asyncio
import random
import re

import pytest
from discord.ui import Button

from cogs.ladder_cog import LadderWinButton, NextRoundButton, build_ladder_view
from cogs.top10_cog import ApprovalButton, build_approval_view
from core.approvals import APPROVAL_ACTION_TEMPLATE, APPROVE, DENY, parse_approval_action
from core.bracket import NEXT_ROUND_TEMPLATE, WIN_ACTION_TEMPLATE, create_ladder, declare_winner


def rebuild(cls, template, custom_id):
    match = re.fullmatch(template, custom_id)
    assert match is not None
    return asyncio.run(cls.from_custom_id(None, Button(custom_id=custom_id), match))


def in_loop(fn, *args):
    # View() wants a running event loop
    async def _run():
        return fn(*args)

    return asyncio.run(_run())


# ============================================================================
# Ladder buttons
# ============================================================================


class TestLadderButtons:
    def test_win_button_from_custom_id(self):
        item = rebuild(LadderWinButton, WIN_ACTION_TEMPLATE, "win:3:b")
        assert (item.index, item.side) == (3, "b")
        assert item.custom_id == "win:3:b"

    def test_next_round_from_custom_id(self):
        item = rebuild(NextRoundButton, NEXT_ROUND_TEMPLATE, "next_round")
        assert item.custom_id == "next_round"

    def test_view_has_one_button_per_side(self):
        state = create_ladder("Test", [f"R{i}" for i in range(6)], rng=random.Random(1))
        view = in_loop(build_ladder_view, state)
        ids = [item.custom_id for item in view.children]
        assert ids == ["win:0:a", "win:0:b", "win:1:a", "win:1:b", "win:2:a", "win:2:b"]
        assert all(isinstance(item, LadderWinButton) for item in view.children)
        assert not view.is_finished()

    def test_rows_hold_five_buttons(self):
        state = create_ladder("Test", [f"R{i}" for i in range(12)], rng=random.Random(1))
        view = in_loop(build_ladder_view, state)
        rows = [item.row for item in view.children]
        assert rows == [0] * 5 + [1] * 5 + [2] * 2

    def test_next_round_button_once_decided(self):
        state = create_ladder("Test", ["A", "B", "C", "D"], rng=random.Random(1))
        declare_winner(state, 0, "a")
        declare_winner(state, 1, "b")
        view = in_loop(build_ladder_view, state)
        last = view.children[-1]
        assert isinstance(last, NextRoundButton)
        assert last.item.label == "Start Round 2"

    def test_finished_ladder_buttons_disabled(self):
        state = create_ladder("Test", ["A", "B"], rng=random.Random(1))
        declare_winner(state, 0, "a")
        view = in_loop(build_ladder_view, state)
        assert all(item.item.disabled for item in view.children)
        assert not any(isinstance(item, NextRoundButton) for item in view.children)


# ============================================================================
# Approval buttons
# ============================================================================


class TestApprovalButtons:
    @pytest.mark.parametrize("custom_id,decision", [("top10_approve:Ab_9-x", APPROVE), ("top10_deny:Ab_9-x", DENY)])
    def test_from_custom_id(self, custom_id, decision):
        item = rebuild(ApprovalButton, APPROVAL_ACTION_TEMPLATE, custom_id)
        assert (item.decision, item.slip_id) == (decision, "Ab_9-x")

    def test_template_agrees_with_decoder(self):
        assert re.fullmatch(APPROVAL_ACTION_TEMPLATE, "top10_approve:") is None
        assert re.fullmatch(APPROVAL_ACTION_TEMPLATE, "win:0:a") is None
        m = re.fullmatch(APPROVAL_ACTION_TEMPLATE, "top10_deny:abc")
        assert parse_approval_action(m.group(0)) == (DENY, "abc")

    def test_view(self):
        view = in_loop(build_approval_view, "slip1")
        assert [item.custom_id for item in view.children] == ["top10_approve:slip1", "top10_deny:slip1"]
        assert [item.item.label for item in view.children] == ["Approve", "Deny"]
