"""Smoke tests for core/ladder_image.py."""

import io
import random

from PIL import Image

from core.bracket import advance_round, create_ladder, declare_winner
from core.ladder_image import render_ladder_card

PNG_MAGIC = b"\x89PNG\r\n\x1a\n"


def test_round_one_card():
    state = create_ladder("Sunday Grudge Night", ["Alice", "Bob", "Carol", "Dave", "Eve"], rng=random.Random(1))
    png = render_ladder_card(state)
    assert png.startswith(PNG_MAGIC)

    img = Image.open(io.BytesIO(png))
    assert img.width == 1100


def test_card_grows_with_rows():
    small = create_ladder("A", ["1", "2"], rng=random.Random(1))
    big = create_ladder("B", [str(i) for i in range(12)], rng=random.Random(1))
    h_small = Image.open(io.BytesIO(render_ladder_card(small))).height
    h_big = Image.open(io.BytesIO(render_ladder_card(big))).height
    assert h_big > h_small


def test_champion_card():
    state = create_ladder("Final", ["Alice", "Bob", "Carol"], rng=random.Random(2))
    declare_winner(state, 0, "a")
    advance_round(state, random.Random(2))
    declare_winner(state, 0, "b")
    assert state.complete
    assert render_ladder_card(state).startswith(PNG_MAGIC)
