# core/ladder_image.py
# PNG "round card" attached to the ladder message: one row per race,
# winner boxes highlighted, bye run + event winner at the bottom.

import io
import math
import logging
from typing import Optional, Tuple

from PIL import Image, ImageDraw, ImageFont

from .bracket import LadderState, Racer

log = logging.getLogger(__name__)

CARD_WIDTH = 1100
ROW_HEIGHT = 70
HEADER_HEIGHT = 130
FOOTER_ROW = 70
MARGIN_X = 50

RED = (225, 30, 45, 255)
GOLD = (255, 204, 120, 255)
GREEN = (60, 200, 110, 255)
WHITE = (240, 240, 240, 255)
GREY = (120, 120, 130, 255)


def _load_fonts() -> Tuple[ImageFont.ImageFont, ImageFont.ImageFont]:
    try:
        return ImageFont.truetype("arial.ttf", 40), ImageFont.truetype("arial.ttf", 24)
    except Exception:
        return ImageFont.load_default(), ImageFont.load_default()


def create_background(width: int, height: int) -> Image.Image:
    """Dark card with a soft vertical fade."""
    img = Image.new("RGBA", (width, height), (5, 5, 8, 255))
    draw = ImageDraw.Draw(img)
    for y in range(height):
        shade = int(18 * math.sin(math.pi * y / max(1, height)))
        draw.line([(0, y), (width, y)], fill=(8 + shade, 8 + shade, 12 + shade, 255))
    return img


def _racer_box(
    draw: ImageDraw.ImageDraw,
    box: Tuple[int, int, int, int],
    racer: Racer,
    font,
    outline,
    crossed: bool = False,
) -> None:
    left, top, right, bottom = box
    draw.rounded_rectangle([left, top, right, bottom], 14, outline=outline, width=3)
    draw.text((left + 14, top + 12), racer.label, font=font, fill=WHITE)
    if crossed:
        pad = 4
        draw.line([(left + pad, top + pad), (right - pad, bottom - pad)], fill=GREY, width=2)


def render_ladder_card(state: LadderState) -> bytes:
    """Draw the current round of `state` and return PNG bytes."""
    rows = len(state.matches)
    extra = (1 if state.bye else 0) + (1 if state.complete else 0)
    height = HEADER_HEIGHT + ROW_HEIGHT * max(rows, 1) + FOOTER_ROW * extra + 40

    img = create_background(CARD_WIDTH, height)
    draw = ImageDraw.Draw(img)
    font_title, font_row = _load_fonts()

    draw.text((MARGIN_X, 24), state.event_name, font=font_title, fill=RED)
    draw.text((MARGIN_X, 80), f"Round {state.round}", font=font_row, fill=GOLD)

    col_w = (CARD_WIDTH - 2 * MARGIN_X - 140) // 2
    y = HEADER_HEIGHT

    for idx, m in enumerate(state.matches):
        top, bottom = y + 8, y + ROW_HEIGHT - 8
        draw.text((MARGIN_X, top + 12), f"Race {idx + 1}", font=font_row, fill=GREY)

        a_left = MARGIN_X + 120
        b_left = a_left + col_w + 40
        for racer, left in ((m.a, a_left), (m.b, b_left)):
            won = m.winner is not None and m.winner.raw == racer.raw
            lost = m.winner is not None and not won
            _racer_box(
                draw,
                (left, top, left + col_w, bottom),
                racer,
                font_row,
                GREEN if won else RED,
                crossed=lost,
            )
        draw.text((a_left + col_w + 8, top + 12), "vs", font=font_row, fill=GREY)
        y += ROW_HEIGHT

    champion: Optional[Racer] = state.champion if state.complete else None

    if state.bye:
        top = y + 8
        draw.text((MARGIN_X, top + 12), "Bye Run", font=font_row, fill=GREY)
        _racer_box(
            draw,
            (MARGIN_X + 120, top, MARGIN_X + 120 + col_w, top + ROW_HEIGHT - 16),
            state.bye,
            font_row,
            GOLD,
        )
        y += FOOTER_ROW

    if champion:
        top = y + 8
        draw.text(
            (MARGIN_X, top + 12),
            f"Event Winner: {champion.label}",
            font=font_title,
            fill=GOLD,
        )

    buf = io.BytesIO()
    img.convert("RGB").save(buf, format="PNG")
    buf.seek(0)
    return buf.getvalue()
