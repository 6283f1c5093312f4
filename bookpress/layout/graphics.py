"""
Renderers for the overlay elements placed on covers and spreads.

Every function returns a new Pillow image sized in print pixels; nothing
here knows where the element ends up on the page.
"""

from __future__ import annotations

import hashlib
import logging
import random
from functools import lru_cache
from pathlib import Path
from typing import Sequence

import qrcode
from PIL import Image, ImageDraw, ImageFont
from qrcode.constants import ERROR_CORRECT_M

logger = logging.getLogger(__name__)

TEXT_COLOR = (47, 42, 64, 255)
PANEL_COLOR = (255, 255, 255, 205)
TITLE_COLOR = (255, 255, 255, 255)
TITLE_STROKE = (47, 42, 64, 255)

FONT_SEARCH_ROOTS = (
    Path("/usr/share/fonts"),
    Path("/usr/local/share/fonts"),
    Path("/Library/Fonts"),
    Path("/System/Library/Fonts"),
    Path.home() / "Library" / "Fonts",
    Path("C:/Windows/Fonts"),
)

REGULAR_FONT_CANDIDATES = ("NotoSans-Regular.ttf", "DejaVuSans.ttf", "Arial.ttf", "LiberationSans-Regular.ttf")
BOLD_FONT_CANDIDATES = ("NotoSans-Bold.ttf", "DejaVuSans-Bold.ttf", "Arial Bold.ttf", "LiberationSans-Bold.ttf")


# ---------------------------------------------------------------------------- fonts


@lru_cache(maxsize=None)
def _find_font_file(candidates: tuple[str, ...]) -> Path | None:
    for root in FONT_SEARCH_ROOTS:
        if not root.is_dir():
            continue
        for candidate in candidates:
            direct = root / candidate
            if direct.is_file():
                return direct
            for match in root.rglob(candidate):
                return match
    return None


@lru_cache(maxsize=64)
def load_font(size_px: int, *, bold: bool = False) -> ImageFont.FreeTypeFont | ImageFont.ImageFont:
    """
    Load a sans-serif font at ``size_px``, falling back to Pillow's bundled font.
    """
    font_file = _find_font_file(BOLD_FONT_CANDIDATES if bold else REGULAR_FONT_CANDIDATES)
    if font_file is not None:
        try:
            return ImageFont.truetype(str(font_file), size_px)
        except OSError as exc:
            logger.warning("Could not load font %s: %s", font_file, exc)
    return ImageFont.load_default(size=size_px)


def font_size_for_age(age: int | None, dpi: int) -> int:
    """Younger readers get larger type. Returns pixels at ``dpi``."""
    if age is None:
        points = 18
    elif age <= 3:
        points = 22
    elif age <= 6:
        points = 18
    elif age <= 9:
        points = 16
    else:
        points = 14
    return round(points * dpi / 72)


# ---------------------------------------------------------------------------- text


def _text_width(font, text: str) -> float:
    return font.getlength(text)


def wrap_text(text: str, font, max_width: int) -> list[str]:
    """Greedy word wrap measured with ``font``."""
    lines: list[str] = []
    for raw_line in text.splitlines() or [""]:
        words = raw_line.split()
        if not words:
            lines.append("")
            continue
        current = words[0]
        for word in words[1:]:
            candidate = f"{current} {word}"
            if _text_width(font, candidate) <= max_width:
                current = candidate
            else:
                lines.append(current)
                current = word
        lines.append(current)
    return lines


def _line_height(font) -> int:
    left, top, right, bottom = font.getbbox("Hg")
    return int((bottom - top) * 1.45) or 1


def render_text_block(
    paragraphs: Sequence[str],
    *,
    width: int,
    font_size: int,
    align: str = "left",
    padding: int | None = None,
    panel: bool = True,
) -> Image.Image:
    """
    Render ``paragraphs`` into one RGBA block ``width`` pixels wide.

    ``align`` is ``left``, ``right`` (right-to-left scripts) or ``center``.
    """
    if align not in {"left", "right", "center"}:
        raise ValueError(f"Unsupported alignment {align!r}.")

    font = load_font(font_size)
    pad = font_size // 2 if padding is None else padding
    inner_width = max(1, width - 2 * pad)
    line_height = _line_height(font)
    paragraph_gap = line_height // 2

    laid_out: list[list[str]] = [
        wrap_text(paragraph, font, inner_width) for paragraph in paragraphs if paragraph.strip()
    ]
    line_count = sum(len(lines) for lines in laid_out)
    height = 2 * pad + line_count * line_height + max(0, len(laid_out) - 1) * paragraph_gap

    block = Image.new("RGBA", (width, max(height, 2 * pad + line_height)), (0, 0, 0, 0))
    draw = ImageDraw.Draw(block)
    if panel:
        draw.rounded_rectangle(
            (0, 0, block.width - 1, block.height - 1),
            radius=pad,
            fill=PANEL_COLOR,
        )

    y = pad
    for index, lines in enumerate(laid_out):
        if index:
            y += paragraph_gap
        for line in lines:
            line_width = _text_width(font, line)
            if align == "right":
                x = pad + inner_width - line_width
            elif align == "center":
                x = pad + (inner_width - line_width) / 2
            else:
                x = pad
            draw.text((x, y), line, font=font, fill=TEXT_COLOR)
            y += line_height
    return block


def render_title(text: str, *, width: int, font_size: int, max_lines: int = 3) -> Image.Image:
    """
    Centred, outlined cover title that fits ``width``.

    The font shrinks until the title wraps to at most ``max_lines`` lines.
    """
    size = font_size
    font = load_font(size, bold=True)
    lines = wrap_text(text, font, width)
    while len(lines) > max_lines and size > 12:
        size = int(size * 0.9)
        font = load_font(size, bold=True)
        lines = wrap_text(text, font, width)

    stroke = max(1, size // 18)
    line_height = _line_height(font)
    image = Image.new("RGBA", (width, line_height * len(lines) + 2 * stroke), (0, 0, 0, 0))
    draw = ImageDraw.Draw(image)
    for row, line in enumerate(lines):
        x = (width - _text_width(font, line)) / 2
        draw.text(
            (x, stroke + row * line_height),
            line,
            font=font,
            fill=TITLE_COLOR,
            stroke_width=stroke,
            stroke_fill=TITLE_STROKE,
        )
    return image


# ---------------------------------------------------------------------------- codes


def render_qr(data: str, size_px: int) -> Image.Image:
    """
    QR graphic encoding ``data`` verbatim, scaled to ``size_px`` square.
    """
    if not data:
        raise ValueError("QR payload must be a non-empty string.")

    qr = qrcode.QRCode(error_correction=ERROR_CORRECT_M, box_size=10, border=4)
    qr.add_data(data)
    qr.make(fit=True)
    image = qr.make_image(fill_color="black", back_color="white").convert("RGB")
    return image.resize((size_px, size_px), Image.NEAREST)


def render_barcode(seed_text: str, width: int, height: int) -> Image.Image:
    """
    Decorative barcode. The bar pattern is derived from ``seed_text`` so the
    same order always gets the same graphic; it is not meant to be scanned.
    """
    image = Image.new("RGB", (width, height), "white")
    if width < 4 or height < 4:
        return image

    seed = int.from_bytes(hashlib.sha256(seed_text.encode("utf-8")).digest()[:8], "big")
    rng = random.Random(seed)
    draw = ImageDraw.Draw(image)
    quiet = max(1, width // 20)
    unit = max(1, width // 95)
    bar_bottom = int(height * 0.82)
    x = quiet
    black = True
    while x < width - quiet:
        span = unit * rng.randint(1, 4)
        if black:
            draw.rectangle((x, quiet, min(x + span, width - quiet) - 1, bar_bottom), fill="black")
        x += span
        black = not black

    font = load_font(max(8, height - bar_bottom - 2))
    digits = "".join(str(rng.randint(0, 9)) for _ in range(13))
    text_x = (width - _text_width(font, digits)) / 2
    draw.text((text_x, bar_bottom + 1), digits, font=font, fill="black")
    return image


# ---------------------------------------------------------------------------- branding


def render_logo(width: int, *, brand_name: str, logo_path: str | Path | None = None) -> Image.Image:
    """
    Back-cover logo scaled to ``width``; a wordmark when no logo file is configured.
    """
    if logo_path:
        with Image.open(logo_path) as source:
            logo = source.convert("RGBA")
        height = max(1, round(logo.height * width / logo.width))
        return logo.resize((width, height), Image.LANCZOS)

    size = max(8, width // max(3, len(brand_name)))
    font = load_font(size, bold=True)
    while _text_width(font, brand_name) > width and size > 8:
        size -= 2
        font = load_font(size, bold=True)
    line_height = _line_height(font)
    image = Image.new("RGBA", (width, line_height), (0, 0, 0, 0))
    draw = ImageDraw.Draw(image)
    x = (width - _text_width(font, brand_name)) / 2
    draw.text((x, 0), brand_name, font=font, fill=TEXT_COLOR)
    return image


def render_metadata_strip(order_id: str, spread_index: int, width: int, height: int) -> Image.Image:
    """
    Printer's strip for the trailing edge of a spread: order id, spread index
    and a small QR, drawn along the strip and rotated to read bottom to top.
    """
    if width <= 0:
        raise ValueError("Metadata strip width must be positive.")

    # Laid out horizontally, then rotated into a width x height strip.
    horizontal = Image.new("RGB", (height, width), "white")
    draw = ImageDraw.Draw(horizontal)
    pad = max(1, width // 8)
    code_size = max(1, width - 2 * pad)

    font = load_font(max(6, int(width * 0.55)))
    label = f"ORDER #{order_id}  |  SPREAD {spread_index:02d}"
    text_y = (width - _line_height(font)) / 2
    draw.text((pad * 4 + code_size, text_y), label, font=font, fill="black")

    tick_x = height - pad * 4
    for offset in range(0, 4 * pad, pad * 2):
        draw.line((tick_x + offset, pad, tick_x + offset, width - pad), fill="black", width=max(1, pad // 2))

    horizontal.paste(render_qr(order_id, code_size), (pad, pad))
    return horizontal.rotate(90, expand=True)
