"""Symbol Renderer: payload -> raw two-tone QR raster via the qrcode library.

Module placement and Reed-Solomon encoding are delegated to ``qrcode``; this
module only turns the module matrix into pixels with the requested dot and
finder motifs.
"""

import math
from enum import Enum

import qrcode
import qrcode.constants
from qrcode.exceptions import DataOverflowError
from PIL import Image, ImageDraw

from qrforge.errors import SymbolError
from qrforge.logging import audit, get_logger, trace

log = get_logger("generator")

# Modules are drawn at no less than this many pixels, then scaled to the
# requested size, so dot shapes keep their form on small canvases.
_MIN_BOX = 8
_FINDER = 7


class ECCLevel(Enum):
    L = qrcode.constants.ERROR_CORRECT_L  # 7%
    M = qrcode.constants.ERROR_CORRECT_M  # 15%
    Q = qrcode.constants.ERROR_CORRECT_Q  # 25%
    H = qrcode.constants.ERROR_CORRECT_H  # 30%


ECC_NAMES = {"L": ECCLevel.L, "M": ECCLevel.M, "Q": ECCLevel.Q, "H": ECCLevel.H}


@trace
def get_module_matrix(payload: str, ecc: str = "M") -> list[list[bool]]:
    """Get the raw module matrix (True=dark) at the smallest fitting version.

    Raises:
        SymbolError: the payload exceeds version-40 capacity at *ecc*.
    """
    qr = qrcode.QRCode(
        version=None,
        error_correction=ECC_NAMES[ecc.upper()].value,
        box_size=1,
        border=0,
    )
    qr.add_data(payload)
    try:
        qr.make(fit=True)
    except DataOverflowError as e:
        raise SymbolError(
            f"payload of {len(payload)} characters does not fit a QR code at ECC {ecc.upper()}",
            ecc=ecc.upper(), payload_len=len(payload),
        ) from e
    return qr.modules


def _finder_origins(size: int) -> list[tuple[int, int]]:
    return [(0, 0), (0, size - _FINDER), (size - _FINDER, 0)]  # TL, TR, BL


def _in_finder(r: int, c: int, size: int) -> bool:
    for fr, fc in _finder_origins(size):
        if fr <= r < fr + _FINDER and fc <= c < fc + _FINDER:
            return True
    return False


# ---------------------------------------------------------------------------
# Module shapes
# ---------------------------------------------------------------------------

def _draw_module(
    draw: ImageDraw.ImageDraw,
    px: int,
    py: int,
    box: int,
    style: str,
    neighbours: tuple[bool, bool, bool, bool],
) -> None:
    """Draw one dark module; *neighbours* is (top, right, bottom, left)."""
    x1, y1 = px + box - 1, py + box - 1
    top, right, bottom, left = neighbours

    if style == "dots":
        m = max(1, box // 10)
        draw.ellipse([px + m, py + m, x1 - m, y1 - m], fill=255)
    elif style in ("rounded", "classy"):
        # Only corners with no neighbour on either adjacent side are rounded,
        # so runs of modules join into smooth bars.
        corners = (
            not top and not left,
            not top and not right,
            not bottom and not right,
            not bottom and not left,
        )
        if style == "classy":
            corners = (corners[0], False, corners[2], False)
        if any(corners):
            draw.rounded_rectangle([px, py, x1, y1], radius=box // 2, fill=255, corners=corners)
        else:
            draw.rectangle([px, py, x1, y1], fill=255)
    elif style == "sharp":
        half = box / 2
        draw.polygon([(px + half, py), (x1 + 1, py + half), (px + half, y1 + 1), (px, py + half)], fill=255)
        mid_x, mid_y = px + box // 2, py + box // 2
        if top:
            draw.rectangle([px, py, x1, mid_y], fill=255)
        if bottom:
            draw.rectangle([px, mid_y, x1, y1], fill=255)
        if left:
            draw.rectangle([px, py, mid_x, y1], fill=255)
        if right:
            draw.rectangle([mid_x, py, x1, y1], fill=255)
    else:  # square
        draw.rectangle([px, py, x1, y1], fill=255)


def _draw_finders(draw: ImageDraw.ImageDraw, size: int, margin: int, box: int, style: str) -> None:
    """Draw the three 7x7 finder patterns as cohesive blocks."""
    fpx = _FINDER * box
    for orig_r, orig_c in _finder_origins(size):
        ox = (orig_c + margin) * box
        oy = (orig_r + margin) * box
        outer = [ox, oy, ox + fpx - 1, oy + fpx - 1]
        inner = [ox + box, oy + box, ox + fpx - 1 - box, oy + fpx - 1 - box]
        m2 = 2 * box
        centre = [ox + m2, oy + m2, ox + fpx - 1 - m2, oy + fpx - 1 - m2]

        if style == "square":
            draw.rectangle(outer, fill=255)
            draw.rectangle(inner, fill=0)
            draw.rectangle(centre, fill=255)
            continue

        radius = box if style == "rounded" else box * 2
        draw.rounded_rectangle(outer, radius=radius, fill=255)
        draw.rounded_rectangle(inner, radius=max(1, radius // 2), fill=0)
        if style == "dots":
            cx = ox + fpx // 2
            cy = oy + fpx // 2
            cr = int(box * 1.4)
            draw.ellipse([cx - cr, cy - cr, cx + cr, cy + cr], fill=255)
        else:
            draw.rounded_rectangle(centre, radius=max(1, radius // 3), fill=255)


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------

@trace
def render_ink_mask(
    payload: str,
    size_px: int,
    margin_modules: int = 4,
    ecc: str = "M",
    dot_style: str = "square",
    corner_style: str = "square",
) -> Image.Image:
    """Render the symbol as a binary mode 'L' mask (255 = dark ink).

    The mask is exactly *size_px* square and contains only 0 and 255.
    """
    modules = get_module_matrix(payload, ecc)
    size = len(modules)
    total = size + 2 * margin_modules
    box = max(_MIN_BOX, math.ceil(size_px / total))

    mask = Image.new("L", (total * box, total * box), 0)
    draw = ImageDraw.Draw(mask)
    _draw_finders(draw, size, margin_modules, box, corner_style)

    def dark(r: int, c: int) -> bool:
        return 0 <= r < size and 0 <= c < size and modules[r][c] and not _in_finder(r, c, size)

    for r in range(size):
        for c in range(size):
            if not dark(r, c):
                continue
            px = (c + margin_modules) * box
            py = (r + margin_modules) * box
            neighbours = (dark(r - 1, c), dark(r, c + 1), dark(r + 1, c), dark(r, c - 1))
            _draw_module(draw, px, py, box, dot_style, neighbours)

    if mask.size != (size_px, size_px):
        # NEAREST keeps the mask strictly two-tone
        mask = mask.resize((size_px, size_px), Image.NEAREST)

    audit("symbol.rendered", logger=log,
          version=(size - 17) // 4, modules=f"{size}x{size}", box_px=box,
          image_px=f"{size_px}x{size_px}", ecc=ecc.upper(),
          dot_style=dot_style, corner_style=corner_style)
    return mask


@trace
def render_symbol(
    payload: str,
    size_px: int,
    margin_modules: int = 4,
    ecc: str = "M",
    dark: tuple[int, ...] = (0, 0, 0, 255),
    light: tuple[int, ...] = (255, 255, 255, 255),
    dot_style: str = "square",
    corner_style: str = "square",
) -> Image.Image:
    """Render the raw RGBA raster: every pixel is exactly *dark* or *light*.

    Pass a fully transparent *light* to get an ink-only raster for gradient
    post-processing.
    """
    mask = render_ink_mask(payload, size_px, margin_modules, ecc, dot_style, corner_style)
    ink = Image.new("RGBA", mask.size, tuple(dark))
    paper = Image.new("RGBA", mask.size, tuple(light))
    return Image.composite(ink, paper, mask)
