"""Color/Gradient Post-Processor: gradient ink fill constrained to the symbol.

Solid colours are applied natively by the Symbol Renderer, so this stage is a
no-op unless the style carries a gradient.
"""

import math

import numpy as np
from PIL import Image

from qrforge.logging import audit, get_logger, trace
from qrforge.style import Gradient, StyleModel, parse_color

log = get_logger("colorize")


def symbol_colors(style: StyleModel) -> tuple[tuple[int, ...], tuple[int, ...]]:
    """The (dark, light) colours the Symbol Renderer should paint with.

    With a gradient the raster is rendered ink-opaque on a transparent
    background so :func:`apply_color` can mask the gradient to the ink.
    """
    if style.gradient is None:
        return style.foreground_rgba, style.background_rgba
    return (0, 0, 0, 255), (0, 0, 0, 0)


def _gradient_t(gradient: Gradient, w: int, h: int) -> np.ndarray:
    """Per-pixel position along the gradient, 0.0 (start) to 1.0 (end)."""
    ys, xs = np.mgrid[0:h, 0:w].astype(np.float64)
    xs += 0.5 - w / 2
    ys += 0.5 - h / 2

    if gradient.kind == "radial":
        # Centred circle, end colour at the farthest corner
        t = np.hypot(xs, ys) / math.hypot(w / 2, h / 2)
    else:
        # CSS linear-gradient angle: 0deg points up, 90deg points right
        a = math.radians(gradient.angle)
        dx, dy = math.sin(a), -math.cos(a)
        length = abs(w * dx) + abs(h * dy)
        t = (xs * dx + ys * dy) / length + 0.5
    return np.clip(t, 0.0, 1.0)


@trace
def render_gradient(gradient: Gradient, size: tuple[int, int]) -> Image.Image:
    """Full-canvas RGBA gradient fill."""
    w, h = size
    start = np.array(parse_color(gradient.start, "gradient.start"), dtype=np.float64)
    end = np.array(parse_color(gradient.end, "gradient.end"), dtype=np.float64)
    t = _gradient_t(gradient, w, h)[..., None]
    arr = np.rint(start + (end - start) * t).astype(np.uint8)
    return Image.fromarray(arr)


@trace
def apply_color(raster: Image.Image, style: StyleModel) -> Image.Image:
    """Recolour an ink-only raster with the style's gradient.

    Without a gradient the raster is returned as-is. With one, *raster* must
    come from the Symbol Renderer with :func:`symbol_colors`: its alpha
    channel is the ink mask. The gradient is kept only where the symbol is
    dark, then flattened onto ``background``, so light modules come out as
    exactly the background colour.
    """
    if style.gradient is None:
        return raster

    rgba = raster.convert("RGBA")
    ink = rgba.getchannel("A")
    fill = render_gradient(style.gradient, rgba.size)

    # Mask first, flatten second: no gradient bleed into light modules.
    masked = Image.new("RGBA", rgba.size, (0, 0, 0, 0))
    masked.paste(fill, (0, 0), ink)
    out = Image.alpha_composite(Image.new("RGBA", rgba.size, style.background_rgba), masked)

    audit("color.gradient_applied", logger=log,
          kind=style.gradient.kind, angle=style.gradient.angle,
          start=style.gradient.start, end=style.gradient.end,
          ink_px=int(np.count_nonzero(np.asarray(ink))))
    return out
