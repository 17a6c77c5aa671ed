"""Logo Compositor: plate, shadow, clipped logo pixels and border over the symbol.

Every drawing step derives from one ``ClipRegion`` per logo shape. Layers are
built at full canvas size and alpha-composited in the order
shadow -> plate -> logo -> border.
"""

import io
import math

import numpy as np
from PIL import Image, ImageChops, ImageDraw, ImageEnhance, ImageFilter, ImageOps, UnidentifiedImageError

from qrforge.errors import LogoLoadFailed
from qrforge.geometry import ClipRegion
from qrforge.logging import audit, get_logger, trace
from qrforge.style import LogoBorder, LogoFilters, LogoShadow, LogoStyle, parse_color

log = get_logger("logo")

# Dash patterns in multiples of the border width: (on, off)
DASH_PATTERNS = {"dashed": (3, 2), "dotted": (1, 1)}

_SEPIA = np.array([
    [0.393, 0.769, 0.189],
    [0.349, 0.686, 0.168],
    [0.272, 0.534, 0.131],
])


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------

@trace
def load_logo(data: bytes, ref: str | None = None) -> Image.Image:
    """Decode logo bytes into an RGBA image.

    Raises:
        LogoLoadFailed: the bytes are not a decodable image.
    """
    try:
        img = Image.open(io.BytesIO(data))
        img.load()
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as e:
        raise LogoLoadFailed(f"cannot decode logo image: {e}", ref=ref) from e
    audit("logo.loaded", logger=log, ref=ref, mode=img.mode, size=f"{img.size[0]}x{img.size[1]}")
    return img.convert("RGBA")


# ---------------------------------------------------------------------------
# Logo pixel pipeline: fit -> rotate -> filters -> opacity
# ---------------------------------------------------------------------------

def _scale_preserving_aspect(original_size: tuple[int, int], target: int) -> tuple[int, int]:
    """Scale (w, h) so the larger dimension equals *target*, preserving aspect."""
    w, h = original_size
    aspect = w / h
    if aspect >= 1:
        return target, max(1, int(target / aspect))
    return max(1, int(target * aspect)), target


def fit_logo(logo: Image.Image, side: int) -> Image.Image:
    """Centre the logo on a transparent *side* x *side* canvas, aspect kept."""
    new_w, new_h = _scale_preserving_aspect(logo.size, side)
    resized = logo.resize((new_w, new_h), Image.LANCZOS)
    canvas = Image.new("RGBA", (side, side), (0, 0, 0, 0))
    canvas.paste(resized, ((side - new_w) // 2, (side - new_h) // 2))
    return canvas


def _map_rgb(img: Image.Image, fn) -> Image.Image:
    """Apply *fn* to the RGB channels, keeping alpha untouched."""
    alpha = img.getchannel("A")
    rgb = fn(img.convert("RGB"))
    rgb.putalpha(alpha)
    return rgb


def _sepia(rgb: Image.Image) -> Image.Image:
    arr = np.asarray(rgb, dtype=np.float64) @ _SEPIA.T
    return Image.fromarray(np.clip(np.rint(arr), 0, 255).astype(np.uint8))


@trace
def apply_filters(img: Image.Image, filters: LogoFilters | None) -> Image.Image:
    """Blur, brightness, contrast, grayscale, invert, sepia, in that order."""
    if filters is None:
        return img
    if filters.blur_px > 0:
        # premultiplied so transparent pixels do not darken the edges
        img = img.convert("RGBa").filter(ImageFilter.GaussianBlur(filters.blur_px)).convert("RGBA")
    if filters.brightness_pct != 100:
        img = _map_rgb(img, lambda rgb: ImageEnhance.Brightness(rgb).enhance(filters.brightness_pct / 100))
    if filters.contrast_pct != 100:
        img = _map_rgb(img, lambda rgb: ImageEnhance.Contrast(rgb).enhance(filters.contrast_pct / 100))
    if filters.grayscale:
        img = _map_rgb(img, lambda rgb: ImageOps.grayscale(rgb).convert("RGB"))
    if filters.invert:
        img = _map_rgb(img, ImageOps.invert)
    if filters.sepia:
        img = _map_rgb(img, _sepia)
    return img


def _with_opacity(img: Image.Image, opacity: float) -> Image.Image:
    if opacity >= 1:
        return img
    out = img.copy()
    out.putalpha(img.getchannel("A").point(lambda a: int(round(a * opacity))))
    return out


def prepare_logo(logo: Image.Image, style: LogoStyle, side: int) -> Image.Image:
    """Logo pixels ready to place in the footprint, before clipping."""
    img = fit_logo(logo, side)
    if style.rotation_deg % 360:
        # clockwise, like CSS rotate(); Pillow rotates counter-clockwise
        img = img.rotate(-style.rotation_deg, resample=Image.BICUBIC, expand=False)
    img = apply_filters(img, style.filters)
    return _with_opacity(img, style.opacity)


# ---------------------------------------------------------------------------
# Layers
# ---------------------------------------------------------------------------

def _solid_layer(size, color, mask: Image.Image) -> Image.Image:
    """*color* wherever *mask* is set, with the colour's own alpha honoured."""
    r, g, b, a = color
    layer = Image.new("RGBA", size, (r, g, b, 0))
    layer.putalpha(mask.point(lambda v: v * a // 255))
    return layer


def shadow_layer(region: ClipRegion, shadow: LogoShadow, size: tuple[int, int]) -> Image.Image:
    silhouette = region.shifted(shadow.offset_x, shadow.offset_y).mask(size)
    layer = _solid_layer(size, parse_color(shadow.color), silhouette)
    if shadow.blur_px > 0:
        layer = layer.convert("RGBa").filter(ImageFilter.GaussianBlur(shadow.blur_px)).convert("RGBA")
    return layer


def plate_layer(region: ClipRegion, color, size: tuple[int, int]) -> Image.Image:
    return _solid_layer(size, parse_color(color), region.mask(size))


def logo_layer(region: ClipRegion, pixels: Image.Image, size: tuple[int, int]) -> Image.Image:
    """Logo pixels placed on the footprint and clipped to the region."""
    layer = Image.new("RGBA", size, (0, 0, 0, 0))
    layer.paste(pixels, (region.left, region.top))
    layer.putalpha(ImageChops.multiply(layer.getchannel("A"), region.mask(size)))
    return layer


def _lerp(p, q, t):
    return (p[0] + (q[0] - p[0]) * t, p[1] + (q[1] - p[1]) * t)


def dash_runs(path: list[tuple[float, float]], on: float, off: float) -> list[list[tuple[float, float]]]:
    """Split a polyline into the 'on' runs of an (on, off) dash pattern."""
    runs, current = [], []
    period = on + off
    pos = 0.0
    for p, q in zip(path, path[1:]):
        seg = math.dist(p, q)
        start = 0.0
        while start < seg:
            phase = pos % period
            drawing = phase < on
            step = min((on - phase) if drawing else (period - phase), seg - start)
            a = _lerp(p, q, start / seg)
            b = _lerp(p, q, (start + step) / seg)
            if drawing:
                if not current:
                    current = [a]
                current.append(b)
            elif current:
                runs.append(current)
                current = []
            start += step
            pos += step
    if current:
        runs.append(current)
    return runs


def border_layer(region: ClipRegion, border: LogoBorder, size: tuple[int, int]) -> Image.Image:
    layer = Image.new("RGBA", size, (0, 0, 0, 0))
    draw = ImageDraw.Draw(layer)
    color = parse_color(border.color)
    w = int(border.width_px)

    if border.style == "solid":
        region.outline(draw, color, w)
    else:
        on, off = DASH_PATTERNS[border.style]
        path = region.outline_path(inset=w / 2)
        for run in dash_runs(path, on * w, off * w):
            if border.style == "dotted":
                cx = (run[0][0] + run[-1][0]) / 2
                cy = (run[0][1] + run[-1][1]) / 2
                draw.ellipse([cx - w / 2, cy - w / 2, cx + w / 2, cy + w / 2], fill=color)
            else:
                draw.line(run, fill=color, width=w, joint="curve")

    # the stroke never leaves the clip region
    layer.putalpha(ImageChops.multiply(layer.getchannel("A"), region.mask(size)))
    return layer


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

@trace
def apply_logo(raster: Image.Image, style: LogoStyle | None, logo: Image.Image | None) -> Image.Image:
    """Composite the logo onto a copy of *raster*; no-op without a logo.

    1. Footprint and clip region from ``size_pct``/``position``/``shape``.
    2. Shadow of the plate silhouette, blurred and offset.
    3. Plate: region grown by ``margin_px`` filled with ``background_color``.
    4. Logo pixels: fitted, rotated, filtered, faded, clipped to the region.
    5. Border stroked along the region outline.
    """
    if style is None or logo is None:
        return raster

    size = raster.size
    region = style.clip_region(size)
    silhouette = style.occluded_region(size)
    result = raster.convert("RGBA")

    if style.shadow is not None:
        result = Image.alpha_composite(result, shadow_layer(silhouette, style.shadow, size))

    if style.background_color is not None:
        result = Image.alpha_composite(result, plate_layer(silhouette, style.background_color, size))

    pixels = prepare_logo(logo, style, region.side)
    result = Image.alpha_composite(result, logo_layer(region, pixels, size))

    if style.border is not None:
        result = Image.alpha_composite(result, border_layer(region, style.border, size))

    audit("logo.composited", logger=log,
          canvas=f"{size[0]}x{size[1]}", shape=style.shape,
          footprint_px=region.side, centre=region.center,
          plate=style.background_color is not None,
          shadow=style.shadow is not None,
          border=style.border.style if style.border else None,
          rotation=style.rotation_deg, opacity=style.opacity)
    return result
