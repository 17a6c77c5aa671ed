"""Output Encoder: final raster -> distributable image bytes."""

import base64
import io

from PIL import Image

from qrforge.errors import InvalidStyle
from qrforge.logging import audit, get_logger, trace
from qrforge.style import OUTPUT_FORMATS

log = get_logger("output")

MIME_TYPES = {"PNG": "image/png", "JPEG": "image/jpeg", "WEBP": "image/webp"}
_ALIASES = {"JPG": "JPEG"}


def normalize_format(fmt: str) -> str:
    name = fmt.upper().lstrip(".")
    name = _ALIASES.get(name, name)
    if name not in OUTPUT_FORMATS:
        raise InvalidStyle(f"unsupported output format {fmt!r}; choose from {', '.join(OUTPUT_FORMATS)}",
                           field="format")
    return name


@trace
def encode_image(raster: Image.Image, fmt: str = "PNG") -> bytes:
    """Serialise *raster*. PNG and WEBP are written losslessly with alpha;
    JPEG is flattened onto white first."""
    fmt = normalize_format(fmt)
    img = raster
    save_kwargs = {}
    if fmt == "JPEG":
        if img.mode in ("RGBA", "LA", "P"):
            rgba = img.convert("RGBA")
            flat = Image.new("RGB", rgba.size, (255, 255, 255))
            flat.paste(rgba, (0, 0), rgba)
            img = flat
        save_kwargs = {"quality": 95}
    elif fmt == "PNG":
        save_kwargs = {"optimize": True}
    elif fmt == "WEBP":
        save_kwargs = {"lossless": True}

    buffer = io.BytesIO()
    img.save(buffer, format=fmt, **save_kwargs)
    data = buffer.getvalue()
    audit("output.encoded", logger=log, format=fmt, size=f"{img.size[0]}x{img.size[1]}", bytes=len(data))
    return data


def to_data_url(raster: Image.Image, fmt: str = "PNG") -> str:
    """Encode as a base64 ``data:`` URL for direct embedding."""
    fmt = normalize_format(fmt)
    encoded = base64.b64encode(encode_image(raster, fmt)).decode("ascii")
    return f"data:{MIME_TYPES[fmt]};base64,{encoded}"
