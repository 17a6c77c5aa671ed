"""Render pipeline: descriptor + style -> final image bytes.

    descriptor -> encode_content -> render_symbol -> apply_color -> apply_logo -> encode_image

Only the logo fetch is asynchronous; everything after it runs synchronously
on in-memory rasters, and nothing is returned until the final bytes exist.
"""

import asyncio

from PIL import Image

from qrforge.assets import AssetStore, default_asset_store
from qrforge.colorize import apply_color, symbol_colors
from qrforge.content import ContentDescriptor, encode_content
from qrforge.errors import AssetUnavailable, LogoLoadFailed, Unscannable
from qrforge.generator import render_symbol
from qrforge.logging import audit, get_logger, trace
from qrforge.logo import apply_logo, load_logo
from qrforge.output import encode_image, normalize_format
from qrforge.style import StyleModel

log = get_logger("pipeline")

_shared_store: AssetStore | None = None


def shared_asset_store() -> AssetStore:
    """Process-wide cached store built from the environment settings."""
    global _shared_store
    if _shared_store is None:
        _shared_store = default_asset_store()
    return _shared_store


@trace
async def fetch_logo(image_ref: str, assets: AssetStore) -> Image.Image:
    """Fetch and decode a logo.

    Raises:
        LogoLoadFailed: the asset is unavailable or not a decodable image.
    """
    try:
        data = await assets.fetch(image_ref)
    except LogoLoadFailed:
        raise
    except AssetUnavailable as e:
        raise LogoLoadFailed(f"logo unavailable: {e.message}", ref=image_ref) from e
    return load_logo(data, ref=image_ref)


@trace
def compose_image(payload: str, style: StyleModel, logo_image: Image.Image | None = None) -> Image.Image:
    """Synchronous compositing: symbol, colour, logo. *style* must be valid."""
    dark, light = symbol_colors(style)
    raw = render_symbol(
        payload,
        size_px=style.size_px,
        margin_modules=style.margin_modules,
        ecc=style.error_correction,
        dark=dark,
        light=light,
        dot_style=style.dot_style,
        corner_style=style.corner_style,
    )
    colored = apply_color(raw, style)
    return apply_logo(colored, style.logo, logo_image)


@trace
async def render_styled_code(
    descriptor: ContentDescriptor,
    style: StyleModel,
    *,
    assets: AssetStore | None = None,
    fmt: str = "PNG",
    best_effort_logo: bool = False,
    verify_scan: bool = False,
) -> bytes:
    """Render a styled QR code and return the encoded image bytes.

    Args:
        descriptor: What to encode.
        style: How it should look; validated before any raster work.
        assets: Where logo refs are fetched from. Defaults to a shared,
            cached store over files, data: URIs and HTTP(S).
        fmt: Output format (PNG, JPEG, WEBP).
        best_effort_logo: Render without the logo instead of failing when
            it cannot be loaded.
        verify_scan: Decode the result and fail if it does not read back.

    Raises:
        InvalidStyle, ValidationError, SymbolError, LogoLoadFailed, Unscannable.
    """
    style.validate()
    fmt = normalize_format(fmt)
    payload = encode_content(descriptor)

    logo_image = None
    if style.logo is not None:
        try:
            logo_image = await fetch_logo(style.logo.image_ref, assets or shared_asset_store())
        except LogoLoadFailed as e:
            if not best_effort_logo:
                raise
            log.warning("Logo %s could not be loaded, rendering without it: %s", e.ref, e.message)

    image = compose_image(payload, style, logo_image)

    if verify_scan:
        from qrforge.verify import verify

        results = verify(image, expected_data=payload)
        if not any(r.success for r in results):
            errors = "; ".join(f"{r.decoder}: {r.error}" for r in results)
            raise Unscannable(f"rendered code does not scan back: {errors}")

    data = encode_image(image, fmt)
    audit("render.completed", logger=log,
          kind=type(descriptor).__name__, payload_len=len(payload),
          size_px=style.size_px, ecc=style.error_correction,
          logo="skipped" if style.logo is not None and logo_image is None else style.logo is not None,
          format=fmt, bytes=len(data))
    return data


def render_styled_code_sync(descriptor: ContentDescriptor, style: StyleModel, **kwargs) -> bytes:
    """Blocking wrapper around :func:`render_styled_code`."""
    return asyncio.run(render_styled_code(descriptor, style, **kwargs))
