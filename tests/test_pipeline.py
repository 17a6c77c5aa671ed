"""Tests for the end-to-end render pipeline."""

import io
from unittest.mock import patch

import numpy as np
import pytest
from PIL import Image

from qrforge.content import Link, Phone, PlainText, WifiCredential
from qrforge.errors import AssetUnavailable, InvalidStyle, LogoLoadFailed, SymbolError, ValidationError
from qrforge.pipeline import compose_image, render_styled_code, render_styled_code_sync
from qrforge.style import Gradient, LogoStyle, StyleModel


def _png(img: Image.Image) -> bytes:
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


class DictStore:
    """In-memory asset store keyed by ref."""

    def __init__(self, assets: dict[str, bytes]):
        self.assets = assets
        self.requested = []

    async def fetch(self, image_ref: str) -> bytes:
        self.requested.append(image_ref)
        if image_ref not in self.assets:
            raise AssetUnavailable(f"no asset {image_ref}", ref=image_ref)
        return self.assets[image_ref]


@pytest.fixture
def store() -> DictStore:
    return DictStore({
        "logo.png": _png(Image.new("RGBA", (50, 50), (255, 0, 0, 255))),
        "broken.png": b"not an image",
    })


@pytest.mark.asyncio
async def test_renders_png_bytes():
    data = await render_styled_code(Link("example.com"), StyleModel(size_px=300))
    img = Image.open(io.BytesIO(data))
    assert img.format == "PNG"
    assert img.size == (300, 300)


@pytest.mark.asyncio
@pytest.mark.parametrize("fmt,pil_format", [("PNG", "PNG"), ("jpg", "JPEG"), ("webp", "WEBP")])
async def test_output_formats(fmt, pil_format):
    data = await render_styled_code(PlainText("formats"), StyleModel(size_px=200), fmt=fmt)
    assert Image.open(io.BytesIO(data)).format == pil_format


@pytest.mark.asyncio
async def test_logo_is_composited(store):
    style = StyleModel(size_px=400, error_correction="H", logo=LogoStyle("logo.png", size_pct=20))
    data = await render_styled_code(Link("example.com"), style, assets=store)
    img = Image.open(io.BytesIO(data)).convert("RGBA")
    assert img.getpixel((200, 200)) == (255, 0, 0, 255)
    assert store.requested == ["logo.png"]


@pytest.mark.asyncio
async def test_missing_logo_fails_whole_render(store):
    style = StyleModel(error_correction="H", logo=LogoStyle("missing.png"))
    with pytest.raises(LogoLoadFailed) as exc:
        await render_styled_code(Link("example.com"), style, assets=store)
    assert exc.value.ref == "missing.png"
    assert isinstance(exc.value.__cause__, AssetUnavailable)


@pytest.mark.asyncio
async def test_undecodable_logo_fails_whole_render(store):
    style = StyleModel(error_correction="H", logo=LogoStyle("broken.png"))
    with pytest.raises(LogoLoadFailed):
        await render_styled_code(Link("example.com"), style, assets=store)


@pytest.mark.asyncio
async def test_best_effort_logo_renders_plain_code(store, caplog):
    style = StyleModel(size_px=300, error_correction="H", logo=LogoStyle("missing.png"))
    data = await render_styled_code(Link("example.com"), style, assets=store, best_effort_logo=True)
    plain = await render_styled_code(Link("example.com"), style.without_logo())
    assert data == plain
    assert any("could not be loaded" in r.getMessage() for r in caplog.records)


@pytest.mark.asyncio
async def test_invalid_style_rejected_before_any_work(store):
    style = StyleModel(size_px=50, logo=LogoStyle("logo.png"))
    with patch("qrforge.pipeline.encode_content") as encode:
        with pytest.raises(InvalidStyle):
            await render_styled_code(Link("example.com"), style, assets=store)
    encode.assert_not_called()
    assert store.requested == []


@pytest.mark.asyncio
async def test_unsupported_format_rejected():
    with pytest.raises(InvalidStyle):
        await render_styled_code(Link("example.com"), StyleModel(), fmt="svg")


@pytest.mark.asyncio
async def test_validation_error_propagates():
    with pytest.raises(ValidationError):
        await render_styled_code(Phone("abc"), StyleModel())


@pytest.mark.asyncio
async def test_symbol_overflow_propagates():
    with pytest.raises(SymbolError):
        await render_styled_code(PlainText("x" * 3000), StyleModel(error_correction="H"))


def test_sync_wrapper():
    data = render_styled_code_sync(WifiCredential("Home", "pw"), StyleModel(size_px=200))
    assert data.startswith(b"\x89PNG")


def test_gradient_compose_keeps_background():
    style = StyleModel(size_px=200, background="#FFFFFF",
                       gradient=Gradient("linear", "#FF0000", "#0000FF", 90)).validate()
    img = compose_image("gradient", style)
    arr = np.asarray(img)
    assert (arr[:10, :10] == 255).all()  # quiet zone


def test_compose_is_deterministic():
    style = StyleModel(size_px=250, dot_style="classy", corner_style="dots")
    a = np.asarray(compose_image("same", style))
    b = np.asarray(compose_image("same", style))
    assert (a == b).all()
