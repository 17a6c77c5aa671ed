"""Tests for logo asset stores."""

import asyncio
import base64
from unittest.mock import AsyncMock, MagicMock

import aiohttp
import pytest

from qrforge.assets import (
    CachingAssetStore,
    DataUriAssetStore,
    FileAssetStore,
    HttpAssetStore,
    RoutingAssetStore,
)
from qrforge.errors import AssetUnavailable


async def _stream(chunks, served):
    for chunk in chunks:
        served.append(chunk)
        yield chunk


def _mock_session(status: int = 200, body: bytes = b"PNGDATA", content_length: int | None = None,
                  chunks: list[bytes] | None = None, served: list | None = None):
    """aiohttp.ClientSession stand-in whose get() is an async context manager."""
    resp = MagicMock()
    resp.status = status
    resp.content_length = content_length
    served = served if served is not None else []
    resp.content.iter_chunked = MagicMock(side_effect=lambda n: _stream(chunks or [body], served))

    ctx = MagicMock()
    ctx.__aenter__ = AsyncMock(return_value=resp)
    ctx.__aexit__ = AsyncMock(return_value=False)

    session = MagicMock(spec=aiohttp.ClientSession)
    session.get = MagicMock(return_value=ctx)
    return session


class CountingStore:
    def __init__(self, data: bytes = b"logo", fail: bool = False, delay: float = 0.0):
        self.data = data
        self.fail = fail
        self.delay = delay
        self.calls = 0

    async def fetch(self, image_ref: str) -> bytes:
        self.calls += 1
        await asyncio.sleep(self.delay)
        if self.fail:
            raise AssetUnavailable("boom", ref=image_ref)
        return self.data + image_ref.encode()


class TestFileAssetStore:
    @pytest.mark.asyncio
    async def test_reads_relative_path(self, tmp_path):
        (tmp_path / "logo.png").write_bytes(b"abc")
        store = FileAssetStore(tmp_path)
        assert await store.fetch("logo.png") == b"abc"
        assert await store.fetch("file://logo.png") == b"abc"

    @pytest.mark.asyncio
    async def test_missing_file(self, tmp_path):
        with pytest.raises(AssetUnavailable) as exc:
            await FileAssetStore(tmp_path).fetch("nope.png")
        assert exc.value.ref == "nope.png"

    @pytest.mark.asyncio
    async def test_cannot_escape_root(self, tmp_path):
        root = tmp_path / "assets"
        root.mkdir()
        (tmp_path / "secret.txt").write_bytes(b"x")
        with pytest.raises(AssetUnavailable):
            await FileAssetStore(root).fetch("../secret.txt")


class TestDataUriAssetStore:
    @pytest.mark.asyncio
    async def test_base64(self):
        ref = "data:image/png;base64," + base64.b64encode(b"\x89PNG").decode()
        assert await DataUriAssetStore().fetch(ref) == b"\x89PNG"

    @pytest.mark.asyncio
    async def test_percent_encoded(self):
        assert await DataUriAssetStore().fetch("data:,a%20b") == b"a b"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("ref", ["data:image/png;base64", "data:image/png;base64,@@@"])
    async def test_malformed(self, ref):
        with pytest.raises(AssetUnavailable):
            await DataUriAssetStore().fetch(ref)


class TestHttpAssetStore:
    @pytest.mark.asyncio
    async def test_fetch_with_shared_session(self):
        session = _mock_session(body=b"img")
        store = HttpAssetStore(session=session)
        assert await store.fetch("https://cdn.example.com/logo.png") == b"img"
        session.get.assert_called_once()
        assert session.get.call_args.args[0] == "https://cdn.example.com/logo.png"

    @pytest.mark.asyncio
    async def test_http_error_status(self):
        store = HttpAssetStore(session=_mock_session(status=404))
        with pytest.raises(AssetUnavailable) as exc:
            await store.fetch("https://cdn.example.com/missing.png")
        assert "404" in exc.value.message

    @pytest.mark.asyncio
    async def test_declared_size_limit(self):
        store = HttpAssetStore(max_bytes=10, session=_mock_session(content_length=11))
        with pytest.raises(AssetUnavailable):
            await store.fetch("https://cdn.example.com/huge.png")

    @pytest.mark.asyncio
    async def test_actual_size_limit(self):
        store = HttpAssetStore(max_bytes=4, session=_mock_session(body=b"12345"))
        with pytest.raises(AssetUnavailable):
            await store.fetch("https://cdn.example.com/huge.png")

    @pytest.mark.asyncio
    async def test_undeclared_stream_stops_at_limit(self):
        served = []
        session = _mock_session(chunks=[b"x" * 4] * 1000, served=served)
        store = HttpAssetStore(max_bytes=10, session=session)
        with pytest.raises(AssetUnavailable) as exc:
            await store.fetch("https://cdn.example.com/endless.png")
        assert "10 bytes" in exc.value.message
        assert len(served) == 3

    @pytest.mark.asyncio
    async def test_chunks_are_joined(self):
        session = _mock_session(chunks=[b"ab", b"cd", b"e"])
        assert await HttpAssetStore(max_bytes=5, session=session).fetch("https://cdn.example.com/a.png") == b"abcde"

    @pytest.mark.asyncio
    async def test_client_errors_wrapped(self):
        session = _mock_session()
        session.get.side_effect = aiohttp.ClientConnectionError("refused")
        with pytest.raises(AssetUnavailable) as exc:
            await HttpAssetStore(session=session).fetch("https://down.example.com/a.png")
        assert isinstance(exc.value.__cause__, aiohttp.ClientError)

    @pytest.mark.asyncio
    async def test_context_manager_does_not_close_borrowed_session(self):
        session = _mock_session()
        session.close = AsyncMock()
        async with HttpAssetStore(session=session):
            pass
        session.close.assert_not_called()


@pytest.mark.asyncio
async def test_routing_by_scheme():
    files, http, data = CountingStore(b"f:"), CountingStore(b"h:"), CountingStore(b"d:")
    store = RoutingAssetStore(files=files, http=http, data=data)
    assert (await store.fetch("logo.png")).startswith(b"f:")
    assert (await store.fetch("https://x/logo.png")).startswith(b"h:")
    assert (await store.fetch("data:,x")).startswith(b"d:")
    assert (files.calls, http.calls, data.calls) == (1, 1, 1)


class TestCachingAssetStore:
    @pytest.mark.asyncio
    async def test_second_fetch_is_cached(self):
        inner = CountingStore()
        store = CachingAssetStore(inner)
        first = await store.fetch("a.png")
        second = await store.fetch("a.png")
        assert first == second
        assert inner.calls == 1
        assert "a.png" in store

    @pytest.mark.asyncio
    async def test_concurrent_fetches_share_one_request(self):
        inner = CountingStore(delay=0.05)
        store = CachingAssetStore(inner)
        results = await asyncio.gather(*(store.fetch("a.png") for _ in range(5)))
        assert len(set(results)) == 1
        assert inner.calls == 1

    @pytest.mark.asyncio
    async def test_failures_are_not_cached(self):
        inner = CountingStore(fail=True)
        store = CachingAssetStore(inner)
        for _ in range(2):
            with pytest.raises(AssetUnavailable):
                await store.fetch("a.png")
        assert inner.calls == 2
        assert len(store) == 0

    @pytest.mark.asyncio
    async def test_lru_eviction(self):
        inner = CountingStore()
        store = CachingAssetStore(inner, max_entries=2)
        await store.fetch("a")
        await store.fetch("b")
        await store.fetch("a")  # a becomes most recent
        await store.fetch("c")
        assert "a" in store and "c" in store
        assert "b" not in store
        assert len(store) == 2
