"""Asset stores for logo images: files, data: URIs and HTTP(S), behind a cache."""

import asyncio
import base64
import binascii
from collections import OrderedDict
from pathlib import Path
from typing import Any, Protocol
from urllib.parse import unquote_to_bytes

import aiohttp

from qrforge.config import Settings
from qrforge.errors import AssetUnavailable
from qrforge.logging import audit, get_logger, trace

log = get_logger("assets")


class AssetStore(Protocol):
    async def fetch(self, image_ref: str) -> bytes:
        """Return the asset's bytes or raise AssetUnavailable."""
        ...


class FileAssetStore:
    """Reads refs as paths relative to *root*; refs may not escape it."""

    def __init__(self, root: str | Path = ".") -> None:
        self.root = Path(root).resolve()

    def _resolve(self, image_ref: str) -> Path:
        ref = image_ref[len("file://"):] if image_ref.startswith("file://") else image_ref
        path = (self.root / ref).resolve()
        if not path.is_relative_to(self.root):
            raise AssetUnavailable(f"asset path escapes the asset root: {image_ref}", ref=image_ref)
        return path

    @trace
    async def fetch(self, image_ref: str) -> bytes:
        path = self._resolve(image_ref)
        try:
            data = await asyncio.to_thread(path.read_bytes)
        except OSError as e:
            raise AssetUnavailable(f"cannot read asset {image_ref}: {e.strerror or e}", ref=image_ref) from e
        audit("asset.fetched", logger=log, source="file", ref=image_ref, bytes=len(data))
        return data


class DataUriAssetStore:
    """Decodes ``data:[<mediatype>][;base64],<data>`` refs."""

    @trace
    async def fetch(self, image_ref: str) -> bytes:
        if not image_ref.startswith("data:") or "," not in image_ref:
            raise AssetUnavailable("malformed data URI", ref=image_ref[:40])
        header, payload = image_ref[len("data:"):].split(",", 1)
        try:
            if header.endswith(";base64"):
                data = base64.b64decode(payload, validate=True)
            else:
                data = unquote_to_bytes(payload)
        except (binascii.Error, ValueError) as e:
            raise AssetUnavailable(f"malformed data URI: {e}", ref=image_ref[:40]) from e
        audit("asset.fetched", logger=log, source="data-uri", media_type=header or "text/plain", bytes=len(data))
        return data


class HttpAssetStore:
    """Async HTTP(S) fetcher. Pass a session to share connections."""

    CHUNK_BYTES = 64 * 1024

    def __init__(
        self,
        timeout_s: float = 10.0,
        max_bytes: int = 5 * 1024 * 1024,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self.timeout = aiohttp.ClientTimeout(total=timeout_s)
        self.max_bytes = max_bytes
        self._session = session
        self._owns_session = False

    async def __aenter__(self) -> "HttpAssetStore":
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
            self._owns_session = True
        return self

    async def __aexit__(self, *args: Any) -> None:
        if self._owns_session and self._session:
            await self._session.close()
            self._session = None

    async def _get(self, session: aiohttp.ClientSession, image_ref: str) -> bytes:
        async with session.get(image_ref, timeout=self.timeout) as resp:
            if resp.status != 200:
                raise AssetUnavailable(f"GET {image_ref} returned HTTP {resp.status}", ref=image_ref)
            if resp.content_length is not None and resp.content_length > self.max_bytes:
                raise AssetUnavailable(f"asset exceeds {self.max_bytes} bytes", ref=image_ref)
            # a missing or wrong Content-Length must not let the body grow unbounded
            data = bytearray()
            async for chunk in resp.content.iter_chunked(self.CHUNK_BYTES):
                data.extend(chunk)
                if len(data) > self.max_bytes:
                    raise AssetUnavailable(f"asset exceeds {self.max_bytes} bytes", ref=image_ref)
        return bytes(data)

    @trace
    async def fetch(self, image_ref: str) -> bytes:
        try:
            if self._session is not None:
                data = await self._get(self._session, image_ref)
            else:
                async with aiohttp.ClientSession(timeout=self.timeout) as session:
                    data = await self._get(session, image_ref)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise AssetUnavailable(f"GET {image_ref} failed: {e}", ref=image_ref) from e
        audit("asset.fetched", logger=log, source="http", ref=image_ref, bytes=len(data))
        return data


class RoutingAssetStore:
    """Dispatches refs to a store by scheme: data:, http(s):, else files."""

    def __init__(self, files: AssetStore, http: AssetStore, data: AssetStore | None = None) -> None:
        self.files = files
        self.http = http
        self.data = data or DataUriAssetStore()

    async def fetch(self, image_ref: str) -> bytes:
        if image_ref.startswith("data:"):
            return await self.data.fetch(image_ref)
        if image_ref.startswith(("http://", "https://")):
            return await self.http.fetch(image_ref)
        return await self.files.fetch(image_ref)


class CachingAssetStore:
    """Read-through LRU cache keyed by image ref.

    Cached values are immutable ``bytes``. Concurrent fetches of one ref share
    a single in-flight request; failures are never cached.
    """

    def __init__(self, inner: AssetStore, max_entries: int = 64) -> None:
        self.inner = inner
        self.max_entries = max_entries
        self._cache: OrderedDict[str, bytes] = OrderedDict()
        self._inflight: dict[str, asyncio.Future] = {}

    def __len__(self) -> int:
        return len(self._cache)

    def __contains__(self, image_ref: str) -> bool:
        return image_ref in self._cache

    async def fetch(self, image_ref: str) -> bytes:
        if image_ref in self._cache:
            self._cache.move_to_end(image_ref)
            audit("asset.cache_hit", logger=log, ref=image_ref[:80])
            return self._cache[image_ref]

        pending = self._inflight.get(image_ref)
        if pending is not None:
            return await asyncio.shield(pending)

        task = asyncio.ensure_future(self.inner.fetch(image_ref))
        self._inflight[image_ref] = task
        try:
            data = await asyncio.shield(task)
        finally:
            if task.done():
                self._inflight.pop(image_ref, None)
            else:
                # caller was cancelled; drop the entry once the fetch settles
                task.add_done_callback(lambda _t: self._inflight.pop(image_ref, None))

        self._cache[image_ref] = data
        self._cache.move_to_end(image_ref)
        while len(self._cache) > self.max_entries:
            evicted, _ = self._cache.popitem(last=False)
            log.debug("asset cache evicted %s", evicted[:80])
        return data


def default_asset_store(settings: Settings | None = None) -> CachingAssetStore:
    """Files under ``asset_root``, data: URIs and HTTP(S), with caching."""
    settings = settings or Settings()
    routing = RoutingAssetStore(
        files=FileAssetStore(settings.asset_root),
        http=HttpAssetStore(timeout_s=settings.http_timeout_s, max_bytes=settings.max_asset_bytes),
    )
    return CachingAssetStore(routing, max_entries=settings.asset_cache_entries)
