"""
Go Module Proxy Client

Async HTTP client for the module proxy protocol:

- ``@latest``           latest version info of a module
- ``@v/<version>.info`` info of a specific version
- ``@v/<version>.mod``  go.mod file of a specific version
- ``/index``            time-ordered feed of published versions

Every lookup exists in a cached-only flavour (served from the proxy's
cache, fast, may miss) and an authoritative flavour.  Which one to use,
and when to fall back, is decided by ``RegistryLookups``.
"""

import logging
from collections.abc import AsyncIterator
from datetime import datetime, timezone

import httpx
from pydantic import ValidationError

from modgraph.goproxy.cache import BoundedCache
from modgraph.goproxy.config import GoProxySettings
from modgraph.goproxy.modfile import ModFile, parse_mod_file
from modgraph.shared.exceptions import ModuleNotFound, RegistryError, RegistryTimeout
from modgraph.shared.models import IndexEntry, ModuleInfo

logger = logging.getLogger("modgraph.goproxy")

NOT_FOUND_STATUSES = (404, 410)


def escape_path(path: str) -> str:
    """Case-encode a module path or version for use in a proxy URL.

    Upper-case letters are replaced by ``!`` followed by the lower-case
    letter, e.g. ``github.com/Azure/go`` -> ``github.com/!azure/go``.
    """
    return "".join(f"!{ch.lower()}" if ch.isupper() else ch for ch in path)


def _format_since(since: datetime) -> str:
    if since.tzinfo is None:
        since = since.replace(tzinfo=timezone.utc)
    return since.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


class GoProxyClient:
    """
    Async client for a Go module proxy.

    Usage::

        async with GoProxyClient() as client:
            info = await client.get_latest_info("golang.org/x/mod", cached_only=True)
            mod = await client.get_mod_file("golang.org/x/mod", info.version)

    Results are kept in one bounded LRU cache per lookup kind.  The caches
    belong to the client instance, so a new client starts empty.
    """

    def __init__(
        self,
        proxy_url: str = "https://proxy.golang.org",
        index_url: str = "https://index.golang.org",
        timeout: float = 3.0,
        cache_size: int = 1000,
        index_page_limit: int = 2000,
        http_client: httpx.AsyncClient | None = None,
    ):
        self._proxy_url = proxy_url.rstrip("/")
        self._index_url = index_url.rstrip("/")
        self._index_page_limit = index_page_limit
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            follow_redirects=True,
        )
        self._latest_cache: BoundedCache[str, ModuleInfo] = BoundedCache(cache_size)
        self._info_cache: BoundedCache[tuple[str, str], ModuleInfo] = BoundedCache(cache_size)
        self._mod_cache: BoundedCache[tuple[str, str], ModFile] = BoundedCache(cache_size)

    @classmethod
    def from_settings(cls, settings: GoProxySettings | None = None) -> "GoProxyClient":
        settings = settings or GoProxySettings()
        return cls(
            proxy_url=settings.proxy_url,
            index_url=settings.index_url,
            timeout=settings.request_timeout,
            cache_size=settings.cache_size,
            index_page_limit=settings.index_page_limit,
        )

    # ─── Lifecycle ──────────────────────────────────────────

    async def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._owns_client:
            await self._http.aclose()

    async def __aenter__(self) -> "GoProxyClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    @property
    def cache_stats(self) -> dict[str, dict[str, int]]:
        return {
            "latest": self._latest_cache.stats,
            "info": self._info_cache.stats,
            "mod": self._mod_cache.stats,
        }

    # ─── Proxy lookups ──────────────────────────────────────

    def _module_url(self, path: str, cached_only: bool) -> str:
        prefix = "/cached-only" if cached_only else ""
        return f"{self._proxy_url}{prefix}/{escape_path(path)}"

    async def get_latest_info(self, path: str, cached_only: bool = True) -> ModuleInfo:
        """Fetch the latest version info of a module.

        Raises:
            ModuleNotFound: The proxy has no such module (in this tier).
            RegistryTimeout: The request timed out.
            RegistryError: Any other failure.
        """
        cached = self._latest_cache.get(path)
        if cached is not None:
            return cached

        response = await self._get(f"{self._module_url(path, cached_only)}/@latest")
        info = self._decode_info(response, path)
        self._latest_cache.set(path, info)
        return info

    async def get_info(self, path: str, version: str, cached_only: bool = True) -> ModuleInfo:
        """Fetch the info document of a specific module version."""
        key = (path, version)
        cached = self._info_cache.get(key)
        if cached is not None:
            return cached

        url = f"{self._module_url(path, cached_only)}/@v/{escape_path(version)}.info"
        response = await self._get(url)
        info = self._decode_info(response, f"{path}@{version}")
        self._info_cache.set(key, info)
        return info

    async def get_mod_file(self, path: str, version: str, cached_only: bool = True) -> ModFile:
        """Fetch and parse the go.mod file of a specific module version.

        Raises:
            ModuleNotFound: The proxy has no go.mod for this version.
            InvalidModFile: The go.mod content does not parse.
            RegistryTimeout: The request timed out.
            RegistryError: Any other failure.
        """
        key = (path, version)
        cached = self._mod_cache.get(key)
        if cached is not None:
            return cached

        url = f"{self._module_url(path, cached_only)}/@v/{escape_path(version)}.mod"
        response = await self._get(url)
        mod = parse_mod_file(response.content)
        self._mod_cache.set(key, mod)
        return mod

    # ─── Index feed ─────────────────────────────────────────

    async def list_index(self, since: datetime, limit: int | None = None) -> list[IndexEntry]:
        """Fetch one page of the index feed starting at ``since``."""
        params = {
            "since": _format_since(since),
            "limit": str(limit or self._index_page_limit),
            "include": "",
        }
        response = await self._get(f"{self._index_url}/index", params=params)

        entries = []
        for line in response.text.splitlines():
            if not line.strip():
                continue
            try:
                entries.append(IndexEntry.model_validate_json(line))
            except ValidationError as e:
                raise RegistryError(f"failed to decode index record: {e}") from e
        return entries

    async def iter_index(self, since: datetime) -> AsyncIterator[IndexEntry]:
        """Iterate the index feed forward from ``since`` until it is exhausted.

        Pages overlap on their boundary timestamp; records already yielded
        at that timestamp are not yielded twice.
        """
        limit = self._index_page_limit
        seen_at_cursor: set[tuple[str, str]] = set()
        cursor = since

        while True:
            page = await self.list_index(cursor, limit)
            for entry in page:
                if entry.timestamp == cursor and (entry.path, entry.version) in seen_at_cursor:
                    continue
                yield entry

            if len(page) < limit:
                return

            next_cursor = page[-1].timestamp
            if next_cursor == cursor:
                logger.warning("Index page did not advance past %s, stopping", cursor.isoformat())
                return
            cursor = next_cursor
            seen_at_cursor = {(e.path, e.version) for e in page if e.timestamp == cursor}

    # ─── Internal helpers ───────────────────────────────────

    async def _get(self, url: str, params: dict | None = None) -> httpx.Response:
        try:
            response = await self._http.get(url, params=params)
        except httpx.TimeoutException as e:
            raise RegistryTimeout(f"timeout requesting {url}: {e}") from e
        except httpx.HTTPError as e:
            raise RegistryError(f"failed to execute request {url}: {e}") from e

        if response.status_code in NOT_FOUND_STATUSES:
            raise ModuleNotFound(f"not found: {url}")
        if response.status_code != 200:
            raise RegistryError(f"unexpected status code {response.status_code} for {url}")
        return response

    @staticmethod
    def _decode_info(response: httpx.Response, label: str) -> ModuleInfo:
        try:
            return ModuleInfo.model_validate_json(response.content)
        except ValidationError as e:
            raise RegistryError(f"failed to decode info for {label}: {e}") from e
