"""
Two-tier Registry Lookups

Wraps a GoProxyClient with the lookup policy used by every workflow:

1. Ask the cached-only tier first.
2. On ModuleNotFound there, ask the authoritative tier once.
3. ModuleNotFound from the authoritative tier is final.

The whole two-tier lookup is retried with exponential backoff on
timeouts and transport errors, at most ``max_tries`` times.
ModuleNotFound and InvalidModFile are never retried.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Protocol, TypeVar

from modgraph.goproxy.config import GoProxySettings
from modgraph.goproxy.modfile import ModFile
from modgraph.shared.exceptions import InvalidModFile, ModuleNotFound, RegistryError
from modgraph.shared.models import ModuleInfo

logger = logging.getLogger("modgraph.goproxy.lookups")

T = TypeVar("T")

PERMANENT_ERRORS = (ModuleNotFound, InvalidModFile)


class RegistryClient(Protocol):
    """What the lookups need from a proxy client."""

    async def get_latest_info(self, path: str, cached_only: bool = True) -> ModuleInfo: ...

    async def get_info(self, path: str, version: str, cached_only: bool = True) -> ModuleInfo: ...

    async def get_mod_file(self, path: str, version: str, cached_only: bool = True) -> ModFile: ...


class RegistryLookups:
    """Cached-then-authoritative lookups with bounded exponential backoff."""

    def __init__(
        self,
        client: RegistryClient,
        max_tries: int = 3,
        backoff_base: float = 0.5,
        backoff_max: float = 5.0,
    ):
        self._client = client
        self._max_tries = max(1, max_tries)
        self._backoff_base = backoff_base
        self._backoff_max = backoff_max

    @classmethod
    def from_settings(cls, client: RegistryClient, settings: GoProxySettings | None = None) -> "RegistryLookups":
        settings = settings or GoProxySettings()
        return cls(
            client,
            max_tries=settings.max_tries,
            backoff_base=settings.backoff_base,
            backoff_max=settings.backoff_max,
        )

    async def latest_info(self, path: str) -> ModuleInfo:
        """Resolve the latest version of ``path``."""
        return await self._with_backoff(
            f"{path}@latest",
            lambda cached_only: self._client.get_latest_info(path, cached_only=cached_only),
        )

    async def info(self, path: str, version: str) -> ModuleInfo:
        """Fetch the info document of ``path@version``."""
        return await self._with_backoff(
            f"{path}@{version} info",
            lambda cached_only: self._client.get_info(path, version, cached_only=cached_only),
        )

    async def mod_file(self, path: str, version: str) -> ModFile:
        """Fetch the go.mod file of ``path@version``."""
        return await self._with_backoff(
            f"{path}@{version} go.mod",
            lambda cached_only: self._client.get_mod_file(path, version, cached_only=cached_only),
        )

    # ─── Policy ─────────────────────────────────────────────

    async def _two_tier(self, label: str, fetch: Callable[[bool], Awaitable[T]]) -> T:
        try:
            return await fetch(True)
        except ModuleNotFound:
            logger.debug("%s not in proxy cache, asking authoritative tier", label)
        return await fetch(False)

    async def _with_backoff(self, label: str, fetch: Callable[[bool], Awaitable[T]]) -> T:
        for attempt in range(1, self._max_tries + 1):
            try:
                return await self._two_tier(label, fetch)
            except PERMANENT_ERRORS:
                raise
            except RegistryError as e:
                if attempt >= self._max_tries:
                    raise
                delay = min(self._backoff_base * (2 ** (attempt - 1)), self._backoff_max)
                logger.debug(
                    "Lookup %s failed (attempt %d/%d), retrying in %.2fs: %s",
                    label, attempt, self._max_tries, delay, e,
                )
                await asyncio.sleep(delay)
        raise AssertionError("unreachable")
