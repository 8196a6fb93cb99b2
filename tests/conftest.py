"""
Shared fixtures: an in-memory module proxy and an in-memory graph writer.

Neither touches the network or Neo4j, so the engine and workflow tests
run anywhere.
"""

import asyncio

import pytest

from modgraph.goproxy.lookups import RegistryLookups
from modgraph.goproxy.modfile import ModFile, parse_mod_file
from modgraph.shared.exceptions import ModuleNotFound, PersistenceError
from modgraph.shared.models import ModuleInfo


def build_go_mod(module: str | None, requires=(), indirect=()) -> str:
    """Render a go.mod document with direct and indirect requirements."""
    lines = []
    if module is not None:
        lines.append(f"module {module}")
        lines.append("")
    lines.append("go 1.22")
    if requires or indirect:
        lines.append("")
        lines.append("require (")
        for path, version in requires:
            lines.append(f"\t{path} {version}")
        for path, version in indirect:
            lines.append(f"\t{path} {version} // indirect")
        lines.append(")")
    return "\n".join(lines) + "\n"


class FakeRegistry:
    """
    In-memory stand-in for GoProxyClient.

    ``latest`` maps module path → latest version, ``mods`` maps
    (path, version) → go.mod text or an exception to raise.  Keys listed in
    ``uncached`` are only visible to the authoritative tier.  Paths in
    ``blocking`` wait forever when looked up, and record their
    cancellation.
    """

    def __init__(self):
        self.latest: dict[str, str] = {}
        self.mods: dict[tuple[str, str], str | Exception] = {}
        self.infos: dict[tuple[str, str], ModuleInfo] = {}
        self.uncached: set = set()
        self.failures: dict[tuple, list[Exception]] = {}
        self.blocking: set[str] = set()
        self.started_blocking = 0
        self.cancelled = 0
        self.calls: list[tuple[str, str, str, bool]] = []

    def add(self, path, version, requires=(), indirect=(), latest=True, module=None):
        """Publish ``path@version`` with the given requirements."""
        self.mods[(path, version)] = build_go_mod(module or path, requires, indirect)
        if latest:
            self.latest[path] = version

    def fail(self, kind: str, path: str, *errors: Exception) -> None:
        """Raise ``errors`` one by one on the next lookups of ``kind`` for ``path``."""
        self.failures[(kind, path)] = list(errors)

    async def _check(self, kind: str, path: str, key, cached_only: bool) -> None:
        self.calls.append((kind, path, key[1] if isinstance(key, tuple) else "", cached_only))
        await asyncio.sleep(0)
        if path in self.blocking:
            self.started_blocking += 1
            try:
                await asyncio.Event().wait()
            except asyncio.CancelledError:
                self.cancelled += 1
                raise
        pending = self.failures.get((kind, path))
        if pending:
            raise pending.pop(0)
        if cached_only and key in self.uncached:
            raise ModuleNotFound(f"not in cache: {key}")

    async def get_latest_info(self, path: str, cached_only: bool = True) -> ModuleInfo:
        await self._check("latest", path, path, cached_only)
        if path not in self.latest:
            raise ModuleNotFound(f"not found: {path}/@latest")
        return ModuleInfo(version=self.latest[path])

    async def get_info(self, path: str, version: str, cached_only: bool = True) -> ModuleInfo:
        await self._check("info", path, (path, version), cached_only)
        if (path, version) not in self.infos:
            raise ModuleNotFound(f"not found: {path}/@v/{version}.info")
        return self.infos[(path, version)]

    async def get_mod_file(self, path: str, version: str, cached_only: bool = True) -> ModFile:
        await self._check("mod", path, (path, version), cached_only)
        value = self.mods.get((path, version))
        if value is None:
            raise ModuleNotFound(f"not found: {path}/@v/{version}.mod")
        if isinstance(value, Exception):
            raise value
        return parse_mod_file(value)

    def mod_fetches(self, path: str) -> list[tuple[str, str, str, bool]]:
        return [c for c in self.calls if c[0] == "mod" and c[1] == path]


class InMemoryGraphWriter:
    """
    Graph writer keeping nodes and edges in dicts, with MERGE semantics.

    Modules named in ``fail_on`` raise PersistenceError after ``delay``
    seconds.
    """

    def __init__(self, fail_on=(), delay: float = 0.0):
        self.nodes: dict[tuple[str, str], dict] = {}
        self.edges: set[tuple[tuple[str, str], tuple[str, str]]] = set()
        self.fail_on = set(fail_on)
        self.delay = delay
        self.writes = 0

    async def write_module(self, module, dependencies) -> int:
        if self.delay:
            await asyncio.sleep(self.delay)
        if module.name in self.fail_on:
            raise PersistenceError(f"simulated write failure for {module.name}")

        self.writes += 1
        self.nodes.setdefault(module.key, {}).update(module.to_params()["props"])
        for dep in dependencies:
            self.nodes.setdefault(dep.key, {}).update(dep.to_params()["props"])
            self.edges.add((module.key, dep.key))
        return len(dependencies)


@pytest.fixture
def registry() -> FakeRegistry:
    return FakeRegistry()


@pytest.fixture
def graph() -> InMemoryGraphWriter:
    return InMemoryGraphWriter()


@pytest.fixture
def lookups(registry) -> RegistryLookups:
    return RegistryLookups(registry, max_tries=3, backoff_base=0.0)


@pytest.fixture
def graph_factory():
    """Build an InMemoryGraphWriter with custom failure behaviour."""
    return InMemoryGraphWriter
