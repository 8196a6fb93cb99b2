"""
Frontier Engine

Crawls the module dependency graph breadth-wise from a set of seeds:

    seed → admission set → work queue → worker
         → resolve latest version (only when the identity has none)
         → fetch go.mod
         → write module + direct dependencies + DEPENDS_ON edges
         → admit each direct dependency, enqueue the new ones

A fixed pool of workers pulls from a bounded queue.  The admission set
guarantees each identity is processed at most once per run, and the run
ends when no identity is queued or in flight.

Resolution failures (not found, invalid go.mod, timeouts, transport
errors) only skip the module at hand.  A failed graph write is fatal:
it cancels every worker and is re-raised from ``run``.
"""

import asyncio
import logging
import os
from collections import deque
from collections.abc import Iterable
from datetime import datetime
from typing import Protocol

from modgraph.crawler.config import CrawlerSettings
from modgraph.crawler.dedup import AdmissionSet
from modgraph.crawler.models import CrawlStats, ModuleIdentity, ModuleNode, describe_module
from modgraph.goproxy.lookups import RegistryLookups
from modgraph.shared.exceptions import (
    InvalidModFile,
    ModuleNotFound,
    PersistenceError,
    RegistryError,
    RegistryTimeout,
)
from modgraph.shared.logging import generate_correlation_id

logger = logging.getLogger("modgraph.engine")

_STOP = object()


class GraphWriter(Protocol):
    async def write_module(self, module: ModuleNode, dependencies: list[ModuleNode]) -> int: ...


class FrontierEngine:
    """
    Bounded-parallelism work queue over module identities.

    Usage::

        engine = FrontierEngine(lookups, writer, parallel=10)
        stats = await engine.run([ModuleIdentity("golang.org/x/mod")])

    Each call to ``run`` starts with a fresh admission set.
    """

    def __init__(
        self,
        lookups: RegistryLookups,
        writer: GraphWriter,
        parallel: int | None = None,
        queue_size: int = 1000,
        normalize_paths: bool = True,
        fetch_version_info: bool = False,
        progress_every: int = 100,
    ):
        self._lookups = lookups
        self._writer = writer
        self._parallel = max(1, parallel or os.cpu_count() or 1)
        self._queue_size = max(queue_size, self._parallel)
        self._normalize_paths = normalize_paths
        self._fetch_version_info = fetch_version_info
        self._progress_every = max(1, progress_every)

        self._admitted = AdmissionSet()
        self._queue: asyncio.Queue | None = None
        self._overflow: deque[ModuleIdentity] = deque()
        self._pending = 0
        self._stats = CrawlStats()

    @classmethod
    def from_settings(
        cls,
        lookups: RegistryLookups,
        writer: GraphWriter,
        settings: CrawlerSettings | None = None,
    ) -> "FrontierEngine":
        settings = settings or CrawlerSettings()
        return cls(
            lookups,
            writer,
            parallel=settings.parallel,
            queue_size=settings.queue_size,
            normalize_paths=settings.normalize_paths,
            fetch_version_info=settings.fetch_version_info,
            progress_every=settings.progress_every,
        )

    @property
    def stats(self) -> CrawlStats:
        return self._stats

    # ─── Run ──────────────────────────────────────────────

    async def run(self, seeds: Iterable[ModuleIdentity], run_id: str | None = None) -> CrawlStats:
        """
        Crawl from ``seeds`` until the reachable graph is exhausted.

        Returns:
            Statistics of the run.

        Raises:
            PersistenceError: A graph write failed; all workers were cancelled.
        """
        self._admitted = AdmissionSet()
        self._queue = asyncio.Queue(maxsize=self._queue_size)
        self._overflow = deque()
        self._pending = 1  # held by the seeder until every seed is queued
        self._stats = CrawlStats(run_id=run_id or generate_correlation_id())

        logger.info(
            "Starting crawl run %s with %d workers (queue size %d)",
            self._stats.run_id, self._parallel, self._queue_size,
        )

        tasks = [asyncio.create_task(self._seed(seeds), name="frontier-seeder")]
        tasks += [
            asyncio.create_task(self._worker(n), name=f"frontier-worker-{n}")
            for n in range(self._parallel)
        ]

        try:
            await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.error("Crawl run %s aborted", self._stats.run_id)
            raise

        logger.info(
            "Crawl run %s complete: processed=%d skipped=%d written=%d edges=%d discovered=%d",
            self._stats.run_id,
            self._stats.processed,
            self._stats.skipped,
            self._stats.modules_written,
            self._stats.edges_written,
            self._stats.discovered,
        )
        return self._stats

    # ─── Queue management ─────────────────────────────────

    async def _seed(self, seeds: Iterable[ModuleIdentity]) -> None:
        for identity in seeds:
            identity = identity.normalized(self._normalize_paths)
            if not self._admitted.admit_if_new(identity):
                logger.debug("Seed %s already admitted", identity)
                continue
            self._stats.seeds += 1
            self._pending += 1
            await self._queue.put(identity)

        logger.info("Queued %d seed modules", self._stats.seeds)
        self._release()

    def _enqueue(self, identity: ModuleIdentity) -> None:
        """Queue a newly admitted dependency without blocking the worker.

        Workers are also the queue's consumers, so a worker waiting on a
        full queue could wait forever; dependencies that do not fit go to
        the overflow, which workers drain first.
        """
        self._pending += 1
        try:
            self._queue.put_nowait(identity)
        except asyncio.QueueFull:
            self._overflow.append(identity)

    def _release(self) -> None:
        """Mark one unit of work as finished; stop the workers when none is left."""
        self._pending -= 1
        if self._pending == 0:
            for _ in range(self._parallel):
                self._queue.put_nowait(_STOP)

    async def _next(self):
        if self._overflow:
            return self._overflow.popleft()
        return await self._queue.get()

    async def _worker(self, n: int) -> None:
        while True:
            identity = await self._next()
            if identity is _STOP:
                logger.debug("Worker %d stopping", n)
                return

            try:
                dependencies = await self.process_module(identity)
            except PersistenceError:
                logger.error("Worker %d failed on %s", n, identity, exc_info=True)
                raise

            for dependency in dependencies:
                if self._admitted.admit_if_new(dependency):
                    self._stats.discovered += 1
                    self._enqueue(dependency)

            self._stats.processed += 1
            if self._stats.processed % self._progress_every == 0:
                logger.info(
                    "[%d processed / %d admitted] last: %s",
                    self._stats.processed, len(self._admitted), identity,
                )
            self._release()

    # ─── Per-module processing ────────────────────────────

    async def process_module(self, identity: ModuleIdentity) -> list[ModuleIdentity]:
        """
        Resolve, fetch and persist one module.

        Returns:
            The module's direct dependencies (normalized), or an empty list
            when the module was skipped.

        Raises:
            PersistenceError: If the graph write fails.
        """
        logger.debug("Processing module %s", identity)
        published_at: datetime | None = None

        if not identity.resolved:
            try:
                info = await self._lookups.latest_info(identity.path)
            except ModuleNotFound as e:
                # Seeds sometimes point at nested go.mod files nobody publishes
                logger.warning("Latest module info not found for %s: %s", identity, e)
                self._stats.skip("latest_not_found")
                return []
            except RegistryTimeout as e:
                logger.error("Timeout while getting latest module info for %s: %s", identity, e)
                self._stats.skip("timeout")
                return []
            except RegistryError as e:
                logger.error("Failed to get latest module info for %s: %s", identity, e)
                self._stats.skip("registry_error")
                return []
            identity = identity.with_version(info.version)
            if not self._admitted.admit_if_new(identity):
                logger.debug("Resolved %s already admitted", identity)
                self._stats.skip("already_admitted")
                return []
            published_at = info.time
        elif self._fetch_version_info:
            published_at = await self._version_time(identity)

        try:
            mod = await self._lookups.mod_file(identity.path, identity.version)
        except ModuleNotFound as e:
            logger.warning("Module go.mod file not found for %s: %s", identity, e)
            self._stats.skip("mod_not_found")
            return []
        except InvalidModFile as e:
            logger.warning("Invalid go.mod file for %s: %s", identity, e)
            self._stats.skip("invalid_mod")
            return []
        except RegistryTimeout as e:
            logger.error("Timeout while getting go.mod file for %s: %s", identity, e)
            self._stats.skip("timeout")
            return []
        except RegistryError as e:
            logger.error("Failed to get go.mod file for %s: %s", identity, e)
            self._stats.skip("registry_error")
            return []

        if mod.module is None:
            logger.warning("go.mod file of %s does not contain module information", identity)
            self._stats.skip("no_module")
            return []

        name = ModuleIdentity(mod.module).normalized(self._normalize_paths).path
        node = describe_module(name, identity.version, published_at=published_at)

        dependencies: list[ModuleIdentity] = []
        seen: set[ModuleIdentity] = set()
        for req in mod.direct_requires:
            dependency = ModuleIdentity(req.path, req.version).normalized(self._normalize_paths)
            if dependency not in seen:
                seen.add(dependency)
                dependencies.append(dependency)

        edges = await self._writer.write_module(
            node,
            [describe_module(dep.path, dep.version) for dep in dependencies],
        )
        self._stats.modules_written += 1
        self._stats.edges_written += edges
        logger.debug("Wrote %s@%s with %d direct dependencies", name, identity.version, len(dependencies))

        return dependencies

    async def _version_time(self, identity: ModuleIdentity) -> datetime | None:
        try:
            info = await self._lookups.info(identity.path, identity.version)
        except RegistryError as e:
            logger.debug("No version info for %s: %s", identity, e)
            return None
        return info.time
