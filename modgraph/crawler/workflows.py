"""
Crawler workflows

The operations behind the CLI commands:

  - crawl:         seed file → frontier engine → Module graph
  - list_index:    proxy index feed → CSV of module versions
  - list_latest:   Module names in the graph → CSV of latest versions
  - enrich_latest: CSV of latest versions → latest-version attributes

Each ``run_*`` function owns the Neo4j handler and proxy client it needs
and releases them when done.
"""

import asyncio
import csv
import logging
from datetime import datetime, timezone
from pathlib import Path

from modgraph.crawler import semver
from modgraph.crawler.config import CrawlerSettings
from modgraph.crawler.engine import FrontierEngine
from modgraph.crawler.graph_writer import ModuleGraphWriter
from modgraph.crawler.models import CrawlStats
from modgraph.crawler.seeds import load_seeds
from modgraph.goproxy.client import GoProxyClient
from modgraph.goproxy.config import GoProxySettings
from modgraph.goproxy.lookups import RegistryLookups
from modgraph.shared.database import Neo4jHandler
from modgraph.shared.exceptions import InvalidVersionFormat, ModuleNotFound, RegistryError, SeedFileError
from modgraph.shared.logging import generate_correlation_id

logger = logging.getLogger("modgraph.workflows")


# ─── Crawl ───────────────────────────────────────────────────


async def run_crawl(
    seed_file: str | Path,
    settings: CrawlerSettings | None = None,
    proxy_settings: GoProxySettings | None = None,
    clear_graph: bool = False,
    handler: Neo4jHandler | None = None,
) -> CrawlStats:
    """Crawl the dependency graph reachable from ``seed_file`` into Neo4j."""
    settings = settings or CrawlerSettings()
    proxy_settings = proxy_settings or GoProxySettings()
    run_id = generate_correlation_id()

    seeds = load_seeds(seed_file)

    handler = handler or Neo4jHandler()
    await handler.connect()
    try:
        async with GoProxyClient.from_settings(proxy_settings) as client:
            writer = ModuleGraphWriter(handler, write_timeout=settings.write_timeout)
            await writer.ensure_schema()
            if clear_graph:
                logger.info("Clearing existing Module graph...")
                await writer.clear_all()

            lookups = RegistryLookups.from_settings(client, proxy_settings)
            engine = FrontierEngine.from_settings(lookups, writer, settings)
            stats = await engine.run(seeds, run_id=run_id)

            logger.debug("Proxy cache stats: %s", client.cache_stats)
            counts = await writer.get_counts()

        logger.info("=" * 50)
        logger.info("CRAWL COMPLETE (run %s)", run_id)
        logger.info("=" * 50)
        logger.info(
            "Seeds: %d | Processed: %d | Skipped: %d | Discovered: %d",
            stats.seeds, stats.processed, stats.skipped, stats.discovered,
        )
        logger.info(
            "Graph: %d modules | %d DEPENDS_ON edges",
            counts["modules"], counts["depends_on"],
        )
        if stats.skip_reasons:
            logger.info("Skip reasons: %s", stats.skip_reasons)
        return stats
    finally:
        await handler.close()


# ─── Index feed ──────────────────────────────────────────────


async def list_index(
    client: GoProxyClient,
    since: datetime,
    until: datetime,
    output_file: str | Path,
) -> int:
    """Write the unique module versions published in [since, until] as CSV.

    Returns:
        Number of rows written.
    """
    if until.tzinfo is None:
        until = until.replace(tzinfo=timezone.utc)
    seen: set[tuple[str, str]] = set()
    written = 0

    with open(output_file, "w", newline="", encoding="utf-8") as fh:
        writer = csv.writer(fh)
        writer.writerow(["timestamp", "module", "version"])

        async for entry in client.iter_index(since):
            if entry.timestamp > until:
                logger.debug("Reached until date %s", until.isoformat())
                break
            key = (entry.path, entry.version)
            if key in seen:
                continue
            seen.add(key)
            writer.writerow([entry.timestamp.isoformat(), entry.path, entry.version])
            written += 1
            if written % 10_000 == 0:
                logger.info("Listed %d module versions, cursor at %s", written, entry.timestamp.isoformat())

    logger.info("Wrote %d module versions to %s", written, output_file)
    return written


async def run_list_index(
    since: datetime,
    until: datetime,
    output_file: str | Path,
    proxy_settings: GoProxySettings | None = None,
) -> int:
    async with GoProxyClient.from_settings(proxy_settings) as client:
        return await list_index(client, since, until, output_file)


# ─── Latest versions ─────────────────────────────────────────


async def list_latest(
    writer: ModuleGraphWriter,
    lookups: RegistryLookups,
    output_file: str | Path,
    parallel: int = 10,
) -> int:
    """Resolve the latest version of every module name in the graph and write CSV.

    A fixed pool of ``parallel`` workers pulls names from a queue of the
    same size; each row is written as soon as its lookup completes, so
    rows follow completion order.

    Returns:
        Number of modules whose latest version was resolved.
    """
    names = await writer.list_module_names()
    logger.info("Resolving latest version of %d modules", len(names))

    workers = max(1, parallel)
    queue: asyncio.Queue[str | None] = asyncio.Queue(maxsize=workers)
    written = 0

    with open(output_file, "w", newline="", encoding="utf-8") as fh:
        csv_writer = csv.writer(fh)
        csv_writer.writerow(["module", "latest"])

        async def _feed() -> None:
            for name in names:
                await queue.put(name)
            for _ in range(workers):
                await queue.put(None)

        async def _resolve() -> None:
            nonlocal written
            while True:
                name = await queue.get()
                if name is None:
                    return
                try:
                    info = await lookups.latest_info(name)
                except ModuleNotFound:
                    continue
                except RegistryError as e:
                    logger.warning("Failed to get latest module info for %s: %s", name, e)
                    continue
                csv_writer.writerow([name, info.version])
                written += 1

        tasks = [asyncio.create_task(_feed(), name="latest-feeder")]
        tasks += [asyncio.create_task(_resolve(), name=f"latest-worker-{n}") for n in range(workers)]
        try:
            await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    logger.info("Wrote latest versions of %d/%d modules to %s", written, len(names), output_file)
    return written


def read_latest_csv(input_file: str | Path) -> list[tuple[str, str]]:
    """Read ``module,latest`` rows, skipping the header."""
    try:
        with open(input_file, newline="", encoding="utf-8") as fh:
            reader = csv.reader(fh)
            next(reader, None)
            rows = []
            for lineno, record in enumerate(reader, start=2):
                if not record:
                    continue
                if len(record) != 2:
                    raise SeedFileError(f"{input_file}:{lineno}: expected 2 fields, got {len(record)}")
                rows.append((record[0].strip(), record[1].strip()))
            return rows
    except OSError as e:
        raise SeedFileError(f"failed to read {input_file}: {e}") from e


async def enrich_latest(
    writer: ModuleGraphWriter,
    input_file: str | Path,
    batch_size: int = 1000,
) -> int:
    """Write latest-version attributes from a ``module,latest`` CSV in batches.

    Returns:
        Number of rows applied.
    """
    rows = read_latest_csv(input_file)
    batch: list[dict] = []
    applied = 0

    for name, latest in rows:
        try:
            version = semver.parse(latest)
        except InvalidVersionFormat as e:
            logger.warning("Skipping %s: failed to parse latest version %r: %s", name, latest, e)
            continue

        batch.append({
            "name": name,
            "latest": latest,
            "latestMajor": version.major,
            "latestMinor": version.minor,
            "latestPatch": version.patch,
            "latestLabel": version.label,
        })
        if len(batch) >= batch_size:
            await writer.update_latest(batch)
            applied += len(batch)
            logger.info("Applied %d/%d latest-version updates", applied, len(rows))
            batch = []

    if batch:
        await writer.update_latest(batch)
        applied += len(batch)

    logger.info("Applied %d latest-version updates from %s", applied, input_file)
    return applied


async def run_list_latest(
    output_file: str | Path,
    settings: CrawlerSettings | None = None,
    proxy_settings: GoProxySettings | None = None,
    handler: Neo4jHandler | None = None,
) -> int:
    settings = settings or CrawlerSettings()
    proxy_settings = proxy_settings or GoProxySettings()
    handler = handler or Neo4jHandler()
    await handler.connect()
    try:
        async with GoProxyClient.from_settings(proxy_settings) as client:
            writer = ModuleGraphWriter(handler, write_timeout=settings.write_timeout)
            lookups = RegistryLookups.from_settings(client, proxy_settings)
            return await list_latest(writer, lookups, output_file, parallel=settings.parallel)
    finally:
        await handler.close()


async def run_enrich_latest(
    input_file: str | Path,
    settings: CrawlerSettings | None = None,
    handler: Neo4jHandler | None = None,
) -> int:
    settings = settings or CrawlerSettings()
    handler = handler or Neo4jHandler()
    await handler.connect()
    try:
        writer = ModuleGraphWriter(handler, write_timeout=settings.write_timeout)
        return await enrich_latest(writer, input_file, batch_size=settings.enrich_batch_size)
    finally:
        await handler.close()
