"""
modgraph — CLI entrypoint.

Usage:
    modgraph process-modules --seed-file ./data/seed-modules.txt
    modgraph list-index --since 2024-01-01 --until 2024-02-01 --output-file ./data/index.csv
    modgraph list-latest --output-file ./data/latest.csv
    modgraph enrich-latest --input-file ./data/latest.csv
"""

import asyncio
import json
import logging
import sys
from datetime import timezone

import click

from modgraph import __version__
from modgraph.crawler.config import CrawlerSettings
from modgraph.goproxy.config import GoProxySettings
from modgraph.shared.config import BaseAppSettings
from modgraph.shared.exceptions import ModGraphError
from modgraph.shared.logging import setup_logging

logger = logging.getLogger("modgraph.cli")

DATE_FORMATS = ["%Y-%m-%d", "%Y-%m-%dT%H:%M:%S", "%Y-%m-%dT%H:%M:%SZ"]


def _crawler_settings(**overrides) -> CrawlerSettings:
    """Build CrawlerSettings, letting explicit CLI flags win over the environment."""
    return CrawlerSettings(**{k: v for k, v in overrides.items() if v is not None})


def _run(coro, action: str):
    """Run a workflow coroutine, turning modgraph errors into exit status 1."""
    try:
        return asyncio.run(coro)
    except ModGraphError as e:
        logger.error("%s failed: %s", action, e)
        sys.exit(1)


@click.group()
@click.version_option(version=__version__, prog_name="modgraph")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option("--log-level", default=None, help="Log level (default: LOG_LEVEL or INFO).")
def cli(debug: bool, log_level: str | None) -> None:
    """modgraph: crawl the Go module dependency graph into Neo4j."""
    level = "DEBUG" if debug else (log_level or BaseAppSettings().log_level)
    setup_logging("modgraph", level)


@cli.command("process-modules")
@click.option(
    "--seed-file", type=click.Path(dir_okay=False), default=None,
    help="Seed modules, one per line or CSV with a module column.",
)
@click.option("--parallel", type=click.IntRange(min=1), default=None, help="Number of workers.")
@click.option("--queue-size", type=click.IntRange(min=1), default=None, help="Work queue capacity.")
@click.option(
    "--normalize-paths/--no-normalize-paths", default=None,
    help="Lower-case module paths before deduplication.",
)
@click.option(
    "--fetch-version-info", is_flag=True, default=None,
    help="Fetch publish dates for modules seeded or required at a fixed version.",
)
@click.option("--clear-graph", is_flag=True, help="Delete all Module nodes before crawling.")
def process_modules(
    seed_file: str | None,
    parallel: int | None,
    queue_size: int | None,
    normalize_paths: bool | None,
    fetch_version_info: bool | None,
    clear_graph: bool,
) -> None:
    """Crawl every module reachable from the seed modules."""
    from modgraph.crawler.workflows import run_crawl

    settings = _crawler_settings(
        seed_file=seed_file,
        parallel=parallel,
        queue_size=queue_size,
        normalize_paths=normalize_paths,
        fetch_version_info=fetch_version_info or None,
    )
    stats = _run(
        run_crawl(settings.seed_file, settings, GoProxySettings(), clear_graph=clear_graph),
        "process-modules",
    )
    click.echo(json.dumps(stats.as_dict(), indent=2))


@cli.command("list-index")
@click.option("--since", type=click.DateTime(formats=DATE_FORMATS), required=True, help="Start of the window (UTC).")
@click.option("--until", type=click.DateTime(formats=DATE_FORMATS), required=True, help="End of the window (UTC).")
@click.option("--output-file", type=click.Path(dir_okay=False, writable=True), required=True)
def list_index_cmd(since, until, output_file: str) -> None:
    """List module versions published to the proxy index between two dates."""
    from modgraph.crawler.workflows import run_list_index

    since = since.replace(tzinfo=timezone.utc)
    until = until.replace(tzinfo=timezone.utc)
    if until < since:
        raise click.BadParameter("--until must not be before --since", param_hint="--until")

    written = _run(run_list_index(since, until, output_file, GoProxySettings()), "list-index")
    click.echo(f"Wrote {written} module versions to {output_file}")


@cli.command("list-latest")
@click.option("--output-file", type=click.Path(dir_okay=False, writable=True), required=True)
@click.option("--parallel", type=click.IntRange(min=1), default=None, help="Concurrent proxy lookups.")
def list_latest_cmd(output_file: str, parallel: int | None) -> None:
    """Resolve the latest version of every module in the graph."""
    from modgraph.crawler.workflows import run_list_latest

    settings = _crawler_settings(parallel=parallel)
    written = _run(run_list_latest(output_file, settings, GoProxySettings()), "list-latest")
    click.echo(f"Wrote {written} latest versions to {output_file}")


@cli.command("enrich-latest")
@click.option("--input-file", type=click.Path(exists=True, dir_okay=False), required=True)
@click.option("--batch-size", type=click.IntRange(min=1), default=None, help="Rows per write transaction.")
def enrich_latest_cmd(input_file: str, batch_size: int | None) -> None:
    """Mark the latest version of every module from a module,latest CSV."""
    from modgraph.crawler.workflows import run_enrich_latest

    settings = _crawler_settings(enrich_batch_size=batch_size)
    applied = _run(run_enrich_latest(input_file, settings), "enrich-latest")
    click.echo(f"Applied {applied} latest-version updates")


if __name__ == "__main__":
    cli()
