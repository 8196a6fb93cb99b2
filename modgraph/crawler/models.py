"""
Crawler Models

Data classes for module identities as they move through the frontier,
the node records written to the graph, and the statistics of a run.
"""

from dataclasses import dataclass, field
from datetime import datetime

from modgraph.crawler import semver
from modgraph.crawler.orgs import extract_org, module_host
from modgraph.shared.exceptions import InvalidVersionFormat


@dataclass(frozen=True)
class ModuleIdentity:
    """A module coordinate.  An empty version means "resolve latest"."""

    path: str
    version: str = ""

    @property
    def resolved(self) -> bool:
        return bool(self.version)

    def normalized(self, lower_case: bool = True) -> "ModuleIdentity":
        """Return the identity with its path lower-cased when ``lower_case`` is set."""
        if not lower_case or self.path == self.path.lower():
            return self
        return ModuleIdentity(path=self.path.lower(), version=self.version)

    def with_version(self, version: str) -> "ModuleIdentity":
        return ModuleIdentity(path=self.path, version=version)

    def __str__(self) -> str:
        return f"{self.path}@{self.version}" if self.version else self.path


@dataclass
class ModuleNode:
    """A Module node as persisted: keyed by (name, version), the rest is derived."""

    name: str
    version: str
    org: str = ""
    host: str = ""
    major: str | None = None
    minor: str | None = None
    patch: str | None = None
    label: str | None = None
    published_at: datetime | None = None

    @property
    def key(self) -> tuple[str, str]:
        return (self.name, self.version)

    def to_params(self) -> dict:
        """Cypher parameters for the node (identity plus derived properties)."""
        props = {
            "org": self.org,
            "host": self.host,
        }
        if self.major is not None:
            props.update(
                major=self.major,
                minor=self.minor,
                patch=self.patch,
                label=self.label,
            )
        if self.published_at is not None:
            props["publishedAt"] = self.published_at
        return {"name": self.name, "version": self.version, "props": props}


def describe_module(name: str, version: str, published_at: datetime | None = None) -> ModuleNode:
    """Build a ModuleNode with every derived attribute filled in."""
    node = ModuleNode(
        name=name,
        version=version,
        org=extract_org(name),
        host=module_host(name),
        published_at=published_at,
    )
    try:
        parsed = semver.parse(version)
    except InvalidVersionFormat:
        return node
    node.major = parsed.major
    node.minor = parsed.minor
    node.patch = parsed.patch
    node.label = parsed.label
    return node


@dataclass
class CrawlStats:
    """Counters for one crawl run."""

    run_id: str = ""
    seeds: int = 0
    processed: int = 0
    skipped: int = 0
    modules_written: int = 0
    edges_written: int = 0
    discovered: int = 0
    skip_reasons: dict[str, int] = field(default_factory=dict)

    def skip(self, reason: str) -> None:
        self.skipped += 1
        self.skip_reasons[reason] = self.skip_reasons.get(reason, 0) + 1

    def as_dict(self) -> dict:
        return {
            "run_id": self.run_id,
            "seeds": self.seeds,
            "processed": self.processed,
            "skipped": self.skipped,
            "modules_written": self.modules_written,
            "edges_written": self.edges_written,
            "discovered": self.discovered,
            "skip_reasons": dict(self.skip_reasons),
        }
