"""
Unit tests for the frontier engine.

Runs the engine against the in-memory proxy and graph writer from
conftest.py.  Run with: pytest tests/test_crawler/test_engine.py -v
"""

from datetime import datetime, timezone

import pytest

from modgraph.crawler.engine import FrontierEngine
from modgraph.crawler.models import ModuleIdentity
from modgraph.shared.exceptions import InvalidModFile, PersistenceError, RegistryError, RegistryTimeout
from modgraph.shared.models import ModuleInfo


def make_engine(lookups, graph, **kwargs) -> FrontierEngine:
    kwargs.setdefault("parallel", 4)
    return FrontierEngine(lookups, graph, **kwargs)


# ─── Traversal ───────────────────────────────────────────────


class TestTraversal:
    """End-to-end crawls over small registries."""

    async def test_seed_resolved_and_dependency_expanded(self, registry, lookups, graph):
        registry.add("example.com/a", "v1.0.0", requires=[("example.com/b", "v1.0.0")])
        registry.add("example.com/b", "v1.0.0")

        stats = await make_engine(lookups, graph).run([ModuleIdentity("example.com/a")])

        assert set(graph.nodes) == {("example.com/a", "v1.0.0"), ("example.com/b", "v1.0.0")}
        assert graph.edges == {(("example.com/a", "v1.0.0"), ("example.com/b", "v1.0.0"))}
        assert registry.mod_fetches("example.com/b")
        assert stats.processed == 2
        assert stats.modules_written == 2
        assert stats.edges_written == 1
        assert stats.discovered == 1

    async def test_only_direct_requirements_become_edges(self, registry, lookups, graph):
        registry.add(
            "example.com/a", "v1.0.0",
            requires=[("example.com/b", "v1.0.0"), ("example.com/c", "v0.3.0")],
            indirect=[("example.com/x", "v1.0.0"), ("example.com/y", "v2.1.0"), ("example.com/z", "v0.0.1")],
        )
        registry.add("example.com/b", "v1.0.0")
        registry.add("example.com/c", "v0.3.0")

        stats = await make_engine(lookups, graph).run([ModuleIdentity("example.com/a")])

        a = ("example.com/a", "v1.0.0")
        assert {edge for edge in graph.edges if edge[0] == a} == {
            (a, ("example.com/b", "v1.0.0")),
            (a, ("example.com/c", "v0.3.0")),
        }
        assert stats.edges_written == 2
        for path in ("example.com/x", "example.com/y", "example.com/z"):
            assert not registry.mod_fetches(path)
            assert not any(key[0] == path for key in graph.nodes)

    async def test_diamond_dependency_processed_once(self, registry, lookups, graph):
        registry.add("example.com/a", "v1.0.0", requires=[("example.com/b", "v1.0.0"), ("example.com/c", "v1.0.0")])
        registry.add("example.com/b", "v1.0.0", requires=[("example.com/d", "v1.0.0")])
        registry.add("example.com/c", "v1.0.0", requires=[("example.com/d", "v1.0.0")])
        registry.add("example.com/d", "v1.0.0")

        stats = await make_engine(lookups, graph).run([ModuleIdentity("example.com/a")])

        assert len(registry.mod_fetches("example.com/d")) == 1
        assert stats.processed == 4
        assert len(graph.edges) == 4

    async def test_cycle_terminates(self, registry, lookups, graph):
        registry.add("example.com/a", "v1.0.0", requires=[("example.com/b", "v1.0.0")])
        registry.add("example.com/b", "v1.0.0", requires=[("example.com/a", "v1.0.0")])

        stats = await make_engine(lookups, graph).run([ModuleIdentity("example.com/a", "v1.0.0")])

        assert stats.processed == 2
        assert graph.edges == {
            (("example.com/a", "v1.0.0"), ("example.com/b", "v1.0.0")),
            (("example.com/b", "v1.0.0"), ("example.com/a", "v1.0.0")),
        }

    async def test_rerun_yields_same_graph(self, registry, lookups, graph):
        registry.add("example.com/a", "v1.0.0", requires=[("example.com/b", "v1.0.0"), ("example.com/c", "v1.2.0")])
        registry.add("example.com/b", "v1.0.0", requires=[("example.com/c", "v1.2.0")])
        registry.add("example.com/c", "v1.2.0")
        seeds = [ModuleIdentity("example.com/a")]
        engine = make_engine(lookups, graph)

        await engine.run(seeds)
        nodes, edges = dict(graph.nodes), set(graph.edges)
        await engine.run(seeds)

        assert graph.nodes == nodes
        assert graph.edges == edges
        assert graph.writes == 6

    async def test_empty_seed_list(self, lookups, graph):
        stats = await make_engine(lookups, graph).run([])

        assert stats.processed == 0
        assert graph.nodes == {}

    async def test_duplicate_seeds_admitted_once(self, registry, lookups, graph):
        registry.add("example.com/a", "v1.0.0")

        stats = await make_engine(lookups, graph).run([
            ModuleIdentity("example.com/a"),
            ModuleIdentity("example.com/a"),
            ModuleIdentity("Example.com/A"),
        ])

        assert stats.seeds == 1
        assert stats.processed == 1

    async def test_resolved_seed_matching_dependency_fetched_once(self, registry, lookups, graph):
        registry.add("example.com/a", "v1.0.0", requires=[("example.com/b", "v1.0.0")])
        registry.add("example.com/b", "v1.0.0")

        await make_engine(lookups, graph, parallel=2).run([
            ModuleIdentity("example.com/a"),
            ModuleIdentity("example.com/b"),
        ])

        assert len(registry.mod_fetches("example.com/b")) == 1
        assert graph.writes == 2
        assert set(graph.nodes) == {("example.com/a", "v1.0.0"), ("example.com/b", "v1.0.0")}

    async def test_resolved_identity_is_admitted(self, registry, lookups, graph):
        registry.add("example.com/a", "v1.0.0")
        engine = make_engine(lookups, graph, parallel=1)

        await engine.run([ModuleIdentity("example.com/a"), ModuleIdentity("example.com/a", "v1.0.0")])

        assert len(registry.mod_fetches("example.com/a")) == 1
        assert graph.writes == 1

    async def test_fan_out_larger_than_queue(self, registry, lookups, graph):
        deps = [(f"example.com/dep{i}", "v1.0.0") for i in range(20)]
        registry.add("example.com/root", "v1.0.0", requires=deps)
        for path, version in deps:
            registry.add(path, version)

        engine = make_engine(lookups, graph, parallel=2, queue_size=2)
        stats = await engine.run([ModuleIdentity("example.com/root")])

        assert stats.processed == 21
        assert len(graph.edges) == 20


# ─── Version handling ────────────────────────────────────────


class TestVersions:
    """Resolution of unversioned identities and publish dates."""

    async def test_versioned_seed_skips_latest_lookup(self, registry, lookups, graph):
        registry.add("example.com/a", "v1.0.0", latest=False)

        await make_engine(lookups, graph).run([ModuleIdentity("example.com/a", "v1.0.0")])

        assert not [c for c in registry.calls if c[0] == "latest"]
        assert ("example.com/a", "v1.0.0") in graph.nodes

    async def test_dependency_version_is_taken_from_requirement(self, registry, lookups, graph):
        registry.add("example.com/a", "v1.0.0", requires=[("example.com/b", "v1.1.0")])
        registry.add("example.com/b", "v1.1.0", latest=False)
        registry.add("example.com/b", "v2.0.0")

        await make_engine(lookups, graph).run([ModuleIdentity("example.com/a")])

        assert ("example.com/b", "v1.1.0") in graph.nodes
        assert ("example.com/b", "v2.0.0") not in graph.nodes

    async def test_node_carries_semver_and_org(self, registry, lookups, graph):
        registry.add("github.com/acme/tool", "v1.4.2-rc.1")

        await make_engine(lookups, graph).run([ModuleIdentity("github.com/acme/tool")])

        props = graph.nodes[("github.com/acme/tool", "v1.4.2-rc.1")]
        assert props["org"] == "acme"
        assert props["host"] == "github.com"
        assert (props["major"], props["minor"], props["patch"], props["label"]) == ("1", "4", "2", "rc.1")

    async def test_fetch_version_info_sets_publish_date(self, registry, lookups, graph):
        published = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)
        registry.add("example.com/a", "v1.0.0", latest=False)
        registry.infos[("example.com/a", "v1.0.0")] = ModuleInfo(version="v1.0.0", time=published)

        engine = make_engine(lookups, graph, fetch_version_info=True)
        await engine.run([ModuleIdentity("example.com/a", "v1.0.0")])

        assert graph.nodes[("example.com/a", "v1.0.0")]["publishedAt"] == published

    async def test_missing_version_info_is_not_fatal(self, registry, lookups, graph):
        registry.add("example.com/a", "v1.0.0", latest=False)

        engine = make_engine(lookups, graph, fetch_version_info=True)
        stats = await engine.run([ModuleIdentity("example.com/a", "v1.0.0")])

        assert stats.modules_written == 1
        assert "publishedAt" not in graph.nodes[("example.com/a", "v1.0.0")]


# ─── Path normalization ──────────────────────────────────────


class TestPathNormalization:
    """Case handling of module paths before admission."""

    async def test_case_variants_collapse_to_one_node(self, registry, lookups, graph):
        registry.add("example.com/a", "v1.0.0", requires=[("github.com/Sirupsen/logrus", "v1.9.0")])
        registry.add("example.com/b", "v1.0.0", requires=[("github.com/sirupsen/logrus", "v1.9.0")])
        registry.add("github.com/sirupsen/logrus", "v1.9.0")

        await make_engine(lookups, graph).run([
            ModuleIdentity("example.com/a"),
            ModuleIdentity("example.com/b"),
        ])

        assert [key for key in graph.nodes if key[0].lower() == "github.com/sirupsen/logrus"] == [
            ("github.com/sirupsen/logrus", "v1.9.0")
        ]
        assert len(registry.mod_fetches("github.com/sirupsen/logrus")) == 1

    async def test_normalization_can_be_disabled(self, registry, lookups, graph):
        registry.add("github.com/Acme/Tool", "v1.0.0")

        engine = make_engine(lookups, graph, normalize_paths=False)
        await engine.run([ModuleIdentity("github.com/Acme/Tool")])

        assert ("github.com/Acme/Tool", "v1.0.0") in graph.nodes


# ─── Skips ───────────────────────────────────────────────────


class TestSkips:
    """Per-module failures skip the module and never abort the run."""

    async def test_unknown_seed_is_skipped(self, lookups, graph):
        stats = await make_engine(lookups, graph).run([ModuleIdentity("example.com/ghost")])

        assert stats.skipped == 1
        assert stats.skip_reasons == {"latest_not_found": 1}
        assert graph.nodes == {}

    async def test_missing_go_mod_of_dependency_does_not_abort(self, registry, lookups, graph):
        registry.add("example.com/a", "v1.0.0", requires=[("example.com/gone", "v0.1.0"), ("example.com/b", "v1.0.0")])
        registry.add("example.com/b", "v1.0.0")

        stats = await make_engine(lookups, graph).run([ModuleIdentity("example.com/a")])

        assert stats.skip_reasons == {"mod_not_found": 1}
        assert stats.modules_written == 2
        # the dependency is only an edge endpoint of its dependent, never written on its own
        assert graph.writes == 2
        assert graph.nodes[("example.com/gone", "v0.1.0")].get("publishedAt") is None

    async def test_cached_miss_falls_back_to_authoritative(self, registry, lookups, graph):
        registry.add("example.com/a", "v1.0.0")
        registry.uncached = {"example.com/a", ("example.com/a", "v1.0.0")}

        stats = await make_engine(lookups, graph).run([ModuleIdentity("example.com/a")])

        assert stats.modules_written == 1
        assert ("mod", "example.com/a", "v1.0.0", True) in registry.calls
        assert ("mod", "example.com/a", "v1.0.0", False) in registry.calls

    async def test_invalid_go_mod_is_skipped(self, registry, lookups, graph):
        registry.add("example.com/a", "v1.0.0")
        registry.mods[("example.com/a", "v1.0.0")] = InvalidModFile("bad")

        stats = await make_engine(lookups, graph).run([ModuleIdentity("example.com/a")])

        assert stats.skip_reasons == {"invalid_mod": 1}
        assert graph.nodes == {}

    async def test_go_mod_without_module_directive_is_skipped(self, registry, lookups, graph):
        registry.add("example.com/a", "v1.0.0")
        registry.mods[("example.com/a", "v1.0.0")] = "go 1.21\n"

        stats = await make_engine(lookups, graph).run([ModuleIdentity("example.com/a")])

        assert stats.skip_reasons == {"no_module": 1}

    async def test_timeouts_are_retried_then_skipped(self, registry, lookups, graph):
        registry.add("example.com/a", "v1.0.0", requires=[("example.com/b", "v1.0.0")])
        registry.add("example.com/b", "v1.0.0")
        registry.fail("mod", "example.com/b", *(RegistryTimeout("slow") for _ in range(3)))

        stats = await make_engine(lookups, graph).run([ModuleIdentity("example.com/a")])

        assert stats.skip_reasons == {"timeout": 1}
        assert len(registry.mod_fetches("example.com/b")) == 3
        assert stats.modules_written == 1

    async def test_transient_error_recovers_within_max_tries(self, registry, lookups, graph):
        registry.add("example.com/a", "v1.0.0")
        registry.fail("latest", "example.com/a", RegistryError("502"))

        stats = await make_engine(lookups, graph).run([ModuleIdentity("example.com/a")])

        assert stats.skipped == 0
        assert ("example.com/a", "v1.0.0") in graph.nodes


# ─── Persistence failures ────────────────────────────────────


class TestPersistenceFailure:
    """A failed graph write aborts the whole run."""

    async def test_write_failure_is_raised(self, registry, lookups, graph_factory):
        registry.add("example.com/a", "v1.0.0")
        graph = graph_factory(fail_on={"example.com/a"})

        with pytest.raises(PersistenceError):
            await make_engine(lookups, graph).run([ModuleIdentity("example.com/a")])

    async def test_write_failure_cancels_in_flight_workers(self, registry, lookups, graph_factory):
        registry.add("example.com/fail", "v1.0.0")
        registry.blocking = {"example.com/slow1", "example.com/slow2"}
        graph = graph_factory(fail_on={"example.com/fail"}, delay=0.05)

        engine = make_engine(lookups, graph, parallel=3)
        with pytest.raises(PersistenceError):
            await engine.run([
                ModuleIdentity("example.com/fail"),
                ModuleIdentity("example.com/slow1"),
                ModuleIdentity("example.com/slow2"),
            ])

        assert registry.started_blocking == 2
        assert registry.cancelled == 2
