"""
Module Graph Writer

Idempotent writes of Module nodes and DEPENDS_ON edges to Neo4j.

Every write is a MERGE keyed on ``(name, version)`` so that concurrent
workers creating the same dependency node, or a second run over the same
seeds, never produce duplicates.  A module and all of its direct
dependencies are written in a single transaction.
"""

import logging

from neo4j.exceptions import DriverError, Neo4jError

from modgraph.crawler.models import ModuleNode
from modgraph.shared.database import Neo4jHandler
from modgraph.shared.exceptions import PersistenceError

logger = logging.getLogger("modgraph.graph_writer")

WRITE_MODULE_QUERY = """
MERGE (m:Module {name: $name, version: $version})
SET m += $props
WITH m
UNWIND $dependencies AS dep
MERGE (d:Module {name: dep.name, version: dep.version})
SET d += dep.props
MERGE (m)-[:DEPENDS_ON]->(d)
RETURN count(d) AS edges
"""

UPDATE_LATEST_QUERY = """
UNWIND $updates AS update
MATCH (m:Module {name: update.name})
SET m += {
    isLatest: m.version = update.latest,
    latest: update.latest,
    latestMajor: update.latestMajor,
    latestMinor: update.latestMinor,
    latestPatch: update.latestPatch,
    latestLabel: update.latestLabel
}
RETURN count(m) AS updated
"""


class ModuleGraphWriter:
    """
    Writes the module dependency graph.

    Accepts a shared ``Neo4jHandler`` so that the driver lifecycle is
    managed by the caller.
    """

    def __init__(self, handler: Neo4jHandler, write_timeout: float = 30.0):
        self._handler = handler
        self._write_timeout = write_timeout

    # ─── Schema ────────────────────────────────────────────

    async def ensure_schema(self) -> None:
        """Create the Module key constraint and lookup indexes if they don't exist."""
        statements = [
            "CREATE CONSTRAINT module_name_version IF NOT EXISTS "
            "FOR (m:Module) REQUIRE (m.name, m.version) IS UNIQUE",
            "CREATE INDEX module_name IF NOT EXISTS FOR (m:Module) ON (m.name)",
            "CREATE INDEX module_version IF NOT EXISTS FOR (m:Module) ON (m.version)",
        ]
        for stmt in statements:
            try:
                await self._handler.write(stmt)
            except Neo4jError as e:
                logger.debug(f"Schema statement skipped: {e}")
            except DriverError as e:
                raise PersistenceError(f"failed to create schema: {e}") from e

        logger.info("Neo4j schema ensured")

    async def clear_all(self) -> None:
        """Delete all Module nodes and their relationships."""
        try:
            await self._handler.write("MATCH (m:Module) DETACH DELETE m")
        except (Neo4jError, DriverError) as e:
            raise PersistenceError(f"failed to clear graph: {e}") from e
        logger.warning("Cleared all Module nodes")

    # ─── Writes ────────────────────────────────────────────

    async def write_module(self, module: ModuleNode, dependencies: list[ModuleNode]) -> int:
        """
        Upsert a module, its direct dependencies and the DEPENDS_ON edges
        between them, all in one transaction.

        Returns:
            Number of DEPENDS_ON edges matched or created.

        Raises:
            PersistenceError: If the transaction fails.
        """
        params = module.to_params()
        params["dependencies"] = [dep.to_params() for dep in dependencies]

        try:
            records = await self._handler.write_transaction(
                WRITE_MODULE_QUERY, params, timeout=self._write_timeout,
            )
        except (Neo4jError, DriverError, OSError) as e:
            logger.error(
                "Failed to write module %s@%s with %d dependencies: %s",
                module.name, module.version, len(dependencies), e,
            )
            raise PersistenceError(
                f"failed to write module {module.name}@{module.version}: {e}"
            ) from e

        return records[0]["edges"] if records else 0

    async def update_latest(self, updates: list[dict]) -> int:
        """Set the latest-version attributes on every node of each named module.

        Each update carries ``name``, ``latest`` and the ``latestMajor``,
        ``latestMinor``, ``latestPatch`` and ``latestLabel`` fields.
        """
        if not updates:
            return 0
        try:
            records = await self._handler.write_transaction(
                UPDATE_LATEST_QUERY, {"updates": updates}, timeout=self._write_timeout,
            )
        except (Neo4jError, DriverError, OSError) as e:
            raise PersistenceError(f"failed to batch update Module nodes: {e}") from e
        return records[0]["updated"] if records else 0

    # ─── Reads ─────────────────────────────────────────────

    async def list_module_names(self) -> list[str]:
        """Distinct module names present in the graph."""
        try:
            rows = await self._handler.run(
                "MATCH (m:Module) RETURN DISTINCT m.name AS name ORDER BY name"
            )
        except (Neo4jError, DriverError, OSError) as e:
            raise PersistenceError(f"failed to list module names: {e}") from e
        return [row["name"] for row in rows if isinstance(row.get("name"), str)]

    async def get_counts(self) -> dict[str, int]:
        """Module node and DEPENDS_ON edge counts."""
        try:
            modules = await self._handler.run_single("MATCH (m:Module) RETURN count(m) AS count")
            edges = await self._handler.run_single(
                "MATCH (:Module)-[r:DEPENDS_ON]->(:Module) RETURN count(r) AS count"
            )
        except (Neo4jError, DriverError, OSError) as e:
            raise PersistenceError(f"failed to count graph: {e}") from e
        return {
            "modules": modules["count"] if modules else 0,
            "depends_on": edges["count"] if edges else 0,
        }
