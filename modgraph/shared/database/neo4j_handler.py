"""
Neo4j Connection Handler

Centralised Neo4j driver management.
Reads connection settings from environment variables and exposes an async
driver that is shared by the graph writer and the enrichment workflows.
"""

import os
import logging
from typing import Any

from dotenv import load_dotenv
from neo4j import AsyncGraphDatabase, AsyncDriver, unit_of_work

from modgraph.shared.exceptions import DatabaseConnectionError

load_dotenv()

logger = logging.getLogger("modgraph.neo4j_handler")


class Neo4jHandler:
    """
    Manages a single async Neo4j driver backed by .env configuration.

    Usage
    -----
    handler = Neo4jHandler()          # reads from .env
    await handler.connect()
    results = await handler.run("MATCH (m:Module) RETURN m LIMIT 5")
    await handler.close()

    The handler can also be used as an async context-manager:

        async with Neo4jHandler() as handler:
            await handler.run(...)

    When no username is configured the driver connects without
    authentication, which matches a local Neo4j started with
    ``NEO4J_AUTH=none``.
    """

    def __init__(
        self,
        uri: str | None = None,
        username: str | None = None,
        password: str | None = None,
        database: str | None = None,
    ):
        self._uri = uri or os.getenv("NEO4J_URI", "neo4j://localhost")
        self._username = username or os.getenv("NEO4J_USERNAME")
        self._password = password or os.getenv("NEO4J_PASSWORD", "")
        self._database = database or os.getenv("NEO4J_DATABASE", "neo4j")
        self._driver: AsyncDriver | None = None

        if not self._uri:
            raise ValueError("NEO4J_URI is not set (env or argument)")

    # ─── Lifecycle ──────────────────────────────────────────

    async def connect(self) -> "Neo4jHandler":
        """Create the async driver and verify connectivity.

        Returns:
            Self for method chaining.

        Raises:
            DatabaseConnectionError: If Neo4j cannot be reached.
        """
        if self._driver is not None:
            return self

        auth = (self._username, self._password) if self._username else None
        self._driver = AsyncGraphDatabase.driver(self._uri, auth=auth)
        try:
            await self._driver.verify_connectivity()
            logger.info("Connected to Neo4j at %s (db=%s)", self._uri, self._database)
        except Exception as e:
            logger.error("Failed to connect to Neo4j at %s", self._uri)
            await self._driver.close()
            self._driver = None
            raise DatabaseConnectionError(f"cannot reach {self._uri}: {e}") from e
        return self

    async def close(self) -> None:
        """Close the underlying driver."""
        if self._driver:
            await self._driver.close()
            self._driver = None
            logger.info("Neo4j connection closed")

    async def __aenter__(self) -> "Neo4jHandler":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    # ─── Properties ─────────────────────────────────────────

    @property
    def driver(self) -> AsyncDriver:
        """Return the raw async driver (for code that needs direct access).

        Raises:
            RuntimeError: If handler is not connected (call connect() first).
        """
        if self._driver is None:
            raise RuntimeError("Neo4jHandler is not connected, call connect() first")
        return self._driver

    # ─── Convenience Query Helpers ──────────────────────────

    async def run(self, query: str, params: dict[str, Any] | None = None) -> list[dict]:
        """Execute a Cypher query and return all results as dicts.

        Args:
            query: Cypher query string.
            params: Optional query parameters.

        Returns:
            List of result records as dictionaries.
        """
        async with self.driver.session(database=self._database) as session:
            result = await session.run(query, params or {})
            return [record.data() async for record in result]

    async def run_single(self, query: str, params: dict[str, Any] | None = None) -> dict | None:
        """Execute a Cypher query and return the first result, or None."""
        results = await self.run(query, params)
        return results[0] if results else None

    async def write(self, query: str, params: dict[str, Any] | None = None) -> None:
        """Execute an auto-commit write (schema statements, deletes).

        Args:
            query: Cypher write query (CREATE, MERGE, SET, DELETE, etc.).
            params: Optional query parameters.
        """
        async with self.driver.session(database=self._database) as session:
            result = await session.run(query, params or {})
            await result.consume()

    async def write_transaction(
        self,
        query: str,
        params: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> list[dict]:
        """Execute a query inside a managed write transaction.

        The whole statement commits or rolls back as one unit, which is
        what batched ``UNWIND`` upserts rely on.  The driver retries
        transient failures on its own.

        Args:
            query: Cypher write query.
            params: Optional query parameters.
            timeout: Server-side transaction timeout in seconds.

        Returns:
            List of result records as dictionaries.
        """

        @unit_of_work(timeout=timeout)
        async def _work(tx) -> list[dict]:
            result = await tx.run(query, params or {})
            return [record.data() async for record in result]

        async with self.driver.session(database=self._database) as session:
            return await session.execute_write(_work)
