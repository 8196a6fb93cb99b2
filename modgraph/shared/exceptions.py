"""
Custom exception hierarchy for modgraph.

All errors inherit from ModGraphError so they can be caught
uniformly at the CLI level.
"""


class ModGraphError(Exception):
    """Base exception for all modgraph errors."""

    def __init__(self, message: str, component: str = "unknown"):
        self.component = component
        super().__init__(f"[{component}] {message}")


class RegistryError(ModGraphError):
    """Errors raised while talking to the module proxy."""

    def __init__(self, message: str):
        super().__init__(message, component="goproxy")


class ModuleNotFound(RegistryError):
    """The proxy reported the module, version or go.mod as missing."""
    pass


class InvalidModFile(RegistryError):
    """The go.mod document returned by the proxy could not be parsed."""
    pass


class RegistryTimeout(RegistryError):
    """A proxy request did not complete within its timeout."""
    pass


class PersistenceError(ModGraphError):
    """A write to the graph store failed. Fatal to a crawl run."""

    def __init__(self, message: str):
        super().__init__(message, component="graph")


class DatabaseConnectionError(ModGraphError):
    """Failed to connect to Neo4j."""

    def __init__(self, message: str):
        super().__init__(message, component="database")


class InvalidVersionFormat(ModGraphError):
    """A version string does not have three dot-separated components."""

    def __init__(self, message: str):
        super().__init__(message, component="semver")


class SeedFileError(ModGraphError):
    """A seed or CSV input file could not be read."""

    def __init__(self, message: str):
        super().__init__(message, component="seeds")
