"""Go module proxy access: HTTP client, go.mod parser and lookup policy."""

from modgraph.goproxy.client import GoProxyClient, escape_path
from modgraph.goproxy.lookups import RegistryLookups
from modgraph.goproxy.modfile import ModFile, Requirement, parse_mod_file

__all__ = [
    "GoProxyClient",
    "RegistryLookups",
    "ModFile",
    "Requirement",
    "escape_path",
    "parse_mod_file",
]
