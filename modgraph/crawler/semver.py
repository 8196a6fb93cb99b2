"""
Version Resolver

Splits a module version string into its major, minor, patch and label
components.  The components stay strings: ordering and validity of
versions is the proxy's business, not ours.
"""

from dataclasses import dataclass

from modgraph.shared.exceptions import InvalidVersionFormat


@dataclass(frozen=True)
class SemanticVersion:
    major: str
    minor: str
    patch: str
    label: str = ""


def parse(version: str) -> SemanticVersion:
    """
    Parse a version such as ``v1.2.3-beta.1`` or ``v2.0.0+meta``.

    The label is everything after the first ``-`` or, when there is
    none, after the first ``+``.

    Raises:
        InvalidVersionFormat: If the core version is not ``X.Y.Z``.
    """
    core = version[1:] if version.startswith("v") else version

    core, sep, label = core.partition("-")
    if not sep:
        core, _, label = core.partition("+")

    tokens = core.split(".")
    if len(tokens) != 3:
        raise InvalidVersionFormat(f"invalid version format: {version}")

    return SemanticVersion(major=tokens[0], minor=tokens[1], patch=tokens[2], label=label)
