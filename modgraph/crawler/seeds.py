"""
Seed loading

Reads the initial module coordinates of a crawl.  Two formats are
accepted:

- plain text, one module per line as ``path``, ``path@version`` or
  ``path version``; blank lines and ``#`` comments are ignored
- CSV with a header row containing a ``module`` column and optionally a
  ``version`` column (the output of ``list-index`` and ``list-latest``)
"""

import csv
import logging
from pathlib import Path

from modgraph.crawler.models import ModuleIdentity
from modgraph.shared.exceptions import SeedFileError

logger = logging.getLogger("modgraph.seeds")


def parse_seed_line(line: str) -> ModuleIdentity | None:
    """Parse one plain-text seed line, or return None for blanks and comments."""
    line = line.split("#", 1)[0].strip()
    if not line:
        return None

    if "@" in line:
        path, _, version = line.partition("@")
        return ModuleIdentity(path=path.strip(), version=version.strip())

    parts = line.split()
    if len(parts) == 1:
        return ModuleIdentity(path=parts[0])
    if len(parts) == 2:
        return ModuleIdentity(path=parts[0], version=parts[1])
    raise ValueError(f"expected 'path', 'path@version' or 'path version', got {line!r}")


def _is_csv_header(first_line: str) -> bool:
    columns = [c.strip().lower() for c in first_line.split(",")]
    return len(columns) > 1 and "module" in columns


def _load_csv(lines: list[str], source: str) -> list[ModuleIdentity]:
    reader = csv.DictReader(lines)
    fields = [f.strip().lower() for f in reader.fieldnames or []]
    reader.fieldnames = fields

    identities = []
    for row in reader:
        path = (row.get("module") or "").strip()
        if not path:
            logger.warning("Skipping CSV row without module in %s: %s", source, row)
            continue
        version = (row.get("version") or "").strip()
        identities.append(ModuleIdentity(path=path, version=version))
    return identities


def load_seeds(seed_file: str | Path) -> list[ModuleIdentity]:
    """
    Load seed identities from ``seed_file``.

    Paths are returned as written; the engine applies its path
    normalization policy on admission.

    Raises:
        SeedFileError: If the file cannot be read or a line is malformed.
    """
    path = Path(seed_file)
    logger.debug("Opening seed file %s", path)
    try:
        lines = path.read_text(encoding="utf-8").splitlines()
    except OSError as e:
        raise SeedFileError(f"failed to read seed file {path}: {e}") from e

    if lines and _is_csv_header(lines[0]):
        identities = _load_csv(lines, str(path))
    else:
        identities = []
        for lineno, line in enumerate(lines, start=1):
            try:
                identity = parse_seed_line(line)
            except ValueError as e:
                raise SeedFileError(f"{path}:{lineno}: {e}") from e
            if identity is not None:
                identities.append(identity)

    logger.info("Loaded %d seed modules from %s", len(identities), path)
    return identities
