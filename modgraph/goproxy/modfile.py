"""
go.mod Parser

Reads the go.mod documents served by the module proxy into a small
structure: the module path, the go directive and every requirement with
its ``// indirect`` marker.  Directives that do not influence the
dependency graph are accepted and ignored.
"""

from dataclasses import dataclass, field

from modgraph.shared.exceptions import InvalidModFile

KNOWN_VERBS = frozenset({
    "module",
    "go",
    "toolchain",
    "godebug",
    "require",
    "exclude",
    "replace",
    "retract",
    "tool",
    "ignore",
})


@dataclass(frozen=True)
class Requirement:
    """A single ``require`` entry."""

    path: str
    version: str
    indirect: bool = False


@dataclass
class ModFile:
    """A parsed go.mod file."""

    module: str | None = None
    go_version: str | None = None
    requires: list[Requirement] = field(default_factory=list)

    @property
    def direct_requires(self) -> list[Requirement]:
        """Requirements not marked ``// indirect``."""
        return [r for r in self.requires if not r.indirect]


def _split_comment(line: str) -> tuple[str, str]:
    """Split a line into code and trailing ``//`` comment, honouring quotes."""
    quote = None
    i = 0
    while i < len(line):
        ch = line[i]
        if quote:
            if ch == "\\" and quote == '"':
                i += 2
                continue
            if ch == quote:
                quote = None
        elif ch in ('"', "`"):
            quote = ch
        elif line.startswith("//", i):
            return line[:i], line[i + 2:].strip()
        i += 1
    if quote:
        raise InvalidModFile(f"unterminated quoted string: {line.strip()}")
    return line, ""


def _tokenize(code: str) -> list[str]:
    """Split the code part of a line into tokens, unquoting strings."""
    tokens: list[str] = []
    i = 0
    n = len(code)
    while i < n:
        ch = code[i]
        if ch.isspace():
            i += 1
            continue
        if ch == '"':
            j = i + 1
            buf = []
            while j < n and code[j] != '"':
                if code[j] == "\\" and j + 1 < n:
                    j += 1
                buf.append(code[j])
                j += 1
            tokens.append("".join(buf))
            i = j + 1
        elif ch == "`":
            j = code.index("`", i + 1)
            tokens.append(code[i + 1:j])
            i = j + 1
        elif ch in "()":
            tokens.append(ch)
            i += 1
        else:
            j = i
            while j < n and not code[j].isspace() and code[j] not in '"`()':
                j += 1
            tokens.append(code[i:j])
            i = j
    return tokens


def _is_indirect(comment: str) -> bool:
    return comment == "indirect" or comment.startswith("indirect;")


def parse_mod_file(data: str | bytes) -> ModFile:
    """
    Parse a go.mod document.

    Args:
        data: Raw go.mod content.

    Returns:
        The parsed ModFile.  ``module`` is None when the file carries no
        module directive.

    Raises:
        InvalidModFile: On unknown directives, malformed entries or an
            unterminated block.
    """
    if isinstance(data, bytes):
        try:
            data = data.decode("utf-8")
        except UnicodeDecodeError as e:
            raise InvalidModFile(f"go.mod is not valid UTF-8: {e}") from e

    mod = ModFile()
    block_verb: str | None = None

    for lineno, raw in enumerate(data.splitlines(), start=1):
        code, comment = _split_comment(raw)
        tokens = _tokenize(code)
        if not tokens:
            continue

        if block_verb is not None:
            if tokens == [")"]:
                block_verb = None
                continue
            _apply(mod, block_verb, tokens, comment, lineno)
            continue

        verb, args = tokens[0], tokens[1:]
        if verb not in KNOWN_VERBS:
            raise InvalidModFile(f"line {lineno}: unknown directive: {verb}")
        if args == ["("]:
            block_verb = verb
            continue
        if args and args[-1] == "(":
            raise InvalidModFile(f"line {lineno}: unexpected tokens before block")
        _apply(mod, verb, args, comment, lineno)

    if block_verb is not None:
        raise InvalidModFile(f"unterminated {block_verb} block")
    return mod


def _apply(mod: ModFile, verb: str, args: list[str], comment: str, lineno: int) -> None:
    if "(" in args or ")" in args:
        raise InvalidModFile(f"line {lineno}: unexpected parenthesis in {verb}")

    if verb == "module":
        if len(args) != 1:
            raise InvalidModFile(f"line {lineno}: usage: module module/path")
        if mod.module is not None:
            raise InvalidModFile(f"line {lineno}: repeated module statement")
        mod.module = args[0]
    elif verb == "go":
        if len(args) != 1:
            raise InvalidModFile(f"line {lineno}: usage: go 1.23")
        mod.go_version = args[0]
    elif verb == "require":
        if len(args) != 2:
            raise InvalidModFile(f"line {lineno}: usage: require module/path v1.2.3")
        mod.requires.append(
            Requirement(path=args[0], version=args[1], indirect=_is_indirect(comment))
        )
