"""Front end session: one crate, its source map and the compile phases."""

import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import TextIO

import tree_sitter_rust as ts_rust
from tree_sitter import Language, Parser
from tree_sitter import Node as TsNode

from ..logging import get_logger
from ..syntax.ast import Attribute, Crate, Node
from ..syntax.codemap import SourceFile, SourceMap, Span
from .errors import InputError, ModuleLoadError, ParseError
from .expand import assign_node_ids, build_configuration, cfg_enabled, expand_crate
from .lower import COMMENT_KINDS, LoadedModule, Lowerer
from .typeck import TypeTable, check_crate

logger = get_logger("frontend.session")

STDIN_NAME = "<stdin>"
DEFAULT_CRATE_NAME = "rust_out"


@dataclass(frozen=True)
class NamedFile:
    """Crate root read from a file."""

    path: Path


@dataclass(frozen=True)
class InlineText:
    """Crate root given as text, e.g. read from stdin."""

    text: str
    name: str = STDIN_NAME


Input = NamedFile | InlineText


def resolve_input(arg: str, stdin: TextIO | None = None) -> Input:
    """Turn the INPUT argument into an input source; `-` reads stdin."""
    if arg == "-":
        return InlineText(text=(stdin or sys.stdin).read())
    return NamedFile(path=Path(arg))


@dataclass
class Options:
    """Front end configuration passed through from the command line."""

    cfg: list[str] = field(default_factory=list)
    search_paths: list[Path] = field(default_factory=list)
    sysroot: Path | None = None


def _is_plain_comment(node: TsNode) -> bool:
    if node.type not in COMMENT_KINDS:
        return False
    return not any(c.type == "doc_comment" for c in node.named_children)


def _body_span(source_file: SourceFile, root: TsNode) -> Span:
    """Span of a file from its first token that is not a plain comment."""
    first = next((c for c in root.children if not _is_plain_comment(c)), None)
    if first is None:
        return source_file.span
    return Span(source_file.start_pos + first.start_byte, source_file.end_pos)


def _first_error(root: TsNode) -> TsNode:
    """First ERROR or MISSING node in document order."""
    stack = [root]
    while stack:
        node = stack.pop()
        if node.type == "ERROR" or node.is_missing:
            return node
        stack.extend(reversed([c for c in node.children if c.has_error or c.is_missing]))
    return root


class Session:
    """Parses, expands and types one crate.

    Raises FrontEndError subclasses on any fatal condition.
    """

    def __init__(self, options: Options, input: Input):
        self.options = options
        self.input = input
        self.source_map = SourceMap()
        try:
            self.configuration = build_configuration(options.cfg)
        except ValueError as e:
            raise InputError(str(e)) from e
        self.parser = Parser(Language(ts_rust.language()))
        self._loading: list[Path] = []

        if options.search_paths:
            logger.debug("Library search paths: %s", ", ".join(map(str, options.search_paths)))
        if options.sysroot is not None:
            logger.debug("Sysroot: %s", options.sysroot)

    # -- parsing -------------------------------------------------------

    def parse(self) -> Crate:
        """Parse the crate root and every out-of-line module it declares.

        Returns:
            The crate as parsed, before expansion

        Raises:
            InputError: If the crate root cannot be read
            ParseError: If a source file is not valid Rust
            ModuleLoadError: If a module file is missing, ambiguous or circular
        """
        if isinstance(self.input, NamedFile):
            path = self.input.path
            src = self._read(path, InputError)
            name = str(path)
            file_dir = path.parent
            self._loading.append(path.resolve())
        else:
            src = self.input.text.encode("utf-8")
            name = self.input.name
            file_dir = Path(".")

        source_file, root = self._parse_file(name, src)
        lowerer = Lowerer(source_file, file_dir, self._load_module)
        try:
            children, attrs = self._lower(lowerer, root, file_dir)
        finally:
            self._loading.clear()

        logger.debug("Parsed %d source files", len(self.source_map.files))
        return Crate(span=source_file.span, children=children, attrs=attrs)

    def _lower(
        self, lowerer: Lowerer, root: TsNode, mod_dir: Path
    ) -> tuple[list[Node], tuple[Attribute, ...]]:
        try:
            return lowerer.lower_module(root, mod_dir)
        except RecursionError as e:
            name = lowerer.source_file.name
            raise ParseError(f"{name}: expressions nest too deeply to index") from e

    def _read(self, path: Path, error: type[Exception]) -> bytes:
        try:
            return path.read_bytes()
        except OSError as e:
            raise error(f"couldn't read {path}: {e.strerror or e}") from e

    def _parse_file(self, name: str, src: bytes) -> tuple[SourceFile, TsNode]:
        try:
            src.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ParseError(f"{name}: source is not valid UTF-8 (byte {e.start})") from e

        source_file = self.source_map.add_file(name, src)
        tree = self.parser.parse(src)
        root = tree.root_node
        if root.has_error:
            bad = _first_error(root)
            row, column = bad.start_point
            if bad.is_missing:
                detail = f"expected `{bad.type}`"
            else:
                snippet = src[bad.start_byte : bad.end_byte].decode("utf-8").split("\n", 1)[0]
                detail = f"unexpected `{snippet[:40]}`"
            raise ParseError(f"{name}:{row + 1}:{column + 1}: syntax error: {detail}")
        return source_file, root

    def _load_module(
        self,
        name: str,
        attrs: tuple[Attribute, ...],
        mod_dir: Path,
        file_dir: Path,
    ) -> LoadedModule | None:
        """Find, parse and lower the file behind `mod name;`."""
        if not cfg_enabled(attrs, self.configuration):
            logger.debug("Not loading cfg-disabled module `%s`", name)
            return None

        path_attr = next((a for a in attrs if a.name == "path" and a.value), None)
        if path_attr is not None:
            path = file_dir / path_attr.value
            if not path.is_file():
                raise ModuleLoadError(f"file not found for module `{name}`: {path}")
            child_dir = path.parent
        else:
            flat = mod_dir / f"{name}.rs"
            nested = mod_dir / name / "mod.rs"
            found = [p for p in (flat, nested) if p.is_file()]
            if not found:
                raise ModuleLoadError(
                    f"file not found for module `{name}`: expected {flat} or {nested}"
                )
            if len(found) > 1:
                raise ModuleLoadError(
                    f"file for module `{name}` found at both {flat} and {nested}"
                )
            path = found[0]
            child_dir = path.parent if path.name == "mod.rs" else path.parent / path.stem

        key = path.resolve()
        if key in self._loading:
            chain = " -> ".join(str(p) for p in self._loading + [key])
            raise ModuleLoadError(f"circular modules: {chain}")

        src = self._read(path, ModuleLoadError)
        source_file, root = self._parse_file(str(path), src)
        logger.debug("Loaded module `%s` from %s", name, path)

        self._loading.append(key)
        try:
            lowerer = Lowerer(source_file, path.parent, self._load_module)
            children, inner_attrs = self._lower(lowerer, root, child_dir)
        finally:
            self._loading.pop()
        return LoadedModule(
            children=children, attrs=inner_attrs, span=_body_span(source_file, root)
        )

    # -- later phases --------------------------------------------------

    def crate_name(self, crate: Crate) -> str:
        """`#![crate_name]`, else the input file stem, else `rust_out`."""
        attr = crate.find_attr("crate_name")
        if attr is not None and attr.value:
            return attr.value
        if isinstance(self.input, NamedFile):
            stem = self.input.path.stem
            if stem:
                return stem.replace("-", "_")
        return DEFAULT_CRATE_NAME

    def expand_and_assign_ids(self, crate: Crate, crate_name: str) -> Crate:
        """Return the expanded, node-identified copy of a parsed crate."""
        expanded = expand_crate(crate, self.configuration)
        expanded.name = crate_name
        count = assign_node_ids(expanded)
        logger.debug("Assigned %d node ids in crate `%s`", count, crate_name)
        return expanded

    def infer_types(self, crate: Crate) -> TypeTable:
        """Best-effort type table for an expanded crate."""
        return check_crate(crate)
