"""Tag index: macro and definition passes plus the ctags writer.

Macro definitions are collected from the pre-expansion tree, since
expansion consumes them. Everything else is collected from the expanded
tree. Collection never filters on renderability; entries whose line
cannot be recovered are dropped by the writer.
"""

from dataclasses import dataclass
from typing import TextIO

from ..logging import get_logger
from ..syntax.ast import (
    FnKind,
    ForeignItem,
    Item,
    ItemKind,
    MacroInvocation,
    Node,
    StructField,
    TraitItem,
    TraitItemKind,
    Use,
    UseKind,
    Variant,
)
from ..syntax.codemap import SourceMap, Span
from ..syntax.visit import Hooks, walk
from .spans import resolve_span

logger = get_logger("indexer.tags")

DEFAULT_PROGRAM_NAME = "typo"

# Items that bind no name
ANONYMOUS_ITEMS = frozenset({ItemKind.IMPL, ItemKind.FOREIGN_MOD})

_ESCAPED = str.maketrans({"/": "\\/", "$": "\\$", "\\": "\\\\"})


@dataclass(frozen=True)
class TagEntry:
    """A named definition and the span its tag points at."""

    ident: str
    span: Span


def collect_macros(crate: Node) -> list[TagEntry]:
    """Collect `macro_rules!` definitions.

    Args:
        crate: Crate as parsed, before expansion consumes the definitions

    Returns:
        One entry per named definition, in pre-order
    """
    entries: list[TagEntry] = []

    def on_mac(node: MacroInvocation) -> None:
        if node.is_macro_rules and node.ident:
            entries.append(TagEntry(node.ident, node.span))

    walk(crate, Hooks(mac=on_mac))
    logger.debug("Collected %d macro definitions", len(entries))
    return entries


def _item_span(source_map: SourceMap, item: Item) -> Span:
    # `mod name;` points at the module file, not the declaration
    if item.kind is ItemKind.MOD and item.inner is not None:
        declared_in = source_map.lookup_file(item.span.lo)
        body_in = source_map.lookup_file(item.inner.lo)
        if body_in is not None and body_in is not declared_in:
            return item.inner
    return item.span


def collect_defs(crate: Node, source_map: SourceMap) -> list[TagEntry]:
    """Collect named definitions.

    Args:
        crate: Expanded crate
        source_map: Files of the crate, used to place out-of-line modules

    Returns:
        Entries for items, fields, variants, methods, renamed imports and
        foreign items, in pre-order
    """
    entries: list[TagEntry] = []

    def add(ident: str | None, span: Span) -> None:
        if ident:
            entries.append(TagEntry(ident, span))

    def on_item(node: Item) -> None:
        if node.kind not in ANONYMOUS_ITEMS:
            add(node.ident, _item_span(source_map, node))

    def on_foreign_item(node: ForeignItem) -> None:
        add(node.ident, node.span)

    def on_use(node: Use) -> None:
        if node.kind is not UseKind.SIMPLE or node.rename in (None, "_"):
            return
        last = node.path[-1] if node.path else None
        if node.rename != last:
            add(node.rename, node.span)

    def on_fn(kind: FnKind, node: Node) -> None:
        if kind is FnKind.METHOD:
            add(getattr(node, "ident", None), node.span)

    def on_ty_method(node: TraitItem) -> None:
        add(node.ident, node.span)

    def on_trait_item(node: TraitItem) -> None:
        if node.kind is TraitItemKind.TYPE:
            add(node.ident, node.ident_span or node.span)

    def on_struct_field(node: StructField) -> None:
        add(node.ident, node.span)

    def on_variant(node: Variant) -> None:
        add(node.ident, node.span)

    hooks = Hooks(
        item=on_item,
        foreign_item=on_foreign_item,
        use=on_use,
        fn=on_fn,
        ty_method=on_ty_method,
        trait_item=on_trait_item,
        struct_field=on_struct_field,
        variant=on_variant,
    )
    walk(crate, hooks)
    logger.debug("Collected %d definitions", len(entries))
    return entries


def escape_pattern(text: str) -> str:
    """Backslash-escape `/`, `$` and `\\` for an ex search pattern."""
    return text.translate(_ESCAPED)


def format_tag_line(source_map: SourceMap, entry: TagEntry) -> str | None:
    """`ident<TAB>file<TAB>/^line$/`, or None when the line is unavailable."""
    location = resolve_span(source_map, entry.span)
    if location is None or not location.text:
        return None
    return f"{entry.ident}\t{location.file_name}\t/^{escape_pattern(location.text)}$/"


def write_header(out: TextIO, program_name: str = DEFAULT_PROGRAM_NAME) -> int:
    """Write the `!_TAG_` pragma lines; return how many were written."""
    info = [
        ("TAG_FILE_FORMAT", "1"),
        ("TAG_FILE_SORTED", "0"),
        ("TAG_PROGRAM_NAME", program_name),
    ]
    for name, value in info:
        out.write(f"!_{name}\t{value}\n")
    return len(info)


def write_tags(out: TextIO, source_map: SourceMap, entries: list[TagEntry]) -> int:
    """Write one tag line per entry.

    Args:
        out: Destination stream
        source_map: Files the entries point into
        entries: Macro and definition entries, in output order

    Returns:
        Number of lines written; entries without line text are dropped
    """
    written = 0
    for entry in entries:
        line = format_tag_line(source_map, entry)
        if line is None:
            continue
        out.write(line)
        out.write("\n")
        written += 1
    dropped = len(entries) - written
    if dropped:
        logger.debug("Dropped %d tag entries without line text", dropped)
    return written
