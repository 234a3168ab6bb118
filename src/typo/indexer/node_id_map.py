"""Node-span table: which node id owns which byte range."""

from dataclasses import dataclass
from typing import TextIO

from ..logging import get_logger
from ..syntax.ast import Expr, ExprKind, Node, Stmt, StmtKind
from ..syntax.codemap import SourceMap, Span
from ..syntax.visit import Hooks, walk
from .spans import resolve_span

logger = get_logger("indexer.node_id_map")

RECORDED_STMT_KINDS = frozenset({StmtKind.DECL, StmtKind.EXPR, StmtKind.SEMI})


@dataclass(frozen=True)
class NodeSpanEntry:
    """A node id and the byte range it covers."""

    span: Span
    node_id: int


def collect_node_spans(crate: Node) -> list[NodeSpanEntry]:
    """Collect the nodes the node-span table records.

    Args:
        crate: Expanded crate with node ids assigned

    Returns:
        Entries for patterns, paths, non-path expressions and non-macro
        statements, in pre-order
    """
    entries: list[NodeSpanEntry] = []

    def record(node: Node) -> None:
        entries.append(NodeSpanEntry(node.span, node.node_id))

    def on_expr(node: Expr) -> None:
        # Path expressions are covered by their Path child
        if node.kind is not ExprKind.PATH:
            record(node)

    def on_stmt(node: Stmt) -> None:
        if node.kind in RECORDED_STMT_KINDS:
            record(node)

    walk(crate, Hooks(pat=record, path=record, expr=on_expr, stmt=on_stmt))
    logger.debug("Collected %d node spans", len(entries))
    return entries


def write_node_id_map(out: TextIO, source_map: SourceMap, entries: list[NodeSpanEntry]) -> int:
    """Write `file<TAB>begin<TAB>end<TAB>id` per entry.

    Args:
        out: Destination stream
        source_map: Files the spans point into
        entries: Node spans to write

    Returns:
        Number of lines written; entries outside every file are skipped
    """
    written = 0
    for entry in entries:
        location = resolve_span(source_map, entry.span)
        if location is None:
            continue
        out.write(f"{location.file_name}\t{location.begin}\t{location.end}\t{entry.node_id}\n")
        written += 1
    return written
