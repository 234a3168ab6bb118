"""Indexer passes and writers for typo."""

from .node_id_map import collect_node_spans, write_node_id_map
from .spans import resolve_span
from .tags import collect_defs, collect_macros, write_header, write_tags
from .type_map import project_types, write_type_map

__all__ = [
    "collect_defs",
    "collect_macros",
    "collect_node_spans",
    "project_types",
    "resolve_span",
    "write_header",
    "write_node_id_map",
    "write_tags",
    "write_type_map",
]
