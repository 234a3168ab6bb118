"""Type table projection."""

from dataclasses import dataclass
from typing import TextIO

from ..frontend.typeck import TypeTable


@dataclass(frozen=True)
class TypeEntry:
    """A node id and its rendered type."""

    node_id: int
    type_text: str


def project_types(table: TypeTable) -> list[TypeEntry]:
    """Render every typed node.

    Args:
        table: Type table from inference

    Returns:
        One entry per typed node, in table order
    """
    return [TypeEntry(node_id, table.render(ty)) for node_id, ty in table.items()]


def write_type_map(out: TextIO, entries: list[TypeEntry]) -> int:
    """Write `id<TAB>type` per entry; return lines written."""
    for entry in entries:
        out.write(f"{entry.node_id}\t{entry.type_text}\n")
    return len(entries)
