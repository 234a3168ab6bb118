"""Expansion: cfg-stripping, `macro_rules!` removal and node id assignment.

Expansion never mutates the parsed tree. It builds a new tree so the
pre-expansion tree stays valid for the macro definition pass.
"""

import platform
import re
import struct
import sys
from dataclasses import replace

from ..logging import get_logger
from ..syntax.ast import (
    CRATE_NODE_ID,
    Attribute,
    Crate,
    MacroInvocation,
    MetaItem,
    Node,
    Path,
    Stmt,
    StmtKind,
)
from .errors import ExpansionError

logger = get_logger("frontend.expand")

CfgSet = frozenset[tuple[str, str | None]]

_CFG_SPEC_RE = re.compile(r'^\s*([A-Za-z_][A-Za-z0-9_]*)\s*(?:=\s*"([^"]*)"\s*)?$')

_ARCH_ALIASES = {
    "amd64": "x86_64",
    "x64": "x86_64",
    "arm64": "aarch64",
    "i386": "x86",
    "i486": "x86",
    "i586": "x86",
    "i686": "x86",
}

_OS_ALIASES = {"darwin": "macos"}


def parse_cfgspec(spec: str) -> tuple[str, str | None]:
    """Parse `name` or `name="value"`.

    Raises:
        ValueError: If the argument is not of either form
    """
    match = _CFG_SPEC_RE.match(spec)
    if not match:
        raise ValueError(f"invalid --cfg argument: {spec}")
    return match.group(1), match.group(2)


def host_configuration() -> set[tuple[str, str | None]]:
    """Configuration flags the host target sets by default."""
    system = platform.system().lower()
    target_os = _OS_ALIASES.get(system, system)
    family = "windows" if system == "windows" else "unix"
    machine = platform.machine().lower()

    return {
        ("target_os", target_os),
        ("target_family", family),
        (family, None),
        ("target_arch", _ARCH_ALIASES.get(machine, machine)),
        ("target_endian", sys.byteorder),
        ("target_pointer_width", str(struct.calcsize("P") * 8)),
        ("debug_assertions", None),
    }


def build_configuration(specs: list[str]) -> CfgSet:
    """Host defaults plus every `--cfg` spec."""
    configuration = host_configuration()
    for spec in specs:
        configuration.add(parse_cfgspec(spec))
    return frozenset(configuration)


def cfg_matches(meta: MetaItem, configuration: CfgSet) -> bool:
    """Evaluate one cfg predicate."""
    if meta.name in ("all", "any", "not"):
        if meta.nested is None:
            raise ExpansionError(f"malformed cfg predicate: `{meta.name}` expects a list")
        if meta.name == "all":
            return all(cfg_matches(m, configuration) for m in meta.nested)
        if meta.name == "any":
            return any(cfg_matches(m, configuration) for m in meta.nested)
        if len(meta.nested) != 1:
            raise ExpansionError("malformed cfg predicate: `not` takes exactly one predicate")
        return not cfg_matches(meta.nested[0], configuration)

    if meta.nested is not None:
        raise ExpansionError(f"malformed cfg predicate: unknown operator `{meta.name}`")
    if not meta.name:
        raise ExpansionError("malformed cfg predicate: empty name")
    return (meta.name, meta.value) in configuration


def cfg_enabled(attrs: tuple[Attribute, ...], configuration: CfgSet) -> bool:
    """True unless some `#[cfg(...)]` attribute evaluates to false."""
    for attr in attrs:
        if attr.name != "cfg":
            continue
        nested = attr.meta.nested
        if nested is None or len(nested) != 1:
            raise ExpansionError("malformed `cfg` attribute: expected exactly one predicate")
        if not cfg_matches(nested[0], configuration):
            return False
    return True


def _is_macro_definition(node: Node) -> MacroInvocation | None:
    if isinstance(node, MacroInvocation) and node.is_macro_rules:
        return node
    if isinstance(node, Stmt) and node.kind is StmtKind.MAC and node.children:
        inner = node.children[0]
        if isinstance(inner, MacroInvocation) and inner.is_macro_rules:
            return inner
    return None


class Expander:
    """Copies a tree, dropping cfg-disabled nodes and macro definitions."""

    def __init__(self, configuration: CfgSet):
        self.configuration = configuration
        self.macros: list[str] = []
        self.stripped = 0

    def fold(self, root: Node) -> Node:
        # Each frame: original node, its folded children, children still to visit
        stack = [(root, [], iter(root.children))]
        while True:
            node, folded, pending = stack[-1]
            for child in pending:
                if self._keep(child):
                    stack.append((child, [], iter(child.children)))
                    break
            else:
                stack.pop()
                copy = replace(node, children=folded)
                if not stack:
                    return copy
                stack[-1][1].append(copy)

    def _keep(self, node: Node) -> bool:
        definition = _is_macro_definition(node)
        if definition is not None:
            self.macros.append(definition.ident or "")
            return False
        if node.attrs and not cfg_enabled(node.attrs, self.configuration):
            self.stripped += 1
            logger.debug("cfg-stripped %s at %d", type(node).__name__, node.span.lo)
            return False
        return True


def expand_crate(crate: Crate, configuration: CfgSet) -> Crate:
    """Return a cfg-stripped copy of the crate with macro definitions removed."""
    if not cfg_enabled(crate.attrs, configuration):
        # A crate-level `#![cfg(...)]` that fails empties the crate
        return replace(crate, children=[])

    expander = Expander(configuration)
    expanded = expander.fold(crate)
    logger.debug(
        "Expanded crate: %d macro definitions consumed, %d nodes cfg-stripped",
        len(expander.macros),
        expander.stripped,
    )
    return expanded


def assign_node_ids(crate: Crate) -> int:
    """Number nodes in pre-order, starting with the crate root.

    A `Path` takes the id of the node that owns it. Returns the number of
    ids handed out.
    """
    next_id = CRATE_NODE_ID
    stack: list[tuple[Node, int | None]] = [(crate, None)]
    while stack:
        node, owner = stack.pop()
        if isinstance(node, Path) and owner is not None:
            node.node_id = owner
        else:
            node.node_id = next_id
            next_id += 1
        stack.extend((child, node.node_id) for child in reversed(node.children))
    return next_id
