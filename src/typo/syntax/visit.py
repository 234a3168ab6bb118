"""Generic pre-order walker driven by optional per-kind hooks.

A pass supplies only the hooks it cares about; every other node kind is
passed through. Hooks fire on a node before its children are visited, and
the walker always descends, so nested nodes get their own callbacks.

Fn-like nodes additionally fire the `fn` hook with the context they were
found in: `FnKind.ITEM` for free fns, `FnKind.METHOD` for impl methods and
provided trait methods, `FnKind.CLOSURE` for closures. Required trait
methods fire `ty_method` instead.
"""

from collections.abc import Callable
from dataclasses import dataclass

from .ast import (
    Expr,
    ExprKind,
    FnKind,
    ForeignItem,
    Item,
    ItemKind,
    MacroInvocation,
    Method,
    Node,
    Pat,
    Path,
    Stmt,
    StructField,
    TraitItem,
    TraitItemKind,
    Ty,
    Use,
    Variant,
)

NodeHook = Callable[[Node], None]
FnHook = Callable[[FnKind, Node], None]


@dataclass(frozen=True)
class Hooks:
    item: NodeHook | None = None
    foreign_item: NodeHook | None = None
    use: NodeHook | None = None
    fn: FnHook | None = None
    ty_method: NodeHook | None = None
    trait_item: NodeHook | None = None
    struct_field: NodeHook | None = None
    variant: NodeHook | None = None
    mac: NodeHook | None = None
    stmt: NodeHook | None = None
    expr: NodeHook | None = None
    pat: NodeHook | None = None
    path: NodeHook | None = None
    ty: NodeHook | None = None


def _call(hook: NodeHook | None, node: Node) -> None:
    if hook is not None:
        hook(node)


def _call_fn(hooks: Hooks, kind: FnKind, node: Node) -> None:
    if hooks.fn is not None:
        hooks.fn(kind, node)


def _visit_item(hooks: Hooks, node: Item) -> None:
    _call(hooks.item, node)
    if node.kind is ItemKind.FN:
        _call_fn(hooks, FnKind.ITEM, node)


def _visit_method(hooks: Hooks, node: Method) -> None:
    _call_fn(hooks, FnKind.METHOD, node)


def _visit_trait_item(hooks: Hooks, node: TraitItem) -> None:
    _call(hooks.trait_item, node)
    if node.kind is TraitItemKind.REQUIRED:
        _call(hooks.ty_method, node)
    elif node.kind is TraitItemKind.PROVIDED:
        _call_fn(hooks, FnKind.METHOD, node)


def _visit_expr(hooks: Hooks, node: Expr) -> None:
    _call(hooks.expr, node)
    if node.kind is ExprKind.CLOSURE:
        _call_fn(hooks, FnKind.CLOSURE, node)


_DISPATCH: dict[type, Callable[[Hooks, Node], None]] = {
    Item: _visit_item,
    ForeignItem: lambda hooks, node: _call(hooks.foreign_item, node),
    Use: lambda hooks, node: _call(hooks.use, node),
    Method: _visit_method,
    TraitItem: _visit_trait_item,
    StructField: lambda hooks, node: _call(hooks.struct_field, node),
    Variant: lambda hooks, node: _call(hooks.variant, node),
    MacroInvocation: lambda hooks, node: _call(hooks.mac, node),
    Stmt: lambda hooks, node: _call(hooks.stmt, node),
    Expr: _visit_expr,
    Pat: lambda hooks, node: _call(hooks.pat, node),
    Path: lambda hooks, node: _call(hooks.path, node),
    Ty: lambda hooks, node: _call(hooks.ty, node),
}


def walk(root: Node, hooks: Hooks) -> None:
    """Visit `root` and all of its descendants in pre-order."""
    # Explicit stack: long method chains nest deeper than the recursion limit
    stack = [root]
    while stack:
        node = stack.pop()
        visit = _DISPATCH.get(type(node))
        if visit is not None:
            visit(hooks, node)
        stack.extend(reversed(node.children))
