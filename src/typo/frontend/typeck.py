"""Best-effort local type inference.

This is not a type checker. It types what can be read off the crate
without name resolution or trait solving: literals, annotations, locals,
struct literals, calls to fns and methods declared in the crate, and
operators. Everything else is left out of the table. Disagreements between
an expected and an inferred type are collected as mismatches and logged at
DEBUG; they never fail the run.
"""

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, replace
from types import MappingProxyType

from ..logging import get_logger
from ..syntax.ast import (
    Arm,
    Block,
    Crate,
    Expr,
    ExprKind,
    FieldInit,
    ForeignItem,
    ForeignItemKind,
    ImplItem,
    Item,
    ItemKind,
    Local,
    Method,
    Node,
    Param,
    Pat,
    PatKind,
    Stmt,
    StmtKind,
    StructField,
    TraitItem,
    TraitItemKind,
    TyKind,
    Variant,
    path_of,
)
from ..syntax.ast import Ty as TyNode
from ..syntax.codemap import Span

logger = get_logger("frontend.typeck")

INT_TYPES = ("i8", "i16", "i32", "i64", "i128", "isize", "u8", "u16", "u32", "u64", "u128", "usize")
FLOAT_TYPES = ("f32", "f64")
PRIMITIVES = frozenset(INT_TYPES + FLOAT_TYPES + ("bool", "char", "str"))

COMPARISON_OPS = frozenset({"==", "!=", "<", "<=", ">", ">=", "&&", "||"})

# Return types of common std methods, keyed by method name
KNOWN_METHODS = {
    "len": "usize",
    "count": "usize",
    "is_empty": "bool",
    "is_some": "bool",
    "is_none": "bool",
    "is_ok": "bool",
    "is_err": "bool",
    "contains": "bool",
    "starts_with": "bool",
    "ends_with": "bool",
    "to_string": "String",
}


@dataclass(frozen=True)
class Ty:
    """A semantic type.

    `kind` is one of "prim", "adt", "ref", "ptr", "tuple", "array",
    "slice" or "never". Nominal types keep their path as written in `name`.
    """

    kind: str
    name: str = ""
    args: tuple["Ty", ...] = ()
    mutable: bool = False
    lifetime: str | None = None
    length: str | None = None


UNIT = Ty("tuple")
NEVER = Ty("never")
BOOL = Ty("prim", "bool")
CHAR = Ty("prim", "char")
STATIC_STR = Ty("ref", args=(Ty("prim", "str"),), lifetime="'static")


def prim(name: str) -> Ty:
    return Ty("prim", name)


def adt(name: str, *args: Ty) -> Ty:
    return Ty("adt", name, tuple(args))


def ty_to_string(ty: Ty) -> str:
    """Render a type the way rustc prints it."""
    if ty.kind in ("prim", "adt"):
        if ty.args:
            return f"{ty.name}<{', '.join(ty_to_string(a) for a in ty.args)}>"
        return ty.name
    if ty.kind == "ref":
        lifetime = f"{ty.lifetime} " if ty.lifetime else ""
        mutability = "mut " if ty.mutable else ""
        return f"&{lifetime}{mutability}{ty_to_string(ty.args[0])}"
    if ty.kind == "ptr":
        mutability = "mut" if ty.mutable else "const"
        return f"*{mutability} {ty_to_string(ty.args[0])}"
    if ty.kind == "tuple":
        if len(ty.args) == 1:
            return f"({ty_to_string(ty.args[0])},)"
        return f"({', '.join(ty_to_string(a) for a in ty.args)})"
    if ty.kind == "array":
        return f"[{ty_to_string(ty.args[0])}; {ty.length}]"
    if ty.kind == "slice":
        return f"[{ty_to_string(ty.args[0])}]"
    if ty.kind == "never":
        return "!"
    return ty.name or "_"


def _erase_lifetimes(ty: Ty) -> Ty:
    return replace(ty, lifetime=None, args=tuple(_erase_lifetimes(a) for a in ty.args))


def _base_name(ty: Ty | None) -> str | None:
    """Last path segment of a nominal type, seen through references."""
    while ty is not None and ty.kind == "ref":
        ty = ty.args[0]
    if ty is None or ty.kind != "adt":
        return None
    return ty.name.rsplit("::", 1)[-1]


def _deref(ty: Ty | None) -> Ty | None:
    while ty is not None and ty.kind == "ref":
        ty = ty.args[0]
    return ty


def _strip_int_suffix(lit: str) -> str:
    for suffix in sorted(INT_TYPES, key=len, reverse=True):
        if lit.endswith(suffix):
            return lit[: -len(suffix)]
    return lit


def literal_type(lit: str, expected: Ty | None = None) -> Ty | None:
    """Type of a literal token, using the expected type for unsuffixed numbers."""
    if lit in ("true", "false"):
        return BOOL
    if lit.startswith("b'"):
        return prim("u8")
    if lit.startswith("'"):
        return CHAR
    if lit.startswith(('"', 'r"', "r#")):
        return STATIC_STR
    if not lit[:1].isdigit() and not lit.startswith("-"):
        # Byte and C strings
        return None

    digits = lit.lstrip("-")
    is_radix = digits[:2].lower() in ("0x", "0o", "0b")
    for suffix in sorted(INT_TYPES, key=len, reverse=True):
        if digits.endswith(suffix):
            return prim(suffix)
    if not is_radix:
        for suffix in FLOAT_TYPES:
            if digits.endswith(suffix):
                return prim(suffix)
        if "." in digits or "e" in digits.lower():
            if expected is not None and expected.kind == "prim" and expected.name in FLOAT_TYPES:
                return expected
            return prim("f64")
    if expected is not None and expected.kind == "prim" and expected.name in INT_TYPES:
        return expected
    return prim("i32")


class TypeTable(Mapping):
    """Immutable snapshot of node id to inferred type."""

    def __init__(self, types: dict[int, Ty], mismatches: tuple = ()):
        self._types = MappingProxyType(dict(types))
        self.mismatches = mismatches

    def __getitem__(self, node_id: int) -> Ty:
        return self._types[node_id]

    def __iter__(self) -> Iterator[int]:
        return iter(self._types)

    def __len__(self) -> int:
        return len(self._types)

    @staticmethod
    def render(ty: Ty) -> str:
        return ty_to_string(ty)


@dataclass(frozen=True)
class Mismatch:
    span: Span
    expected: Ty
    found: Ty


class TypeChecker:
    """Infers types over a node-identified crate."""

    def __init__(self):
        self.types: dict[int, Ty] = {}
        self.mismatches: list[Mismatch] = []
        self.scopes: list[dict[str, Ty]] = [{}]
        self.return_types: list[Ty | None] = []
        self.self_types: list[Ty | None] = []

        # Signatures collected before checking bodies
        self.fns: dict[str, Ty | None] = {}
        self.fn_params: dict[str, list[Ty | None]] = {}
        self.consts: dict[str, Ty | None] = {}
        self.structs: dict[str, dict[str, Ty | None]] = {}
        self.tuple_structs: dict[str, list[Ty | None]] = {}
        self.unit_structs: set[str] = set()
        self.enums: dict[str, set[str]] = {}
        self.methods: dict[tuple[str, str], Ty | None] = {}
        self.method_names: dict[str, list[Ty | None]] = {}

    # -- entry point ---------------------------------------------------

    def check_crate(self, crate: Crate) -> TypeTable:
        self._collect(crate.children, None)
        for child in crate.children:
            try:
                self.check_node(child)
            except RecursionError:
                # Types recorded before giving up stay in the table
                logger.warning(
                    "Skipped type inference at %d: expressions nest too deeply", child.span.lo
                )

        for mismatch in self.mismatches:
            logger.debug(
                "mismatched types at %d: expected `%s`, found `%s`",
                mismatch.span.lo,
                ty_to_string(mismatch.expected),
                ty_to_string(mismatch.found),
            )
        logger.debug("Typed %d nodes, %d mismatches", len(self.types), len(self.mismatches))
        return TypeTable(self.types, tuple(self.mismatches))

    # -- signatures ----------------------------------------------------

    def _collect(self, nodes: list[Node], self_ty: Ty | None) -> None:
        for node in nodes:
            if isinstance(node, Stmt):
                self._collect(node.children, self_ty)
                continue
            if not isinstance(node, Item):
                continue

            ident = node.ident or ""
            if node.kind is ItemKind.FN:
                self.fns.setdefault(ident, self._fn_return(node, self_ty))
                self.fn_params.setdefault(ident, self._fn_params(node, self_ty))
            elif node.kind in (ItemKind.STRUCT, ItemKind.UNION):
                self._collect_struct(ident, node.children)
            elif node.kind is ItemKind.ENUM:
                self.enums[ident] = {v.ident for v in node.children if isinstance(v, Variant)}
            elif node.kind in (ItemKind.CONST, ItemKind.STATIC):
                self.consts.setdefault(ident, self._declared_type(node, self_ty))
            elif node.kind is ItemKind.IMPL:
                impl_ty = self._declared_type(node, None)
                name = _base_name(impl_ty) or ""
                for child in node.children:
                    if isinstance(child, Method):
                        ret = self._fn_return(child, impl_ty)
                        self.methods.setdefault((name, child.ident), ret)
                        self.method_names.setdefault(child.ident, []).append(ret)
            elif node.kind is ItemKind.MOD:
                self._collect(node.children, self_ty)
            elif node.kind is ItemKind.FOREIGN_MOD:
                self._collect_foreign(node)

    def _collect_foreign(self, node: Item) -> None:
        for child in node.children:
            if not isinstance(child, ForeignItem):
                continue
            if child.kind is ForeignItemKind.FN:
                self.fns.setdefault(child.ident, self._fn_return(child, None))
                self.fn_params.setdefault(child.ident, self._fn_params(child, None))
            else:
                self.consts.setdefault(child.ident, self._declared_type(child, None))

    def _collect_struct(self, ident: str, children: list[Node]) -> None:
        fields = [c for c in children if isinstance(c, StructField)]
        if not fields:
            self.unit_structs.add(ident)
        elif fields[0].ident is None:
            self.tuple_structs[ident] = [self._declared_type(f, None) for f in fields]
        else:
            self.structs[ident] = {f.ident: self._declared_type(f, None) for f in fields}

    def _declared_type(self, node: Node, self_ty: Ty | None) -> Ty | None:
        for child in node.children:
            if isinstance(child, TyNode):
                return self.lower_type(child, self_ty)
        return None

    def _fn_return(self, node: Node, self_ty: Ty | None) -> Ty | None:
        for child in node.children:
            if isinstance(child, TyNode):
                return self.lower_type(child, self_ty)
        return UNIT

    def _fn_params(self, node: Node, self_ty: Ty | None) -> list[Ty | None]:
        params = []
        for child in node.children:
            if isinstance(child, Param) and child.self_kind is None:
                params.append(self._declared_type(child, self_ty))
        return params

    # -- syntactic types -----------------------------------------------

    def lower_type(self, node: TyNode, self_ty: Ty | None = None) -> Ty | None:
        kind = node.kind
        if kind is TyKind.PATH:
            path = path_of(node)
            if path is None:
                return None
            if path.segments == ("Self",):
                return self_ty
            args = []
            for arg in path.children:
                lowered = self.lower_type(arg, self_ty) if isinstance(arg, TyNode) else None
                if lowered is None:
                    return None
                args.append(lowered)
            if len(path.segments) == 1 and path.last in PRIMITIVES and not args:
                return prim(path.last)
            return adt(str(path), *args)
        if kind in (TyKind.RPTR, TyKind.PTR):
            inner = self.lower_type(node.children[0], self_ty) if node.children else None
            if inner is None:
                return None
            return Ty(
                "ref" if kind is TyKind.RPTR else "ptr",
                args=(inner,),
                mutable=node.mutable,
                lifetime=node.lifetime,
            )
        if kind is TyKind.TUP:
            parts = [self.lower_type(c, self_ty) for c in node.children if isinstance(c, TyNode)]
            if any(p is None for p in parts):
                return None
            return Ty("tuple", args=tuple(parts))
        if kind in (TyKind.SLICE, TyKind.ARRAY):
            elem = self.lower_type(node.children[0], self_ty) if node.children else None
            if elem is None:
                return None
            if kind is TyKind.SLICE:
                return Ty("slice", args=(elem,))
            length = node.children[1] if len(node.children) > 1 else None
            if not isinstance(length, Expr) or length.kind is not ExprKind.LIT or not length.lit:
                return None
            return Ty("array", args=(elem,), length=_strip_int_suffix(length.lit))
        if kind is TyKind.NEVER:
            return NEVER
        return None

    # -- scopes --------------------------------------------------------

    def _lookup(self, name: str) -> Ty | None:
        for scope in reversed(self.scopes):
            if name in scope:
                return scope[name]
        return None

    def _record(self, node: Node, ty: Ty | None) -> Ty | None:
        if ty is not None:
            self.types[node.node_id] = ty
        return ty

    def _expect(self, node: Node, expected: Ty | None, found: Ty | None) -> None:
        if expected is None or found is None or NEVER in (expected, found):
            return
        if _erase_lifetimes(expected) != _erase_lifetimes(found):
            self.mismatches.append(Mismatch(node.span, expected, found))

    def bind_pat(self, pat: Pat, ty: Ty | None) -> None:
        self._record(pat, ty)
        kind = pat.kind
        if kind is PatKind.IDENT:
            bound = ty
            if ty is not None and pat.by_ref:
                bound = Ty("ref", args=(ty,), mutable=pat.mutable)
            if pat.ident:
                self.scopes[-1][pat.ident] = bound
            for sub in pat.children:
                if isinstance(sub, Pat):
                    self.bind_pat(sub, ty)
            return

        subpats = [c for c in pat.children if isinstance(c, Pat)]
        parts: list[Ty | None] = [None] * len(subpats)
        inner = _deref(ty)
        if kind is PatKind.TUPLE and inner is not None and inner.kind == "tuple":
            if len(inner.args) == len(subpats):
                parts = list(inner.args)
        elif kind is PatKind.REF and ty is not None and ty.kind == "ref":
            parts = [ty.args[0]] * len(subpats)
        elif kind is PatKind.STRUCT:
            fields = self.structs.get(_base_name(ty) or "", {})
            parts = [fields.get(name) for name in pat.fields]
        elif kind is PatKind.ENUM:
            parts = self._variant_payload(pat, inner, len(subpats))
        elif kind is PatKind.OR:
            parts = [ty] * len(subpats)
        elif kind is PatKind.SLICE and inner is not None and inner.kind in ("array", "slice"):
            parts = [inner.args[0]] * len(subpats)

        for sub, sub_ty in zip(subpats, parts):
            self.bind_pat(sub, sub_ty)
        for child in pat.children:
            if isinstance(child, Expr):
                self.check_expr(child, ty)

    def _variant_payload(self, pat: Pat, ty: Ty | None, count: int) -> list[Ty | None]:
        path = path_of(pat)
        variant = path.last if path is not None else None
        parts: list[Ty | None] = [None] * count
        if ty is None or count != 1 or ty.kind != "adt":
            name = variant or ""
            if name in self.tuple_structs and len(self.tuple_structs[name]) == count:
                return list(self.tuple_structs[name])
            return parts
        base = ty.name.rsplit("::", 1)[-1]
        if base == "Option" and variant == "Some" and ty.args:
            return [ty.args[0]]
        if base == "Result" and len(ty.args) == 2:
            if variant == "Ok":
                return [ty.args[0]]
            if variant == "Err":
                return [ty.args[1]]
        return parts

    # -- items ---------------------------------------------------------

    def check_node(self, node: Node) -> None:
        if isinstance(node, Stmt):
            self.check_stmt(node)
        elif isinstance(node, Item):
            self.check_item(node)

    def check_item(self, item: Item) -> None:
        saved = self.scopes
        self.scopes = [{}]
        try:
            self._check_item(item)
        finally:
            self.scopes = saved

    def _check_item(self, item: Item) -> None:
        kind = item.kind
        if kind is ItemKind.FN:
            self.check_fn(item, None)
        elif kind in (ItemKind.CONST, ItemKind.STATIC):
            self._check_typed_value(item, None)
        elif kind is ItemKind.IMPL:
            impl_ty = self._declared_type(item, None)
            for child in item.children:
                if isinstance(child, Method):
                    self.check_fn(child, impl_ty)
                elif isinstance(child, ImplItem):
                    self._check_typed_value(child, impl_ty)
        elif kind is ItemKind.TRAIT:
            self_ty = adt("Self")
            for child in item.children:
                if isinstance(child, TraitItem) and child.kind is TraitItemKind.PROVIDED:
                    self.check_fn(child, self_ty)
                elif isinstance(child, TraitItem) and child.kind is TraitItemKind.CONST:
                    self._check_typed_value(child, self_ty)
        elif kind is ItemKind.ENUM:
            for variant in item.children:
                for child in variant.children:
                    if isinstance(child, Expr):
                        self.check_expr(child, prim("isize"))
        elif kind is ItemKind.MOD:
            for child in item.children:
                self.check_node(child)

    def _check_typed_value(self, node: Node, self_ty: Ty | None) -> None:
        declared = self._declared_type(node, self_ty)
        for child in node.children:
            if isinstance(child, Expr):
                found = self.check_expr(child, declared)
                self._expect(child, declared, found)

    def check_fn(self, node: Node, self_ty: Ty | None) -> None:
        ret = self._fn_return(node, self_ty)
        self.scopes.append({})
        self.return_types.append(ret)
        self.self_types.append(self_ty)
        try:
            for child in node.children:
                if isinstance(child, Param):
                    self._bind_param(child, self_ty)
                elif isinstance(child, Block):
                    found = self.check_block(child, ret)
                    self._expect(child, ret, found)
        finally:
            self.self_types.pop()
            self.return_types.pop()
            self.scopes.pop()

    def _bind_param(self, param: Param, self_ty: Ty | None) -> None:
        pat = next((c for c in param.children if isinstance(c, Pat)), None)
        declared = self._declared_type(param, self_ty)
        if declared is None and param.self_kind is not None and self_ty is not None:
            if param.self_kind == "value":
                declared = self_ty
            else:
                declared = Ty("ref", args=(self_ty,), mutable=param.self_kind == "ref_mut")
        if pat is not None:
            self.bind_pat(pat, declared)

    # -- statements ----------------------------------------------------

    def check_block(self, block: Block, expected: Ty | None = None) -> Ty | None:
        self.scopes.append({})
        try:
            stmts = block.children[:-1] if block.has_tail else block.children
            diverges = False
            for stmt in stmts:
                if self.check_stmt(stmt) == NEVER:
                    diverges = True
            if block.has_tail and block.children:
                tail = block.children[-1]
                return self.check_expr(tail, expected) if isinstance(tail, Expr) else None
            return NEVER if diverges else UNIT
        finally:
            self.scopes.pop()

    def check_stmt(self, stmt: Node) -> Ty | None:
        if not isinstance(stmt, Stmt):
            return None
        if stmt.kind is StmtKind.MAC:
            return None
        for child in stmt.children:
            if isinstance(child, Local):
                self.check_local(child)
            elif isinstance(child, Item):
                self.check_item(child)
            elif isinstance(child, Expr):
                ty = self.check_expr(child)
                if stmt.kind is StmtKind.SEMI and ty == NEVER:
                    return NEVER
        return None

    def check_local(self, local: Local) -> None:
        pat = next((c for c in local.children if isinstance(c, Pat)), None)
        declared = self._declared_type(local, None) if local.has_ty else None
        found = None
        for child in local.children:
            if isinstance(child, Expr):
                found = self.check_expr(child, declared)
                self._expect(child, declared, found)
            elif isinstance(child, Block):
                self.check_block(child)
        if pat is not None:
            self.bind_pat(pat, declared if declared is not None else found)

    # -- expressions ---------------------------------------------------

    def check_expr(self, expr: Expr, expected: Ty | None = None) -> Ty | None:
        checker = getattr(self, f"_check_{expr.kind.value}", None)
        if checker is None:
            for child in expr.children:
                if isinstance(child, Expr):
                    self.check_expr(child)
            return None
        return self._record(expr, checker(expr, expected))

    def _exprs(self, expr: Expr) -> list[Expr]:
        return [c for c in expr.children if isinstance(c, Expr)]

    def _check_lit(self, expr: Expr, expected: Ty | None) -> Ty | None:
        return literal_type(expr.lit or "", expected)

    def _check_path(self, expr: Expr, expected: Ty | None) -> Ty | None:
        path = path_of(expr)
        if path is None or not path.segments:
            return None
        segments = path.segments
        if len(segments) == 1:
            local = self._lookup(segments[0])
            if local is not None:
                return local
            if segments[0] in self.unit_structs:
                return adt(segments[0])
        if len(segments) >= 2 and segments[-2] in self.enums:
            if segments[-1] in self.enums[segments[-2]]:
                return adt("::".join(segments[:-1]))
        return self.consts.get(segments[-1])

    def _check_paren(self, expr: Expr, expected: Ty | None) -> Ty | None:
        inner = self._exprs(expr)
        return self.check_expr(inner[0], expected) if inner else None

    def _check_tuple(self, expr: Expr, expected: Ty | None) -> Ty | None:
        elems = self._exprs(expr)
        hints = list(expected.args) if expected is not None and expected.kind == "tuple" else []
        if len(hints) != len(elems):
            hints = [None] * len(elems)
        parts = [self.check_expr(e, h) for e, h in zip(elems, hints)]
        if any(p is None for p in parts):
            return None
        return Ty("tuple", args=tuple(parts))

    def _check_array(self, expr: Expr, expected: Ty | None) -> Ty | None:
        elems = self._exprs(expr)
        hint = expected.args[0] if expected is not None and expected.kind == "array" else None
        elem_ty = None
        for elem in elems:
            found = self.check_expr(elem, elem_ty or hint)
            if elem_ty is None:
                elem_ty = found
            else:
                self._expect(elem, elem_ty, found)
        if elem_ty is None:
            return None
        return Ty("array", args=(elem_ty,), length=str(len(elems)))

    def _check_repeat(self, expr: Expr, expected: Ty | None) -> Ty | None:
        elems = self._exprs(expr)
        if len(elems) != 2:
            return None
        hint = expected.args[0] if expected is not None and expected.kind == "array" else None
        elem_ty = self.check_expr(elems[0], hint)
        self.check_expr(elems[1], prim("usize"))
        count = elems[1]
        if elem_ty is None or count.kind is not ExprKind.LIT or not count.lit:
            return None
        return Ty("array", args=(elem_ty,), length=_strip_int_suffix(count.lit))

    def _check_call(self, expr: Expr, expected: Ty | None) -> Ty | None:
        elems = self._exprs(expr)
        if not elems:
            return None
        callee, args = elems[0], elems[1:]
        self.check_expr(callee)
        path = path_of(callee) if callee.kind is ExprKind.PATH else None
        name = path.last if path is not None else None

        hints: list[Ty | None] = list(self.fn_params.get(name or "", []))
        if name in self.tuple_structs:
            hints = list(self.tuple_structs[name])
        if len(hints) != len(args):
            hints = [None] * len(args)
        arg_types = []
        for arg, hint in zip(args, hints):
            found = self.check_expr(arg, hint)
            self._expect(arg, hint, found)
            arg_types.append(found)

        if path is None or name is None:
            return None
        if len(path.segments) == 1 and name in self.tuple_structs:
            return adt(name)
        if len(path.segments) >= 2 and path.segments[-2] in self.enums:
            return adt("::".join(path.segments[:-1]))
        if name == "Some" and len(arg_types) == 1 and arg_types[0] is not None:
            return adt("Option", arg_types[0])
        if len(path.segments) >= 2:
            owner = path.segments[-2]
            if (owner, name) in self.methods:
                return self.methods[(owner, name)]
        return self.fns.get(name)

    def _check_method_call(self, expr: Expr, expected: Ty | None) -> Ty | None:
        elems = self._exprs(expr)
        if not elems:
            return None
        receiver = self.check_expr(elems[0])
        for arg in elems[1:]:
            self.check_expr(arg)

        method = expr.ident or ""
        owner = _base_name(receiver)
        if owner is not None and (owner, method) in self.methods:
            return self.methods[(owner, method)]
        candidates = self.method_names.get(method, [])
        if len(candidates) == 1:
            return candidates[0]
        if method == "clone" and receiver is not None:
            return _deref(receiver)
        if method in KNOWN_METHODS:
            known = KNOWN_METHODS[method]
            return prim(known) if known in PRIMITIVES else adt(known)
        return None

    def _check_binary(self, expr: Expr, expected: Ty | None) -> Ty | None:
        elems = self._exprs(expr)
        if len(elems) != 2:
            return None
        left, right = elems
        if expr.op in ("&&", "||"):
            self.check_expr(left, BOOL)
            self.check_expr(right, BOOL)
            return BOOL
        if expr.op in COMPARISON_OPS:
            left_ty = self.check_expr(left)
            self.check_expr(right, left_ty)
            return BOOL
        left_ty = self.check_expr(left, expected)
        if expr.op in ("<<", ">>"):
            self.check_expr(right)
            return left_ty
        right_ty = self.check_expr(right, left_ty)
        return left_ty if left_ty is not None else right_ty

    def _check_unary(self, expr: Expr, expected: Ty | None) -> Ty | None:
        elems = self._exprs(expr)
        if not elems:
            return None
        if expr.op == "*":
            inner = self.check_expr(elems[0])
            if inner is not None and inner.kind in ("ref", "ptr"):
                return inner.args[0]
            return None
        return self.check_expr(elems[0], expected)

    def _check_addr_of(self, expr: Expr, expected: Ty | None) -> Ty | None:
        elems = self._exprs(expr)
        if not elems:
            return None
        hint = expected.args[0] if expected is not None and expected.kind == "ref" else None
        inner = self.check_expr(elems[0], hint)
        if inner is None:
            return None
        return Ty("ref", args=(inner,), mutable=expr.mutable)

    def _check_cast(self, expr: Expr, expected: Ty | None) -> Ty | None:
        for child in expr.children:
            if isinstance(child, Expr):
                self.check_expr(child)
            elif isinstance(child, TyNode):
                return self.lower_type(child)
        return None

    def _join(self, node: Node, first: Ty | None, second: Ty | None) -> Ty | None:
        if first == NEVER:
            return second
        if second == NEVER or second is None:
            return first
        if first is None:
            return second
        self._expect(node, first, second)
        return first

    def _check_if(self, expr: Expr, expected: Ty | None) -> Ty | None:
        children = expr.children
        self.scopes.append({})
        try:
            if children and isinstance(children[0], Expr):
                self.check_expr(children[0], BOOL)
            then_ty = None
            if len(children) > 1 and isinstance(children[1], Block):
                then_ty = self.check_block(children[1], expected)
        finally:
            self.scopes.pop()
        if len(children) < 3:
            return UNIT
        else_ty = self.check_expr(children[2], expected or then_ty)
        return self._join(children[2], then_ty, else_ty)

    def _check_let(self, expr: Expr, expected: Ty | None) -> Ty | None:
        pat = next((c for c in expr.children if isinstance(c, Pat)), None)
        value = next((c for c in expr.children if isinstance(c, Expr)), None)
        value_ty = self.check_expr(value) if value is not None else None
        if pat is not None:
            self.bind_pat(pat, value_ty)
        return BOOL

    def _check_while(self, expr: Expr, expected: Ty | None) -> Ty | None:
        self.scopes.append({})
        try:
            for child in expr.children:
                if isinstance(child, Expr):
                    self.check_expr(child, BOOL)
                elif isinstance(child, Block):
                    self.check_block(child, UNIT)
        finally:
            self.scopes.pop()
        return UNIT

    def _check_loop(self, expr: Expr, expected: Ty | None) -> Ty | None:
        for child in expr.children:
            if isinstance(child, Block):
                self.check_block(child, UNIT)
        return None

    def _check_for(self, expr: Expr, expected: Ty | None) -> Ty | None:
        pat = next((c for c in expr.children if isinstance(c, Pat)), None)
        iterable = next((c for c in expr.children if isinstance(c, Expr)), None)
        body = next((c for c in expr.children if isinstance(c, Block)), None)
        iter_ty = self.check_expr(iterable) if iterable is not None else None

        elem_ty = None
        if iter_ty is not None and iter_ty.kind == "adt" and iter_ty.name.startswith("std::ops::Range"):
            elem_ty = iter_ty.args[0] if iter_ty.args else None
        elif iter_ty is not None and iter_ty.kind == "array":
            elem_ty = iter_ty.args[0]
        elif iter_ty is not None and iter_ty.kind == "ref":
            inner = iter_ty.args[0]
            if inner.kind in ("array", "slice"):
                elem_ty = Ty("ref", args=(inner.args[0],), mutable=iter_ty.mutable)

        self.scopes.append({})
        try:
            if pat is not None:
                self.bind_pat(pat, elem_ty)
            if body is not None:
                self.check_block(body, UNIT)
        finally:
            self.scopes.pop()
        return UNIT

    def _check_match(self, expr: Expr, expected: Ty | None) -> Ty | None:
        scrutinee = next((c for c in expr.children if isinstance(c, Expr)), None)
        scrutinee_ty = self.check_expr(scrutinee) if scrutinee is not None else None
        result: Ty | None = NEVER
        for arm in expr.children:
            if not isinstance(arm, Arm):
                continue
            arm_ty = self._check_arm(arm, scrutinee_ty, expected)
            result = self._join(arm, result, arm_ty)
        return result

    def _check_arm(self, arm: Arm, scrutinee: Ty | None, expected: Ty | None) -> Ty | None:
        self.scopes.append({})
        try:
            exprs = [c for c in arm.children if isinstance(c, Expr)]
            for child in arm.children:
                if isinstance(child, Pat):
                    self.bind_pat(child, scrutinee)
            if arm.has_guard and exprs:
                self.check_expr(exprs[0], BOOL)
                exprs = exprs[1:]
            return self.check_expr(exprs[-1], expected) if exprs else None
        finally:
            self.scopes.pop()

    def _check_closure(self, expr: Expr, expected: Ty | None) -> Ty | None:
        self.scopes.append({})
        self.return_types.append(None)
        try:
            for child in expr.children:
                if isinstance(child, Param):
                    self._bind_param(child, None)
                elif isinstance(child, Expr):
                    self.check_expr(child)
        finally:
            self.return_types.pop()
            self.scopes.pop()
        return None

    def _check_block(self, expr: Expr, expected: Ty | None) -> Ty | None:
        block = next((c for c in expr.children if isinstance(c, Block)), None)
        return self.check_block(block, expected) if block is not None else None

    def _check_assign(self, expr: Expr, expected: Ty | None) -> Ty | None:
        elems = self._exprs(expr)
        if len(elems) == 2:
            target = self.check_expr(elems[0])
            found = self.check_expr(elems[1], target)
            if expr.kind is ExprKind.ASSIGN:
                self._expect(elems[1], target, found)
        return UNIT

    _check_assign_op = _check_assign

    def _check_field(self, expr: Expr, expected: Ty | None) -> Ty | None:
        elems = self._exprs(expr)
        base = self.check_expr(elems[0]) if elems else None
        fields = self.structs.get(_base_name(base) or "")
        if fields is None:
            return None
        return fields.get(expr.ident or "")

    def _check_tup_field(self, expr: Expr, expected: Ty | None) -> Ty | None:
        elems = self._exprs(expr)
        base = _deref(self.check_expr(elems[0]) if elems else None)
        try:
            index = int(expr.lit or "")
        except ValueError:
            return None
        if base is not None and base.kind == "tuple" and index < len(base.args):
            return base.args[index]
        positional = self.tuple_structs.get(_base_name(base) or "", [])
        return positional[index] if index < len(positional) else None

    def _check_index(self, expr: Expr, expected: Ty | None) -> Ty | None:
        elems = self._exprs(expr)
        if len(elems) != 2:
            return None
        base = _deref(self.check_expr(elems[0]))
        index = self.check_expr(elems[1])
        if index is not None and index.kind == "adt":
            return None
        if base is not None and base.kind in ("array", "slice"):
            return base.args[0]
        if base is not None and _base_name(base) == "Vec" and base.args:
            return base.args[0]
        return None

    def _check_range(self, expr: Expr, expected: Ty | None) -> Ty | None:
        elems = self._exprs(expr)
        hint = expected.args[0] if expected is not None and expected.kind == "adt" and expected.args else None
        elem_ty = None
        for elem in elems:
            elem_ty = self.check_expr(elem, elem_ty or hint) or elem_ty

        has_start = bool(elems) and elems[0].span.lo == expr.span.lo
        has_end = bool(elems) and elems[-1].span.hi == expr.span.hi
        inclusive = expr.op == "..="
        if has_start and has_end:
            name = "std::ops::RangeInclusive" if inclusive else "std::ops::Range"
        elif has_start:
            name = "std::ops::RangeFrom"
        elif has_end:
            name = "std::ops::RangeToInclusive" if inclusive else "std::ops::RangeTo"
        else:
            return adt("std::ops::RangeFull")
        if elem_ty is None:
            return None
        return adt(name, elem_ty)

    def _check_break(self, expr: Expr, expected: Ty | None) -> Ty | None:
        for child in self._exprs(expr):
            self.check_expr(child)
        return NEVER

    _check_continue = _check_break

    def _check_return(self, expr: Expr, expected: Ty | None) -> Ty | None:
        ret = self.return_types[-1] if self.return_types else None
        for child in self._exprs(expr):
            found = self.check_expr(child, ret)
            self._expect(child, ret, found)
        return NEVER

    def _check_mac(self, expr: Expr, expected: Ty | None) -> Ty | None:
        name = (expr.ident or "").rsplit("::", 1)[-1]
        if name == "format":
            return adt("String")
        if name in ("panic", "unreachable", "todo", "unimplemented"):
            return NEVER
        return None

    def _check_struct(self, expr: Expr, expected: Ty | None) -> Ty | None:
        path = path_of(expr)
        name = str(path) if path is not None else ""
        if name == "Self":
            struct_ty = self.self_types[-1] if self.self_types else None
        else:
            struct_ty = adt(name)
        fields = self.structs.get(_base_name(struct_ty) or "", {})
        for child in expr.children:
            if isinstance(child, FieldInit):
                hint = fields.get(child.ident)
                for value in child.children:
                    if isinstance(value, Expr):
                        found = self.check_expr(value, hint)
                        self._expect(value, hint, found)
            elif isinstance(child, Expr):
                self.check_expr(child, struct_ty)
        return struct_ty if name else None

    def _check_try(self, expr: Expr, expected: Ty | None) -> Ty | None:
        elems = self._exprs(expr)
        inner = self.check_expr(elems[0]) if elems else None
        if inner is not None and inner.kind == "adt" and inner.args:
            if _base_name(inner) in ("Option", "Result"):
                return inner.args[0]
        return None


def check_crate(crate: Crate) -> TypeTable:
    """Infer what can be inferred about a node-identified crate."""
    return TypeChecker().check_crate(crate)
