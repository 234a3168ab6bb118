"""Tagged-union syntax tree handed out by the front end.

Every node carries its span, an ordered list of children and a node id.
Ids are `DUMMY_NODE_ID` until the front end assigns them after expansion.
Kind-specific data lives in a handful of typed fields on each node class;
traversal only ever needs `children`, see `typo.syntax.visit`.
"""

from dataclasses import dataclass, field
from enum import Enum

from .codemap import Span

DUMMY_NODE_ID = -1
CRATE_NODE_ID = 0


class ItemKind(Enum):
    FN = "fn"
    STRUCT = "struct"
    ENUM = "enum"
    UNION = "union"
    TYPE = "type"
    CONST = "const"
    STATIC = "static"
    TRAIT = "trait"
    IMPL = "impl"
    MOD = "mod"
    FOREIGN_MOD = "foreign_mod"


class ForeignItemKind(Enum):
    FN = "fn"
    STATIC = "static"


class TraitItemKind(Enum):
    REQUIRED = "required"
    PROVIDED = "provided"
    TYPE = "type"
    CONST = "const"


class ImplItemKind(Enum):
    CONST = "const"
    TYPE = "type"


class UseKind(Enum):
    SIMPLE = "simple"
    GLOB = "glob"
    LIST = "list"


class StmtKind(Enum):
    DECL = "decl"
    EXPR = "expr"
    SEMI = "semi"
    MAC = "mac"


class ExprKind(Enum):
    ARRAY = "array"
    REPEAT = "repeat"
    CALL = "call"
    METHOD_CALL = "method_call"
    TUPLE = "tuple"
    BINARY = "binary"
    UNARY = "unary"
    LIT = "lit"
    CAST = "cast"
    IF = "if"
    LET = "let"
    WHILE = "while"
    FOR = "for"
    LOOP = "loop"
    MATCH = "match"
    CLOSURE = "closure"
    BLOCK = "block"
    ASSIGN = "assign"
    ASSIGN_OP = "assign_op"
    FIELD = "field"
    TUP_FIELD = "tup_field"
    INDEX = "index"
    RANGE = "range"
    PATH = "path"
    ADDR_OF = "addr_of"
    BREAK = "break"
    CONTINUE = "continue"
    RETURN = "return"
    MAC = "mac"
    STRUCT = "struct"
    PAREN = "paren"
    TRY = "try"
    AWAIT = "await"
    OTHER = "other"


class PatKind(Enum):
    WILD = "wild"
    IDENT = "ident"
    STRUCT = "struct"
    ENUM = "enum"
    TUPLE = "tuple"
    REF = "ref"
    LIT = "lit"
    RANGE = "range"
    SLICE = "slice"
    OR = "or"
    MAC = "mac"


class TyKind(Enum):
    PATH = "path"
    PTR = "ptr"
    RPTR = "rptr"
    TUP = "tup"
    SLICE = "slice"
    ARRAY = "array"
    BARE_FN = "bare_fn"
    NEVER = "never"
    INFER = "infer"
    TRAIT_OBJECT = "trait_object"
    IMPL_TRAIT = "impl_trait"
    OTHER = "other"


class FnKind(Enum):
    """Context in which a fn-like node is visited."""

    ITEM = "item"
    METHOD = "method"
    CLOSURE = "closure"


@dataclass(frozen=True)
class MetaItem:
    """`name`, `name = "value"` or `name(nested, ...)` inside an attribute."""

    name: str
    value: str | None = None
    nested: tuple["MetaItem", ...] | None = None


@dataclass(frozen=True)
class Attribute:
    meta: MetaItem
    span: Span
    inner: bool = False

    @property
    def name(self) -> str:
        return self.meta.name

    @property
    def value(self) -> str | None:
        return self.meta.value


@dataclass(eq=False)
class Node:
    span: Span
    children: list["Node"] = field(default_factory=list)
    node_id: int = DUMMY_NODE_ID
    attrs: tuple[Attribute, ...] = ()

    def find_attr(self, name: str) -> Attribute | None:
        for attr in self.attrs:
            if attr.name == name:
                return attr
        return None


@dataclass(eq=False)
class Crate(Node):
    name: str | None = None


@dataclass(eq=False)
class Item(Node):
    kind: ItemKind = ItemKind.FN
    ident: str | None = None
    # Span of the module body; lies in another file for `mod name;`
    inner: Span | None = None


@dataclass(eq=False)
class ForeignItem(Node):
    kind: ForeignItemKind = ForeignItemKind.FN
    ident: str = ""


@dataclass(eq=False)
class Use(Node):
    """One clause of a `use` tree or an `extern crate`.

    `path` is the full path of the clause, list prefixes included.
    """

    kind: UseKind = UseKind.SIMPLE
    path: tuple[str, ...] = ()
    rename: str | None = None


@dataclass(eq=False)
class Method(Node):
    """Fn with a body inside an impl block."""

    ident: str = ""


@dataclass(eq=False)
class TraitItem(Node):
    kind: TraitItemKind = TraitItemKind.REQUIRED
    ident: str = ""
    ident_span: Span | None = None


@dataclass(eq=False)
class ImplItem(Node):
    """Associated const or type inside an impl block."""

    kind: ImplItemKind = ImplItemKind.CONST
    ident: str = ""


@dataclass(eq=False)
class StructField(Node):
    # None for positional fields
    ident: str | None = None


@dataclass(eq=False)
class Variant(Node):
    ident: str = ""


@dataclass(eq=False)
class MacroInvocation(Node):
    path: tuple[str, ...] = ()
    # Name declared by `macro_rules! name`
    ident: str | None = None

    @property
    def is_macro_rules(self) -> bool:
        return len(self.path) == 1 and self.path[0] == "macro_rules"


@dataclass(eq=False)
class Param(Node):
    """Fn or closure parameter: pattern, then optional type."""

    self_kind: str | None = None


@dataclass(eq=False)
class Stmt(Node):
    kind: StmtKind = StmtKind.EXPR


@dataclass(eq=False)
class Local(Node):
    """`let` binding: pattern, then optional type, init and else block."""

    has_ty: bool = False
    has_init: bool = False


@dataclass(eq=False)
class Block(Node):
    """Statements, then an optional trailing expression."""

    has_tail: bool = False


@dataclass(eq=False)
class Expr(Node):
    kind: ExprKind = ExprKind.OTHER
    op: str | None = None
    lit: str | None = None
    ident: str | None = None
    mutable: bool = False


@dataclass(eq=False)
class FieldInit(Node):
    """`name: value` inside a struct expression."""

    ident: str = ""


@dataclass(eq=False)
class Arm(Node):
    """Match arm: pattern, optional guard expression, body expression."""

    has_guard: bool = False


@dataclass(eq=False)
class Pat(Node):
    kind: PatKind = PatKind.WILD
    ident: str | None = None
    by_ref: bool = False
    mutable: bool = False
    # Field names of a struct pattern, aligned with the sub-patterns
    fields: tuple[str, ...] = ()


@dataclass(eq=False)
class Ty(Node):
    kind: TyKind = TyKind.OTHER
    mutable: bool = False
    lifetime: str | None = None


@dataclass(eq=False)
class Path(Node):
    """Name reference. Shares the node id of the node that owns it."""

    segments: tuple[str, ...] = ()
    is_global: bool = False

    @property
    def last(self) -> str | None:
        return self.segments[-1] if self.segments else None

    def __str__(self) -> str:
        text = "::".join(self.segments)
        return f"::{text}" if self.is_global else text


def path_of(node: Node) -> Path | None:
    """First direct `Path` child of a node."""
    for child in node.children:
        if isinstance(child, Path):
            return child
    return None
