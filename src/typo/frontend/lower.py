"""Lower tree-sitter-rust parse trees into the typo syntax tree.

One `Lowerer` handles one source file. Out-of-line modules (`mod name;`)
are delegated to a loader callback supplied by the session, which parses
the module file with a fresh `Lowerer` and hands back its contents.
"""

import re
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path as FsPath

from tree_sitter import Node as TsNode

from ..logging import get_logger
from ..syntax.ast import (
    Arm,
    Attribute,
    Block,
    Expr,
    ExprKind,
    FieldInit,
    ForeignItem,
    ForeignItemKind,
    ImplItem,
    ImplItemKind,
    Item,
    ItemKind,
    Local,
    MacroInvocation,
    MetaItem,
    Method,
    Node,
    Param,
    Pat,
    PatKind,
    Path,
    Stmt,
    StmtKind,
    StructField,
    TraitItem,
    TraitItemKind,
    Ty,
    TyKind,
    Use,
    UseKind,
    Variant,
)
from ..syntax.codemap import SourceFile, Span

logger = get_logger("frontend.lower")

COMMENT_KINDS = frozenset({"line_comment", "block_comment"})

LITERAL_KINDS = frozenset({
    "integer_literal",
    "float_literal",
    "string_literal",
    "raw_string_literal",
    "char_literal",
    "boolean_literal",
    "negative_literal",
})

PATH_EXPR_KINDS = frozenset({
    "identifier",
    "scoped_identifier",
    "self",
    "super",
    "crate",
    "generic_function",
    "metavariable",
})

BLOCK_EXPR_KINDS = frozenset({
    "block",
    "unsafe_block",
    "async_block",
    "const_block",
    "try_block",
    "gen_block",
})

EXPRESSION_KINDS = LITERAL_KINDS | PATH_EXPR_KINDS | BLOCK_EXPR_KINDS | frozenset({
    "unit_expression",
    "tuple_expression",
    "parenthesized_expression",
    "array_expression",
    "call_expression",
    "binary_expression",
    "unary_expression",
    "reference_expression",
    "type_cast_expression",
    "if_expression",
    "let_condition",
    "let_chain",
    "while_expression",
    "loop_expression",
    "for_expression",
    "match_expression",
    "closure_expression",
    "assignment_expression",
    "compound_assignment_expr",
    "field_expression",
    "index_expression",
    "range_expression",
    "break_expression",
    "continue_expression",
    "return_expression",
    "yield_expression",
    "macro_invocation",
    "struct_expression",
    "try_expression",
    "await_expression",
})

TYPE_KINDS = frozenset({
    "type_identifier",
    "scoped_type_identifier",
    "primitive_type",
    "generic_type",
    "reference_type",
    "pointer_type",
    "tuple_type",
    "unit_type",
    "array_type",
    "function_type",
    "never_type",
    "dynamic_type",
    "abstract_type",
    "bounded_type",
    "removed_trait_bound",
    "qualified_type",
    "macro_invocation",
    "metavariable",
})

PATTERN_LITERAL_KINDS = LITERAL_KINDS

_RAW_STRING_RE = re.compile(r'^[bc]?r(#*)"(.*)"\1$', re.DOTALL)


@dataclass
class LoadedModule:
    """Contents of an out-of-line module file."""

    children: list[Node]
    attrs: tuple[Attribute, ...]
    span: Span


ModuleLoader = Callable[[str, tuple[Attribute, ...], FsPath, FsPath], LoadedModule | None]


def unquote(text: str) -> str:
    """Value of a string literal token, without quotes or prefix."""
    match = _RAW_STRING_RE.match(text)
    if match:
        return match.group(2)
    if text[:1] in ("b", "c"):
        text = text[1:]
    if len(text) >= 2 and text[0] == '"' and text[-1] == '"':
        text = text[1:-1]
    return text.replace('\\"', '"').replace("\\\\", "\\")


class Lowerer:
    """Lower the parse tree of one source file."""

    def __init__(
        self,
        source_file: SourceFile,
        file_dir: FsPath,
        load_module: ModuleLoader,
    ):
        self.source_file = source_file
        self.src = source_file.src or b""
        self.base = source_file.start_pos
        self.file_dir = file_dir
        self.load_module = load_module

    # -- helpers -------------------------------------------------------

    def text(self, node: TsNode) -> str:
        return self.src[node.start_byte : node.end_byte].decode("utf-8")

    def span(self, node: TsNode) -> Span:
        return Span(self.base + node.start_byte, self.base + node.end_byte)

    def _field_text(self, node: TsNode, name: str) -> str | None:
        child = node.child_by_field_name(name)
        return self.text(child) if child is not None else None

    @staticmethod
    def _has_child(node: TsNode, kind: str) -> bool:
        return any(child.type == kind for child in node.children)

    @staticmethod
    def _named(node: TsNode) -> list[TsNode]:
        return [c for c in node.named_children if c.type not in COMMENT_KINDS]

    @staticmethod
    def _pattern_children(node: TsNode) -> list[TsNode]:
        """Named children plus anonymous `_` wildcards."""
        return [
            c
            for c in node.children
            if (c.is_named and c.type not in COMMENT_KINDS) or c.type == "_"
        ]

    # -- attributes ----------------------------------------------------

    def lower_attribute(self, node: TsNode) -> Attribute | None:
        attr = next((c for c in node.named_children if c.type == "attribute"), None)
        if attr is None:
            return None

        path_node = attr.named_children[0] if attr.named_children else None
        name = self.text(path_node) if path_node is not None else ""
        value = None
        nested = None

        value_node = attr.child_by_field_name("value")
        if value_node is not None:
            value = unquote(self.text(value_node))
        args = attr.child_by_field_name("arguments")
        if args is not None:
            nested = self._parse_meta_list(args)

        return Attribute(
            meta=MetaItem(name=name, value=value, nested=nested),
            span=self.span(node),
            inner=node.type == "inner_attribute_item",
        )

    def _parse_meta_list(self, token_tree: TsNode) -> tuple[MetaItem, ...]:
        """Parse `(a, b = "c", d(e))` into meta items."""
        tokens = [c for c in token_tree.children if c.type not in COMMENT_KINDS]
        # Drop the enclosing delimiters
        if tokens and tokens[0].type in ("(", "[", "{"):
            tokens = tokens[1:]
        if tokens and tokens[-1].type in (")", "]", "}"):
            tokens = tokens[:-1]

        items = []
        group: list[TsNode] = []
        for token in tokens + [None]:
            if token is not None and token.type != ",":
                group.append(token)
                continue
            if group:
                items.append(self._meta_from_group(group))
            group = []
        return tuple(items)

    def _meta_from_group(self, group: list[TsNode]) -> MetaItem:
        name_parts = []
        value = None
        nested = None
        for i, token in enumerate(group):
            if token.type == "token_tree":
                nested = self._parse_meta_list(token)
                break
            if token.type == "=":
                rest = group[i + 1 :]
                if rest:
                    value = unquote(self.text(rest[0]))
                break
            name_parts.append(self.text(token))
        return MetaItem(name="".join(name_parts), value=value, nested=nested)

    # -- modules -------------------------------------------------------

    def lower_module(
        self, container: TsNode, mod_dir: FsPath
    ) -> tuple[list[Node], tuple[Attribute, ...]]:
        """Lower the entries of a source file or a `{ ... }` module body."""
        children: list[Node] = []
        inner_attrs: list[Attribute] = []
        pending: list[Attribute] = []

        for child in self._named(container):
            if child.type == "attribute_item":
                attr = self.lower_attribute(child)
                if attr is not None:
                    pending.append(attr)
                continue
            if child.type == "inner_attribute_item":
                attr = self.lower_attribute(child)
                if attr is not None:
                    inner_attrs.append(attr)
                continue

            node = self.lower_module_entry(child, tuple(pending), mod_dir)
            pending = []
            if node is not None:
                children.append(node)

        return children, tuple(inner_attrs)

    def lower_module_entry(
        self, node: TsNode, attrs: tuple[Attribute, ...], mod_dir: FsPath
    ) -> Node | None:
        kind = node.type
        if kind == "mod_item":
            return self.lower_mod(node, attrs, mod_dir)
        if kind in ("expression_statement", "let_declaration"):
            inner = self._named(node)
            if kind == "expression_statement" and inner and inner[0].type == "macro_invocation":
                return self.lower_macro_invocation(inner[0], attrs)
            stmt = self.lower_stmt(node, attrs, mod_dir)
            return stmt
        item = self.lower_item(node, attrs, mod_dir)
        if item is None and kind != "empty_statement":
            logger.debug("Skipping unsupported module entry %s at %s", kind, node.start_point)
        return item

    def lower_item(
        self, node: TsNode, attrs: tuple[Attribute, ...], mod_dir: FsPath
    ) -> Node | None:
        """Lower anything that can appear as an item, in a module or a block."""
        kind = node.type
        span = self.span(node)

        if kind in ("function_item", "function_signature_item"):
            return Item(
                span=span,
                attrs=attrs,
                kind=ItemKind.FN,
                ident=self._field_text(node, "name"),
                children=self.lower_fn_parts(node),
            )
        if kind in ("struct_item", "union_item"):
            body = node.child_by_field_name("body")
            return Item(
                span=span,
                attrs=attrs,
                kind=ItemKind.STRUCT if kind == "struct_item" else ItemKind.UNION,
                ident=self._field_text(node, "name"),
                children=self.lower_fields(body) if body is not None else [],
            )
        if kind == "enum_item":
            body = node.child_by_field_name("body")
            return Item(
                span=span,
                attrs=attrs,
                kind=ItemKind.ENUM,
                ident=self._field_text(node, "name"),
                children=self.lower_variants(body) if body is not None else [],
            )
        if kind == "type_item":
            return Item(
                span=span,
                attrs=attrs,
                kind=ItemKind.TYPE,
                ident=self._field_text(node, "name"),
                children=self._lower_typed_value(node),
            )
        if kind in ("const_item", "static_item"):
            return Item(
                span=span,
                attrs=attrs,
                kind=ItemKind.CONST if kind == "const_item" else ItemKind.STATIC,
                ident=self._field_text(node, "name"),
                children=self._lower_typed_value(node),
            )
        if kind == "trait_item":
            body = node.child_by_field_name("body")
            return Item(
                span=span,
                attrs=attrs,
                kind=ItemKind.TRAIT,
                ident=self._field_text(node, "name"),
                children=self.lower_trait_body(body, mod_dir) if body is not None else [],
            )
        if kind == "impl_item":
            return self.lower_impl(node, attrs, mod_dir)
        if kind == "mod_item":
            return self.lower_mod(node, attrs, mod_dir)
        if kind == "foreign_mod_item":
            body = node.child_by_field_name("body")
            return Item(
                span=span,
                attrs=attrs,
                kind=ItemKind.FOREIGN_MOD,
                children=self.lower_foreign_items(body) if body is not None else [],
            )
        if kind == "use_declaration":
            argument = node.child_by_field_name("argument")
            if argument is None:
                return None
            use = self.lower_use_tree(argument, ())
            use.span = span
            use.attrs = attrs
            return use
        if kind == "extern_crate_declaration":
            name = node.child_by_field_name("name")
            path = (self.text(name),) if name is not None else ()
            return Use(
                span=span,
                attrs=attrs,
                kind=UseKind.SIMPLE,
                path=path,
                rename=self._field_text(node, "alias"),
                children=[Path(span=self.span(name), segments=path)] if name is not None else [],
            )
        if kind in ("macro_definition", "macro_invocation"):
            return self.lower_macro_invocation(node, attrs)
        return None

    def lower_mod(self, node: TsNode, attrs: tuple[Attribute, ...], mod_dir: FsPath) -> Item:
        name = self._field_text(node, "name") or ""
        body = node.child_by_field_name("body")
        if body is not None:
            children, inner_attrs = self.lower_module(body, mod_dir / name)
            return Item(
                span=self.span(node),
                attrs=attrs + inner_attrs,
                kind=ItemKind.MOD,
                ident=name,
                inner=self.span(body),
                children=children,
            )

        loaded = self.load_module(name, attrs, mod_dir, self.file_dir)
        if loaded is None:
            return Item(span=self.span(node), attrs=attrs, kind=ItemKind.MOD, ident=name)
        return Item(
            span=self.span(node),
            attrs=attrs + loaded.attrs,
            kind=ItemKind.MOD,
            ident=name,
            inner=loaded.span,
            children=loaded.children,
        )

    def lower_macro_invocation(
        self, node: TsNode, attrs: tuple[Attribute, ...] = ()
    ) -> MacroInvocation:
        if node.type == "macro_definition":
            return MacroInvocation(
                span=self.span(node),
                attrs=attrs,
                path=("macro_rules",),
                ident=self._field_text(node, "name"),
            )
        macro = node.child_by_field_name("macro")
        segments: list[str] = []
        if macro is not None:
            self._collect_path(macro, segments, [])
        return MacroInvocation(span=self.span(node), attrs=attrs, path=tuple(segments))

    def lower_use_tree(self, node: TsNode, prefix: tuple[str, ...]) -> Use:
        kind = node.type
        span = self.span(node)

        if kind == "use_as_clause":
            path_node = node.child_by_field_name("path")
            path = self.lower_path(path_node)
            return Use(
                span=span,
                kind=UseKind.SIMPLE,
                path=prefix + path.segments,
                rename=self._field_text(node, "alias"),
                children=[path],
            )
        if kind == "use_wildcard":
            inner = self._named(node)
            children = [self.lower_path(inner[0])] if inner else []
            segments = children[0].segments if children else ()
            return Use(span=span, kind=UseKind.GLOB, path=prefix + segments, children=children)
        if kind in ("scoped_use_list", "use_list"):
            children: list[Node] = []
            segments: tuple[str, ...] = ()
            list_node = node
            if kind == "scoped_use_list":
                path_node = node.child_by_field_name("path")
                if path_node is not None:
                    path = self.lower_path(path_node)
                    segments = path.segments
                    children.append(path)
                list_node = node.child_by_field_name("list")
            if list_node is not None:
                for entry in self._named(list_node):
                    children.append(self.lower_use_tree(entry, prefix + segments))
            return Use(span=span, kind=UseKind.LIST, path=prefix + segments, children=children)

        path = self.lower_path(node)
        return Use(span=span, kind=UseKind.SIMPLE, path=prefix + path.segments, children=[path])

    # -- item parts ----------------------------------------------------

    def lower_fn_parts(self, node: TsNode) -> list[Node]:
        """Parameters, return type and body of a fn-like node."""
        parts: list[Node] = []
        params = node.child_by_field_name("parameters")
        if params is not None:
            parts.extend(self.lower_params(params))
        ret = node.child_by_field_name("return_type")
        if ret is not None:
            parts.append(self.lower_ty(ret))
        body = node.child_by_field_name("body")
        if body is not None:
            parts.append(self.lower_block(body))
        return parts

    def lower_params(self, node: TsNode) -> list[Node]:
        params: list[Node] = []
        for child in self._named(node):
            if child.type == "parameter":
                pattern = child.child_by_field_name("pattern")
                ty = child.child_by_field_name("type")
                parts: list[Node] = []
                if pattern is not None:
                    pat = self.lower_pat(pattern)
                    if self._has_child(child, "mutable_specifier"):
                        pat.mutable = True
                    parts.append(pat)
                if ty is not None:
                    parts.append(self.lower_ty(ty))
                params.append(Param(span=self.span(child), children=parts))
            elif child.type == "self_parameter":
                text = self.text(child)
                if text.startswith("&"):
                    self_kind = "ref_mut" if self._has_child(child, "mutable_specifier") else "ref"
                else:
                    self_kind = "value"
                params.append(
                    Param(
                        span=self.span(child),
                        self_kind=self_kind,
                        children=[Pat(span=self.span(child), kind=PatKind.IDENT, ident="self")],
                    )
                )
            elif child.type in TYPE_KINDS:
                params.append(Param(span=self.span(child), children=[self.lower_ty(child)]))
        return params

    def _lower_typed_value(self, node: TsNode) -> list[Node]:
        parts: list[Node] = []
        ty = node.child_by_field_name("type")
        if ty is not None:
            parts.append(self.lower_ty(ty))
        value = node.child_by_field_name("value")
        if value is not None:
            parts.append(self.lower_expr(value))
        return parts

    def lower_fields(self, body: TsNode) -> list[Node]:
        fields: list[Node] = []
        pending: list[Attribute] = []
        if body.type == "field_declaration_list":
            for child in self._named(body):
                if child.type == "attribute_item":
                    attr = self.lower_attribute(child)
                    if attr is not None:
                        pending.append(attr)
                elif child.type == "field_declaration":
                    ty = child.child_by_field_name("type")
                    fields.append(
                        StructField(
                            span=self.span(child),
                            attrs=tuple(pending),
                            ident=self._field_text(child, "name"),
                            children=[self.lower_ty(ty)] if ty is not None else [],
                        )
                    )
                    pending = []
        elif body.type == "ordered_field_declaration_list":
            field_types = body.children_by_field_name("type")
            start = None
            for child in self._named(body):
                if child.type == "attribute_item":
                    attr = self.lower_attribute(child)
                    if attr is not None:
                        pending.append(attr)
                elif child.type == "visibility_modifier":
                    start = child
                elif child in field_types:
                    span = self.span(child) if start is None else self.span(start).to(self.span(child))
                    fields.append(
                        StructField(
                            span=span,
                            attrs=tuple(pending),
                            children=[self.lower_ty(child)],
                        )
                    )
                    pending = []
                    start = None
        return fields

    def lower_variants(self, body: TsNode) -> list[Node]:
        variants: list[Node] = []
        pending: list[Attribute] = []
        for child in self._named(body):
            if child.type == "attribute_item":
                attr = self.lower_attribute(child)
                if attr is not None:
                    pending.append(attr)
                continue
            if child.type != "enum_variant":
                continue
            parts: list[Node] = []
            fields = child.child_by_field_name("body")
            if fields is not None:
                parts.extend(self.lower_fields(fields))
            value = child.child_by_field_name("value")
            if value is not None:
                parts.append(self.lower_expr(value))
            variants.append(
                Variant(
                    span=self.span(child),
                    attrs=tuple(pending),
                    ident=self._field_text(child, "name") or "",
                    children=parts,
                )
            )
            pending = []
        return variants

    def lower_trait_body(self, body: TsNode, mod_dir: FsPath) -> list[Node]:
        items: list[Node] = []
        pending: list[Attribute] = []
        for child in self._named(body):
            if child.type == "attribute_item":
                attr = self.lower_attribute(child)
                if attr is not None:
                    pending.append(attr)
                continue

            attrs = tuple(pending)
            pending = []
            span = self.span(child)
            name = child.child_by_field_name("name")
            ident = self.text(name) if name is not None else ""

            if child.type == "function_signature_item":
                items.append(
                    TraitItem(
                        span=span,
                        attrs=attrs,
                        kind=TraitItemKind.REQUIRED,
                        ident=ident,
                        children=self.lower_fn_parts(child),
                    )
                )
            elif child.type == "function_item":
                items.append(
                    TraitItem(
                        span=span,
                        attrs=attrs,
                        kind=TraitItemKind.PROVIDED,
                        ident=ident,
                        children=self.lower_fn_parts(child),
                    )
                )
            elif child.type == "associated_type":
                default = child.child_by_field_name("type")
                items.append(
                    TraitItem(
                        span=span,
                        attrs=attrs,
                        kind=TraitItemKind.TYPE,
                        ident=ident,
                        ident_span=self.span(name) if name is not None else span,
                        children=[self.lower_ty(default)] if default is not None else [],
                    )
                )
            elif child.type == "const_item":
                items.append(
                    TraitItem(
                        span=span,
                        attrs=attrs,
                        kind=TraitItemKind.CONST,
                        ident=ident,
                        children=self._lower_typed_value(child),
                    )
                )
            elif child.type == "macro_invocation":
                items.append(self.lower_macro_invocation(child, attrs))
        return items

    def lower_impl(self, node: TsNode, attrs: tuple[Attribute, ...], mod_dir: FsPath) -> Item:
        children: list[Node] = []
        trait = node.child_by_field_name("trait")
        if trait is not None:
            children.append(self.lower_path(trait))
        self_ty = node.child_by_field_name("type")
        if self_ty is not None:
            children.append(self.lower_ty(self_ty))

        body = node.child_by_field_name("body")
        pending: list[Attribute] = []
        for child in self._named(body) if body is not None else []:
            if child.type == "attribute_item":
                attr = self.lower_attribute(child)
                if attr is not None:
                    pending.append(attr)
                continue

            item_attrs = tuple(pending)
            pending = []
            span = self.span(child)
            ident = self._field_text(child, "name") or ""

            if child.type == "function_item":
                children.append(
                    Method(span=span, attrs=item_attrs, ident=ident, children=self.lower_fn_parts(child))
                )
            elif child.type == "const_item":
                children.append(
                    ImplItem(
                        span=span,
                        attrs=item_attrs,
                        kind=ImplItemKind.CONST,
                        ident=ident,
                        children=self._lower_typed_value(child),
                    )
                )
            elif child.type == "type_item":
                children.append(
                    ImplItem(
                        span=span,
                        attrs=item_attrs,
                        kind=ImplItemKind.TYPE,
                        ident=ident,
                        children=self._lower_typed_value(child),
                    )
                )
            elif child.type == "macro_invocation":
                children.append(self.lower_macro_invocation(child, item_attrs))

        return Item(span=self.span(node), attrs=attrs, kind=ItemKind.IMPL, children=children)

    def lower_foreign_items(self, body: TsNode) -> list[Node]:
        items: list[Node] = []
        pending: list[Attribute] = []
        for child in self._named(body):
            if child.type == "attribute_item":
                attr = self.lower_attribute(child)
                if attr is not None:
                    pending.append(attr)
                continue
            if child.type == "function_signature_item":
                items.append(
                    ForeignItem(
                        span=self.span(child),
                        attrs=tuple(pending),
                        kind=ForeignItemKind.FN,
                        ident=self._field_text(child, "name") or "",
                        children=self.lower_fn_parts(child),
                    )
                )
            elif child.type == "static_item":
                items.append(
                    ForeignItem(
                        span=self.span(child),
                        attrs=tuple(pending),
                        kind=ForeignItemKind.STATIC,
                        ident=self._field_text(child, "name") or "",
                        children=self._lower_typed_value(child),
                    )
                )
            pending = []
        return items

    # -- statements ----------------------------------------------------

    def lower_block(self, node: TsNode) -> Block:
        """Lower a `{ ... }` block into statements and a tail expression."""
        # unsafe/async/const blocks wrap a plain block
        if node.type != "block":
            inner = next((c for c in node.named_children if c.type == "block"), None)
            if inner is not None:
                node = inner

        stmts: list[Node] = []
        tail: Node | None = None
        pending: list[Attribute] = []
        entries = [c for c in self._named(node) if c.type != "label"]

        for i, child in enumerate(entries):
            is_last = i == len(entries) - 1
            kind = child.type
            if kind == "attribute_item":
                attr = self.lower_attribute(child)
                if attr is not None:
                    pending.append(attr)
                continue
            if kind in ("inner_attribute_item", "empty_statement"):
                continue

            attrs = tuple(pending)
            pending = []

            if kind in ("let_declaration", "expression_statement"):
                stmt = self.lower_stmt(child, attrs, self.file_dir)
                # A trailing block-like statement without `;` is the block's value
                if is_last and stmt.kind is StmtKind.EXPR:
                    tail = stmt.children[0]
                else:
                    stmts.append(stmt)
            elif kind == "macro_invocation":
                sibling = child.next_sibling
                if is_last and (sibling is None or sibling.type == "}"):
                    tail = self.lower_expr(child)
                else:
                    stmts.append(
                        Stmt(
                            span=self.span(child),
                            attrs=attrs,
                            kind=StmtKind.MAC,
                            children=[self.lower_macro_invocation(child)],
                        )
                    )
            elif kind == "macro_definition":
                stmts.append(
                    Stmt(
                        span=self.span(child),
                        kind=StmtKind.MAC,
                        children=[self.lower_macro_invocation(child, attrs)],
                    )
                )
            elif kind in EXPRESSION_KINDS:
                tail = self.lower_expr(child)
            else:
                item = self.lower_item(child, attrs, self.file_dir)
                if item is not None:
                    stmts.append(
                        Stmt(span=self.span(child), attrs=attrs, kind=StmtKind.DECL, children=[item])
                    )

        children = stmts + ([tail] if tail is not None else [])
        return Block(span=self.span(node), children=children, has_tail=tail is not None)

    def lower_stmt(self, node: TsNode, attrs: tuple[Attribute, ...], mod_dir: FsPath) -> Stmt:
        span = self.span(node)
        if node.type == "let_declaration":
            parts: list[Node] = []
            pattern = node.child_by_field_name("pattern")
            if pattern is not None:
                pat = self.lower_pat(pattern)
                if self._has_child(node, "mutable_specifier"):
                    pat.mutable = True
                parts.append(pat)
            ty = node.child_by_field_name("type")
            if ty is not None:
                parts.append(self.lower_ty(ty))
            value = node.child_by_field_name("value")
            if value is not None:
                parts.append(self.lower_expr(value))
            alternative = node.child_by_field_name("alternative")
            if alternative is not None:
                parts.append(self.lower_block(alternative))
            local = Local(span=span, children=parts, has_ty=ty is not None, has_init=value is not None)
            return Stmt(span=span, attrs=attrs, kind=StmtKind.DECL, children=[local])

        inner = self._named(node)
        expr_node = inner[0] if inner else None
        if expr_node is not None and expr_node.type == "macro_invocation":
            return Stmt(
                span=span,
                attrs=attrs,
                kind=StmtKind.MAC,
                children=[self.lower_macro_invocation(expr_node)],
            )
        has_semi = bool(node.children) and node.children[-1].type == ";"
        children = [self.lower_expr(expr_node)] if expr_node is not None else []
        return Stmt(
            span=span,
            attrs=attrs,
            kind=StmtKind.SEMI if has_semi else StmtKind.EXPR,
            children=children,
        )

    # -- expressions ---------------------------------------------------

    def lower_expr(self, node: TsNode) -> Expr:
        kind = node.type
        span = self.span(node)
        named = self._named(node)

        if kind in LITERAL_KINDS:
            return Expr(span=span, kind=ExprKind.LIT, lit=self.text(node))
        if kind in PATH_EXPR_KINDS:
            return Expr(span=span, kind=ExprKind.PATH, children=[self.lower_path(node)])
        if kind in BLOCK_EXPR_KINDS:
            return Expr(span=span, kind=ExprKind.BLOCK, children=[self.lower_block(node)])
        if self._chain_receiver(node) is not None:
            return self._lower_chain(node)

        if kind == "unit_expression":
            return Expr(span=span, kind=ExprKind.TUPLE)
        if kind == "tuple_expression":
            return Expr(span=span, kind=ExprKind.TUPLE, children=self._lower_exprs(named))
        if kind == "parenthesized_expression":
            return Expr(span=span, kind=ExprKind.PAREN, children=self._lower_exprs(named))
        if kind == "array_expression":
            length = node.child_by_field_name("length")
            exprs = self._lower_exprs(named)
            if length is not None:
                return Expr(span=span, kind=ExprKind.REPEAT, children=exprs)
            return Expr(span=span, kind=ExprKind.ARRAY, children=exprs)
        if kind == "call_expression":
            return self._lower_call(node)
        if kind == "unary_expression":
            return Expr(
                span=span,
                kind=ExprKind.UNARY,
                op=self.text(node.children[0]),
                children=self._lower_exprs(named),
            )
        if kind == "reference_expression":
            value = node.child_by_field_name("value")
            return Expr(
                span=span,
                kind=ExprKind.ADDR_OF,
                mutable=self._has_child(node, "mutable_specifier"),
                children=[self.lower_expr(value)] if value is not None else [],
            )
        if kind == "type_cast_expression":
            return Expr(
                span=span,
                kind=ExprKind.CAST,
                children=[
                    self.lower_expr(node.child_by_field_name("value")),
                    self.lower_ty(node.child_by_field_name("type")),
                ],
            )
        if kind == "if_expression":
            return self._lower_if(node)
        if kind in ("let_condition", "let_chain"):
            return self._lower_condition(node)
        if kind == "while_expression":
            return Expr(
                span=span,
                kind=ExprKind.WHILE,
                children=[
                    self._lower_condition(node.child_by_field_name("condition")),
                    self.lower_block(node.child_by_field_name("body")),
                ],
            )
        if kind == "loop_expression":
            return Expr(
                span=span,
                kind=ExprKind.LOOP,
                children=[self.lower_block(node.child_by_field_name("body"))],
            )
        if kind == "for_expression":
            return Expr(
                span=span,
                kind=ExprKind.FOR,
                children=[
                    self.lower_pat(node.child_by_field_name("pattern")),
                    self.lower_expr(node.child_by_field_name("value")),
                    self.lower_block(node.child_by_field_name("body")),
                ],
            )
        if kind == "match_expression":
            return self._lower_match(node)
        if kind == "closure_expression":
            return self._lower_closure(node)
        if kind == "assignment_expression":
            return Expr(
                span=span,
                kind=ExprKind.ASSIGN,
                children=[
                    self.lower_expr(node.child_by_field_name("left")),
                    self.lower_expr(node.child_by_field_name("right")),
                ],
            )
        if kind == "compound_assignment_expr":
            return Expr(
                span=span,
                kind=ExprKind.ASSIGN_OP,
                op=self._field_text(node, "operator"),
                children=[
                    self.lower_expr(node.child_by_field_name("left")),
                    self.lower_expr(node.child_by_field_name("right")),
                ],
            )
        if kind == "index_expression":
            return Expr(span=span, kind=ExprKind.INDEX, children=self._lower_exprs(named))
        if kind == "range_expression":
            operator = next((c for c in node.children if not c.is_named), None)
            return Expr(
                span=span,
                kind=ExprKind.RANGE,
                op=self.text(operator) if operator is not None else "..",
                children=self._lower_exprs(named),
            )
        if kind in ("break_expression", "return_expression", "continue_expression"):
            expr_kind = {
                "break_expression": ExprKind.BREAK,
                "return_expression": ExprKind.RETURN,
                "continue_expression": ExprKind.CONTINUE,
            }[kind]
            return Expr(span=span, kind=expr_kind, children=self._lower_exprs(named))
        if kind == "macro_invocation":
            invocation = self.lower_macro_invocation(node)
            return Expr(span=span, kind=ExprKind.MAC, ident="::".join(invocation.path))
        if kind == "struct_expression":
            return self._lower_struct_expr(node)
        if kind == "try_expression":
            return Expr(span=span, kind=ExprKind.TRY, children=self._lower_exprs(named))
        if kind == "await_expression":
            return Expr(span=span, kind=ExprKind.AWAIT, children=self._lower_exprs(named))

        children: list[Node] = []
        for child in named:
            if child.type in EXPRESSION_KINDS:
                children.append(self.lower_expr(child))
            elif child.type in TYPE_KINDS:
                children.append(self.lower_ty(child))
        return Expr(span=span, kind=ExprKind.OTHER, children=children)

    def _lower_exprs(self, nodes: list[TsNode]) -> list[Node]:
        return [self.lower_expr(n) for n in nodes if n.type in EXPRESSION_KINDS]

    def _lower_call(self, node: TsNode) -> Expr:
        function = node.child_by_field_name("function")
        arguments = node.child_by_field_name("arguments")
        args = self._lower_exprs(self._named(arguments)) if arguments is not None else []
        return Expr(
            span=self.span(node),
            kind=ExprKind.CALL,
            children=[self.lower_expr(function)] + args,
        )

    def _chain_receiver(self, node: TsNode) -> TsNode | None:
        """Left operand when `node` extends a chain, e.g. `a.b()` or `a + b`."""
        kind = node.type
        if kind in ("field_expression", "binary_expression"):
            return node.child_by_field_name("value" if kind == "field_expression" else "left")
        if kind == "call_expression":
            method = node.child_by_field_name("function")
            if method is not None and method.type == "generic_function":
                method = method.child_by_field_name("function")
            if method is not None and method.type == "field_expression":
                return method.child_by_field_name("value")
            return None
        if kind in ("try_expression", "await_expression"):
            inner = [c for c in self._named(node) if c.type in EXPRESSION_KINDS]
            return inner[0] if len(inner) == 1 else None
        return None

    def _lower_chain(self, node: TsNode) -> Expr:
        # Iterative so method chains cannot exhaust the recursion limit
        links: list[TsNode] = []
        receiver: TsNode | None = node
        while receiver is not None:
            links.append(receiver)
            receiver = self._chain_receiver(receiver)
        expr = self.lower_expr(links.pop())
        for link in reversed(links):
            expr = self._lower_link(link, expr)
        return expr

    def _lower_link(self, node: TsNode, receiver: Expr) -> Expr:
        kind = node.type
        span = self.span(node)
        if kind == "binary_expression":
            return Expr(
                span=span,
                kind=ExprKind.BINARY,
                op=self._field_text(node, "operator"),
                children=[receiver, self.lower_expr(node.child_by_field_name("right"))],
            )
        if kind == "field_expression":
            field = node.child_by_field_name("field")
            if field is not None and field.type == "integer_literal":
                return Expr(span=span, kind=ExprKind.TUP_FIELD, lit=self.text(field), children=[receiver])
            return Expr(
                span=span,
                kind=ExprKind.FIELD,
                ident=self.text(field) if field is not None else None,
                children=[receiver],
            )
        if kind == "call_expression":
            method = node.child_by_field_name("function")
            if method.type == "generic_function":
                method = method.child_by_field_name("function")
            arguments = node.child_by_field_name("arguments")
            args = self._lower_exprs(self._named(arguments)) if arguments is not None else []
            return Expr(
                span=span,
                kind=ExprKind.METHOD_CALL,
                ident=self._field_text(method, "field"),
                children=[receiver] + args,
            )
        expr_kind = ExprKind.TRY if kind == "try_expression" else ExprKind.AWAIT
        return Expr(span=span, kind=expr_kind, children=[receiver])

    def _lower_condition(self, node: TsNode) -> Expr:
        if node.type == "let_condition":
            return Expr(
                span=self.span(node),
                kind=ExprKind.LET,
                children=[
                    self.lower_pat(node.child_by_field_name("pattern")),
                    self.lower_expr(node.child_by_field_name("value")),
                ],
            )
        if node.type == "let_chain":
            parts = [self._lower_condition(c) for c in self._named(node)]
            result = parts[0]
            for part in parts[1:]:
                result = Expr(
                    span=result.span.to(part.span),
                    kind=ExprKind.BINARY,
                    op="&&",
                    children=[result, part],
                )
            return result
        return self.lower_expr(node)

    def _lower_if(self, node: TsNode) -> Expr:
        children: list[Node] = [
            self._lower_condition(node.child_by_field_name("condition")),
            self.lower_block(node.child_by_field_name("consequence")),
        ]
        alternative = node.child_by_field_name("alternative")
        if alternative is not None:
            branch = next(iter(self._named(alternative)), None)
            if branch is not None:
                children.append(self.lower_expr(branch))
        return Expr(span=self.span(node), kind=ExprKind.IF, children=children)

    def _lower_match(self, node: TsNode) -> Expr:
        children: list[Node] = [self.lower_expr(node.child_by_field_name("value"))]
        body = node.child_by_field_name("body")
        for arm in self._named(body) if body is not None else []:
            if arm.type != "match_arm":
                continue
            parts: list[Node] = []
            has_guard = False
            pattern = arm.child_by_field_name("pattern")
            if pattern is not None:
                condition = pattern.child_by_field_name("condition")
                pats = [c for c in self._pattern_children(pattern) if c != condition]
                if pats:
                    parts.append(self.lower_pat(pats[0]))
                else:
                    parts.append(Pat(span=self.span(pattern), kind=PatKind.WILD))
                if condition is not None:
                    parts.append(self._lower_condition(condition))
                    has_guard = True
            value = arm.child_by_field_name("value")
            if value is not None:
                parts.append(self.lower_expr(value))
            children.append(Arm(span=self.span(arm), children=parts, has_guard=has_guard))
        return Expr(span=self.span(node), kind=ExprKind.MATCH, children=children)

    def _lower_closure(self, node: TsNode) -> Expr:
        children: list[Node] = []
        params = node.child_by_field_name("parameters")
        for param in self._named(params) if params is not None else []:
            if param.type == "parameter":
                parts: list[Node] = []
                pattern = param.child_by_field_name("pattern")
                if pattern is not None:
                    parts.append(self.lower_pat(pattern))
                ty = param.child_by_field_name("type")
                if ty is not None:
                    parts.append(self.lower_ty(ty))
                children.append(Param(span=self.span(param), children=parts))
            else:
                children.append(Param(span=self.span(param), children=[self.lower_pat(param)]))
        ret = node.child_by_field_name("return_type")
        if ret is not None:
            children.append(self.lower_ty(ret))
        body = node.child_by_field_name("body")
        if body is not None and body.type in EXPRESSION_KINDS:
            children.append(self.lower_expr(body))
        return Expr(span=self.span(node), kind=ExprKind.CLOSURE, children=children)

    def _lower_struct_expr(self, node: TsNode) -> Expr:
        children: list[Node] = []
        name = node.child_by_field_name("name")
        if name is not None:
            children.append(self.lower_path(name))
        body = node.child_by_field_name("body")
        for field in self._named(body) if body is not None else []:
            if field.type == "shorthand_field_initializer":
                ident_node = next(iter(self._named(field)), field)
                ident = self.text(ident_node)
                children.append(
                    FieldInit(
                        span=self.span(field),
                        ident=ident,
                        children=[self.lower_expr(ident_node)],
                    )
                )
            elif field.type == "field_initializer":
                value = field.child_by_field_name("value")
                children.append(
                    FieldInit(
                        span=self.span(field),
                        ident=self._field_text(field, "field") or "",
                        children=[self.lower_expr(value)] if value is not None else [],
                    )
                )
            elif field.type == "base_field_initializer":
                children.extend(self._lower_exprs(self._named(field)))
        return Expr(span=self.span(node), kind=ExprKind.STRUCT, children=children)

    # -- patterns ------------------------------------------------------

    def lower_pat(self, node: TsNode) -> Pat:
        kind = node.type
        span = self.span(node)
        named = [c for c in self._pattern_children(node) if c.type != "remaining_field_pattern"]

        if kind in ("identifier", "self"):
            return Pat(span=span, kind=PatKind.IDENT, ident=self.text(node))
        if kind == "_":
            return Pat(span=span, kind=PatKind.WILD)
        if kind in ("mut_pattern", "ref_pattern"):
            inner = [c for c in named if c.type != "mutable_specifier"]
            pat = self.lower_pat(inner[0]) if inner else Pat(span=span, kind=PatKind.WILD)
            if kind == "mut_pattern" or self._has_child(node, "mutable_specifier"):
                pat.mutable = True
            if kind == "ref_pattern":
                pat.by_ref = True
            pat.span = span
            return pat
        if kind == "captured_pattern":
            ident = named[0] if named else None
            return Pat(
                span=span,
                kind=PatKind.IDENT,
                ident=self.text(ident) if ident is not None else None,
                children=[self.lower_pat(c) for c in named[1:]],
            )
        if kind == "tuple_pattern":
            return Pat(span=span, kind=PatKind.TUPLE, children=[self.lower_pat(c) for c in named])
        if kind == "tuple_struct_pattern":
            type_node = node.child_by_field_name("type")
            children: list[Node] = [self.lower_path(type_node)] if type_node is not None else []
            children.extend(self.lower_pat(c) for c in named if c != type_node)
            return Pat(span=span, kind=PatKind.ENUM, children=children)
        if kind == "struct_pattern":
            return self._lower_struct_pat(node)
        if kind == "reference_pattern":
            inner = [c for c in named if c.type != "mutable_specifier"]
            return Pat(
                span=span,
                kind=PatKind.REF,
                mutable=self._has_child(node, "mutable_specifier"),
                children=[self.lower_pat(c) for c in inner],
            )
        if kind == "slice_pattern":
            return Pat(span=span, kind=PatKind.SLICE, children=[self.lower_pat(c) for c in named])
        if kind == "or_pattern":
            return Pat(span=span, kind=PatKind.OR, children=[self.lower_pat(c) for c in named])
        if kind == "range_pattern":
            return Pat(span=span, kind=PatKind.RANGE, children=[self.lower_expr(c) for c in named])
        if kind in PATTERN_LITERAL_KINDS:
            return Pat(span=span, kind=PatKind.LIT, children=[self.lower_expr(node)])
        if kind in ("scoped_identifier", "generic_pattern"):
            return Pat(span=span, kind=PatKind.ENUM, children=[self.lower_path(node)])
        if kind == "macro_invocation":
            return Pat(span=span, kind=PatKind.MAC)

        logger.debug("Unsupported pattern %s at %s", kind, node.start_point)
        return Pat(span=span, kind=PatKind.WILD)

    def _lower_struct_pat(self, node: TsNode) -> Pat:
        type_node = node.child_by_field_name("type")
        children: list[Node] = [self.lower_path(type_node)] if type_node is not None else []
        fields: list[str] = []
        for field in self._named(node):
            if field.type != "field_pattern":
                continue
            name = self._field_text(field, "name") or ""
            pattern = field.child_by_field_name("pattern")
            if pattern is not None:
                sub = self.lower_pat(pattern)
            else:
                sub = Pat(
                    span=self.span(field),
                    kind=PatKind.IDENT,
                    ident=name,
                    by_ref=self._has_child(field, "ref"),
                    mutable=self._has_child(field, "mutable_specifier"),
                )
            fields.append(name)
            children.append(sub)
        return Pat(span=self.span(node), kind=PatKind.STRUCT, fields=tuple(fields), children=children)

    # -- types ---------------------------------------------------------

    def lower_ty(self, node: TsNode) -> Ty:
        kind = node.type
        span = self.span(node)

        if kind in (
            "type_identifier",
            "scoped_type_identifier",
            "primitive_type",
            "generic_type",
            "scoped_identifier",
            "identifier",
        ):
            return Ty(span=span, kind=TyKind.PATH, children=[self.lower_path(node)])
        if kind == "reference_type":
            inner = node.child_by_field_name("type")
            lifetime = next((c for c in node.named_children if c.type == "lifetime"), None)
            return Ty(
                span=span,
                kind=TyKind.RPTR,
                mutable=self._has_child(node, "mutable_specifier"),
                lifetime=self.text(lifetime) if lifetime is not None else None,
                children=[self.lower_ty(inner)] if inner is not None else [],
            )
        if kind == "pointer_type":
            inner = node.child_by_field_name("type")
            return Ty(
                span=span,
                kind=TyKind.PTR,
                mutable=self._has_child(node, "mutable_specifier"),
                children=[self.lower_ty(inner)] if inner is not None else [],
            )
        if kind in ("tuple_type", "unit_type"):
            return Ty(span=span, kind=TyKind.TUP, children=self._lower_types(self._named(node)))
        if kind == "array_type":
            element = node.child_by_field_name("element")
            length = node.child_by_field_name("length")
            children: list[Node] = [self.lower_ty(element)] if element is not None else []
            if length is None:
                return Ty(span=span, kind=TyKind.SLICE, children=children)
            children.append(self.lower_expr(length))
            return Ty(span=span, kind=TyKind.ARRAY, children=children)
        if kind == "function_type":
            children = []
            params = node.child_by_field_name("parameters")
            if params is not None:
                for param in self.lower_params(params):
                    children.extend(c for c in param.children if isinstance(c, Ty))
            ret = node.child_by_field_name("return_type")
            if ret is not None:
                children.append(self.lower_ty(ret))
            return Ty(span=span, kind=TyKind.BARE_FN, children=children)
        if kind == "never_type":
            return Ty(span=span, kind=TyKind.NEVER)
        if kind == "_":
            return Ty(span=span, kind=TyKind.INFER)
        if kind in ("dynamic_type", "abstract_type"):
            return Ty(
                span=span,
                kind=TyKind.TRAIT_OBJECT if kind == "dynamic_type" else TyKind.IMPL_TRAIT,
                children=self._lower_types(self._named(node)),
            )
        return Ty(span=span, kind=TyKind.OTHER, children=self._lower_types(self._named(node)))

    def _lower_types(self, nodes: list[TsNode]) -> list[Node]:
        types: list[Node] = []
        for node in nodes:
            if node.type in TYPE_KINDS:
                types.append(self.lower_ty(node))
            elif node.type in ("trait_bounds", "type_binding"):
                types.extend(self._lower_types(self._named(node)))
        return types

    # -- paths ---------------------------------------------------------

    def lower_path(self, node: TsNode) -> Path:
        segments: list[str] = []
        args: list[Node] = []
        is_global = self._collect_path(node, segments, args)
        return Path(
            span=self.span(node),
            segments=tuple(segments),
            is_global=is_global,
            children=args,
        )

    def _collect_path(self, node: TsNode, segments: list[str], args: list[Node]) -> bool:
        """Append the segments of a path node; return True for `::`-rooted paths."""
        kind = node.type
        if kind in ("scoped_identifier", "scoped_type_identifier"):
            prefix = node.child_by_field_name("path")
            name = node.child_by_field_name("name")
            if prefix is None:
                is_global = self.text(node).startswith("::")
            else:
                is_global = self._collect_path(prefix, segments, args)
            if name is not None:
                segments.append(self.text(name))
            return is_global
        if kind in ("generic_type", "generic_function", "generic_type_with_turbofish"):
            inner = node.child_by_field_name("type") or node.child_by_field_name("function")
            is_global = self._collect_path(inner, segments, args) if inner is not None else False
            type_args = node.child_by_field_name("type_arguments")
            if type_args is not None:
                args.extend(self._lower_types(self._named(type_args)))
            return is_global
        segments.append(self.text(node))
        return False
