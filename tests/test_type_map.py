"""Tests for type inference and the type table writer."""

import io

import pytest

from typo.frontend.typeck import (
    BOOL,
    NEVER,
    STATIC_STR,
    UNIT,
    Ty,
    TypeTable,
    adt,
    literal_type,
    prim,
    ty_to_string,
)
from typo.indexer.type_map import TypeEntry, project_types, write_type_map
from typo.syntax.ast import Path


def node_spans(crate) -> dict:
    spans = {}
    stack = [crate]
    while stack:
        node = stack.pop()
        if not isinstance(node, Path):
            spans[node.node_id] = node.span
        stack.extend(node.children)
    return spans


@pytest.fixture
def infer(expand_source):
    """Infer types for Rust text; return a set of (snippet, type) pairs."""

    def run(text: str) -> set[tuple[str, str]]:
        session, expanded = expand_source(text)
        table = session.infer_types(expanded)
        spans = node_spans(expanded)
        return {
            (session.source_map.span_to_snippet(spans[node_id]), ty_to_string(ty))
            for node_id, ty in table.items()
        }

    return run


class TestTyToString:
    """Tests for type rendering."""

    def test_primitives_and_nominal_types(self):
        """Should print names and generic arguments."""
        assert ty_to_string(prim("i32")) == "i32"
        assert ty_to_string(adt("Vec", prim("u8"))) == "Vec<u8>"
        assert ty_to_string(adt("HashMap", adt("String"), prim("u64"))) == "HashMap<String, u64>"

    def test_references_and_pointers(self):
        """Should print lifetimes, mutability and pointer kinds."""
        assert ty_to_string(STATIC_STR) == "&'static str"
        assert ty_to_string(Ty("ref", args=(prim("i32"),), mutable=True)) == "&mut i32"
        assert ty_to_string(Ty("ptr", args=(prim("u8"),))) == "*const u8"
        assert ty_to_string(Ty("ptr", args=(prim("u8"),), mutable=True)) == "*mut u8"

    def test_tuples(self):
        """Should print unit, one-tuples and wider tuples."""
        assert ty_to_string(UNIT) == "()"
        assert ty_to_string(Ty("tuple", args=(prim("i32"),))) == "(i32,)"
        assert ty_to_string(Ty("tuple", args=(prim("i32"), BOOL))) == "(i32, bool)"

    def test_arrays_slices_never(self):
        """Should print arrays with their length, slices and `!`."""
        assert ty_to_string(Ty("array", args=(prim("i32"),), length="3")) == "[i32; 3]"
        assert ty_to_string(Ty("slice", args=(prim("u8"),))) == "[u8]"
        assert ty_to_string(NEVER) == "!"


class TestLiteralType:
    """Tests for literal typing."""

    def test_defaults(self):
        """Should fall back to i32 and f64."""
        assert literal_type("5") == prim("i32")
        assert literal_type("1.5") == prim("f64")
        assert literal_type("1e3") == prim("f64")

    def test_suffixes(self):
        """Should honour explicit suffixes."""
        assert literal_type("5u8") == prim("u8")
        assert literal_type("1_000usize") == prim("usize")
        assert literal_type("2.0f32") == prim("f32")
        assert literal_type("0xffu8") == prim("u8")

    def test_radix_literals_are_integers(self):
        """Should not read hex digits as an exponent."""
        assert literal_type("0x1e") == prim("i32")

    def test_expected_type(self):
        """Should adopt the expected numeric type for unsuffixed literals."""
        assert literal_type("5", prim("u64")) == prim("u64")
        assert literal_type("5.0", prim("f32")) == prim("f32")
        assert literal_type("5", BOOL) == prim("i32")

    def test_other_literals(self):
        """Should type bools, chars, bytes and strings."""
        assert literal_type("true") == BOOL
        assert literal_type("'a'") == prim("char")
        assert literal_type("b'a'") == prim("u8")
        assert literal_type('"hi"') == STATIC_STR
        assert literal_type('r#"hi"#') == STATIC_STR


class TestInference:
    """Tests for inference over parsed crates."""

    def test_annotated_local(self, infer):
        """Should give the annotation to the binding and the initializer."""
        types = infer("let x: u8 = 1;")
        assert ("x", "u8") in types
        assert ("1", "u8") in types

    def test_fn_return_type_flows_into_tail(self, infer):
        """Should type the tail expression with the declared return type."""
        assert ("5", "i32") in infer("fn f() -> i32 { 5 }")

    def test_struct_literal(self, infer):
        """Should type struct literals and their fields."""
        types = infer("struct P { x: i64 }\nfn f() { let p = P { x: 1 }; }\n")
        assert ("P { x: 1 }", "P") in types
        assert ("1", "i64") in types
        assert ("p", "P") in types

    def test_self_struct_literal(self, infer, sample_rust_source):
        """Should resolve `Self` inside an impl."""
        assert ("Self { authority, stake }", "StakeAccount") in infer(sample_rust_source)

    def test_array(self, infer):
        """Should type array literals with their length."""
        assert ("[1, 2, 3]", "[i32; 3]") in infer("let a = [1, 2, 3];")

    def test_reference(self, infer):
        """Should type borrows of known locals."""
        assert ("&v", "&i32") in infer("let v = 1;\nlet r = &v;\n")

    def test_string_literal(self, infer):
        """Should type string literals as static str references."""
        assert ('"hi"', "&'static str") in infer('let s = "hi";')

    def test_comparison(self, infer):
        """Should type comparisons as bool."""
        assert ("1 < 2", "bool") in infer("let b = 1 < 2;")

    def test_tuple(self, infer):
        """Should type tuple literals element-wise."""
        assert ("(1, 2.0)", "(i32, f64)") in infer("let t = (1, 2.0);")

    def test_range(self, infer):
        """Should type ranges as std::ops::Range."""
        assert ("0..10", "std::ops::Range<i32>") in infer("let r = 0..10;")

    def test_call_to_crate_fn(self, infer):
        """Should type calls with the callee's declared return type."""
        types = infer("fn g() -> u64 { 1 }\nfn f() { let y = g(); }\n")
        assert ("g()", "u64") in types
        assert ("y", "u64") in types

    def test_method_call(self, infer):
        """Should type calls to methods declared in the crate."""
        source = "struct S;\nimpl S {\n    fn get(&self) -> u16 { 7 }\n}\nfn f(s: S) { let n = s.get(); }\n"
        types = infer(source)
        assert ("s.get()", "u16") in types
        assert ("n", "u16") in types

    def test_unknown_expressions_are_left_out(self, infer):
        """Should omit expressions it cannot type."""
        types = infer("fn f() { let z = unknown(); }\n")
        assert not any(snippet == "unknown()" for snippet, _ in types)

    def test_mismatch_does_not_fail(self, expand_source):
        """Should record mismatches without raising."""
        session, expanded = expand_source("let x: u8 = true;")
        table = session.infer_types(expanded)
        assert len(table.mismatches) == 1
        assert ty_to_string(table.mismatches[0].expected) == "u8"


class TestTypeTable:
    """Tests for TypeTable and its projection."""

    def test_read_only(self):
        """Should not support item assignment."""
        table = TypeTable({1: BOOL})
        with pytest.raises(TypeError):
            table[2] = BOOL  # type: ignore[index]
        assert dict(table) == {1: BOOL}

    def test_project_and_write(self):
        """Should render one `id<TAB>type` line per typed node."""
        table = TypeTable({7: prim("i32"), 9: STATIC_STR})
        entries = project_types(table)
        assert entries == [TypeEntry(7, "i32"), TypeEntry(9, "&'static str")]

        out = io.StringIO()
        assert write_type_map(out, entries) == 2
        assert out.getvalue() == "7\ti32\n9\t&'static str\n"

    def test_end_to_end(self, expand_source):
        """Should write the literal of `let x = 5;` as i32."""
        session, expanded = expand_source("let x = 5;")
        out = io.StringIO()
        write_type_map(out, project_types(session.infer_types(expanded)))
        assert "4\ti32\n" in out.getvalue()
        assert "3\ti32\n" in out.getvalue()
