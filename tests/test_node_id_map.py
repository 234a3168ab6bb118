"""Tests for the node-span table."""

import io

from typo.indexer.node_id_map import NodeSpanEntry, collect_node_spans, write_node_id_map
from typo.syntax.codemap import SourceMap, Span


def rows(session, entries) -> list[str]:
    out = io.StringIO()
    write_node_id_map(out, session.source_map, entries)
    return out.getvalue().splitlines()


class TestCollectNodeSpans:
    """Tests for collect_node_spans."""

    def test_let_binding(self, expand_source):
        """Should record the statement, the pattern and the initializer."""
        session, expanded = expand_source("let x = 5;")
        entries = collect_node_spans(expanded)
        assert rows(session, entries) == [
            "<stdin>\t0\t10\t1",
            "<stdin>\t4\t5\t3",
            "<stdin>\t8\t9\t4",
        ]

    def test_path_recorded_once_with_owner_id(self, expand_source):
        """Should record a path expression once, through its path."""
        session, expanded = expand_source("let y = x;")
        entries = collect_node_spans(expanded)
        spans = [(e.span.lo, e.span.hi) for e in entries]
        assert spans.count((8, 9)) == 1
        path_entry = next(e for e in entries if (e.span.lo, e.span.hi) == (8, 9))
        assert path_entry.node_id == 4

    def test_macro_statements_are_skipped(self, expand_source):
        """Should not record statements wrapping macro invocations."""
        _, expanded = expand_source('fn f() {\n    println!("hi");\n}\n')
        assert collect_node_spans(expanded) == []

    def test_macro_expression_is_recorded(self, expand_source):
        """Should record a macro used as an expression like any other expression."""
        session, expanded = expand_source('fn f() {\n    let s = format!("{}", 1);\n}\n')
        snippets = [session.source_map.span_to_snippet(e.span) for e in collect_node_spans(expanded)]
        assert 'format!("{}", 1)' in snippets

    def test_type_paths_are_recorded(self, expand_source):
        """Should record paths found inside types."""
        session, expanded = expand_source("fn f(a: Vec<u8>) {}\n")
        snippets = [session.source_map.span_to_snippet(e.span) for e in collect_node_spans(expanded)]
        assert snippets == ["a", "Vec<u8>", "u8"]

    def test_entries_in_preorder(self, expand_source):
        """Should emit entries in increasing node id order for a flat body."""
        _, expanded = expand_source("fn f() {\n    let a = 1;\n    let b = a + 2;\n}\n")
        ids = [e.node_id for e in collect_node_spans(expanded)]
        assert ids == sorted(ids)


class TestWriteNodeIdMap:
    """Tests for write_node_id_map."""

    def test_offsets_are_relative_to_each_file(self, write_crate, open_crate):
        """Should report offsets inside the file that owns the node."""
        root = write_crate({"main.rs": "mod m;\n", "m.rs": "pub const A: i32 = 1;\n"})
        session = open_crate(root / "main.rs")
        krate = session.parse()
        expanded = session.expand_and_assign_ids(krate, session.crate_name(krate))
        module = root / "m.rs"
        assert rows(session, collect_node_spans(expanded)) == [
            f"{module}\t13\t16\t3",
            f"{module}\t19\t20\t4",
        ]

    def test_skips_unresolvable_spans(self):
        """Should write nothing for spans outside every file."""
        source_map = SourceMap()
        source_map.add_file("lib.rs", "x")
        out = io.StringIO()
        written = write_node_id_map(
            out, source_map, [NodeSpanEntry(Span(0, 1), 1), NodeSpanEntry(Span(50, 51), 2)]
        )
        assert written == 1
        assert out.getvalue() == "lib.rs\t0\t1\t1\n"
