"""Tests for the source map and span resolution."""

from typo.indexer.spans import resolve_span
from typo.syntax.codemap import SourceMap, Span


class TestSourceMap:
    """Tests for SourceMap."""

    def test_files_are_laid_out_with_a_gap(self):
        """Should start each file one byte after the previous one ends."""
        source_map = SourceMap()
        first = source_map.add_file("a.rs", "fn a() {}\n")
        second = source_map.add_file("b.rs", "fn b() {}\n")
        assert first.start_pos == 0
        assert second.start_pos == first.end_pos + 1

    def test_lookup_file(self):
        """Should find the file owning a global position."""
        source_map = SourceMap()
        first = source_map.add_file("a.rs", "abc")
        second = source_map.add_file("b.rs", "def")
        assert source_map.lookup_file(1) is first
        assert source_map.lookup_file(second.start_pos + 2) is second

    def test_lookup_outside_any_file(self):
        """Should return None for positions beyond every file."""
        source_map = SourceMap()
        source_map.add_file("a.rs", "abc")
        assert source_map.lookup_file(100) is None
        assert source_map.lookup_byte_offset(100) is None

    def test_lookup_byte_offset_is_file_relative(self):
        """Should translate global positions to file offsets."""
        source_map = SourceMap()
        source_map.add_file("a.rs", "abc")
        second = source_map.add_file("b.rs", "def")
        source_file, offset = source_map.lookup_byte_offset(second.start_pos + 1)
        assert source_file is second
        assert offset == 1

    def test_span_to_snippet(self):
        """Should return the text covered by a span."""
        source_map = SourceMap()
        source_map.add_file("a.rs", "fn foo() {}")
        assert source_map.span_to_snippet(Span(3, 6)) == "foo"


class TestSourceFileLines:
    """Tests for line lookup."""

    def test_get_line_strips_terminators(self):
        """Should drop the trailing newline and carriage return."""
        source_map = SourceMap()
        source_file = source_map.add_file("a.rs", "first\r\nsecond\n")
        assert source_file.get_line(0) == "first"
        assert source_file.get_line(1) == "second"

    def test_trailing_newline_opens_no_line(self):
        """Should not count an empty line after the final newline."""
        source_map = SourceMap()
        source_file = source_map.add_file("a.rs", "one\ntwo\n")
        assert len(source_file.line_starts) == 2
        assert source_file.get_line(2) is None

    def test_lookup_line(self):
        """Should map offsets onto 0-based lines."""
        source_map = SourceMap()
        source_file = source_map.add_file("a.rs", "one\ntwo\nthree")
        assert source_file.lookup_line(0) == 0
        assert source_file.lookup_line(4) == 1
        assert source_file.lookup_line(9) == 2

    def test_file_without_source(self):
        """Should never return line text for files registered without source."""
        source_map = SourceMap()
        source_file = source_map.add_file("<synthesized>", None)
        assert source_file.get_line(0) is None


class TestResolveSpan:
    """Tests for resolve_span."""

    def test_resolves_file_line_and_text(self):
        """Should locate the declaration line of a span."""
        source_map = SourceMap()
        source_map.add_file("lib.rs", "// header\nfn foo() {}\n")
        location = resolve_span(source_map, Span(13, 16))
        assert location.file_name == "lib.rs"
        assert location.line == 1
        assert location.text == "fn foo() {}"
        assert (location.begin, location.end) == (13, 16)

    def test_offsets_are_relative_to_the_owning_file(self):
        """Should report begin and end inside the second file."""
        source_map = SourceMap()
        source_map.add_file("a.rs", "fn a() {}\n")
        second = source_map.add_file("b.rs", "fn b() {}\n")
        location = resolve_span(source_map, Span(second.start_pos + 3, second.start_pos + 4))
        assert location.file_name == "b.rs"
        assert (location.begin, location.end) == (3, 4)

    def test_unresolvable_span(self):
        """Should return None rather than raise."""
        source_map = SourceMap()
        source_map.add_file("a.rs", "abc")
        assert resolve_span(source_map, Span(500, 501)) is None

    def test_unavailable_text(self):
        """Should resolve the file but report no line text."""
        source_map = SourceMap()
        source_map.add_file("<synthesized>", None)
        location = resolve_span(source_map, Span(0, 0))
        assert location.file_name == "<synthesized>"
        assert location.text is None
