"""Source files and byte positions.

Every file loaded for a crate is registered in one `SourceMap`. Files are
laid out back to back in a single global position space (with a one byte
gap between them), so a `Span` is just a pair of global positions and the
owning file can always be recovered from the position alone.
"""

from bisect import bisect_right
from dataclasses import dataclass, field


@dataclass(frozen=True)
class Span:
    """Half-open range `[lo, hi)` of global byte positions."""

    lo: int
    hi: int

    def to(self, other: "Span") -> "Span":
        """Span covering from the start of self to the end of other."""
        return Span(min(self.lo, other.lo), max(self.hi, other.hi))


@dataclass(eq=False)
class SourceFile:
    """A file registered in the source map."""

    name: str
    src: bytes | None
    start_pos: int
    length: int
    line_starts: list[int] = field(default_factory=list)

    @property
    def end_pos(self) -> int:
        return self.start_pos + self.length

    @property
    def span(self) -> Span:
        """Span covering the whole file."""
        return Span(self.start_pos, self.end_pos)

    def contains(self, pos: int) -> bool:
        return self.start_pos <= pos <= self.end_pos

    def lookup_line(self, offset: int) -> int:
        """0-based line containing a file-relative byte offset."""
        return max(bisect_right(self.line_starts, offset) - 1, 0)

    def get_line(self, line: int) -> str | None:
        """Text of a 0-based line without its terminator.

        Returns None when the file has no retained source or the line does
        not exist.
        """
        if self.src is None or line < 0 or line >= len(self.line_starts):
            return None
        begin = self.line_starts[line]
        end = self.src.find(b"\n", begin)
        if end < 0:
            end = len(self.src)
        text = self.src[begin:end].decode("utf-8", errors="replace")
        return text.removesuffix("\r")


class SourceMap:
    """Registry of every source file that makes up one crate."""

    def __init__(self):
        self.files: list[SourceFile] = []
        self._starts: list[int] = []

    def add_file(self, name: str, src: str | bytes | None) -> SourceFile:
        """Register a file.

        Pass `src=None` for files whose text is not retained; spans into
        them still resolve to a file and line, but never to line text.
        """
        if isinstance(src, str):
            src = src.encode("utf-8")

        start_pos = self.files[-1].end_pos + 1 if self.files else 0
        length = len(src) if src is not None else 0
        line_starts = [0]
        if src is not None:
            line_starts.extend(i + 1 for i, b in enumerate(src) if b == 0x0A)
            # A trailing newline does not open a new line
            if len(line_starts) > 1 and line_starts[-1] == length:
                line_starts.pop()

        source_file = SourceFile(
            name=name,
            src=src,
            start_pos=start_pos,
            length=length,
            line_starts=line_starts,
        )
        self.files.append(source_file)
        self._starts.append(start_pos)
        return source_file

    def lookup_file(self, pos: int) -> SourceFile | None:
        """File owning a global position, or None."""
        idx = bisect_right(self._starts, pos) - 1
        if idx < 0:
            return None
        source_file = self.files[idx]
        if not source_file.contains(pos):
            return None
        return source_file

    def lookup_byte_offset(self, pos: int) -> tuple[SourceFile, int] | None:
        """Owning file and file-relative offset of a global position."""
        source_file = self.lookup_file(pos)
        if source_file is None:
            return None
        return source_file, pos - source_file.start_pos

    def span_to_snippet(self, span: Span) -> str | None:
        """Source text covered by a span, if it lies within one file."""
        found = self.lookup_byte_offset(span.lo)
        if found is None:
            return None
        source_file, lo = found
        if source_file.src is None or not source_file.contains(span.hi):
            return None
        hi = span.hi - source_file.start_pos
        return source_file.src[lo:hi].decode("utf-8", errors="replace")
