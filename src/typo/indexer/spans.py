"""Span to file/line resolution shared by all writers."""

from dataclasses import dataclass

from ..syntax.codemap import SourceMap, Span


@dataclass(frozen=True)
class SpanLocation:
    """Where a span starts.

    `begin` and `end` are byte offsets relative to the owning file; `line`
    is 0-based; `text` is None when the line text is unavailable.
    """

    file_name: str
    line: int
    begin: int
    end: int
    text: str | None


def resolve_span(source_map: SourceMap, span: Span) -> SpanLocation | None:
    """Resolve where a span starts.

    Args:
        source_map: Files the span may point into
        span: Global byte range

    Returns:
        File, file-relative offsets and line, or None when the span
        belongs to no file
    """
    found = source_map.lookup_byte_offset(span.lo)
    if found is None:
        return None
    source_file, begin = found
    line = source_file.lookup_line(begin)
    end = min(span.hi, source_file.end_pos) - source_file.start_pos
    return SpanLocation(
        file_name=source_file.name,
        line=line,
        begin=begin,
        end=max(end, begin),
        text=source_file.get_line(line),
    )
