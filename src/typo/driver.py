"""Orchestrates the front end phases and the indexer passes for one run."""

from collections.abc import Callable
from contextlib import ExitStack
from pathlib import Path
from typing import TextIO

from .config import Config
from .frontend import Options, Session, resolve_input
from .indexer import (
    collect_defs,
    collect_macros,
    collect_node_spans,
    project_types,
    write_header,
    write_node_id_map,
    write_tags,
    write_type_map,
)
from .logging import get_logger
from .models import IndexRequest

logger = get_logger("driver")


class OutputError(Exception):
    """An output destination could not be created or written."""

    pass


def _open(stack: ExitStack, path: Path, mode: str) -> TextIO:
    try:
        return stack.enter_context(open(path, mode, encoding="utf-8", newline="\n"))
    except OSError as e:
        raise OutputError(f"couldn't open {path}: {e.strerror or e}") from e


def _write_all(outputs: list[tuple[Path, TextIO]], write: Callable[[TextIO], int]) -> int:
    """Run one writer against every destination; return lines per destination."""
    written = 0
    for path, out in outputs:
        try:
            written = write(out)
            out.flush()
        except OSError as e:
            raise OutputError(f"couldn't write {path}: {e.strerror or e}") from e
    return written


def build_options(request: IndexRequest, config: Config) -> Options:
    """Merge command line options over the configured front end settings."""
    sysroot = request.sysroot
    if sysroot is None and config.frontend.sysroot:
        sysroot = Path(config.frontend.sysroot)
    return Options(
        cfg=list(config.frontend.cfg) + list(request.cfg),
        search_paths=[Path(p) for p in config.frontend.search_paths] + list(request.search_paths),
        sysroot=sysroot,
    )


def run(request: IndexRequest, config: Config, stdin: TextIO | None = None) -> dict[str, int]:
    """
    Index one crate into every requested destination.

    Front end errors surface before any destination is touched.

    Args:
        request: Validated invocation
        config: Loaded configuration
        stdin: Stream read when the input is `-` (default: sys.stdin)

    Returns:
        Counts of collected entries and written lines

    Raises:
        FrontEndError: If the crate cannot be parsed, loaded or expanded
        OutputError: If a destination cannot be opened or written
    """
    session = Session(build_options(request, config), resolve_input(request.input, stdin))
    append = request.tags_append or config.tags.append
    stats: dict[str, int] = {}

    krate = session.parse()
    # Expansion consumes macro definitions, so collect them first
    macros = collect_macros(krate) if request.tags else []
    crate_name = session.crate_name(krate)
    expanded = session.expand_and_assign_ids(krate, crate_name)
    logger.info("Expanded crate `%s` (%d source files)", crate_name, len(session.source_map.files))

    with ExitStack() as stack:
        if request.tags:
            defs = collect_defs(expanded, session.source_map)
            mode = "a" if append else "w"
            outputs = [(p, _open(stack, p, mode)) for p in request.tags]
            if not append:
                _write_all(outputs, lambda out: write_header(out, config.tags.program_name))
            stats["macros"] = len(macros)
            stats["definitions"] = len(defs)
            stats["tag_lines"] = _write_all(
                outputs,
                lambda out: write_tags(out, session.source_map, macros)
                + write_tags(out, session.source_map, defs),
            )
            logger.info(
                "Wrote %d tag lines (%d macros, %d definitions) to %d file(s)",
                stats["tag_lines"],
                len(macros),
                len(defs),
                len(outputs),
            )

        if request.node_id_map:
            spans = collect_node_spans(expanded)
            outputs = [(p, _open(stack, p, "w")) for p in request.node_id_map]
            stats["node_spans"] = _write_all(
                outputs, lambda out: write_node_id_map(out, session.source_map, spans)
            )
            logger.info("Wrote %d node spans to %d file(s)", stats["node_spans"], len(outputs))

        if request.type_map:
            table = session.infer_types(expanded)
            entries = project_types(table)
            outputs = [(p, _open(stack, p, "w")) for p in request.type_map]
            stats["types"] = _write_all(outputs, lambda out: write_type_map(out, entries))
            logger.info("Wrote %d types to %d file(s)", stats["types"], len(outputs))

    return stats
