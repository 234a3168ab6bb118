"""CLI for typo.

Indexes one Rust crate (a file, or `-` for stdin) into any of:
- a ctags file (--tags)
- a node id to source span table (--node-id-map)
- a node id to inferred type table (--type-map)
"""

import sys
from pathlib import Path

import click
from pydantic import ValidationError

from .config import ConfigError, load_config
from .driver import OutputError, run
from .frontend import FrontEndError
from .logging import get_logger, level_from_verbosity, setup_logging
from .models import IndexRequest

logger = get_logger("cli")


def _validation_message(error: ValidationError) -> str:
    messages = []
    for item in error.errors():
        message = item["msg"].removeprefix("Value error, ")
        messages.append(message)
    return "; ".join(messages)


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.argument("inputs", nargs=-1, metavar="INPUT")
@click.option("--cfg", multiple=True, metavar="SPEC", help="Configure the compilation environment")
@click.option(
    "-L",
    "search_paths",
    multiple=True,
    type=click.Path(path_type=Path),
    metavar="PATH",
    help="Add a directory to the library search path",
)
@click.option("--sysroot", type=click.Path(path_type=Path), help="Override the system root")
@click.option(
    "--tags",
    multiple=True,
    type=click.Path(path_type=Path, dir_okay=False),
    help="Output path of ctags (repeatable)",
)
@click.option("--tags-append", is_flag=True, help="Append to existing tags, without header")
@click.option(
    "--node-id-map",
    multiple=True,
    type=click.Path(path_type=Path, dir_okay=False),
    help="Output path of the node id to span table (repeatable)",
)
@click.option(
    "--type-map",
    multiple=True,
    type=click.Path(path_type=Path, dir_okay=False),
    help="Output path of the node id to type table (repeatable)",
)
@click.option(
    "--config",
    "config_path",
    type=click.Path(path_type=Path, dir_okay=False),
    help="Config file (default: ./.typo.yaml)",
)
@click.option("-v", "--verbose", count=True, help="More diagnostics (-vv for debug)")
@click.option("--log-json", is_flag=True, help="Emit diagnostics as JSON lines")
def main(
    inputs: tuple[str, ...],
    cfg: tuple[str, ...],
    search_paths: tuple[Path, ...],
    sysroot: Path | None,
    tags: tuple[Path, ...],
    tags_append: bool,
    node_id_map: tuple[Path, ...],
    type_map: tuple[Path, ...],
    config_path: Path | None,
    verbose: int,
    log_json: bool,
):
    """typo - index a Rust crate into tags, node spans and types."""
    try:
        config = load_config(config_path)
    except ConfigError as e:
        click.echo(f"error: invalid configuration: {e}", err=True)
        sys.exit(1)

    setup_logging(
        level_from_verbosity(verbose, config.logging.level),
        json_format=log_json or config.logging.json,
    )

    try:
        request = IndexRequest(
            inputs=list(inputs),
            cfg=list(cfg),
            search_paths=list(search_paths),
            sysroot=sysroot,
            tags=list(tags),
            tags_append=tags_append,
            node_id_map=list(node_id_map),
            type_map=list(type_map),
        )
    except ValidationError as e:
        raise click.UsageError(_validation_message(e)) from e

    if not request.wants_output:
        logger.info("No output requested; only checking that the crate parses")

    try:
        stats = run(request, config)
    except (FrontEndError, OutputError) as e:
        click.echo(f"error: {e}", err=True)
        sys.exit(1)

    logger.info("Done: %s", ", ".join(f"{k}={v}" for k, v in stats.items()) or "nothing written")


if __name__ == "__main__":
    main()
