"""Rust front end: tree-sitter parsing, expansion, node ids and type inference."""

from .errors import (
    ExpansionError,
    FrontEndError,
    InputError,
    ModuleLoadError,
    ParseError,
)
from .session import InlineText, Input, NamedFile, Options, Session, resolve_input
from .typeck import Ty, TypeTable, ty_to_string

__all__ = [
    "ExpansionError",
    "FrontEndError",
    "InlineText",
    "Input",
    "InputError",
    "ModuleLoadError",
    "NamedFile",
    "Options",
    "ParseError",
    "Session",
    "Ty",
    "TypeTable",
    "resolve_input",
    "ty_to_string",
]
