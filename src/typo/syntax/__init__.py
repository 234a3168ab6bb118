"""Syntax tree, source map and traversal shared by the front end and indexers."""

from .codemap import SourceFile, SourceMap, Span
from .visit import Hooks, walk

__all__ = ["Hooks", "SourceFile", "SourceMap", "Span", "walk"]
