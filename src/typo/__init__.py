"""typo - tags, node-span and type tables for Rust crates."""

__version__ = "0.1.0"
