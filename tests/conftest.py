"""Pytest configuration and fixtures for typo tests."""

import logging
from pathlib import Path

import pytest

from typo.frontend import InlineText, NamedFile, Options, Session


@pytest.fixture(autouse=True)
def isolated_cwd(tmp_path: Path, monkeypatch):
    """Run every test from an empty directory so no stray .typo.yaml is read."""
    work_dir = tmp_path / "work"
    work_dir.mkdir()
    monkeypatch.chdir(work_dir)
    for var in ("TYPO_SYSROOT", "TYPO_CFG", "TYPO_PROGRAM_NAME", "TYPO_LOG_LEVEL"):
        monkeypatch.delenv(var, raising=False)
    yield work_dir
    # The CLI binds a handler to the runner's stderr, which is closed by now
    logging.getLogger("typo").handlers.clear()


@pytest.fixture
def crate_dir(tmp_path: Path) -> Path:
    """Create an isolated crate directory for testing."""
    crate = tmp_path / "crate"
    crate.mkdir(parents=True)
    return crate


@pytest.fixture
def write_crate(crate_dir: Path):
    """Write a set of files into the crate directory; return the directory."""

    def write(files: dict[str, str]) -> Path:
        for name, content in files.items():
            path = crate_dir / name
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")
        return crate_dir

    return write


@pytest.fixture
def parse_source():
    """Parse Rust text as if read from stdin; return (session, crate)."""

    def parse(text: str, cfg: list[str] | None = None):
        session = Session(Options(cfg=cfg or []), InlineText(text))
        return session, session.parse()

    return parse


@pytest.fixture
def expand_source(parse_source):
    """Parse and expand Rust text; return (session, expanded crate)."""

    def expand(text: str, cfg: list[str] | None = None):
        session, krate = parse_source(text, cfg)
        return session, session.expand_and_assign_ids(krate, session.crate_name(krate))

    return expand


@pytest.fixture
def open_crate():
    """Session over a crate root on disk."""

    def open_(path: Path, cfg: list[str] | None = None) -> Session:
        return Session(Options(cfg=cfg or []), NamedFile(path))

    return open_


@pytest.fixture
def sample_rust_source() -> str:
    """A small crate touching most definition kinds."""
    return '''//! Sample crate for testing.

macro_rules! square {
    ($x:expr) => { $x * $x };
}

/// The number of lamports per SOL.
pub const LAMPORTS_PER_SOL: u64 = 1_000_000_000;

pub struct StakeAccount {
    pub authority: u64,
    pub stake: u64,
}

pub struct Pair(i32, i32);

pub enum State {
    Uninitialized,
    Active { since: u64 },
    Closed(u64),
}

pub trait Stake {
    type Unit;
    fn stake(&self) -> u64;
    fn doubled(&self) -> u64 {
        self.stake() * 2
    }
}

impl StakeAccount {
    pub fn new(authority: u64, stake: u64) -> Self {
        Self { authority, stake }
    }
}

use std::collections::HashMap as Map;
use std::fmt::Debug;

extern "C" {
    fn abs(x: i32) -> i32;
}

fn main() {
    let total = square!(3);
}
'''
