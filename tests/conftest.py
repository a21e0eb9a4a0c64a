"""Shared fixtures: source trees on disk, fake history, throwaway git repos."""

import os
import shutil
import subprocess
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict

import pytest

from fossil.errors import HistoryTimeout, HistoryUnavailable
from fossil.signals import Attribution

SCAN_TIME = datetime(2024, 6, 1, 12, 0, 0, tzinfo=timezone.utc)

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git is not installed")


def attribution(author: str, days_ago: int, sha: str = "abcdef1234567", email: str = None) -> Attribution:
    return Attribution(
        author=author,
        author_email=email or f"{author.split('@')[0].lower()}@example.com",
        revision_id=sha[:7],
        commit_time=SCAN_TIME - timedelta(days=days_ago),
    )


class FakeProvider:
    """History provider backed by a dict of ``relpath -> {line: Attribution}``.

    Paths missing from the dict are reported as unavailable; paths listed in
    ``slow`` raise a timeout.
    """

    def __init__(self, root, tables: Dict[str, Dict[int, Attribution]] = None, slow=()):
        self.root = os.path.realpath(str(root))
        self.tables = tables or {}
        self.slow = set(slow)
        self.calls = []

    def blame(self, path):
        rel = os.path.relpath(os.path.realpath(path), self.root).replace(os.sep, "/")
        self.calls.append(rel)
        if rel in self.slow:
            raise HistoryTimeout("blame took too long")
        if rel not in self.tables:
            raise HistoryUnavailable(f"{rel} is untracked")
        return self.tables[rel]


@pytest.fixture
def scan_time():
    return SCAN_TIME


@pytest.fixture
def write_tree(tmp_path):
    """Write ``{relpath: text}`` below tmp_path and return the root."""

    def _write(files: Dict[str, str], root: Path = None) -> Path:
        root = root or tmp_path
        for rel, text in files.items():
            path = root / rel
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(text, encoding="utf-8")
        return root

    return _write


def git(repo: Path, *args: str, date: str = None) -> str:
    env = dict(os.environ)
    if date:
        env["GIT_AUTHOR_DATE"] = date
        env["GIT_COMMITTER_DATE"] = date
    res = subprocess.run(
        [
            "git",
            "-c", "user.name=John",
            "-c", "user.email=john@example.com",
            "-c", "commit.gpgsign=false",
            "-c", "init.defaultBranch=main",
            *args,
        ],
        cwd=str(repo),
        env=env,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
        check=True,
    )
    return res.stdout


@pytest.fixture
def git_repo(tmp_path, monkeypatch):
    """An empty git repository that discovery cannot escape from."""
    monkeypatch.setenv("GIT_CEILING_DIRECTORIES", str(tmp_path.parent))
    repo = tmp_path / "repo"
    repo.mkdir()
    git(repo, "init", "-q")
    return repo


@pytest.fixture
def no_repo(tmp_path, monkeypatch):
    """A plain directory that git discovery will not attach to a parent repo."""
    monkeypatch.setenv("GIT_CEILING_DIRECTORIES", str(tmp_path.parent))
    root = tmp_path / "plain"
    root.mkdir()
    return root
