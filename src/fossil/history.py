"""Line attribution from version-control history.

A provider answers "who last touched each line of this file, and when" for
a whole file at once. ``BlameCache`` sits in front of it so every file is
asked about at most once per scan, no matter how many markers it holds.
"""
from __future__ import annotations
import logging
import os
import re
import subprocess
import threading
from dataclasses import replace
from datetime import datetime, timezone
from typing import Dict, List, Optional, Protocol, Tuple

from .errors import HistoryTimeout, HistoryUnavailable
from .signals import Attribution, DebtMarker, HistoryInfo, ScanWarning
from .utils import git_toplevel, run

logger = logging.getLogger(__name__)

UNCOMMITTED = "0" * 40
HEADER_RE = re.compile(r"^([0-9a-f]{40}) \d+ (\d+)(?: \d+)?$")

BlameTable = Dict[int, Attribution]


class HistoryProvider(Protocol):
    def blame(self, path: str) -> BlameTable:
        """Attribution for every committed line of ``path`` (absolute).

        Raises ``HistoryUnavailable`` (or ``HistoryTimeout``) when history
        has nothing to offer for the file.
        """
        ...


class GitBlameProvider:
    def __init__(self, toplevel: str, timeout: float = 30.0):
        self.toplevel = os.path.realpath(toplevel)
        self.timeout = timeout

    @classmethod
    def discover(cls, root: str, timeout: float = 30.0) -> Optional["GitBlameProvider"]:
        """Provider for the repository containing ``root``, or None outside one."""
        top = git_toplevel(root, timeout=timeout)
        if top is None:
            logger.debug("%s is not inside a git work tree", root)
            return None
        return cls(top, timeout=timeout)

    def blame(self, path: str) -> BlameTable:
        rel = os.path.relpath(os.path.realpath(path), self.toplevel)
        if rel.startswith(".."):
            raise HistoryUnavailable(f"{path} is outside {self.toplevel}")
        cmd = ["git", "blame", "--line-porcelain", "--", rel.replace(os.sep, "/")]
        try:
            res = run(cmd, cwd=self.toplevel, timeout=self.timeout)
        except subprocess.TimeoutExpired as e:
            raise HistoryTimeout(f"git blame exceeded {self.timeout:g}s") from e
        except OSError as e:
            raise HistoryUnavailable(f"cannot run git: {e}") from e
        if res.returncode != 0:
            msg = (res.stderr.strip().splitlines() or ["git blame failed"])[0]
            raise HistoryUnavailable(msg)
        table = parse_porcelain(res.stdout)
        if not table:
            raise HistoryUnavailable("no committed lines")
        return table


def parse_porcelain(text: str) -> BlameTable:
    """Parse ``git blame --line-porcelain`` output into a per-line table.

    Lines owned by the not-yet-committed pseudo revision, or without an
    author timestamp, are left out.
    """
    table: BlameTable = {}
    sha: Optional[str] = None
    line_no = 0
    fields: Dict[str, str] = {}
    for raw in text.splitlines():
        if raw.startswith("\t"):
            if sha and sha != UNCOMMITTED:
                attribution = _attribution(sha, fields)
                if attribution is not None:
                    table[line_no] = attribution
            sha, fields = None, {}
            continue
        if sha is None:
            m = HEADER_RE.match(raw)
            if m:
                sha, line_no = m.group(1), int(m.group(2))
            continue
        key, _, value = raw.partition(" ")
        fields[key] = value
    return table


def _attribution(sha: str, fields: Dict[str, str]) -> Optional[Attribution]:
    try:
        ts = int(fields["author-time"])
    except (KeyError, ValueError):
        return None
    return Attribution(
        author=fields.get("author") or "Unknown",
        author_email=fields.get("author-mail", "").strip("<>") or "unknown@example.com",
        revision_id=sha[:7],
        commit_time=datetime.fromtimestamp(ts, tz=timezone.utc),
    )


class _Entry:
    __slots__ = ("lock", "done", "table")

    def __init__(self):
        self.lock = threading.Lock()
        self.done = False
        self.table: Optional[BlameTable] = None


class BlameCache:
    """Per-scan memo of provider answers keyed by canonical path.

    A failed lookup is stored as ``None`` so it is never retried. Distinct
    files may be resolved concurrently; the same file is resolved once.
    """

    def __init__(self, provider: Optional[HistoryProvider], scan_time: datetime):
        self.provider = provider
        self.scan_time = scan_time
        self.queries = 0
        self._lock = threading.Lock()
        self._entries: Dict[str, _Entry] = {}

    def _entry(self, key: str) -> _Entry:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                entry = self._entries[key] = _Entry()
            return entry

    def lookup(self, path: str, label: Optional[str] = None) -> Tuple[Optional[BlameTable], Optional[ScanWarning]]:
        """Return the file's table and, for the call that hit a failure, a warning.

        ``label`` names the file in the warning (defaults to ``path``).
        """
        if self.provider is None:
            return None, None
        entry = self._entry(os.path.realpath(path))
        with entry.lock:
            if entry.done:
                return entry.table, None
            warning = None
            with self._lock:
                self.queries += 1
            try:
                entry.table = self.provider.blame(path)
            except HistoryTimeout as e:
                logger.warning("history timed out for %s: %s", path, e)
                warning = ScanWarning(ScanWarning.ATTRIBUTION_TIMEOUT, label or path, str(e))
            except HistoryUnavailable as e:
                logger.debug("no history for %s: %s", path, e)
                warning = ScanWarning(ScanWarning.ATTRIBUTION_UNAVAILABLE, label or path, str(e))
            except Exception as e:
                logger.warning("history provider failed for %s: %r", path, e)
                warning = ScanWarning(ScanWarning.ATTRIBUTION_UNAVAILABLE, label or path, f"provider error: {e!r}")
            entry.done = True
            return entry.table, warning

    def attribute(self, path: str, line_number: int) -> Optional[HistoryInfo]:
        table, _ = self.lookup(path)
        if not table or line_number not in table:
            return None
        return HistoryInfo.from_attribution(table[line_number], self.scan_time)

    def enrich(self, path: str, markers: List[DebtMarker]) -> Tuple[List[DebtMarker], Optional[ScanWarning]]:
        """Attach history to one file's markers; ``path`` is the absolute file path."""
        if not markers:
            return markers, None
        table, warning = self.lookup(path, markers[0].file_path)
        if not table:
            return markers, warning
        out = []
        for m in markers:
            attribution = table.get(m.line_number)
            if attribution is None:
                out.append(m)
            else:
                out.append(replace(m, history_info=HistoryInfo.from_attribution(attribution, self.scan_time)))
        return out, warning
