from __future__ import annotations
import fnmatch
import logging
import os
import stat
import subprocess
from typing import Callable, Iterable, List, Optional, Tuple
from pathspec import PathSpec

logger = logging.getLogger(__name__)

BINARY_EXT = {
    ".png", ".jpg", ".jpeg", ".gif", ".ico", ".bmp", ".webp", ".pdf", ".zip", ".tar", ".gz", ".tgz", ".bz2",
    ".xz", ".7z", ".jar", ".class", ".exe", ".dll", ".so", ".dylib", ".bin", ".dat", ".o", ".a", ".pyc",
    ".woff", ".woff2", ".ttf", ".otf", ".mp3", ".mp4", ".mov", ".sqlite", ".db",
}


def read_ignore_file(path: str) -> Optional[PathSpec]:
    if not os.path.isfile(path):
        return None
    try:
        with open(path, "r", encoding="utf-8", errors="replace") as f:
            return PathSpec.from_lines("gitwildmatch", f)
    except OSError as e:
        logger.warning("ignoring unreadable %s: %s", path, e)
        return None


def _verdict(spec: PathSpec, rel: str) -> Optional[bool]:
    # last matching pattern decides; None when nothing in the file matches
    verdict = None
    for pattern in spec.patterns:
        if pattern.include is not None and pattern.match_file(rel) is not None:
            verdict = pattern.include
    return verdict


class IgnoreRules:
    """gitignore rules, each file scoped to the directory that holds it.

    Deeper files override shallower ones, and a repository's
    ``.git/info/exclude`` ranks below the ``.gitignore`` beside it.
    """

    def __init__(self, enabled: bool = True):
        self.enabled = enabled
        self._scoped: List[Tuple[str, PathSpec]] = []

    @classmethod
    def for_root(cls, root: str, enabled: bool = True, toplevel: Optional[str] = None) -> "IgnoreRules":
        """Rules for a walk of ``root``, seeded with the repository's own when
        ``toplevel`` (the work tree containing ``root``) is known."""
        rules = cls(enabled)
        if not enabled or not toplevel:
            return rules
        rel = os.path.relpath(os.path.realpath(root), os.path.realpath(toplevel))
        if rel.startswith(".."):
            return rules
        parts = [] if rel == "." else rel.split(os.sep)
        top = os.path.normpath(os.path.join(root, *([os.pardir] * len(parts))))
        rules.add(top, read_ignore_file(os.path.join(toplevel, ".git", "info", "exclude")))
        for depth in range(len(parts)):
            found = read_ignore_file(os.path.join(toplevel, *parts[:depth], ".gitignore"))
            rules.add(os.path.join(top, *parts[:depth]), found)
        return rules

    def add(self, base: str, spec: Optional[PathSpec]) -> None:
        if spec is not None and self.enabled:
            self._scoped.append((os.path.normpath(base), spec))

    def load_dir(self, dirpath: str) -> None:
        if self.enabled:
            self.add(dirpath, read_ignore_file(os.path.join(dirpath, ".gitignore")))

    def ignored(self, abspath: str, is_dir: bool = False) -> bool:
        verdict = None
        for base, spec in self._scoped:
            if not abspath.startswith(base + os.sep):
                continue
            rel = os.path.relpath(abspath, base).replace(os.sep, "/")
            found = _verdict(spec, rel + "/" if is_dir else rel)
            if found is not None:
                verdict = found
        return bool(verdict)


def is_regular_file(path: str) -> bool:
    """True for regular files, following symlinks; FIFOs, sockets, devices
    and dangling links are not."""
    try:
        return stat.S_ISREG(os.stat(path).st_mode)
    except OSError:
        return False


def is_binary_file(path: str) -> bool:
    _, ext = os.path.splitext(path.lower())
    if ext in BINARY_EXT:
        return True
    with open(path, "rb") as f:
        chunk = f.read(2048)
    return b"\0" in chunk


def to_rel(path: str, root: str) -> str:
    return os.path.relpath(path, root).replace(os.sep, "/")


def is_ignored_dir(name: str, patterns: Iterable[str]) -> bool:
    return any(name == p or fnmatch.fnmatch(name, p) for p in patterns)


def iter_files(
    root: str,
    ignored_dirs: List[str],
    rules: IgnoreRules,
    excludes: List[str],
    on_error: Optional[Callable[[OSError], None]] = None,
) -> Iterable[Tuple[str, str]]:
    """Yield ``(abspath, relpath)`` for every regular file below ``root``.

    Ignored directories are pruned before descent, never filtered afterwards.
    Each directory's ``.gitignore`` is read on the way in.
    """
    exclude_spec = PathSpec.from_lines("gitwildmatch", excludes or [])
    for dirpath, dirnames, filenames in os.walk(root, onerror=on_error, followlinks=False):
        rules.load_dir(dirpath)
        kept = []
        for name in sorted(dirnames):
            path = os.path.join(dirpath, name)
            rel = to_rel(path, root)
            if is_ignored_dir(name, ignored_dirs):
                continue
            if rules.ignored(path, is_dir=True) or exclude_spec.match_file(rel + "/"):
                continue
            kept.append(name)
        dirnames[:] = kept
        for name in sorted(filenames):
            abspath = os.path.join(dirpath, name)
            rel = to_rel(abspath, root)
            if rules.ignored(abspath) or exclude_spec.match_file(rel):
                continue
            if not is_regular_file(abspath):
                continue
            yield abspath, rel


def git_toplevel(root: str, timeout: Optional[float] = 30) -> Optional[str]:
    """Top of the git work tree containing ``root``, or None."""
    try:
        res = run(["git", "rev-parse", "--show-toplevel"], cwd=root, timeout=timeout)
    except (OSError, subprocess.TimeoutExpired):
        return None
    top = res.stdout.strip()
    if res.returncode != 0 or not top:
        return None
    return top


def run(cmd: List[str], cwd: Optional[str] = None, timeout: Optional[float] = 30) -> subprocess.CompletedProcess:
    """Run a command and capture text output.

    ``subprocess.TimeoutExpired`` and ``OSError`` (e.g. missing binary)
    propagate to the caller.
    """
    return subprocess.run(
        cmd,
        cwd=cwd,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        timeout=timeout,
        check=False,
        text=True,
        encoding="utf-8",
        errors="replace",
    )
