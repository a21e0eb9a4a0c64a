from __future__ import annotations
import logging
import os
import threading
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Pattern, Set

from .aggregator import Aggregator
from .config import Config
from .errors import RootUnreadable, ScanCancelled
from .extractor import build_marker_regex, extract_file
from .history import BlameCache, GitBlameProvider
from .signals import DebtMarker, DebtReport, ScanWarning
from .utils import IgnoreRules, git_toplevel, is_binary_file, iter_files, to_rel

logger = logging.getLogger(__name__)

# sentinel: look for a git repository around the scan root
DISCOVER = object()


@dataclass
class FileBatch:
    rel_path: str
    markers: List[DebtMarker] = field(default_factory=list)
    warnings: List[ScanWarning] = field(default_factory=list)


class FileJob:
    """Everything a worker needs; shared between workers, read-only."""

    def __init__(self, pattern: Pattern[str], cfg: Config, cache: BlameCache):
        self.pattern = pattern
        self.context_lines = cfg.context_lines
        self.max_file_size = cfg.max_file_size
        self.severity: Dict[str, str] = cfg.severity
        self.cache = cache

    def __call__(self, abspath: str, rel: str) -> FileBatch:
        batch = FileBatch(rel)
        try:
            size = os.path.getsize(abspath)
            if size > self.max_file_size:
                logger.warning("skipping %s: %d bytes exceeds limit of %d", rel, size, self.max_file_size)
                batch.warnings.append(
                    ScanWarning(ScanWarning.FILE_SKIPPED, rel, f"too large ({size} > {self.max_file_size} bytes)")
                )
                return batch
            if is_binary_file(abspath):
                logger.debug("skipping binary file %s", rel)
                return batch
            markers = extract_file(abspath, rel, self.pattern, self.context_lines, self.severity)
        except UnicodeDecodeError as e:
            logger.warning("skipping %s: not UTF-8 text (%s)", rel, e.reason)
            batch.warnings.append(ScanWarning(ScanWarning.FILE_SKIPPED, rel, f"undecodable: {e.reason}"))
            return batch
        except OSError as e:
            logger.warning("skipping %s: %s", rel, e)
            batch.warnings.append(ScanWarning(ScanWarning.FILE_SKIPPED, rel, f"unreadable: {e.strerror or e}"))
            return batch

        if markers:
            markers, warning = self.cache.enrich(abspath, markers)
            if warning is not None:
                batch.warnings.append(warning)
        batch.markers = markers
        return batch


def check_root(root: str) -> None:
    if not os.path.exists(root):
        raise RootUnreadable(root, "no such directory")
    if not os.path.isdir(root):
        raise RootUnreadable(root, "not a directory")
    try:
        os.listdir(root)
    except OSError as e:
        raise RootUnreadable(root, e.strerror or str(e)) from e


def scan(
    root: str,
    cfg: Optional[Config] = None,
    provider=DISCOVER,
    scan_time: Optional[datetime] = None,
    workers: Optional[int] = None,
    cancel: Optional[threading.Event] = None,
) -> DebtReport:
    """Scan ``root`` for debt markers and return the aggregated report.

    ``provider`` supplies line history: the default discovers a git
    repository around ``root``; ``None`` scans without history.
    Raises ``RootUnreadable`` before any work when the root cannot be listed
    and ``ScanCancelled`` once in-flight files finish after ``cancel`` is set.
    """
    cfg = cfg or Config()
    root = os.path.abspath(root)
    check_root(root)

    scan_time = scan_time or datetime.now(timezone.utc)
    workers = workers or cfg.workers
    cancel = cancel or threading.Event()
    toplevel = git_toplevel(root, timeout=cfg.blame_timeout)
    if provider is DISCOVER:
        provider = GitBlameProvider(toplevel, timeout=cfg.blame_timeout) if toplevel else None
        if provider is None:
            logger.info("%s is not under version control; markers will have no history", root)

    agg = Aggregator(root, scan_time, severity=cfg.severity)
    cache = BlameCache(provider, scan_time)
    job = FileJob(build_marker_regex(cfg.markers), cfg, cache)
    rules = IgnoreRules.for_root(root, enabled=cfg.respect_gitignore, toplevel=toplevel)

    def on_walk_error(err: OSError) -> None:
        path = err.filename or root
        rel = to_rel(path, root)
        logger.warning("cannot read %s: %s", rel, err.strerror or err)
        agg.warn(ScanWarning(ScanWarning.PATH_UNREADABLE, rel, err.strerror or str(err)))

    def drain(done: Set[Future]) -> None:
        for fut in done:
            batch = fut.result()
            agg.merge(batch.markers)
            for warning in batch.warnings:
                agg.warn(warning)

    window = workers * 4
    in_flight: Set[Future] = set()
    files = iter_files(root, cfg.ignored_dirs, rules, cfg.exclude, on_error=on_walk_error)
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="fossil") as pool:
        try:
            for abspath, rel in files:
                if cancel.is_set():
                    break
                if len(in_flight) >= window:
                    done, in_flight = wait(in_flight, return_when=FIRST_COMPLETED)
                    drain(done)
                in_flight.add(pool.submit(job, abspath, rel))
        except KeyboardInterrupt:
            cancel.set()
        done, _ = wait(in_flight)
        drain(done)

    if cancel.is_set():
        raise ScanCancelled(f"scan of {root} cancelled after {agg.files_merged} files")

    report = agg.finish()
    logger.info(
        "scanned %d files under %s: %d markers, %d warnings, %d history lookups",
        agg.files_merged, root, report.total_count, len(report.warnings), cache.queries,
    )
    return report
