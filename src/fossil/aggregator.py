from __future__ import annotations
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from .signals import DebtMarker, DebtReport, ScanWarning


class Aggregator:
    """Merges per-file marker batches into one report.

    Not thread-safe on purpose: exactly one consumer calls ``merge``. Batches
    may arrive in any order; ``finish`` sorts markers by path and line so the
    result does not depend on scheduling.
    """

    def __init__(self, scan_root: str, scan_time: datetime, severity: Optional[Dict[str, str]] = None):
        self.scan_root = scan_root
        self.scan_time = scan_time
        self.severity = dict(severity or {})
        self.markers: List[DebtMarker] = []
        self.by_type: Dict[str, int] = {}
        self.by_author: Dict[str, int] = {}
        self.by_file: Dict[str, int] = {}
        self.warnings: List[ScanWarning] = []
        self.files_merged = 0
        self._finished = False

    def merge(self, batch: Iterable[DebtMarker]) -> None:
        if self._finished:
            raise RuntimeError("aggregator already finished")
        self.files_merged += 1
        for m in batch:
            self.markers.append(m)
            self.by_type[m.marker_type] = self.by_type.get(m.marker_type, 0) + 1
            self.by_file[m.file_path] = self.by_file.get(m.file_path, 0) + 1
            if m.history_info is not None:
                author = m.history_info.author
                self.by_author[author] = self.by_author.get(author, 0) + 1

    def warn(self, warning: ScanWarning) -> None:
        self.warnings.append(warning)

    def finish(self) -> DebtReport:
        self._finished = True
        markers = tuple(sorted(self.markers, key=lambda m: m.sort_key))
        warnings = tuple(sorted(self.warnings, key=lambda w: (w.path, w.kind, w.reason)))
        return DebtReport(
            scan_root=self.scan_root,
            scan_time=self.scan_time,
            markers=markers,
            by_type=dict(sorted(self.by_type.items())),
            by_author=dict(sorted(self.by_author.items())),
            by_file=dict(sorted(self.by_file.items())),
            warnings=warnings,
            severity=self.severity,
        )
