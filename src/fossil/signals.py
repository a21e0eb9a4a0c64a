from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple

from . import filters

SECONDS_PER_DAY = 86400


@dataclass(frozen=True)
class Attribution:
    """Raw per-line answer from a history provider, before ageing."""

    author: str
    author_email: str
    revision_id: str
    commit_time: datetime


@dataclass(frozen=True)
class HistoryInfo:
    author: str
    author_email: str
    revision_id: str
    commit_time: datetime  # UTC
    age_days: int

    @classmethod
    def from_attribution(cls, attribution: Attribution, scan_time: datetime) -> "HistoryInfo":
        return cls(
            author=attribution.author,
            author_email=attribution.author_email,
            revision_id=attribution.revision_id,
            commit_time=attribution.commit_time,
            age_days=age_in_days(attribution.commit_time, scan_time),
        )

    def age_display(self) -> str:
        if self.age_days < 30:
            return f"{self.age_days}d"
        if self.age_days < 365:
            return f"{self.age_days // 30}m"
        return f"{self.age_days // 365}y"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "author": self.author,
            "author_email": self.author_email,
            "revision_id": self.revision_id,
            "commit_time": self.commit_time.isoformat(),
            "age_days": self.age_days,
        }


def age_in_days(commit_time: datetime, scan_time: datetime) -> int:
    # floor division on whole seconds; commits from the future count as 0 days
    delta = int((_as_utc(scan_time) - _as_utc(commit_time)).total_seconds())
    return max(0, delta // SECONDS_PER_DAY)


def _as_utc(ts: datetime) -> datetime:
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


@dataclass(frozen=True)
class DebtMarker:
    marker_type: str
    file_path: str  # relative to the scan root, forward slashes
    line_number: int  # 1-based
    line_content: str
    context_before: Tuple[str, ...] = ()
    context_after: Tuple[str, ...] = ()
    history_info: Optional[HistoryInfo] = None
    severity: Optional[str] = None

    @property
    def sort_key(self) -> Tuple[str, int]:
        return (self.file_path, self.line_number)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "marker_type": self.marker_type,
            "file_path": self.file_path,
            "line_number": self.line_number,
            "line_content": self.line_content,
            "context_before": list(self.context_before),
            "context_after": list(self.context_after),
            "severity": self.severity,
            "history_info": self.history_info.to_dict() if self.history_info else None,
        }


@dataclass(frozen=True)
class ScanWarning:
    FILE_SKIPPED = "file_skipped"
    PATH_UNREADABLE = "path_unreadable"
    ATTRIBUTION_UNAVAILABLE = "attribution_unavailable"
    ATTRIBUTION_TIMEOUT = "attribution_timeout"

    kind: str
    path: str
    reason: str

    def to_dict(self) -> Dict[str, str]:
        return {"kind": self.kind, "path": self.path, "reason": self.reason}


@dataclass(frozen=True)
class DebtReport:
    """Result of one scan. Built by the aggregator, never mutated afterwards."""

    scan_root: str
    scan_time: datetime
    markers: Tuple[DebtMarker, ...] = ()
    by_type: Dict[str, int] = field(default_factory=dict)
    by_author: Dict[str, int] = field(default_factory=dict)
    by_file: Dict[str, int] = field(default_factory=dict)
    warnings: Tuple[ScanWarning, ...] = ()
    severity: Dict[str, str] = field(default_factory=dict)

    @property
    def total_count(self) -> int:
        return len(self.markers)

    def oldest(self, limit: Optional[int] = None) -> List[DebtMarker]:
        return filters.top_oldest(self.markers, limit)

    def of_type(self, marker_type: str) -> List[DebtMarker]:
        return filters.filter_by_type(self.markers, marker_type)

    def by_author_name(self, needle: str) -> List[DebtMarker]:
        return filters.filter_by_author(self.markers, needle)

    def older_than(self, min_days: int) -> List[DebtMarker]:
        return filters.filter_by_age(self.markers, min_days)

    def warnings_of(self, kind: str) -> List[ScanWarning]:
        return [w for w in self.warnings if w.kind == kind]

    def subset(self, markers: Iterable[DebtMarker]) -> "DebtReport":
        from .aggregator import Aggregator

        agg = Aggregator(self.scan_root, self.scan_time, severity=self.severity)
        agg.merge(list(markers))
        for warning in self.warnings:
            agg.warn(warning)
        return agg.finish()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "scan_root": self.scan_root,
            "scan_time": self.scan_time.isoformat(),
            "total_count": self.total_count,
            "by_type": dict(self.by_type),
            "by_author": dict(self.by_author),
            "by_file": dict(self.by_file),
            "severity": dict(self.severity),
            "warnings": [w.to_dict() for w in self.warnings],
            "markers": [m.to_dict() for m in self.markers],
        }
