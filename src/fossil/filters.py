from __future__ import annotations
import re
from typing import TYPE_CHECKING, Iterable, List, Optional

from .errors import FilterError

if TYPE_CHECKING:
    from .signals import DebtMarker

AGE_UNITS = {"d": 1, "w": 7, "m": 30, "y": 365}
AGE_RE = re.compile(r"^(\d+)([a-z])$")


def parse_age(text: str) -> int:
    """Turn "30d", "2w", "6m" or "1y" into a number of days."""
    s = (text or "").strip().lower()
    if not s:
        raise FilterError("empty age")
    m = AGE_RE.match(s)
    if not m:
        raise FilterError(f"invalid age {text!r}: expected a number followed by d, w, m or y")
    num, unit = m.groups()
    if unit not in AGE_UNITS:
        raise FilterError(f"invalid age unit {unit!r} in {text!r}: use d, w, m or y")
    return int(num) * AGE_UNITS[unit]


def filter_by_type(markers: Iterable["DebtMarker"], marker_type: str) -> List["DebtMarker"]:
    wanted = marker_type.lower()
    return [m for m in markers if m.marker_type.lower() == wanted]


def filter_by_author(markers: Iterable["DebtMarker"], needle: str) -> List["DebtMarker"]:
    needle = needle.lower()
    out = []
    for m in markers:
        info = m.history_info
        if info is None:
            continue
        if needle in info.author.lower() or needle in info.author_email.lower():
            out.append(m)
    return out


def filter_by_age(markers: Iterable["DebtMarker"], min_days: int) -> List["DebtMarker"]:
    # unknown age is not zero age: markers without history never pass
    return [m for m in markers if m.history_info is not None and m.history_info.age_days >= min_days]


def top_oldest(markers: Iterable["DebtMarker"], limit: Optional[int] = None) -> List["DebtMarker"]:
    dated = [m for m in markers if m.history_info is not None]
    dated.sort(key=lambda m: (-m.history_info.age_days, m.file_path, m.line_number))
    if limit is not None:
        return dated[:max(0, limit)]
    return dated
