"""Line-oriented extraction of debt markers from comments.

The extractor walks a file once, line by line, tracking whether it is inside
a block comment (``/* ... */`` or ``<!-- ... -->``). Only text inside a
comment is matched against the marker pattern. Comment openers inside string
literals are not recognised as such, so ``"# TODO: x"`` in a string still
counts as a marker.
"""
from __future__ import annotations
import re
from collections import deque
from enum import Enum
from typing import Dict, Iterable, Iterator, List, Optional, Pattern, Sequence, Tuple

from .signals import DebtMarker

LINE_OPENERS = ("//", "#")
BLOCK_OPENERS = {"/*": "*/", "<!--": "-->"}


class State(Enum):
    NORMAL = "normal"
    IN_BLOCK = "in_block"


def build_marker_regex(markers: Sequence[str]) -> Pattern[str]:
    """Keyword at a word boundary, then optional spaces and ``:`` or ``(``."""
    keywords = sorted({m.strip() for m in markers if m.strip()}, key=len, reverse=True)
    alternation = "|".join(re.escape(k) for k in keywords)
    return re.compile(rf"(?<!\w)({alternation})\s*[:(]")


class CommentScanner:
    """Per-file comment state machine; feed it lines in order."""

    def __init__(self):
        self.state = State.NORMAL
        self.closer: Optional[str] = None

    def comment_segments(self, line: str) -> List[str]:
        segments = []
        pos = 0
        if self.state is State.NORMAL and line.lstrip().startswith("*"):
            # docblock continuation whose opener we never saw
            segments.append(line)
            return segments
        while pos <= len(line):
            if self.state is State.IN_BLOCK:
                end = line.find(self.closer, pos)
                if end == -1:
                    segments.append(line[pos:])
                    break
                segments.append(line[pos:end])
                pos = end + len(self.closer)
                self.state, self.closer = State.NORMAL, None
                continue
            opener, idx = _earliest_opener(line, pos)
            if opener is None:
                break
            if opener in LINE_OPENERS:
                segments.append(line[idx + len(opener):])
                break
            self.state, self.closer = State.IN_BLOCK, BLOCK_OPENERS[opener]
            pos = idx + len(opener)
        return segments


def _earliest_opener(line: str, pos: int) -> Tuple[Optional[str], int]:
    best, best_idx = None, -1
    for opener in LINE_OPENERS + tuple(BLOCK_OPENERS):
        idx = line.find(opener, pos)
        if idx == -1:
            continue
        # "/*" and "//" both start with "/": the earlier index wins, ties go to the longer token
        if best is None or idx < best_idx or (idx == best_idx and len(opener) > len(best)):
            best, best_idx = opener, idx
    return best, best_idx


def match_marker(segments: Iterable[str], pattern: Pattern[str]) -> Optional[str]:
    for segment in segments:
        m = pattern.search(segment)
        if m:
            return m.group(1)
    return None


class _Pending:
    __slots__ = ("marker_type", "line_number", "line_content", "before", "after", "remaining")

    def __init__(self, marker_type: str, line_number: int, line_content: str, before: List[str], remaining: int):
        self.marker_type = marker_type
        self.line_number = line_number
        self.line_content = line_content
        self.before = before
        self.after: List[str] = []
        self.remaining = remaining


def extract_markers(
    lines: Iterable[str],
    rel_path: str,
    pattern: Pattern[str],
    context_lines: int = 2,
    severity: Optional[Dict[str, str]] = None,
) -> Iterator[DebtMarker]:
    """Yield markers from ``lines`` lazily, in line order.

    Only ``context_lines`` previous lines and the markers still waiting for
    their trailing context are held in memory.
    """
    severity = severity or {}
    scanner = CommentScanner()
    before: deque = deque(maxlen=context_lines)
    pending: deque = deque()

    def finish(p: _Pending) -> DebtMarker:
        return DebtMarker(
            marker_type=p.marker_type,
            file_path=rel_path,
            line_number=p.line_number,
            line_content=p.line_content,
            context_before=tuple(p.before),
            context_after=tuple(p.after),
            severity=severity.get(p.marker_type),
        )

    for line_number, raw in enumerate(lines, start=1):
        line = raw.rstrip("\r\n")
        for p in pending:
            p.after.append(line)
            p.remaining -= 1
        while pending and pending[0].remaining <= 0:
            yield finish(pending.popleft())

        marker_type = match_marker(scanner.comment_segments(line), pattern)
        if marker_type is not None:
            p = _Pending(marker_type, line_number, line, list(before) if context_lines else [], context_lines)
            if context_lines == 0:
                yield finish(p)
            else:
                pending.append(p)
        if context_lines:
            before.append(line)

    while pending:
        yield finish(pending.popleft())


def extract_file(
    abspath: str,
    rel_path: str,
    pattern: Pattern[str],
    context_lines: int = 2,
    severity: Optional[Dict[str, str]] = None,
) -> List[DebtMarker]:
    """Extract every marker of one file.

    Lines end at LF only, as git counts them; a lone CR stays in the line.
    Raises ``OSError`` when the file cannot be read and
    ``UnicodeDecodeError`` when it is not UTF-8 text; callers turn both
    into skip warnings.
    """
    with open(abspath, "r", encoding="utf-8", newline="\n") as f:
        return list(extract_markers(f, rel_path, pattern, context_lines, severity))
