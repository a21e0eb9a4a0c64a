from __future__ import annotations
import json
import os
from typing import List, Optional, Tuple
from jinja2 import Environment, FileSystemLoader, select_autoescape

from .signals import DebtReport

FORMATS = ("terminal", "markdown", "json")
TEMPLATES = {"terminal": "report.txt.j2", "markdown": "report.md.j2"}


def _env() -> Environment:
    tmpl_dir = os.path.join(os.path.dirname(__file__), "templates")
    env = Environment(
        loader=FileSystemLoader(tmpl_dir),
        autoescape=select_autoescape(),
        trim_blocks=True,
        lstrip_blocks=True,
        keep_trailing_newline=True,
    )
    env.filters["age"] = lambda info: info.age_display() if info else "?"
    return env


def ranked(counts) -> List[Tuple[str, int]]:
    """Highest count first, name breaks ties."""
    return sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))


def render(report: DebtReport, fmt: str = "terminal", top_n: int = 10) -> str:
    if fmt == "json":
        return json.dumps(report.to_dict(), indent=2, default=str)
    if fmt not in TEMPLATES:
        raise ValueError(f"unknown format {fmt!r}; expected one of {', '.join(FORMATS)}")
    tmpl = _env().get_template(TEMPLATES[fmt])
    return tmpl.render(
        report=report,
        types=ranked(report.by_type),
        authors=ranked(report.by_author)[:10],
        oldest=report.oldest(top_n),
        undated=report.total_count - sum(report.by_author.values()),
    )


def write_output(text: str, output_path: Optional[str] = None):
    if not output_path:
        print(text, end="" if text.endswith("\n") else "\n")
        return
    with open(output_path, "w", encoding="utf-8") as f:
        f.write(text)
    print(f"Wrote {output_path}")
