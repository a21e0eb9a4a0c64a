import argparse
import logging
import sys

from .config import load_config
from .errors import FossilError
from .filters import filter_by_author, filter_by_age, filter_by_type, parse_age
from .renderer import FORMATS, render, write_output
from .scanner import DISCOVER, scan


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="fossil", description="Unearth your technical debt")
    sub = parser.add_subparsers(dest="cmd", required=True)

    p = sub.add_parser("scan", help="Scan a directory for debt markers")
    p.add_argument("path", nargs="?", default=".", help="Directory to scan")
    p.add_argument("-f", "--format", choices=FORMATS, default="terminal", help="Report format")
    p.add_argument("-o", "--output", default=None, help="Write the report here instead of stdout")
    p.add_argument("--older-than", default=None, help="Only markers at least this old (30d, 2w, 6m, 1y)")
    p.add_argument("--author", default=None, help="Only markers by this author (substring match)")
    p.add_argument("-t", "--type", dest="marker_type", default=None, help="Only markers of this type")
    p.add_argument("-c", "--config", default=None, help="Path to a .fossil.yml config file")
    p.add_argument("--top", type=int, default=10, help="How many of the oldest markers to list")
    p.add_argument("--workers", type=int, default=None, help="Parallel file workers")
    p.add_argument("--no-history", action="store_true", help="Skip git blame attribution")
    p.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser


def run_scan(args) -> int:
    cfg = load_config(args.config)
    if args.workers is not None:
        cfg = cfg.with_overrides(workers=args.workers)
    min_age = parse_age(args.older_than) if args.older_than else None

    report = scan(args.path, cfg, provider=None if args.no_history else DISCOVER)

    markers = list(report.markers)
    if args.marker_type:
        markers = filter_by_type(markers, args.marker_type)
    if min_age is not None:
        markers = filter_by_age(markers, min_age)
    if args.author:
        markers = filter_by_author(markers, args.author)
    if len(markers) != report.total_count:
        report = report.subset(markers)

    write_output(render(report, args.format, top_n=args.top), args.output)
    return 0


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    try:
        return run_scan(args)
    except FossilError as e:
        print(f"error: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
