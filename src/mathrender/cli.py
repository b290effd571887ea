"""Command-line interface for mathrender."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from .version import __version__


def _get_usage() -> str:
    return (
        f"mathrender {__version__}\n"
        "Usage:\n"
        "  mathrender [--help] [--version|--ver]\n"
        "  mathrender SRC_DIR DEST_DIR [options]\n\n"
        "Render TeX math in HTML files of SRC_DIR into DEST_DIR, copying other files.\n\n"
        "Options:\n"
        "  -f, --force          Ignore the change cache and process every file\n"
        "  -q, --quiet          Print RENDER messages only\n"
        "  --quieter            Do not print per-file messages\n"
        "  --cache-file PATH    Cache location (default: DEST_DIR/math-cache.json)\n"
        "  --verbose            Extra progress information\n"
        "  --debug              Debug logs"
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(add_help=False)
    parser.add_argument("src_dir", nargs="?", help="Source directory")
    parser.add_argument("dest_dir", nargs="?", help="Destination directory")
    parser.add_argument("--help", action="store_true")
    parser.add_argument("--version", action="store_true")
    parser.add_argument("--ver", action="store_true")
    parser.add_argument("-f", "--force", action="store_true", help="Force render of every file")
    parser.add_argument("-q", "--quiet", action="store_true", help="Print RENDER messages only")
    parser.add_argument("--quieter", action="store_true", help="Do not print per-file messages")
    parser.add_argument("--cache-file", help="Path of the JSON change cache")
    parser.add_argument("--verbose", action="store_true", help="Extra progress information")
    parser.add_argument("--debug", action="store_true", help="Debug logs")
    return parser


def main(argv: list[str] | None = None) -> int:
    if argv is None:
        argv = sys.argv[1:]

    parser = _build_parser()
    args, unknown = parser.parse_known_args(argv)
    if unknown:
        print(_get_usage())
        return 2

    if not argv or args.help:
        print(_get_usage())
        return 0

    if args.version or args.ver:
        print(__version__)
        return 0

    if not args.src_dir or not args.dest_dir:
        print(_get_usage())
        print("Arguments SRC_DIR and DEST_DIR are required", file=sys.stderr)
        return 6

    src_dir = Path(args.src_dir).expanduser().resolve()
    dest_dir = Path(args.dest_dir).expanduser().resolve()

    try:
        from mathrender import core
        from mathrender.cache import CacheError
    except Exception as exc:
        print(f"Unable to import mathrender core: {exc}", file=sys.stderr)
        return 6

    core.setup_logging(args.debug)

    config = core.RenderConfig(
        force=bool(args.force),
        quiet=bool(args.quiet),
        quieter=bool(args.quieter),
        verbose=bool(args.verbose),
        debug=bool(args.debug),
        cache_file=Path(args.cache_file).expanduser().resolve() if args.cache_file else None,
    )

    try:
        stats = core.run_render_pipeline(src_dir=src_dir, dest_dir=dest_dir, config=config)
    except CacheError as exc:
        print(str(exc), file=sys.stderr)
        return core.EXIT_CACHE
    except RuntimeError as exc:
        print(str(exc), file=sys.stderr)
        return core.EXIT_INVALID_ARGS

    return core.EXIT_FILE_FAILURES if stats.failed else 0


if __name__ == "__main__":
    raise SystemExit(main())
