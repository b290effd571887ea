"""Incremental render pipeline for mathrender."""

from __future__ import annotations

import logging
import shutil
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterator, Optional

from .cache import CACHE_FILE_NAME, ChangeCache
from .latex import MathRenderer
from .mirror import DirectoryMirror
from .substitution import Renderer
from .transform import HtmlTransformer, is_html_file

LOG = logging.getLogger("mathrender")

EXIT_INVALID_ARGS = 6
EXIT_CACHE = 7
EXIT_FILE_FAILURES = 8

SIDECAR_SUFFIX = ".md5"


@dataclass
class RenderConfig:
    force: bool = False
    quiet: bool = False
    quieter: bool = False
    verbose: bool = False
    debug: bool = False
    cache_file: Optional[Path] = None


@dataclass
class RunStatistics:
    directories: int = 0
    rendered: int = 0
    copied: int = 0
    skipped: int = 0
    failed: int = 0

    @property
    def total(self) -> int:
        return self.directories + self.rendered + self.copied + self.skipped

    def as_dict(self) -> Dict[str, int]:
        return {
            "directories": self.directories,
            "rendered": self.rendered,
            "copied": self.copied,
            "skipped": self.skipped,
            "failed": self.failed,
            "total": self.total,
        }


def _resolve_log_level(debug: bool) -> int:
    return logging.DEBUG if debug else logging.INFO


def _configure_mathrender_logger(level: int) -> None:
    LOG.setLevel(level)
    LOG.propagate = False
    # replaced on every call so the handler writes to the current stderr
    for handler in list(LOG.handlers):
        LOG.removeHandler(handler)
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
    handler.setLevel(level)
    LOG.addHandler(handler)


def setup_logging(debug: bool) -> None:
    _configure_mathrender_logger(_resolve_log_level(debug))


def _report(action: str, path: Path, config: RenderConfig) -> None:
    if config.quieter:
        return
    if config.quiet and action != "RENDER":
        return
    LOG.info("%s: %s", action, path)


def default_cache_file(dest_dir: Path) -> Path:
    return dest_dir / CACHE_FILE_NAME


def _is_under(path: Path, root: Path) -> bool:
    try:
        path.relative_to(root)
    except ValueError:
        return False
    return True


def iter_source_entries(src_dir: Path, dest_dir: Path) -> Iterator[Path]:
    """Yield files and directories below ``src_dir``, parents first.

    Hidden entries are left out, and so is the destination tree when it
    lives inside the source tree.
    """
    nested_dest = dest_dir != src_dir and _is_under(dest_dir, src_dir)
    for entry in sorted(src_dir.rglob("*")):
        rel_parts = entry.relative_to(src_dir).parts
        if any(part.startswith(".") for part in rel_parts):
            continue
        if nested_dest and _is_under(entry, dest_dir):
            continue
        yield entry


def _validate_roots(src_dir: Path, dest_dir: Path) -> None:
    if not src_dir.exists() or not src_dir.is_dir():
        raise RuntimeError(f"Source directory not found: {src_dir}")
    if dest_dir == src_dir:
        raise RuntimeError(f"Destination directory must differ from source: {dest_dir}")
    if dest_dir.exists() and not dest_dir.is_dir():
        raise RuntimeError(f"Output path is not a directory: {dest_dir}")


def _process_entry(
    source: Path,
    *,
    mirror: DirectoryMirror,
    cache: ChangeCache,
    transformer: HtmlTransformer,
    stats: RunStatistics,
    config: RenderConfig,
) -> None:
    target = mirror.target_path_for(source)

    if source.is_dir():
        mirror.ensure_dir(target)
        stats.directories += 1
        _report("MKDIR", target, config)
        return

    if source.name.endswith(SIDECAR_SUFFIX):
        return

    if cache.is_unchanged(source):
        stats.skipped += 1
        _report("SKIP", target, config)
        return

    mirror.ensure_dir(target.parent)
    if is_html_file(source):
        rendered = transformer.transform(source, target)
        _report("RENDER" if rendered else "COPY", source, config)
    else:
        shutil.copyfile(source, target)
        stats.copied += 1
        _report("COPY", source, config)


def run_render_pipeline(
    *,
    src_dir: Path,
    dest_dir: Path,
    config: RenderConfig,
    renderer: Optional[Renderer] = None,
) -> RunStatistics:
    _validate_roots(src_dir, dest_dir)

    cache_file = config.cache_file or default_cache_file(dest_dir)
    cache = ChangeCache.load(cache_file, force=config.force)
    cache.ensure_writable()
    if config.verbose:
        LOG.info("Loaded %d cache entries from %s", len(cache), cache_file)
    mirror = DirectoryMirror(src_dir, dest_dir)
    stats = RunStatistics()
    transformer = HtmlTransformer(renderer or MathRenderer(), stats)

    try:
        mirror.ensure_dir(dest_dir)
    except OSError as exc:
        raise RuntimeError(f"Unable to create output directory {dest_dir}: {exc}") from exc
    entries = list(iter_source_entries(src_dir, dest_dir))
    LOG.info("Start processing: found %d entries in %s", len(entries), src_dir)
    if config.force:
        LOG.info("Force mode: change cache bypassed")

    for source in entries:
        try:
            _process_entry(
                source,
                mirror=mirror,
                cache=cache,
                transformer=transformer,
                stats=stats,
                config=config,
            )
        except (OSError, ValueError, RuntimeError) as exc:
            cache.invalidate(source)
            stats.failed += 1
            LOG.error("FAIL: %s (%s)", source, exc)

    cache.save()
    summary = stats.as_dict()
    LOG.info("Completed: %s", ", ".join(f"{key}={value}" for key, value in summary.items()))
    return stats
