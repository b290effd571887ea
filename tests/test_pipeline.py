import json
from pathlib import Path

import pytest

import mathrender.core as core
from mathrender.cache import CacheError, fingerprint
from mathrender.transform import STYLESHEET_ID


class FakeRenderer:
    def __init__(self):
        self.calls = []

    def render(self, notation, display):
        self.calls.append((notation, display))
        return f'<span class="fake-math">{notation}</span>'

    def stylesheet_rules(self):
        return ".fake-math {}"


def _create_site(tmp_path: Path) -> Path:
    src = tmp_path / "public"
    (src / "css").mkdir(parents=True)
    (src / "post").mkdir()
    (src / "index.html").write_text("<html><head></head><body><p>$x$</p></body></html>", encoding="utf-8")
    (src / "plain.html").write_text("<html><body><p>Nothing</p></body></html>", encoding="utf-8")
    (src / "css" / "site.css").write_text("body { margin: 0; }", encoding="utf-8")
    (src / "data.bin").write_bytes(bytes(range(256)))
    (src / "post" / "a.html").write_text('<div class="latex-block">a^2</div>', encoding="utf-8")
    (src / "old.html.md5").write_text("deadbeef", encoding="utf-8")
    (src / ".hidden").write_text("secret", encoding="utf-8")
    return src


def _run(src: Path, dest: Path, renderer=None, **options) -> core.RunStatistics:
    return core.run_render_pipeline(
        src_dir=src,
        dest_dir=dest,
        config=core.RenderConfig(**options),
        renderer=renderer or FakeRenderer(),
    )


def _snapshot(root: Path) -> dict:
    return {p.relative_to(root): p.read_bytes() for p in sorted(root.rglob("*")) if p.is_file()}


def test_first_run_mirrors_tree(tmp_path):
    src = _create_site(tmp_path)
    dest = tmp_path / "rendered-public"

    stats = _run(src, dest)

    assert stats.as_dict() == {
        "directories": 2,
        "rendered": 2,
        "copied": 3,
        "skipped": 0,
        "failed": 0,
        "total": 7,
    }
    assert (dest / "data.bin").read_bytes() == (src / "data.bin").read_bytes()
    assert (dest / "css" / "site.css").read_bytes() == (src / "css" / "site.css").read_bytes()
    assert (dest / "plain.html").read_bytes() == (src / "plain.html").read_bytes()
    index = (dest / "index.html").read_text(encoding="utf-8")
    assert '<span class="fake-math">x</span>' in index
    assert index.count(f'id="{STYLESHEET_ID}"') == 1
    assert "latex-block" not in (dest / "post" / "a.html").read_text(encoding="utf-8")
    assert not (dest / "old.html.md5").exists()
    assert not (dest / ".hidden").exists()


def test_cache_file_maps_absolute_source_paths_to_md5(tmp_path):
    src = _create_site(tmp_path)
    dest = tmp_path / "rendered-public"

    _run(src, dest)

    cache = json.loads((dest / "math-cache.json").read_text(encoding="utf-8"))
    assert cache[str(src / "index.html")] == fingerprint(src / "index.html")
    assert str(src / "old.html.md5") not in cache
    assert all(Path(key).is_absolute() for key in cache)


def test_second_run_skips_everything_and_is_idempotent(tmp_path):
    src = _create_site(tmp_path)
    dest = tmp_path / "rendered-public"
    _run(src, dest)
    before = _snapshot(dest)

    renderer = FakeRenderer()
    stats = _run(src, dest, renderer=renderer)

    assert stats.rendered == 0
    assert stats.copied == 0
    assert stats.skipped == 5
    assert stats.directories == 2
    assert renderer.calls == []
    assert _snapshot(dest) == before


def test_changed_file_is_reprocessed(tmp_path):
    src = _create_site(tmp_path)
    dest = tmp_path / "rendered-public"
    _run(src, dest)

    (src / "index.html").write_text("<html><body><p>$y$ now</p></body></html>", encoding="utf-8")
    stats = _run(src, dest)

    assert stats.rendered == 1
    assert stats.skipped == 4
    assert '<span class="fake-math">y</span>' in (dest / "index.html").read_text(encoding="utf-8")


def test_force_reprocesses_every_file(tmp_path):
    src = _create_site(tmp_path)
    dest = tmp_path / "rendered-public"
    _run(src, dest)

    stats = _run(src, dest, force=True)

    assert stats.skipped == 0
    assert stats.rendered == 2
    assert stats.copied == 3

    assert _run(src, dest).skipped == 5


def test_failed_file_is_isolated_and_retried(tmp_path):
    src = _create_site(tmp_path)
    dest = tmp_path / "rendered-public"
    broken = src / "broken.html"
    broken.symlink_to(tmp_path / "missing.html")

    stats = _run(src, dest)

    assert stats.failed == 1
    assert stats.rendered == 2
    assert stats.copied == 3
    cache = json.loads((dest / "math-cache.json").read_text(encoding="utf-8"))
    assert str(broken) not in cache

    second = _run(src, dest)
    assert second.failed == 1
    assert second.skipped == 5


def test_destination_inside_source_is_not_mirrored(tmp_path):
    src = _create_site(tmp_path)
    dest = src / "out"

    _run(src, dest)
    stats = _run(src, dest)

    assert not (dest / "out").exists()
    assert stats.directories == 2


def test_invalid_roots_abort_before_processing(tmp_path):
    with pytest.raises(RuntimeError):
        _run(tmp_path / "missing", tmp_path / "dest")

    src = _create_site(tmp_path)
    with pytest.raises(RuntimeError):
        _run(src, src)

    not_a_dir = tmp_path / "file.txt"
    not_a_dir.write_text("x", encoding="utf-8")
    with pytest.raises(RuntimeError):
        _run(src, not_a_dir)


def test_corrupt_cache_aborts_run(tmp_path):
    src = _create_site(tmp_path)
    dest = tmp_path / "rendered-public"
    dest.mkdir()
    (dest / "math-cache.json").write_text("{broken", encoding="utf-8")

    with pytest.raises(CacheError):
        _run(src, dest)

    assert sorted(p.name for p in dest.iterdir()) == ["math-cache.json"]


def test_custom_cache_file_location(tmp_path):
    src = _create_site(tmp_path)
    dest = tmp_path / "rendered-public"
    cache_file = tmp_path / "state" / "cache.json"

    _run(src, dest, cache_file=cache_file)

    assert cache_file.exists()
    assert not (dest / "math-cache.json").exists()


def test_legacy_encoded_page_without_math_is_copied(tmp_path):
    src = _create_site(tmp_path)
    dest = tmp_path / "rendered-public"
    legacy = src / "legacy.html"
    legacy.write_bytes(b'<html><head><meta charset="iso-8859-1"></head><body><p>Caf\xe9</p></body></html>')

    stats = _run(src, dest)

    assert stats.failed == 0
    assert stats.copied == 4
    assert (dest / "legacy.html").read_bytes() == legacy.read_bytes()
    assert _run(src, dest).skipped == 6


def test_unwritable_cache_location_aborts_before_processing(tmp_path):
    src = _create_site(tmp_path)
    dest = tmp_path / "rendered-public"
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory", encoding="utf-8")

    with pytest.raises(CacheError):
        _run(src, dest, cache_file=blocker / "cache.json")

    assert not dest.exists()


def test_cache_path_that_is_a_directory_aborts_run(tmp_path):
    src = _create_site(tmp_path)
    dest = tmp_path / "rendered-public"
    (dest / "math-cache.json").mkdir(parents=True)

    with pytest.raises(CacheError):
        _run(src, dest)

    assert sorted(p.name for p in dest.iterdir()) == ["math-cache.json"]


def test_report_honours_quiet_levels(monkeypatch):
    messages = []

    class FakeLog:
        def info(self, fmt, *args):
            messages.append(fmt % args)

    monkeypatch.setattr(core, "LOG", FakeLog())
    path = Path("/site/a.html")

    core._report("COPY", path, core.RenderConfig())
    core._report("COPY", path, core.RenderConfig(quiet=True))
    core._report("RENDER", path, core.RenderConfig(quiet=True))
    core._report("RENDER", path, core.RenderConfig(quieter=True))

    assert messages == [f"COPY: {path}", f"RENDER: {path}"]
