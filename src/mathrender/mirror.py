"""Source to destination path mapping."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class DirectoryMirror:
    src_root: Path
    dest_root: Path

    def target_path_for(self, source: Path) -> Path:
        return self.dest_root / source.relative_to(self.src_root)

    @staticmethod
    def ensure_dir(path: Path) -> None:
        path.mkdir(parents=True, exist_ok=True)
