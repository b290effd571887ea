"""Per-file HTML rewrite: parse, substitute math, inject styles, write."""

from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Any, TYPE_CHECKING

from .substitution import Renderer, substitute_math

if TYPE_CHECKING:
    from .core import RunStatistics

LOG = logging.getLogger("mathrender")

STYLESHEET_ID = "mathrender-styles"
HTML_SUFFIXES = (".html", ".htm")


def is_html_file(path: Path) -> bool:
    return path.suffix.lower() in HTML_SUFFIXES


def inject_stylesheet(soup: Any, css: str) -> None:
    """Place ``css`` in a single ``<style id="mathrender-styles">`` in the head.

    An existing style with that id is reused wherever it sits in the document.
    """
    existing = soup.find("style", id=STYLESHEET_ID)
    if existing is not None:
        existing.string = css
        return
    head = soup.head
    if head is None:
        head = soup.new_tag("head")
        container = soup.html if soup.html is not None else soup
        container.insert(0, head)
    style = soup.new_tag("style", id=STYLESHEET_ID)
    style.string = css
    head.append(style)


class HtmlTransformer:
    def __init__(self, renderer: Renderer, stats: "RunStatistics") -> None:
        self.renderer = renderer
        self.stats = stats

    def transform(self, source: Path, target: Path) -> bool:
        """Write the rendered document to ``target``, or copy it untouched.

        Returns True when math was rendered.
        """
        try:
            from bs4 import BeautifulSoup  # type: ignore
        except Exception as exc:
            raise RuntimeError(f"beautifulsoup4 not available: {exc}") from exc

        # bytes let bs4 honour a declared or detected non-UTF-8 encoding
        soup = BeautifulSoup(source.read_bytes(), "html.parser")
        root = soup.body if soup.body is not None else soup

        if not substitute_math(root, self.renderer, source=str(source)):
            shutil.copyfile(source, target)
            self.stats.copied += 1
            return False

        inject_stylesheet(soup, self.renderer.stylesheet_rules())
        target.write_bytes(soup.encode("utf-8"))
        self.stats.rendered += 1
        LOG.debug("Rendered math in %s -> %s", source, target)
        return True
