"""Locate TeX math in a parsed HTML tree and splice in rendered markup."""

from __future__ import annotations

import html
import logging
import re
from dataclasses import dataclass
from typing import Any, List, Optional, Protocol

from .latex import RenderError

LOG = logging.getLogger("mathrender")

DISPLAY_MATH_RE = re.compile(r"\$\$(.*?)\$\$", re.DOTALL)
INLINE_MATH_RE = re.compile(r"(?<!\\)\$([^$]+?)\$")

# org-mode exports display math blocks as <div class="latex-block">
MATH_BLOCK_CLASS = "latex-block"
# head and title also guard documents whose optional <body> tag was omitted
OPAQUE_TAGS = frozenset({"head", "title", "script", "style", "code", "pre", "textarea"})


class Renderer(Protocol):
    def render(self, notation: str, display: bool) -> str: ...

    def stylesheet_rules(self) -> str: ...


@dataclass
class MathSpan:
    notation: str
    display: bool
    start: int
    end: int
    node: Any = None


def find_math_spans(text: str, node: Any = None) -> List[MathSpan]:
    """Return the math spans of ``text`` in document order.

    Display spans are located first; inline spans are only searched in the
    gaps between them, so ``$$a$$`` never yields two inline matches.
    """
    spans: List[MathSpan] = []
    gap_start = 0
    for match in DISPLAY_MATH_RE.finditer(text):
        spans.extend(_inline_spans(text, gap_start, match.start(), node))
        spans.append(MathSpan(match.group(1), True, match.start(), match.end(), node))
        gap_start = match.end()
    spans.extend(_inline_spans(text, gap_start, len(text), node))
    return spans


def _inline_spans(text: str, start: int, end: int, node: Any) -> List[MathSpan]:
    gap = text[start:end]
    return [
        MathSpan(m.group(1), False, start + m.start(), start + m.end(), node)
        for m in INLINE_MATH_RE.finditer(gap)
    ]


def _render_or_none(renderer: Renderer, notation: str, display: bool, source: Optional[str]) -> Optional[str]:
    try:
        return renderer.render(notation, display)
    except RenderError as exc:
        LOG.warning("Math left unrendered in %s: %s", source or "<document>", exc)
        return None


def _build_fragment(text: str, spans: List[MathSpan], renderer: Renderer, source: Optional[str]) -> Optional[str]:
    parts: List[str] = []
    cursor = 0
    rendered_any = False
    for span in spans:
        markup = _render_or_none(renderer, span.notation, span.display, source)
        if markup is None:
            continue
        parts.append(html.escape(text[cursor : span.start], quote=False))
        parts.append(markup)
        cursor = span.end
        rendered_any = True
    if not rendered_any:
        return None
    parts.append(html.escape(text[cursor:], quote=False))
    return "".join(parts)


def _replace_with_markup(node: Any, markup: str) -> None:
    from bs4 import BeautifulSoup  # type: ignore

    fragment = BeautifulSoup(markup, "html.parser")
    node.replace_with(*list(fragment.contents))


def substitute_math(root: Any, renderer: Renderer, source: Optional[str] = None) -> bool:
    """Render every math occurrence below ``root`` in place.

    Returns True when at least one node was replaced. ``source`` only labels
    log messages.
    """
    try:
        from bs4 import NavigableString, Tag  # type: ignore
        from bs4.element import PreformattedString  # type: ignore
    except Exception as exc:
        raise RuntimeError(f"beautifulsoup4 not available: {exc}") from exc

    changed = False
    pending: List[Any] = [root]
    while pending:
        node = pending.pop()

        if isinstance(node, NavigableString):
            if isinstance(node, PreformattedString):
                continue
            text = str(node)
            spans = find_math_spans(text, node)
            if not spans:
                continue
            fragment = _build_fragment(text, spans, renderer, source)
            if fragment is None:
                continue
            _replace_with_markup(node, fragment)
            changed = True
            continue

        if not isinstance(node, Tag):
            continue

        if MATH_BLOCK_CLASS in (node.get("class") or []):
            markup = _render_or_none(renderer, node.get_text(), True, source)
            if markup is not None:
                _replace_with_markup(node, markup)
                changed = True
            continue

        if node.name in OPAQUE_TAGS:
            continue

        # snapshot: replacing a child must not disturb the sibling walk
        pending.extend(reversed(list(node.children)))

    return changed
