"""TeX to MathML typesetting used by the substitution engine."""

from __future__ import annotations

from typing import Callable, Dict, Optional, Tuple

DISPLAY_CLASS = "math-display"

STYLESHEET_RULES = (
    f"div.{DISPLAY_CLASS} {{ display: block; text-align: center; margin: 1em 0; overflow-x: auto; }}\n"
    f"div.{DISPLAY_CLASS} > math {{ display: block math; }}\n"
    "math { font-family: 'STIX Two Math', 'Latin Modern Math', 'Cambria Math', math; }\n"
)


class RenderError(RuntimeError):
    pass


def _load_converter() -> Callable[..., str]:
    try:
        from latex2mathml.converter import convert  # type: ignore
    except Exception as exc:
        raise RuntimeError(f"latex2mathml not available: {exc}") from exc
    return convert


class MathRenderer:
    """Renders TeX notation to MathML markup.

    One instance is built per run and shared by every file, so repeated
    formulas across a site are converted once.
    """

    def __init__(self, converter: Optional[Callable[..., str]] = None) -> None:
        self._convert = converter or _load_converter()
        self._memo: Dict[Tuple[str, bool], str] = {}

    def render(self, notation: str, display: bool) -> str:
        key = (notation, display)
        cached = self._memo.get(key)
        if cached is not None:
            return cached
        try:
            mathml = self._convert(notation.strip(), display="block" if display else "inline")
        except Exception as exc:
            raise RenderError(f"Unable to render {notation!r}: {exc}") from exc
        markup = f'<div class="{DISPLAY_CLASS}">{mathml}</div>' if display else mathml
        self._memo[key] = markup
        return markup

    def stylesheet_rules(self) -> str:
        return STYLESHEET_RULES
