"""Markdown + LaTeX rendering for question and option text.

Math is left in place for MathJax, which the participant page loads and
typesets client-side. Every state poll re-renders the visible questions, so
fragments are memoized per source string.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from markdown_it import MarkdownIt

MATHJAX_SCRIPT_URL = "https://cdn.jsdelivr.net/npm/mathjax@3/es5/tex-mml-chtml.js"
EMPTY_FRAGMENT_HTML = "<p><em>No content provided.</em></p>"


@dataclass(slots=True)
class MarkdownMathRenderer:
    """Turns question and option markup into cached HTML fragments."""

    enable_html: bool = False
    cache_size: int = 512
    _markdown: MarkdownIt = field(init=False, repr=False)
    _blocks: dict[str, str] = field(init=False, repr=False, default_factory=dict)
    _inlines: dict[str, str] = field(init=False, repr=False, default_factory=dict)

    def __post_init__(self) -> None:
        self._markdown = (
            MarkdownIt("commonmark", {"html": self.enable_html})
            .enable("table")
            .enable("strikethrough")
        )

    def render_fragment(self, markdown_text: str) -> str:
        source = markdown_text.strip()
        if not source:
            return EMPTY_FRAGMENT_HTML
        return self._memo(self._blocks, source, self._markdown.render)

    def render_inline(self, markdown_text: str) -> str:
        """Render without the wrapping paragraph, for option buttons."""
        return self._memo(self._inlines, markdown_text.strip(), self._markdown.renderInline)

    def render_question(self, question_text: str, options: list[str]) -> tuple[str, list[str]]:
        return self.render_fragment(question_text), [self.render_inline(option) for option in options]

    def _memo(self, cache: dict[str, str], source: str, render) -> str:
        html = cache.get(source)
        if html is None:
            if len(cache) >= self.cache_size:
                cache.clear()
            html = cache[source] = render(source)
        return html


renderer = MarkdownMathRenderer()
