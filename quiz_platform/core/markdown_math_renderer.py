"""Markdown + LaTeX rendering of question text for API clients.

Question text and explanations are stored as markdown and sent to clients as
HTML fragments. LaTeX delimiters ($...$, $$...$$) are left in place so the
client can typeset them with MathJax.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from markdown_it import MarkdownIt

MATHJAX_SCRIPT_URL = "https://cdn.jsdelivr.net/npm/mathjax@3/es5/tex-mml-chtml.js"


@dataclass(slots=True)
class MarkdownMathRenderer:
    """Converts markdown-with-math into HTML fragments."""

    enable_html: bool = False
    _markdown: MarkdownIt = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._markdown = (
            MarkdownIt("commonmark", {"html": self.enable_html})
            .enable("table")
            .enable("strikethrough")
        )

    def render_fragment(self, markdown_text: str) -> str:
        """Render a markdown string into an HTML fragment."""

        sanitized = markdown_text.strip() or ""
        if not sanitized:
            return "<p><em>No content provided.</em></p>"
        return self._markdown.render(sanitized)

    def render_inline(self, markdown_text: str) -> str:
        """Render a single line (an answer option) without the wrapping paragraph."""

        return self._markdown.renderInline(markdown_text.strip())

    def render_optional(self, markdown_text: str | None) -> str | None:
        if not markdown_text or not markdown_text.strip():
            return None
        return self.render_fragment(markdown_text)


renderer = MarkdownMathRenderer()
# Shared instance; MarkdownIt is safe for concurrent read-only renders.
