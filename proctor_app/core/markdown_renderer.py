"""Markdown rendering for question prompts served to the candidate page.

Architecture note:
    Prompts are stored as markdown in the question bank and rendered per
    request. Raw HTML in a prompt is not passed through, so a question file
    cannot inject markup into the candidate page. Fenced code blocks keep
    their ``language-*`` class so the page can highlight them client-side.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from markdown_it import MarkdownIt

from proctor_app.core.models import Question

_EMPTY_PROMPT_HTML = "<p><em>No content provided.</em></p>"


@dataclass(slots=True)
class MarkdownRenderer:
    """Converts markdown prompts into HTML fragments."""

    enable_html: bool = False
    _markdown: MarkdownIt = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._markdown = (
            MarkdownIt("commonmark", {"html": self.enable_html})
            .enable("table")
            .enable("strikethrough")
        )

    def render_fragment(self, markdown_text: str) -> str:
        sanitized = markdown_text.strip()
        if not sanitized:
            return _EMPTY_PROMPT_HTML
        return self._markdown.render(sanitized)

    def render_question(self, question: Question) -> str:
        """Render the prompt and, for coding questions, the starter code as a fenced block."""
        html = self.render_fragment(question.question_text)
        if question.starter_code:
            fence = f"```{question.language or ''}\n{question.starter_code}\n```"
            html += self._markdown.render(fence)
        return html


# MarkdownIt is safe for concurrent read-only renders, so one instance is shared.
renderer = MarkdownRenderer()
