"""Atlassian Document Format (ADF) support.

REST API v3 returns and accepts issue descriptions as ADF JSON documents
instead of wiki markup. ``adf_to_html`` renders such a document to the
HTML used by local descriptions; ``markup_to_adf`` wraps wiki markup
produced by the transcoder into a minimal ADF document for writes.
"""

import html
import logging
from typing import Any

from ..errors import TransformError

logger = logging.getLogger(__name__)


class AdfRenderer:
    """Render an ADF node tree to HTML.

    Unknown node types render their children; unknown marks leave the text
    untouched. Every unknown type is recorded in ``warnings``.
    """

    def __init__(self) -> None:
        self.warnings: list[str] = []

    def render(self, doc: Any) -> str:
        if not isinstance(doc, dict) or doc.get("type") != "doc":
            raise TransformError("Description is not an ADF document")
        self.warnings = []
        return self._render_nodes(doc.get("content"))

    def _render_nodes(self, nodes: Any) -> str:
        if not isinstance(nodes, list):
            return ""
        return "".join(
            self._render_node(node) for node in nodes if isinstance(node, dict)
        )

    def _render_node(self, node: dict[str, Any]) -> str:
        attrs = node.get("attrs") or {}
        inner = self._render_nodes(node.get("content"))

        match node.get("type"):
            case "paragraph":
                return f"<p>{inner}</p>"
            case "orderedList":
                start = attrs.get("order") or 1
                return f'<ol start="{start}">{inner}</ol>'
            case "bulletList":
                return f"<ul>{inner}</ul>"
            case "listItem":
                return f"<li>{inner}</li>"
            case "heading":
                level = min(max(int(attrs.get("level") or 1), 1), 6)
                return f"<h{level}>{inner}</h{level}>"
            case "codeBlock":
                language = attrs.get("language") or ""
                css = f' class="language-{html.escape(language)}"' if language else ""
                return f"<pre><code{css}>{inner}</code></pre>"
            case "blockquote":
                return f"<blockquote>{inner}</blockquote>"
            case "horizontalRule":
                return "<hr/>"
            case "hardBreak":
                return "<br/>"
            case "text":
                return self._render_text(node)
            case "table":
                return f"<table>{inner}</table>"
            case "tableRow":
                return f"<tr>{inner}</tr>"
            case "tableHeader":
                return f"<th>{inner}</th>"
            case "tableCell":
                return f"<td>{inner}</td>"
            case other:
                self.warnings.append(f"Unsupported ADF node '{other}' flattened")
                return inner

    def _render_text(self, node: dict[str, Any]) -> str:
        text = html.escape(node.get("text") or "", quote=False)
        for mark in node.get("marks") or []:
            if not isinstance(mark, dict):
                continue
            mark_attrs = mark.get("attrs") or {}
            match mark.get("type"):
                case "strong":
                    text = f"<strong>{text}</strong>"
                case "em":
                    text = f"<em>{text}</em>"
                case "underline":
                    text = f"<u>{text}</u>"
                case "strike":
                    text = f"<del>{text}</del>"
                case "code":
                    text = f"<code>{text}</code>"
                case "link":
                    href = html.escape(mark_attrs.get("href") or "#")
                    text = f'<a href="{href}">{text}</a>'
                case "textColor":
                    color = html.escape(mark_attrs.get("color") or "#000000")
                    text = f'<span style="color: {color}">{text}</span>'
                case "backgroundColor":
                    color = html.escape(
                        mark_attrs.get("backgroundColor") or "transparent"
                    )
                    text = f'<span style="background-color: {color}">{text}</span>'
                case other:
                    self.warnings.append(f"Unsupported ADF mark '{other}' ignored")
        return text


def adf_to_html(doc: Any) -> str:
    """Render an ADF document to HTML.

    Raises:
        TransformError: If *doc* is not an ADF ``doc`` node.
    """
    renderer = AdfRenderer()
    result = renderer.render(doc)
    for warning in renderer.warnings:
        logger.debug("ADF conversion: %s", warning)
    return result


def markup_to_adf(markup: str) -> dict[str, Any]:
    """Wrap wiki markup text into an ADF document.

    Blank lines separate paragraphs; single newlines become hard breaks.
    The markup itself is carried as plain text.
    """
    paragraphs: list[dict[str, Any]] = []
    for block in markup.replace("\r\n", "\n").split("\n\n"):
        lines = block.split("\n")
        if not any(line.strip() for line in lines):
            continue
        content: list[dict[str, Any]] = []
        for i, line in enumerate(lines):
            if i:
                content.append({"type": "hardBreak"})
            if line:
                content.append({"type": "text", "text": line})
        paragraphs.append({"type": "paragraph", "content": content})
    return {"type": "doc", "version": 1, "content": paragraphs}
