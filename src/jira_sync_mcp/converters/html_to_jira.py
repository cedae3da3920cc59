"""HTML (and Markdown) to Jira wiki markup conversion using regex patterns.

This is a best-effort, table-driven substitution pipeline, not a parser.
Nested or overlapping tags of the same kind are a known source of wrong
output; they are reported as warnings rather than silently trusted.
"""

import html
import re

import mistune

from .common import ConversionResult, detect_format_heuristic, html_to_jira_lang

_FLAGS = re.IGNORECASE | re.DOTALL

_markdown = mistune.create_markdown(
    renderer="html", plugins=["strikethrough", "table"]
)


def _strip_tags(text: str) -> str:
    return re.sub(r"<[^>]+>", "", text)


class HtmlToJiraConverter:
    """Converter from HTML rich text to Jira wiki markup."""

    def __init__(self):
        """Initialize converter with empty warnings and placeholder store."""
        self.warnings: list[str] = []
        self._placeholders: list[str] = []

    def convert(self, html_text: str) -> ConversionResult:
        """
        Convert HTML to Jira wiki markup.

        Args:
            html_text: HTML fragment, e.g. a task description

        Returns:
            ConversionResult with Jira markup and warnings about lossy conversions
        """
        self.warnings = []
        self._placeholders = []
        self._detect_lossy_elements(html_text)

        text = html_text.replace("\r\n", "\n")
        text = self._protect_preformatted(text)
        text = self._protect_inline_code(text)
        text = self._convert_headings(text)
        text = self._convert_emphasis(text)
        text = self._convert_lists(text)
        text = self._convert_paragraphs(text)
        text = self._convert_links(text)
        text = self._convert_blockquotes(text)
        text = self._convert_tables(text)
        text = self._convert_rules(text)
        text = _strip_tags(text)
        text = html.unescape(text)
        text = self._cleanup_whitespace(text)
        text = self._restore_placeholders(text)

        return ConversionResult(
            text=text,
            source_format="html",
            target_format="jira",
            converted=True,
            warnings=self.warnings,
        )

    def _detect_lossy_elements(self, text: str) -> None:
        """Detect constructs the pipeline cannot express faithfully."""
        if re.search(r"<(ul|ol)\b[^>]*>(?:(?!</\1>).)*<(ul|ol)\b", text, _FLAGS):
            self.warnings.append(
                "Nested lists detected - flattened to a single level"
            )
        for tag in ("b", "strong", "i", "em", "blockquote", "table"):
            if re.search(
                rf"<{tag}\b[^>]*>(?:(?!</{tag}>).)*<{tag}\b", text, _FLAGS
            ):
                self.warnings.append(
                    f"Nested <{tag}> tags detected - output may be incorrect"
                )
        if re.search(r"<img\b", text, re.IGNORECASE):
            self.warnings.append("Images detected - dropped (not supported)")
        if re.search(r"<t[dh]\b[^>]*\b(colspan|rowspan)=", text, re.IGNORECASE):
            self.warnings.append(
                "Table cell spanning detected - cells are not merged in Jira markup"
            )

    def _keep(self, fragment: str) -> str:
        """Store a finished fragment and return its placeholder."""
        self._placeholders.append(fragment)
        return f"\x00{len(self._placeholders) - 1}\x00"

    def _protect_preformatted(self, text: str) -> str:
        """Convert <pre> blocks to {code} first so later rules skip them."""

        def convert_pre(match: re.Match[str]) -> str:
            inner = match.group(1)
            lang_match = re.search(
                r"class=[\"'][^\"']*language-([\w+#-]+)", inner, re.IGNORECASE
            )
            body = html.unescape(_strip_tags(inner)).strip("\n")
            if lang_match:
                lang = html_to_jira_lang(lang_match.group(1))
                block = f"{{code:{lang}}}\n{body}\n{{code}}"
            else:
                block = f"{{code}}\n{body}\n{{code}}"
            return f"\n\n{self._keep(block)}\n\n"

        return re.sub(r"<pre\b[^>]*>(.*?)</pre>", convert_pre, text, flags=_FLAGS)

    def _protect_inline_code(self, text: str) -> str:
        """<code>/<tt> become {{monospace}} with their content left verbatim."""

        def convert_code(match: re.Match[str]) -> str:
            body = html.unescape(_strip_tags(match.group(2)))
            return self._keep(f"{{{{{body}}}}}")

        return re.sub(
            r"<(code|tt)\b[^>]*>(.*?)</\1>", convert_code, text, flags=_FLAGS
        )

    def _convert_headings(self, text: str) -> str:
        return re.sub(
            r"<h([1-6])\b[^>]*>(.*?)</h\1>",
            lambda m: f"\n\nh{m.group(1)}. {m.group(2).strip()}\n\n",
            text,
            flags=_FLAGS,
        )

    def _convert_emphasis(self, text: str) -> str:
        """Bold, italic, underline and strikethrough.

        Jira needs the markers directly against non-space characters, so
        surrounding whitespace is moved outside the markers.
        """
        rules = (
            (r"b|strong", "*"),
            (r"i|em", "_"),
            (r"u|ins", "+"),
            (r"s|strike|del", "-"),
            (r"sub", "~"),
            (r"sup", "^"),
        )
        for tags, marker in rules:

            def wrap(match: re.Match[str], marker: str = marker) -> str:
                inner = match.group(2)
                stripped = inner.strip()
                if not stripped:
                    return inner
                lead = inner[: len(inner) - len(inner.lstrip())]
                trail = inner[len(inner.rstrip()) :]
                return f"{lead}{marker}{stripped}{marker}{trail}"

            text = re.sub(
                rf"<({tags})\b[^>]*>(.*?)</\1>", wrap, text, flags=_FLAGS
            )
        return text

    def _convert_lists(self, text: str) -> str:
        """Unordered lists become '* ' lines, ordered lists 'N. ' lines.

        Innermost lists are converted first; a nested list ends up as extra
        lines after its parent item (flattened).
        """
        innermost = re.compile(
            r"<(ul|ol)\b([^>]*)>((?:(?!<(?:ul|ol)\b).)*?)</\1>", _FLAGS
        )

        def convert_list(match: re.Match[str]) -> str:
            ordered = match.group(1).lower() == "ol"
            start_match = re.search(r"\bstart=[\"']?(\d+)", match.group(2))
            counter = int(start_match.group(1)) if start_match else 1
            lines: list[str] = []
            for item in re.findall(r"<li\b[^>]*>(.*?)</li>", match.group(3), _FLAGS):
                item = re.sub(r"</?p\b[^>]*>", "\n", item, flags=re.IGNORECASE)
                parts = [p.strip() for p in item.split("\n") if p.strip()]
                if not parts:
                    continue
                marker = f"{counter}." if ordered else "*"
                counter += 1
                lines.append(f"{marker} {parts[0]}")
                lines.extend(parts[1:])
            return "\n\n" + "\n".join(lines) + "\n\n"

        previous = None
        while previous != text:
            previous = text
            text = innermost.sub(convert_list, text)
        return text

    def _convert_paragraphs(self, text: str) -> str:
        text = re.sub(r"<p\b[^>]*>(.*?)</p>", r"\1\n\n", text, flags=_FLAGS)
        return re.sub(r"<br\s*/?>\n?", "\n", text, flags=re.IGNORECASE)

    def _convert_links(self, text: str) -> str:
        def convert_link(match: re.Match[str]) -> str:
            url = match.group(1)
            label = _strip_tags(match.group(2)).strip()
            if not label or label == url:
                return f"[{url}]"
            return f"[{label}|{url}]"

        return re.sub(
            r"<a\b[^>]*href=[\"']([^\"']*)[\"'][^>]*>(.*?)</a>",
            convert_link,
            text,
            flags=_FLAGS,
        )

    def _convert_blockquotes(self, text: str) -> str:
        def convert_quote(match: re.Match[str]) -> str:
            lines = [
                line.strip()
                for line in _strip_tags(match.group(1)).split("\n")
                if line.strip()
            ]
            return "\n\n" + "\n".join(f"bq. {line}" for line in lines) + "\n\n"

        return re.sub(
            r"<blockquote\b[^>]*>(.*?)</blockquote>",
            convert_quote,
            text,
            flags=_FLAGS,
        )

    def _convert_tables(self, text: str) -> str:
        """Rows of <th> cells become '||' header rows, others '|' rows."""

        def convert_table(match: re.Match[str]) -> str:
            rows: list[str] = []
            for row in re.findall(r"<tr\b[^>]*>(.*?)</tr>", match.group(1), _FLAGS):
                cells = re.findall(r"<(th|td)\b[^>]*>(.*?)</\1>", row, _FLAGS)
                if not cells:
                    continue
                values = [
                    " ".join(_strip_tags(content).split()) or " "
                    for _, content in cells
                ]
                if all(kind.lower() == "th" for kind, _ in cells):
                    rows.append("||" + "||".join(values) + "||")
                else:
                    rows.append("|" + "|".join(values) + "|")
            return "\n\n" + "\n".join(rows) + "\n\n"

        return re.sub(
            r"<table\b[^>]*>(.*?)</table>", convert_table, text, flags=_FLAGS
        )

    def _convert_rules(self, text: str) -> str:
        return re.sub(r"<hr\b[^>]*>", "\n\n----\n\n", text, flags=re.IGNORECASE)

    def _cleanup_whitespace(self, text: str) -> str:
        lines = [line.rstrip() for line in text.split("\n")]
        text = "\n".join(lines)
        text = re.sub(r"\n{3,}", "\n\n", text)
        return text.strip()

    def _restore_placeholders(self, text: str) -> str:
        return re.sub(
            r"\x00(\d+)\x00",
            lambda m: self._placeholders[int(m.group(1))],
            text,
        )


def html_to_jira(html_text: str) -> ConversionResult:
    """
    Convert HTML to Jira wiki markup.

    Args:
        html_text: HTML formatted text

    Returns:
        ConversionResult with Jira markup and warnings about lossy conversions
    """
    return HtmlToJiraConverter().convert(html_text)


def convert_rich_text(rich: str) -> ConversionResult:
    """Convert a local description of any supported format to Jira markup.

    Markdown is rendered to HTML with mistune first; plain text passes
    through unchanged.
    """
    if not rich or not rich.strip():
        return ConversionResult(text="", source_format="plain", target_format="jira")

    source_format = detect_format_heuristic(rich)
    match source_format:
        case "html":
            return html_to_jira(rich)
        case "markdown":
            result = html_to_jira(_markdown(rich))
            result.source_format = "markdown"
            return result
        case _:
            return ConversionResult(
                text=rich.strip(),
                source_format="plain",
                target_format="jira",
                converted=False,
            )
