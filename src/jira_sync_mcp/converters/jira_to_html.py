"""Jira wiki markup to HTML conversion.

Block structure (code, headings, quotes, lists, tables, rules, paragraphs)
is recognised line by line; inline formatting is applied per line with
regex rules. Finished fragments are parked behind ``\\x00N\\x00``
placeholders so later rules never rewrite them.
"""

import html
import re

from .common import ConversionResult, jira_to_html_lang

_HEADING = re.compile(r"^h([1-6])\.\s+(.*)$")
_BLOCKQUOTE = re.compile(r"^bq\.\s+(.*)$")
_LIST_ITEM = re.compile(r"^([*#-]+)\s+(.*)$")
_NUMBERED_ITEM = re.compile(r"^(\d+)\.\s+(.*)$")
_TABLE_HEADER = re.compile(r"^\|\|(.*)\|\|\s*$")
_TABLE_ROW = re.compile(r"^\|(.*)\|\s*$")
_RULE = re.compile(r"^-{4,}\s*$")
_CODE_OPEN = re.compile(r"^\{(code|noformat)(?::([^}]*))?\}(.*)$")
_QUOTE_FENCE = "{quote}"

_INLINE_RULES: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"(?<![\w*])\*(?=\S)([^*\n]+?)(?<=\S)\*(?![\w*])"), "strong"),
    (re.compile(r"(?<![\w_])_(?=\S)([^_\n]+?)(?<=\S)_(?![\w_])"), "em"),
    (re.compile(r"(?<![\w+])\+(?=\S)([^+\n]+?)(?<=\S)\+(?![\w+])"), "u"),
    (re.compile(r"(?<![\w-])-(?=\S)([^-\n]+?)(?<=\S)-(?![\w-])"), "del"),
    (re.compile(r"(?<![\w~])~(?=\S)([^~\n]+?)(?<=\S)~(?![\w~])"), "sub"),
    (re.compile(r"(?<![\w^])\^(?=\S)([^\^\n]+?)(?<=\S)\^(?![\w^])"), "sup"),
    (re.compile(r"\?\?(?=\S)(.+?)(?<=\S)\?\?"), "cite"),
)


class JiraMarkupParser:
    """Parser for converting Jira wiki markup to HTML."""

    def __init__(self):
        """Initialize parser with empty warnings list."""
        self.warnings: list[str] = []
        self._stash: list[str] = []

    def parse(self, markup: str) -> ConversionResult:
        """
        Parse Jira wiki markup and convert it to HTML.

        Unknown macros pass through as text; unsupported constructs are
        listed in the result warnings.

        Args:
            markup: Jira wiki markup

        Returns:
            ConversionResult with HTML text and warnings about lossy conversions
        """
        self.warnings = []
        self._stash = []
        self._detect_lossy_elements(markup)
        lines = markup.replace("\r\n", "\n").split("\n")
        body = "\n".join(self._parse_blocks(lines))
        body = self._restore(body)
        return ConversionResult(
            text=body,
            source_format="jira",
            target_format="html",
            converted=True,
            warnings=self.warnings,
        )

    def _detect_lossy_elements(self, text: str) -> None:
        if re.search(r"^(\*\*|##|#\*|\*#)+\s", text, re.MULTILINE):
            self.warnings.append(
                "Nested list items detected - flattened to a single level"
            )
        if re.search(r"![^!\s][^!]*!", text):
            self.warnings.append("Embedded images detected - left as text")
        if re.search(r"\{(panel|expand|info|note|warning)\b", text):
            self.warnings.append("Panel macros detected - left as text")
        if re.search(r"\[~[^\]]+\]", text):
            self.warnings.append("User mentions detected - left as text")

    # ------------------------------------------------------------------
    # Block level
    # ------------------------------------------------------------------

    def _parse_blocks(self, lines: list[str]) -> list[str]:
        blocks: list[str] = []
        paragraph: list[str] = []
        i = 0

        def flush_paragraph() -> None:
            if paragraph:
                blocks.append(
                    "<p>" + "<br>".join(self._inline(p) for p in paragraph) + "</p>"
                )
                paragraph.clear()

        while i < len(lines):
            line = lines[i]
            stripped = line.strip()

            code_match = _CODE_OPEN.match(stripped)
            if code_match:
                flush_paragraph()
                i = self._consume_code(lines, i, code_match, blocks)
                continue

            if stripped == _QUOTE_FENCE:
                flush_paragraph()
                inner: list[str] = []
                i += 1
                while i < len(lines) and lines[i].strip() != _QUOTE_FENCE:
                    inner.append(lines[i])
                    i += 1
                i += 1
                blocks.append(
                    "<blockquote>"
                    + "".join(self._parse_blocks(inner))
                    + "</blockquote>"
                )
                continue

            if not stripped:
                flush_paragraph()
                i += 1
                continue

            if _RULE.match(stripped):
                flush_paragraph()
                blocks.append("<hr>")
                i += 1
                continue

            heading = _HEADING.match(stripped)
            if heading:
                flush_paragraph()
                level = heading.group(1)
                blocks.append(
                    f"<h{level}>{self._inline(heading.group(2))}</h{level}>"
                )
                i += 1
                continue

            if _BLOCKQUOTE.match(stripped):
                flush_paragraph()
                quoted: list[str] = []
                while i < len(lines):
                    bq = _BLOCKQUOTE.match(lines[i].strip())
                    if not bq:
                        break
                    quoted.append(self._inline(bq.group(1)))
                    i += 1
                blocks.append(
                    "<blockquote><p>" + "<br>".join(quoted) + "</p></blockquote>"
                )
                continue

            if self._list_kind(stripped):
                flush_paragraph()
                i = self._consume_list(lines, i, blocks)
                continue

            if _TABLE_HEADER.match(stripped) or _TABLE_ROW.match(stripped):
                flush_paragraph()
                i = self._consume_table(lines, i, blocks)
                continue

            paragraph.append(stripped)
            i += 1

        flush_paragraph()
        return blocks

    def _consume_code(
        self,
        lines: list[str],
        i: int,
        match: re.Match[str],
        blocks: list[str],
    ) -> int:
        """Collect a {code}/{noformat} block starting at line *i*."""
        macro, params, rest = match.group(1), match.group(2), match.group(3)
        closing = f"{{{macro}}}"
        body: list[str] = []

        if closing in rest:
            body.append(rest.split(closing, 1)[0])
            i += 1
        else:
            if rest.strip():
                body.append(rest)
            i += 1
            while i < len(lines):
                if closing in lines[i]:
                    before = lines[i].split(closing, 1)[0]
                    if before.strip():
                        body.append(before)
                    i += 1
                    break
                body.append(lines[i])
                i += 1
            else:
                self.warnings.append(f"Unclosed {{{macro}}} block")

        lang = self._code_language(params) if macro == "code" else None
        css = f' class="language-{html.escape(lang)}"' if lang else ""
        code = html.escape("\n".join(body), quote=False)
        blocks.append(self._keep(f"<pre><code{css}>{code}</code></pre>"))
        return i

    @staticmethod
    def _code_language(params: str | None) -> str | None:
        """Extract the language from ``{code:java}`` or ``{code:language=java|title=x}``."""
        if not params:
            return None
        for part in params.split("|"):
            if "=" in part:
                key, value = part.split("=", 1)
                if key.strip().lower() == "language":
                    return jira_to_html_lang(value.strip())
            else:
                return jira_to_html_lang(part.strip())
        return None

    @staticmethod
    def _list_kind(stripped: str) -> str | None:
        """Return 'ul' or 'ol' if the line is a list item, else None."""
        item = _LIST_ITEM.match(stripped)
        if item:
            return "ol" if item.group(1)[-1] == "#" else "ul"
        if _NUMBERED_ITEM.match(stripped):
            return "ol"
        return None

    def _consume_list(self, lines: list[str], i: int, blocks: list[str]) -> int:
        """Group consecutive list items of the same kind into one list."""
        kind = self._list_kind(lines[i].strip())
        items: list[str] = []
        start: int | None = None
        while i < len(lines):
            stripped = lines[i].strip()
            if self._list_kind(stripped) != kind:
                break
            item = _LIST_ITEM.match(stripped)
            numbered = None if item else _NUMBERED_ITEM.match(stripped)
            if item:
                text = item.group(2)
            elif numbered:
                if start is None:
                    start = int(numbered.group(1))
                text = numbered.group(2)
            else:
                break
            items.append(f"<li>{self._inline(text)}</li>")
            i += 1
        start_attr = f' start="{start}"' if start not in (None, 1) else ""
        open_tag = f"<ol{start_attr}>" if kind == "ol" else "<ul>"
        blocks.append(f"{open_tag}{''.join(items)}</{kind}>")
        return i

    def _consume_table(self, lines: list[str], i: int, blocks: list[str]) -> int:
        rows: list[str] = []
        while i < len(lines):
            stripped = lines[i].strip()
            header = _TABLE_HEADER.match(stripped)
            row = None if header else _TABLE_ROW.match(stripped)
            if header:
                cells = header.group(1).split("||")
                rows.append(
                    "<tr>"
                    + "".join(f"<th>{self._inline(c.strip())}</th>" for c in cells)
                    + "</tr>"
                )
            elif row:
                cells = row.group(1).split("|")
                rows.append(
                    "<tr>"
                    + "".join(f"<td>{self._inline(c.strip())}</td>" for c in cells)
                    + "</tr>"
                )
            else:
                break
            i += 1
        blocks.append("<table>" + "".join(rows) + "</table>")
        return i

    # ------------------------------------------------------------------
    # Inline level
    # ------------------------------------------------------------------

    def _keep(self, fragment: str) -> str:
        self._stash.append(fragment)
        return f"\x00{len(self._stash) - 1}\x00"

    def _restore(self, text: str) -> str:
        pattern = re.compile(r"\x00(\d+)\x00")
        # Stashed fragments may themselves contain placeholders
        while pattern.search(text):
            text = pattern.sub(lambda m: self._stash[int(m.group(1))], text)
        return text

    def _inline(self, text: str) -> str:
        text = re.sub(
            r"\{\{(.+?)\}\}",
            lambda m: self._keep(
                f"<code>{html.escape(m.group(1), quote=False)}</code>"
            ),
            text,
        )
        text = re.sub(
            r"\[([^\[\]|]+)\|([^\[\]\s|]+)\]",
            lambda m: self._keep(
                f'<a href="{html.escape(m.group(2))}">'
                f"{html.escape(m.group(1).strip(), quote=False)}</a>"
            ),
            text,
        )
        text = re.sub(
            r"\[((?:https?|ftp|mailto):[^\[\]\s|]+)\]",
            lambda m: self._keep(
                f'<a href="{html.escape(m.group(1))}">'
                f"{html.escape(m.group(1), quote=False)}</a>"
            ),
            text,
        )
        text = re.sub(
            r"\{color:([#\w]+)\}(.*?)\{color\}",
            lambda m: self._keep(
                f'<span style="color: {html.escape(m.group(1))}">'
                f"{self._inline(m.group(2))}</span>"
            ),
            text,
        )
        text = html.escape(text, quote=False)
        for pattern, tag in _INLINE_RULES:
            text = pattern.sub(rf"<{tag}>\1</{tag}>", text)
        return text.replace("\\\\", "<br>")


def jira_to_html(markup: str) -> ConversionResult:
    """
    Convert Jira wiki markup to HTML.

    Args:
        markup: Jira wiki markup text

    Returns:
        ConversionResult with HTML and warnings about lossy conversions
    """
    return JiraMarkupParser().parse(markup)
