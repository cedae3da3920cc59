"""Common types and utilities for rich-text conversion."""

import re
from dataclasses import dataclass, field

# =============================================================================
# Code Block Language Mapping
# =============================================================================
#
# HTML:  <pre><code class="language-python">
# Jira:  {code:python}
#
# Jira's {code} macro knows a fixed set of language names. HTML class names
# coming from Markdown fences are normalised onto that set; unknown
# languages pass through unchanged.
# =============================================================================

# HTML/Markdown language identifier -> Jira {code} language
_HTML_TO_JIRA_LANG: dict[str, str] = {
    "sh": "bash",
    "shell": "bash",
    "zsh": "bash",
    "js": "javascript",
    "ts": "typescript",
    "c++": "cpp",
    "py": "python",
    "yml": "yaml",
    "text": "none",
    "plaintext": "none",
    "plain": "none",
}

# Jira {code} language -> HTML language class (canonical form)
_JIRA_TO_HTML_LANG: dict[str, str] = {
    "none": "text",
    "bash": "bash",
    "javascript": "javascript",
    "typescript": "typescript",
    "cpp": "cpp",
}


def html_to_jira_lang(lang: str) -> str:
    """
    Convert an HTML code language class to a Jira {code} language.

    Examples:
        >>> html_to_jira_lang("sh")
        'bash'
        >>> html_to_jira_lang("python")
        'python'
    """
    return _HTML_TO_JIRA_LANG.get(lang.lower(), lang)


def jira_to_html_lang(lang: str) -> str:
    """
    Convert a Jira {code} language to an HTML language class.

    Examples:
        >>> jira_to_html_lang("none")
        'text'
        >>> jira_to_html_lang("java")
        'java'
    """
    return _JIRA_TO_HTML_LANG.get(lang.lower(), lang)


@dataclass
class ConversionResult:
    """Result of format conversion with metadata and warnings.

    Attributes:
        text: Converted text output
        source_format: Format of input text ('html', 'markdown', 'plain' or 'jira')
        target_format: Format of output text ('jira' or 'html')
        converted: True if conversion performed, False if pass-through
        warnings: List of warnings about lossy conversions or unsupported features
    """

    text: str
    source_format: str = "unknown"
    target_format: str = "unknown"
    converted: bool = False
    warnings: list[str] = field(default_factory=list)


_HTML_TAG = re.compile(
    r"</?(p|br|b|strong|i|em|u|s|del|strike|code|pre|h[1-6]|ul|ol|li|a|"
    r"blockquote|table|tr|td|th|div|span|hr)\b[^>]*>",
    re.IGNORECASE,
)


def detect_format_heuristic(text: str) -> str:
    """Guess whether a local description is HTML, Markdown or plain text.

    Priority:
    1. Any recognised HTML tag means 'html'
    2. Unambiguous Markdown markers (# headings, fences, [x](y) links,
       ** bold, list bullets) score toward 'markdown'
    3. Otherwise 'plain'
    """
    if _HTML_TAG.search(text):
        return "html"

    md_score = (
        len(re.findall(r"^#{1,6}\s+\S", text, re.MULTILINE))
        + text.count("```")
        + text.count("](")
        + text.count("**")
        + len(re.findall(r"^\s*[-*+]\s+\S", text, re.MULTILINE))
        + len(re.findall(r"^\s*\d+\.\s+\S", text, re.MULTILINE))
    )
    return "markdown" if md_score > 0 else "plain"
