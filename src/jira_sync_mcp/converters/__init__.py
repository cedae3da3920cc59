"""Rich-text conversion between local descriptions and Jira.

The sync engine only uses the two narrow entry points below, so the
regex pipelines behind them can be swapped for real parsers without
touching reconciliation code:

- ``to_remote_markup(rich)``: HTML, Markdown or plain text to Jira markup.
- ``from_remote_markup(markup)``: Jira markup or an ADF document to HTML.
"""

import logging
from typing import Any

from .adf import adf_to_html, markup_to_adf
from .common import (
    ConversionResult,
    detect_format_heuristic,
    html_to_jira_lang,
    jira_to_html_lang,
)
from .html_to_jira import HtmlToJiraConverter, convert_rich_text, html_to_jira
from .jira_to_html import JiraMarkupParser, jira_to_html

logger = logging.getLogger(__name__)


def to_remote_markup(rich: str | None) -> str:
    """Convert a local rich-text description to Jira wiki markup."""
    result = convert_rich_text(rich or "")
    for warning in result.warnings:
        logger.debug("HTML->Jira conversion: %s", warning)
    return result.text


def from_remote_markup(markup: str | dict[str, Any] | None) -> str:
    """Convert a Jira description (markup string or ADF document) to HTML.

    Raises:
        TransformError: If *markup* is a dict that is not an ADF document.
    """
    if markup is None:
        return ""
    if isinstance(markup, dict):
        return adf_to_html(markup)
    if not markup.strip():
        return ""
    result = jira_to_html(markup)
    for warning in result.warnings:
        logger.debug("Jira->HTML conversion: %s", warning)
    return result.text


__all__ = [
    "ConversionResult",
    "HtmlToJiraConverter",
    "JiraMarkupParser",
    "adf_to_html",
    "convert_rich_text",
    "detect_format_heuristic",
    "from_remote_markup",
    "html_to_jira",
    "html_to_jira_lang",
    "jira_to_html",
    "jira_to_html_lang",
    "markup_to_adf",
    "to_remote_markup",
]
