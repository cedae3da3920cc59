"""
Tests for the HTML to Jira markup converter and the Jira markup to HTML parser.
"""

import unittest

from jira_sync_mcp.converters import (
    ConversionResult,
    convert_rich_text,
    from_remote_markup,
    html_to_jira,
    jira_to_html,
    to_remote_markup,
)
from jira_sync_mcp.converters.common import (
    detect_format_heuristic,
    html_to_jira_lang,
    jira_to_html_lang,
)


class TestHtmlToJira(unittest.TestCase):
    """Test HTML to Jira wiki markup conversion."""

    def test_bold(self):
        self.assertEqual(to_remote_markup("<b>x</b>"), "*x*")
        self.assertEqual(to_remote_markup("<strong>x</strong>"), "*x*")

    def test_italic(self):
        self.assertEqual(to_remote_markup("<i>x</i>"), "_x_")

    def test_underline_and_strike(self):
        self.assertEqual(to_remote_markup("<u>a</u> <del>b</del>"), "+a+ -b-")

    def test_markers_hug_text(self):
        """Whitespace inside a tag moves outside the Jira markers."""
        self.assertEqual(to_remote_markup("a<b> bold </b>b"), "a *bold* b")

    def test_paragraph(self):
        result = to_remote_markup("<p>Hello <b>world</b></p>")
        self.assertEqual(result, "Hello *world*")

    def test_two_paragraphs(self):
        result = to_remote_markup("<p>One</p><p>Two</p>")
        self.assertEqual(result, "One\n\nTwo")

    def test_line_break(self):
        self.assertEqual(to_remote_markup("<p>a<br>b</p>"), "a\nb")

    def test_unordered_list(self):
        result = to_remote_markup("<ul><li>a</li><li>b</li></ul>")
        self.assertEqual(result, "* a\n* b")

    def test_ordered_list(self):
        result = to_remote_markup("<ol><li>first</li><li>second</li></ol>")
        self.assertEqual(result, "1. first\n2. second")

    def test_nested_list_flattened_with_warning(self):
        result = html_to_jira("<ul><li>a<ul><li>b</li></ul></li></ul>")
        self.assertIn("* b", result.text)
        self.assertTrue(any("Nested lists" in w for w in result.warnings))

    def test_link(self):
        result = to_remote_markup('<a href="https://x.io">site</a>')
        self.assertEqual(result, "[site|https://x.io]")

    def test_bare_link(self):
        result = to_remote_markup('<a href="https://x.io">https://x.io</a>')
        self.assertEqual(result, "[https://x.io]")

    def test_heading(self):
        self.assertEqual(to_remote_markup("<h2>Title</h2>"), "h2. Title")

    def test_code_block_with_language(self):
        result = to_remote_markup(
            '<pre><code class="language-py">print(1)</code></pre>'
        )
        self.assertEqual(result, "{code:python}\nprint(1)\n{code}")

    def test_code_block_keeps_markup_verbatim(self):
        """Text inside <pre> is not treated as formatting."""
        result = to_remote_markup("<pre><code>&lt;b&gt;x&lt;/b&gt;</code></pre>")
        self.assertEqual(result, "{code}\n<b>x</b>\n{code}")

    def test_inline_code(self):
        result = to_remote_markup("<p>run <code>make</code></p>")
        self.assertEqual(result, "run {{make}}")

    def test_table(self):
        result = to_remote_markup(
            "<table><tr><th>A</th><th>B</th></tr>"
            "<tr><td>1</td><td>2</td></tr></table>"
        )
        self.assertEqual(result, "||A||B||\n|1|2|")

    def test_blockquote(self):
        result = to_remote_markup("<blockquote>quoted</blockquote>")
        self.assertEqual(result, "bq. quoted")

    def test_rule(self):
        self.assertEqual(to_remote_markup("<p>a</p><hr><p>b</p>"), "a\n\n----\n\nb")

    def test_entities_unescaped(self):
        self.assertEqual(to_remote_markup("<p>a &amp; b</p>"), "a & b")

    def test_nested_bold_warns(self):
        result = html_to_jira("<b>a <b>b</b></b>")
        self.assertTrue(any("Nested <b>" in w for w in result.warnings))

    def test_image_dropped_with_warning(self):
        result = html_to_jira('<p>see <img src="x.png"></p>')
        self.assertEqual(result.text, "see")
        self.assertTrue(any("Images" in w for w in result.warnings))

    def test_result_metadata(self):
        result = html_to_jira("<b>x</b>")
        self.assertIsInstance(result, ConversionResult)
        self.assertEqual(result.source_format, "html")
        self.assertEqual(result.target_format, "jira")
        self.assertTrue(result.converted)


class TestConvertRichText(unittest.TestCase):
    """Test format detection before conversion."""

    def test_markdown_rendered_first(self):
        result = convert_rich_text("**bold** text")
        self.assertEqual(result.text, "*bold* text")
        self.assertEqual(result.source_format, "markdown")

    def test_markdown_list(self):
        self.assertEqual(convert_rich_text("- a\n- b").text, "* a\n* b")

    def test_plain_text_passes_through(self):
        result = convert_rich_text("just some words")
        self.assertEqual(result.text, "just some words")
        self.assertFalse(result.converted)
        self.assertEqual(result.source_format, "plain")

    def test_empty(self):
        self.assertEqual(convert_rich_text("").text, "")
        self.assertEqual(to_remote_markup(None), "")


class TestJiraToHtml(unittest.TestCase):
    """Test Jira wiki markup to HTML conversion."""

    def test_bold(self):
        self.assertEqual(jira_to_html("*x*").text, "<p><strong>x</strong></p>")

    def test_italic(self):
        self.assertEqual(jira_to_html("_x_").text, "<p><em>x</em></p>")

    def test_underscores_inside_words_untouched(self):
        self.assertEqual(jira_to_html("snake_case_name").text, "<p>snake_case_name</p>")

    def test_unordered_list(self):
        self.assertEqual(
            jira_to_html("* a\n* b").text, "<ul><li>a</li><li>b</li></ul>"
        )

    def test_ordered_list(self):
        self.assertEqual(
            jira_to_html("# one\n# two").text, "<ol><li>one</li><li>two</li></ol>"
        )

    def test_numbered_list_keeps_start(self):
        self.assertEqual(
            jira_to_html("3. three\n4. four").text,
            '<ol start="3"><li>three</li><li>four</li></ol>',
        )

    def test_link(self):
        self.assertEqual(
            jira_to_html("[site|https://x.io]").text,
            '<p><a href="https://x.io">site</a></p>',
        )

    def test_heading(self):
        self.assertEqual(jira_to_html("h2. Title").text, "<h2>Title</h2>")

    def test_code_block(self):
        self.assertEqual(
            jira_to_html("{code:java}\nint x;\n{code}").text,
            '<pre><code class="language-java">int x;</code></pre>',
        )

    def test_code_block_escapes_content(self):
        self.assertEqual(
            jira_to_html("{noformat}\na < *b*\n{noformat}").text,
            "<pre><code>a &lt; *b*</code></pre>",
        )

    def test_unclosed_code_block_warns(self):
        result = jira_to_html("{code}\nx = 1")
        self.assertIn("Unclosed {code} block", result.warnings)

    def test_monospace(self):
        self.assertEqual(jira_to_html("{{x}}").text, "<p><code>x</code></p>")

    def test_table(self):
        self.assertEqual(
            jira_to_html("||A||B||\n|1|2|").text,
            "<table><tr><th>A</th><th>B</th></tr>"
            "<tr><td>1</td><td>2</td></tr></table>",
        )

    def test_blockquote(self):
        self.assertEqual(
            jira_to_html("bq. quoted").text,
            "<blockquote><p>quoted</p></blockquote>",
        )

    def test_rule(self):
        self.assertEqual(jira_to_html("----").text, "<hr>")

    def test_blocks_joined_by_newline(self):
        self.assertEqual(
            jira_to_html("h1. A\n\npara").text, "<h1>A</h1>\n<p>para</p>"
        )

    def test_html_escaped(self):
        self.assertEqual(jira_to_html("a < b").text, "<p>a &lt; b</p>")

    def test_mention_warns(self):
        result = jira_to_html("ping [~jdoe]")
        self.assertTrue(any("mentions" in w for w in result.warnings))


class TestFromRemoteMarkup(unittest.TestCase):
    def test_none_and_blank(self):
        self.assertEqual(from_remote_markup(None), "")
        self.assertEqual(from_remote_markup("   "), "")

    def test_markup(self):
        self.assertEqual(
            from_remote_markup("New *bold*"), "<p>New <strong>bold</strong></p>"
        )

    def test_round_trip_of_simple_description(self):
        html_text = "<p>Hello <strong>world</strong></p>"
        self.assertEqual(from_remote_markup(to_remote_markup(html_text)), html_text)


class TestLanguageMapping(unittest.TestCase):
    def test_html_to_jira(self):
        self.assertEqual(html_to_jira_lang("sh"), "bash")
        self.assertEqual(html_to_jira_lang("Python"), "Python")
        self.assertEqual(html_to_jira_lang("text"), "none")

    def test_jira_to_html(self):
        self.assertEqual(jira_to_html_lang("none"), "text")
        self.assertEqual(jira_to_html_lang("java"), "java")


class TestDetectFormat(unittest.TestCase):
    def test_html(self):
        self.assertEqual(detect_format_heuristic("<p>x</p>"), "html")

    def test_markdown(self):
        self.assertEqual(detect_format_heuristic("# Title"), "markdown")
        self.assertEqual(detect_format_heuristic("[a](http://b)"), "markdown")

    def test_plain(self):
        self.assertEqual(detect_format_heuristic("a < b and c"), "plain")


if __name__ == "__main__":
    unittest.main()
