import re
import unittest

from simon_bot.discord.rendering import render_inline_markdown, string_to_color


class StringToColorTests(unittest.TestCase):
    def test_is_deterministic_hsl(self) -> None:
        color = string_to_color("alice")
        self.assertEqual(color, string_to_color("alice"))
        self.assertRegex(color, r"^hsl\(\d{1,3} \d{2}% \d{2}%\)$")

    def test_components_stay_in_range(self) -> None:
        for name in ("alice", "bob", "simon-bot", "", "🎵"):
            hue, saturation, lightness = map(int, re.findall(r"\d+", string_to_color(name)))
            self.assertLess(hue, 360)
            self.assertTrue(55 <= saturation < 85)
            self.assertTrue(45 <= lightness < 65)


class RenderInlineMarkdownTests(unittest.TestCase):
    def test_formats_inline_styles(self) -> None:
        self.assertEqual("<strong>bold</strong>", render_inline_markdown("**bold**"))
        self.assertEqual("<u>under</u>", render_inline_markdown("__under__"))
        self.assertEqual("<em>one</em> and <em>two</em>", render_inline_markdown("*one* and _two_"))
        self.assertEqual("<del>gone</del>", render_inline_markdown("~~gone~~"))

    def test_escapes_html(self) -> None:
        self.assertEqual("&lt;script&gt;x&lt;/script&gt;", render_inline_markdown("<script>x</script>"))

    def test_code_spans_are_not_formatted(self) -> None:
        self.assertEqual("see <code>**raw** &lt;b&gt;</code>", render_inline_markdown("see `**raw** <b>`"))

    def test_links_require_http_scheme(self) -> None:
        self.assertEqual(
            '<a href="https://simon.dev">site</a>',
            render_inline_markdown("[site](https://simon.dev)"),
        )
        self.assertEqual("[x](javascript:alert(1))", render_inline_markdown("[x](javascript:alert(1))"))

    def test_link_targets_are_not_formatted(self) -> None:
        self.assertEqual(
            '<a href="https://e.com/a__b__c">x</a>',
            render_inline_markdown("[x](https://e.com/a__b__c)"),
        )
        self.assertEqual(
            '<strong><a href="https://e.com/*star*">go</a></strong>',
            render_inline_markdown("**[go](https://e.com/*star*)**"),
        )

    def test_link_labels_are_formatted(self) -> None:
        self.assertEqual(
            '<a href="https://e.com">see <strong>this</strong></a>',
            render_inline_markdown("[see **this**](https://e.com)"),
        )

    def test_snake_case_words_are_left_alone(self) -> None:
        self.assertEqual("use snake_case_names", render_inline_markdown("use snake_case_names"))


if __name__ == "__main__":
    unittest.main()
