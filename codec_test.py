from __future__ import annotations

import unittest

from codec import decode_pretty_component, decode_url, from_base64, path_to_metadata, safe_unquote


class PrettyComponentTest(unittest.TestCase):
    def test_hyphen_runs_map_by_exact_length(self) -> None:
        cases = {
            "a-b": "a b",
            "a--b": "a-b",
            "a---b": "a - b",
            "a----b": "a-b",
            "a-----b": "a-b",
        }
        for raw, expected in cases.items():
            with self.subTest(raw=raw):
                self.assertEqual(decode_pretty_component(raw), expected)

    def test_mixed_runs_scan_left_to_right(self) -> None:
        self.assertEqual(decode_pretty_component("Fast---and--loose-fun"), "Fast - and-loose fun")

    def test_empty_input(self) -> None:
        self.assertEqual(decode_pretty_component(""), "")
        self.assertEqual(decode_pretty_component(None), "")

    def test_percent_decoding_after_hyphens(self) -> None:
        self.assertEqual(decode_pretty_component("Caf%C3%A9-Menu"), "Café Menu")

    def test_malformed_escape_keeps_hyphen_substitution(self) -> None:
        self.assertEqual(decode_pretty_component("50%-off"), "50% off")


class SafeUnquoteTest(unittest.TestCase):
    def test_decodes_utf8_escapes(self) -> None:
        self.assertEqual(safe_unquote("%F0%9F%94%A5"), "\U0001F525")

    def test_plus_is_not_a_space(self) -> None:
        self.assertEqual(safe_unquote("a+b%20c"), "a+b c")

    def test_malformed_sequences_return_input(self) -> None:
        for raw in ("%zz", "100%", "%E0%A4%A", "%C3%28"):
            with self.subTest(raw=raw):
                self.assertEqual(safe_unquote(raw), raw)


class ValueDecoderTest(unittest.TestCase):
    def test_absolute_urls_are_returned_unchanged(self) -> None:
        for raw in ("http://example.com/a%20b", "https://example.com/x==", "httpish"):
            with self.subTest(raw=raw):
                self.assertEqual(decode_url(raw), raw)
                self.assertEqual(decode_url(decode_url(raw)), raw)

    def test_base64_with_padding_stripped(self) -> None:
        self.assertEqual(decode_url("aHR0cHM6Ly9leGFtcGxlLmNvbS9pbWcucG5n"), "https://example.com/img.png")
        self.assertEqual(decode_url("SGVsbG8sIHdvcmxkIQ=="), "Hello, world!")
        self.assertEqual(decode_url("SGVsbG8sIHdvcmxkIQ"), "Hello, world!")
        self.assertEqual(decode_url("aMOpbGxvIHfDtnJsZA"), "héllo wörld")

    def test_urlsafe_alphabet_is_accepted(self) -> None:
        self.assertEqual(from_base64("aGk/"), "hi?")
        self.assertEqual(from_base64("aGk_"), "hi?")

    def test_invalid_base64_returns_none(self) -> None:
        for raw in ("hello%20world", "abcde", "a b", "\U0001F525"):
            with self.subTest(raw=raw):
                self.assertIsNone(from_base64(raw))

    def test_malformed_base64_falls_back_to_percent_decoding(self) -> None:
        self.assertEqual(decode_url("hello%20world"), "hello world")

    def test_malformed_percent_falls_back_to_literal(self) -> None:
        for raw in ("%zz", "bad%E0%A4%A"):
            with self.subTest(raw=raw):
                self.assertEqual(decode_url(raw), raw)

    def test_empty_values_pass_through(self) -> None:
        self.assertEqual(decode_url(""), "")
        self.assertIsNone(decode_url(None))


class PathToMetadataTest(unittest.TestCase):
    def test_title_description_and_color(self) -> None:
        info = path_to_metadata("/My-Title/d/Some--Desc/c/ff0000")
        self.assertEqual(info, {"title": "My Title", "d": "Some-Desc", "c": "ff0000"})

    def test_root_path_has_empty_title(self) -> None:
        self.assertEqual(path_to_metadata("/"), {"title": ""})

    def test_trailing_slash_and_dangling_key_are_dropped(self) -> None:
        self.assertEqual(path_to_metadata("/T/t/article/"), {"title": "T", "t": "article"})
        self.assertEqual(path_to_metadata("/T/t/article/s"), {"title": "T", "t": "article"})

    def test_empty_keys_and_values_are_skipped(self) -> None:
        info = path_to_metadata("/T/c//i/abc//zz/")
        self.assertEqual(info, {"title": "T", "i": "abc"})

    def test_values_with_percent_are_decoded(self) -> None:
        info = path_to_metadata("/T/s/Site%20Name/t/a%zz")
        self.assertEqual(info["s"], "Site Name")
        self.assertEqual(info["t"], "a%zz")

    def test_values_without_percent_are_literal(self) -> None:
        info = path_to_metadata("/T/s/my-site/i/SGVsbG8sIHdvcmxkIQ")
        self.assertEqual(info["s"], "my-site")
        self.assertEqual(info["i"], "SGVsbG8sIHdvcmxkIQ")

    def test_description_always_uses_hyphen_shorthand(self) -> None:
        info = path_to_metadata("/T/d/A---B%21")
        self.assertEqual(info["d"], "A - B!")

    def test_unknown_keys_are_preserved(self) -> None:
        info = path_to_metadata("/T/zz/value/")
        self.assertEqual(info["zz"], "value")

    def test_mapping_is_rebuilt_per_call(self) -> None:
        first = path_to_metadata("/A/s/one/")
        first["s"] = "changed"
        self.assertEqual(path_to_metadata("/A/s/one/")["s"], "one")


if __name__ == "__main__":
    unittest.main(verbosity=2)
