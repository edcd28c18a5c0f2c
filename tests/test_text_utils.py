import unittest

from model_metadata.config import ExtractionSettings
from model_metadata.utils.text_utils import (
    TEXT_MAX_LENGTH,
    calculate_similarity,
    clean_value,
    dedupe,
    generate_readable_description,
    is_valid_value,
    normalize_model_name,
    normalize_task,
    parse_date_to_epoch,
    parse_language_names,
    parse_timestamp_to_epoch,
    sanitize_reference,
    split_list_value,
)

class TestCleaning(unittest.TestCase):
    def test_clean_value(self):
        self.assertEqual(clean_value("  **IBM Research**: "), "IBM Research")
        self.assertEqual(clean_value("`granite`."), "granite")

    def test_placeholders_rejected(self):
        for value in ["N/A", "tbd", " Unknown ", "-", "", "   ", None]:
            self.assertFalse(is_valid_value(value), value)

    def test_length_bounds(self):
        self.assertFalse(is_valid_value("a", min_length=2))
        self.assertFalse(is_valid_value("x" * 501))
        self.assertTrue(is_valid_value("x" * 500))
        self.assertFalse(is_valid_value("abcdef", max_length=5))

    def test_control_characters_rejected(self):
        self.assertFalse(is_valid_value("bad\x00value"))
        self.assertFalse(is_valid_value("tab\tseparated"))
        self.assertTrue(is_valid_value("Modèle français"))

    def test_multiline_text(self):
        text = "Granite is a long-context model.\n\n\tIt follows instructions."
        self.assertFalse(is_valid_value(text))
        self.assertTrue(is_valid_value(text, multiline=True))
        self.assertFalse(is_valid_value("line one\nbad\x00line", multiline=True))
        self.assertTrue(is_valid_value("x" * 4000, max_length=TEXT_MAX_LENGTH, multiline=True))

    def test_patterns(self):
        self.assertTrue(is_valid_value("https://example.com", patterns=[r"^https?://"]))
        self.assertFalse(is_valid_value("example.com", patterns=[r"^https?://"]))

    def test_custom_placeholder_tokens(self):
        settings = ExtractionSettings(placeholder_tokens=["coming soon"])
        self.assertFalse(is_valid_value("Coming Soon", settings=settings))
        self.assertTrue(is_valid_value("n/a", settings=settings))

    def test_split_list_value(self):
        self.assertEqual(split_list_value("English, French and German"), ["English", "French", "German"])
        self.assertEqual(split_list_value("a; b | c"), ["a", "b", "c"])

    def test_dedupe(self):
        self.assertEqual(dedupe(["b", "a", "", "b", None, "c"]), ["b", "a", "c"])

class TestDates(unittest.TestCase):
    def test_month_first(self):
        self.assertEqual(parse_date_to_epoch("7/11/2024"), 1720656000)

    def test_iso(self):
        self.assertEqual(parse_date_to_epoch("2024-07-11"), 1720656000)

    def test_day_first_fallback(self):
        # month slot > 12 can only be read day-first
        self.assertEqual(parse_date_to_epoch("25/12/2024"), parse_date_to_epoch("2024-12-25"))

    def test_long_form(self):
        self.assertEqual(parse_date_to_epoch("July 11, 2024"), 1720656000)

    def test_unparsable(self):
        self.assertIsNone(parse_date_to_epoch("sometime next year"))
        self.assertIsNone(parse_date_to_epoch(""))
        self.assertIsNone(parse_date_to_epoch(None))

    def test_extra_format(self):
        settings = ExtractionSettings()
        settings.date_formats.append("%Y.%m.%d")
        self.assertEqual(parse_date_to_epoch("2024.07.11", settings), 1720656000)
        self.assertIsNone(parse_date_to_epoch("2024.07.11"))

    def test_parse_timestamp(self):
        self.assertEqual(parse_timestamp_to_epoch("2024-07-11T00:00:00Z"), 1720656000)
        self.assertEqual(parse_timestamp_to_epoch("2024-07-11T02:00:00+02:00"), 1720656000)
        self.assertIsNone(parse_timestamp_to_epoch("yesterday"))
        self.assertIsNone(parse_timestamp_to_epoch(None))

class TestNormalisation(unittest.TestCase):
    def test_languages(self):
        self.assertEqual(parse_language_names("English, French and German"), ["en", "fr", "de"])
        self.assertEqual(parse_language_names("Klingon"), [])

    def test_tasks(self):
        self.assertEqual(normalize_task("Text Generation"), "text-generation")
        self.assertEqual(normalize_task("sentiment analysis of reviews"), "text-classification")
        self.assertEqual(normalize_task("Answering questions about documents"), "question-answering")
        self.assertEqual(normalize_task("protein folding"), "protein folding")

    def test_sanitize_reference(self):
        self.assertEqual(
            sanitize_reference("oci://registry.redhat.io/rhelai1/modelcar-granite:1.5"),
            "oci_registry.redhat.io_rhelai1_modelcar-granite_1.5",
        )

    def test_readable_description(self):
        self.assertEqual(
            generate_readable_description("registry.redhat.io/rhelai1/modelcar-granite-3.1-8b-instruct:1.5"),
            "Granite 3.1 8b Instruct - An instruction-tuned language model",
        )
        self.assertEqual(generate_readable_description(""), "")

    def test_model_name_similarity(self):
        self.assertEqual(normalize_model_name("quay.io/x/modelcar-granite-3.1-8b:1.0"), "granite-3-1-8b")
        self.assertEqual(calculate_similarity("modelcar-granite-3.1-8b:1.0", "ibm/granite-3.1-8b"), 1.0)
        self.assertLess(calculate_similarity("llama-3-70b", "granite-3.1-8b"), 0.5)
        self.assertEqual(calculate_similarity("", "x"), 0.0)

if __name__ == '__main__':
    unittest.main()
