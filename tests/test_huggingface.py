import os
import tempfile
import unittest
from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

from model_metadata.models.huggingface import (
    HuggingFaceSource,
    filter_descriptive_tags,
    match_model,
    normalise_model_id,
    parse_tags_for_structured_data,
)
from model_metadata.models.schemas import ConfidenceLevel, DataSource, ModelIndex, VersionIndex

def version_index(*names):
    return VersionIndex(version="v1.0", models=[
        ModelIndex(name=n, url=f"https://huggingface.co/{n}", readme_path=f"/{n}/README.md") for n in names
    ])

class TestTagParsing(unittest.TestCase):
    def test_structured_data(self):
        languages, license_value, tasks = parse_tags_for_structured_data(
            ["en", "fr", "license:apache-2.0", "text-generation", "conversational", "granite"]
        )
        self.assertEqual(languages, ["en", "fr"])
        self.assertEqual(license_value, "apache-2.0")
        self.assertEqual(tasks, ["text-generation"])

    def test_license_other_is_ignored(self):
        _, license_value, _ = parse_tags_for_structured_data(["license:other", "llama3.1"])
        self.assertEqual(license_value, "llama3.1")

    def test_descriptive_tags(self):
        tags = ["granite", "en", "license:apache-2.0", "arxiv:1234", "base_model:ibm/x", "region:us", "fp8", "granite"]
        self.assertEqual(filter_descriptive_tags(tags), ["granite", "fp8"])

    def test_normalise_model_id(self):
        self.assertEqual(normalise_model_id("owner/model"), "owner/model")
        self.assertEqual(normalise_model_id("https://huggingface.co/owner/model"), "owner/model")
        self.assertEqual(normalise_model_id("https://huggingface.co/owner/model/tree/main"), "owner/model")

class TestMatching(unittest.TestCase):
    def test_high_confidence(self):
        index = version_index("RedHatAI/Llama-3.1-8B-Instruct", "RedHatAI/granite-3.1-8b-instruct")
        name, confidence = match_model("registry.redhat.io/rhelai1/modelcar-granite-3.1-8b-instruct:1.5", index)
        self.assertEqual(name, "RedHatAI/granite-3.1-8b-instruct")
        self.assertEqual(confidence, ConfidenceLevel.HIGH)

    def test_medium_confidence(self):
        index = version_index("RedHatAI/granite-3.1-8b-instruct-quantized.w4a16")
        name, confidence = match_model("quay.io/x/modelcar-granite-3.1-8b-instruct:1", index)
        self.assertEqual(name, "RedHatAI/granite-3.1-8b-instruct-quantized.w4a16")
        self.assertEqual(confidence, ConfidenceLevel.MEDIUM)

    def test_no_match(self):
        index = version_index("RedHatAI/Mistral-Small-24B")
        self.assertEqual(match_model("quay.io/x/modelcar-granite-3.1-8b:1", index), (None, ConfidenceLevel.NONE))
        self.assertEqual(match_model("quay.io/x/y:1", None), (None, ConfidenceLevel.NONE))

class TestHuggingFaceSource(unittest.TestCase):
    def setUp(self):
        self.hf_api = MagicMock()
        self.source = HuggingFaceSource(hf_token="fake_token", hf_api=self.hf_api)

    def model_info(self, **overrides):
        info = MagicMock(
            author="ibm-granite",
            tags=["en", "license:apache-2.0", "text-generation", "granite"],
            pipeline_tag="text-generation",
            created_at=datetime(2024, 7, 11, tzinfo=timezone.utc),
            last_modified=datetime(2024, 7, 12, tzinfo=timezone.utc),
            card_data=MagicMock(to_dict=lambda: {"license": "apache-2.0", "language": "en", "tags": ["fp8"]}),
        )
        for key, value in overrides.items():
            setattr(info, key, value)
        return info

    @patch("model_metadata.models.huggingface.hf_hub_download")
    def test_candidates_from_api(self, mock_download):
        mock_download.side_effect = Exception("no readme")
        self.hf_api.model_info.return_value = self.model_info()

        candidates = self.source.fetch_candidates("https://huggingface.co/ibm-granite/granite-3.1-8b-instruct")
        values = {k: v.value for k, v in candidates.items()}

        self.hf_api.model_info.assert_called_once_with("ibm-granite/granite-3.1-8b-instruct")
        self.assertEqual(values["name"], "granite-3.1-8b-instruct")
        self.assertEqual(values["provider"], "ibm-granite")
        self.assertEqual(values["license"], "apache-2.0")
        self.assertEqual(values["language"], ["en"])
        self.assertEqual(values["tasks"], ["text-generation"])
        self.assertEqual(values["tags"], ["text-generation", "granite", "fp8"])
        self.assertEqual(values["create_time_since_epoch"], 1720656000)
        self.assertEqual(values["last_update_time_since_epoch"], 1720742400)
        for candidate in candidates.values():
            self.assertEqual(candidate.source, DataSource.HUGGINGFACE)

    @patch("model_metadata.models.huggingface.hf_hub_download")
    def test_readme_values_come_first(self, mock_download):
        readme = "---\nlicense: mit\n---\n# Granite Model Card\n\nGranite is a long-context model.\n" + "Details.\n" * 100
        readme_path = self._write_readme(readme)
        mock_download.return_value = readme_path
        self.hf_api.model_info.return_value = self.model_info()

        candidates = self.source.fetch_candidates("ibm-granite/granite-3.1-8b-instruct")
        self.assertEqual(candidates["license"].value, "mit")
        self.assertEqual(candidates["license"].extraction_method, "readme_front_matter")
        self.assertEqual(candidates["name"].value, "Granite Model Card")
        self.assertEqual(candidates["readme"].value, readme)
        self.assertEqual(candidates["readme"].source, DataSource.HUGGINGFACE)

    @patch("model_metadata.models.huggingface.hf_hub_download")
    def test_multiline_card_description_is_kept(self, mock_download):
        mock_download.return_value = self._write_readme("---\ndescription: |\n  First line of the card.\n  Second line.\n---\n")
        self.hf_api.model_info.return_value = self.model_info()

        candidates = self.source.fetch_candidates("ibm-granite/granite-3.1-8b-instruct")
        self.assertEqual(candidates["description"].value, "First line of the card.\nSecond line.")

    def test_api_failure_is_empty(self):
        self.hf_api.model_info.side_effect = Exception("HTTP 500")
        self.assertEqual(self.source.fetch_candidates("owner/model"), {})

    def test_disabled_source_never_calls_api(self):
        source = HuggingFaceSource(hf_api=self.hf_api, enabled=False)
        self.assertEqual(source.fetch_candidates("owner/model"), {})
        self.hf_api.model_info.assert_not_called()

    def _write_readme(self, content):
        handle = tempfile.NamedTemporaryFile("w", suffix=".md", delete=False, encoding="utf-8")
        handle.write(content)
        handle.close()
        self.addCleanup(os.remove, handle.name)
        return handle.name

if __name__ == '__main__':
    unittest.main()
