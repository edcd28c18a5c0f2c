import os
import tempfile
import unittest
from unittest.mock import MagicMock, patch

from model_metadata.controllers.cli_controller import CLIController, load_models_index
from model_metadata.errors import ConfigurationError, ResolutionError, SchemaNormalizationError
from model_metadata.models.catalog import metadata_path
from model_metadata.models.schemas import (
    ExtractedMetadata,
    ModelResult,
    ModelType,
    OCIArtifact,
    ProcessingStatus,
)
from model_metadata.utils.yaml_utils import load_yaml, write_yaml

class TestLoadModelsIndex(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)

    def test_valid_index(self):
        path = os.path.join(self.tmp.name, "models-index.yaml")
        write_yaml(path, {"models": [
            {"type": "oci", "uri": "quay.io/org/modelcar-granite:1", "labels": ["validated"]},
            {"type": "hf", "uri": "ibm-granite/granite-3.1-8b-instruct"},
        ]})
        entries = load_models_index(path)
        self.assertEqual([e.type for e in entries], [ModelType.OCI, ModelType.HF])
        self.assertEqual(entries[0].labels, ["validated"])

    def test_invalid_index(self):
        path = os.path.join(self.tmp.name, "models-index.yaml")
        write_yaml(path, {"models": [{"type": "svn", "uri": "x"}]})
        with self.assertRaises(ConfigurationError):
            load_models_index(path)
        with self.assertRaises(ConfigurationError):
            load_models_index(os.path.join(self.tmp.name, "missing.yaml"))

class TestCLIController(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)
        self.index = os.path.join(self.tmp.name, "models-index.yaml")
        write_yaml(self.index, {"models": [{"uri": "quay.io/org/modelcar-a:1"}, {"uri": "quay.io/org/modelcar-b:1"}]})
        self.catalog = os.path.join(self.tmp.name, "models-catalog.yaml")
        self.controller = CLIController(output_dir=os.path.join(self.tmp.name, "output"), data_dir=self.tmp.name)

    @patch("model_metadata.controllers.cli_controller.ModelMetadataService")
    def test_run_builds_catalog_from_processed_models(self, mock_service_cls):
        service = mock_service_cls.return_value
        service.process_models.return_value = [
            ModelResult(reference="quay.io/org/modelcar-a:1", status=ProcessingStatus.PROCESSED, modelcard_found=True),
            ModelResult(reference="quay.io/org/modelcar-b:1", status=ProcessingStatus.FAILED, error=RuntimeError("boom")),
        ]
        service.write_manifest.return_value = os.path.join(self.tmp.name, "output", "manifests.yaml")

        with patch("model_metadata.controllers.cli_controller.CatalogBuilder") as mock_builder_cls:
            builder = mock_builder_cls.return_value
            builder.build.return_value = MagicMock(models=[])
            exit_code = self.controller.run(index_path=self.index, catalog_path=self.catalog,
                                            static_catalogs=[], max_concurrent=3, skip_huggingface=True)

        self.assertEqual(exit_code, 0)
        self.assertEqual(len(service.process_models.call_args.args[0]), 2)
        self.assertEqual(service.process_models.call_args.kwargs["max_workers"], 3)
        self.assertFalse(mock_service_cls.call_args.kwargs["huggingface"].enabled)
        builder.build.assert_called_once_with(static_paths=[])
        builder.write.assert_called_once()

    @patch("model_metadata.controllers.cli_controller.ModelMetadataService")
    def test_schema_failure_stops_before_catalog(self, mock_service_cls):
        service = mock_service_cls.return_value
        service.process_models.return_value = [
            ModelResult(reference="quay.io/org/modelcar-a:1", status=ProcessingStatus.FAILED,
                        error=SchemaNormalizationError("bad record")),
        ]
        with patch("model_metadata.controllers.cli_controller.CatalogBuilder") as mock_builder_cls:
            with self.assertRaises(SchemaNormalizationError):
                self.controller.run(index_path=self.index, catalog_path=self.catalog, static_catalogs=[])
            mock_builder_cls.return_value.build.assert_not_called()
        service.write_manifest.assert_called_once()

    @patch("model_metadata.models.service.RegistryClient")
    def test_failed_model_keeps_its_catalog_entry(self, mock_registry_cls):
        mock_registry_cls.return_value.inspect.side_effect = ResolutionError("registry unavailable")
        previous = ExtractedMetadata(name="B model", artifacts=[OCIArtifact(uri="oci://quay.io/org/modelcar-b:1")])
        write_yaml(metadata_path(self.controller.output_dir, "quay.io/org/modelcar-b:1"), previous.to_document())

        exit_code = self.controller.run(index_path=self.index, catalog_path=self.catalog,
                                        static_catalogs=[], skip_huggingface=True)

        self.assertEqual(exit_code, 0)
        self.assertEqual([m["name"] for m in load_yaml(self.catalog)["models"]], ["B model"])
        manifest = load_yaml(os.path.join(self.controller.output_dir, "manifests.yaml"))
        self.assertEqual([m["status"] for m in manifest["models"]], ["failed", "failed"])

    def test_catalog_only(self):
        static = os.path.join(self.tmp.name, "static.yaml")
        write_yaml(static, {"source": "Red Hat", "models": [{"name": "Static", "artifacts": [{"uri": "oci://s"}]}]})
        exit_code = self.controller.run(catalog_path=self.catalog, static_catalogs=[static], catalog_only=True)
        self.assertEqual(exit_code, 0)
        self.assertEqual([m["name"] for m in load_yaml(self.catalog)["models"]], ["Static"])

if __name__ == '__main__':
    unittest.main()
