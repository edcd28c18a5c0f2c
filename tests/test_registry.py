import json
import threading
import unittest
from unittest.mock import MagicMock

import requests

from model_metadata.config import PROJECT_NAME, PROJECT_VERSION
from model_metadata.errors import ResolutionError
from model_metadata.models.layers import LAYER_TYPE_ANNOTATION
from model_metadata.models.registry import (
    OCI_INDEX,
    OCI_MANIFEST,
    ImageInspection,
    ImageReference,
    RegistryClient,
    build_registry_data,
)

def response(status=200, body=None, headers=None, content=None):
    mock = MagicMock()
    mock.status_code = status
    mock.headers = headers or {}
    mock.json.return_value = body
    mock.content = content if content is not None else json.dumps(body).encode()
    if status >= 400:
        mock.raise_for_status.side_effect = requests.HTTPError(f"{status} error")
    return mock

MANIFEST = {
    "mediaType": OCI_MANIFEST,
    "config": {"digest": "sha256:config"},
    "layers": [
        {"digest": "sha256:model", "mediaType": "application/vnd.oci.image.layer.v1.tar+gzip", "size": 10},
        {"digest": "sha256:card", "mediaType": "application/vnd.oci.image.layer.v1.tar+gzip", "size": 1,
         "annotations": {LAYER_TYPE_ANNOTATION: "modelcard"}},
    ],
    "annotations": {"org.opencontainers.image.title": "Granite 3.1 8B Instruct"},
}

CONFIG = {
    "architecture": "amd64",
    "created": "2024-07-11T00:00:00Z",
    "history": [{"created": "2024-07-10T00:00:00Z"}, {"created": "2024-07-12T00:00:00Z"}],
    "config": {"Labels": {"org.opencontainers.image.vendor": "Red Hat"}},
}

class TestImageReference(unittest.TestCase):
    def test_tag(self):
        ref = ImageReference.parse("oci://registry.redhat.io/rhelai1/modelcar-granite:1.5")
        self.assertEqual((ref.registry, ref.repository, ref.tag, ref.digest),
                         ("registry.redhat.io", "rhelai1/modelcar-granite", "1.5", None))
        self.assertEqual(ref.uri, "oci://registry.redhat.io/rhelai1/modelcar-granite:1.5")

    def test_default_tag_and_port(self):
        ref = ImageReference.parse("localhost:5000/models/granite")
        self.assertEqual(ref.registry, "localhost:5000")
        self.assertEqual(ref.manifest_ref, "latest")

    def test_digest(self):
        ref = ImageReference.parse("docker://quay.io/org/model@sha256:abc")
        self.assertEqual(ref.manifest_ref, "sha256:abc")
        self.assertEqual(ref.uri, "oci://quay.io/org/model@sha256:abc")

    def test_invalid(self):
        for reference in ["", "granite", "quay.io/", "quay.io/org/model:", "quay.io/org/model@abc"]:
            with self.assertRaises(ResolutionError):
                ImageReference.parse(reference)

class TestRegistryClient(unittest.TestCase):
    def setUp(self):
        self.client = RegistryClient(username=None, password=None)
        self.session = MagicMock()
        self.client._local.session = self.session

    def test_inspect_with_token_challenge(self):
        challenge = 'Bearer realm="https://auth.example.io/token",service="registry.example.io"'
        self.session.get.side_effect = [
            response(401, {}, headers={"WWW-Authenticate": challenge}),
            response(200, {"token": "abc"}),
            response(200, MANIFEST),
            response(200, CONFIG),
        ]

        inspection = self.client.inspect("registry.example.io/org/modelcar-granite:1")

        token_call = self.session.get.call_args_list[1]
        self.assertEqual(token_call.args[0], "https://auth.example.io/token")
        self.assertEqual(token_call.kwargs["params"]["scope"], "repository:org/modelcar-granite:pull")
        self.assertEqual(self.session.get.call_args_list[2].kwargs["headers"]["Authorization"], "Bearer abc")
        self.assertEqual(self.session.get.call_args_list[3].args[0],
                         "https://registry.example.io/v2/org/modelcar-granite/blobs/sha256:config")
        self.assertEqual([layer.digest for layer in inspection.layers], ["sha256:model", "sha256:card"])
        self.assertEqual(inspection.architectures, ["amd64"])

    def test_index_descends_to_linux_amd64(self):
        index = {"mediaType": OCI_INDEX, "manifests": [
            {"digest": "sha256:arm", "platform": {"os": "linux", "architecture": "arm64"}},
            {"digest": "sha256:amd", "platform": {"os": "linux", "architecture": "amd64"}},
        ]}
        self.session.get.side_effect = [response(200, index), response(200, MANIFEST)]

        manifest, architectures = self.client.get_manifest(ImageReference.parse("quay.io/org/model:1"))

        self.assertEqual(manifest, MANIFEST)
        self.assertEqual(architectures, ["amd64", "arm64"])
        self.assertTrue(self.session.get.call_args_list[1].args[0].endswith("/manifests/sha256:amd"))

    def test_missing_manifest_is_resolution_error(self):
        self.session.get.return_value = response(404, {})
        with self.assertRaises(ResolutionError):
            self.client.inspect("quay.io/org/missing:1")

    def test_connection_error_is_resolution_error(self):
        self.session.get.side_effect = requests.ConnectionError("refused")
        with self.assertRaises(ResolutionError):
            self.client.fetch_blob(ImageReference.parse("quay.io/org/model:1"), MagicMock(digest="sha256:card"))

    def test_sessions_are_per_thread_and_identify_the_client(self):
        client = RegistryClient(username=None, password=None)
        session = client.session
        self.assertIs(client.session, session)
        self.assertEqual(session.headers["User-Agent"], f"{PROJECT_NAME}/{PROJECT_VERSION}")

        other = []
        thread = threading.Thread(target=lambda: other.append(client.session))
        thread.start()
        thread.join()
        self.assertIsNot(other[0], session)

class TestBuildRegistryData(unittest.TestCase):
    def test_values_and_artifact(self):
        inspection = ImageInspection(
            reference=ImageReference.parse("quay.io/org/modelcar-granite:1"),
            annotations={**MANIFEST["annotations"], LAYER_TYPE_ANNOTATION: "modelcard"},
            config=CONFIG,
            architectures=["amd64", "arm64"],
        )
        data = build_registry_data(inspection)

        self.assertEqual(data.values["name"], "Granite 3.1 8B Instruct")
        self.assertEqual(data.values["provider"], "Red Hat")
        self.assertEqual(data.values["create_time_since_epoch"], 1720656000)
        self.assertEqual(data.values["last_update_time_since_epoch"], 1720742400)
        self.assertNotIn("license", data.values)

        artifact = data.artifacts[0]
        self.assertEqual(artifact.uri, "oci://quay.io/org/modelcar-granite:1")
        properties = artifact.custom_properties
        self.assertEqual(properties["source"]["string_value"], "quay.io")
        self.assertEqual(properties["architecture"]["string_value"], '["amd64", "arm64"]')
        self.assertIn("org.opencontainers.image.title", properties)
        self.assertNotIn(LAYER_TYPE_ANNOTATION, properties)

    def test_name_falls_back_to_repository(self):
        inspection = ImageInspection(reference=ImageReference.parse("quay.io/org/modelcar-granite:1"))
        data = build_registry_data(inspection)
        self.assertEqual(data.values, {"name": "modelcar-granite"})
        self.assertIsNone(data.artifacts[0].create_time_since_epoch)

if __name__ == '__main__':
    unittest.main()
