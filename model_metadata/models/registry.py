"""
Thin OCI distribution (registry v2) client.

Only what the metadata pipeline needs: resolve a reference to its manifest,
read the image config and fetch single blobs, with anonymous or basic-auth
bearer tokens.
"""
import json
import logging
import re
import threading
from typing import Any, Dict, List, Optional, Tuple

import requests
from pydantic import BaseModel, ConfigDict, Field

from ..config import PROJECT_NAME, PROJECT_VERSION, REGISTRY_PASSWORD, REGISTRY_TIMEOUT, REGISTRY_USERNAME
from ..errors import ResolutionError
from ..utils.text_utils import parse_timestamp_to_epoch
from .layers import LAYER_TYPE_ANNOTATION
from .schemas import BlobDescriptor, OCIArtifact, RegistryData

logger = logging.getLogger(__name__)

OCI_INDEX = "application/vnd.oci.image.index.v1+json"
OCI_MANIFEST = "application/vnd.oci.image.manifest.v1+json"
DOCKER_MANIFEST_LIST = "application/vnd.docker.distribution.manifest.list.v2+json"
DOCKER_MANIFEST = "application/vnd.docker.distribution.manifest.v2+json"
MANIFEST_ACCEPT = ", ".join([OCI_MANIFEST, DOCKER_MANIFEST, OCI_INDEX, DOCKER_MANIFEST_LIST])
USER_AGENT = f"{PROJECT_NAME}/{PROJECT_VERSION}"

ANNOTATION_TITLE = "org.opencontainers.image.title"
ANNOTATION_DESCRIPTION = "org.opencontainers.image.description"
ANNOTATION_VENDOR = "org.opencontainers.image.vendor"
ANNOTATION_AUTHORS = "org.opencontainers.image.authors"
ANNOTATION_LICENSES = "org.opencontainers.image.licenses"

_CHALLENGE_PARAM = re.compile(r'(\w+)="([^"]*)"')


def metadata_value(value: str) -> Dict[str, str]:
    return {"metadataType": "MetadataStringValue", "string_value": value}


class ImageReference(BaseModel):
    model_config = ConfigDict(frozen=True)

    registry: str
    repository: str
    tag: Optional[str] = "latest"
    digest: Optional[str] = None

    @property
    def manifest_ref(self) -> str:
        return self.digest or self.tag

    @property
    def uri(self) -> str:
        if self.digest:
            return f"oci://{self.registry}/{self.repository}@{self.digest}"
        return f"oci://{self.registry}/{self.repository}:{self.tag}"

    @classmethod
    def parse(cls, reference: str) -> "ImageReference":
        """Parse ``registry/repository[:tag|@digest]``, optionally prefixed with ``oci://`` or ``docker://``."""
        ref = re.sub(r"^(?:oci|docker)://", "", (reference or "").strip())
        parts = ref.split("/")
        if len(parts) < 2 or not all(parts):
            raise ResolutionError(f"Invalid image reference: {reference!r}")

        registry = parts[0]
        remainder = "/".join(parts[1:])
        digest = None
        tag = "latest"
        if "@" in remainder:
            remainder, digest = remainder.split("@", 1)
            tag = None
        elif ":" in parts[-1]:
            remainder, tag = remainder.rsplit(":", 1)

        if not remainder or (digest is not None and ":" not in digest) or (tag is not None and not tag):
            raise ResolutionError(f"Invalid image reference: {reference!r}")
        return cls(registry=registry, repository=remainder, tag=tag, digest=digest)


class ImageInspection(BaseModel):
    """Everything the pipeline reads from one image"""
    reference: ImageReference
    layers: List[BlobDescriptor] = Field(default_factory=list)
    annotations: Dict[str, str] = Field(default_factory=dict)
    config: Dict[str, Any] = Field(default_factory=dict)
    architectures: List[str] = Field(default_factory=list)


class RegistryClient:
    """
    Registry v2 client shared by all pipeline workers.

    Each thread gets its own ``requests.Session``; bearer tokens are cached per
    registry and repository.
    """

    def __init__(self, username: Optional[str] = REGISTRY_USERNAME, password: Optional[str] = REGISTRY_PASSWORD,
                 timeout: float = REGISTRY_TIMEOUT, scheme: str = "https"):
        self.auth = (username, password) if username and password else None
        self.timeout = timeout
        self.scheme = scheme
        self._local = threading.local()
        self._tokens: Dict[Tuple[str, str], str] = {}
        self._tokens_lock = threading.Lock()

    @property
    def session(self) -> requests.Session:
        session = getattr(self._local, "session", None)
        if session is None:
            session = requests.Session()
            session.headers["User-Agent"] = USER_AGENT
            self._local.session = session
        return session

    # --- HTTP ---
    def _url(self, ref: ImageReference, kind: str, identifier: str) -> str:
        return f"{self.scheme}://{ref.registry}/v2/{ref.repository}/{kind}/{identifier}"

    def _get(self, ref: ImageReference, url: str, accept: Optional[str] = None) -> requests.Response:
        headers = {"Accept": accept} if accept else {}
        key = (ref.registry, ref.repository)
        with self._tokens_lock:
            token = self._tokens.get(key)
        if token:
            headers["Authorization"] = f"Bearer {token}"

        try:
            response = self.session.get(url, headers=headers, timeout=self.timeout)
            if response.status_code == 401:
                token = self._fetch_token(ref, response.headers.get("WWW-Authenticate", ""))
                with self._tokens_lock:
                    self._tokens[key] = token
                headers["Authorization"] = f"Bearer {token}"
                response = self.session.get(url, headers=headers, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            raise ResolutionError(f"Registry request failed for {url}: {e}") from e
        return response

    def _fetch_token(self, ref: ImageReference, challenge: str) -> str:
        if not challenge.lower().startswith("bearer"):
            raise ResolutionError(f"Unsupported registry auth challenge for {ref.registry}: {challenge!r}")
        params = dict(_CHALLENGE_PARAM.findall(challenge))
        realm = params.pop("realm", None)
        if not realm:
            raise ResolutionError(f"Auth challenge from {ref.registry} has no realm")
        params.setdefault("scope", f"repository:{ref.repository}:pull")

        logger.debug(f"Requesting registry token from {realm} for {ref.repository}")
        response = self.session.get(realm, params=params, auth=self.auth, timeout=self.timeout)
        response.raise_for_status()
        body = response.json()
        token = body.get("token") or body.get("access_token")
        if not token:
            raise ResolutionError(f"No token returned by {realm}")
        return token

    # --- registry operations ---
    def get_manifest(self, ref: ImageReference) -> Tuple[Dict[str, Any], List[str]]:
        """
        Fetch the image manifest, descending into an index when needed.

        Returns the manifest and the architectures the image is published for.
        """
        response = self._get(ref, self._url(ref, "manifests", ref.manifest_ref), MANIFEST_ACCEPT)
        manifest = response.json()
        media_type = manifest.get("mediaType") or response.headers.get("Content-Type", "")

        if media_type in (OCI_INDEX, DOCKER_MANIFEST_LIST) or "manifests" in manifest:
            entries = manifest.get("manifests") or []
            if not entries:
                raise ResolutionError(f"Empty image index for {ref.uri}")
            architectures = sorted({e.get("platform", {}).get("architecture") for e in entries} - {None, ""})
            chosen = next(
                (e for e in entries
                 if e.get("platform", {}).get("os") == "linux" and e.get("platform", {}).get("architecture") == "amd64"),
                entries[0],
            )
            response = self._get(ref, self._url(ref, "manifests", chosen["digest"]), MANIFEST_ACCEPT)
            return response.json(), architectures
        return manifest, []

    def get_config(self, ref: ImageReference, manifest: Dict[str, Any]) -> Dict[str, Any]:
        digest = (manifest.get("config") or {}).get("digest")
        if not digest:
            return {}
        try:
            return json.loads(self._get(ref, self._url(ref, "blobs", digest)).content)
        except ValueError as e:
            logger.warning(f"Unreadable image config for {ref.uri}: {e}")
            return {}

    def fetch_blob(self, ref: ImageReference, descriptor: BlobDescriptor) -> bytes:
        return self._get(ref, self._url(ref, "blobs", descriptor.digest)).content

    def inspect(self, reference: str) -> ImageInspection:
        """Resolve a reference to its layers, annotations, config and architectures."""
        ref = ImageReference.parse(reference)
        manifest, architectures = self.get_manifest(ref)
        config = self.get_config(ref, manifest)
        if not architectures and config.get("architecture"):
            architectures = [config["architecture"]]

        layers = [BlobDescriptor.model_validate(layer) for layer in manifest.get("layers") or []]
        annotations = dict(manifest.get("annotations") or {})
        logger.info(f"Resolved {ref.uri}: {len(layers)} layers")
        return ImageInspection(reference=ref, layers=layers, annotations=annotations,
                               config=config, architectures=architectures)


def build_registry_data(inspection: ImageInspection) -> RegistryData:
    """Derive registry-sourced field values and the artifact for one image."""
    ref = inspection.reference
    config = inspection.config
    labels = (config.get("config") or {}).get("Labels") or {}
    annotations = {**labels, **inspection.annotations}

    created = parse_timestamp_to_epoch(config.get("created"))
    updated = created
    history = config.get("history") or []
    if history:
        updated = parse_timestamp_to_epoch(history[-1].get("created")) or created

    custom_properties: Dict[str, Any] = {
        "source": metadata_value(ref.registry),
        "type": metadata_value("modelcar"),
    }
    for key, value in inspection.annotations.items():
        if key != LAYER_TYPE_ANNOTATION:
            custom_properties[key] = metadata_value(str(value))
    if inspection.architectures:
        custom_properties["architecture"] = metadata_value(json.dumps(inspection.architectures))

    artifact = OCIArtifact(
        uri=ref.uri,
        create_time_since_epoch=created,
        last_update_time_since_epoch=updated,
        custom_properties=custom_properties,
    )

    values: Dict[str, Any] = {
        "name": annotations.get(ANNOTATION_TITLE) or ref.repository.rsplit("/", 1)[-1],
        "provider": annotations.get(ANNOTATION_VENDOR) or annotations.get(ANNOTATION_AUTHORS),
        "description": annotations.get(ANNOTATION_DESCRIPTION),
        "license": annotations.get(ANNOTATION_LICENSES),
        "create_time_since_epoch": created,
        "last_update_time_since_epoch": updated,
    }
    return RegistryData(values={k: v for k, v in values.items() if v is not None}, artifacts=[artifact])
