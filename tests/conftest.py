import hashlib
import json
from dataclasses import dataclass
from pathlib import Path

import pytest

from sbomindex.models.package import Package
from sbomindex.models.sbom import Distro
from sbomindex.models.scan import ScanResult

OCI_MANIFEST = 'application/vnd.oci.image.manifest.v1+json'
OCI_CONFIG = 'application/vnd.oci.image.config.v1+json'
OCI_LAYER = 'application/vnd.oci.image.layer.v1.tar+gzip'


def sha256(data: bytes) -> str:
    return 'sha256:' + hashlib.sha256(data).hexdigest()


def _write_blob(root: Path, data: bytes) -> str:
    digest = sha256(data)
    blob = root / 'blobs' / 'sha256' / digest.split(':', 1)[1]
    blob.parent.mkdir(parents=True, exist_ok=True)
    blob.write_bytes(data)
    return digest


@dataclass
class OciLayout:
    path: Path
    digests: list[str]
    diff_ids: list[str]
    manifest_digest: str
    config_size: int


def write_oci_layout(root: Path, layer_count: int = 2, variant: str | None = None) -> OciLayout:
    """Write a minimal OCI image layout with *layer_count* layers."""
    root.mkdir(parents=True, exist_ok=True)
    (root / 'oci-layout').write_text(json.dumps({'imageLayoutVersion': '1.0.0'}))

    layers, digests, diff_ids = [], [], []
    for i in range(layer_count):
        blob = f"compressed layer {i} of {root.name}".encode()
        digest = _write_blob(root, blob)
        digests.append(digest)
        diff_ids.append(sha256(f"uncompressed layer {i} of {root.name}".encode()))
        layers.append({'mediaType': OCI_LAYER, 'digest': digest, 'size': len(blob)})

    config = {
        'architecture': 'arm64',
        'os': 'linux',
        'rootfs': {'type': 'layers', 'diff_ids': diff_ids},
    }
    if variant:
        config['variant'] = variant
    raw_config = json.dumps(config).encode()
    config_digest = _write_blob(root, raw_config)

    manifest = {
        'schemaVersion': 2,
        'mediaType': OCI_MANIFEST,
        'config': {'mediaType': OCI_CONFIG, 'digest': config_digest, 'size': len(raw_config)},
        'layers': layers,
    }
    raw_manifest = json.dumps(manifest).encode()
    manifest_digest = _write_blob(root, raw_manifest)

    index = {
        'schemaVersion': 2,
        'manifests': [{'mediaType': OCI_MANIFEST, 'digest': manifest_digest, 'size': len(raw_manifest)}],
    }
    (root / 'index.json').write_text(json.dumps(index))
    return OciLayout(root, digests, diff_ids, manifest_digest, len(raw_config))


def write_docker_archive(root: Path) -> Path:
    """Write a minimal extracted `docker save` directory with one layer."""
    (root / 'layer1').mkdir(parents=True, exist_ok=True)
    (root / 'layer1' / 'layer.tar').write_bytes(b'layer one')
    config = {'os': 'linux', 'architecture': 'amd64', 'rootfs': {'diff_ids': ['sha256:d1']}}
    (root / 'abc.json').write_text(json.dumps(config))
    (root / 'manifest.json').write_text(json.dumps([
        {'Config': 'abc.json', 'RepoTags': ['app:1'], 'Layers': ['layer1/layer.tar']},
    ]))
    return root


class FakeEngine:
    """Engine double returning canned results."""

    def __init__(
        self,
        name: str,
        packages: list[Package] | None = None,
        distro: Distro | None = None,
        error: str | None = None,
        raises: Exception | None = None,
    ):
        self.name = name
        self.packages = packages or []
        self.distro = distro
        self.error = error
        self.raises = raises
        self.calls = 0

    def scan(self, path, layer_mapping) -> ScanResult:
        self.calls += 1
        if self.raises:
            raise self.raises
        if self.error:
            return ScanResult(engine=self.name, error=self.error)
        return ScanResult(
            engine=self.name,
            packages=[p.model_copy(deep=True) for p in self.packages],
            distro=self.distro,
        )


def make_package(name: str, version: str = '1.0', type: str = 'deb', **kwargs) -> Package:
    return Package(name=name, version=version, type=type, **kwargs)


@pytest.fixture
def oci_layout(tmp_path) -> OciLayout:
    return write_oci_layout(tmp_path / 'image')

