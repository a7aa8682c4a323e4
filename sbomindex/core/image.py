"""Read container images that have been materialized on local disk.

Two layouts are understood:

* OCI image layout (``oci-layout``, ``index.json`` and ``blobs/<alg>/<hex>``)
* an extracted ``docker save`` archive (``manifest.json`` plus config and
  layer files), for which a registry-style manifest is synthesized.
"""
import hashlib
import json
import tarfile
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from functools import cached_property
from pathlib import Path
from typing import Any

import structlog

from sbomindex.core.errors import AcquisitionError

logger = structlog.get_logger('image')

INDEX_MEDIA_TYPES = {
    'application/vnd.oci.image.index.v1+json',
    'application/vnd.docker.distribution.manifest.list.v2+json',
}
DOCKER_MANIFEST_MEDIA_TYPE = 'application/vnd.docker.distribution.manifest.v2+json'
DOCKER_CONFIG_MEDIA_TYPE = 'application/vnd.docker.container.image.v1+json'
DOCKER_LAYER_MEDIA_TYPE = 'application/vnd.docker.image.rootfs.diff.tar'


@dataclass(frozen=True)
class Image:
    """Opaque handle on a local image: raw and parsed manifest and config."""
    raw_manifest: bytes
    raw_config: bytes

    @cached_property
    def manifest(self) -> dict[str, Any]:
        return _parse_json(self.raw_manifest, 'manifest')

    @cached_property
    def config(self) -> dict[str, Any]:
        return _parse_json(self.raw_config, 'config')

    @property
    def digest(self) -> str:
        return 'sha256:' + hashlib.sha256(self.raw_manifest).hexdigest()

    @property
    def layer_digests(self) -> list[str]:
        return [layer['digest'] for layer in self.manifest.get('layers') or []]

    @property
    def diff_ids(self) -> list[str]:
        return list((self.config.get('rootfs') or {}).get('diff_ids') or [])


def read_image(path: str | Path) -> Image:
    """Open the image stored at *path*."""
    root = Path(path)
    if not root.is_dir():
        raise AcquisitionError(f"Image path is not a directory: {root}")

    if (root / 'index.json').exists():
        image = _read_oci_layout(root)
        layout = 'oci'
    elif (root / 'manifest.json').exists():
        image = _read_docker_archive(root)
        layout = 'docker-archive'
    else:
        raise AcquisitionError(
            f"No index.json or manifest.json found in {root}",
        )

    logger.debug(
        'Loaded image', path=str(root), layout=layout,
        digest=image.digest, layers=len(image.layer_digests),
    )
    return image


@dataclass(frozen=True)
class ScanSource:
    """Where an engine should look: a source scheme and a path on disk."""
    scheme: str
    path: Path


@contextmanager
def scan_source(path: str | Path) -> Iterator[ScanSource]:
    """
    Present the image at *path* in a form the engines can open.

    OCI layouts are scanned in place (``oci-dir``). An extracted ``docker
    save`` directory is packed back into a temporary tarball
    (``docker-archive``) that lives until the context exits. Anything else
    is handed over as a plain filesystem (``dir``).
    """
    root = Path(path).absolute()
    if (root / 'index.json').exists():
        yield ScanSource('oci-dir', root)
    elif (root / 'manifest.json').exists():
        with tempfile.TemporaryDirectory(prefix='sbomindex-') as tmp:
            archive = Path(tmp) / 'image.tar'
            pack_docker_archive(root, archive)
            yield ScanSource('docker-archive', archive)
    else:
        yield ScanSource('dir', root)


def pack_docker_archive(root: Path, target: Path) -> Path:
    """Re-create the ``docker save`` tarball for an extracted archive."""
    try:
        with tarfile.open(target, 'w') as tar:
            for child in sorted(root.iterdir()):
                tar.add(child, arcname=child.name)
    except (OSError, tarfile.TarError) as e:
        raise AcquisitionError(f"Failed to pack {root} into {target}: {e}") from e
    logger.debug('Packed docker archive', path=str(root), archive=str(target))
    return target


def _read_oci_layout(root: Path) -> Image:
    index = _parse_json(_read_file(root / 'index.json'), 'index.json')
    descriptor = _first_manifest(index, 'index.json')

    # Follow nested indexes (multi-platform images) to the first manifest
    while descriptor.get('mediaType') in INDEX_MEDIA_TYPES:
        nested = _parse_json(_read_blob(root, descriptor['digest']), 'index')
        descriptor = _first_manifest(nested, descriptor['digest'])

    raw_manifest = _read_blob(root, descriptor['digest'])
    manifest = _parse_json(raw_manifest, 'manifest')
    config_digest = (manifest.get('config') or {}).get('digest')
    if not config_digest:
        raise AcquisitionError(f"Manifest {descriptor['digest']} has no config")
    return Image(raw_manifest=raw_manifest, raw_config=_read_blob(root, config_digest))


def _read_docker_archive(root: Path) -> Image:
    entries = _parse_json(_read_file(root / 'manifest.json'), 'manifest.json')
    if not isinstance(entries, list) or not entries:
        raise AcquisitionError(f"Empty manifest.json in {root}")
    entry = entries[0]
    if not entry.get('Config'):
        raise AcquisitionError(f"manifest.json in {root} has no Config entry")

    raw_config = _read_file(root / entry['Config'])
    layers = []
    for layer_path in entry.get('Layers') or []:
        layer_file = root / layer_path
        layers.append({
            'mediaType': DOCKER_LAYER_MEDIA_TYPE,
            'size': _file_size(layer_file),
            'digest': _file_digest(layer_file),
        })

    manifest = {
        'schemaVersion': 2,
        'mediaType': DOCKER_MANIFEST_MEDIA_TYPE,
        'config': {
            'mediaType': DOCKER_CONFIG_MEDIA_TYPE,
            'size': len(raw_config),
            'digest': 'sha256:' + hashlib.sha256(raw_config).hexdigest(),
        },
        'layers': layers,
    }
    raw_manifest = json.dumps(manifest, separators=(',', ':')).encode()
    return Image(raw_manifest=raw_manifest, raw_config=raw_config)


def _first_manifest(index: Any, origin: str) -> dict[str, Any]:
    manifests = index.get('manifests') if isinstance(index, dict) else None
    if not manifests:
        raise AcquisitionError(f"No manifests listed in {origin}")
    return manifests[0]


def _read_blob(root: Path, digest: str) -> bytes:
    algorithm, _, hex_digest = digest.partition(':')
    if not hex_digest:
        raise AcquisitionError(f"Malformed digest: {digest}")
    return _read_file(root / 'blobs' / algorithm / hex_digest)


def _read_file(path: Path) -> bytes:
    try:
        return path.read_bytes()
    except OSError as e:
        raise AcquisitionError(f"Failed to read {path}: {e}") from e


def _file_size(path: Path) -> int:
    try:
        return path.stat().st_size
    except OSError as e:
        raise AcquisitionError(f"Failed to stat {path}: {e}") from e


def _file_digest(path: Path) -> str:
    hasher = hashlib.sha256()
    try:
        with open(path, 'rb') as f:
            while chunk := f.read(65536):
                hasher.update(chunk)
    except OSError as e:
        raise AcquisitionError(f"Failed to read {path}: {e}") from e
    return 'sha256:' + hasher.hexdigest()


def _parse_json(data: bytes, what: str) -> Any:
    try:
        return json.loads(data)
    except ValueError as e:
        raise AcquisitionError(f"Malformed {what}: {e}") from e
