import hashlib
import json
import tarfile

import pytest
from conftest import write_docker_archive
from conftest import write_oci_layout

from sbomindex.core.errors import AcquisitionError
from sbomindex.core.image import DOCKER_MANIFEST_MEDIA_TYPE
from sbomindex.core.image import read_image
from sbomindex.core.image import scan_source


class TestOciLayout:
    """Tests for reading OCI image layouts."""

    def test_reads_manifest_and_config(self, oci_layout):
        image = read_image(oci_layout.path)
        assert image.digest == oci_layout.manifest_digest
        assert image.layer_digests == oci_layout.digests
        assert image.diff_ids == oci_layout.diff_ids
        assert image.config['architecture'] == 'arm64'

    def test_follows_nested_index(self, tmp_path):
        layout = write_oci_layout(tmp_path / 'multi')
        index_path = layout.path / 'index.json'
        inner = index_path.read_bytes()
        inner_digest = 'sha256:' + hashlib.sha256(inner).hexdigest()
        blob = layout.path / 'blobs' / 'sha256' / inner_digest.split(':')[1]
        blob.write_bytes(inner)
        index_path.write_text(json.dumps({
            'schemaVersion': 2,
            'manifests': [{
                'mediaType': 'application/vnd.oci.image.index.v1+json',
                'digest': inner_digest,
                'size': len(inner),
            }],
        }))

        image = read_image(layout.path)
        assert image.digest == layout.manifest_digest

    def test_missing_blob(self, oci_layout):
        config_digest = read_image(oci_layout.path).manifest['config']['digest']
        (oci_layout.path / 'blobs' / 'sha256' / config_digest.split(':')[1]).unlink()
        with pytest.raises(AcquisitionError):
            read_image(oci_layout.path)

    def test_malformed_index(self, oci_layout):
        (oci_layout.path / 'index.json').write_text('{not json')
        with pytest.raises(AcquisitionError):
            read_image(oci_layout.path)

    def test_empty_index(self, oci_layout):
        (oci_layout.path / 'index.json').write_text(json.dumps({'manifests': []}))
        with pytest.raises(AcquisitionError):
            read_image(oci_layout.path)


class TestDockerArchive:
    """Tests for reading extracted docker save archives."""

    def test_synthesizes_manifest(self, tmp_path):
        root = tmp_path / 'archive'
        (root / 'layer1').mkdir(parents=True)
        (root / 'layer1' / 'layer.tar').write_bytes(b'layer one')
        config = {'os': 'linux', 'architecture': 'amd64', 'rootfs': {'diff_ids': ['sha256:d1']}}
        (root / 'abc.json').write_text(json.dumps(config))
        (root / 'manifest.json').write_text(json.dumps([
            {'Config': 'abc.json', 'RepoTags': ['app:1'], 'Layers': ['layer1/layer.tar']},
        ]))

        image = read_image(root)
        assert image.manifest['mediaType'] == DOCKER_MANIFEST_MEDIA_TYPE
        assert image.layer_digests == ['sha256:' + hashlib.sha256(b'layer one').hexdigest()]
        assert image.manifest['config']['size'] == len(image.raw_config)
        assert image.diff_ids == ['sha256:d1']

    def test_missing_layer(self, tmp_path):
        root = tmp_path / 'archive'
        root.mkdir()
        (root / 'abc.json').write_text('{}')
        (root / 'manifest.json').write_text(json.dumps([
            {'Config': 'abc.json', 'Layers': ['missing/layer.tar']},
        ]))
        with pytest.raises(AcquisitionError):
            read_image(root)


def test_not_an_image(tmp_path):
    with pytest.raises(AcquisitionError):
        read_image(tmp_path)


def test_missing_path(tmp_path):
    with pytest.raises(AcquisitionError):
        read_image(tmp_path / 'nope')


class TestScanSource:
    """Tests for presenting images to the engines."""

    def test_oci_layout_scanned_in_place(self, oci_layout):
        with scan_source(oci_layout.path) as source:
            assert source.scheme == 'oci-dir'
            assert source.path == oci_layout.path

    def test_docker_save_directory_is_repacked(self, tmp_path):
        root = write_docker_archive(tmp_path / 'archive')

        with scan_source(root) as source:
            assert source.scheme == 'docker-archive'
            with tarfile.open(source.path) as tar:
                names = tar.getnames()
            archive = source.path

        assert 'manifest.json' in names
        assert 'abc.json' in names
        assert 'layer1/layer.tar' in names
        assert not archive.exists()

    def test_plain_directory(self, tmp_path):
        with scan_source(tmp_path) as source:
            assert source.scheme == 'dir'
            assert source.path == tmp_path
