import json
import subprocess
import tarfile
from unittest.mock import MagicMock
from unittest.mock import patch

from conftest import write_docker_archive

from sbomindex.core.image import ScanSource
from sbomindex.core.layers import LayerMapping
from sbomindex.services.trivy_service import parse_report
from sbomindex.services.trivy_service import TrivyEngine

MAPPING = LayerMapping.from_layers(['sha256:aaa'], ['sha256:111'])

REPORT = {
    'SchemaVersion': 2,
    'Metadata': {'OS': {'Family': 'redhat', 'Name': '9.3'}},
    'Results': [
        {
            'Target': 'registry.access.redhat.com/ubi9 (redhat 9.3)',
            'Class': 'os-pkgs',
            'Type': 'redhat',
            'Packages': [
                {
                    'ID': 'bash@5.1.8-6.el9_1.x86_64',
                    'Name': 'bash',
                    'Identifier': {'PURL': 'pkg:rpm/redhat/bash@5.1.8-6.el9_1?arch=x86_64'},
                    'Version': '5.1.8',
                    'Release': '6.el9_1',
                    'SrcName': 'bash',
                    'Licenses': ['GPLv3+'],
                    'DependsOn': ['glibc@2.34-83.el9.x86_64', 'missing@1.0'],
                    'Layer': {'Digest': 'sha256:aaa', 'DiffID': 'sha256:111'},
                },
                {
                    'ID': 'glibc@2.34-83.el9.x86_64',
                    'Name': 'glibc',
                    'Identifier': {'PURL': 'pkg:rpm/redhat/glibc@2.34-83.el9?arch=x86_64'},
                    'Version': '2.34',
                    'Release': '83.el9',
                    'Epoch': 1,
                },
            ],
        },
        {
            'Target': 'app/requirements.txt',
            'Class': 'lang-pkgs',
            'Type': 'pip',
            'Packages': [
                {
                    'Name': 'requests',
                    'Version': '2.31.0',
                    'FilePath': 'app/requirements.txt',
                },
            ],
        },
    ],
}


def test_parse_report_packages():
    """Packages take their type from the enclosing result."""
    result = parse_report(REPORT)
    bash, glibc, requests = result.packages

    assert result.engine == 'trivy'
    assert bash.type == 'redhat'
    assert bash.version == '5.1.8-6.el9_1'
    assert bash.licenses == ['GPLv3+']
    assert bash.layer.digest == 'sha256:aaa'
    assert bash.layer.diff_id == 'sha256:111'
    assert bash.metadata['class'] == 'os-pkgs'
    assert glibc.version == '1:2.34-83.el9'
    assert glibc.layer is None
    assert requests.type == 'pip'
    assert requests.purl is None
    assert requests.locations == ['app/requirements.txt']


def test_parse_report_dependencies():
    """DependsOn ids are translated to purls when the target is known."""
    bash = parse_report(REPORT).packages[0]
    assert bash.dependencies == ['missing@1.0', 'pkg:rpm/redhat/glibc@2.34-83.el9?arch=x86_64']


def test_parse_report_distro():
    distro = parse_report(REPORT).distro
    assert distro.name == 'redhat'
    assert distro.version == '9.3'


def test_parse_report_without_results():
    result = parse_report({'SchemaVersion': 2})
    assert result.packages == []
    assert result.distro is None


def test_command_for_oci_layout(tmp_path):
    command = TrivyEngine('trivy').command(ScanSource('oci-dir', tmp_path))
    assert command[:4] == ['trivy', 'image', '--input', str(tmp_path)]
    assert '--list-all-pkgs' in command


def test_command_for_docker_archive(tmp_path):
    archive = tmp_path / 'image.tar'
    command = TrivyEngine('trivy').command(ScanSource('docker-archive', archive))
    assert command[:4] == ['trivy', 'image', '--input', str(archive)]


def test_command_for_directory(tmp_path):
    command = TrivyEngine('trivy').command(ScanSource('dir', tmp_path))
    assert command[:3] == ['trivy', 'rootfs', str(tmp_path)]


@patch('subprocess.run')
def test_scan_docker_save_directory(mock_run, tmp_path):
    """Test an extracted docker save directory is handed to trivy as a tarball."""
    root = write_docker_archive(tmp_path / 'archive')
    scanned = []

    def run(command, **kwargs):
        with tarfile.open(command[3]) as tar:
            scanned.extend(tar.getnames())
        return MagicMock(stdout=json.dumps(REPORT))

    mock_run.side_effect = run

    result = TrivyEngine().scan(root, MAPPING)

    assert result.ok
    assert mock_run.call_args[0][0][1:3] == ['image', '--input']
    assert 'manifest.json' in scanned


@patch('subprocess.run')
def test_scan_success(mock_run, tmp_path):
    """Test trivy output is parsed into a scan result."""
    mock_run.return_value = MagicMock(stdout=json.dumps(REPORT))

    result = TrivyEngine().scan(tmp_path, MAPPING)

    assert result.ok
    assert len(result.packages) == 3
    assert result.distro.name == 'redhat'


@patch('subprocess.run')
def test_scan_failure(mock_run, tmp_path):
    """Test a failing trivy run is reported, not raised."""
    mock_run.side_effect = subprocess.CalledProcessError(2, ['trivy'], stderr='FATAL scan error')

    result = TrivyEngine().scan(tmp_path, MAPPING)

    assert not result.ok
    assert result.error == 'trivy exited with 2: FATAL scan error'
