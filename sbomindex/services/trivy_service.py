import json
import subprocess
import time
from pathlib import Path
from typing import Any

import structlog

from sbomindex.core.image import scan_source
from sbomindex.core.image import ScanSource
from sbomindex.core.layers import LayerMapping
from sbomindex.models.package import LayerRef
from sbomindex.models.package import Package
from sbomindex.models.sbom import Distro
from sbomindex.models.scan import ScanResult

logger = structlog.get_logger('trivy_service')


class TrivyEngine:
    """Package discovery backed by the Trivy executable."""

    name = 'trivy'

    def __init__(self, binary: str = 'trivy'):
        self.binary = binary

    def command(self, source: ScanSource) -> list[str]:
        if source.scheme == 'dir':
            # Plain directories are root filesystems, not images
            target = ['rootfs', str(source.path)]
        else:
            target = ['image', '--input', str(source.path)]
        return [
            self.binary, *target,
            '--format', 'json', '--list-all-pkgs', '--scanners', 'vuln', '--quiet',
        ]

    def scan(self, path: str | Path, layer_mapping: LayerMapping) -> ScanResult:
        with scan_source(path) as source:
            return self._execute(self.command(source), layer_mapping)

    def _execute(self, command: list[str], layer_mapping: LayerMapping) -> ScanResult:
        start_time = time.time()
        try:
            process = subprocess.run(
                command, capture_output=True, text=True, check=True,
            )
        except subprocess.CalledProcessError as e:
            logger.error(
                'TRIVY Command Failed',
                command=' '.join(command),
                returncode=e.returncode,
                error_output=e.stderr,
                _style='bold red',
            )
            return ScanResult(engine=self.name, error=f"trivy exited with {e.returncode}: {e.stderr.strip()}")

        elapsed = time.time() - start_time
        result = parse_report(json.loads(process.stdout))
        logger.info(
            'TRIVY Command',
            command=' '.join(command),
            packages=len(result.packages),
            layers=len(layer_mapping),
            elapsed=f"{elapsed:.3f}s",
        )
        return result


def parse_report(report: dict[str, Any]) -> ScanResult:
    """Translate a trivy JSON report into raw packages."""
    packages = []
    for result in report.get('Results') or []:
        raw_packages = result.get('Packages') or []
        ids = {p['ID']: _identifier(p) for p in raw_packages if p.get('ID')}

        for raw in raw_packages:
            identifier = raw.get('Identifier') or {}
            layer = raw.get('Layer') or {}
            packages.append(
                Package(
                    name=raw.get('Name') or '',
                    version=_full_version(raw),
                    type=result.get('Type') or '',
                    purl=identifier.get('PURL') or None,
                    licenses=raw.get('Licenses'),
                    locations=[raw['FilePath']] if raw.get('FilePath') else [],
                    layer=_layer_of(layer),
                    dependencies=sorted({ids.get(d, d) for d in raw.get('DependsOn') or []}),
                    found_by=['trivy'],
                    metadata={
                        'id': raw.get('ID'),
                        'target': result.get('Target'),
                        'class': result.get('Class'),
                        'srcName': raw.get('SrcName'),
                        'srcVersion': raw.get('SrcVersion'),
                    },
                ),
            )

    distro = None
    os_info = (report.get('Metadata') or {}).get('OS') or {}
    if os_info.get('Family'):
        distro = Distro(name=os_info['Family'], version=os_info.get('Name') or '')
    return ScanResult(engine='trivy', packages=packages, distro=distro)


def _full_version(raw: dict[str, Any]) -> str:
    version = raw.get('Version') or ''
    if raw.get('Release'):
        version = f"{version}-{raw['Release']}"
    if raw.get('Epoch'):
        version = f"{raw['Epoch']}:{version}"
    return version


def _layer_of(layer: dict[str, Any]) -> LayerRef | None:
    if not layer.get('DiffID') and not layer.get('Digest'):
        return None
    return LayerRef(diff_id=layer.get('DiffID') or None, digest=layer.get('Digest') or None)


def _identifier(raw: dict[str, Any]) -> str:
    purl = (raw.get('Identifier') or {}).get('PURL')
    return purl or f"{raw.get('Name')}@{_full_version(raw)}"
