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

logger = structlog.get_logger('syft_service')

DEPENDENCY_RELATIONSHIP = 'dependency-of'


class SyftEngine:
    """Package discovery backed by the Syft executable."""

    name = 'syft'

    def __init__(self, binary: str = 'syft'):
        self.binary = binary

    def command(self, source: ScanSource) -> list[str]:
        return [self.binary, 'scan', f"{source.scheme}:{source.path}", '-o', 'syft-json', '-q']

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
                'SYFT Command Failed',
                command=' '.join(command),
                returncode=e.returncode,
                error_output=e.stderr,
                _style='bold red',
            )
            return ScanResult(engine=self.name, error=f"syft exited with {e.returncode}: {e.stderr.strip()}")

        elapsed = time.time() - start_time
        result = parse_report(json.loads(process.stdout))
        logger.info(
            'SYFT Command',
            command=' '.join(command),
            packages=len(result.packages),
            layers=len(layer_mapping),
            elapsed=f"{elapsed:.3f}s",
        )
        return result


def parse_report(report: dict[str, Any]) -> ScanResult:
    """Translate a syft-json document into raw packages."""
    artifacts = report.get('artifacts') or []
    by_id = {a.get('id'): a for a in artifacts if a.get('id')}

    dependencies: dict[str, list[str]] = {}
    for relationship in report.get('artifactRelationships') or []:
        if relationship.get('type') != DEPENDENCY_RELATIONSHIP:
            continue
        # "parent is a dependency of child"
        parent = by_id.get(relationship.get('parent'))
        child_id = relationship.get('child')
        if parent and child_id in by_id:
            dependencies.setdefault(child_id, []).append(_identifier(parent))

    packages = []
    for artifact in artifacts:
        locations = artifact.get('locations') or []
        packages.append(
            Package(
                name=artifact.get('name') or '',
                version=artifact.get('version') or '',
                type=artifact.get('type') or '',
                purl=artifact.get('purl') or None,
                licenses=artifact.get('licenses'),
                locations=[loc['path'] for loc in locations if loc.get('path')],
                layer=_layer_of(locations),
                dependencies=sorted(set(dependencies.get(artifact.get('id'), []))),
                found_by=['syft'],
                metadata={
                    'id': artifact.get('id'),
                    'foundBy': artifact.get('foundBy'),
                    'language': artifact.get('language'),
                    'cpes': [
                        c.get('cpe') if isinstance(c, dict) else c
                        for c in artifact.get('cpes') or []
                    ],
                },
            ),
        )

    distro = None
    raw_distro = report.get('distro') or {}
    if raw_distro.get('id') or raw_distro.get('name'):
        distro = Distro(
            name=raw_distro.get('id') or raw_distro.get('name'),
            version=raw_distro.get('versionID') or raw_distro.get('version') or '',
        )
    return ScanResult(engine='syft', packages=packages, distro=distro)


def _layer_of(locations: list[dict[str, Any]]) -> LayerRef | None:
    # The first location is where syft found the package; its layerID is a diff ID
    for location in locations:
        layer_id = location.get('layerID')
        if layer_id:
            return LayerRef(diff_id=layer_id)
    return None


def _identifier(artifact: dict[str, Any]) -> str:
    return artifact.get('purl') or f"{artifact.get('name')}@{artifact.get('version')}"
