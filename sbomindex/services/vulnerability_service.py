"""Offline vulnerability lookup backed by Grype or Trivy JSON reports."""
import json
from pathlib import Path
from typing import Any

import structlog

from sbomindex.core.errors import EnrichmentError
from sbomindex.models.package import Package
from sbomindex.models.sbom import Vulnerability
from sbomindex.services.normalize_service import strip_purl_qualifiers

logger = structlog.get_logger('vulnerability_service')


class ReportVulnerabilitySource:
    """Matches packages against vulnerability reports on disk by purl."""

    def __init__(self, report_paths: list[Path]):
        self.report_paths = [Path(p) for p in report_paths]

    def __call__(self, packages: list[Package]) -> list[Vulnerability]:
        wanted = {strip_purl_qualifiers(p.purl) for p in packages if p.purl}
        matches = []
        for path in self.report_paths:
            for vuln in load_report(path):
                if vuln.purl and strip_purl_qualifiers(vuln.purl) in wanted:
                    matches.append(vuln)

        unique = {(v.id, v.purl): v for v in matches}
        vulnerabilities = sorted(unique.values(), key=lambda v: (v.purl or '', v.id))
        logger.debug(
            'Matched vulnerabilities', reports=len(self.report_paths),
            packages=len(packages), vulnerabilities=len(vulnerabilities),
        )
        return vulnerabilities


def load_report(path: Path) -> list[Vulnerability]:
    try:
        report = json.loads(path.read_text(encoding='utf-8'))
    except (OSError, ValueError) as e:
        raise EnrichmentError(f"Failed to load vulnerability report {path}: {e}") from e
    return parse_report(report)


def parse_report(report: dict[str, Any]) -> list[Vulnerability]:
    if 'matches' in report:
        return _parse_grype(report)
    if 'Results' in report:
        return _parse_trivy(report)
    raise EnrichmentError('Unrecognized vulnerability report format')


def _parse_grype(report: dict[str, Any]) -> list[Vulnerability]:
    vulnerabilities = []
    for match in report.get('matches') or []:
        vuln = match.get('vulnerability') or {}
        artifact = match.get('artifact') or {}
        fix_versions = (vuln.get('fix') or {}).get('versions') or []
        vulnerabilities.append(
            Vulnerability(
                id=vuln.get('id') or 'UNKNOWN',
                purl=artifact.get('purl'),
                severity=(vuln.get('severity') or 'UNKNOWN').upper(),
                fixed_version=fix_versions[0] if fix_versions else None,
                source='grype',
                urls=[u for u in vuln.get('urls') or [] if isinstance(u, str)],
            ),
        )
    return vulnerabilities


def _parse_trivy(report: dict[str, Any]) -> list[Vulnerability]:
    vulnerabilities = []
    for result in report.get('Results') or []:
        for vuln in result.get('Vulnerabilities') or []:
            identifier = vuln.get('PkgIdentifier') or {}
            references = vuln.get('References') or []
            vulnerabilities.append(
                Vulnerability(
                    id=vuln.get('VulnerabilityID') or 'UNKNOWN',
                    purl=identifier.get('PURL'),
                    severity=(vuln.get('Severity') or 'UNKNOWN').upper(),
                    fixed_version=vuln.get('FixedVersion') or None,
                    source='trivy',
                    urls=[r for r in references if isinstance(r, str)],
                ),
            )
    return vulnerabilities
