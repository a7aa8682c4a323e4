"""Reconcile the package lists of several engines into one artifact list."""
from collections.abc import Sequence

import structlog

from sbomindex.models.package import Package
from sbomindex.models.sbom import Distro
from sbomindex.models.scan import ScanResult

logger = structlog.get_logger('merge_service')


def merge_packages(results: Sequence[ScanResult], priority: Sequence[str]) -> list[Package]:
    """
    Deduplicate packages on (name, version, type).

    When two engines report the same package, the one whose dependency list
    is a strict superset of the other's wins; otherwise the engine listed
    first in *priority* wins. Locations, licenses and foundBy are unioned.
    The result does not depend on the order of *results*.
    """
    rank = {engine: i for i, engine in enumerate(priority)}
    ordered = sorted(results, key=lambda r: (rank.get(r.engine, len(rank)), r.engine))

    merged: dict[tuple[str, str, str], Package] = {}
    for result in ordered:
        if result.error:
            logger.warning(
                'Engine reported an error', engine=result.engine,
                error=result.error, partial_packages=len(result.packages),
            )
        for package in result.packages:
            existing = merged.get(package.key)
            merged[package.key] = package if existing is None else _combine(existing, package)

    packages = sorted(merged.values(), key=_sort_key)
    logger.debug(
        'Merged packages',
        engines=[r.engine for r in ordered],
        inputs=sum(len(r.packages) for r in ordered),
        merged=len(packages),
    )
    return packages


def merge_distro(results: Sequence[ScanResult], priority: Sequence[str]) -> Distro:
    """Distro of the highest-priority engine that identified one."""
    rank = {engine: i for i, engine in enumerate(priority)}
    for result in sorted(results, key=lambda r: (rank.get(r.engine, len(rank)), r.engine)):
        if result.distro is not None:
            return result.distro
    return Distro()


def _combine(preferred: Package, other: Package) -> Package:
    # `preferred` came from a higher-priority engine (or earlier in the same engine)
    winner, loser = preferred, other
    if set(other.dependencies) > set(preferred.dependencies):
        winner, loser = other, preferred

    return winner.model_copy(
        update={
            'locations': sorted(set(winner.locations) | set(loser.locations)),
            'licenses': sorted(set(winner.licenses) | set(loser.licenses)),
            'found_by': sorted(set(winner.found_by) | set(loser.found_by)),
        },
    )


def _sort_key(package: Package) -> tuple[str, str, str, int]:
    return (package.name, package.version, package.type, package.ordinal)
