from collections.abc import Callable
from collections.abc import Sequence
from concurrent.futures import as_completed
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path

import structlog

from sbomindex.core.errors import EnrichmentError
from sbomindex.core.errors import ImageIndexError
from sbomindex.core.errors import NormalizationError
from sbomindex.core.image import Image
from sbomindex.core.image import read_image
from sbomindex.core.layers import create_layer_mapping
from sbomindex.core.stats import IndexStats
from sbomindex.models.package import Package
from sbomindex.models.sbom import Sbom
from sbomindex.models.sbom import Vulnerability
from sbomindex.services.assembler_service import assemble_sbom
from sbomindex.services.cache_service import CacheWriteResult
from sbomindex.services.cache_service import SbomCache
from sbomindex.services.merge_service import merge_distro
from sbomindex.services.merge_service import merge_packages
from sbomindex.services.normalize_service import normalize_packages
from sbomindex.services.scan_service import ScanService

logger = structlog.get_logger('indexer_service')

VulnerabilityLookup = Callable[[list[Package]], list[Vulnerability]]


@dataclass
class AcquiredImage:
    image: Image
    path: Path
    name: str = ''


Acquirer = Callable[[str], AcquiredImage]


@dataclass
class IndexedSbom:
    sbom: Sbom
    cached: bool = False
    cache_write: CacheWriteResult | None = None


@dataclass
class ImageIndexResult:
    """Outcome of indexing one input: an SBOM or an error, never both."""
    input: str
    image: Image | None = None
    sbom: Sbom | None = None
    error: Exception | None = None
    cached: bool = False
    cache_write: CacheWriteResult | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def acquire_local(input: str) -> AcquiredImage:
    """
    Open a local image from ``PATH`` or ``PATH=REFERENCE``.

    The optional reference names the image in the resulting SBOM.
    """
    path, _, name = input.partition('=')
    return AcquiredImage(image=read_image(path), path=Path(path), name=name)


class IndexerService:
    """Builds SBOMs for images: cache check, dual scan, merge, assemble, persist."""

    def __init__(
        self,
        scanner: ScanService,
        cache: SbomCache,
        priority: Sequence[str],
        vulnerability_lookup: VulnerabilityLookup | None = None,
    ):
        self.scanner = scanner
        self.cache = cache
        self.priority = tuple(priority)
        self.vulnerability_lookup = vulnerability_lookup

    def index_path(self, path: str | Path, image_name: str = '') -> tuple[IndexedSbom, Image]:
        logger.info('Loading image', path=str(path))
        image = read_image(path)
        return self.index_image(image, path, image_name), image

    def index_image(self, image: Image, path: str | Path, image_name: str = '') -> IndexedSbom:
        """
        Index one extracted image.

        Raises AcquisitionError, NormalizationError or ReferenceParseError;
        engine and cache failures are logged and tolerated.
        """
        lookup = self.cache.load(path)
        if lookup.hit:
            logger.info('Indexed packages', image=image_name or str(path), packages=len(lookup.sbom.artifacts), cached=True)
            return IndexedSbom(sbom=lookup.sbom, cached=True)

        layer_mapping = create_layer_mapping(image)
        logger.debug('Created layer mapping', layers=len(layer_mapping))

        logger.info('Indexing', image=image_name or str(path), cache=lookup.reason)
        results = self.scanner.scan(path, layer_mapping)

        for result in results:
            try:
                result.packages = normalize_packages(result.packages, layer_mapping)
            except NormalizationError as e:
                raise NormalizationError(
                    f"failed to normalize {result.engine} packages of {image_name or path}: {e}",
                ) from e

        packages = merge_packages(results, self.priority)
        logger.info('Indexed packages', image=image_name or str(path), packages=len(packages))

        sbom = assemble_sbom(
            packages,
            image,
            image_name=image_name,
            distro=merge_distro(results, self.priority),
            descriptor=self.cache.descriptor,
        )
        cache_write = self.cache.save(path, sbom)
        return IndexedSbom(sbom=sbom, cache_write=cache_write)

    def enrich(self, sbom: Sbom) -> Sbom:
        """Attach vulnerabilities; a failed lookup leaves them unset."""
        if self.vulnerability_lookup is None:
            return sbom
        try:
            sbom.vulnerabilities = self.vulnerability_lookup(sbom.artifacts)
        except EnrichmentError as e:
            logger.warning('Vulnerability lookup failed', image=sbom.source.image.name, error=str(e))
            sbom.vulnerabilities = None
        except Exception as e:
            logger.warning(
                'Vulnerability lookup failed unexpectedly', image=sbom.source.image.name,
                error=str(e), error_type=type(e).__name__,
            )
            sbom.vulnerabilities = None
        return sbom

    def index_images(
        self,
        inputs: Sequence[str],
        acquire: Acquirer = acquire_local,
        workers: int = 4,
        stats: IndexStats | None = None,
        on_result: Callable[[ImageIndexResult], None] | None = None,
    ) -> list[ImageIndexResult]:
        """
        Index every input concurrently.

        Returns one result per input in completion order; a failing input
        never affects the others.
        """
        stats = stats or IndexStats(total=len(inputs))
        outcomes: list[ImageIndexResult] = []
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix='index') as executor:
            futures = [executor.submit(self._index_one, i, acquire, stats) for i in inputs]
            for future in as_completed(futures):
                outcome = future.result()
                outcomes.append(outcome)
                if on_result:
                    on_result(outcome)
        return outcomes

    def _index_one(self, input: str, acquire: Acquirer, stats: IndexStats) -> ImageIndexResult:
        outcome = ImageIndexResult(input=input)
        with structlog.contextvars.bound_contextvars(input=input):
            try:
                acquired = acquire(input)
                outcome.image = acquired.image
                indexed = self.index_image(acquired.image, acquired.path, acquired.name)
            except Exception as e:
                outcome.error = ImageIndexError(input, e)
                stats.inc_failed()
                logger.error(
                    'Failed to index image', error=str(e),
                    error_type=type(e).__name__, _style='bold red',
                )
                return outcome

            outcome.sbom = self.enrich(indexed.sbom)

        outcome.cached = indexed.cached
        outcome.cache_write = indexed.cache_write
        if indexed.cached:
            stats.inc_cache_hits()
        stats.inc_indexed(len(indexed.sbom.artifacts))
        return outcome
