"""Wires services together from an IndexConfig."""
from sbomindex.core.config import get_config
from sbomindex.core.config import IndexConfig
from sbomindex.services.assembler_service import current_descriptor
from sbomindex.services.cache_service import SbomCache
from sbomindex.services.indexer_service import IndexerService
from sbomindex.services.indexer_service import VulnerabilityLookup
from sbomindex.services.scan_service import ScanService
from sbomindex.services.syft_service import SyftEngine
from sbomindex.services.trivy_service import TrivyEngine


class Container:
    """Builds the indexing services for one configuration."""

    def __init__(self, config: IndexConfig | None = None) -> None:
        self.config = config or get_config()

    def get_engines(self) -> dict:
        return {
            'syft': SyftEngine(self.config.syft_bin),
            'trivy': TrivyEngine(self.config.trivy_bin),
        }

    def get_scan_service(self) -> ScanService:
        engines = self.get_engines()
        first, second = (engines[name] for name in self.config.engine_priority)
        return ScanService(first, second)

    def get_sbom_cache(self) -> SbomCache:
        return SbomCache(
            current_descriptor(),
            enabled=self.config.use_cache,
            filename=self.config.cache_filename,
        )

    def get_indexer_service(self, vulnerability_lookup: VulnerabilityLookup | None = None) -> IndexerService:
        return IndexerService(
            scanner=self.get_scan_service(),
            cache=self.get_sbom_cache(),
            priority=self.config.engine_priority,
            vulnerability_lookup=vulnerability_lookup,
        )
