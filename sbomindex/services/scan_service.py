from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Protocol

import structlog

from sbomindex.core.layers import LayerMapping
from sbomindex.models.scan import ScanResult

logger = structlog.get_logger('scan_service')


class Engine(Protocol):
    name: str

    def scan(self, path: str | Path, layer_mapping: LayerMapping) -> ScanResult:
        ...


class ScanService:
    """Runs two discovery engines side by side over one extracted image."""

    def __init__(self, first: Engine, second: Engine):
        self.first = first
        self.second = second

    def scan(self, path: str | Path, layer_mapping: LayerMapping) -> tuple[ScanResult, ScanResult]:
        """
        Run both engines concurrently and wait for both.

        Results are collected first engine then second, whichever finishes
        first. A failing engine yields a ScanResult carrying the error.
        """
        with ThreadPoolExecutor(max_workers=2, thread_name_prefix='engine') as executor:
            first_future = executor.submit(self._run, self.first, path, layer_mapping)
            second_future = executor.submit(self._run, self.second, path, layer_mapping)
            first = first_future.result()
            second = second_future.result()
        return first, second

    def _run(self, engine: Engine, path: str | Path, layer_mapping: LayerMapping) -> ScanResult:
        try:
            return engine.scan(path, layer_mapping)
        except Exception as e:
            logger.error(
                'Engine failed', engine=engine.name, path=str(path),
                error=str(e), _style='bold red',
            )
            return ScanResult(engine=engine.name, error=str(e) or type(e).__name__)
