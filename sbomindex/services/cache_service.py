from dataclasses import dataclass
from pathlib import Path

import structlog
from pydantic import ValidationError

from sbomindex.core.errors import CacheReadError
from sbomindex.core.errors import CacheWriteError
from sbomindex.models.sbom import Descriptor
from sbomindex.models.sbom import Sbom

logger = structlog.get_logger('cache_service')


@dataclass
class CacheLookup:
    path: Path
    reason: str
    sbom: Sbom | None = None

    @property
    def hit(self) -> bool:
        return self.sbom is not None


@dataclass
class CacheWriteResult:
    path: Path
    error: CacheWriteError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class SbomCache:
    """Persists computed SBOMs next to the extracted image they describe."""

    def __init__(self, descriptor: Descriptor, enabled: bool = True, filename: str = 'sbom.json'):
        self.descriptor = descriptor
        self.enabled = enabled
        self.filename = filename

    def path_for(self, image_path: str | Path) -> Path:
        return Path(image_path) / self.filename

    def load(self, image_path: str | Path) -> CacheLookup:
        """Return the persisted SBOM when it is still valid for this build."""
        sbom_path = self.path_for(image_path)
        if not self.enabled:
            return CacheLookup(sbom_path, 'disabled')
        if not sbom_path.exists():
            return CacheLookup(sbom_path, 'absent')

        try:
            sbom = self._read(sbom_path)
        except CacheReadError as e:
            logger.warning('Ignoring cached SBOM', path=str(sbom_path), error=str(e))
            reason = 'invalid' if isinstance(e.__cause__, ValidationError) else 'unreadable'
            return CacheLookup(sbom_path, reason)

        if not sbom.descriptor.is_compatible(self.descriptor):
            logger.info(
                'Cached SBOM is stale',
                path=str(sbom_path),
                cached_version=sbom.descriptor.version,
                cached_sbom_version=sbom.descriptor.sbom_version,
                _style='dim',
            )
            return CacheLookup(sbom_path, 'stale')

        logger.info(
            'SBOM Cache', command='CACHE', path=str(sbom_path),
            packages=len(sbom.artifacts), _style='dim',
        )
        return CacheLookup(sbom_path, 'hit', sbom)

    def save(self, image_path: str | Path, sbom: Sbom) -> CacheWriteResult:
        """Write *sbom*, overwriting any previous document. Never raises."""
        sbom_path = self.path_for(image_path)
        try:
            with open(sbom_path, 'w', encoding='utf-8') as f:
                f.write(sbom.to_json())
        except OSError as e:
            error = CacheWriteError(f"Failed to write {sbom_path}: {e}")
            logger.warning('Failed to save SBOM cache', path=str(sbom_path), error=str(e))
            return CacheWriteResult(sbom_path, error)

        logger.debug('Saved SBOM cache', path=str(sbom_path))
        return CacheWriteResult(sbom_path)

    def _read(self, sbom_path: Path) -> Sbom:
        try:
            with open(sbom_path, encoding='utf-8') as f:
                return Sbom.model_validate_json(f.read())
        except (OSError, UnicodeDecodeError) as e:
            raise CacheReadError(f"Failed to read {sbom_path}: {e}") from e
        except ValidationError as e:
            raise CacheReadError(f"Malformed SBOM in {sbom_path}: {e.error_count()} errors") from e
