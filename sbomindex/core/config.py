"""Configuration management for sbomindex."""
import os
from dataclasses import dataclass
from dataclasses import field

ENGINE_NAMES = ('syft', 'trivy')


@dataclass
class IndexConfig:
    """Settings threaded through the indexing entry points."""
    use_cache: bool = True
    cache_filename: str = 'sbom.json'

    # Merge tie-break order, highest priority first
    engine_priority: tuple[str, ...] = ENGINE_NAMES
    workers: int = 4

    syft_bin: str = field(
        default_factory=lambda: os.getenv('SYFT_BIN', 'syft'),
    )
    trivy_bin: str = field(
        default_factory=lambda: os.getenv('TRIVY_BIN', 'trivy'),
    )

    def __post_init__(self):
        unknown = [e for e in self.engine_priority if e not in ENGINE_NAMES]
        if unknown:
            raise ValueError(f"Unknown engine(s) in priority: {', '.join(unknown)}")
        if sorted(self.engine_priority) != sorted(ENGINE_NAMES):
            raise ValueError(
                f"Engine priority must list each of {', '.join(ENGINE_NAMES)} exactly once",
            )
        if self.workers < 1:
            raise ValueError('workers must be at least 1')

    @classmethod
    def load(cls) -> 'IndexConfig':
        return cls()


_config: IndexConfig | None = None


def get_config() -> IndexConfig:
    global _config
    if _config is None:
        _config = IndexConfig.load()
    return _config
