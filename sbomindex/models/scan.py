from dataclasses import dataclass
from dataclasses import field

from sbomindex.models.package import Package
from sbomindex.models.sbom import Distro


@dataclass
class ScanResult:
    """Output of one discovery engine; carries an error instead of raising."""
    engine: str
    packages: list[Package] = field(default_factory=list)
    distro: Distro | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None
