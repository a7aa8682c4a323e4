from typing import Any

from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field

from sbomindex.models.package import Package


class Distro(BaseModel):
    name: str = ''
    version: str = ''


class Platform(BaseModel):
    os: str = Field(alias='Os', default='')
    architecture: str = Field(alias='Architecture', default='')
    variant: str | None = Field(alias='Variant', default=None)

    model_config = ConfigDict(populate_by_name=True)


class ImageSource(BaseModel):
    name: str = Field(alias='Name', default='')
    digest: str = Field(alias='Digest')
    tags: list[str] | None = Field(alias='Tags', default=None)
    manifest: dict[str, Any] = Field(alias='Manifest', default_factory=dict)
    config: dict[str, Any] = Field(alias='Config', default_factory=dict)
    raw_manifest: str = Field(alias='RawManifest', default='')
    raw_config: str = Field(alias='RawConfig', default='')
    distro: Distro = Field(alias='Distro', default_factory=Distro)
    platform: Platform = Field(alias='Platform', default_factory=Platform)
    size: int = Field(alias='Size', default=0)

    model_config = ConfigDict(populate_by_name=True)


class Source(BaseModel):
    type: str = Field(alias='Type', default='image')
    image: ImageSource = Field(alias='Image')

    model_config = ConfigDict(populate_by_name=True)


class Descriptor(BaseModel):
    """Version stamp of the tool that produced a document."""
    name: str = Field(alias='Name')
    version: str = Field(alias='Version')
    sbom_version: str = Field(alias='SbomVersion')

    model_config = ConfigDict(populate_by_name=True)

    def is_compatible(self, other: 'Descriptor') -> bool:
        return self.version == other.version and self.sbom_version == other.sbom_version


class Vulnerability(BaseModel):
    id: str
    purl: str | None = None
    severity: str = 'UNKNOWN'
    fixed_version: str | None = Field(alias='fixedVersion', default=None)
    source: str = ''
    urls: list[str] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True, extra='ignore')


class Sbom(BaseModel):
    """The indexed document for one image."""
    artifacts: list[Package] = Field(alias='Artifacts', default_factory=list)
    source: Source = Field(alias='Source')
    descriptor: Descriptor = Field(alias='Descriptor')
    vulnerabilities: list[Vulnerability] | None = Field(
        alias='Vulnerabilities', default=None,
    )

    model_config = ConfigDict(populate_by_name=True)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True, indent=2)
