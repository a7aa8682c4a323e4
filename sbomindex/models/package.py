from typing import Any

from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field
from pydantic import field_validator


class LayerRef(BaseModel):
    """Identifies the image layer a package was found in."""
    ordinal: int | None = None
    diff_id: str | None = Field(alias='diffId', default=None)
    digest: str | None = None

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @property
    def is_empty(self) -> bool:
        return self.ordinal is None and not self.diff_id and not self.digest


class Package(BaseModel):
    """A software artifact discovered in an image."""
    name: str
    version: str = ''
    type: str = ''
    namespace: str | None = None
    purl: str | None = None
    licenses: list[str] = Field(default_factory=list)
    locations: list[str] = Field(default_factory=list)
    layer: LayerRef | None = None
    dependencies: list[str] = Field(default_factory=list)
    found_by: list[str] = Field(alias='foundBy', default_factory=list)

    # Raw engine fields kept for traceability
    metadata: dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(populate_by_name=True, extra='ignore')

    @field_validator('licenses', mode='before')
    @classmethod
    def parse_licenses(cls, v: Any) -> list[str]:
        if not v:
            return []
        if isinstance(v, str):
            return [v]
        parsed = []
        for license_item in v:
            if isinstance(license_item, str):
                parsed.append(license_item)
            elif isinstance(license_item, dict):
                val = license_item.get('value') or license_item.get(
                    'spdxExpression',
                ) or license_item.get('name')
                if val:
                    parsed.append(val)
        return parsed

    @property
    def key(self) -> tuple[str, str, str]:
        """Merge identity."""
        return (self.name, self.version, self.type)

    @property
    def ordinal(self) -> int:
        if self.layer is None or self.layer.ordinal is None:
            return -1
        return self.layer.ordinal
