"""Correlate an image's layer digests with its diff IDs."""
from dataclasses import dataclass
from dataclasses import field

from sbomindex.core.errors import AcquisitionError
from sbomindex.core.image import Image
from sbomindex.models.package import LayerRef


@dataclass(frozen=True)
class LayerMapping:
    """
    Five views over one ordered list of (ordinal, diff ID, digest) triples.

    Digests hash the layer blob as stored, diff IDs hash its uncompressed
    content. Built once per image and shared read-only between engines.
    """
    by_digest: dict[str, str] = field(default_factory=dict)
    by_diff_id: dict[str, str] = field(default_factory=dict)
    diff_id_by_ordinal: dict[int, str] = field(default_factory=dict)
    digest_by_ordinal: dict[int, str] = field(default_factory=dict)
    ordinal_by_diff_id: dict[str, int] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.diff_id_by_ordinal)

    @classmethod
    def from_layers(cls, digests: list[str], diff_ids: list[str]) -> 'LayerMapping':
        if len(digests) != len(diff_ids):
            raise AcquisitionError(
                f"Manifest lists {len(digests)} layers but config lists {len(diff_ids)} diff IDs",
            )
        mapping = cls()
        for i, (digest, diff_id) in enumerate(zip(digests, diff_ids)):
            mapping.by_diff_id[diff_id] = digest
            mapping.by_digest[digest] = diff_id
            mapping.ordinal_by_diff_id[diff_id] = i
            mapping.diff_id_by_ordinal[i] = diff_id
            mapping.digest_by_ordinal[i] = digest
        return mapping

    def resolve(
        self,
        diff_id: str | None = None,
        digest: str | None = None,
        ordinal: int | None = None,
    ) -> LayerRef | None:
        """
        Complete a partial layer reference.

        Returns None when the given reference is unknown or when the given
        fields point at different layers.
        """
        candidates = set()
        if diff_id:
            if diff_id not in self.ordinal_by_diff_id:
                return None
            candidates.add(self.ordinal_by_diff_id[diff_id])
        if digest:
            if digest not in self.by_digest:
                return None
            candidates.add(self.ordinal_by_diff_id[self.by_digest[digest]])
        if ordinal is not None:
            if ordinal not in self.diff_id_by_ordinal:
                return None
            candidates.add(ordinal)
        if len(candidates) != 1:
            return None

        i = candidates.pop()
        return LayerRef(
            ordinal=i,
            diff_id=self.diff_id_by_ordinal[i],
            digest=self.digest_by_ordinal[i],
        )


def create_layer_mapping(image: Image) -> LayerMapping:
    return LayerMapping.from_layers(image.layer_digests, image.diff_ids)
