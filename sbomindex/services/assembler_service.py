import base64

from sbomindex.__version__ import __version__
from sbomindex.__version__ import SBOM_VERSION
from sbomindex.core.image import Image
from sbomindex.core.reference import parse_reference
from sbomindex.models.package import Package
from sbomindex.models.sbom import Descriptor
from sbomindex.models.sbom import Distro
from sbomindex.models.sbom import ImageSource
from sbomindex.models.sbom import Platform
from sbomindex.models.sbom import Sbom
from sbomindex.models.sbom import Source

DESCRIPTOR_NAME = 'sbomindex'


def current_descriptor() -> Descriptor:
    """Descriptor stamped on documents produced by this build."""
    return Descriptor(name=DESCRIPTOR_NAME, version=__version__, sbom_version=SBOM_VERSION)


def assemble_sbom(
    packages: list[Package],
    image: Image,
    image_name: str = '',
    distro: Distro | None = None,
    descriptor: Descriptor | None = None,
) -> Sbom:
    """
    Build the SBOM document for *image*.

    Raises ReferenceParseError when *image_name* is not a valid reference.
    """
    tags = None
    if image_name:
        ref = parse_reference(image_name)
        image_name = ref.name
        if not ref.is_digest:
            tags = [ref.identifier]

    config = image.config
    manifest = image.manifest

    return Sbom(
        artifacts=packages,
        source=Source(
            type='image',
            image=ImageSource(
                name=image_name,
                digest=image.digest,
                tags=tags,
                manifest=manifest,
                config=config,
                raw_manifest=base64.standard_b64encode(image.raw_manifest).decode(),
                raw_config=base64.standard_b64encode(image.raw_config).decode(),
                distro=distro or Distro(),
                platform=Platform(
                    os=config.get('os') or '',
                    architecture=config.get('architecture') or '',
                    variant=config.get('variant'),
                ),
                size=(manifest.get('config') or {}).get('size') or 0,
            ),
        ),
        descriptor=descriptor or current_descriptor(),
    )
