"""Parse image references such as ``alpine:3.19`` or ``ghcr.io/org/app@sha256:...``."""
import re
from dataclasses import dataclass

from sbomindex.core.errors import ReferenceParseError

DEFAULT_REGISTRY = 'index.docker.io'
DEFAULT_TAG = 'latest'
DOCKER_HUB_ALIASES = {'', 'docker.io', 'index.docker.io', 'registry-1.docker.io'}

PATH_COMPONENT_PATTERN = re.compile(r'^[a-z0-9]+(?:(?:[._]|__|-+)[a-z0-9]+)*$')
TAG_PATTERN = re.compile(r'^[A-Za-z0-9_][A-Za-z0-9_.-]{0,127}$')
DIGEST_PATTERN = re.compile(
    r'^[A-Za-z][A-Za-z0-9]*(?:[-_+.][A-Za-z][A-Za-z0-9]*)*:[0-9a-fA-F]{32,}$',
)
REGISTRY_PATTERN = re.compile(r'^[A-Za-z0-9.-]+(?::[0-9]+)?$|^\[[0-9a-fA-F:]+\](?::[0-9]+)?$')


@dataclass(frozen=True)
class ImageReference:
    registry: str
    repository: str
    tag: str | None = None
    digest: str | None = None

    @property
    def is_docker_hub(self) -> bool:
        return self.registry in DOCKER_HUB_ALIASES

    @property
    def name(self) -> str:
        """
        Repository form of the reference.

        Docker Hub names are kept in their familiar short form
        (``alpine``, ``repo/image``); other registries are spelled out.
        """
        if self.is_docker_hub:
            return self.repository.removeprefix('library/')
        return f"{self.registry}/{self.repository}"

    @property
    def identifier(self) -> str:
        return self.digest or self.tag or DEFAULT_TAG

    @property
    def is_digest(self) -> bool:
        return self.digest is not None


def parse_reference(value: str) -> ImageReference:
    """Parse *value* into an ImageReference or raise ReferenceParseError."""
    if not value or value != value.strip():
        raise ReferenceParseError(f"Invalid image reference: {value!r}")

    remainder, digest = value, None
    if '@' in remainder:
        remainder, digest = remainder.split('@', 1)
        if not DIGEST_PATTERN.match(digest):
            raise ReferenceParseError(f"Invalid digest in reference {value!r}: {digest}")

    tag = None
    last_slash = remainder.rfind('/')
    colon = remainder.rfind(':')
    if colon > last_slash:
        remainder, tag = remainder[:colon], remainder[colon + 1:]
        if not TAG_PATTERN.match(tag):
            raise ReferenceParseError(f"Invalid tag in reference {value!r}: {tag}")

    registry, repository = _split_registry(remainder)
    if not repository:
        raise ReferenceParseError(f"Missing repository in reference {value!r}")
    for component in repository.split('/'):
        if not PATH_COMPONENT_PATTERN.match(component):
            raise ReferenceParseError(
                f"Invalid repository component {component!r} in reference {value!r}",
            )

    if registry in DOCKER_HUB_ALIASES and '/' not in repository:
        repository = f"library/{repository}"

    # A digest pins the image; any tag alongside it is informational only
    if digest:
        tag = None
    return ImageReference(registry=registry, repository=repository, tag=tag, digest=digest)


def _split_registry(name: str) -> tuple[str, str]:
    first, sep, rest = name.partition('/')
    if sep and ('.' in first or ':' in first or first == 'localhost'):
        if not REGISTRY_PATTERN.match(first):
            raise ReferenceParseError(f"Invalid registry {first!r}")
        return first, rest
    return '', name
