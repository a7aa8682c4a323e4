"""Bring packages reported by different engines into one schema."""
import structlog
from packageurl import PackageURL

from sbomindex.core.errors import NormalizationError
from sbomindex.core.layers import LayerMapping
from sbomindex.models.package import Package

logger = structlog.get_logger('normalize_service')

# Engine ecosystem vocabulary -> package-URL type
TYPE_ALIASES = {
    # syft
    'python': 'pypi',
    'go-module': 'golang',
    'java-archive': 'maven',
    'jenkins-plugin': 'maven',
    'rust-crate': 'cargo',
    'php-composer': 'composer',
    'dotnet': 'nuget',
    'dart-pub': 'pub',
    'hackage': 'hackage',
    'conan': 'conan',
    # trivy result types
    'debian': 'deb',
    'ubuntu': 'deb',
    'alpine': 'apk',
    'wolfi': 'apk',
    'chainguard': 'apk',
    'redhat': 'rpm',
    'centos': 'rpm',
    'rocky': 'rpm',
    'alma': 'rpm',
    'amazon': 'rpm',
    'oracle': 'rpm',
    'fedora': 'rpm',
    'photon': 'rpm',
    'suse linux enterprise server': 'rpm',
    'opensuse.leap': 'rpm',
    'cbl-mariner': 'rpm',
    'azurelinux': 'rpm',
    'python-pkg': 'pypi',
    'pip': 'pypi',
    'pipenv': 'pypi',
    'poetry': 'pypi',
    'uv': 'pypi',
    'node-pkg': 'npm',
    'yarn': 'npm',
    'pnpm': 'npm',
    'gobinary': 'golang',
    'gomod': 'golang',
    'jar': 'maven',
    'pom': 'maven',
    'gradle': 'maven',
    'cargo': 'cargo',
    'rustbinary': 'cargo',
    'composer': 'composer',
    'composer-vendor': 'composer',
    'gemspec': 'gem',
    'bundler': 'gem',
    'nuget': 'nuget',
    'dotnet-core': 'nuget',
    'packages-props': 'nuget',
}

# Ecosystems whose namespace is part of the package's identity
QUALIFIED_NAME_SEPARATORS = {
    'golang': '/',
    'npm': '/',
    'composer': '/',
    'github': '/',
    'maven': ':',
}


def normalize_type(package_type: str, purl: PackageURL | None = None) -> str:
    if purl is not None:
        return purl.type
    package_type = package_type.strip().lower()
    return TYPE_ALIASES.get(package_type, package_type)


def normalize_package(package: Package, layer_mapping: LayerMapping) -> Package:
    """
    Canonicalize one package.

    Applying this to its own output returns an equal package.
    """
    purl = _parse_purl(package.purl)
    package_type = normalize_type(package.type, purl)

    name = package.name.strip()
    namespace = package.namespace
    if purl is not None:
        namespace = purl.namespace or None
        separator = QUALIFIED_NAME_SEPARATORS.get(purl.type)
        if separator and purl.namespace:
            name = f"{purl.namespace}{separator}{purl.name}"
        else:
            name = purl.name

    layer = None
    if package.layer is not None and not package.layer.is_empty:
        layer = layer_mapping.resolve(
            diff_id=package.layer.diff_id,
            digest=package.layer.digest,
            ordinal=package.layer.ordinal,
        )
        if layer is None:
            raise NormalizationError(
                f"Package {name}@{package.version} references unknown layer "
                f"(diffId={package.layer.diff_id}, digest={package.layer.digest}, "
                f"ordinal={package.layer.ordinal})",
            )

    return package.model_copy(
        update={
            'name': name,
            'version': package.version.strip(),
            'type': package_type,
            'namespace': namespace,
            'purl': purl.to_string() if purl is not None else package.purl,
            'layer': layer,
            'licenses': sorted(set(package.licenses)),
            'locations': sorted(set(package.locations)),
            'dependencies': sorted({strip_purl_qualifiers(d) for d in package.dependencies}),
            'found_by': sorted(set(package.found_by)),
        },
    )


def normalize_packages(packages: list[Package], layer_mapping: LayerMapping) -> list[Package]:
    normalized = [normalize_package(p, layer_mapping) for p in packages]
    logger.debug('Normalized packages', count=len(normalized))
    return normalized


def _parse_purl(value: str | None) -> PackageURL | None:
    if not value:
        return None
    try:
        return PackageURL.from_string(value)
    except ValueError:
        logger.debug('Ignoring malformed purl', purl=value)
        return None


def strip_purl_qualifiers(identifier: str) -> str:
    # Qualifiers (arch, distro, ...) differ between engines; drop them
    if not identifier.startswith('pkg:'):
        return identifier
    purl = _parse_purl(identifier)
    if purl is None:
        return identifier
    return PackageURL(
        type=purl.type, namespace=purl.namespace, name=purl.name, version=purl.version,
    ).to_string()
