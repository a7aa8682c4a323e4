"""Version information for sbomindex."""
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version

# Bump whenever the layout of the persisted SBOM document changes.
SBOM_VERSION = '6'


def get_version() -> str:
    """
    Get version from installed package metadata.

    Returns:
        Version string (e.g., "0.1.0")
    """
    try:
        return version('sbomindex')
    except PackageNotFoundError:
        return '0.0.0-dev'


__version__ = get_version()
