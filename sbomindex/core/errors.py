"""Exception hierarchy for the indexing pipeline."""


class SbomIndexError(Exception):
    """Base exception for all indexing errors."""


class AcquisitionError(SbomIndexError):
    """Raised when an image cannot be opened or its metadata is malformed."""


class NormalizationError(SbomIndexError):
    """Raised when a package's layer reference does not match the image."""


class ReferenceParseError(SbomIndexError):
    """Raised when a supplied image name is not a valid image reference."""


class CacheReadError(SbomIndexError):
    """Raised when a persisted SBOM cannot be read or parsed."""


class CacheWriteError(SbomIndexError):
    """Raised when a computed SBOM cannot be persisted."""


class EnrichmentError(SbomIndexError):
    """Raised when vulnerability lookup fails."""


class ImageIndexError(SbomIndexError):
    """Wraps a fatal per-image failure with the input that caused it."""

    def __init__(self, input: str, cause: Exception):
        super().__init__(f"failed to index {input}: {cause}")
        self.input = input
        self.cause = cause
