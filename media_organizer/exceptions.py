"""
Custom exception hierarchy for the media organizer.

Per-file failures are raised as one of these types and collected by the
pipeline stages instead of aborting the whole batch. Only
ConfigurationError is meant to stop a run.
"""


class MediaOrganizerError(Exception):
    """Base exception for all media organizer errors."""
    pass


class ConfigurationError(MediaOrganizerError):
    """Raised for invalid target directories or missing arguments. Fatal."""
    pass


class PrepareError(MediaOrganizerError):
    """Raised when files cannot be discovered or prepared for processing."""
    pass


class MetadataExtractionError(PrepareError):
    """Raised when metadata cannot be extracted from a file."""
    pass


class NoMetadataError(MediaOrganizerError):
    """Raised when a file has no usable metadata to derive a hash from."""

    def __init__(self, file):
        self.file = file
        super().__init__(f"File {file.path} has no metadata")


class FileOperationError(MediaOrganizerError):
    """Raised when a move/delete/stat operation fails for a single file."""

    def __init__(self, path, cause: Exception):
        self.path = path
        self.cause = cause
        super().__init__(f"Operation on {path} failed: {cause}")


class ImageDecodeError(MediaOrganizerError):
    """Raised when an image cannot be decoded for perceptual hashing."""
    pass


class HashCacheError(MediaOrganizerError):
    """Raised when the persistent hash cache cannot be read or written."""
    pass
