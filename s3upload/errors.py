"""
Error taxonomy for the patch upload pipeline.

Every failure surfaced to a caller names the offending path or key. Fatal
session errors (configuration, marker, project folder) abort before any
upload; resolution errors are per file; transfer errors are per directory
group.
"""

from typing import Optional


class S3UploadError(Exception):
    """Base class for all errors raised by s3upload."""


class ConfigurationError(S3UploadError):
    """Missing or invalid configuration, including missing credentials."""


class ResolutionError(S3UploadError):
    """
    A source file could not be mapped to its output file or deploy path.

    Attributes:
        path: Source or computed path the resolution failed on
        reason: Short machine-friendly reason ("no mapping", "no source root",
            "no content root", "no base path", "compiled output not found")
    """

    def __init__(self, message: str, path: str, reason: Optional[str] = None) -> None:
        super().__init__(f"{message}: {path}")
        self.path = path
        self.reason = reason or message


class RemoteNotFound(S3UploadError):
    """A remote object or folder required by the session does not exist."""


class EmptyMarker(S3UploadError):
    """The version marker exists but its first line is blank."""


class AmbiguousMapping(S3UploadError):
    """Several deployed-project folders exist and none matches the suffix."""


class TransferError(S3UploadError):
    """Batch upload of one directory group failed."""

    def __init__(self, directory: str, cause: Exception) -> None:
        super().__init__(f"Upload to {directory} failed: {cause}")
        self.directory = directory
        self.cause = cause


class UploadAborted(S3UploadError):
    """The caller refused to upload output files older than their sources."""


# Name used in the error handling design for a blank marker
RemoteEmpty = EmptyMarker
