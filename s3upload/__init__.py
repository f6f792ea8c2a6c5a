"""
S3 Patch Uploader

Uploads the compiled output of source files from a Maven or Gradle checkout
into the patch tree of the current release, stored in an S3 release bucket.

This package provides modular components for each stage of an upload:
- resolver: source -> output file and deploy path resolution
- locator: release version and deployed project discovery
- uploader: per-directory batch upload sessions
- store: object-store protocol and its S3 implementation
- utils: logging, configuration, credentials, retry and metrics

See README.md for configuration keys and usage examples.
"""

__version__ = "0.1.0"

# Package-level imports
from s3upload.utils.logging import setup_logging

# Initialize default logging configuration
setup_logging()
