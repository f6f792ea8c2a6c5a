"""Object-store access (list, read, batch put) backed by S3."""

from .store import ObjectStore, S3ObjectStore, create_s3_client, object_key, open_store

__all__ = [
    "ObjectStore",
    "S3ObjectStore",
    "create_s3_client",
    "object_key",
    "open_store",
]
