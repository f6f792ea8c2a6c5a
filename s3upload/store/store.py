"""
Object-store protocol and its S3 implementation.

The pipeline only needs three operations from a store: list keys under a
prefix, open an object for reading and put a batch of local files under a
destination prefix. ObjectStore captures them; S3ObjectStore implements
them with boto3. Tests and other hosts pass any object with the same
methods.

Example usage:
    >>> with open_store(credentials, region="eu-west-1") as store:
    ...     keys = store.list_objects("shop-releases", "last/")
    ...     line = store.get_object("shop-releases", keys[0]).readline()
"""

import os
import posixpath
from contextlib import contextmanager
from typing import Any, BinaryIO, Iterator, List, Optional, Protocol, Sequence

import boto3
from boto3.s3.transfer import TransferConfig, create_transfer_manager
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from s3upload.errors import RemoteNotFound
from s3upload.utils.credentials import ProjectCredentials, scoped_credentials
from s3upload.utils.logging import get_logger
from s3upload.utils.metrics import get_metrics
from s3upload.utils.retry import is_transient_error, retry_with_backoff

logger = get_logger(__name__)

MAX_RETRIES = 3
NOT_FOUND_CODES = {"NoSuchKey", "404", "NotFound"}

# One connection per file of a typical directory group
TRANSFER_CONFIG = TransferConfig(max_concurrency=4, use_threads=True)


class ObjectStore(Protocol):
    """The three store operations the pipeline relies on."""

    def list_objects(self, bucket: str, prefix: str) -> List[str]:
        ...

    def get_object(self, bucket: str, key: str) -> BinaryIO:
        ...

    def batch_put_objects(self, bucket: str, dest_prefix: str, files: Sequence[str]) -> List[str]:
        ...


def object_key(dest_prefix: str, file_path: str) -> str:
    """Key of a local file uploaded under dest_prefix."""
    name = posixpath.basename(file_path.replace(os.sep, "/"))
    prefix = dest_prefix.strip("/")
    return f"{prefix}/{name}" if prefix else name


def _error_code(error: ClientError) -> str:
    return str(error.response.get("Error", {}).get("Code", ""))


class S3ObjectStore:
    """
    ObjectStore backed by a boto3 S3 client.

    Args:
        client: boto3 S3 client
    """

    def __init__(self, client: Any) -> None:
        self.client = client
        self.metrics = get_metrics()

    @retry_with_backoff(max_attempts=MAX_RETRIES, base_delay=1.0, retry_if=is_transient_error)
    def list_objects(self, bucket: str, prefix: str) -> List[str]:
        """
        All keys under a prefix (every page).

        Raises:
            ClientError: On any store failure
        """
        logger.debug(f"Listing s3://{bucket}/{prefix}")
        keys: List[str] = []
        try:
            paginator = self.client.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=bucket, Prefix=prefix):
                keys.extend(item["Key"] for item in page.get("Contents", []))
        except ClientError as e:
            self.metrics.record_store_error("list", _error_code(e) or type(e).__name__)
            raise
        return keys

    @retry_with_backoff(max_attempts=MAX_RETRIES, base_delay=1.0, retry_if=is_transient_error)
    def get_object(self, bucket: str, key: str) -> BinaryIO:
        """
        Open an object for streaming.

        Returns:
            Readable body of the object

        Raises:
            RemoteNotFound: If the object doesn't exist or has no body
        """
        logger.debug(f"Reading s3://{bucket}/{key}")
        try:
            response = self.client.get_object(Bucket=bucket, Key=key)
        except ClientError as e:
            code = _error_code(e)
            self.metrics.record_store_error("get", code or type(e).__name__)
            if code in NOT_FOUND_CODES:
                raise RemoteNotFound(f"Object not found: {bucket}/{key}") from e
            raise

        body = response.get("Body")
        if body is None:
            raise RemoteNotFound(f"Object has no content: {bucket}/{key}")
        return body

    @retry_with_backoff(
        max_attempts=MAX_RETRIES,
        base_delay=2.0,
        max_delay=30.0,
        retry_if=is_transient_error,
    )
    def batch_put_objects(self, bucket: str, dest_prefix: str, files: Sequence[str]) -> List[str]:
        """
        Upload files under one destination prefix in a single transfer.

        The call blocks until every file is stored; the first failure is
        raised after all transfers have settled.

        Args:
            bucket: Destination bucket
            dest_prefix: Key prefix ('versions/1.0/patch/webapp/WEB-INF/classes/a/')
            files: Local files, uploaded under their base names

        Returns:
            Keys written, in the order of files
        """
        keys = [object_key(dest_prefix, path) for path in files]
        logger.info(f"Uploading {len(files)} file(s) to s3://{bucket}/{dest_prefix}")

        first_error: Optional[BaseException] = None
        with create_transfer_manager(self.client, TRANSFER_CONFIG) as manager:
            futures = [
                manager.upload(path, bucket, key) for path, key in zip(files, keys)
            ]
            for future, key in zip(futures, keys):
                try:
                    future.result()
                except (ClientError, BotoCoreError, OSError) as e:
                    logger.error(f"Upload of {key} failed: {e}")
                    self.metrics.record_store_error("put", type(e).__name__)
                    if first_error is None:
                        first_error = e

        if first_error is not None:
            raise first_error
        return keys


def create_s3_client(credentials: ProjectCredentials, region: str) -> Any:
    """
    S3 client authenticated with a project's credentials.

    The session gets the credentials explicitly; construction also runs
    with them as the ambient AWS variables so no other identity is
    resolved by botocore's provider chain.
    """
    with scoped_credentials(credentials):
        session = boto3.session.Session(
            aws_access_key_id=credentials.access_key_id,
            aws_secret_access_key=credentials.secret_access_key,
            region_name=region,
        )
        return session.client(
            "s3",
            config=BotoConfig(retries={"max_attempts": 2, "mode": "standard"}),
        )


@contextmanager
def open_store(credentials: ProjectCredentials, region: str) -> Iterator[S3ObjectStore]:
    """
    S3ObjectStore for one session, closed on exit.

    Example:
        >>> with open_store(credentials, "eu-west-1") as store:
        ...     store.list_objects("shop-releases", "last/")
    """
    client = create_s3_client(credentials, region)
    logger.debug(f"S3 client opened for '{credentials.project_name}' in {region}")
    try:
        yield S3ObjectStore(client)
    finally:
        close = getattr(client, "close", None)
        if close is not None:
            close()
