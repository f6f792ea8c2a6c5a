"""Tests for the S3 object store, with a mocked boto3 client."""

import io
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import ClientError

from s3upload.errors import RemoteNotFound
from s3upload.store.store import S3ObjectStore, create_s3_client, object_key, open_store
from s3upload.utils.credentials import ProjectCredentials

CREDENTIALS = ProjectCredentials("shop", "AKIA", "s3cr3t")


def client_error(code: str, status: int) -> ClientError:
    return ClientError(
        {"Error": {"Code": code, "Message": code}, "ResponseMetadata": {"HTTPStatusCode": status}},
        "GetObject",
    )


class TestObjectKey:
    def test_key(self):
        assert object_key("versions/1/patch/web/a/", "/tmp/B.class") == "versions/1/patch/web/a/B.class"

    def test_empty_prefix(self):
        assert object_key("", "/tmp/B.class") == "B.class"


class TestS3ObjectStore:
    def test_list_objects_all_pages(self):
        client = MagicMock()
        client.get_paginator.return_value.paginate.return_value = [
            {"Contents": [{"Key": "last/a.txt"}]},
            {"Contents": [{"Key": "last/b.txt"}]},
            {},
        ]

        keys = S3ObjectStore(client).list_objects("bucket", "last/")

        assert keys == ["last/a.txt", "last/b.txt"]
        client.get_paginator.assert_called_once_with("list_objects_v2")
        client.get_paginator.return_value.paginate.assert_called_once_with(
            Bucket="bucket", Prefix="last/"
        )

    def test_get_object_returns_body(self):
        client = MagicMock()
        client.get_object.return_value = {"Body": io.BytesIO(b"1.0\n")}
        assert S3ObjectStore(client).get_object("bucket", "last/a.txt").readline() == b"1.0\n"

    def test_get_object_not_found(self):
        client = MagicMock()
        client.get_object.side_effect = client_error("NoSuchKey", 404)
        with pytest.raises(RemoteNotFound, match="bucket/last/a.txt"):
            S3ObjectStore(client).get_object("bucket", "last/a.txt")

    def test_get_object_other_error_propagates(self):
        client = MagicMock()
        client.get_object.side_effect = client_error("AccessDenied", 403)
        with pytest.raises(ClientError):
            S3ObjectStore(client).get_object("bucket", "last/a.txt")
        assert client.get_object.call_count == 1

    def test_batch_put_single_transfer(self, tmp_path: Path):
        """Test every file of a batch goes through one transfer manager."""
        first = tmp_path / "B.class"
        second = tmp_path / "B$C.class"
        first.write_bytes(b"a")
        second.write_bytes(b"b")
        manager = MagicMock()
        manager.__enter__.return_value = manager

        with patch("s3upload.store.store.create_transfer_manager", return_value=manager) as create:
            keys = S3ObjectStore(MagicMock()).batch_put_objects(
                "bucket", "versions/1/patch/a/", [str(first), str(second)]
            )

        create.assert_called_once()
        assert keys == ["versions/1/patch/a/B.class", "versions/1/patch/a/B$C.class"]
        assert manager.upload.call_count == 2
        manager.upload.assert_any_call(str(first), "bucket", "versions/1/patch/a/B.class")

    def test_batch_put_failure_raised(self, tmp_path: Path):
        manager = MagicMock()
        manager.__enter__.return_value = manager
        manager.upload.return_value.result.side_effect = client_error("AccessDenied", 403)

        with patch("s3upload.store.store.create_transfer_manager", return_value=manager):
            with pytest.raises(ClientError):
                S3ObjectStore(MagicMock()).batch_put_objects("bucket", "a/", [str(tmp_path / "x")])


class TestClientConstruction:
    def test_explicit_credentials(self):
        with patch("s3upload.store.store.boto3.session.Session") as session_cls:
            create_s3_client(CREDENTIALS, "eu-west-1")

        session_cls.assert_called_once_with(
            aws_access_key_id="AKIA",
            aws_secret_access_key="s3cr3t",
            region_name="eu-west-1",
        )
        assert session_cls.return_value.client.call_args[0][0] == "s3"

    def test_open_store_closes_client(self):
        with patch("s3upload.store.store.create_s3_client") as create:
            with open_store(CREDENTIALS, "eu-west-1") as store:
                assert store.client is create.return_value
        create.return_value.close.assert_called_once()
