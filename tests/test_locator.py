"""Tests for release version and deployed project discovery."""

import io
from unittest.mock import MagicMock

import pytest

from s3upload.errors import AmbiguousMapping, EmptyMarker, RemoteNotFound
from s3upload.locator import (
    UploadConfig,
    list_upload_configs,
    marker_key,
    patch_path_prefix,
    read_marker_first_line,
    resolve_deployed_project_path,
)

SUFFIXES = {"esb": "esb", "magnolia": "webapp"}
PATCH = "versions/1.4.0/patch/"


def store_with_keys(keys):
    store = MagicMock()
    store.list_objects.return_value = list(keys)
    return store


def store_with_body(content: bytes):
    store = MagicMock()
    store.get_object.return_value = io.BytesIO(content)
    return store


class TestUploadConfig:
    """Tests for UploadConfig derived fields."""

    def test_from_marker(self):
        config = UploadConfig.from_marker("shop", "prod-shop-magnolia.txt")
        assert config.file_name == "prod-shop-magnolia"
        assert config.sub_project_name == "magnolia"
        assert config.is_prod is True
        assert config.version is None

    def test_not_prod(self):
        config = UploadConfig.from_marker("shop", "test-shop-esb.txt")
        assert config.is_prod is False
        assert config.sub_project_name == "esb"

    def test_only_last_extension_removed(self):
        assert UploadConfig.from_marker("shop", "pre.shop-esb.version.txt").file_name == "pre.shop-esb.version"

    def test_version_set_once(self):
        config = UploadConfig.from_marker("shop", "prod-shop-esb.txt")
        assert config.assign_version("1.0") == "1.0"
        assert config.assign_version("1.0") == "1.0"
        with pytest.raises(ValueError):
            config.assign_version("2.0")


class TestRemotePaths:
    def test_marker_key(self):
        config = UploadConfig.from_marker("shop", "prod-shop-esb.txt")
        assert marker_key("last", config) == "last/prod-shop-esb.txt"
        assert marker_key("last/", config) == "last/prod-shop-esb.txt"

    def test_patch_path_prefix(self):
        assert patch_path_prefix("versions", "1.4.0", "patch") == PATCH
        assert patch_path_prefix("versions/", "1.4.0", "/patch/") == PATCH


class TestListUploadConfigs:
    def test_markers_listed(self):
        store = store_with_keys(["last/", "last/prod-shop-esb.txt", "last/test-shop-magnolia.txt"])

        configs = list_upload_configs(store, "shop-releases", "last", "shop")

        store.list_objects.assert_called_once_with("shop-releases", "last/")
        assert [c.full_file_name for c in configs] == ["prod-shop-esb.txt", "test-shop-magnolia.txt"]
        assert all(c.project_name == "shop" for c in configs)

    def test_no_markers(self):
        with pytest.raises(RemoteNotFound, match="shop-releases/last"):
            list_upload_configs(store_with_keys([]), "shop-releases", "last", "shop")


class TestReadMarkerFirstLine:
    def test_first_line_only(self):
        store = store_with_body(b"  1.4.0 \nsecond line\n")
        assert read_marker_first_line(store, "b", "last/m.txt") == "1.4.0"
        store.get_object.assert_called_once_with("b", "last/m.txt")

    def test_empty_stream(self):
        """Test an empty marker never yields an empty version."""
        with pytest.raises(EmptyMarker):
            read_marker_first_line(store_with_body(b""), "b", "last/m.txt")

    def test_blank_first_line(self):
        with pytest.raises(EmptyMarker):
            read_marker_first_line(store_with_body(b"   \n1.0\n"), "b", "last/m.txt")

    def test_missing_object(self):
        store = MagicMock()
        store.get_object.side_effect = RemoteNotFound("Object not found: b/last/m.txt")
        with pytest.raises(RemoteNotFound):
            read_marker_first_line(store, "b", "last/m.txt")

    def test_missing_content(self):
        store = MagicMock()
        store.get_object.return_value = None
        with pytest.raises(RemoteNotFound):
            read_marker_first_line(store, "b", "last/m.txt")


class TestResolveDeployedProjectPath:
    target = UploadConfig.from_marker("shop", "prod-shop-magnolia.txt")

    def test_override_skips_listing(self):
        store = MagicMock()
        path = resolve_deployed_project_path(
            store, "b", PATCH, self.target, SUFFIXES, deploy_path_override="shop-web"
        )
        assert path == PATCH + "shop-web/"
        store.list_objects.assert_not_called()

    def test_empty_override(self):
        store = MagicMock()
        assert resolve_deployed_project_path(
            store, "b", PATCH, self.target, SUFFIXES, deploy_path_override=""
        ) == PATCH
        store.list_objects.assert_not_called()

    def test_single_folder_shortcut(self):
        """Test one folder returns '' whatever the suffix table says."""
        store = store_with_keys([PATCH + "anything-else/WEB-INF/a.class", PATCH + "anything-else/b.txt"])
        assert resolve_deployed_project_path(store, "b", PATCH, self.target, {}) == ""

    def test_suffix_match(self):
        store = store_with_keys(
            [PATCH + "shop-esb/x", PATCH + "shop-webapp/WEB-INF/y", PATCH + "shop-webapp/z"]
        )
        path = resolve_deployed_project_path(store, "b", PATCH, self.target, SUFFIXES)
        assert path == PATCH + "shop-webapp/"
        store.list_objects.assert_called_once_with("b", PATCH)

    def test_no_folder(self):
        with pytest.raises(RemoteNotFound, match="No project found in path"):
            resolve_deployed_project_path(store_with_keys([]), "b", PATCH, self.target, SUFFIXES)

    def test_ambiguous(self):
        """Test several folders without matching suffix raise a named error."""
        store = store_with_keys([PATCH + "shop-esb/x", PATCH + "shop-api/y"])
        with pytest.raises(AmbiguousMapping) as exc_info:
            resolve_deployed_project_path(store, "b", PATCH, self.target, SUFFIXES)
        assert "webapp" in str(exc_info.value)
        assert PATCH in str(exc_info.value)

    def test_folder_without_separator_never_matches(self):
        """Test a folder name without '-' has no suffix to match."""
        store = store_with_keys([PATCH + "webapp/x", PATCH + "shop-esb/y"])
        with pytest.raises(AmbiguousMapping):
            resolve_deployed_project_path(store, "b", PATCH, self.target, SUFFIXES)
