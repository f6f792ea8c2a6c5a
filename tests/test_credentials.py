"""Tests for project scoped credentials."""

import os
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from s3upload.errors import ConfigurationError
from s3upload.utils.credentials import (
    ProjectCredentials,
    credential_variable_names,
    load_env_file,
    lookup_variable,
    read_variable_from_shell,
    resolve_project_credentials,
    scoped_credentials,
)


class TestVariableNames:
    """Tests for credential variable naming."""

    def test_project_name_is_upper_cased(self):
        names = credential_variable_names("shop")
        assert names == {
            "access": "SHOP_AWS_ACCESS_KEY",
            "secret": "SHOP_AWS_SECRET_ACCESS_KEY",
        }

    def test_other_characters_kept(self):
        """Test the project name is only upper-cased, never rewritten."""
        names = credential_variable_names("my-shop")
        assert names["access"] == "MY-SHOP_AWS_ACCESS_KEY"
        assert names["secret"] == "MY-SHOP_AWS_SECRET_ACCESS_KEY"


class TestLookup:
    """Tests for environment and shell lookup."""

    def test_environment_value(self):
        assert lookup_variable("X", environ={"X": "1"}, shell_fallback=False) == "1"

    def test_missing_without_fallback(self):
        assert lookup_variable("X", environ={}, shell_fallback=False) is None

    def test_shell_fallback(self):
        """Test the shell is asked when the variable is missing."""
        with patch("s3upload.utils.credentials.read_variable_from_shell", return_value="v") as shell:
            assert lookup_variable("X", environ={}) == "v"
        shell.assert_called_once_with("X")

    def test_no_shell_for_unusable_name(self):
        """Test names a shell cannot expand are reported missing without a shell."""
        with patch("s3upload.utils.credentials.read_variable_from_shell") as shell:
            assert lookup_variable("MY-SHOP_AWS_ACCESS_KEY", environ={}) is None
        shell.assert_not_called()

    def test_unusable_name_from_environment(self):
        environ = {"MY-SHOP_AWS_ACCESS_KEY": "AKIA"}
        assert lookup_variable("MY-SHOP_AWS_ACCESS_KEY", environ=environ) == "AKIA"

    def test_shell_output_first_line(self):
        """Test shell output is trimmed to its first line."""
        completed = MagicMock(stdout="secret\nignored\n")
        with patch("s3upload.utils.credentials.subprocess.run", return_value=completed) as run:
            assert read_variable_from_shell("SHOP_AWS_ACCESS_KEY") == "secret"
        assert run.call_args[0][0][-1] == 'echo "$SHOP_AWS_ACCESS_KEY"'

    def test_shell_empty_output(self):
        completed = MagicMock(stdout="\n")
        with patch("s3upload.utils.credentials.subprocess.run", return_value=completed):
            assert read_variable_from_shell("UNSET_VARIABLE") is None

    def test_shell_unavailable(self):
        with patch("s3upload.utils.credentials.subprocess.run", side_effect=OSError("no sh")):
            assert read_variable_from_shell("ANY") is None

    def test_invalid_variable_name(self):
        """Test names that could inject shell code are rejected."""
        with pytest.raises(ValueError):
            read_variable_from_shell("X; rm -rf /")


class TestResolveProjectCredentials:
    """Tests for resolve_project_credentials."""

    def test_found(self):
        environ = {"SHOP_AWS_ACCESS_KEY": "AKIA", "SHOP_AWS_SECRET_ACCESS_KEY": "s3cr3t"}
        credentials = resolve_project_credentials("shop", environ=environ, shell_fallback=False)
        assert credentials.access_key_id == "AKIA"
        assert credentials.secret_access_key == "s3cr3t"

    def test_missing_secret(self):
        """Test a missing variable fails fast naming both variables."""
        with pytest.raises(ConfigurationError) as exc_info:
            resolve_project_credentials(
                "shop", environ={"SHOP_AWS_ACCESS_KEY": "AKIA"}, shell_fallback=False
            )
        message = str(exc_info.value)
        assert "SHOP_AWS_ACCESS_KEY" in message
        assert "SHOP_AWS_SECRET_ACCESS_KEY" in message

    def test_secrets_not_in_repr(self):
        credentials = ProjectCredentials("shop", "AKIA", "s3cr3t")
        assert "s3cr3t" not in repr(credentials)
        assert "AKIA" not in repr(credentials)


class TestEnvFile:
    """Tests for .env loading."""

    def test_env_file_loaded_without_override(self, tmp_path: Path, monkeypatch):
        (tmp_path / ".env").write_text("S3UPLOAD_TEST_A=from_file\nS3UPLOAD_TEST_B=from_file\n")
        monkeypatch.setenv("S3UPLOAD_TEST_A", "from_env")
        monkeypatch.delenv("S3UPLOAD_TEST_B", raising=False)

        assert load_env_file(tmp_path) is True
        assert os.environ["S3UPLOAD_TEST_A"] == "from_env"
        assert os.environ["S3UPLOAD_TEST_B"] == "from_file"
        monkeypatch.delenv("S3UPLOAD_TEST_B")

    def test_no_env_file(self, tmp_path: Path):
        assert load_env_file(tmp_path) is False


class TestScopedCredentials:
    """Tests for scoped ambient credentials."""

    def test_values_restored(self, monkeypatch):
        """Test previous values come back and cleared ones are hidden inside."""
        monkeypatch.setenv("AWS_ACCESS_KEY_ID", "outer-key")
        monkeypatch.delenv("AWS_SECRET_ACCESS_KEY", raising=False)
        monkeypatch.setenv("AWS_PROFILE", "default")

        with scoped_credentials(ProjectCredentials("shop", "inner-key", "inner-secret")):
            assert os.environ["AWS_ACCESS_KEY_ID"] == "inner-key"
            assert os.environ["AWS_SECRET_ACCESS_KEY"] == "inner-secret"
            assert "AWS_PROFILE" not in os.environ

        assert os.environ["AWS_ACCESS_KEY_ID"] == "outer-key"
        assert "AWS_SECRET_ACCESS_KEY" not in os.environ
        assert os.environ["AWS_PROFILE"] == "default"

    def test_restored_on_error(self, monkeypatch):
        monkeypatch.setenv("AWS_ACCESS_KEY_ID", "outer-key")

        with pytest.raises(RuntimeError):
            with scoped_credentials(ProjectCredentials("shop", "inner-key", "inner-secret")):
                raise RuntimeError("boom")

        assert os.environ["AWS_ACCESS_KEY_ID"] == "outer-key"
