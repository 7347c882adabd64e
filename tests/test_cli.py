"""Tests for the typer CLI: upload command and token management."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

import httpx
import pytest
from keyring.errors import KeyringError
from typer.testing import CliRunner

from presigned_upload.cli import app
from presigned_upload.uploader import PresignedUploader

from conftest import INIT_URL, FakeBackend

runner = CliRunner()


@pytest.fixture
def no_stored_token(monkeypatch):
    """No keyring entry and no environment token."""
    monkeypatch.delenv("PRESIGNED_UPLOAD_TOKEN", raising=False)
    with patch("presigned_upload.config.keyring.get_password", return_value=None) as get:
        yield get


def _patched_uploader(backend: FakeBackend, seen_configs: list):
    def factory(config):
        seen_configs.append(config)
        client = httpx.AsyncClient(transport=httpx.MockTransport(backend.handler))
        return PresignedUploader(config, client=client)

    return patch("presigned_upload.uploader.PresignedUploader", side_effect=factory)


@pytest.fixture
def sample_file(tmp_path: Path) -> Path:
    """A 2 KiB PNG-looking file."""
    path = tmp_path / "photo.png"
    path.write_bytes(b"\x89PNG" + b"\x00" * 2044)
    return path


class TestUploadCommand:
    """The upload command."""

    def test_upload_success(self, no_stored_token, sample_file):
        """A file is uploaded and the summary table printed."""
        backend = FakeBackend()
        configs = []
        with _patched_uploader(backend, configs):
            result = runner.invoke(app, ["upload", str(sample_file), "--init-url", INIT_URL])

        assert result.exit_code == 0, result.output
        assert "Upload Summary" in result.output
        assert len(backend.store_requests) == 1
        assert backend.store_requests[0].content.startswith(b"\x89PNG")

    def test_options_reach_config(self, no_stored_token, sample_file):
        """CLI options end up in the uploader configuration."""
        backend = FakeBackend()
        configs = []
        with _patched_uploader(backend, configs):
            result = runner.invoke(
                app,
                [
                    "upload",
                    str(sample_file),
                    "-u",
                    INIT_URL,
                    "--transport",
                    "plain",
                    "--retries",
                    "2",
                    "--backoff",
                    "linear",
                    "--min-delay-ms",
                    "10",
                    "--max-delay-ms",
                    "50",
                    "--no-reinit",
                ],
            )

        assert result.exit_code == 0, result.output
        config = configs[0]
        assert config.transport.value == "plain"
        assert config.retry.retries == 2
        assert config.retry.backoff.value == "linear"
        assert (config.retry.min_delay_ms, config.retry.max_delay_ms) == (10, 50)
        assert config.retry.reinit_on_auth_error is False

    def test_stored_token_sent_as_bearer(self, sample_file):
        """A keyring token is sent as a Bearer header to the init endpoint."""
        backend = FakeBackend()
        with (
            patch("presigned_upload.config.keyring.get_password", return_value="sekret"),
            _patched_uploader(backend, []),
        ):
            result = runner.invoke(app, ["upload", str(sample_file), "-u", INIT_URL])

        assert result.exit_code == 0, result.output
        assert backend.init_requests[0].headers["authorization"] == "Bearer sekret"

    def test_failed_upload_exits_nonzero(self, no_stored_token, sample_file):
        """A rejected upload exits with status 1."""
        backend = FakeBackend(store_script={"test-key": [400]})
        with _patched_uploader(backend, []):
            result = runner.invoke(app, ["upload", str(sample_file), "-u", INIT_URL])
        assert result.exit_code == 1

    def test_missing_init_url(self, no_stored_token, sample_file):
        """Without an init URL the command fails with a hint."""
        result = runner.invoke(app, ["upload", str(sample_file)])
        assert result.exit_code == 1
        assert "init_url is required" in result.output

    def test_config_file(self, no_stored_token, sample_file, tmp_path):
        """Settings are read from a JSON config file."""
        config_path = tmp_path / "upload.json"
        config_path.write_text(f'{{"init_url": "{INIT_URL}", "retry": {{"retries": 1}}}}')
        configs = []
        with _patched_uploader(FakeBackend(), configs):
            result = runner.invoke(app, ["upload", str(sample_file), "-c", str(config_path)])
        assert result.exit_code == 0, result.output
        assert configs[0].retry.retries == 1


class TestTokenCommands:
    """config set-token, get-token and remove-token."""

    def test_set_token(self):
        """The token is saved under the package's keyring service."""
        with patch("presigned_upload.config.keyring.set_password") as set_password:
            result = runner.invoke(app, ["config", "set-token", "abc123456789"])
        assert result.exit_code == 0, result.output
        set_password.assert_called_once_with("presigned-upload", "init_token", "abc123456789")
        assert "********6789" in result.output

    def test_set_token_prompts_when_omitted(self):
        """Without an argument the token is read from a hidden prompt."""
        with patch("presigned_upload.config.keyring.set_password") as set_password:
            result = runner.invoke(app, ["config", "set-token"], input="prompted-token\n")
        assert result.exit_code == 0, result.output
        set_password.assert_called_once_with("presigned-upload", "init_token", "prompted-token")

    def test_set_blank_token_rejected(self):
        """A blank token exits 1 without touching the keyring."""
        with patch("presigned_upload.config.keyring.set_password") as set_password:
            result = runner.invoke(app, ["config", "set-token", "   "])
        assert result.exit_code == 1
        assert "empty" in result.output
        set_password.assert_not_called()

    def test_set_token_keyring_failure(self):
        """A keyring backend error exits 1 with the reason."""
        with patch(
            "presigned_upload.config.keyring.set_password",
            side_effect=KeyringError("no backend"),
        ):
            result = runner.invoke(app, ["config", "set-token", "abc123456789"])
        assert result.exit_code == 1
        assert "no backend" in result.output

    def test_get_token_masked_with_source(self, no_stored_token):
        """The keyring token is shown masked along with its origin."""
        no_stored_token.return_value = "abcdefgh12345"
        result = runner.invoke(app, ["config", "get-token"])
        assert result.exit_code == 0, result.output
        assert "*********2345" in result.output
        assert "abcdefgh" not in result.output
        assert "keyring" in result.output

    def test_get_token_from_env(self, no_stored_token, monkeypatch):
        """An environment token is reported with the variable name."""
        monkeypatch.setenv("PRESIGNED_UPLOAD_TOKEN", "env-token-9876")
        result = runner.invoke(app, ["config", "get-token"])
        assert result.exit_code == 0, result.output
        assert "9876" in result.output
        assert "PRESIGNED_UPLOAD_TOKEN" in result.output

    def test_get_token_missing(self, no_stored_token):
        """With no token anywhere the command exits 1."""
        result = runner.invoke(app, ["config", "get-token"])
        assert result.exit_code == 1
        assert "No init endpoint token configured" in result.output

    def test_remove_token(self):
        """A stored token is deleted from the keyring."""
        with (
            patch("presigned_upload.config.keyring.get_password", return_value="abc"),
            patch("presigned_upload.config.keyring.delete_password") as delete_password,
        ):
            result = runner.invoke(app, ["config", "remove-token"])
        assert result.exit_code == 0, result.output
        delete_password.assert_called_once_with("presigned-upload", "init_token")
        assert "Removed" in result.output

    def test_remove_token_when_absent(self):
        """Removing a missing token succeeds and deletes nothing."""
        with (
            patch("presigned_upload.config.keyring.get_password", return_value=None),
            patch("presigned_upload.config.keyring.delete_password") as delete_password,
        ):
            result = runner.invoke(app, ["config", "remove-token"])
        assert result.exit_code == 0
        delete_password.assert_not_called()
        assert "nothing to remove" in result.output
