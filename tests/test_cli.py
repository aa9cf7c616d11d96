from __future__ import annotations

from pathlib import Path

import pytest
from typer.testing import CliRunner

from wakeassist import config as config_module
from wakeassist.cli.main import app
from wakeassist.storage import FileCredentialStore, load_credentials

TOKEN = "123456789:ABCdefGhIJKlmnoPQRstuVWxyz"

runner = CliRunner()


@pytest.fixture(autouse=True)
def _isolated_config(monkeypatch, tmp_path: Path):
    monkeypatch.setenv("WAKEASSIST_CONFIG_PATH", str(tmp_path / "missing.yaml"))
    monkeypatch.setenv("WAKEASSIST_DATA_DIR", str(tmp_path))
    monkeypatch.setattr(config_module, "_config", None)
    yield
    config_module._config = None


def test_setup_stores_valid_credentials(tmp_path: Path) -> None:
    result = runner.invoke(app, ["setup", "--token", TOKEN, "--user-id", "4242"])

    assert result.exit_code == 0
    stored = load_credentials(FileCredentialStore(tmp_path / "credentials.yaml"))
    assert stored is not None
    assert stored.authorized_user_id == 4242


def test_setup_rejects_malformed_token(tmp_path: Path) -> None:
    result = runner.invoke(app, ["setup", "--token", "bad", "--user-id", "4242"])

    assert result.exit_code == 1
    assert not (tmp_path / "credentials.yaml").exists()


def test_reset_force_clears_credentials(tmp_path: Path) -> None:
    runner.invoke(app, ["setup", "--token", TOKEN, "--user-id", "4242"])

    result = runner.invoke(app, ["reset", "--force"])

    assert result.exit_code == 0
    assert load_credentials(FileCredentialStore(tmp_path / "credentials.yaml")) is None


def test_config_masks_token() -> None:
    runner.invoke(app, ["setup", "--token", TOKEN, "--user-id", "4242"])

    result = runner.invoke(app, ["config"])

    assert result.exit_code == 0
    assert TOKEN not in result.output
    assert "4242" in result.output
