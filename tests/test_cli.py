"""Tests for the validator-updater CLI."""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from validator_updater import cli
from validator_updater.errors import ConfigApiError
from validator_updater.platform_config import DEFAULT_CLI_VMM_URL
from validator_updater.reconciler import ReconcilerState
from validator_updater.settings import UpdaterSettings


def _config(path, *args) -> int:
    return cli.main(["config", "--config-path", str(path), *args])


# ── config ───────────────────────────────────────────────────────────────────


def test_set_env_creates_file_with_cli_default_url(tmp_path, capsys):
    path = tmp_path / "config.json"

    assert _config(path, "set-env", "HOTKEY_PASSPHRASE", "s3cret") == 0

    assert json.loads(path.read_text()) == {
        "dstack_vmm_url": DEFAULT_CLI_VMM_URL,
        "env": {"HOTKEY_PASSPHRASE": "s3cret"},
    }
    assert "✓ Environment variable set: HOTKEY_PASSPHRASE = s3cret" in capsys.readouterr().out


def test_get_env_prints_value(platform_config_path, capsys):
    assert _config(platform_config_path, "get-env", "HOTKEY_PASSPHRASE") == 0
    assert capsys.readouterr().out.strip() == "correct horse"


def test_get_env_missing_key_fails(platform_config_path, capsys):
    assert _config(platform_config_path, "get-env", "NOPE") == 1
    assert "Error: Environment variable 'NOPE' not found" in capsys.readouterr().err


def test_remove_env(platform_config_path, capsys):
    assert _config(platform_config_path, "remove-env", "HOTKEY_PASSPHRASE") == 0

    saved = json.loads(platform_config_path.read_text())
    assert "HOTKEY_PASSPHRASE" not in saved["env"]
    assert "VALIDATOR_BASE_URL" in saved["env"]
    assert "✓ Environment variable removed: HOTKEY_PASSPHRASE" in capsys.readouterr().out


def test_remove_env_without_env_map_fails(tmp_path, capsys):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"dstack_vmm_url": "http://vmm/"}))

    assert _config(path, "remove-env", "A") == 1
    assert "No environment variables configured" in capsys.readouterr().err


def test_set_vmm_url_keeps_env(platform_config_path, capsys):
    assert _config(platform_config_path, "set-vmm-url", "http://10.0.2.2:16850/") == 0

    saved = json.loads(platform_config_path.read_text())
    assert saved["dstack_vmm_url"] == "http://10.0.2.2:16850/"
    assert saved["env"]["HOTKEY_PASSPHRASE"] == "correct horse"
    assert "✓ VMM URL set to: http://10.0.2.2:16850/" in capsys.readouterr().out


def test_show_and_list_env(platform_config_path, capsys):
    assert _config(platform_config_path, "show") == 0
    out = capsys.readouterr().out
    assert "VMM URL: http://10.0.2.2:10300/" in out
    assert "HOTKEY_PASSPHRASE = correct horse" in out

    assert _config(platform_config_path, "list-env") == 0
    assert "VALIDATOR_BASE_URL = https://validator.example.com" in capsys.readouterr().out


def test_list_env_when_empty(tmp_path, capsys):
    assert _config(tmp_path / "missing.json", "list-env") == 0
    assert "No environment variables configured" in capsys.readouterr().out


def test_config_path_defaults_to_env_setting(tmp_path, monkeypatch, capsys):
    path = tmp_path / "platform.json"
    monkeypatch.setenv("PLATFORM_CONFIG_PATH", str(path))

    assert cli.main(["config", "set-env", "A", "1"]) == 0
    assert json.loads(path.read_text())["env"] == {"A": "1"}


def test_missing_subcommand_exits_with_usage():
    with pytest.raises(SystemExit) as exc_info:
        cli.main(["config"])
    assert exc_info.value.code == 2


# ── run ──────────────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_run_once_returns_1_on_cycle_error(monkeypatch):
    monkeypatch.delenv("VMM_URL", raising=False)
    settings = UpdaterSettings.from_env()

    with patch("validator_updater.cli.Reconciler") as reconciler_cls:
        reconciler_cls.return_value.run_cycle = AsyncMock(side_effect=ConfigApiError("down"))
        assert await cli._run_updater(settings, once=True, interval=5) == 1

    reconciler_cls.return_value.run_cycle.assert_awaited_once_with(ReconcilerState())


@pytest.mark.asyncio
async def test_run_once_returns_0_on_success():
    settings = UpdaterSettings.from_env()

    with patch("validator_updater.cli.Reconciler") as reconciler_cls:
        reconciler_cls.return_value.run_cycle = AsyncMock(return_value=ReconcilerState())
        assert await cli._run_updater(settings, once=True, interval=5) == 0

    reconciler_cls.return_value.run_forever.assert_not_called()


def test_run_interval_flag_overrides_setting(monkeypatch):
    monkeypatch.setenv("POLL_INTERVAL", "30")
    run_updater = MagicMock(name="_run_updater")

    with (
        patch("validator_updater.cli._run_updater", run_updater),
        patch("validator_updater.cli.asyncio.run", return_value=0),
    ):
        assert cli.main(["run", "--interval", "2"]) == 0
        assert run_updater.call_args.args[2] == 2.0

        assert cli.main(["run", "--once"]) == 0
        assert run_updater.call_args.args[1:] == (True, 30.0)


def test_run_keyboard_interrupt_exits_130(capsys):
    with (
        patch("validator_updater.cli._run_updater", MagicMock()),
        patch("validator_updater.cli.asyncio.run", side_effect=KeyboardInterrupt),
    ):
        assert cli.main(["run"]) == 130


def test_show_with_undecodable_file_uses_defaults(tmp_path, capsys):
    path = tmp_path / "config.json"
    path.write_bytes(b'{"env": {"A": "\xff\xfe"}}')

    assert _config(path, "show") == 0
    assert f"VMM URL: {DEFAULT_CLI_VMM_URL}" in capsys.readouterr().out


@pytest.mark.asyncio
async def test_run_once_returns_1_on_unexpected_error():
    settings = UpdaterSettings.from_env()

    with patch("validator_updater.cli.Reconciler") as reconciler_cls:
        reconciler_cls.return_value.run_cycle = AsyncMock(side_effect=RuntimeError("bug"))
        assert await cli._run_updater(settings, once=True, interval=5) == 1
