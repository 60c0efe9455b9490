"""Tests for the console entry points' handling of bad configuration."""

import sys

import pytest

from agritwin import client, display, server


@pytest.mark.parametrize("entry_point", [server.main, client.main, display.main])
def test_missing_config_file_exits_with_message(entry_point, tmp_path, monkeypatch, capsys):
    missing = tmp_path / "missing.yaml"
    monkeypatch.setattr(sys, "argv", ["agritwin", "-c", str(missing)])

    with pytest.raises(SystemExit) as exc_info:
        entry_point()

    assert exc_info.value.code == 1
    err = capsys.readouterr().err
    assert "Invalid configuration" in err
    assert "missing.yaml" in err


@pytest.mark.parametrize("entry_point", [server.main, client.main, display.main])
def test_invalid_values_exit_with_message(entry_point, tmp_path, monkeypatch, capsys):
    config_file = tmp_path / "bad.yaml"
    config_file.write_text("farm:\n  sensor_types: [temperature, pressure]\n")
    monkeypatch.setattr(sys, "argv", ["agritwin", "-c", str(config_file)])

    with pytest.raises(SystemExit) as exc_info:
        entry_point()

    assert exc_info.value.code == 1
    assert "pressure" in capsys.readouterr().err
