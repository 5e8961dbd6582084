"""Unit tests for the command line front end."""

from unittest.mock import patch

import pytest

import main


def test_debug_masks_secrets(capsys, monkeypatch):
    monkeypatch.setenv("PAGEBROKER_MASTER_KEY", "topsecret")
    monkeypatch.delenv("PAGEBROKER_CONFIG", raising=False)
    main.main(["debug", "--wd-port", "9999"])
    out = capsys.readouterr().out
    assert "webdriver_port = 9999" in out
    assert "topsecret" not in out
    assert "master_key = '********'" in out


def test_errors_go_to_stderr_with_exit_status_1(capsys, tmp_path):
    with pytest.raises(SystemExit) as exc:
        main.main(["debug", "--config", str(tmp_path / "missing.toml")])
    assert exc.value.code == 1
    assert capsys.readouterr().err.startswith("ERROR: config file not found")


def test_fetch_overrides_reach_settings():
    args = main.build_parser().parse_args(["fetch", "https://example.com", "#main", "--abspath", "--pandoc"])
    with patch("main.load_settings") as load:
        main.settings_from_args(args)
    overrides = load.call_args.args[1]
    assert overrides["convert_absolute_links"] is True
    assert overrides["use_pandoc"] is True
    assert args.selector == "#main"


def test_mcp_http_flags():
    args = main.build_parser().parse_args(["mcp-http", "--port", "9001", "--master-key", "k"])
    with patch("main.load_settings") as load:
        main.settings_from_args(args)
    overrides = load.call_args.args[1]
    assert overrides["http_port"] == 9001
    assert overrides["master_key"] == "k"
