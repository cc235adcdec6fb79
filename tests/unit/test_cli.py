from __future__ import annotations

import os
from pathlib import Path

import pytest

from apps.mcp_gateway import cli


def test_parse_args_defaults_leave_settings_untouched() -> None:
    args = cli.parse_args([])
    assert args.host is None
    assert args.port is None
    assert args.mirror_messages is None
    assert args.enable_openapi is False


def test_flags_override_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("MCP_GATEWAY_PORT", "9000")
    monkeypatch.setenv("MCP_GATEWAY_HOST", "0.0.0.0")
    args = cli.parse_args(
        ["--port", "7000", "--mirror-messages", "--log-level", "WARN", "--toolpacks-dir", "tools"]
    )
    settings = cli.resolve_settings(args)
    assert settings.port == 7000
    assert settings.host == "0.0.0.0"
    assert settings.mirror_messages is True
    assert settings.log_level == "WARN"
    assert settings.toolpacks_dir == Path("tools")


def test_main_runs_uvicorn_with_resolved_settings(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    env_file = tmp_path / ".env"
    env_file.write_text("MCP_GATEWAY_PORT=4555\n", encoding="utf-8")
    environ = {key: value for key, value in os.environ.items() if not key.startswith("MCP_GATEWAY_")}
    monkeypatch.setattr(os, "environ", environ)
    calls: list[dict[str, object]] = []

    def fake_run(app: object, **kwargs: object) -> None:
        calls.append({"app": app, **kwargs})

    monkeypatch.setattr(cli.uvicorn, "run", fake_run)
    assert cli.main(["--env-file", str(env_file), "--log-level", "ERROR"]) == 0

    assert len(calls) == 1
    assert calls[0]["port"] == 4555
    assert calls[0]["log_level"] == "error"
    assert calls[0]["access_log"] is False
    assert environ["MCP_GATEWAY_PORT"] == "4555"


def test_invalid_log_level_is_rejected() -> None:
    with pytest.raises(SystemExit):
        cli.parse_args(["--log-level", "TRACE"])
