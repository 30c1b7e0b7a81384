"""Unit tests for the relay CLI entry point and startup checks."""

from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest

from src.relay import __main__ as relay_main
from src.relay.config import RelayConfig
from src.relay.errors import MissingCredential
from src.relay.server import run_server


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ["OPENAI_API_KEY", "PORT", "WEBSITE_HOSTNAME", "LOG_LEVEL", "NODE_ENV"]:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(relay_main, "load_dotenv", lambda: False)


def test_parse_args_defaults() -> None:
    """Test parse_args falls back to the shipped config and no overrides."""
    args = relay_main.parse_args([])

    assert args.config == Path("configs/relay.yaml")
    assert args.port is None
    assert args.host is None
    assert args.log_level is None


def test_missing_credential_exits_nonzero(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    """Test startup exits 1 before serving when OPENAI_API_KEY is unset."""
    with patch.object(relay_main, "run_server", new_callable=AsyncMock) as run:
        with pytest.raises(SystemExit) as exc_info:
            relay_main.main(["--config", str(tmp_path / "absent.yaml")])

    assert exc_info.value.code == 1
    assert 'Environment variable "OPENAI_API_KEY" is missing.' in capsys.readouterr().err
    run.assert_not_called()


def test_invalid_config_exits_nonzero(tmp_path: Path) -> None:
    """Test a config file that fails validation exits 1."""
    path = tmp_path / "relay.yaml"
    path.write_text("server:\n  port: not-a-port\n", encoding="utf-8")

    with pytest.raises(SystemExit) as exc_info:
        relay_main.main(["--config", str(path)])

    assert exc_info.value.code == 1


def test_cli_overrides_applied(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Test --host, --port and --log-level take precedence over config."""
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")

    with patch.object(relay_main, "run_server", new_callable=AsyncMock) as run:
        relay_main.main(
            [
                "--config",
                str(tmp_path / "absent.yaml"),
                "--host",
                "127.0.0.1",
                "--port",
                "4001",
                "--log-level",
                "DEBUG",
            ]
        )

    run.assert_awaited_once()
    config: RelayConfig = run.call_args[0][0]
    assert config.server.host == "127.0.0.1"
    assert config.server.port == 4001
    assert config.log_level == "DEBUG"
    assert config.upstream.api_key == "sk-test"


@pytest.mark.asyncio
async def test_run_server_refuses_to_start_without_credential() -> None:
    """Test run_server binds nothing when the credential is missing."""
    with patch("src.relay.server.RelayServer") as server_cls:
        with pytest.raises(MissingCredential):
            await run_server(RelayConfig())

    server_cls.assert_not_called()


@pytest.mark.parametrize("port", ["70000", "-1"])
def test_out_of_range_port_override_exits_nonzero(
    port: str, tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    """Test --port outside 0-65535 is rejected like an invalid config file."""
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")

    with patch.object(relay_main, "run_server", new_callable=AsyncMock) as run:
        with pytest.raises(SystemExit) as exc_info:
            relay_main.main(["--config", str(tmp_path / "absent.yaml"), "--port", port])

    assert exc_info.value.code == 1
    assert "Failed to load configuration" in capsys.readouterr().err
    run.assert_not_called()
