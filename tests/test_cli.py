import sys
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from api import cli


@pytest.mark.parametrize(
    ("addr", "expected"),
    [(":8080", ("0.0.0.0", 8080)), ("127.0.0.1:9000", ("127.0.0.1", 9000))],
)
def test_parse_listen_addr(addr, expected):
    assert cli.parse_listen_addr(addr) == expected


def test_parse_listen_addr_rejects_missing_port():
    with pytest.raises(ValueError):
        cli.parse_listen_addr("localhost")


def test_version_flag(capsys):
    assert cli.main(["--version"]) == 0
    assert capsys.readouterr().out.startswith("memprof-agent version=")


def test_invalid_config_exits_non_zero(tmp_path, capsys):
    path = tmp_path / "agent.yaml"
    path.write_text("sampling_interval_ms: -1\n", encoding="utf-8")

    assert cli.main(["--config", str(path)]) == 1
    assert "sampling_interval_ms" in capsys.readouterr().err


def test_main_serves_with_loaded_config(tmp_path, monkeypatch):
    path = tmp_path / "agent.yaml"
    path.write_text(
        "metrics_listen_addr: '127.0.0.1:9100'\nshutdown_grace_period_sec: 3\n",
        encoding="utf-8",
    )
    calls = {}

    def fake_run(app, **kwargs):
        calls["app"] = app
        calls.update(kwargs)

    monkeypatch.setattr(cli, "configure_logging", lambda *_a, **_k: None)
    monkeypatch.setattr(cli, "reset_logging", lambda: None)
    monkeypatch.setattr(cli.uvicorn, "run", fake_run)

    assert cli.main(["--config", str(path)]) == 0
    assert calls["host"] == "127.0.0.1"
    assert calls["port"] == 9100
    assert calls["timeout_graceful_shutdown"] == 3
    assert calls["app"].state.config.shutdown_grace_period_sec == 3
