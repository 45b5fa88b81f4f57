import uvicorn
from typer.testing import CliRunner

from problemset_api.auth import sha512_hex
from problemset_api.cli import app
from problemset_api.config import get_settings
from problemset_api.main import app as api_app

runner = CliRunner()


def test_digest_prints_sha512() -> None:
    result = runner.invoke(app, ["digest", "hunter2"])
    assert result.exit_code == 0
    assert result.stdout.strip() == sha512_hex("hunter2")


def test_list_with_empty_memory_backend(tmp_path) -> None:
    env = tmp_path / ".env"
    env.write_text("STORE_BACKEND=memory\n")
    result = runner.invoke(app, ["list", "--config", str(env)])
    assert result.exit_code == 0
    assert "0 problems (memory)" in result.stdout


def test_serve_uses_config_file(tmp_path, monkeypatch) -> None:
    env = tmp_path / ".env"
    env.write_text("HOST=0.0.0.0\nPORT=9001\nPASS_KEY=abc123\n")
    calls: list[dict] = []

    def fake_run(target, **kwargs) -> None:
        calls.append({"target": target, **kwargs})

    monkeypatch.setattr(uvicorn, "run", fake_run)
    try:
        result = runner.invoke(app, ["serve", "--config", str(env)])
        assert result.exit_code == 0
        assert calls == [{"target": api_app, "host": "0.0.0.0", "port": 9001}]
        assert api_app.dependency_overrides[get_settings]().pass_key == "abc123"
    finally:
        api_app.dependency_overrides.clear()


def test_serve_port_option_wins(tmp_path, monkeypatch) -> None:
    env = tmp_path / ".env"
    env.write_text("PORT=9001\n")
    calls: list[dict] = []
    monkeypatch.setattr(uvicorn, "run", lambda target, **kwargs: calls.append(kwargs))
    try:
        result = runner.invoke(app, ["serve", "--config", str(env), "--port", "9100"])
        assert result.exit_code == 0
        assert calls[0]["port"] == 9100
    finally:
        api_app.dependency_overrides.clear()
