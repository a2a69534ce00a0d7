from __future__ import annotations

import pytest

from nightly_digest.__main__ import _parse_args, main


@pytest.fixture(autouse=True)
def _no_logging_setup(monkeypatch):
    monkeypatch.setattr("nightly_digest.__main__.setup_logging", lambda *args, **kwargs: None)


def test_parse_args_defaults_to_run():
    args = _parse_args([])
    assert args.command == "run"
    assert args.env == ".env"


def test_parse_args_rejects_unknown_command():
    with pytest.raises(SystemExit):
        _parse_args(["explode"])


def test_missing_secrets_exit_non_zero(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("JINA_API_KEY", raising=False)
    monkeypatch.delenv("DEEPSEEK_API_KEY", raising=False)
    assert main(["health", "--env", str(tmp_path / "missing.env")]) == 1


def test_bad_digest_config_exits_non_zero(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("JINA_API_KEY", "jina-key")
    monkeypatch.setenv("DEEPSEEK_API_KEY", "sk-key")
    bad = tmp_path / "digest.yaml"
    bad.write_text("- not a mapping\n", encoding="utf-8")
    monkeypatch.setenv("DIGEST_CONFIG_PATH", str(bad))
    assert main(["status", "--env", str(tmp_path / "missing.env")]) == 1


def test_unknown_timezone_exits_non_zero(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("JINA_API_KEY", "jina-key")
    monkeypatch.setenv("DEEPSEEK_API_KEY", "sk-key")
    monkeypatch.setenv("TIMEZONE", "Mars/Olympus_Mons")
    assert main(["health", "--env", str(tmp_path / "missing.env")]) == 1
