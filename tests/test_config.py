from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from avalon_alerts.config import load_config


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("TELEGRAM_BOT_TOKEN", "TELEGRAM_CHAT_ID", "AVALON_ALERTS_DB", "LOG_LEVEL", "AVALON_ALERTS_CONFIG"):
        monkeypatch.delenv(name, raising=False)


def _write(tmp_path: Path, text: str) -> str:
    p = tmp_path / "config.yaml"
    p.write_text(text, encoding="utf-8")
    return str(p)


def test_example_config_loads() -> None:
    config_path = Path(__file__).resolve().parents[1] / "config.example.yaml"
    config = load_config(str(config_path))
    assert config.apis
    assert config.watcher.schedule.repeater == 50
    assert config.apiwatcher.schedule.checkpoints == (300, 900)
    assert config.telegram.enabled is False


def test_minimal_config_uses_defaults(tmp_path: Path) -> None:
    config = load_config(_write(tmp_path, "apis: ['https://api.example.org/']\n"))
    assert config.apis == ["https://api.example.org"]
    assert config.db == "state.json"
    assert config.intervals.watcher == 60.0
    assert config.watcher.retries == 3
    assert config.apiwatcher.nodes == []
    assert config.apiwatcher.probe_path == "/count"


def test_legacy_keys_are_accepted(tmp_path: Path) -> None:
    config = load_config(
        _write(
            tmp_path,
            """
apis: ["https://api.example.org"]
apiwatcher: ["https://n1.example.org", "https://n2.example.org"]
telegram:
  apiurl: https://tg.example.org/bot
  apikey: "123:abc"
  chat: -100200300
""",
        )
    )
    assert config.apiwatcher.nodes == ["https://n1.example.org", "https://n2.example.org"]
    assert config.telegram.api_url == "https://tg.example.org/bot"
    assert config.telegram.bot_token == "123:abc"
    assert config.telegram.chat_id == "-100200300"
    assert config.telegram.enabled is True


def test_env_overrides(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TELEGRAM_BOT_TOKEN", "env-token")
    monkeypatch.setenv("TELEGRAM_CHAT_ID", "42")
    monkeypatch.setenv("AVALON_ALERTS_DB", "/tmp/alerts-state.json")
    config = load_config(
        _write(tmp_path, "apis: ['https://api.example.org']\ntelegram:\n  bot_token: file-token\n")
    )
    assert config.telegram.bot_token == "env-token"
    assert config.telegram.chat_id == "42"
    assert config.db == "/tmp/alerts-state.json"


def test_missing_apis_is_rejected(tmp_path: Path) -> None:
    with pytest.raises(ValidationError):
        load_config(_write(tmp_path, "apis: []\n"))


def test_invalid_triggers_are_rejected(tmp_path: Path) -> None:
    with pytest.raises(ValidationError):
        load_config(_write(tmp_path, "apis: ['https://api.example.org']\nwatcher:\n  triggers: []\n"))


def test_non_mapping_yaml_is_rejected(tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        load_config(_write(tmp_path, "- just\n- a list\n"))
