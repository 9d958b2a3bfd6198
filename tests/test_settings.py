"""Tests for :mod:`designpilot.services.settings`."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from designpilot.ai.prompts import DEFAULT_CUSTOM_RULES
from designpilot.services.settings import SecretVault, Settings, SettingsStore, redact_secret


def test_defaults() -> None:
    settings = Settings()

    assert settings.has_api_key is False
    assert settings.custom_rules == DEFAULT_CUSTOM_RULES
    assert settings.conversation_limit == 20
    assert settings.token_ceiling == 6000


def test_round_trip_encrypts_api_key(tmp_path: Path) -> None:
    path = tmp_path / "settings.json"
    store = SettingsStore(path)

    store.save(Settings(api_key="sk-secret-123456", model="claude-test", creative_design_mode=True))

    raw = json.loads(path.read_text(encoding="utf-8"))
    assert "api_key" not in raw
    assert raw["api_key_ciphertext"].startswith("fernet:")
    assert "sk-secret-123456" not in path.read_text(encoding="utf-8")
    assert (tmp_path / "settings.key").exists()

    loaded = SettingsStore(path).load()
    assert loaded.api_key == "sk-secret-123456"
    assert loaded.model == "claude-test"
    assert loaded.creative_design_mode is True


def test_plaintext_key_is_migrated(tmp_path: Path) -> None:
    path = tmp_path / "settings.json"
    path.write_text(json.dumps({"api_key": "sk-legacy", "model": "old-model"}), encoding="utf-8")

    settings = SettingsStore(path).load()

    assert settings.api_key == "sk-legacy"
    raw = json.loads(path.read_text(encoding="utf-8"))
    assert "api_key" not in raw
    assert raw["api_key_ciphertext"].startswith("fernet:")
    assert raw["version"] == 1


def test_undecryptable_key_is_dropped(tmp_path: Path) -> None:
    path = tmp_path / "settings.json"
    SettingsStore(path).save(Settings(api_key="sk-secret"))
    (tmp_path / "settings.key").unlink()

    assert SettingsStore(path).load().api_key == ""


def test_invalid_json_falls_back_to_defaults(tmp_path: Path) -> None:
    path = tmp_path / "settings.json"
    path.write_text("{not json", encoding="utf-8")

    assert SettingsStore(path).load() == Settings()


def test_unknown_fields_are_ignored(tmp_path: Path) -> None:
    path = tmp_path / "settings.json"
    path.write_text(json.dumps({"model": "m", "theme": "dark", "version": 1}), encoding="utf-8")

    assert SettingsStore(path).load().model == "m"


def test_environment_overrides(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DESIGNPILOT_API_KEY", "sk-env")
    monkeypatch.setenv("DESIGNPILOT_MODEL", "env-model")
    monkeypatch.setenv("DESIGNPILOT_DEBUG_LOGGING", "yes")
    monkeypatch.setenv("DESIGNPILOT_REQUEST_TIMEOUT", "12.5")

    settings = SettingsStore(tmp_path / "settings.json").load()

    assert settings.api_key == "sk-env"
    assert settings.model == "env-model"
    assert settings.debug_logging is True
    assert settings.request_timeout == 12.5


def test_invalid_float_override_is_ignored(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DESIGNPILOT_REQUEST_TIMEOUT", "soon")
    assert SettingsStore(tmp_path / "settings.json").load().request_timeout == 90.0


def test_cli_overrides_apply_before_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DESIGNPILOT_MODEL", "env-model")

    settings = SettingsStore(tmp_path / "settings.json").load(overrides={"model": "cli-model", "max_tokens": 256})

    assert settings.model == "env-model"
    assert settings.max_tokens == 256


def test_update_persists(tmp_path: Path) -> None:
    store = SettingsStore(tmp_path / "settings.json")

    updated = store.update(Settings(), custom_rules="- Use 4px grid", unknown_field=1)

    assert updated.custom_rules == "- Use 4px grid"
    assert store.load().custom_rules == "- Use 4px grid"


def test_client_settings_mapping() -> None:
    settings = Settings(api_key="sk", model="m", base_url="https://proxy.test/v1/", request_timeout=30, max_tokens=512)

    client_settings = settings.client_settings()

    assert client_settings.api_key == "sk"
    assert client_settings.model == "m"
    assert client_settings.base_url == "https://proxy.test/v1/"
    assert client_settings.request_timeout == 30
    assert client_settings.max_tokens == 512


def test_vault_rejects_foreign_prefix(tmp_path: Path) -> None:
    vault = SecretVault(key_path=tmp_path / "k.key")
    assert vault.decrypt("dpapi:abc") == ""
    assert vault.decrypt(vault.encrypt("hello")) == "hello"
    assert vault.encrypt("") == ""


@pytest.mark.parametrize(
    ("value", "expected"),
    [("", ""), ("   ", ""), ("abcd", "****"), ("sk-123456", "sk*****56")],
)
def test_redact_secret(value: str, expected: str) -> None:
    assert redact_secret(value) == expected
