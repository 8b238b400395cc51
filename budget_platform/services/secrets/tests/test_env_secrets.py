import pytest

from budget_platform.services.secrets.env_secrets import EnvSecrets


def test_get_returns_value():
    secrets = EnvSecrets(overrides={"CURRENCY_API_KEY": "k-123"})
    assert secrets.get("CURRENCY_API_KEY") == "k-123"


def test_get_returns_none_for_missing():
    secrets = EnvSecrets(overrides={})
    assert secrets.get("NONEXISTENT_KEY_12345") is None


def test_get_or_default_returns_default_for_missing():
    secrets = EnvSecrets(overrides={})
    assert secrets.get_or_default("NONEXISTENT_KEY_12345", "fallback") == "fallback"


def test_require_raises_for_missing():
    secrets = EnvSecrets(overrides={})
    with pytest.raises(KeyError, match="Required secret 'NONEXISTENT_KEY_12345' is not set"):
        secrets.require("NONEXISTENT_KEY_12345")


def test_overrides_take_precedence(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("BASE_CURRENCY", "USD")
    secrets = EnvSecrets(overrides={"BASE_CURRENCY": "EUR"})
    assert secrets.get("BASE_CURRENCY") == "EUR"


def test_set_updates_snapshot():
    secrets = EnvSecrets(overrides={"ROTATING": "v1"})
    secrets.set("ROTATING", "v2")
    assert secrets.require("ROTATING") == "v2"


def test_get_field_reads_json_object():
    secrets = EnvSecrets(overrides={"currency/api": '{"CURRENCY_API_KEY": "from-json"}'})
    assert secrets.get_field("currency/api", "CURRENCY_API_KEY") == "from-json"


def test_get_field_missing_field_in_json_object():
    secrets = EnvSecrets(overrides={"currency/api": '{"OTHER": "x"}'})
    assert secrets.get_field("currency/api", "CURRENCY_API_KEY") is None


def test_get_field_returns_plain_value():
    secrets = EnvSecrets(overrides={"currency/api": "plain-key"})
    assert secrets.get_field("currency/api", "CURRENCY_API_KEY") == "plain-key"


def test_get_field_missing_secret():
    secrets = EnvSecrets(overrides={})
    assert secrets.get_field("NONEXISTENT_KEY_12345", "CURRENCY_API_KEY") is None
