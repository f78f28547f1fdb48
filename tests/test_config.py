import pytest

from leadcall.config import REQUIRED_VARS, load_settings, validate_config
from leadcall.provider import DEFAULT_DECLINED_END_REASONS


@pytest.fixture
def full_env(monkeypatch):
    for var in REQUIRED_VARS:
        monkeypatch.setenv(var, f"value-{var.lower()}")
    for var in ("VAPI_BASE_URL", "LEADS_DB_PATH", "DECLINED_END_REASONS",
                "PROVIDER_TIMEOUT_S", "LOG_LEVEL"):
        monkeypatch.delenv(var, raising=False)


def test_missing_required_exits(monkeypatch, full_env, capsys):
    monkeypatch.delenv("VAPI_API_KEY")
    with pytest.raises(SystemExit) as exc:
        validate_config()
    assert exc.value.code == 1
    assert "VAPI_API_KEY" in capsys.readouterr().err


def test_all_required_present(full_env, caplog):
    import logging
    with caplog.at_level(logging.WARNING):
        validate_config()
    assert "LEADS_DB_PATH" in caplog.text


def test_defaults(full_env):
    settings = load_settings()
    assert settings.vapi_api_key == "value-vapi_api_key"
    assert settings.vapi_base_url == "https://api.vapi.ai"
    assert settings.db_path == "leads.db"
    assert settings.declined_end_reasons == DEFAULT_DECLINED_END_REASONS
    assert settings.provider_timeout == 15.0
    assert settings.log_level == "INFO"


def test_overrides(monkeypatch, full_env):
    monkeypatch.setenv("DECLINED_END_REASONS", "customer-busy, voicemail ,")
    monkeypatch.setenv("LEADS_DB_PATH", "/tmp/x.db")
    monkeypatch.setenv("PROVIDER_TIMEOUT_S", "5")
    monkeypatch.setenv("LOG_LEVEL", "debug")
    settings = load_settings()
    assert settings.declined_end_reasons == frozenset({"customer-busy", "voicemail"})
    assert settings.db_path == "/tmp/x.db"
    assert settings.provider_timeout == 5.0
    assert settings.log_level == "DEBUG"
