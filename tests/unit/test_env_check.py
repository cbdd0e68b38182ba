"""Unit tests for startup environment validation"""

from nuvemflow.config import AppConfig
from nuvemflow.utils.env_check import (
    describe_firebase_credentials,
    find_missing_settings,
    validate_environment,
)


def _settings(**overrides) -> AppConfig:
    values = {
        "store_id": "123",
        "nuvemshop_token": "tok",
        "firebase_service_account_key": None,
        "firebase_service_account_path": "/nonexistent/serviceAccountKey.json",
    }
    values.update(overrides)
    return AppConfig(_env_file=None, **values)


def test_no_missing_settings():
    assert find_missing_settings(_settings()) == []


def test_reports_every_missing_setting():
    missing = find_missing_settings(_settings(store_id=None, nuvemshop_token=""))

    assert missing == ["STORE_ID", "NUVEMSHOP_TOKEN"]


def test_validation_fails_without_token(caplog):
    assert validate_environment(_settings(nuvemshop_token=None)) is False
    assert "NUVEMSHOP_TOKEN" in caplog.text


def test_missing_firebase_credentials_only_warn(caplog):
    assert validate_environment(_settings()) is True
    assert "Firebase service account key not found" in caplog.text


def test_describe_firebase_credentials(tmp_path):
    key_file = tmp_path / "serviceAccountKey.json"
    key_file.write_text("{}")

    assert describe_firebase_credentials(_settings()) == "missing"
    assert describe_firebase_credentials(
        _settings(firebase_service_account_path=str(key_file))
    ) == "configured (serviceAccountKey.json)"
    assert describe_firebase_credentials(
        _settings(firebase_service_account_key='{"type": "service_account"}')
    ) == "configured (FIREBASE_SERVICE_ACCOUNT_KEY)"
