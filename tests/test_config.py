"""Tests for settings.conf loading and validation."""

import pytest

from config import load_config, SettingsError
from config.lib.load_settings_conf import load_settings_conf

VALID_SETTINGS = """[DEFAULT]
storage = memory
market_address = 0xMarket
deployer = 0xOwner
jwt_secret = test-secret

[fees]
percentage = 5
flat_service_fee = 1200000000000000
receiver_a = 0xFeeA
receiver_b = 0xFeeB

[ledgers]
asset_registry_url = http://assets:8545
rpc_timeout = 2.5
"""

def write_settings(tmp_path, content: str):
    (tmp_path / "settings.conf").write_text(content)
    return str(tmp_path)

def test_load_valid_settings(tmp_path):
    settings = load_settings_conf(write_settings(tmp_path, VALID_SETTINGS))

    assert settings["storage"] == "memory"
    assert settings["market_address"] == "0xMarket"
    assert settings["token_expiry_days"] == 30

    fees = settings["fees"]
    assert fees["percentage"] == 5
    assert fees["flat_service_fee"] == 1_200_000_000_000_000
    assert fees["receiver_a_share"] == 50
    assert fees["max_percentage"] == 100
    # [DEFAULT] values do not leak into sections
    assert "market_address" not in fees

    ledgers = settings["ledgers"]
    assert ledgers["asset_registry_url"] == "http://assets:8545"
    assert ledgers["currency_ledger_url"] == "http://127.0.0.1:8546"
    assert ledgers["rpc_timeout"] == 2.5

def test_missing_file(tmp_path):
    with pytest.raises(SettingsError, match="Settings file not found"):
        load_settings_conf(str(tmp_path))

def test_missing_sections(tmp_path):
    path = write_settings(tmp_path, "[DEFAULT]\nmarket_address = 0xMarket\n")
    with pytest.raises(SettingsError) as exc_info:
        load_settings_conf(path)
    message = str(exc_info.value)
    assert "[fees]" in message
    assert "[ledgers]" in message

def test_missing_required_settings(tmp_path):
    content = VALID_SETTINGS.replace("deployer = 0xOwner\n", "").replace("receiver_b = 0xFeeB\n", "")
    with pytest.raises(SettingsError) as exc_info:
        load_settings_conf(write_settings(tmp_path, content))
    message = str(exc_info.value)
    assert "deployer" in message
    assert "fees.receiver_b" in message

def test_invalid_values(tmp_path):
    content = (
        VALID_SETTINGS
        .replace("storage = memory", "storage = sqlite")
        .replace("percentage = 5", "percentage = five")
    )
    with pytest.raises(SettingsError) as exc_info:
        load_settings_conf(write_settings(tmp_path, content))
    message = str(exc_info.value)
    assert "storage: sqlite" in message
    assert "fees.percentage: five is not an integer" in message

def test_receiver_share_range(tmp_path):
    content = VALID_SETTINGS.replace("receiver_b = 0xFeeB", "receiver_b = 0xFeeB\nreceiver_a_share = 150")
    with pytest.raises(SettingsError, match="receiver_a_share"):
        load_settings_conf(write_settings(tmp_path, content))

def test_load_config_uses_env_dir(tmp_path, monkeypatch):
    monkeypatch.setenv("MARKET_SETTINGS_DIR", write_settings(tmp_path, VALID_SETTINGS))
    assert load_config()["deployer"] == "0xOwner"

def test_load_config_adds_context(tmp_path):
    with pytest.raises(SettingsError, match="Configuration Error"):
        load_config(str(tmp_path))
