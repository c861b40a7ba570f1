"""Tests for POS config loading."""

import pytest

from tablepos.config import PosConfig, load_config


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    monkeypatch.delenv("TABLEPOS_API_BASE_URL", raising=False)
    monkeypatch.delenv("TABLEPOS_DB_PATH", raising=False)


def test_load_config_defaults():
    """Loading with no path returns all defaults."""
    config = load_config()
    assert isinstance(config, PosConfig)
    assert config.remote.base_url == "http://localhost:3000"
    assert config.remote.timeout == 10.0
    assert config.deduction.grace_period_seconds == 120.0
    assert config.deduction.scan_interval_seconds == 10.0
    assert config.orders.completed_ttl_minutes == 30
    assert config.orders.self_service is False
    assert config.billing.tax_rate == 0.05


def test_load_config_nonexistent_file():
    """Loading a nonexistent file returns defaults."""
    config = load_config("/nonexistent/path.toml")
    assert config.store.path == "~/.config/tablepos/pos.db"


def test_load_config_from_toml(tmp_path):
    path = tmp_path / "pos.toml"
    path.write_text(
        """
[remote]
base_url = "https://pos.example.com/api/"
timeout = 5

[deduction]
grace_period_seconds = 60
scan_interval_seconds = 5

[orders]
self_service = true

[billing]
tax_rate = 0.18
currency = "EUR"
"""
    )
    config = load_config(path)
    assert config.remote.base_url == "https://pos.example.com/api"
    assert config.remote.timeout == 5.0
    assert config.deduction.grace_period_seconds == 60.0
    assert config.orders.self_service is True
    assert config.billing.currency == "EUR"


def test_env_overrides_file(tmp_path, monkeypatch):
    path = tmp_path / "pos.toml"
    path.write_text('[remote]\nbase_url = "https://file.example.com"\n')
    monkeypatch.setenv("TABLEPOS_API_BASE_URL", "https://env.example.com")
    monkeypatch.setenv("TABLEPOS_DB_PATH", str(tmp_path / "env.db"))
    config = load_config(path)
    assert config.remote.base_url == "https://env.example.com"
    assert config.store.path == str(tmp_path / "env.db")


def test_scan_interval_must_be_shorter_than_grace(tmp_path):
    path = tmp_path / "pos.toml"
    path.write_text("[deduction]\ngrace_period_seconds = 10\nscan_interval_seconds = 10\n")
    with pytest.raises(ValueError, match="scan_interval"):
        load_config(path)


def test_negative_tax_rejected(tmp_path):
    path = tmp_path / "pos.toml"
    path.write_text("[billing]\ntax_rate = -0.1\n")
    with pytest.raises(ValueError, match="tax_rate"):
        load_config(path)
