"""Tests for configuration validation."""

import pytest

from dosetrack.config import Config


@pytest.fixture
def config(monkeypatch, tmp_path):
    monkeypatch.setattr(Config, "DATABASE_PATH", tmp_path / "data" / "dosetrack.db")
    monkeypatch.setattr(Config, "DEFAULT_TIMEZONE", "UTC")
    monkeypatch.setattr(Config, "GRACE_MINUTES", 15)
    monkeypatch.setattr(Config, "LOOKAHEAD_MINUTES", 15)
    monkeypatch.setattr(Config, "HEARTBEAT_INTERVAL", 300)
    return Config


def test_validate_creates_database_directory(config):
    """Test the database directory is created on validation."""
    config.validate()

    assert config.DATABASE_PATH.parent.is_dir()


def test_validate_rejects_unknown_timezone(config, monkeypatch):
    """Test an unknown default timezone is rejected."""
    monkeypatch.setattr(Config, "DEFAULT_TIMEZONE", "Mars/Olympus_Mons")

    with pytest.raises(ValueError, match="DEFAULT_TIMEZONE"):
        config.validate()


@pytest.mark.parametrize(
    "name, value",
    [
        ("GRACE_MINUTES", -1),
        ("LOOKAHEAD_MINUTES", -5),
        ("HEARTBEAT_INTERVAL", 0),
    ],
)
def test_validate_rejects_bad_numbers(config, monkeypatch, name, value):
    """Test window sizes and the heartbeat interval are checked."""
    monkeypatch.setattr(Config, name, value)

    with pytest.raises(ValueError):
        config.validate()
