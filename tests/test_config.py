"""Tests for Settings validation."""

import logging

import pytest
from pydantic import ValidationError

from drms.config import Settings


def build(**values):
    return Settings(_env_file=None, **values)


def test_defaults_keep_monitoring_off():
    settings = build()

    assert settings.enable_sla_monitoring is False
    assert settings.sla_escalation_enabled is False
    assert settings.sla_check_interval_minutes == 15


@pytest.mark.parametrize("interval", [0, -5])
def test_interval_must_be_positive(interval):
    with pytest.raises(ValidationError):
        build(sla_check_interval_minutes=interval)


def test_short_interval_warns(caplog):
    caplog.set_level(logging.WARNING, logger="drms.config")

    build(enable_sla_monitoring=True, sla_check_interval_minutes=2)

    assert "SLA check interval is less than 5 minutes" in caplog.text


def test_short_interval_silent_when_disabled(caplog):
    caplog.set_level(logging.WARNING, logger="drms.config")

    build(enable_sla_monitoring=False, sla_check_interval_minutes=2)

    assert "less than 5 minutes" not in caplog.text


def test_read_from_environment(monkeypatch):
    monkeypatch.setenv("ENABLE_SLA_MONITORING", "true")
    monkeypatch.setenv("SLA_CHECK_INTERVAL_MINUTES", "30")

    settings = build()

    assert settings.enable_sla_monitoring is True
    assert settings.sla_check_interval_minutes == 30


def test_unknown_environment_rejected():
    with pytest.raises(ValidationError):
        build(environment="qa")
