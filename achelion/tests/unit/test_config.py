"""
Configuration: defaults, environment overrides, bounds.
"""

import pytest

from achelion.core.config import AchelionConfig, DEFAULT_DWELL_TIMES, EngineConfig
from achelion.core.exceptions import InvalidConfiguration
from achelion.core.models import Phase


def test_defaults():
    config = AchelionConfig()
    assert config.engine.tick_interval == 0.4
    assert config.engine.alert_capacity == 200
    assert config.engine.default_scenario == "S1"
    assert config.engine.seed is None
    assert config.api.port == 3000
    assert config.engine.dwell_times[Phase.CIRCUIT_BREAK] == 0.0


def test_from_env(monkeypatch):
    monkeypatch.setenv("ACHELION_TICK_INTERVAL", "0.1")
    monkeypatch.setenv("ACHELION_SEED", "99")
    monkeypatch.setenv("ACHELION_AUTOSTART", "false")
    monkeypatch.setenv("ACHELION_DEFAULT_SCENARIO", "S3")
    monkeypatch.setenv("API_PORT", "8080")

    config = AchelionConfig.from_env()
    assert config.engine.tick_interval == 0.1
    assert config.engine.seed == 99
    assert config.engine.autostart is False
    assert config.engine.default_scenario == "S3"
    assert config.api.port == 8080


def test_bad_number_in_env(monkeypatch):
    monkeypatch.setenv("ACHELION_ALERT_CAPACITY", "lots")
    with pytest.raises(InvalidConfiguration):
        AchelionConfig.from_env()


def test_non_positive_tick_interval(monkeypatch):
    monkeypatch.setenv("ACHELION_TICK_INTERVAL", "0")
    with pytest.raises(InvalidConfiguration, match="tick_interval"):
        AchelionConfig.from_env()


def test_dwell_times_must_cover_every_phase():
    partial = {p: t for p, t in DEFAULT_DWELL_TIMES.items() if p != Phase.REENTRY}
    with pytest.raises(InvalidConfiguration, match="REENTRY"):
        EngineConfig(dwell_times=partial).validate_bounds()


def test_unknown_default_scenario_rejected_at_load(monkeypatch):
    monkeypatch.setenv("ACHELION_DEFAULT_SCENARIO", "S9")
    with pytest.raises(InvalidConfiguration, match="default_scenario 'S9'"):
        AchelionConfig.from_env()


def test_crash_alert_repeat_switch(monkeypatch):
    assert EngineConfig().repeat_crash_alerts is True
    monkeypatch.setenv("ACHELION_REPEAT_CRASH_ALERTS", "false")
    assert AchelionConfig.from_env().engine.repeat_crash_alerts is False
