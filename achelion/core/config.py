"""
Configuration Management for Achelion

Centralized configuration with environment variable support.
"""

import os
from typing import Dict, Optional
from pydantic import BaseModel

from achelion.core.exceptions import InvalidConfiguration
from achelion.core.models import Phase
from achelion.engine.scenarios import SCENARIOS


# Free-running dwell per phase, in seconds. Hand-tuned; only the ordering matters.
DEFAULT_DWELL_TIMES: Dict[Phase, float] = {
    Phase.CALM: 18.0,
    Phase.BUILD_STRESS: 25.0,
    Phase.CIRCUIT_BREAK: 0.0,  # one tick
    Phase.DELEVERAGE: 18.0,
    Phase.STABILIZE: 20.0,
    Phase.ARES_GATES: 25.0,
    Phase.REENTRY: 25.0,
}


class EngineConfig(BaseModel):
    """Simulation engine configuration."""
    tick_interval: float = 0.4  # seconds, ~2.5 Hz
    stream_interval: float = 0.5  # seconds between pushed snapshots
    alert_capacity: int = 200
    seed: Optional[int] = None
    drift_amplitude: float = 0.01  # full width of the uniform drift band
    default_scenario: str = "S1"
    dwell_times: Dict[Phase, float] = dict(DEFAULT_DWELL_TIMES)
    repeat_crash_alerts: bool = True  # False: one alert per held crash
    autostart: bool = True

    def validate_bounds(self) -> "EngineConfig":

        if self.tick_interval <= 0:
            raise InvalidConfiguration(f"tick_interval must be positive, got {self.tick_interval}")
        if self.stream_interval <= 0:
            raise InvalidConfiguration(f"stream_interval must be positive, got {self.stream_interval}")
        if self.alert_capacity < 1:
            raise InvalidConfiguration(f"alert_capacity must be at least 1, got {self.alert_capacity}")
        missing = [p.value for p in Phase if p not in self.dwell_times]
        if missing:
            raise InvalidConfiguration(f"dwell_times missing phases: {missing}")
        if self.default_scenario not in SCENARIOS:
            raise InvalidConfiguration(
                f"default_scenario {self.default_scenario!r} is not one of {sorted(SCENARIOS)}"
            )
        return self


class APIConfig(BaseModel):
    """API server configuration."""
    host: str = "127.0.0.1"
    port: int = 3000
    debug: bool = False
    cors_origins: list = ["*"]


class AchelionConfig(BaseModel):
    """Master configuration for Achelion."""
    engine: EngineConfig = EngineConfig()
    api: APIConfig = APIConfig()

    @classmethod
    def from_env(cls) -> "AchelionConfig":
        """Load configuration from environment variables."""
        seed = os.getenv("ACHELION_SEED")
        try:
            engine = EngineConfig(
                tick_interval=float(os.getenv("ACHELION_TICK_INTERVAL", 0.4)),
                stream_interval=float(os.getenv("ACHELION_STREAM_INTERVAL", 0.5)),
                alert_capacity=int(os.getenv("ACHELION_ALERT_CAPACITY", 200)),
                seed=int(seed) if seed else None,
                default_scenario=os.getenv("ACHELION_DEFAULT_SCENARIO", "S1"),
                repeat_crash_alerts=os.getenv("ACHELION_REPEAT_CRASH_ALERTS", "true").lower() == "true",
                autostart=os.getenv("ACHELION_AUTOSTART", "true").lower() == "true",
            )
            api = APIConfig(
                host=os.getenv("API_HOST", "127.0.0.1"),
                port=int(os.getenv("API_PORT", 3000)),
                debug=os.getenv("DEBUG", "false").lower() == "true",
            )
        except ValueError as e:
            raise InvalidConfiguration(str(e)) from e

        return cls(engine=engine.validate_bounds(), api=api)
