"""
API Schemas - Request/Response Models

Pydantic models for API validation and documentation.
"""

from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional


class ControlRequest(BaseModel):
    """Control action posted by an operator or dashboard."""
    model_config = ConfigDict(populate_by_name=True)

    action: Optional[str] = Field(None, description="setPhase | setScenario | clearScenario | autoDemo | approveReentry")
    phase: Optional[str] = Field(None, description="Target phase for setPhase")
    scenario_id: Optional[str] = Field(None, alias="scenarioId", description="Scenario id for setScenario")


class ControlResponse(BaseModel):
    """Acknowledgement of a control action."""
    ok: bool
    error: Optional[str] = None


class HealthResponse(BaseModel):
    """Runner status."""
    status: str
    running: bool
    tick_count: int
    phase: str
    scenario_id: Optional[str] = None


class ScenarioStepSchema(BaseModel):
    start: float
    phase: str
    label: str


class ScenarioSchema(BaseModel):
    """Scripted timeline summary."""
    id: str
    name: str
    steps: List[ScenarioStepSchema]
