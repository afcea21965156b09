"""
API Routes - Control Endpoint for Achelion

Provides:
- Phase forcing and scenario selection
- Auto-demo and PM re-entry approval
"""

import json
import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from achelion.api.schemas import ControlRequest, ControlResponse
from achelion.core.exceptions import ControlError
import achelion.api.server as server


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["achelion"])


@router.post("/control", response_model=ControlResponse, response_model_exclude_none=True)
async def control(request: Request):
    """
    Apply one control action to the running engine.

    Rejected input (unknown action, phase or scenario) leaves the
    engine untouched and returns 400 with {"ok": false, "error": ...}.
    """
    try:
        body = json.loads(await request.body() or b"{}")
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}

    try:
        req = ControlRequest.model_validate(body)
    except ValidationError as e:
        return JSONResponse(status_code=400, content={"ok": False, "error": str(e)})

    try:
        server.runner.control(req.action, phase=req.phase, scenario_id=req.scenario_id)
    except ControlError as e:
        logger.info(f"[control] rejected {req.action!r}: {e}")
        return JSONResponse(status_code=400, content={"ok": False, "error": str(e)})

    return ControlResponse(ok=True)
