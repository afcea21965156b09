"""
FastAPI Server - Telemetry API for Achelion

Serves the scenario engine's current snapshot by pull (JSON) and push
(Server-Sent Events), plus a control endpoint for operators and dashboards.

The engine runs as a background asyncio task for the lifetime of the app.
"""

import asyncio
import json
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse

from achelion.api.schemas import HealthResponse, ScenarioSchema
from achelion.core.config import AchelionConfig
from achelion.core.models import SystemSnapshot
from achelion.engine.runner import SimulationRunner


# ----------------------------------------------------
# Global State
# ----------------------------------------------------

config: AchelionConfig = None
runner: SimulationRunner = None


def format_sse(snapshot: SystemSnapshot, event: str = "snapshot") -> str:
    """Encode one snapshot as a Server-Sent Events message."""
    data = json.dumps(snapshot.model_dump(mode="json"), separators=(",", ":"))
    return f"event: {event}\ndata: {data}\n\n"


# ----------------------------------------------------
# FastAPI Lifecycle
# ----------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    global config, runner

    config = AchelionConfig.from_env()

    print("\n" + "="*60)
    print("🚀 Achelion Telemetry Engine - Starting...")
    print("="*60)

    runner = SimulationRunner(config.engine)

    if config.engine.autostart:
        runner.start()
        print(f"🟢 Simulation started (tick {config.engine.tick_interval}s)")

    print("✅ Achelion Ready\n")

    yield

    print("🛑 Shutting down Achelion...")
    await runner.stop()


# ----------------------------------------------------
# FastAPI App
# ----------------------------------------------------

app = FastAPI(
    title="Achelion Telemetry Engine",
    description="Scenario-driven risk telemetry simulator",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=AchelionConfig().api.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/")
def root():
    return {"service": "Achelion Telemetry Engine", "status": "operational"}


@app.get("/health", response_model=HealthResponse)
def health():
    state = runner.state
    return HealthResponse(
        status="healthy",
        running=runner.running,
        tick_count=state.tick_count,
        phase=state.snapshot.phase.value,
        scenario_id=state.scenario_id,
    )


# ----------------------------------------------------
# Snapshot (pull + push)
# ----------------------------------------------------

@app.get("/api/snapshot")
async def get_snapshot():
    # A reader arriving while the engine is stopped gets it ticking again
    if not runner.running:
        runner.start()

    return JSONResponse(
        content=runner.snapshot().model_dump(mode="json"),
        headers={"Cache-Control": "no-store"},
    )


@app.get("/api/stream")
async def stream_snapshots(limit: Optional[int] = None):
    """
    Push the full current snapshot immediately, then every stream_interval.

    `limit` caps the number of messages (the stream otherwise runs until
    the client disconnects).
    """
    interval = config.engine.stream_interval

    async def events():
        sent = 0
        while True:
            yield format_sse(runner.snapshot())
            sent += 1
            if limit is not None and sent >= limit:
                break
            await asyncio.sleep(interval)

    return StreamingResponse(
        events(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )


@app.get("/api/scenarios", response_model=List[ScenarioSchema])
def list_scenarios():
    return [s.describe() for s in runner.engine.scenarios.values()]


# ----------------------------------------------------
# Include Control Routes
# ----------------------------------------------------

from achelion.api import routes
app.include_router(routes.router)
