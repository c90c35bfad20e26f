"""
Offline Triage — Local API Server
=================================
FastAPI service exposing the triage engine to the app shell on the same
device (or a clinic LAN box).

Run:
    pip install -e .
    python triage_server.py

Endpoints:
    POST /api/analyze       symptom triage
    POST /api/interactions  drug interaction check
    GET  /api/status        health check
"""
from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

# ── path setup ────────────────────────────────────────────────────────────────
ROOT = Path(__file__).parent
sys.path.insert(0, str(ROOT))

from offline_triage.config import Settings
from offline_triage.triage_engine import TriageEngine

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# ── init ──────────────────────────────────────────────────────────────────────
settings = Settings.from_env()
engine = TriageEngine(settings=settings)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    await engine.ensure_ready()
    logger.info("Triage engine ready: %s", engine.get_status().model_dump())
    yield


app = FastAPI(title="Offline Triage Engine", version="1.0", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


class AnalyzeRequest(BaseModel):
    # Entries are validated by the engine so one bad symptom cannot reject the request.
    symptoms: list[Any] = Field(default_factory=list)
    age: Optional[float] = None
    gender: Optional[str] = None
    vitals: Optional[dict[str, Any]] = None


class InteractionRequest(BaseModel):
    medicines: list[str] = Field(default_factory=list)


# ── API endpoints ─────────────────────────────────────────────────────────────

@app.post("/api/analyze")
async def api_analyze(body: AnalyzeRequest):
    """Triage reported symptoms and vitals."""
    result = await engine.analyze(
        body.symptoms,
        age=body.age,
        gender=body.gender,
        vitals=body.vitals,
    )
    return result.model_dump(mode="json")


@app.post("/api/interactions")
def api_interactions(body: InteractionRequest):
    """Check a medicine list for known interactions."""
    return engine.interaction_checker.summarize(body.medicines)


@app.get("/api/status")
def api_status():
    """Engine readiness for health checks."""
    return engine.get_status().model_dump()


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=settings.server_port)
