"""Pipeline API routes: snapshots, metrics, mode control and intel lookup.

Read-only views over the coordinator's snapshots plus the single mode
switch.  No route mutates retained events or alerts.
"""

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from ..pipeline.coordinator import PipelineCoordinator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["pipeline"])


# ── Service holder ───────────────────────────────────────────────────


class PipelineServices:
    """Holds the coordinator the routes read from."""

    def __init__(self):
        self.coordinator: Optional[PipelineCoordinator] = None


services = PipelineServices()


def get_coordinator() -> PipelineCoordinator:
    if services.coordinator is None:
        raise HTTPException(status_code=503, detail="Pipeline not initialized")
    return services.coordinator


# ── Pydantic Models ──────────────────────────────────────────────────


class EventModel(BaseModel):
    event_id: str
    timestamp: str
    event_type: str
    severity: str
    description: str
    source_ip: str
    dest_ip: str
    user: str
    status: str
    automated: bool
    origin: str
    metadata: Dict[str, str] = Field(default_factory=dict)


class AlertModel(BaseModel):
    alert_id: str
    event_id: str
    timestamp: str
    severity: str
    title: str
    description: str
    status: str
    automated: bool
    actions: List[str] = Field(default_factory=list)


class MetricsModel(BaseModel):
    total_events: int = 0
    critical_alerts: int = 0
    blocked_threats: int = 0
    active_incidents: int = 0


class SnapshotModel(BaseModel):
    events: List[EventModel]
    alerts: List[AlertModel]
    metrics: MetricsModel
    taken_at: str


class ModeUpdate(BaseModel):
    mode: str


class ModeResponse(BaseModel):
    mode: str
    changed: bool


class IntelLookupModel(BaseModel):
    indicator: str
    reputation: str
    score: int
    category: str
    provenance: str
    looked_up_at: str
    country: Optional[str] = None
    family: Optional[str] = None


# ── Routes ───────────────────────────────────────────────────────────


@router.get("/snapshot", response_model=SnapshotModel)
async def get_snapshot(pipeline: PipelineCoordinator = Depends(get_coordinator)):
    """Events, alerts and metrics as of one instant."""
    return pipeline.snapshot().to_dict()


@router.get("/events", response_model=List[EventModel])
async def get_events(
    limit: int = Query(100, ge=1, le=1000),
    pipeline: PipelineCoordinator = Depends(get_coordinator),
):
    return [e.to_dict() for e in pipeline.store.events(limit)]


@router.get("/alerts", response_model=List[AlertModel])
async def get_alerts(
    limit: int = Query(50, ge=1, le=1000),
    pipeline: PipelineCoordinator = Depends(get_coordinator),
):
    return [a.to_dict() for a in pipeline.store.alerts(limit)]


@router.get("/metrics", response_model=MetricsModel)
async def get_metrics(pipeline: PipelineCoordinator = Depends(get_coordinator)):
    return pipeline.store.metrics().to_dict()


@router.get("/status")
async def get_status(pipeline: PipelineCoordinator = Depends(get_coordinator)) -> Dict[str, Any]:
    return pipeline.status()


@router.put("/mode", response_model=ModeResponse)
async def set_mode(
    body: ModeUpdate,
    pipeline: PipelineCoordinator = Depends(get_coordinator),
):
    """Switch ingestion between ``synthetic`` and ``live``."""
    if body.mode not in ("synthetic", "live"):
        raise HTTPException(status_code=422, detail=f"Unknown mode: {body.mode}")
    changed = pipeline.set_mode(body.mode)
    return {"mode": pipeline.mode.value, "changed": changed}


@router.get("/intel", response_model=List[str])
async def list_indicators(pipeline: PipelineCoordinator = Depends(get_coordinator)):
    """Indicators known to the local threat index."""
    return pipeline.index.indicators()


@router.get("/intel/{indicator}", response_model=IntelLookupModel)
async def lookup_indicator(
    indicator: str,
    pipeline: PipelineCoordinator = Depends(get_coordinator),
):
    return pipeline.lookup(indicator).to_dict()
