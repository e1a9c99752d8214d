"""STRATA — Progression API Routes.

Thin adapters over the producer, scheduler and consumer interfaces.
Endpoints are plain `def` so FastAPI runs them in its worker threadpool —
store calls and compaction scans never block the event loop.
"""

from enum import Enum
from typing import Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel, Field

from strata.core.logging import get_logger
from strata.models.trend_models import POWER_METRIC, Timeframe, TrendResult
from strata.services import ProgressionServices

logger = get_logger("api.progression")

router = APIRouter(tags=["Progression"])


def get_services(request: Request) -> ProgressionServices:
    """Dependency — the service container built during app startup."""
    return request.app.state.services


# ── Request / Response Models ──


class SnapshotRequest(BaseModel):
    """Request body for POST /snapshots."""

    entity_id: str
    display_name: str = ""
    skills: Dict[str, int] = Field(default_factory=dict)
    power_level: Optional[int] = None
    """Defaults to the sum of all skill levels."""

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "entity_id": "5f1c9a7e-0000-4000-8000-000000000001",
                    "display_name": "Steve",
                    "skills": {"MINING": 120, "FISHING": 45},
                }
            ]
        }
    }


class LevelUpRequest(BaseModel):
    """Request body for POST /level-ups."""

    entity_id: str
    display_name: str = ""
    skill: str
    old_level: int
    new_level: int


class CompactionStage(str, Enum):
    HOURLY = "hourly"
    DAILY = "daily"
    WEEKLY = "weekly"
    ALL = "all"


# ── Ingestion ──


@router.post("/snapshots", status_code=201)
def ingest_snapshot(
    request: SnapshotRequest,
    services: ProgressionServices = Depends(get_services),
):
    """Record one skill snapshot for an entity."""
    if not services.is_active():
        raise HTTPException(status_code=409, detail="Progression tracking is disabled")
    if not services.settings.snapshots_enabled:
        raise HTTPException(status_code=409, detail="Snapshots are disabled")

    power = (
        request.power_level
        if request.power_level is not None
        else sum(request.skills.values())
    )
    stored = services.store.insert_snapshot(
        request.entity_id, request.display_name, power, request.skills
    )
    if not stored:
        raise HTTPException(status_code=503, detail="Snapshot could not be stored")
    return {"status": "stored", "entity_id": request.entity_id, "power_level": power}


@router.post("/level-ups", status_code=201)
def ingest_level_up(
    request: LevelUpRequest,
    services: ProgressionServices = Depends(get_services),
):
    """Record one level-up event."""
    if not services.is_active():
        raise HTTPException(status_code=409, detail="Progression tracking is disabled")
    if not services.settings.level_up_tracking_enabled:
        raise HTTPException(status_code=409, detail="Level-up tracking is disabled")

    stored = services.store.insert_level_up(
        request.entity_id,
        request.display_name,
        request.skill,
        request.old_level,
        request.new_level,
    )
    if not stored:
        raise HTTPException(status_code=503, detail="Level-up could not be stored")
    return {"status": "stored", "entity_id": request.entity_id}


# ── Query ──


@router.get("/trend/{entity_id}", response_model=TrendResult)
def get_trend(
    entity_id: str,
    metric: str = Query(POWER_METRIC, description="Skill name or POWER"),
    timeframe: str = Query("30d", description="7d | 30d | 90d | 180d | 1y | all"),
    display_name: str = Query("", description="Name used in no-data messages"),
    services: ProgressionServices = Depends(get_services),
):
    """Trend of one metric for an entity, stitched across all tiers."""
    return services.planner.get_trend(
        entity_id,
        display_name or entity_id,
        metric,
        Timeframe.from_choice_value(timeframe),
    )


# ── Scheduler / operations ──


@router.post("/compaction/{stage}")
def run_compaction(
    stage: CompactionStage,
    services: ProgressionServices = Depends(get_services),
):
    """Run one compaction stage (or a full retention run) on demand."""
    compactor = services.compactor
    if stage == CompactionStage.ALL:
        stats = compactor.run_retention()
        return {"status": "success", "stage": stage.value, "stats": stats.model_dump()}

    runner = {
        CompactionStage.HOURLY: compactor.compact_raw_to_hourly,
        CompactionStage.DAILY: compactor.compact_hourly_to_daily,
        CompactionStage.WEEKLY: compactor.compact_daily_to_weekly,
    }[stage]
    result = runner()
    logger.info(f"Manual compaction {stage.value}: {result}", extra={"stage": stage.value})
    return {
        "status": "success",
        "stage": stage.value,
        "compacted": result.compacted,
        "deleted": result.deleted,
    }


@router.get("/retention/config")
def get_retention_config(services: ProgressionServices = Depends(get_services)):
    """Active thresholds plus the recorded policy history."""
    history = services.store.get_config_history()
    return {
        "active": services.history.active.model_dump(),
        "current": services.history.current().model_dump(),
        "history": [
            {
                "effective_from": row.effective_from.isoformat(),
                "raw_retention_days": row.raw_retention_days,
                "hourly_retention_days": row.hourly_retention_days,
                "daily_retention_days": row.daily_retention_days,
                "weekly_retention_years": row.weekly_retention_years,
            }
            for row in history
        ],
    }


@router.get("/stats")
def get_stats(services: ProgressionServices = Depends(get_services)):
    """Row counts per table, the last retention run and compression metrics."""
    last = services.compactor.last_run()
    return {
        "tables": services.store.table_counts(),
        "last_compression": last.isoformat() if last else None,
        "overdue": services.compactor.is_overdue(),
        "compression": services.metrics.snapshot().model_dump(),
    }
