from __future__ import annotations

from fastapi import APIRouter

from edusync.core.resilience import get_breakers_status
from edusync.core.sync_metrics import ACTIONS_EXHAUSTED, ACTIONS_LOST, get_sync_metrics

router = APIRouter(prefix="/metrics", tags=["metrics"])


@router.get("/sync")
async def sync_metrics():
    """Offline cache, translation and replay counters plus alerts."""
    out = get_sync_metrics()
    counters = out["counters"]
    alerts = []
    if counters.get(ACTIONS_LOST, 0) > 0:
        alerts.append("actions_lost")
    if counters.get(ACTIONS_EXHAUSTED, 0) > 0:
        alerts.append("actions_exhausted")
    # Low translation hit ratio only means something once there are enough lookups
    if out["translation_lookups"] >= 10 and (out["translation_hit_ratio"] or 1.0) < 0.5:
        alerts.append("low_translation_cache_hit_ratio")
    out["alerts"] = alerts
    return out


@router.get("/resilience")
async def resilience_metrics():
    return {"breakers": get_breakers_status()}
