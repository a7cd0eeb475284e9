from fastapi import APIRouter, Depends

from edusync.runtime.container import SyncRuntime, get_runtime
from edusync.schemas.sync import ConnectivityRequest, SessionRequest

router = APIRouter(tags=["sync"])


@router.post("/connectivity")
async def set_connectivity(payload: ConnectivityRequest, runtime: SyncRuntime = Depends(get_runtime)):
    """Platform adapter hook: report an online/offline transition."""
    if payload.online:
        runtime.monitor.handle_online()
    else:
        runtime.monitor.handle_offline()
    return {"online": runtime.monitor.get_online_status(), "transitions": runtime.monitor.transitions}


@router.post("/session")
async def start_session(payload: SessionRequest, runtime: SyncRuntime = Depends(get_runtime)):
    await runtime.update_session(token=payload.token, student_id=payload.student_id)
    restored = await runtime.progress.load()
    if runtime.monitor.get_online_status():
        runtime.queue.schedule_replay()
    return {**runtime.credentials.describe(), "restored_progress": restored}


@router.delete("/session")
async def end_session(runtime: SyncRuntime = Depends(get_runtime)):
    await runtime.logout()
    return {"cleared": True}


@router.get("/sync/status")
async def sync_status(runtime: SyncRuntime = Depends(get_runtime)):
    return await runtime.status()


@router.get("/sync/pending")
async def pending_actions(runtime: SyncRuntime = Depends(get_runtime)):
    actions = await runtime.queue.pending()
    return {
        "count": len(actions),
        "actions": [action.model_dump(mode="json", exclude={"headers"}) for action in actions],
    }


@router.post("/sync/replay")
async def replay(runtime: SyncRuntime = Depends(get_runtime)):
    result = await runtime.queue.replay_all()
    return result.to_dict()
