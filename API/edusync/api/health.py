from fastapi import APIRouter, Depends

from edusync.runtime.container import SyncRuntime, get_runtime

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(runtime: SyncRuntime = Depends(get_runtime)):
    status = await runtime.status()
    return {
        "status": "degraded" if runtime.degraded else "ok",
        "service": "edusync-agent",
        "online": status["online"],
        "storage": status["storage"],
        "pending_actions": status["pending_actions"],
    }
