import uvicorn
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from edusync.api.events import router as events_router
from edusync.api.health import router as health_router
from edusync.api.lessons import router as lessons_router
from edusync.api.metrics import router as metrics_router
from edusync.api.sync import router as sync_router
from edusync.api.translate import router as translate_router
from edusync.core.auth import api_key_auth_middleware, credential_capture_middleware
from edusync.core.errors import (
    StorageUnavailable,
    http_exception_handler,
    request_id_middleware,
    storage_unavailable_handler,
    unhandled_exception_handler,
    validation_exception_handler,
)
from edusync.core.logging import configure_logging
from edusync.core.settings import settings
from edusync.runtime.container import get_runtime


configure_logging(settings.log_level)

app = FastAPI(title="EduSync Agent", version="0.1.0")
app.include_router(health_router)
app.include_router(sync_router)
app.include_router(lessons_router)
app.include_router(translate_router)
app.include_router(events_router)
app.include_router(metrics_router)
app.middleware("http")(credential_capture_middleware(get_runtime))
app.middleware("http")(api_key_auth_middleware)
app.middleware("http")(request_id_middleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(StorageUnavailable, storage_unavailable_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)


@app.on_event("startup")
async def on_startup():
    await get_runtime().start()


@app.on_event("shutdown")
async def on_shutdown():
    await get_runtime().aclose()


def run() -> None:
    uvicorn.run("edusync.main:app", host=settings.app_host, port=settings.app_port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    run()
