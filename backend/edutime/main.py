import logging
import os
import time
import uuid

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from edutime.core.logging import setup_logging
from edutime.core.migrations import RunMigrations
from edutime.modules.core.router import router as core_router
from edutime.modules.sync.router import router as sync_router


def _env_truthy(name: str) -> bool:
    value = os.getenv(name, "").strip().lower()
    return value in {"1", "true", "yes", "on"}


setup_logging()

app = FastAPI(title="EduTime API")
logger = logging.getLogger("app.request")
startup_logger = logging.getLogger("app.startup")

if _env_truthy("RUN_MIGRATIONS_ON_STARTUP"):
    RunMigrations()
startup_logger.info("startup complete")

allowed_origins = os.getenv("ALLOWED_ORIGINS", "")
origin_list = [origin.strip() for origin in allowed_origins.split(",") if origin.strip()]
if origin_list:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origin_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


@app.middleware("http")
async def request_logger(request: Request, call_next):
    request_id = request.headers.get("X-Request-Id") or str(uuid.uuid4())
    start = time.perf_counter()
    response = await call_next(request)
    duration_ms = int((time.perf_counter() - start) * 1000)

    parts = [f"{request.method} {request.url.path}"]
    status = response.status_code
    if status >= 500:
        parts.append("ERROR: server error")
    elif status == 429:
        parts.append("ERROR: rate limited")
    elif status >= 400:
        parts.append("ERROR: client error")
    parts.append(f"status={status}")
    parts.append(f"{duration_ms}ms")
    parts.append(f"request_id={request_id}")

    log_msg = " | ".join(parts)
    if status >= 500:
        logger.error(log_msg)
    elif status >= 400:
        logger.warning(log_msg)
    else:
        logger.info(log_msg)

    response.headers["X-Request-Id"] = request_id
    return response


app.include_router(core_router)
app.include_router(sync_router)
