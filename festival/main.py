from __future__ import annotations
from contextlib import asynccontextmanager
from pathlib import Path
import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from prometheus_fastapi_instrumentator import Instrumentator

from .db import init_db
from .routers import admin, auth, booths, leaderboard, points, posts, ratings, register, students, visits
from .core.config import get_settings
from .core.errors import ErrorKind, FestivalError
from .core.logging_config import setup_logging
from .core.nats import nats_close, nats_connect
from .core.rate_limit import build_rate_limiter

settings = get_settings()
setup_logging()
logger = structlog.get_logger("festival.main")

@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    # best-effort connect to infra; service still runs if these fail
    if settings.enable_nats_events:
        try:
            await nats_connect()
        except Exception:
            logger.warning("nats.connect_failed", exc_info=True)
    yield
    try:
        await nats_close()
    except Exception:
        logger.warning("nats.close_failed", exc_info=True)

app = FastAPI(title="festival-svc", lifespan=lifespan)
app.state.rate_limiter = build_rate_limiter(settings)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.exception_handler(FestivalError)
async def festival_error_handler(request: Request, exc: FestivalError):
    if exc.kind == ErrorKind.UNEXPECTED:
        logger.error("request.failed", path=request.url.path, error=type(exc).__name__)
    else:
        logger.info("request.rejected", path=request.url.path, kind=exc.kind.value, error=type(exc).__name__)
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload(), headers=exc.headers)

@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception("request.unexpected_error", path=request.url.path)
    return JSONResponse(
        status_code=500,
        content={"message": "요청을 처리하지 못했습니다.", "kind": ErrorKind.UNEXPECTED.value},
    )

for r in (auth, visits, points, students, posts, ratings, booths, leaderboard, register, admin):
    app.include_router(r.router)

Path(settings.upload_dir).mkdir(parents=True, exist_ok=True)
app.mount("/uploads", StaticFiles(directory=settings.upload_dir), name="uploads")

@app.get("/health")
async def health():
    return {"status": "ok", "service": "festival-svc"}

Instrumentator().instrument(app).expose(app)
