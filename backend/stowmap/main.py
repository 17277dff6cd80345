import logging
import time
import uuid
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.middleware import SlowAPIMiddleware
from slowapi.errors import RateLimitExceeded
from slowapi import _rate_limit_exceeded_handler
from .config import get_settings
from .errors import EngineError
from .logging_config import clear_log_context, configure_logging, update_log_context
from .rate_limit import limiter
from .routers import (
    auth,
    blueprints,
    drawers,
    dividers,
    compartments,
    revisions,
    parts,
    inventory,
    audit,
    health,
)


settings = get_settings()
configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title="Stowmap Layout API", version="0.1.0", docs_url="/swagger", redoc_url=None)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_middleware(SlowAPIMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_log_context(request: Request, call_next):
    request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
    update_log_context(request_id=request_id, method=request.method, path=request.url.path)
    start = time.perf_counter()
    status_code = 500
    try:
        response = await call_next(request)
        status_code = response.status_code
        response.headers.setdefault("X-Request-ID", request_id)
        return response
    finally:
        latency_ms = int((time.perf_counter() - start) * 1000)
        logger.info("request", extra={"status_code": status_code, "latency_ms": latency_ms})
        clear_log_context()


@app.exception_handler(EngineError)
async def engine_error_handler(request: Request, exc: EngineError):
    if exc.status_code >= 500:
        logger.error("engine error", extra={"code": exc.code, "path": request.url.path})
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "code": exc.code, "retryable": exc.retryable},
    )


app.include_router(health.router, tags=["health"])
app.include_router(auth.router, prefix="/auth", tags=["auth"])
app.include_router(blueprints.router, prefix="/blueprints", tags=["blueprints"])
app.include_router(drawers.router, prefix="/drawers", tags=["drawers"])
app.include_router(dividers.router, prefix="/dividers", tags=["dividers"])
app.include_router(compartments.router, prefix="/compartments", tags=["compartments"])
app.include_router(revisions.router, prefix="/revisions", tags=["revisions"])
app.include_router(parts.router, prefix="/parts", tags=["parts"])
app.include_router(inventory.router, prefix="/inventory", tags=["inventory"])
app.include_router(audit.router, prefix="/audit", tags=["audit"])


@app.get("/")
async def root():
    return {"status": "ok"}
