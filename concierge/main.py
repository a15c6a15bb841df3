# =============================================
# File: concierge/main.py
# Purpose: FastAPI app: request logging middleware, /health, recommend/metrics/admin routers
# =============================================
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from loguru import logger

from concierge.db.repo import init_db
from concierge.routers import admin, metrics, recommend
from concierge.utils import slog
from concierge.utils.logging import configure_logging
from concierge.utils.metrics import record_endpoint, record_request
from concierge.utils.timing import Stopwatch


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    init_db()
    logger.info("[App] Concierge started")
    yield


app = FastAPI(title="Concierge Recommendations", lifespan=lifespan)


@app.middleware("http")
async def request_log(request: Request, call_next):
    """Stamps X-Request-ID, writes the request.completed line and feeds /metrics."""
    watch = Stopwatch()
    req_id = slog.new_request_id()
    path = request.url.path
    client_ip = request.client.host if request.client else None
    try:
        response = await call_next(request)
    except Exception as e:
        slog.log_event(
            "request.error",
            request_id=req_id,
            method=request.method,
            path=path,
            latency_ms=watch.ms(),
            client_ip=client_ip,
            error=str(e),
            **getattr(request.state, "log_context", {}),
        )
        raise

    latency_ms = watch.ms()
    ctx = dict(getattr(request.state, "log_context", {}))
    ctx.setdefault("rate_limited", response.status_code == 429)
    slog.finalize_request_log(req_id, request.method, path, response.status_code, latency_ms, client_ip, ctx)

    if path == "/recommend":
        record_request(latency_ms)
    record_endpoint(request.method, path, latency_ms)
    response.headers["X-Request-ID"] = req_id
    return response


@app.get("/health")
def health():
    return {"status": "ok"}


app.include_router(recommend.router)
app.include_router(metrics.router)
app.include_router(admin.router)
