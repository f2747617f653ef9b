import logging
import secrets
import time
import uuid

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from orchestrator.config import load_config
from orchestrator.logs import log_event
from orchestrator.metrics import REQUEST_LATENCY, REQUESTS_TOTAL
from orchestrator.otel import setup_tracing
from orchestrator.schemas import (
    CacheStatsResponse,
    ChatRequest,
    ChatResponse,
    ErrorDetail,
    ErrorResponse,
    HealthSnapshotResponse,
    UsageSnapshotResponse,
)
from orchestrator.service import OrchestratorService

USER_HEADER = "X-User-Id"
ADMIN_HEADER = "X-Admin-Key"
OPEN_PATHS = {"/health", "/metrics", "/docs", "/docs/oauth2-redirect", "/redoc", "/openapi.json"}
ERROR_RESPONSES = {
    401: {"model": ErrorResponse},
    403: {"model": ErrorResponse},
}

app = FastAPI(title="llm-orchestrator")
config = load_config()
service = OrchestratorService(config)
setup_tracing(app)


def error_response(status_code: int, code: str, message: str) -> JSONResponse:
    body = ErrorResponse(error=ErrorDetail(code=code, message=message))
    return JSONResponse(status_code=status_code, content=body.model_dump())


def _admin_denied(request: Request):
    admin_key = service.config.admin_api_key
    supplied = request.headers.get(ADMIN_HEADER) or ""
    if not admin_key or not secrets.compare_digest(supplied, admin_key):
        return error_response(403, "forbidden", "Admin only")
    return None


@app.on_event("startup")
async def start_orchestrator():
    if not service.config.admin_api_key:
        log_event(logging.WARNING, "admin_key_missing")
    await service.start()


@app.on_event("shutdown")
async def stop_orchestrator():
    await service.stop()


@app.get("/health")
def health():
    return {"status": "ok"}


@app.get("/metrics")
def metrics():
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


@app.post("/v1/chat", response_model=ChatResponse, responses={401: {"model": ErrorResponse}})
async def chat(payload: ChatRequest, request: Request, response: Response):
    result = await service.process(
        user_id=request.state.user_id,
        message=payload.message,
        chat_type=payload.chat_type,
        preferred_provider=payload.preferred_provider,
        include_app_data=payload.include_app_data,
        model_hint=payload.model_hint,
    )
    response.headers["X-Provider"] = result.provider_used
    response.headers["X-Model-Chosen"] = result.model_used
    response.headers["X-Cache"] = "hit" if result.cached else "miss"
    response.headers["X-Fallback"] = "true" if result.fallback_used else "false"
    if result.retry_after_seconds is not None:
        response.headers["Retry-After"] = str(max(1, round(result.retry_after_seconds)))
    return result.to_response()


@app.get("/v1/admin/health", response_model=HealthSnapshotResponse, responses=ERROR_RESPONSES)
async def health_snapshot(request: Request):
    denied = _admin_denied(request)
    if denied is not None:
        return denied
    return service.health_snapshot()


@app.post("/v1/admin/health/probe", response_model=HealthSnapshotResponse, responses=ERROR_RESPONSES)
async def trigger_probe(request: Request):
    denied = _admin_denied(request)
    if denied is not None:
        return denied
    await service.health.probe_all()
    return service.health_snapshot()


@app.get("/v1/admin/usage", response_model=UsageSnapshotResponse, responses=ERROR_RESPONSES)
async def usage_snapshot(request: Request):
    denied = _admin_denied(request)
    if denied is not None:
        return denied
    return service.usage_snapshot()


@app.get("/v1/admin/cache", response_model=CacheStatsResponse, responses=ERROR_RESPONSES)
async def cache_stats(request: Request):
    denied = _admin_denied(request)
    if denied is not None:
        return denied
    return service.cache_stats()


@app.delete("/v1/admin/cache", responses=ERROR_RESPONSES)
async def clear_cache(request: Request):
    denied = _admin_denied(request)
    if denied is not None:
        return denied
    service.cache.clear()
    log_event(logging.INFO, "cache_cleared", user_id=request.state.user_id)
    return {"status": "ok"}


@app.middleware("http")
async def require_user(request: Request, call_next):
    if request.url.path in OPEN_PATHS:
        return await call_next(request)

    user_id = (request.headers.get(USER_HEADER) or "").strip()
    if not user_id:
        return error_response(401, "unauthorized", f"Missing {USER_HEADER} header")
    request.state.user_id = user_id
    return await call_next(request)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    request_id = request.headers.get("X-Request-Id") or str(uuid.uuid4())
    start = time.perf_counter()
    response = None
    try:
        response = await call_next(request)
    finally:
        elapsed_seconds = time.perf_counter() - start
        log_event(
            logging.INFO,
            "request",
            request_id=request_id,
            method=request.method,
            path=request.url.path,
            status_code=getattr(response, "status_code", None),
            duration_ms=round(elapsed_seconds * 1000, 2),
        )

    if response is None:
        return error_response(500, "internal_error", "Unhandled error")

    response.headers["X-Request-Id"] = request_id
    status_code = str(getattr(response, "status_code", 500))
    REQUESTS_TOTAL.labels(request.method, request.url.path, status_code).inc()
    REQUEST_LATENCY.labels(request.method, request.url.path).observe(elapsed_seconds)
    return response
