import logging
import time
from uuid import uuid4

from fastapi import FastAPI
from fastapi import HTTPException
from fastapi import Request, Response
from fastapi.exceptions import RequestValidationError

from tutorhub.api.v1.admin import router as admin_router
from tutorhub.api.v1.auth import router as auth_router
from tutorhub.api.v1.bookings import router as bookings_router
from tutorhub.api.v1.checkout import router as checkout_router
from tutorhub.api.v1.messages import router as messages_router
from tutorhub.api.v1.tutors import router as tutors_router
from tutorhub.api.v1.users import router as users_router
from tutorhub.api.v1.webhooks import router as webhooks_router
from tutorhub.core.exceptions import AppError, app_error_handler, http_exception_handler, validation_exception_handler
from tutorhub.core.logging import setup_logging
from tutorhub.core.metrics import REQUEST_COUNT, REQUEST_LATENCY, render_metrics
from tutorhub.core.request_context import request_id_ctx_var

app = FastAPI(title="TutorHub API", version="0.1.0")
app.add_exception_handler(AppError, app_error_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
setup_logging()
logger = logging.getLogger("tutorhub.request")

app.include_router(auth_router)
app.include_router(users_router)
app.include_router(tutors_router)
app.include_router(checkout_router)
app.include_router(webhooks_router)
app.include_router(bookings_router)
app.include_router(messages_router)
app.include_router(admin_router)


def _route_path(request: Request) -> str:
    # label by route template so ids do not explode metric cardinality
    route = request.scope.get("route")
    return getattr(route, "path", request.url.path)


@app.middleware("http")
async def observability_middleware(request: Request, call_next):
    request_id = request.headers.get("x-request-id") or str(uuid4())
    token = request_id_ctx_var.set(request_id)
    start = time.perf_counter()
    method = request.method
    try:
        response = await call_next(request)
    except Exception:
        elapsed = time.perf_counter() - start
        path = _route_path(request)
        REQUEST_COUNT.labels(method=method, path=path, status_code=500).inc()
        REQUEST_LATENCY.labels(method=method, path=path).observe(elapsed)
        logger.exception(
            "request_failed method=%s path=%s status=500 duration_ms=%.2f",
            method,
            path,
            elapsed * 1000,
        )
        request_id_ctx_var.reset(token)
        raise

    elapsed = time.perf_counter() - start
    path = _route_path(request)
    REQUEST_COUNT.labels(method=method, path=path, status_code=response.status_code).inc()
    REQUEST_LATENCY.labels(method=method, path=path).observe(elapsed)
    response.headers["X-Request-ID"] = request_id
    logger.info(
        "request_completed method=%s path=%s status=%s duration_ms=%.2f",
        method,
        path,
        response.status_code,
        elapsed * 1000,
    )
    request_id_ctx_var.reset(token)
    return response


@app.get("/health", tags=["health"])
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/metrics", tags=["observability"])
def metrics() -> Response:
    payload, content_type = render_metrics()
    return Response(content=payload, media_type=content_type)
