import logging
import time

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.routing import APIRoute
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration

from . import config
from .errors import envelope, register_exception_handlers
from .logging_config import configure_logging
from .routes import admin, auth, documents, forum, projects, users

if config.SENTRY_DSN:
    sentry_sdk.init(dsn=config.SENTRY_DSN, integrations=[FastApiIntegration()])

configure_logging()
logger = logging.getLogger("researchhub.http")

REQUEST_COUNT = Counter("request_count", "Total requests", ["method", "endpoint", "status"])
REQUEST_LATENCY = Histogram("request_latency_seconds", "Request latency", ["endpoint"])

app = FastAPI(title="Research Hub API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.state.limiter = auth.limiter
app.add_exception_handler(
    RateLimitExceeded,
    lambda r, e: JSONResponse(status_code=429, content=envelope("Too many requests")),
)
if not config.TESTING:
    app.add_middleware(SlowAPIMiddleware)

register_exception_handlers(app)


def _endpoint_label(request: Request) -> str:
    # templated path keeps label cardinality bounded
    route = request.scope.get("route")
    return getattr(route, "path", request.url.path)


@app.middleware("http")
async def record_metrics(request: Request, call_next):
    start = time.time()
    response = await call_next(request)
    elapsed = time.time() - start
    endpoint = _endpoint_label(request)
    REQUEST_COUNT.labels(request.method, endpoint, str(response.status_code)).inc()
    REQUEST_LATENCY.labels(endpoint).observe(elapsed)
    logger.info(
        "%s %s %s", request.method, request.url.path, response.status_code,
        extra={
            "method": request.method,
            "path": request.url.path,
            "status": response.status_code,
            "duration_ms": round(elapsed * 1000, 2),
        },
    )
    return response


@app.get("/metrics")
def metrics():
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)


@app.get("/api/health")
def health():
    return {"success": True, "message": "Research Hub API is running"}


app.include_router(auth.router)
app.include_router(users.router)
app.include_router(admin.router)
app.include_router(projects.router)
app.include_router(documents.router)
app.include_router(forum.router)


PUBLIC_PATHS = {
    "/api/health",
    "/api/auth/register",
    "/api/auth/verify-email/{token}",
    "/api/auth/resend-verification",
    "/api/auth/login",
    "/api/auth/forgot-password",
    "/api/auth/reset-password/{token}",
    "/api/projects/public",
}


def _depends_on(dependant, target) -> bool:
    for dep in dependant.dependencies:
        if dep.call is target or _depends_on(dep, target):
            return True
    return False


def iter_api_routes(routes=None):
    """Yield every ``APIRoute``, descending into included routers and mounts."""
    stack = list(reversed(app.routes if routes is None else routes))
    while stack:
        route = stack.pop()
        if isinstance(route, APIRoute):
            yield route
            continue
        children = getattr(route, "routes", None)
        if children is None:
            children = getattr(getattr(route, "original_router", None), "routes", None)
        if children:
            stack.extend(reversed(list(children)))


def audit_routes() -> int:
    from .auth import get_current_user

    checked = 0
    for route in iter_api_routes():
        if route.path.startswith("/api") and route.path not in PUBLIC_PATHS:
            if not _depends_on(route.dependant, get_current_user):
                raise RuntimeError(f"Route {route.path} missing authentication")
            checked += 1
    if not checked:
        raise RuntimeError("Route audit found no protected /api routes")
    return checked


audit_routes()
