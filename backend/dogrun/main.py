from fastapi import FastAPI, WebSocket, Response, Request, Depends, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
import asyncio
import logging
import os
import time
from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from . import database, pubsub
from . import auth as auth_service
from .database import get_db
from .services import maintenance as maintenance_service
from .routes import (
    auth,
    parks,
    dogs,
    admin_approvals,
    maintenance,
    notifications,
)

logger = logging.getLogger(__name__)

dsn = os.getenv("SENTRY_DSN")
if dsn:
    sentry_sdk.init(dsn=dsn, integrations=[FastApiIntegration()])

REQUEST_COUNT = Counter("request_count", "Total requests", ["method", "endpoint"])
REQUEST_LATENCY = Histogram(
    "request_latency_seconds", "Request latency", ["endpoint"]
)
MAINTENANCE_BLOCKED = Counter("maintenance_blocked_total", "Requests refused during maintenance")

MAINTENANCE_EXEMPT_PREFIXES = (
    "/api/auth",
    "/api/maintenance",
    "/api/admin/maintenance",
    "/metrics",
    "/docs",
    "/redoc",
    "/openapi.json",
)

app = FastAPI(title="Dogrun API")

cors_origins = os.getenv("CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000")
app.add_middleware(
    CORSMiddleware,
    allow_origins=[origin.strip() for origin in cors_origins.split(",") if origin.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

limiter = Limiter(key_func=get_remote_address)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, lambda r, e: Response("Too Many Requests", status_code=429))
if os.getenv("TESTING") != "1":
    app.add_middleware(SlowAPIMiddleware)


def _maintenance_block(client_ip: str | None) -> dict | None:
    """Return the 503 body when maintenance blocks this client, else None."""
    db = database.SessionLocal()
    try:
        decision = maintenance_service.evaluate(db, client_ip)
        if not decision.blocked:
            return None
        schedule = decision.schedule
        end_time = maintenance_service.as_utc(schedule.end_time) if schedule else None
        return {
            "detail": "Service under maintenance",
            "title": schedule.title if schedule else None,
            "message": schedule.message if schedule else None,
            "end_time": end_time.isoformat() if end_time else None,
        }
    except SQLAlchemyError:
        # fail open when the schedule store is unreachable
        logger.exception("Maintenance gate could not read schedules; letting request through")
        return None
    finally:
        db.close()


@app.middleware("http")
async def maintenance_gate(request: Request, call_next):
    if request.url.path.startswith(MAINTENANCE_EXEMPT_PREFIXES):
        return await call_next(request)
    # synchronous session runs in a worker thread
    blocked = await asyncio.to_thread(_maintenance_block, maintenance.client_ip(request))
    if blocked is not None:
        MAINTENANCE_BLOCKED.inc()
        return JSONResponse(status_code=503, content=blocked)
    return await call_next(request)


@app.middleware("http")
async def record_metrics(request: Request, call_next):
    start = time.time()
    response = await call_next(request)
    endpoint = request.url.path
    REQUEST_COUNT.labels(request.method, endpoint).inc()
    REQUEST_LATENCY.labels(endpoint).observe(time.time() - start)
    return response

@app.get("/metrics")
def metrics():
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

app.include_router(auth.router)
app.include_router(parks.router)
app.include_router(dogs.router)
app.include_router(admin_approvals.router)
app.include_router(maintenance.router)
app.include_router(notifications.router)


def audit_routes():
    from fastapi.routing import APIRoute
    from .auth import get_current_user

    public_paths = {
        "/api/auth/login",
        "/api/auth/register",
        "/api/maintenance/status",
        "/metrics",
    }
    for route in app.routes:
        if isinstance(route, APIRoute) and route.path.startswith("/api") and route.path not in public_paths:
            calls = [dep.call for dep in route.dependant.dependencies]
            if get_current_user not in calls:
                raise RuntimeError(f"Route {route.path} missing authentication")


audit_routes()


@app.websocket("/ws/notifications/{user_id}")
async def websocket_endpoint(websocket: WebSocket, user_id: str, db: Session = Depends(get_db)):
    # token comes from the ?token= query parameter
    user = auth_service.user_from_token(db, websocket.query_params.get("token"))
    db.close()
    if user is None or str(user.id) != user_id:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return
    await websocket.accept()
    r = await pubsub.get_redis()
    pub = r.pubsub()
    channel = pubsub.user_channel(user_id)
    await pub.subscribe(channel)
    try:
        async for message in pub.listen():
            if message["type"] == "message":
                data = message["data"]
                if isinstance(data, bytes):
                    data = data.decode()
                await websocket.send_text(data)
    finally:
        await pub.unsubscribe(channel)
