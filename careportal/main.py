from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
import asyncio
import time
import logging

from .api.v1 import admin, appointments, auth, invoices, messaging, notifications, records, schedule
from .core.config import settings
from .core.database import init_db
from .services.polling import PollerRegistry

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"
ROUTERS = (
    auth.router,
    appointments.router,
    schedule.router,
    records.router,
    messaging.router,
    notifications.router,
    admin.router,
    invoices.router,
)

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.VERSION,
    description="Patient, doctor and admin portal over the clinic backend API",
    openapi_url=f"{API_PREFIX}/openapi.json",
    docs_url="/docs",
    redoc_url="/redoc"
)

# Background polling loops, keyed by portal session
app.state.pollers = PollerRegistry()

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

if not settings.TESTING:
    app.add_middleware(
        TrustedHostMiddleware,
        allowed_hosts=["localhost", "127.0.0.1", "*.localhost"]
    )

@app.middleware("http")
async def log_request_timing(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    elapsed = time.perf_counter() - started
    response.headers["X-Process-Time"] = f"{elapsed:.4f}"
    logger.info(f"{request.method} {request.url.path} -> {response.status_code} in {elapsed:.4f}s")
    return response

@app.exception_handler(404)
async def not_found_handler(request: Request, exc: HTTPException):
    # Backend and service 404s carry their own message
    detail = getattr(exc, "detail", None)
    if detail and detail != "Not Found":
        return JSONResponse(status_code=404, content={"detail": detail})
    return JSONResponse(
        status_code=404,
        content={
            "error": "Not Found",
            "message": f"No portal route for {request.url.path}",
            "path": str(request.url.path)
        }
    )

@app.exception_handler(500)
async def internal_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal Server Error",
            "message": "Something went wrong. Please try again."
        }
    )

for router in ROUTERS:
    app.include_router(router, prefix=API_PREFIX)

@app.on_event("startup")
async def startup_event():
    logger.info(f"Starting {settings.APP_NAME} {settings.VERSION} against {settings.BACKEND_API_URL}")
    init_db()
    logger.info(f"Session store ready at {settings.get_database_url}")
    app.state.sweeper = asyncio.create_task(
        app.state.pollers.run_sweeper(settings.POLLER_SWEEP_SECONDS)
    )

@app.on_event("shutdown")
async def shutdown_event():
    """Stop every session's polling loops and close their clients."""
    logger.info(f"Shutting down {settings.APP_NAME}")
    app.state.sweeper.cancel()
    await app.state.pollers.shutdown()

@app.get("/health")
async def health_check():
    return {
        "status": "healthy",
        "timestamp": time.time(),
        "version": settings.VERSION,
        "polling_sessions": app.state.pollers.session_count,
    }

@app.get("/")
async def root():
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": settings.VERSION,
        "docs": "/docs",
        "health": "/health"
    }

@app.get(f"{API_PREFIX}/info")
async def api_info():
    """Portal name, backend location and the mounted route groups."""
    return {
        "name": settings.APP_NAME,
        "version": settings.VERSION,
        "backend": settings.BACKEND_API_URL,
        "endpoints": {
            router.prefix.strip("/"): f"{API_PREFIX}{router.prefix}"
            for router in ROUTERS
        },
        "openapi": app.openapi_url,
    }

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "careportal.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level="info"
    )
