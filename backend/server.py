"""
FastAPI Server for the FSP Portal

Serves the portal API for students, teachers, admins and management.
Runs the maintenance scheduler in the background.

Usage:
    python server.py                    # Run server on port 8000
    python server.py --port 3001        # Custom port
    python server.py --no-scheduler     # Disable background maintenance
"""

import asyncio
import argparse
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from core.auth import AuthenticatedUser, get_current_host
from core.config import CORS_ORIGINS, ENVIRONMENT, initialize_firebase, get_firestore_client
from core.exceptions import PortalError, error_payload
from routes import ROUTERS


# Pydantic Models (API Response Schemas)

class HealthResponse(BaseModel):
    status: str
    environment: str
    firebase: str
    redis: str


class CacheStatsResponse(BaseModel):
    connected: bool
    hits: int = 0
    misses: int = 0
    memory_used: str = "unknown"
    batch_keys: int = 0
    total_keys: int = 0


# Background Scheduler

scheduler_task = None


async def run_background_scheduler():
    """Run the scheduler in the background"""
    from tasks.scheduler import TaskScheduler

    scheduler = TaskScheduler()
    await scheduler.start()

    # Keep running
    try:
        while True:
            await asyncio.sleep(60)
    except asyncio.CancelledError:
        scheduler.shutdown()


# App Lifespan (startup/shutdown)

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle startup and shutdown"""
    global scheduler_task

    # Startup
    print("[Server] Initializing Firebase...")
    initialize_firebase()

    if app.state.enable_scheduler:
        print("[Server] Starting background scheduler...")
        scheduler_task = asyncio.create_task(run_background_scheduler())

    print("[Server] Ready!")

    yield

    # Shutdown
    if scheduler_task:
        print("[Server] Stopping scheduler...")
        scheduler_task.cancel()
        try:
            await scheduler_task
        except asyncio.CancelledError:
            pass

    print("[Server] Shutdown complete")


# FastAPI App

app = FastAPI(
    title="FSP Portal API",
    description="API for the Finishing School Program portal",
    version="1.0.0",
    lifespan=lifespan
)

# CORS - session cookies need credentials, so origins are explicit
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Default: enable scheduler
app.state.enable_scheduler = True


@app.exception_handler(PortalError)
async def portal_error_handler(request: Request, exc: PortalError):
    """Turn service errors into JSON responses with their status code."""
    return JSONResponse(status_code=exc.status_code, content=error_payload(exc))


for router in ROUTERS:
    app.include_router(router)


# API Endpoints

@app.get("/", response_model=HealthResponse)
async def health_check():
    """Health check endpoint"""
    # Check Firebase connectivity
    firebase_status = "connected"
    try:
        db = get_firestore_client()
        db.collection("metadata").document("health_check").get()
    except Exception as e:
        firebase_status = f"error: {str(e)[:50]}"

    # Check Redis connectivity
    redis_status = "unavailable"
    try:
        from services.cache import get_cache
        cache = get_cache()
        if cache.is_connected:
            redis_status = "connected"
    except Exception:
        redis_status = "unavailable"

    return HealthResponse(
        status="ok" if firebase_status == "connected" else "degraded",
        environment=ENVIRONMENT,
        firebase=firebase_status,
        redis=redis_status
    )


@app.get("/api/health", response_model=HealthResponse)
async def api_health():
    """API health check"""
    return await health_check()


@app.get("/api/cache/stats", response_model=CacheStatsResponse)
async def cache_stats(user: AuthenticatedUser = Depends(get_current_host)):
    """Redis cache statistics"""
    from services.cache import get_cache
    return CacheStatsResponse(**get_cache().get_stats())


@app.post("/api/cache/clear")
async def clear_cache(user: AuthenticatedUser = Depends(get_current_host)):
    """Drop every cached batch, roster and dashboard entry"""
    from services.cache import get_cache
    cleared = get_cache().clear_all()
    return {"cleared": cleared}


# Main

def main():
    import uvicorn

    parser = argparse.ArgumentParser(description="FSP Portal API Server")
    parser.add_argument("--port", type=int, default=8000, help="Port to run on")
    parser.add_argument("--host", type=str, default="0.0.0.0", help="Host to bind to")
    parser.add_argument("--no-scheduler", action="store_true", help="Disable background scheduler")
    parser.add_argument("--reload", action="store_true", help="Enable auto-reload for development")

    args = parser.parse_args()

    app.state.enable_scheduler = not args.no_scheduler

    print(f"[Server] Starting on http://{args.host}:{args.port}")
    print(f"[Server] Scheduler: {'enabled' if app.state.enable_scheduler else 'disabled'}")

    uvicorn.run(
        "server:app" if args.reload else app,
        host=args.host,
        port=args.port,
        reload=args.reload
    )


if __name__ == "__main__":
    main()
