"""
Unified backend entry point.

Architecture:
- One Python process, one asyncio event loop
- Two peer services running concurrently:
  1. FastAPI (HTTP server for the client app and the Telegram webhook)
  2. APScheduler jobs (notification tick, weekly digest, dedup purge)

We use FastAPI's lifespan to manage startup/shutdown. The request gateway
and the scheduler share one lock, so a tick never interleaves with a
client sync.

Run with: python main.py [--no-scheduler] [--port PORT]
"""

import os
import sys
from contextlib import asynccontextmanager
from pathlib import Path

project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

from dotenv import load_dotenv

# Load .env.local first (if exists), then .env as fallback
# .env.local is gitignored and used for local dev overrides
load_dotenv(project_root / ".env.local")  # Local overrides (gitignored)
load_dotenv()  # Fallback to .env

import sentry_sdk
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from claimdesk.config import (
    ClaimDeskConfig,
    check_required_env_vars,
    get_allowed_origins,
    get_api_port,
    is_production,
)
from claimdesk.database import close_engine, create_schema, get_engine, is_configured
from claimdesk.notifications.scheduler import (
    get_scheduler,
    init_scheduler,
    shutdown_scheduler,
)
from claimdesk.services import build_services, get_services, set_services

from web_api.routes.admin import router as admin_router
from web_api.routes.gateway import router as gateway_router

# Initialize Sentry before the app so startup errors are captured
SENTRY_DSN = os.environ.get("SENTRY_DSN")
if SENTRY_DSN:
    sentry_sdk.init(
        dsn=SENTRY_DSN,
        environment="production" if is_production() else "development",
        traces_sample_rate=0.1,
    )
    print("Sentry error tracking initialized")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    FastAPI lifespan context manager.

    Builds the engine components, starts the scheduler, and tears both down
    on shutdown.
    """
    ok, warnings = check_required_env_vars()
    for warning in warnings:
        print(warning)
    if not ok:
        raise RuntimeError("Missing required environment variables")

    config = ClaimDeskConfig.from_env()
    engine = get_engine() if is_configured() else None
    if engine is not None and engine.dialect.name == "sqlite":
        # Postgres schema is managed by Alembic
        await create_schema(engine)

    set_services(build_services(config, engine))
    print(f"ClaimDesk engine ready (timezone {config.timezone}, merge {config.sync_merge})")

    if os.getenv("DISABLE_SCHEDULER", "").lower() in ("true", "1", "yes"):
        print("Scheduler disabled (--no-scheduler flag or DISABLE_SCHEDULER=true)")
    else:
        init_scheduler(get_services().scheduler)

    yield

    print("Shutting down peer services...")
    shutdown_scheduler()
    set_services(None)
    await close_engine()  # Close database connections


# Create FastAPI app with lifespan
app = FastAPI(
    title="ClaimDesk API",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_allowed_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(gateway_router)
app.include_router(admin_router)


@app.get("/health")
async def health():
    """Health check endpoint with scheduler status."""
    scheduler = get_scheduler()
    return {
        "status": "healthy",
        "scheduler_running": bool(scheduler and scheduler.running),
        "database_configured": is_configured(),
    }


if __name__ == "__main__":
    import argparse
    import uvicorn

    parser = argparse.ArgumentParser(description="ClaimDesk Server")
    parser.add_argument(
        "--no-scheduler",
        action="store_true",
        help="Disable the notification scheduler (useful for running multiple dev servers)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=get_api_port(),
        help="Port to run the server on (default: API_PORT or 8000)",
    )
    args = parser.parse_args()

    # Set env var so it persists across uvicorn reloads
    if args.no_scheduler:
        os.environ["DISABLE_SCHEDULER"] = "true"

    # Pass app object directly (not string) to avoid module reimport issues
    uvicorn.run(
        app,
        host="0.0.0.0",
        port=args.port,
    )
