import logging
import time
from datetime import datetime, timezone
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from petnest import config, database
from petnest.realtime.relay import RoomRelay
from petnest.routes import chats, realtime
from petnest.tasks.relay_stats import create_scheduler

config.configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title="PetNest Chat")

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)

app.include_router(chats.router, prefix="/api")
app.include_router(realtime.router)

STARTED_AT = time.monotonic()


@app.on_event("startup")
async def startup_event():
    """Create the relay, ensure indexes and start the stats scheduler"""
    config.validate_settings()
    app.state.relay = RoomRelay()
    await database.ensure_indexes(database.get_db())
    app.state.scheduler = create_scheduler(app.state.relay)
    app.state.scheduler.start()
    logger.info("PetNest chat started")


@app.on_event("shutdown")
async def shutdown_event():
    """Stop the scheduler and release relay rooms"""
    app.state.scheduler.shutdown(wait=False)
    await app.state.relay.close()


@app.get("/health")
async def health_check():
    relay_stats = app.state.relay.stats()
    health = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "uptime_seconds": round(time.monotonic() - STARTED_AT, 1),
        **relay_stats,
    }
    try:
        await database.ping(database.get_db())
        health.update(status="healthy", database="connected")
    except Exception as e:
        logger.warning("Health check database ping failed: %s", e)
        health.update(status="unhealthy", database="disconnected", error=str(e))
    return health
