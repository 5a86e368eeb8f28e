import logging
from motor.motor_asyncio import AsyncIOMotorClient
from pymongo import ASCENDING, DESCENDING
from petnest import config

logger = logging.getLogger(__name__)

client = AsyncIOMotorClient(config.MONGO_URI, tz_aware=True)
db = client[config.MONGO_DB_NAME]

__all__ = ["client", "db", "get_db", "ensure_indexes", "ping"]


def get_db():
    """FastAPI dependency returning the active database handle."""
    return db


async def ensure_indexes(database):
    # One chat per listing; the unique key backs the upsert in the chat service
    await database.chats.create_index(
        [("listing_id", ASCENDING), ("listing_type", ASCENDING)],
        unique=True,
        name="listing_unique",
    )
    await database.chats.create_index([("user_id", ASCENDING)])
    await database.chats.create_index([("owner_id", ASCENDING)])
    await database.chats.create_index([("updated_at", DESCENDING)])
    logger.info("Chat indexes ensured")


async def ping(database) -> bool:
    await database.command("ping")
    return True
