"""
MongoDB connection and database utilities.
Provides the async Motor client shared by the record store repositories.
"""

from typing import Optional

from fastapi import Depends
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ASCENDING

from ..core.config import get_settings
from ..utils.logger import get_logger

logger = get_logger("database")

# Global MongoDB client instance
_client: Optional[AsyncIOMotorClient] = None
_database: Optional[AsyncIOMotorDatabase] = None


async def connect_to_mongo() -> AsyncIOMotorDatabase:
    """
    Create the database connection and make sure the lookup indexes exist.
    Called once during application startup.
    """
    global _client, _database

    settings = get_settings()

    try:
        _client = AsyncIOMotorClient(settings.MONGODB_URL)
        _database = _client[settings.DATABASE_NAME]

        await _client.admin.command("ping")
        logger.info(f"Connected to MongoDB, using database: {settings.DATABASE_NAME}")

        await ensure_indexes(_database)
    except Exception as e:
        logger.error(f"Failed to connect to MongoDB: {e}")
        raise

    return _database


async def ensure_indexes(db: AsyncIOMotorDatabase) -> None:
    """Create the indexes used by the certificate pipeline lookups."""
    await db.certificates.create_index([("institute_id", ASCENDING)])
    await db.users.create_index([("full_name", ASCENDING), ("institution_id", ASCENDING)])
    logger.info("Database indexes ensured")


async def close_mongo_connection() -> None:
    """Close the database connection during application shutdown."""
    global _client, _database

    if _client:
        _client.close()
        _client = None
        _database = None
        logger.info("MongoDB connection closed")


def get_database() -> AsyncIOMotorDatabase:
    """
    Return the connected database.

    Raises:
        RuntimeError: If connect_to_mongo() has not run
    """
    if _database is None:
        raise RuntimeError("Database connection not established. Call connect_to_mongo() first.")

    return _database


async def get_database_dependency() -> AsyncIOMotorDatabase:
    """FastAPI dependency wrapper around get_database()."""
    return get_database()


DatabaseDep = Depends(get_database_dependency)
