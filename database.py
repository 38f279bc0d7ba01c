"""
MongoDB connection

``db`` is a pymongo Database when DATABASE_URL is set, otherwise None and the
app falls back to in-memory repositories.
"""
import logging
from typing import Optional

from pymongo import ASCENDING, MongoClient
from pymongo.database import Database

from config import Settings, get_settings
from repositories import storage_errors

logger = logging.getLogger(__name__)


def connect(settings: Settings) -> Optional[Database]:
    if not settings.database_url:
        logger.warning("DATABASE_URL not set, using in-memory storage")
        return None
    timeout = settings.database_timeout_ms
    client = MongoClient(
        settings.database_url,
        timeoutMS=timeout,
        serverSelectionTimeoutMS=timeout,
        connectTimeoutMS=timeout,
    )
    return client[settings.database_name]


def ensure_indexes(database: Database) -> None:
    with storage_errors("index creation"):
        database["user"].create_index([("email", ASCENDING)], unique=True)
        database["cart"].create_index([("user_id", ASCENDING)], unique=True)


db = connect(get_settings())
