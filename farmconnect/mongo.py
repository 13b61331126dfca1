# farmconnect/mongo.py
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from pymongo import MongoClient
from pymongo.database import Database

logger = logging.getLogger(__name__)


def is_mongo_enabled(config: Dict[str, Any]) -> bool:
    """
    Mongo is enabled only when DISABLE_MONGO is not set and a URI is configured.
    """
    if config.get("DISABLE_MONGO"):
        return False
    return bool(config.get("MONGO_URI"))


def init_mongo(config: Dict[str, Any], client: Optional[MongoClient] = None) -> Database:
    """
    Returns the default database named in MONGO_URI.
    MongoClient connects lazily, so this does not block on an unreachable server.
    """
    uri = config.get("MONGO_URI")
    if not uri:
        raise ValueError("MONGO_URI not set")

    client = client or MongoClient(uri, serverSelectionTimeoutMS=5000, tz_aware=True)
    db = client.get_database()
    logger.info("Mongo client initialized for database %s", db.name)
    return db
