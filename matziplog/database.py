"""MongoDB connection handling and small document helpers.

The client is created once per application (see ``main.create_app``) and
stored on ``app.state``; nothing here keeps a module-level connection.
"""

import logging
from typing import Any, Dict, Optional

from bson import ObjectId
from bson.errors import InvalidId
from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.database import Database

from matziplog.config import Settings
from matziplog.errors import ValidationFailed

logger = logging.getLogger(__name__)

USERS = "user"
PHOTOS = "photo"
REPORTS = "report"


def connect(settings: Settings) -> MongoClient:
    """Create a client; pymongo connects lazily on first operation."""
    logger.info("Connecting to MongoDB database %r", settings.database_name)
    return MongoClient(settings.mongo_uri)


def get_database(client: MongoClient, settings: Settings) -> Database:
    return client[settings.database_name]


def ensure_indexes(db: Database) -> None:
    """Create the indexes the listing and lookup queries rely on."""
    db[USERS].create_index([("email", ASCENDING)], unique=True)
    db[USERS].create_index([("role", ASCENDING)])
    db[USERS].create_index([("created_at", DESCENDING)])

    db[PHOTOS].create_index([("owner", ASCENDING), ("created_at", DESCENDING)])
    db[PHOTOS].create_index([("is_public", ASCENDING), ("created_at", DESCENDING)])
    db[PHOTOS].create_index([("tags", ASCENDING)])

    db[REPORTS].create_index([("status", ASCENDING), ("created_at", DESCENDING)])
    db[REPORTS].create_index([("target_photo_id", ASCENDING)])
    logger.info("MongoDB indexes ensured")


def create_document(db: Database, collection: str, model: BaseModel) -> Dict[str, Any]:
    """Insert a schema model and return the stored document including _id."""
    doc = model.model_dump(by_alias=True)
    res = db[collection].insert_one(doc)
    doc["_id"] = res.inserted_id
    return doc


def to_obj_id(id_str: str) -> ObjectId:
    try:
        return ObjectId(id_str)
    except (InvalidId, TypeError):
        raise ValidationFailed("Invalid id")


def maybe_obj_id(id_str: Optional[str]) -> Optional[ObjectId]:
    if id_str is None:
        return None
    return to_obj_id(id_str)
