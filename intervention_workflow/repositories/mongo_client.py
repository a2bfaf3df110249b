"""MongoDB Client - Connection and Collection Management"""
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, Optional
from pydantic import BaseModel
from pymongo import MongoClient as PyMongoClient
from pymongo import ASCENDING, DESCENDING
from pymongo.collection import Collection
from pymongo.database import Database
from pymongo.errors import ConnectionFailure

from ..config.settings import settings
from ..utils.logger import get_logger

logger = get_logger(__name__)

# Global client instance
_client: Optional[PyMongoClient] = None
_database: Optional[Database] = None


def get_client() -> PyMongoClient:
    """Get or create MongoDB client"""
    global _client
    if _client is None:
        logger.info(f"Connecting to MongoDB: {settings.mongo_uri}")
        _client = PyMongoClient(
            settings.mongo_uri,
            tz_aware=True,
            serverSelectionTimeoutMS=5000,
            connectTimeoutMS=5000,
            socketTimeoutMS=30000,
        )
        try:
            _client.admin.command("ping")
            logger.info("MongoDB connection successful")
        except ConnectionFailure as e:
            logger.error(f"MongoDB connection failed: {e}")
            raise
    return _client


def get_database() -> Database:
    """Get the application database"""
    global _database
    if _database is None:
        client = get_client()
        _database = client[settings.mongo_db]
        logger.info(f"Using database: {settings.mongo_db}")
    return _database


def get_collection(name: str) -> Collection:
    """Get a collection from the database"""
    db = get_database()
    return db[name]


def close_connection() -> None:
    """Close MongoDB connection"""
    global _client, _database
    if _client is not None:
        _client.close()
        _client = None
        _database = None
        logger.info("MongoDB connection closed")


def _bson_value(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: _bson_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_bson_value(v) for v in value]
    return value


def to_document(model: BaseModel, id_value: Optional[str] = None) -> Dict[str, Any]:
    """
    Dump a model to a BSON-ready dict.

    Datetimes stay native so range queries and sorting keep working; enums are
    stored by value and calendar dates as ISO strings.
    """
    doc = _bson_value(model.model_dump())
    if id_value is not None:
        doc["_id"] = id_value
    return doc


def create_indexes() -> None:
    """Create all required indexes"""
    db = get_database()
    logger.info("Creating MongoDB indexes...")

    interventions = db["interventions"]
    interventions.create_index("intervention_id", unique=True)
    interventions.create_index([("team_id", ASCENDING), ("status", ASCENDING)])
    interventions.create_index([("status", ASCENDING), ("scheduled_date", ASCENDING)])
    interventions.create_index("pending_events.occurred_at")
    interventions.create_index("updated_at", background=True)

    assignments = db["intervention_assignments"]
    assignments.create_index("assignment_id", unique=True)
    assignments.create_index(
        [("intervention_id", ASCENDING), ("user_id", ASCENDING), ("role", ASCENDING)],
        unique=True
    )
    assignments.create_index("user_id")

    users = db["users"]
    users.create_index("user_id", unique=True)
    team_members = db["team_members"]
    team_members.create_index([("team_id", ASCENDING), ("user_id", ASCENDING)], unique=True)
    team_members.create_index([("team_id", ASCENDING), ("role", ASCENDING)])

    quotes = db["intervention_quotes"]
    quotes.create_index("quote_id", unique=True)
    quotes.create_index([("intervention_id", ASCENDING), ("status", ASCENDING)])
    quotes.create_index(
        "intervention_id",
        name="one_accepted_quote",
        unique=True,
        partialFilterExpression={"status": "accepted"}
    )

    time_slots = db["intervention_time_slots"]
    time_slots.create_index("slot_id", unique=True)
    time_slots.create_index([("intervention_id", ASCENDING), ("status", ASCENDING)])

    slot_responses = db["time_slot_responses"]
    slot_responses.create_index("response_id", unique=True)
    slot_responses.create_index([("slot_id", ASCENDING), ("user_id", ASCENDING)], unique=True)

    availabilities = db["user_availabilities"]
    availabilities.create_index("availability_id", unique=True)
    availabilities.create_index([("intervention_id", ASCENDING), ("user_id", ASCENDING)])

    notifications = db["notifications"]
    notifications.create_index("notification_id", unique=True)
    # Write-once per recipient, entity and dedup key
    notifications.create_index(
        [("user_id", ASCENDING), ("related_entity_id", ASCENDING), ("dedup_key", ASCENDING)],
        name="notification_dedup",
        unique=True
    )
    notifications.create_index(
        [("user_id", ASCENDING), ("read", ASCENDING), ("created_at", DESCENDING)],
        name="user_notifications"
    )
    notifications.create_index([("type", ASCENDING), ("related_entity_id", ASCENDING)])

    notification_outbox = db["notification_outbox"]
    notification_outbox.create_index("outbox_id", unique=True)
    notification_outbox.create_index(
        [("dedup_key", ASCENDING), ("channel", ASCENDING), ("recipient_user_id", ASCENDING)],
        name="outbox_dedup",
        unique=True
    )
    notification_outbox.create_index([("status", ASCENDING), ("next_retry_at", ASCENDING)])
    notification_outbox.create_index("intervention_id")
    notification_outbox.create_index("locked_until")

    audit_events = db["audit_events"]
    audit_events.create_index("audit_event_id", unique=True)
    audit_events.create_index([("intervention_id", ASCENDING), ("timestamp", DESCENDING)])
    audit_events.create_index("correlation_id")

    logger.info("MongoDB indexes created successfully")


def health_check() -> Dict[str, Any]:
    """Check MongoDB health"""
    try:
        client = get_client()
        client.admin.command("ping")
        return {
            "status": "healthy",
            "database": settings.mongo_db,
            "connection": "ok"
        }
    except Exception as e:
        logger.error(f"MongoDB health check failed: {e}")
        return {
            "status": "unhealthy",
            "database": settings.mongo_db,
            "error": str(e)
        }
