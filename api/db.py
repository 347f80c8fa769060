import datetime
import logging

from bson import ObjectId
from bson.errors import InvalidId
from django.conf import settings
from pymongo import ASCENDING, MongoClient

logger = logging.getLogger(__name__)

_client = None
_db = None


def get_db():
    """Return the shared database handle, connecting on first use."""
    global _client, _db
    if _db is None:
        _client = MongoClient(settings.MONGO_URI, serverSelectionTimeoutMS=settings.MONGO_TIMEOUT_MS)
        _db = _client[settings.MONGO_DB_NAME]
        ensure_indexes(_db)
        logger.info("Connected to MongoDB at %s, DB: %s", settings.MONGO_URI, settings.MONGO_DB_NAME)
    return _db


def set_db(db):
    """Swap the database handle (used by maintenance scripts and tests)."""
    global _db
    _db = db


def ensure_indexes(db):
    db.users.create_index([("email", ASCENDING)], unique=True)
    db.badges.create_index([("userId", ASCENDING), ("badgeType", ASCENDING)], unique=True)
    db.feedback.create_index([("appointment", ASCENDING)], unique=True)
    db.reminders.create_index([("status", ASCENDING), ("scheduledFor", ASCENDING)])
    db.reminders.create_index([("userId", ASCENDING), ("type", ASCENDING)])


def to_object_id(value):
    """ObjectId for a path/body id, or None when it is malformed."""
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        return None


def serialize_doc(doc):
    if not doc:
        return None
    doc['id'] = str(doc['_id'])
    del doc['_id']
    for secret in ('password', 'otp', 'otpExpiry'):
        doc.pop(secret, None)
    return doc


def now():
    return datetime.datetime.now(datetime.timezone.utc)


def as_utc(value):
    # MongoDB hands datetimes back naive, in UTC
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=datetime.timezone.utc)
    return value


def parse_date(value):
    """Parse an ISO date/datetime string from a request body into aware UTC."""
    if isinstance(value, datetime.datetime):
        return as_utc(value)
    if not value:
        return None
    try:
        parsed = datetime.datetime.fromisoformat(str(value).replace('Z', '+00:00'))
    except ValueError:
        return None
    return as_utc(parsed)
