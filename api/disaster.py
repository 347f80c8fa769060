"""
System-wide disaster alerts.

Creating an alert deactivates every earlier one and then inserts the new one
as active. The two writes are not atomic, so two admins creating alerts at
the same moment can both end up active; readers take the newest.

Matching donors are emailed on a small thread pool. Each send is isolated:
one failure is logged and the rest carry on. The alert counts as created
however many notifications got through.
"""
import logging
from concurrent.futures import ThreadPoolExecutor

from django.conf import settings
from pymongo import DESCENDING
from rest_framework.exceptions import ValidationError

from . import mailer
from .constants import BLOOD_GROUPS
from .db import now, serialize_doc
from .firebase_config import send_push_multicast

logger = logging.getLogger(__name__)

MAX_BROADCAST_RECIPIENTS = 50


def find_eligible_donors(db, blood_groups, limit=MAX_BROADCAST_RECIPIENTS):
    cursor = db.users.find(
        {
            "role": "donor",
            "isAvailable": True,
            "bloodGroup": {"$in": list(blood_groups or [])},
        },
        {"email": 1, "name": 1, "bloodGroup": 1, "fcmToken": 1},
    )
    return list(cursor.limit(limit))


def _notify_donor(donor, alert):
    try:
        return mailer.send_disaster_alert(donor, alert)
    except Exception as e:
        logger.error("Failed to send disaster alert to %s: %s", donor.get('email'), e)
        return False


def broadcast_disaster_alert(db, alert):
    """Notify up to MAX_BROADCAST_RECIPIENTS matching donors. Returns how many were attempted."""
    donors = [d for d in find_eligible_donors(db, alert.get('requiredBloodGroups')) if d.get('email')]
    if donors:
        workers = max(1, min(settings.BROADCAST_WORKERS, len(donors)))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            # Leaving the block waits for every send
            list(pool.map(lambda donor: _notify_donor(donor, alert), donors))

    send_push_multicast(
        [d.get('fcmToken') for d in donors],
        f"URGENT: {alert.get('title')}",
        alert.get('description', ''),
        {"type": "DISASTER_ALERT", "alertId": str(alert.get('_id', ''))},
    )

    logger.info("BROADCAST SENT to %s donors for: %s", len(donors), alert.get('title'))
    return len(donors)


def _required_groups(value):
    if isinstance(value, str):
        value = [value]
    groups = list(value or [])
    unknown = [g for g in groups if g not in BLOOD_GROUPS]
    if unknown:
        raise ValidationError(f"Invalid blood group(s): {', '.join(map(str, unknown))}")
    return groups


def create_disaster_alert(db, data, creator_id):
    required_groups = _required_groups(data.get('requiredBloodGroups'))
    db.disaster_alerts.update_many({}, {"$set": {"isActive": False}})

    alert = {
        "title": data.get('title'),
        "description": data.get('description'),
        "location": data.get('location'),
        "radius": data.get('radius') or 10,
        "requiredBloodGroups": required_groups,
        "isActive": True,
        "createdBy": creator_id,
        "createdAt": now(),
    }
    result = db.disaster_alerts.insert_one(alert)
    alert['_id'] = result.inserted_id

    try:
        broadcast_disaster_alert(db, alert)
    except Exception:
        logger.exception("Broadcast error for alert %s", alert['_id'])

    return serialize_doc(dict(alert))


def resolve_disaster_alerts(db):
    result = db.disaster_alerts.update_many({}, {"$set": {"isActive": False}})
    return result.modified_count


def get_active_alert(db):
    alert = db.disaster_alerts.find_one({"isActive": True}, sort=[("createdAt", DESCENDING)])
    return serialize_doc(alert)
