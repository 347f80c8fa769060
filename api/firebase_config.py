import json
import logging
import os
from pathlib import Path

import firebase_admin
from django.conf import settings
from firebase_admin import credentials, messaging

logger = logging.getLogger(__name__)

BASE_DIR = Path(__file__).resolve().parent.parent

# Local fallbacks for the service account key
possible_paths = [
    BASE_DIR / 'config' / 'serviceAccountKey.json',
    BASE_DIR / 'serviceAccountKey.json',
]


def initialize_firebase():
    if firebase_admin._apps:
        return
    try:
        # 1. FIREBASE_CREDENTIALS may hold the JSON itself or a path to it
        raw = settings.FIREBASE_CREDENTIALS
        if raw:
            if raw.lstrip().startswith('{'):
                cred = credentials.Certificate(json.loads(raw))
            else:
                cred = credentials.Certificate(raw)
            firebase_admin.initialize_app(cred)
            logger.info("Firebase Admin initialized from FIREBASE_CREDENTIALS")
            return

        # 2. Local file
        for path in possible_paths:
            if os.path.exists(path):
                firebase_admin.initialize_app(credentials.Certificate(str(path)))
                logger.info("Firebase Admin initialized with file: %s", path)
                return

        logger.warning("Firebase credentials not configured. Push notifications will not be sent.")
    except (ValueError, OSError) as e:
        logger.error("Failed to initialize Firebase: %s", e)


def send_push_multicast(tokens, title, body, data=None):
    """Best-effort FCM push. Returns how many devices accepted the message."""
    tokens = [t for t in tokens if t]
    if not tokens or not firebase_admin._apps:
        return 0
    try:
        message = messaging.MulticastMessage(
            notification=messaging.Notification(title=title, body=body),
            data={k: str(v) for k, v in (data or {}).items()},
            tokens=tokens,
        )
        response = messaging.send_each_for_multicast(message)
        logger.info("FCM broadcast: %s/%s sent", response.success_count, len(tokens))
        return response.success_count
    except Exception:
        logger.exception("Push error")
        return 0
