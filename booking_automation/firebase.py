"""
Firebase Admin SDK setup
Initialises the default app once and hands out the async Firestore client
"""

import logging

import firebase_admin
from firebase_admin import credentials, firestore_async

from .config import FIREBASE_CREDENTIALS_PATH, FIREBASE_PROJECT_ID

logger = logging.getLogger(__name__)


def get_firebase_app() -> firebase_admin.App:
    """Return the default Firebase app, initialising it on first use"""
    try:
        return firebase_admin.get_app()
    except ValueError:
        pass

    options = {"projectId": FIREBASE_PROJECT_ID} if FIREBASE_PROJECT_ID else None

    if FIREBASE_CREDENTIALS_PATH:
        cred = credentials.Certificate(FIREBASE_CREDENTIALS_PATH)
        app = firebase_admin.initialize_app(cred, options)
        logger.info("Firebase Admin initialized with service account")
        return app

    try:
        cred = credentials.ApplicationDefault()
        app = firebase_admin.initialize_app(cred, options)
        logger.info("Firebase Admin initialized with default credentials")
    except Exception as e:
        # Emulators and some hosted runtimes work without explicit credentials
        logger.warning(f"⚠️ Default credentials unavailable ({e}), using project ID only")
        app = firebase_admin.initialize_app(options=options)
    return app


def get_firestore_client():
    """Async Firestore client bound to the default app"""
    return firestore_async.client(get_firebase_app())
