import json
import logging
import os
from functools import lru_cache

import firebase_admin
from fastapi import HTTPException, status
from firebase_admin import auth as firebase_auth
from firebase_admin import credentials, firestore

from core.config import FIREBASE_STORAGE_BUCKET

logger = logging.getLogger(__name__)


def initialize_firebase() -> firebase_admin.App:
    """Initialize Firebase Admin SDK with production-ready credential handling"""
    try:
        return firebase_admin.get_app()
    except ValueError:
        pass

    options = {"storageBucket": FIREBASE_STORAGE_BUCKET}

    # Method 1: Service Account Key from Environment Variable (Recommended for production)
    service_account_key_json = os.getenv("FIREBASE_SERVICE_ACCOUNT_KEY")
    if service_account_key_json:
        try:
            service_account_info = json.loads(service_account_key_json)
            app = firebase_admin.initialize_app(
                credentials.Certificate(service_account_info), options
            )
            logger.info("Firebase Admin SDK initialized with service account key from environment.")
            return app
        except (json.JSONDecodeError, ValueError) as e:
            logger.error(f"Error parsing FIREBASE_SERVICE_ACCOUNT_KEY: {e}")

    # Method 2: Service Account Key File (for local development only)
    service_account_key_path = os.getenv("FIREBASE_SERVICE_ACCOUNT_KEY_PATH")
    if service_account_key_path and os.path.exists(service_account_key_path):
        app = firebase_admin.initialize_app(
            credentials.Certificate(service_account_key_path), options
        )
        logger.info("Firebase Admin SDK initialized with service account key file.")
        return app

    # Method 3: GOOGLE_APPLICATION_CREDENTIALS or Application Default Credentials
    app = firebase_admin.initialize_app(options=options)
    if os.getenv("GOOGLE_APPLICATION_CREDENTIALS"):
        logger.info("Firebase Admin SDK initialized with GOOGLE_APPLICATION_CREDENTIALS.")
    else:
        logger.warning("Firebase Admin SDK initialized with default Application Default Credentials.")
    return app


# Firestore client; created on first use so importing the app never needs credentials
@lru_cache(maxsize=1)
def firestore_client():
    initialize_firebase()
    return firestore.client()


# Request dependency: a Firebase setup failure becomes a 503 instead of a crash
def get_firestore():
    try:
        return firestore_client()
    except Exception as e:
        logger.error(f"Firestore client unavailable: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Firestore is unavailable.",
        )


def verify_id_token(token: str) -> dict:
    initialize_firebase()
    return firebase_auth.verify_id_token(token)
