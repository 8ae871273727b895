# services/firebase.py
import os, json
import logging

import firebase_admin
from firebase_admin import credentials, firestore

from cinematch.config import Config

logger = logging.getLogger(__name__)

_db = None


def _resolve_cred():
    """
    Credential for Firebase Admin, in order of preference:
      1) FIREBASE_SERVICE_ACCOUNT_JSON, the whole service-account JSON in the env
      2) a service-account file (see Config.firebase_credentials_path)
      3) None, for the attached service account on Cloud Run / Functions
    """
    json_blob = os.getenv("FIREBASE_SERVICE_ACCOUNT_JSON")
    if json_blob:
        try:
            info = json.loads(json_blob)
        except ValueError as e:
            raise RuntimeError(f"Invalid FIREBASE_SERVICE_ACCOUNT_JSON: {e}") from e
        return credentials.Certificate(info)
    path = Config.firebase_credentials_path()
    if path:
        return credentials.Certificate(path)
    return None


def init_firebase_app():
    """Initialize the default Firebase Admin app once per process."""
    if firebase_admin._apps:
        return firebase_admin.get_app()
    cred = _resolve_cred()
    if cred is not None:
        logger.info("Initializing Firebase with service account credentials")
        app = firebase_admin.initialize_app(cred)
    else:
        logger.info("Initializing Firebase with default credentials")
        app = firebase_admin.initialize_app()
    logger.info("Firebase initialized successfully")
    return app


def get_db():
    global _db
    if _db is not None:
        return _db
    init_firebase_app()
    _db = firestore.client()
    return _db
