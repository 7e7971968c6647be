"""Firebase Admin SDK initialization (singleton)."""

import logging
import os
from typing import Optional

import firebase_admin
from firebase_admin import credentials, storage

logger = logging.getLogger(__name__)

_app: Optional[firebase_admin.App] = None


def init_firebase(bucket_name: str) -> firebase_admin.App:
    """Initialize Firebase Admin SDK with a default storage bucket if not already initialized."""
    global _app
    if _app is not None:
        return _app

    options = {"storageBucket": bucket_name}
    try:
        # Use default credentials (GCP environment) or a service account key file.
        cred_path = os.getenv("GOOGLE_APPLICATION_CREDENTIALS")
        if cred_path:
            cred = credentials.Certificate(cred_path)
            _app = firebase_admin.initialize_app(cred, options=options)
        else:
            # In Cloud Run / GCE, default credentials are available automatically.
            _app = firebase_admin.initialize_app(options=options)
        logger.info("Firebase Admin SDK initialized", extra={"bucket": bucket_name})
    except Exception as e:
        logger.error(f"Firebase Admin SDK init failed: {e}")
        raise
    return _app


def get_storage_bucket(bucket_name: str):
    """Return the Cloud Storage bucket, initializing Firebase if needed."""
    app = init_firebase(bucket_name)
    return storage.bucket(name=bucket_name, app=app)
