"""
Admin SDK bootstrap shared by Firestore, Storage and token verification.

Credentials come from the service account file when it exists, otherwise
from Application Default Credentials when the environment provides them
(``GOOGLE_APPLICATION_CREDENTIALS`` or ``FIREBASE_USE_APPLICATION_DEFAULT``).
"""

import firebase_admin
from firebase_admin import credentials
import logging
import os
from typing import Any, Dict, Optional

from .config import settings

logger = logging.getLogger(__name__)

_credential_source: Optional[str] = None


def _default_app() -> Optional[firebase_admin.App]:
    try:
        return firebase_admin.get_app()
    except ValueError:
        return None


def _load_credentials():
    """Return (credential, source label), or (None, None) when nothing is configured"""
    service_account_path = settings.FIREBASE_SERVICE_ACCOUNT_PATH
    if os.path.exists(service_account_path):
        return credentials.Certificate(service_account_path), service_account_path

    if os.getenv("GOOGLE_APPLICATION_CREDENTIALS") or settings.FIREBASE_USE_APPLICATION_DEFAULT:
        logger.info(f"No service account at {service_account_path}, using application default credentials")
        return credentials.ApplicationDefault(), "application_default"

    logger.warning(f"Firebase service account file not found at {service_account_path}")
    return None, None


def initialize_firebase() -> bool:
    """
    Initialize the default Firebase app once.
    Returns True when an app is available afterwards.
    """
    global _credential_source

    if _default_app() is not None:
        return True

    try:
        cred, source = _load_credentials()
        if cred is None:
            logger.warning("Firebase will not be available for this session.")
            return False

        firebase_admin.initialize_app(cred, {
            'projectId': settings.FIREBASE_PROJECT_ID,
            'storageBucket': settings.FIREBASE_STORAGE_BUCKET,
        })
        _credential_source = source
        logger.info(f"✅ Firebase initialized for project {settings.FIREBASE_PROJECT_ID}")
        return True

    except Exception as e:
        logger.error(f"❌ Firebase initialization failed: {e}")
        return False


def is_firebase_available() -> bool:
    return _default_app() is not None


def get_firebase_status() -> Dict[str, Any]:
    """Firebase status reported by ``/`` and ``/health``"""
    app = _default_app()
    return {
        "available": app is not None,
        "project_id": (app.project_id if app is not None else None) or settings.FIREBASE_PROJECT_ID,
        "storage_bucket": settings.FIREBASE_STORAGE_BUCKET,
        "credential_source": _credential_source,
    }
