from firebase_admin import firestore
import logging

from ..core.firebase_init import initialize_firebase, is_firebase_available

logger = logging.getLogger(__name__)

_firestore_client = None

def get_firestore_client():
    """Get the Firestore client, initializing Firebase on first use"""
    global _firestore_client

    if _firestore_client is None:
        if not is_firebase_available() and not initialize_firebase():
            raise RuntimeError("Firebase initialization failed - Firestore not available")
        _firestore_client = firestore.client()
        logger.info("✅ Firestore client ready")

    return _firestore_client
