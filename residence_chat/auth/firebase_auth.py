from firebase_admin import auth
import logging
from typing import Optional

from ..core.firebase_init import initialize_firebase, is_firebase_available
from ..database.database_service import database_service
from ..database.collections import COLLECTIONS

logger = logging.getLogger(__name__)


class FirebaseAuth:
    def _ensure_initialized(self):
        if not is_firebase_available():
            if not initialize_firebase():
                raise Exception("Firebase initialization failed - Auth not available")

    async def verify_token(self, token: str) -> Optional[dict]:
        """
        Verify a Firebase ID token.

        Returns the decoded claims, with ``role`` filled from the users
        collection when the token carries no role claim, or None when the
        token is invalid.
        """
        self._ensure_initialized()
        try:
            decoded_token = auth.verify_id_token(token)
        except Exception as e:
            logger.warning(f"Token verification failed: {e}")
            return None

        if not decoded_token.get('role'):
            success, profile, _ = await database_service.get_document(COLLECTIONS['users'], decoded_token['uid'])
            decoded_token['role'] = profile.get('role', 'resident') if success and profile else 'resident'
        return decoded_token


firebase_auth = FirebaseAuth()
