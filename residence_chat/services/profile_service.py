from typing import Dict, Any, Optional
import logging

from ..core.config import settings
from ..database.database_service import database_service
from ..database.collections import COLLECTIONS
from ..models.user import UserProfile

logger = logging.getLogger(__name__)


def is_staff_role(role: Optional[str]) -> bool:
    return role in settings.STAFF_ROLES


class ProfileService:
    """Read-only view over the user profile directory"""

    def __init__(self, db=None):
        self.db = db or database_service

    async def get(self, user_id: str) -> Optional[UserProfile]:
        """Return {first_name, last_name, role} for a user, or None when unknown"""
        success, profile_data, error = await self.db.get_document(COLLECTIONS['users'], user_id)
        if not success or not profile_data:
            logger.debug(f"Profile {user_id} unavailable: {error}")
            return None
        return UserProfile(**self._normalize(profile_data))

    @staticmethod
    def _normalize(profile_data: Dict[str, Any]) -> Dict[str, Any]:
        # Profiles written by the web client use camelCase keys
        return {
            'id': profile_data.get('id'),
            'first_name': profile_data.get('first_name') or profile_data.get('firstName') or '',
            'last_name': profile_data.get('last_name') or profile_data.get('lastName') or '',
            'email': profile_data.get('email'),
            'role': profile_data.get('role') or 'resident',
        }

    async def is_staff(self, user_id: str) -> bool:
        if user_id == settings.STAFF_SENTINEL_ID:
            return True
        profile = await self.get(user_id)
        return profile is not None and is_staff_role(profile.role)

    async def display_name(self, user_id: str, fallback: Optional[str] = None) -> str:
        """
        Name shown next to community posts.

        Falls back to the auth display name, then to "Administration" for
        management roles, then to "Utilisateur".
        """
        profile = await self.get(user_id)
        if profile and profile.first_name and profile.last_name:
            return profile.full_name
        if fallback:
            return fallback
        if profile and profile.role in settings.ADMINISTRATION_ROLES:
            return "Administration"
        return "Utilisateur"


# Singleton instance
_profile_service = None

def get_profile_service() -> ProfileService:
    """Get or create ProfileService singleton"""
    global _profile_service
    if _profile_service is None:
        _profile_service = ProfileService()
    return _profile_service
