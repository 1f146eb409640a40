from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from .firebase_auth import firebase_auth
from ..services.profile_service import is_staff_role
import logging

security = HTTPBearer()
logger = logging.getLogger(__name__)

async def get_current_user(credentials: HTTPAuthorizationCredentials = Depends(security)):
    """
    Verify Firebase authentication token and return user data.
    Raises 401 if token is invalid.
    """
    try:
        token = credentials.credentials
        user_data = await firebase_auth.verify_token(token)

        if not user_data:
            logger.warning("[Auth] Token verification failed - invalid token")
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid authentication credentials",
                headers={"WWW-Authenticate": "Bearer"},
            )

        logger.info(f"[Auth] ✅ Authenticated user: {user_data.get('uid')} with role: {user_data.get('role')}")

        return user_data
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"[Auth] ❌ Authentication error: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Authentication failed: {str(e)}",
            headers={"WWW-Authenticate": "Bearer"},
        )

def is_staff_user(current_user: dict) -> bool:
    return is_staff_role(current_user.get("role"))
