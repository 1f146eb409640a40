"""
Community Router - shared discussion feed for residents and staff
"""

from fastapi import APIRouter, HTTPException, Depends, Query, UploadFile, File
from typing import Optional
import logging

from ..auth.dependencies import get_current_user
from ..core.config import settings
from ..core.exceptions import MessagingError
from ..models.chat_models import CommunityPostRequest
from ..services.community_feed_service import get_community_feed_service
from ..services.profile_service import get_profile_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/community", tags=["community"])


async def _sender_name(current_user: dict) -> str:
    return await get_profile_service().display_name(
        current_user.get('uid'),
        fallback=current_user.get('name')
    )

@router.get("/messages")
async def get_recent_posts(
    limit: Optional[int] = Query(None, ge=1, le=200),
    compact: bool = Query(False, description="Use the smaller window of the dashboard widget"),
    current_user: dict = Depends(get_current_user)
):
    """Newest community posts, oldest first"""
    try:
        feed_service = get_community_feed_service()
        if limit is None and compact:
            limit = settings.COMMUNITY_FEED_COMPACT_LIMIT
        posts = await feed_service.recent(limit)

        return {
            "success": True,
            "data": posts,
            "count": len(posts)
        }

    except MessagingError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except Exception as e:
        logger.error(f"Error getting community posts: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))

@router.post("/messages")
async def create_post(
    request: CommunityPostRequest,
    current_user: dict = Depends(get_current_user)
):
    """Post to the community feed"""
    try:
        feed_service = get_community_feed_service()

        post = await feed_service.post(
            current_user.get('uid'),
            await _sender_name(current_user),
            request.content
        )

        return {
            "success": True,
            "data": post,
            "message": "Post published successfully"
        }

    except MessagingError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except Exception as e:
        logger.error(f"Error creating community post: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))

@router.post("/media")
async def create_media_post(
    file: UploadFile = File(...),
    current_user: dict = Depends(get_current_user)
):
    """Post an image or video to the community feed"""
    try:
        feed_service = get_community_feed_service()

        data = await file.read()
        post = await feed_service.post_media(
            current_user.get('uid'),
            await _sender_name(current_user),
            file.filename,
            data,
            content_type=file.content_type
        )

        return {
            "success": True,
            "data": post,
            "message": "Media posted successfully"
        }

    except MessagingError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except Exception as e:
        logger.error(f"Error creating community media post: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))
