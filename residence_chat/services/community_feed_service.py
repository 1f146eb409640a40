"""
Community Feed Service - the shared residents' discussion.

A single append-only stream every authenticated user can read and post to.
Readers only ever see a bounded window of the newest posts. Sender names are
copied onto each post when it is written.
"""

from typing import List, Optional
import logging

from ..core.clock import server_clock
from ..core.config import settings, MEDIA_PREVIEW
from ..core.exceptions import InvalidMessageError, StoreUnavailableError
from ..database.database_service import database_service
from ..database.collections import COLLECTIONS
from ..models.chat_models import CommunityMessage, MediaType
from .attachment_service import get_attachment_service
from .subscription_service import subscription_hub, Subscription, COMMUNITY_TOPIC

logger = logging.getLogger(__name__)


class CommunityWindow:
    """Newest ``limit`` posts in chronological order"""

    def __init__(self, limit: int):
        self.limit = limit
        self._posts: List[CommunityMessage] = []

    def load(self, posts: List[CommunityMessage]):
        known = {post.id for post in self._posts}
        self._posts = [post for post in posts if post.id not in known] + self._posts
        self._trim()

    def apply(self, post: CommunityMessage) -> List[CommunityMessage]:
        if any(existing.id == post.id for existing in self._posts):
            return self.snapshot()
        self._posts.append(post)
        self._trim()
        return self.snapshot()

    def _trim(self):
        self._posts.sort(key=lambda p: (p.created_at, p.sequence))
        if len(self._posts) > self.limit:
            self._posts = self._posts[-self.limit:]

    def snapshot(self) -> List[CommunityMessage]:
        return list(self._posts)


class CommunityFeedService:
    def __init__(self, db=None, hub=None, clock=None, attachments=None):
        self.db = db or database_service
        self.hub = hub or subscription_hub
        self.clock = clock or server_clock
        self.attachments = attachments or get_attachment_service()
        self.collection = COLLECTIONS['community_messages']

    async def post(
        self,
        sender_id: str,
        sender_name: str,
        content: str,
        media_url: Optional[str] = None,
        media_type: Optional[MediaType] = None,
    ) -> CommunityMessage:
        """Append a post; ``sender_name`` is stored as given"""
        content = (content or "").strip()
        if not content:
            raise InvalidMessageError("Message content cannot be empty")
        if (media_url is None) != (media_type is None):
            raise InvalidMessageError("media_url and media_type must be set together")

        created_at, sequence = self.clock.stamp()
        post_data = {
            'sender_id': sender_id,
            'sender_name': sender_name,
            'content': content,
            'created_at': created_at,
            'sequence': sequence,
        }
        if media_url is not None:
            post_data['media_url'] = media_url
            post_data['media_type'] = MediaType(media_type).value

        success, post_id, error = await self.db.create_document(self.collection, post_data)
        if not success:
            logger.error(f"Error publishing community post by {sender_id}: {error}")
            raise StoreUnavailableError(f"Community post failed: {error}")

        post = CommunityMessage(id=post_id, **post_data)
        self.hub.publish(COMMUNITY_TOPIC, post)
        logger.info(f"Community post {post_id} published by {sender_id}")
        return post

    async def post_media(
        self,
        sender_id: str,
        sender_name: str,
        filename: str,
        data: bytes,
        content_type: Optional[str] = None,
    ) -> CommunityMessage:
        """Upload an image or video, then post it with a glyph placeholder as content"""
        uploaded = await self.attachments.upload(
            filename,
            data,
            content_type,
            folder="community",
            uploaded_by=sender_id
        )
        media_type = MediaType(uploaded['media_type'])
        return await self.post(
            sender_id,
            sender_name,
            MEDIA_PREVIEW[media_type.value],
            media_url=uploaded['url'],
            media_type=media_type
        )

    async def recent(self, limit: Optional[int] = None) -> List[CommunityMessage]:
        """Newest ``limit`` posts, oldest first"""
        limit = limit or settings.COMMUNITY_FEED_LIMIT
        success, documents, error = await self.db.query_documents(
            self.collection,
            order_by=[("created_at", "desc")],
            limit=limit
        )
        if not success:
            logger.error(f"Error reading community feed: {error}")
            raise StoreUnavailableError(f"Community feed read failed: {error}")

        posts = [CommunityMessage(**data) for data in documents]
        return sorted(posts, key=lambda p: (p.created_at, p.sequence))

    async def stream_recent(self, limit: Optional[int] = None) -> Subscription:
        """
        Live window over the feed.

        Yields the current window (a list, oldest first) and then the updated
        window after every new post.
        """
        window = CommunityWindow(limit or settings.COMMUNITY_FEED_LIMIT)
        subscription = self.hub.subscribe(COMMUNITY_TOPIC, transform=window.apply)
        try:
            window.load(await self.recent(window.limit))
        except Exception:
            subscription.close()
            raise
        subscription.prime([window.snapshot()], discard_pending=True)
        return subscription


# Singleton instance
_community_feed_service = None

def get_community_feed_service() -> CommunityFeedService:
    """Get or create CommunityFeedService singleton"""
    global _community_feed_service
    if _community_feed_service is None:
        _community_feed_service = CommunityFeedService()
    return _community_feed_service
