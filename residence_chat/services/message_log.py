"""
Message Log - append-only, ordered record of one conversation.

Messages live in the ``conversations/{id}/messages`` subcollection and are
ordered by (created_at, sequence). There is no update or delete path.
"""

from datetime import datetime
from typing import List, Optional
import logging

from ..core.clock import server_clock
from ..core.exceptions import InvalidMessageError, StoreUnavailableError, UnauthorizedSenderError
from ..database.database_service import database_service
from ..database.collections import conversation_messages_path
from ..models.chat_models import Conversation, MediaType, Message
from .conversation_directory import has_access
from .profile_service import get_profile_service
from .subscription_service import subscription_hub, Subscription, conversation_topic

logger = logging.getLogger(__name__)


def sort_messages(messages: List[Message]) -> List[Message]:
    return sorted(messages, key=lambda m: (m.created_at, m.sequence))


class MessageLog:
    def __init__(self, db=None, hub=None, clock=None, profiles=None):
        self.db = db or database_service
        self.hub = hub or subscription_hub
        self.clock = clock or server_clock
        self.profiles = profiles or get_profile_service()

    async def append(
        self,
        conversation: Conversation,
        sender_id: str,
        content: str,
        media_url: Optional[str] = None,
        media_type: Optional[MediaType] = None,
        sender_is_staff: bool = False,
    ) -> Message:
        """
        Append a message to a conversation's log.

        Raises:
            UnauthorizedSenderError: sender is not a participant
            InvalidMessageError: empty content or unpaired media fields
            StoreUnavailableError: the write failed, nothing was stored
        """
        if not await has_access(conversation, sender_id, sender_is_staff, self.profiles):
            logger.warning(f"Rejected message from {sender_id} in conversation {conversation.id}")
            raise UnauthorizedSenderError(conversation.id, sender_id)
        if not content or not content.strip():
            raise InvalidMessageError("Message content cannot be empty")
        if (media_url is None) != (media_type is None):
            raise InvalidMessageError("media_url and media_type must be set together")

        created_at, sequence = self.clock.stamp()
        message_data = {
            'conversation_id': conversation.id,
            'sender_id': sender_id,
            'content': content,
            'read': False,
            'created_at': created_at,
            'sequence': sequence,
        }
        if media_url is not None:
            message_data['media_url'] = media_url
            message_data['media_type'] = MediaType(media_type).value

        success, message_id, error = await self.db.create_document(
            conversation_messages_path(conversation.id),
            message_data
        )
        if not success:
            logger.error(f"Error appending message to {conversation.id}: {error}")
            raise StoreUnavailableError(f"Message append failed: {error}")

        message = Message(id=message_id, **message_data)
        self.hub.publish(conversation_topic(conversation.id), message)
        logger.info(f"Message {message_id} appended to conversation {conversation.id} by {sender_id}")
        return message

    async def list_messages(
        self,
        conversation_id: str,
        limit: Optional[int] = None,
        before: Optional[datetime] = None,
        before_sequence: Optional[int] = None,
    ) -> List[Message]:
        """
        Messages in ascending order.

        Without ``limit`` the whole history is returned. With it, the newest
        ``limit`` messages are returned, still oldest first, so callers can
        page backwards.

        ``before`` together with ``before_sequence`` is the (created_at,
        sequence) key of the oldest message already shown; only messages
        strictly older than it are returned, including those sharing its
        timestamp. ``before`` alone excludes its whole instant.
        """
        filters = None
        cursor = None
        if before is not None and before_sequence is not None:
            cursor = {'created_at': before, 'sequence': before_sequence}
        elif before is not None:
            filters = [("created_at", "<", before)]

        direction = "desc" if limit or before is not None else "asc"
        order_by = [("created_at", direction), ("sequence", direction)]

        success, documents, error = await self.db.query_documents(
            conversation_messages_path(conversation_id),
            filters=filters,
            order_by=order_by,
            limit=limit,
            start_after=cursor
        )
        if not success:
            logger.error(f"Error reading messages of {conversation_id}: {error}")
            raise StoreUnavailableError(f"Message read failed: {error}")

        return sort_messages([Message(**data) for data in documents])

    async def stream_from(self, conversation_id: str) -> Subscription:
        """
        Live ordered log of a conversation.

        Replays every stored message first, then yields each new one as it is
        appended. Subscribing again replays the full log again.
        """
        subscription = self.hub.subscribe(conversation_topic(conversation_id))
        try:
            history = await self.list_messages(conversation_id)
        except Exception:
            subscription.close()
            raise
        subscription.prime(history)
        return subscription


# Singleton instance
_message_log = None

def get_message_log() -> MessageLog:
    """Get or create MessageLog singleton"""
    global _message_log
    if _message_log is None:
        _message_log = MessageLog()
    return _message_log
