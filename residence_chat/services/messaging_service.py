"""
Messaging Service - direct resident/staff chat.

Orchestrates the conversation directory, the message log and the unread
rules behind the chat screens of both residents and staff.
"""

from datetime import datetime
from typing import Dict, List, Optional, Set
import logging

from ..core.config import settings, MEDIA_MESSAGE_CONTENT, MEDIA_PREVIEW
from ..core.exceptions import InvalidMessageError, UnauthorizedSenderError
from ..models.chat_models import Conversation, MediaType, Message
from .attachment_service import get_attachment_service
from .conversation_directory import get_conversation_directory
from .message_log import get_message_log
from .profile_service import get_profile_service, is_staff_role
from .subscription_service import Subscription
from . import unread_tracker

logger = logging.getLogger(__name__)


def _matches(conversation: Conversation, user_id: str, needle: str) -> bool:
    if needle in (conversation.counterpart_name or "").lower():
        return True
    return any(
        needle in p.lower()
        for p in conversation.participants
        if p not in (user_id, settings.STAFF_SENTINEL_ID)
    )


class MessagingService:
    """Service for direct conversations between residents and staff"""

    def __init__(self, directory=None, log=None, attachments=None, profiles=None):
        self.directory = directory or get_conversation_directory()
        self.log = log or get_message_log()
        self.attachments = attachments or get_attachment_service()
        self.profiles = profiles or get_profile_service()

    async def _is_staff(self, user_id: str, role: Optional[str] = None) -> bool:
        if user_id == settings.STAFF_SENTINEL_ID:
            return True
        if role is not None:
            return is_staff_role(role)
        return await self.profiles.is_staff(user_id)

    # ===== Conversations =====

    async def start_conversation(self, resident_id: str) -> Conversation:
        """Resident's shared inbox with the staff pool, created on first use"""
        return await self.directory.find_or_create_conversation(resident_id, settings.STAFF_SENTINEL_ID)

    async def open_conversation(self, caller_id: str, caller_role: Optional[str], resident_id: Optional[str] = None) -> Conversation:
        """
        Entry point for both chat screens.

        Residents always land in their own inbox; staff open the inbox of the
        resident they picked, which is the same conversation the resident sees.
        """
        if not await self._is_staff(caller_id, caller_role):
            return await self.start_conversation(caller_id)
        if not resident_id:
            raise InvalidMessageError("resident_id is required to open a conversation")
        return await self.start_conversation(resident_id)

    async def get_conversation_for(self, conversation_id: str, user_id: str, role: Optional[str] = None) -> Conversation:
        """Load a conversation the caller takes part in"""
        conversation = await self.directory.get(conversation_id)
        if not await self.directory.has_access(conversation, user_id, await self._is_staff(user_id, role)):
            raise UnauthorizedSenderError(conversation_id, user_id)
        return conversation

    async def _with_counterpart_names(
        self,
        conversations: List[Conversation],
        user_id: str,
        names: Dict[str, Optional[str]],
    ) -> List[Conversation]:
        """Copy each conversation with the resident's name, ``names`` caches lookups"""
        hydrated = []
        for conversation in conversations:
            other_id = next(
                (p for p in conversation.participants if p not in (user_id, settings.STAFF_SENTINEL_ID)),
                None
            )
            if other_id and other_id not in names:
                profile = await self.profiles.get(other_id)
                names[other_id] = profile.full_name if profile and profile.full_name else None
            hydrated.append(conversation.model_copy(update={'counterpart_name': names.get(other_id)}))
        return hydrated

    async def list_conversations(self, user_id: str, is_staff: bool, search: Optional[str] = None) -> List[Conversation]:
        """
        Conversations for the sidebar, staff listings carry the resident's name.

        ``search`` narrows a staff listing to residents whose name or id
        contains it, ignoring case.
        """
        conversations = await self.directory.list_for(user_id, is_staff)
        if not is_staff:
            return conversations

        hydrated = await self._with_counterpart_names(conversations, user_id, {})
        needle = (search or "").strip().lower()
        if not needle:
            return hydrated
        return [c for c in hydrated if _matches(c, user_id, needle)]

    async def watch_conversations(self, user_id: str, is_staff: bool) -> Subscription:
        if not is_staff:
            return await self.directory.watch_for(user_id, is_staff)

        names: Dict[str, Optional[str]] = {}

        async def hydrate(conversations: List[Conversation]) -> List[Conversation]:
            return await self._with_counterpart_names(conversations, user_id, names)

        return await self.directory.watch_for(user_id, is_staff, enrich=hydrate)

    async def _teammates(self, conversations: List[Conversation], user_id: str, is_staff: bool) -> Set[str]:
        """Last senders on the caller's side, other than the caller"""
        if not is_staff:
            return set()
        senders = {c.last_sender_id for c in conversations if c.last_sender_id and c.last_sender_id != user_id}
        return {sender_id for sender_id in senders if await self._is_staff(sender_id)}

    async def unread_total(self, user_id: str, is_staff: bool) -> int:
        conversations = await self.directory.list_for(user_id, is_staff)
        teammates = await self._teammates(conversations, user_id, is_staff)
        return unread_tracker.total_unread(conversations, user_id, teammates)

    # ===== Messages =====

    async def get_messages(
        self,
        conversation_id: str,
        user_id: str,
        role: Optional[str] = None,
        limit: Optional[int] = None,
        before: Optional[datetime] = None,
        before_sequence: Optional[int] = None,
    ) -> List[Message]:
        await self.get_conversation_for(conversation_id, user_id, role)
        return await self.log.list_messages(
            conversation_id,
            limit=limit,
            before=before,
            before_sequence=before_sequence
        )

    async def stream_messages(self, conversation_id: str, user_id: str, role: Optional[str] = None) -> Subscription:
        await self.get_conversation_for(conversation_id, user_id, role)
        return await self.log.stream_from(conversation_id)

    async def send(self, conversation_id: str, sender_id: str, content: str, sender_role: Optional[str] = None) -> Message:
        """
        Append a text message and refresh the conversation summary.

        The summary update is a separate step: if it fails the message is still
        stored and returned, and the sidebar catches up on the next send.
        """
        conversation = await self.directory.get(conversation_id)
        is_staff = await self._is_staff(sender_id, sender_role)
        content = (content or "").strip()
        preview = unread_tracker.make_preview(content, settings.MESSAGE_PREVIEW_LENGTH)
        return await self._deliver(conversation, sender_id, content, preview, is_staff)

    async def send_media(
        self,
        conversation_id: str,
        sender_id: str,
        filename: str,
        data: bytes,
        content_type: Optional[str] = None,
        sender_role: Optional[str] = None,
    ) -> Message:
        """Upload an attachment, then append it as a media message"""
        conversation = await self.directory.get(conversation_id)
        is_staff = await self._is_staff(sender_id, sender_role)
        if not await self.directory.has_access(conversation, sender_id, is_staff):
            raise UnauthorizedSenderError(conversation_id, sender_id)

        # Nothing is written if the upload fails
        uploaded = await self.attachments.upload(
            filename,
            data,
            content_type,
            folder=f"chat/{conversation_id}",
            uploaded_by=sender_id
        )
        media_type = MediaType(uploaded['media_type'])
        return await self._deliver(
            conversation,
            sender_id,
            MEDIA_MESSAGE_CONTENT[media_type.value],
            MEDIA_PREVIEW[media_type.value],
            is_staff,
            media_url=uploaded['url'],
            media_type=media_type
        )

    async def _deliver(
        self,
        conversation: Conversation,
        sender_id: str,
        content: str,
        preview: str,
        is_staff: bool,
        media_url: Optional[str] = None,
        media_type: Optional[MediaType] = None,
    ) -> Message:
        message = await self.log.append(
            conversation,
            sender_id,
            content,
            media_url=media_url,
            media_type=media_type,
            sender_is_staff=is_staff
        )

        try:
            await self.directory.update_summary(
                conversation,
                unread_tracker.summary_after_send(sender_id, preview, message.created_at)
            )
        except Exception as e:
            logger.warning(f"Message {message.id} stored but summary of {conversation.id} not updated: {str(e)}")

        return message

    async def mark_read(self, conversation_id: str, reader_id: str, reader_role: Optional[str] = None) -> bool:
        """
        Clear the unread flag when the other side opens the conversation.

        A reply from one staff member stays unread when a colleague opens the
        thread. Returns True when a write happened; calling it again is a no-op.
        """
        conversation = await self.directory.get(conversation_id)
        teammates = set()
        sender_id = conversation.last_sender_id
        if sender_id and sender_id != reader_id and await self._is_staff(reader_id, reader_role):
            if await self._is_staff(sender_id):
                teammates.add(sender_id)
        if not unread_tracker.should_reset(conversation, reader_id, teammates):
            return False

        await self.directory.update_summary(conversation, unread_tracker.summary_after_read())
        logger.info(f"Conversation {conversation_id} marked read by {reader_id}")
        return True


# Singleton instance
_messaging_service = None

def get_messaging_service() -> MessagingService:
    """Get or create MessagingService singleton"""
    global _messaging_service
    if _messaging_service is None:
        _messaging_service = MessagingService()
    return _messaging_service
