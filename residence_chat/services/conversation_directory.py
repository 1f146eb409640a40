"""
Conversation Directory - one conversation per resident and staff pool.

Resolves "the conversation between a resident and staff" to a single id,
creating it on first use, and owns the rolling summary stored on each
conversation record.
"""

from typing import Any, Dict, List, Optional
import logging

from ..core.clock import server_clock
from ..core.config import settings, NEW_CONVERSATION_PREVIEW
from ..core.exceptions import ConversationNotFoundError, StoreUnavailableError
from ..database.database_service import database_service
from ..database.collections import COLLECTIONS
from ..models.chat_models import Conversation
from .profile_service import get_profile_service
from .subscription_service import subscription_hub, Subscription, CONVERSATIONS_TOPIC

logger = logging.getLogger(__name__)


def canonical_conversation_id(first_id: str, second_id: str) -> str:
    """Deterministic document id for an unordered participant pair"""
    return "__".join(sorted([first_id, second_id]))


def is_participant(conversation: Conversation, user_id: str, is_staff: bool = False) -> bool:
    """Direct membership, or a staff caller on a conversation held by the sentinel"""
    if user_id in conversation.participants:
        return True
    return is_staff and settings.STAFF_SENTINEL_ID in conversation.participants


async def has_access(conversation: Conversation, user_id: str, is_staff: bool, profiles) -> bool:
    """
    Whether a caller may read and write a conversation.

    Staff are interchangeable: a staff caller is admitted on any conversation
    whose staff side is the sentinel or another staff member, the same rule
    ``ConversationDirectory.find`` uses to resolve the staff pool.
    """
    if is_participant(conversation, user_id, is_staff):
        return True
    if not is_staff:
        return False
    for participant_id in conversation.participants:
        if participant_id != user_id and await profiles.is_staff(participant_id):
            return True
    return False


def sort_conversations(conversations: List[Conversation]) -> List[Conversation]:
    """Most recent activity first; conversations without a timestamp go last"""
    dated = [c for c in conversations if c.last_message_time is not None]
    undated = [c for c in conversations if c.last_message_time is None]
    return sorted(dated, key=lambda c: c.last_message_time, reverse=True) + undated


class ConversationListView:
    """Client-side conversation list kept current from summary updates"""

    def __init__(self, user_id: str, is_staff: bool):
        self.user_id = user_id
        self.is_staff = is_staff
        self._conversations: Dict[str, Conversation] = {}

    def visible(self, conversation: Conversation) -> bool:
        return self.is_staff or self.user_id in conversation.participants

    def merge_snapshot(self, conversations: List[Conversation]):
        # Entries already present came from live updates and are newer
        for conversation in conversations:
            self._conversations.setdefault(conversation.id, conversation)

    def apply(self, conversation: Conversation) -> Optional[List[Conversation]]:
        if not self.visible(conversation):
            return None
        self._conversations[conversation.id] = conversation
        return self.snapshot()

    def snapshot(self) -> List[Conversation]:
        return sort_conversations(list(self._conversations.values()))


class ConversationDirectory:
    """Lookup, creation and summary updates for conversations"""

    def __init__(self, db=None, profiles=None, hub=None, clock=None, canonical_ids: Optional[bool] = None):
        self.db = db or database_service
        self.profiles = profiles or get_profile_service()
        self.hub = hub or subscription_hub
        self.clock = clock or server_clock
        self.canonical_ids = settings.CANONICAL_CONVERSATION_IDS if canonical_ids is None else canonical_ids
        self.collection = COLLECTIONS['conversations']

    # ===== Lookup =====

    async def get(self, conversation_id: str) -> Conversation:
        success, data, error = await self.db.get_document(self.collection, conversation_id)
        if not success or not data:
            raise ConversationNotFoundError(conversation_id)
        return Conversation(**data)

    async def find_or_create(self, requester_id: str, counterpart_id: str) -> str:
        """Return the id of the requester's conversation with the counterpart, creating it if absent"""
        conversation = await self.find_or_create_conversation(requester_id, counterpart_id)
        return conversation.id

    async def find_or_create_conversation(self, requester_id: str, counterpart_id: str) -> Conversation:
        if self.canonical_ids:
            return await self._create_canonical(requester_id, counterpart_id)

        existing = await self.find(requester_id, counterpart_id)
        if existing is not None:
            return existing

        # Lookup-then-create: concurrent callers may both get here
        return await self._create(requester_id, counterpart_id)

    async def find(self, requester_id: str, counterpart_id: str) -> Optional[Conversation]:
        success, documents, error = await self.db.query_documents(
            self.collection,
            filters=[("participants", "array_contains", requester_id)],
        )
        if not success:
            logger.error(f"Error looking up conversations for {requester_id}: {error}")
            raise StoreUnavailableError(f"Conversation lookup failed: {error}")

        counterpart_is_staff = None
        for data in documents:
            conversation = Conversation(**data)
            other_id = conversation.other_participant(requester_id)
            if other_id == counterpart_id:
                return conversation
            if other_id is None:
                continue
            # Any staff member stands in for the staff pool
            if counterpart_is_staff is None:
                counterpart_is_staff = await self.profiles.is_staff(counterpart_id)
            if counterpart_is_staff and await self.profiles.is_staff(other_id):
                return conversation
        return None

    # ===== Creation =====

    def _new_conversation_data(self, requester_id: str, counterpart_id: str) -> Dict[str, Any]:
        now = self.clock.now()
        return {
            'participants': [requester_id, counterpart_id],
            'last_message': NEW_CONVERSATION_PREVIEW,
            'last_sender_id': None,
            'last_message_time': now,
            'unread_count': 0,
            'created_at': now,
        }

    async def _create(self, requester_id: str, counterpart_id: str) -> Conversation:
        data = self._new_conversation_data(requester_id, counterpart_id)
        success, conversation_id, error = await self.db.create_document(self.collection, data)
        if not success:
            logger.error(f"Error creating conversation for {requester_id}: {error}")
            raise StoreUnavailableError(f"Conversation creation failed: {error}")

        conversation = Conversation(id=conversation_id, **data)
        logger.info(f"Created conversation {conversation_id} between {requester_id} and {counterpart_id}")
        self.hub.publish(CONVERSATIONS_TOPIC, conversation)
        return conversation

    async def _create_canonical(self, requester_id: str, counterpart_id: str) -> Conversation:
        conversation_id = canonical_conversation_id(requester_id, counterpart_id)
        data = self._new_conversation_data(requester_id, counterpart_id)
        success, stored, error = await self.db.create_document_if_absent(self.collection, conversation_id, data)
        if not success or not stored:
            logger.error(f"Error creating conversation {conversation_id}: {error}")
            raise StoreUnavailableError(f"Conversation creation failed: {error}")

        conversation = Conversation(**stored)
        if conversation.created_at == data['created_at']:
            logger.info(f"Created conversation {conversation_id} between {requester_id} and {counterpart_id}")
            self.hub.publish(CONVERSATIONS_TOPIC, conversation)
        return conversation

    # ===== Listing =====

    async def list_for(self, user_id: str, is_staff: bool) -> List[Conversation]:
        """Staff see every conversation, residents only their own"""
        filters = None if is_staff else [("participants", "array_contains", user_id)]
        success, documents, error = await self.db.query_documents(self.collection, filters=filters)
        if not success:
            logger.error(f"Error listing conversations for {user_id}: {error}")
            raise StoreUnavailableError(f"Conversation listing failed: {error}")
        return sort_conversations([Conversation(**data) for data in documents])

    async def watch_for(self, user_id: str, is_staff: bool, enrich=None) -> Subscription:
        """
        Live conversation list.

        The subscription first yields the current sorted list, then a freshly
        sorted list after every summary change visible to the user. ``enrich``
        is awaited on each list as it is read.
        """
        view = ConversationListView(user_id, is_staff)
        subscription = self.hub.subscribe(CONVERSATIONS_TOPIC, transform=view.apply, enrich=enrich)
        try:
            view.merge_snapshot(await self.list_for(user_id, is_staff))
        except Exception:
            subscription.close()
            raise
        subscription.prime([view.snapshot()], discard_pending=True)
        return subscription

    # ===== Summary =====

    async def update_summary(self, conversation: Conversation, fields: Dict[str, Any]) -> Conversation:
        success, error = await self.db.update_document(self.collection, conversation.id, fields)
        if not success:
            raise StoreUnavailableError(f"Conversation update failed: {error}")

        updated = conversation.model_copy(update=fields)
        self.hub.publish(CONVERSATIONS_TOPIC, updated)
        return updated

    async def has_access(self, conversation: Conversation, user_id: str, is_staff: bool = False) -> bool:
        return await has_access(conversation, user_id, is_staff, self.profiles)


# Singleton instance
_conversation_directory = None

def get_conversation_directory() -> ConversationDirectory:
    """Get or create ConversationDirectory singleton"""
    global _conversation_directory
    if _conversation_directory is None:
        _conversation_directory = ConversationDirectory()
    return _conversation_directory
