"""
Unread tracking rules for conversations.

``unread_count`` behaves as a flag: any send sets it to 1, and opening the
conversation clears it only for the side that did not send last. A side is
either the resident or the staff pool, so a reply from one staff member is
not cleared by a colleague opening the thread.
"""

from datetime import datetime
from typing import Any, Dict, Iterable, Optional

from ..models.chat_models import Conversation


def summary_after_send(sender_id: str, preview: str, sent_at: datetime) -> Dict[str, Any]:
    """Fields written to the conversation once a message is appended"""
    return {
        'last_message': preview,
        'last_sender_id': sender_id,
        'last_message_time': sent_at,
        'unread_count': 1,
    }


def _sent_by_other_side(conversation: Conversation, participant_id: str, teammates: Iterable[str]) -> bool:
    sender_id = conversation.last_sender_id
    return sender_id != participant_id and sender_id not in teammates


def should_reset(conversation: Conversation, reader_id: str, teammates: Iterable[str] = ()) -> bool:
    """``teammates`` are ids on the reader's side other than the reader"""
    return conversation.unread_count > 0 and _sent_by_other_side(conversation, reader_id, teammates)


def summary_after_read() -> Dict[str, Any]:
    return {'unread_count': 0}


def has_unread_for(conversation: Conversation, participant_id: str, teammates: Iterable[str] = ()) -> bool:
    """Whether the conversation contributes to this participant's badge"""
    return conversation.unread_count > 0 and _sent_by_other_side(conversation, participant_id, teammates)


def total_unread(conversations: Iterable[Conversation], participant_id: str, teammates: Iterable[str] = ()) -> int:
    teammates = set(teammates)
    return sum(
        conversation.unread_count
        for conversation in conversations
        if has_unread_for(conversation, participant_id, teammates)
    )


def make_preview(content: str, max_length: int, media_label: Optional[str] = None) -> str:
    if media_label:
        return media_label
    return content[:max_length] + "..." if len(content) > max_length else content
