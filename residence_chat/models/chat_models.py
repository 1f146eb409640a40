from pydantic import BaseModel, Field, model_validator
from typing import Optional, List
from datetime import datetime
from enum import Enum


class MediaType(str, Enum):
    IMAGE = "image"
    VIDEO = "video"


def _check_media_pair(media_url: Optional[str], media_type: Optional[MediaType]):
    if (media_url is None) != (media_type is None):
        raise ValueError("media_url and media_type must be set together")


# Conversation Model (one shared inbox per resident)
class Conversation(BaseModel):
    id: Optional[str] = None
    participants: List[str]  # [resident_id, staff_id or sentinel]
    last_message: str  # Preview only, never a media URL
    last_sender_id: Optional[str] = None
    last_message_time: Optional[datetime] = None
    unread_count: int = Field(default=0, ge=0)  # 0 or 1, see unread_tracker
    created_at: Optional[datetime] = None
    counterpart_name: Optional[str] = None  # Filled for staff listings only

    def other_participant(self, user_id: str) -> Optional[str]:
        for participant_id in self.participants:
            if participant_id != user_id:
                return participant_id
        return None


# Message Model (child of exactly one conversation)
class Message(BaseModel):
    id: Optional[str] = None
    conversation_id: str
    sender_id: str
    content: str
    media_url: Optional[str] = None
    media_type: Optional[MediaType] = None
    read: bool = Field(default=False)  # Written once; the conversation counter is authoritative
    created_at: datetime
    sequence: int  # Insertion order, breaks created_at ties

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def media_pairing(self):
        _check_media_pair(self.media_url, self.media_type)
        return self


# Community feed entry (no parent, no read state)
class CommunityMessage(BaseModel):
    id: Optional[str] = None
    sender_id: str
    sender_name: str  # Captured at post time
    content: str
    media_url: Optional[str] = None
    media_type: Optional[MediaType] = None
    created_at: datetime
    sequence: int

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def media_pairing(self):
        _check_media_pair(self.media_url, self.media_type)
        return self


# ===== Request Models =====

class OpenConversationRequest(BaseModel):
    resident_id: Optional[str] = Field(default=None, description="Resident to open the inbox for (staff only)")

class SendMessageRequest(BaseModel):
    content: str = Field(..., min_length=1, description="Message text")

class CommunityPostRequest(BaseModel):
    content: str = Field(..., min_length=1, description="Post text")
