"""
Messaging error taxonomy.

Every error raised by the chat and community services derives from
MessagingError so routers can map them to HTTP responses in one place.
"""


class MessagingError(Exception):
    """Base class for messaging failures"""

    status_code = 500


class ConversationNotFoundError(MessagingError, LookupError):
    status_code = 404

    def __init__(self, conversation_id: str):
        super().__init__(f"Conversation {conversation_id} not found")
        self.conversation_id = conversation_id


class UnauthorizedSenderError(MessagingError, PermissionError):
    """Caller is not one of the conversation's two participants"""

    status_code = 403

    def __init__(self, conversation_id: str, user_id: str):
        super().__init__(f"User {user_id} is not a participant of conversation {conversation_id}")
        self.conversation_id = conversation_id
        self.user_id = user_id


class InvalidMessageError(MessagingError, ValueError):
    status_code = 400


class AttachmentUploadError(MessagingError):
    status_code = 502


class StoreUnavailableError(MessagingError):
    """The backing document store rejected or failed an operation"""

    status_code = 503
