# Collection Names
COLLECTIONS = {
    'users': 'users',
    'conversations': 'conversations',
    'conversation_messages': 'conversations/{conversation_id}/messages',
    'community_messages': 'community_messages',
}


def conversation_messages_path(conversation_id: str) -> str:
    """Path of the messages subcollection owned by one conversation"""
    return COLLECTIONS['conversation_messages'].format(conversation_id=conversation_id)


# Collection Structure Documentation
COLLECTION_SCHEMAS = {
    'users': {
        'fields': ['first_name', 'last_name', 'email', 'role'],
        'required': ['first_name', 'last_name', 'role'],
        'indexes': ['role']
    },
    'conversations': {
        'fields': ['participants', 'last_message', 'last_sender_id', 'last_message_time', 'unread_count', 'created_at'],
        'required': ['participants', 'last_message', 'unread_count', 'created_at'],
        'indexes': ['participants', 'last_message_time']
    },
    'conversation_messages': {
        'fields': ['conversation_id', 'sender_id', 'content', 'media_url', 'media_type', 'read', 'created_at', 'sequence'],
        'required': ['conversation_id', 'sender_id', 'content', 'read', 'created_at', 'sequence'],
        'indexes': ['created_at', 'sequence']
    },
    'community_messages': {
        'fields': ['sender_id', 'sender_name', 'content', 'media_url', 'media_type', 'created_at', 'sequence'],
        'required': ['sender_id', 'sender_name', 'content', 'created_at', 'sequence'],
        'indexes': ['created_at']
    },
}
