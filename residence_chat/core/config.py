# residence_chat/core/config.py
import os
from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


def _env_list(name: str, default: str) -> list:
    return [item.strip() for item in os.getenv(name, default).split(",") if item.strip()]


class Settings:
    FIREBASE_PROJECT_ID: str = os.getenv("FIREBASE_PROJECT_ID", "residence-chat")
    FIREBASE_STORAGE_BUCKET: str = os.getenv("FIREBASE_STORAGE_BUCKET", "residence-chat.firebasestorage.app")
    FIREBASE_SERVICE_ACCOUNT_PATH: str = os.getenv(
        "FIREBASE_SERVICE_ACCOUNT_PATH",
        "firebase-service-account.json",
    )
    # Fall back to Application Default Credentials when the file is missing
    FIREBASE_USE_APPLICATION_DEFAULT: bool = _env_bool("FIREBASE_USE_APPLICATION_DEFAULT", "false")

    # Placeholder participant standing for the whole staff pool
    STAFF_SENTINEL_ID: str = os.getenv("STAFF_SENTINEL_ID", "admin")
    STAFF_ROLES: list = _env_list("STAFF_ROLES", "super_admin,syndic,gardien,technicien,comptable")
    # Roles whose community posts fall back to the "Administration" label
    ADMINISTRATION_ROLES: list = _env_list("ADMINISTRATION_ROLES", "super_admin,syndic")

    # When true, conversations are keyed by the sorted participant pair and
    # created with a conditional write instead of lookup-then-create.
    CANONICAL_CONVERSATION_IDS: bool = _env_bool("CANONICAL_CONVERSATION_IDS", "false")

    COMMUNITY_FEED_LIMIT: int = int(os.getenv("COMMUNITY_FEED_LIMIT", "50"))
    COMMUNITY_FEED_COMPACT_LIMIT: int = int(os.getenv("COMMUNITY_FEED_COMPACT_LIMIT", "30"))
    MESSAGE_PREVIEW_LENGTH: int = int(os.getenv("MESSAGE_PREVIEW_LENGTH", "100"))

    # Records a live subscriber may fall behind before it is dropped
    SUBSCRIPTION_MAX_PENDING: int = int(os.getenv("SUBSCRIPTION_MAX_PENDING", "1000"))

    # Upload caps, enforced before anything reaches the bucket
    MAX_IMAGE_SIZE_MB: int = int(os.getenv("MAX_IMAGE_SIZE_MB", "10"))
    MAX_VIDEO_SIZE_MB: int = int(os.getenv("MAX_VIDEO_SIZE_MB", "50"))

    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    CORS_ORIGINS: list = _env_list("CORS_ORIGINS", "*")


settings = Settings()

# Display strings stored in conversation summaries and message bodies
NEW_CONVERSATION_PREVIEW = "Nouvelle conversation"
MEDIA_MESSAGE_CONTENT = {
    "image": "Image envoyée",
    "video": "Vidéo envoyée",
}
MEDIA_PREVIEW = {
    "image": "📷 Photo",
    "video": "📹 Vidéo",
}
