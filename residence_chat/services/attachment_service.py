"""
Attachment Service - uploads chat and community media to Firebase Storage.

Only the resulting download URL and media kind are stored on messages; raw
bytes never reach Firestore. Size caps are enforced here, before upload.
"""

from typing import Any, Dict, Optional
from datetime import datetime
from pathlib import Path
import logging
import mimetypes
import urllib.parse
import uuid

from ..core.config import settings
from ..core.exceptions import AttachmentUploadError, InvalidMessageError
from ..models.chat_models import MediaType
from .firebase_storage_init import get_storage_bucket

logger = logging.getLogger(__name__)

MB = 1024 * 1024


def detect_media_type(filename: str, content_type: Optional[str]) -> MediaType:
    """Classify an upload as image or video, guessing from the filename when needed"""
    if not content_type or content_type in ("application/octet-stream", "binary/octet-stream"):
        content_type = mimetypes.guess_type(filename)[0] or ""
    content_type = content_type.lower()

    if content_type.startswith("image/"):
        return MediaType.IMAGE
    if content_type.startswith("video/"):
        return MediaType.VIDEO
    raise InvalidMessageError("Only image and video attachments are supported")


def max_size_for(media_type: MediaType) -> int:
    if media_type == MediaType.VIDEO:
        return settings.MAX_VIDEO_SIZE_MB * MB
    return settings.MAX_IMAGE_SIZE_MB * MB


class AttachmentService:
    def __init__(self, bucket=None):
        self._bucket = bucket

    @property
    def bucket(self):
        if self._bucket is None:
            self._bucket = get_storage_bucket()
        return self._bucket

    def validate(self, filename: str, data: bytes, content_type: Optional[str]) -> MediaType:
        """Check kind and size; raises InvalidMessageError before any upload"""
        if not filename:
            raise InvalidMessageError("Filename is required")
        if not data:
            raise InvalidMessageError("No file content provided")

        media_type = detect_media_type(filename, content_type)
        limit = max_size_for(media_type)
        if len(data) > limit:
            raise InvalidMessageError(
                f"{media_type.value.capitalize()} too large. Maximum size: {limit / MB:.0f}MB"
            )
        return media_type

    def _generate_file_path(self, folder: str, original_filename: str) -> str:
        file_ext = Path(original_filename).suffix.lower()
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        return f"{folder}/{timestamp}_{uuid.uuid4()}{file_ext}"

    async def upload(
        self,
        filename: str,
        data: bytes,
        content_type: Optional[str] = None,
        folder: str = "chat",
        uploaded_by: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Upload a media file.

        Returns:
            {"url", "path", "media_type"}

        Raises:
            InvalidMessageError: unsupported kind or over the size cap
            AttachmentUploadError: storage unavailable or the upload failed
        """
        media_type = self.validate(filename, data, content_type)

        bucket = self.bucket
        if not bucket:
            raise AttachmentUploadError("File storage not available")

        file_path = self._generate_file_path(folder, filename)
        download_token = str(uuid.uuid4())

        try:
            blob = bucket.blob(file_path)
            blob.metadata = {
                'uploaded_by': uploaded_by or '',
                'original_filename': filename,
                'media_type': media_type.value,
                'upload_timestamp': datetime.now().isoformat(),
                'firebaseStorageDownloadTokens': download_token,
            }
            blob.upload_from_string(
                data,
                content_type=content_type or mimetypes.guess_type(filename)[0]
            )
        except Exception as e:
            logger.error(f"❌ Upload of {filename} failed: {str(e)}")
            raise AttachmentUploadError(f"Upload failed: {str(e)}") from e

        encoded_path = urllib.parse.quote(file_path, safe='')
        download_url = f"https://firebasestorage.googleapis.com/v0/b/{bucket.name}/o/{encoded_path}?alt=media&token={download_token}"

        logger.info(f"✅ File uploaded successfully: {file_path}")
        return {
            'url': download_url,
            'path': file_path,
            'media_type': media_type,
        }


# Singleton instance
_attachment_service = None

def get_attachment_service() -> AttachmentService:
    """Get or create AttachmentService singleton"""
    global _attachment_service
    if _attachment_service is None:
        _attachment_service = AttachmentService()
    return _attachment_service
