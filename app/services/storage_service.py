"""
Ignyt - Storage Service
Local disk storage for uploaded images and video, served from /uploads
"""
import os
import uuid
import logging
from typing import Dict, Optional

from flask import current_app
from werkzeug.datastructures import FileStorage
from werkzeug.utils import secure_filename

logger = logging.getLogger(__name__)

ALLOWED_IMAGE_TYPES = {'image/jpeg', 'image/png', 'image/gif', 'image/webp'}
ALLOWED_VIDEO_TYPES = {'video/mp4', 'video/webm', 'video/quicktime', 'video/x-msvideo'}
ALLOWED_MIME_TYPES = ALLOWED_IMAGE_TYPES | ALLOWED_VIDEO_TYPES

UPLOAD_URL_PREFIX = '/uploads/'


class StorageError(Exception):
    """Rejected or failed upload"""
    pass


class StorageService:
    """Stores uploads under UPLOAD_FOLDER with collision-free names"""

    @property
    def upload_folder(self) -> str:
        return current_app.config['UPLOAD_FOLDER']

    def is_allowed(self, mimetype: Optional[str]) -> bool:
        return (mimetype or '').lower() in ALLOWED_MIME_TYPES

    def save_upload(self, file: FileStorage, field_name: str = 'media') -> Dict:
        """
        Save an uploaded file

        Returns:
            {'filename', 'originalname', 'mimetype', 'size', 'url'}
        """
        if file is None or not file.filename:
            raise StorageError('No file uploaded')

        mimetype = (file.mimetype or '').lower()
        if not self.is_allowed(mimetype):
            raise StorageError(
                'Invalid file type. Only JPEG, PNG, GIF, WebP images and MP4, WebM, MOV, AVI videos are allowed.'
            )

        original = secure_filename(file.filename) or 'upload'
        ext = os.path.splitext(original)[1].lower()
        filename = f"{field_name}-{uuid.uuid4().hex}{ext}"

        os.makedirs(self.upload_folder, exist_ok=True)
        path = os.path.join(self.upload_folder, filename)
        file.save(path)
        size = os.path.getsize(path)

        logger.info(f"Upload saved: {filename} ({mimetype}, {size} bytes)")

        return {
            'filename': filename,
            'originalname': file.filename,
            'mimetype': mimetype,
            'size': size,
            'url': f"{UPLOAD_URL_PREFIX}{filename}"
        }

    def local_path(self, file_url: Optional[str]) -> Optional[str]:
        """Disk path for a /uploads/ URL, None for anything stored elsewhere"""
        if not file_url or not file_url.startswith(UPLOAD_URL_PREFIX):
            return None
        filename = secure_filename(file_url[len(UPLOAD_URL_PREFIX):])
        if not filename:
            return None
        return os.path.join(self.upload_folder, filename)

    def delete_file(self, file_url: Optional[str]) -> bool:
        """Remove a locally stored file; remote URLs are left alone"""
        path = self.local_path(file_url)
        if not path or not os.path.exists(path):
            return False
        try:
            os.remove(path)
        except OSError as e:
            logger.warning(f"Could not delete {path}: {e}")
            return False
        logger.info(f"Deleted upload {path}")
        return True


# Singleton instance
_storage_service = None


def get_storage_service() -> StorageService:
    """Get or create storage service instance"""
    global _storage_service
    if _storage_service is None:
        _storage_service = StorageService()
    return _storage_service
