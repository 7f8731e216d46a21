import logging
import os
from uuid import uuid4

from werkzeug.utils import secure_filename

from ayu_connect.errors import ValidationError

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = {
    ".jpeg", ".jpg", ".png", ".gif", ".pdf", ".doc", ".docx",
    ".xls", ".xlsx", ".txt", ".csv", ".ppt", ".pptx",
}
ALLOWED_MIME_TYPES = {
    "image/jpeg", "image/jpg", "image/png", "image/gif",
    "application/pdf", "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/vnd.ms-excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "text/plain", "text/csv", "application/vnd.ms-powerpoint",
    "application/vnd.openxmlformats-officedocument.presentationml.presentation",
}

STAGED_SUFFIX = ".deleting"


class FileStorage:
    """Blob storage on the local filesystem, one directory per user."""

    def __init__(self, root):
        self.root = os.path.abspath(root)
        os.makedirs(self.root, exist_ok=True)

    def path_for(self, user_id, filename):
        return os.path.join(self.root, secure_filename(str(user_id)), secure_filename(filename))

    def save(self, user_id, upload):
        """Persist a werkzeug ``FileStorage`` and return ``(stored_name, original_name, content_type, size)``."""
        original_name = secure_filename(upload.filename or "")
        if not original_name:
            raise ValidationError("Please upload a file")

        extension = os.path.splitext(original_name)[1].lower()
        content_type = (upload.mimetype or "").lower()
        if extension not in ALLOWED_EXTENSIONS or content_type not in ALLOWED_MIME_TYPES:
            raise ValidationError("File type not supported. Please upload images, PDFs, or office documents.")

        stored_name = f"{uuid4().hex}{extension}"
        path = self.path_for(user_id, stored_name)
        os.makedirs(os.path.dirname(path), exist_ok=True)
        upload.save(path)
        size = os.path.getsize(path)
        logger.info("[STORAGE] Saved %s for user %s (%d bytes)", stored_name, user_id, size)
        return stored_name, original_name, content_type, size

    def read(self, user_id, filename):
        path = self.path_for(user_id, filename)
        if not os.path.exists(path):
            return None
        with open(path, "rb") as fh:
            return fh.read()

    # Two-phase delete: stage (rename aside), then purge after the database
    # commit, or restore if the commit fails.

    def stage_delete(self, user_id, filename):
        path = self.path_for(user_id, filename)
        if not os.path.exists(path):
            return None
        staged = path + STAGED_SUFFIX
        os.replace(path, staged)
        return staged

    def restore(self, staged):
        if staged and os.path.exists(staged):
            os.replace(staged, staged[: -len(STAGED_SUFFIX)])

    def purge(self, staged):
        if not staged:
            return
        try:
            os.remove(staged)
        except FileNotFoundError:
            pass
        except OSError:
            # The database no longer references it; a leftover staged file is harmless
            logger.exception("[STORAGE] Could not purge %s", staged)

    def remove(self, user_id, filename):
        """Best-effort removal of a file that was never committed to the database."""
        path = self.path_for(user_id, filename)
        if os.path.exists(path):
            os.remove(path)
