"""
Local file storage for BL documents, amendment attachments and payment proofs.

The workflow only keeps the returned URL; swapping this for object storage
means implementing ``store`` with the same signature.
"""
import logging
import os
import uuid

from fastapi import UploadFile

from freightbridge.core.config import settings
from freightbridge.core.errors import ValidationError, ExternalIntegrationFailure

logger = logging.getLogger(__name__)

DOCUMENT_TYPES = {"pdf"}
PROOF_TYPES = {"pdf", "jpg", "jpeg", "png"}
ATTACHMENT_TYPES = {"pdf", "docx", "zip", "jpg", "jpeg", "png"}


class LocalFileStore:
    def __init__(self, root: str = None):
        self.root = root or settings.UPLOAD_DIR

    async def store(self, file: UploadFile, folder: str, allowed: set) -> str:
        """Write the upload under ``folder`` and return its URL path"""
        if not file or not file.filename:
            raise ValidationError("A file is required")

        ext = file.filename.rsplit(".", 1)[-1].lower() if "." in file.filename else ""
        if ext not in allowed:
            raise ValidationError(f"Invalid file type '{ext}'. Allowed: {sorted(allowed)}")

        content = await file.read()
        if len(content) > settings.MAX_UPLOAD_BYTES:
            raise ValidationError(
                f"File size too large. Maximum size is {settings.MAX_UPLOAD_BYTES // (1024 * 1024)}MB."
            )

        target_dir = os.path.join(self.root, folder)
        unique_name = f"{uuid.uuid4()}_{os.path.basename(file.filename)}"
        try:
            os.makedirs(target_dir, exist_ok=True)
            with open(os.path.join(target_dir, unique_name), "wb") as f:
                f.write(content)
        except OSError as e:
            logger.error(f"Failed to store upload {file.filename}: {e}")
            raise ExternalIntegrationFailure("File storage unavailable")

        return f"/{self.root.strip('/')}/{folder}/{unique_name}"


file_store = LocalFileStore()
