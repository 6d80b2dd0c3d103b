"""
Disk storage for event images.

Uploaded files are renamed to `<millis>-<random><ext>` and served back by
the gateway under `/uploads/<name>`; events keep only that URL.
"""

import logging
import os
import secrets
import time
from typing import Optional

from werkzeug.datastructures import FileStorage
from werkzeug.utils import secure_filename

from eventhub.errors import ValidationError

ALLOWED_EXTENSIONS = {".jpg", ".jpeg", ".png", ".gif"}


class ImageStorage:
    def __init__(self, upload_folder: str, max_bytes: int = 5 * 1024 * 1024, url_prefix: str = "/uploads"):
        self.upload_folder = os.path.abspath(upload_folder)
        self.max_bytes = max_bytes
        self.url_prefix = url_prefix.rstrip("/")

    def validate(self, file: FileStorage) -> str:
        """
        Check extension and size; return the normalised extension.

        Raises:
            ValidationError: Not an image we accept, or larger than max_bytes.
        """
        filename = secure_filename(file.filename or "")
        ext = os.path.splitext(filename)[1].lower()
        if ext not in ALLOWED_EXTENSIONS:
            raise ValidationError("Only image files are allowed!")

        stream = file.stream
        stream.seek(0, os.SEEK_END)
        size = stream.tell()
        stream.seek(0)
        if size > self.max_bytes:
            raise ValidationError(f"Image must be {self.max_bytes // (1024 * 1024)}MB or smaller")

        return ext

    def save(self, file: FileStorage) -> str:
        """Validate and store an upload; return the URL it is served from."""
        ext = self.validate(file)
        name = f"{int(time.time() * 1000)}-{secrets.randbelow(10**9)}{ext}"

        os.makedirs(self.upload_folder, exist_ok=True)
        file.save(os.path.join(self.upload_folder, name))
        logging.info(f"[Storage] Saved image {name}")
        return f"{self.url_prefix}/{name}"

    def path_for(self, url: Optional[str]) -> Optional[str]:
        """Local path of a URL produced by save(), or None for foreign URLs."""
        if not url or not url.startswith(self.url_prefix + "/"):
            return None
        name = secure_filename(url[len(self.url_prefix) + 1:])
        return os.path.join(self.upload_folder, name) if name else None

    def delete(self, url: Optional[str]) -> None:
        path = self.path_for(url)
        if path and os.path.exists(path):
            os.remove(path)
            logging.info(f"[Storage] Removed image {os.path.basename(path)}")
