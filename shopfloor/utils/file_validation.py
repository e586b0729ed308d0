# shopfloor/utils/file_validation.py
import os
from typing import List, Optional


def validate_upload(
        filename: Optional[str],
        content_type: Optional[str],
        size: int,
        settings
) -> List[str]:
    """Check an uploaded file against size, extension, MIME type and name rules"""
    errors = []
    filename = filename or ""

    if size > settings.MAX_UPLOAD_SIZE:
        limit_mb = settings.MAX_UPLOAD_SIZE // (1024 * 1024)
        errors.append(f"File size exceeds {limit_mb}MB limit")

    extension = os.path.splitext(filename)[1].lower()
    if extension not in settings.ALLOWED_UPLOAD_EXTENSIONS:
        errors.append(f"File extension '{extension}' is not allowed. Only CSV files are accepted.")

    # Strip parameters such as "; charset=utf-8"
    mime_type = (content_type or "").split(";")[0].strip().lower()
    if mime_type not in settings.ALLOWED_UPLOAD_MIME_TYPES:
        errors.append(f"File type '{content_type}' is not allowed. Only CSV files are accepted.")

    if ".." in filename or "/" in filename or "\\" in filename:
        errors.append("File name contains invalid characters")

    return errors
