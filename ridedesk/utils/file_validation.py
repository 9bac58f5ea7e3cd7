from typing import Optional

from ridedesk.utils.errors import InputValidationError

ALLOWED_MIME_TYPES = {
    "application/pdf",
    "image/jpeg",
    "image/jpg",
    "image/png",
    "image/webp",
    "image/gif",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/vnd.ms-excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "text/plain",
}

MAX_FILE_SIZE_BYTES = 10 * 1024 * 1024  # 10MB

EXTENSION_MIME_TYPES = {
    "pdf": "application/pdf",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "gif": "image/gif",
    "webp": "image/webp",
    "svg": "image/svg+xml",
    "doc": "application/msword",
    "docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "xls": "application/vnd.ms-excel",
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "txt": "text/plain",
    "html": "text/html",
    "mp4": "video/mp4",
    "mp3": "audio/mpeg",
}


def validate_upload(content_type: Optional[str], size: int) -> None:
    """Reject uploads outside the allowed types, empty files, and files over 10MB."""
    if content_type not in ALLOWED_MIME_TYPES:
        raise InputValidationError(f"File type not allowed: {content_type}", field="file")
    if size > MAX_FILE_SIZE_BYTES:
        raise InputValidationError("File too large (maximum 10MB)", field="file")
    if size == 0:
        raise InputValidationError("File is empty", field="file")


def mime_type_for_filename(filename: str) -> str:
    ext = filename.lower().rsplit(".", 1)[-1] if "." in filename else ""
    return EXTENSION_MIME_TYPES.get(ext, "application/octet-stream")
