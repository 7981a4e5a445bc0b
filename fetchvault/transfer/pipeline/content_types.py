"""
Content type resolution for fetched resources.
"""

from typing import Optional

from ...schema.download import DEFAULT_CONTENT_TYPE
from ..utils.url import file_extension

# Lowercase extension -> MIME type
EXTENSION_CONTENT_TYPES = {
    "pdf": "application/pdf",
    "zip": "application/zip",
    "rar": "application/x-rar-compressed",
    "7z": "application/x-7z-compressed",
    "tar": "application/x-tar",
    "gz": "application/gzip",
    "tgz": "application/gzip",
    "bz2": "application/x-bzip2",
    "xz": "application/x-xz",
    "iso": "application/x-iso9660-image",
    "exe": "application/x-msdownload",
    "msi": "application/x-msi",
    "dmg": "application/x-apple-diskimage",
    "apk": "application/vnd.android.package-archive",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "gif": "image/gif",
    "webp": "image/webp",
    "svg": "image/svg+xml",
    "ico": "image/x-icon",
    "bmp": "image/bmp",
    "mp4": "video/mp4",
    "mkv": "video/x-matroska",
    "avi": "video/x-msvideo",
    "mov": "video/quicktime",
    "webm": "video/webm",
    "mp3": "audio/mpeg",
    "wav": "audio/wav",
    "flac": "audio/flac",
    "ogg": "audio/ogg",
    "doc": "application/msword",
    "docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "xls": "application/vnd.ms-excel",
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "ppt": "application/vnd.ms-powerpoint",
    "pptx": "application/vnd.openxmlformats-officedocument.presentationml.presentation",
    "txt": "text/plain",
    "csv": "text/csv",
    "md": "text/markdown",
    "html": "text/html",
    "htm": "text/html",
    "css": "text/css",
    "js": "application/javascript",
    "json": "application/json",
    "xml": "application/xml",
}


def media_type_from_header(header_value: Optional[str]) -> Optional[str]:
    """Media type of a Content-Type header with parameters stripped, lowercased"""
    if not header_value:
        return None
    media_type = header_value.split(";", 1)[0].strip().lower()
    return media_type or None


def content_type_for_extension(file_name: str) -> Optional[str]:
    return EXTENSION_CONTENT_TYPES.get(file_extension(file_name))


def resolve_content_type(header_value: Optional[str], file_name: str) -> str:
    """
    Pick the content type for a fetched resource.

    An explicit header wins unless it is the generic binary type; then the
    file extension table; then the generic binary type.
    """
    media_type = media_type_from_header(header_value)
    if media_type and media_type != DEFAULT_CONTENT_TYPE:
        return media_type

    return content_type_for_extension(file_name) or DEFAULT_CONTENT_TYPE
