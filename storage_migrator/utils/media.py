from enum import Enum

DEFAULT_CONTENT_TYPE = "application/octet-stream"


class MediaKind(Enum):
    IMAGE = "image"
    DOCUMENT = "document"
    TEXT = "text"
    ARCHIVE = "archive"
    AUDIO = "audio"
    VIDEO = "video"


CONTENT_TYPES = {
    # images
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "gif": "image/gif",
    "webp": "image/webp",
    "svg": "image/svg+xml",
    "bmp": "image/bmp",
    "ico": "image/x-icon",
    "tif": "image/tiff",
    "tiff": "image/tiff",
    "avif": "image/avif",
    "heic": "image/heic",
    # documents
    "pdf": "application/pdf",
    "doc": "application/msword",
    "docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "xls": "application/vnd.ms-excel",
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "ppt": "application/vnd.ms-powerpoint",
    "pptx": "application/vnd.openxmlformats-officedocument.presentationml.presentation",
    "odt": "application/vnd.oasis.opendocument.text",
    "ods": "application/vnd.oasis.opendocument.spreadsheet",
    "rtf": "application/rtf",
    "epub": "application/epub+zip",
    # text
    "txt": "text/plain",
    "md": "text/markdown",
    "csv": "text/csv",
    "html": "text/html",
    "htm": "text/html",
    "css": "text/css",
    "js": "text/javascript",
    "json": "application/json",
    "xml": "application/xml",
    "yaml": "application/yaml",
    "yml": "application/yaml",
    # archives
    "zip": "application/zip",
    "gz": "application/gzip",
    "tar": "application/x-tar",
    "rar": "application/vnd.rar",
    "7z": "application/x-7z-compressed",
    "bz2": "application/x-bzip2",
    # audio
    "mp3": "audio/mpeg",
    "wav": "audio/wav",
    "ogg": "audio/ogg",
    "flac": "audio/flac",
    "aac": "audio/aac",
    "m4a": "audio/mp4",
    # video
    "mp4": "video/mp4",
    "mov": "video/quicktime",
    "avi": "video/x-msvideo",
    "webm": "video/webm",
    "mkv": "video/x-matroska",
    "mpeg": "video/mpeg",
}

_KIND_PREFIXES = {
    "image/": MediaKind.IMAGE,
    "audio/": MediaKind.AUDIO,
    "video/": MediaKind.VIDEO,
    "text/": MediaKind.TEXT,
}

ARCHIVE_EXTENSIONS = {"zip", "gz", "tar", "rar", "7z", "bz2"}


def _normalize_extension(extension: str) -> str:
    return extension.lower().lstrip(".")


def get_content_type(extension: str) -> str:
    return CONTENT_TYPES.get(_normalize_extension(extension), DEFAULT_CONTENT_TYPE)


def extension_of(path: str) -> str:
    """Text after the last dot of the final path segment, or ``""``."""
    name = path.rsplit("/", 1)[-1]
    if "." not in name:
        return ""
    return name.rsplit(".", 1)[-1]


def resolve_content_type(path: str) -> str:
    return get_content_type(extension_of(path))


def get_media_kind(path: str) -> MediaKind:
    ext = _normalize_extension(extension_of(path))
    if ext in ARCHIVE_EXTENSIONS:
        return MediaKind.ARCHIVE
    content_type = CONTENT_TYPES.get(ext)
    if content_type is None:
        raise ValueError(f"Unknown extension: {path}")
    for prefix, kind in _KIND_PREFIXES.items():
        if content_type.startswith(prefix):
            return kind
    if content_type in ("application/json", "application/xml", "application/yaml"):
        return MediaKind.TEXT
    return MediaKind.DOCUMENT
