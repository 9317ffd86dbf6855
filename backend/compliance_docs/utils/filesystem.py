import mimetypes
from pathlib import Path
from compliance_docs.config import settings


def ensure_storage_dirs(storage_root: Path | None = None) -> Path:
    path = storage_root or settings.storage_root
    path.mkdir(parents=True, exist_ok=True)
    (path / "documents").mkdir(exist_ok=True)
    return path


def sanitize_filename(name: str) -> str:
    keep = set("abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789._-")
    return "".join(c if c in keep else "_" for c in name)


def file_extension(filename: str | None) -> str:
    """Lower-cased, sanitised extension including the dot, or '' if none."""
    if not filename:
        return ""
    return sanitize_filename(Path(filename).suffix.lower())


def guess_mime_type(filename: str) -> str:
    mime_type, _ = mimetypes.guess_type(filename)
    return mime_type or "application/octet-stream"
