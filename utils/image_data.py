"""
Image loading for the meme server
Validates requested filenames and turns image files into base64 data URLs.
"""

import base64
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict

from utils.meme_files import ALLOWED_EXTENSIONS, file_extension, is_inside

CONTENT_TYPES = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "gif": "image/gif",
}
DEFAULT_CONTENT_TYPE = "image/png"


class InvalidFilenameError(ValueError):
    """A requested filename is unsafe or not an allowed image type."""

    def __init__(self, filename: str, reason: str):
        self.filename = filename
        self.reason = reason
        super().__init__(f"Invalid filename '{filename}': {reason}")


class MemeLoadError(Exception):
    """An image file exists but could not be read."""

    def __init__(self, path: Path, cause: Exception):
        self.path = path
        self.cause = cause
        super().__init__(f"Cannot load image from {path}: {cause}")


def resolve_meme_path(base_dir: Path, filename: str) -> Path:
    """
    Join `filename` onto `base_dir` and make sure it stays inside it.

    The containment check runs on the resolved path, so `../` segments and
    symlinks pointing out of the directory are both rejected.

    Raises:
        InvalidFilenameError: empty name, path escapes `base_dir`, or the
            extension is missing or not allowed.
    """
    if not filename:
        raise InvalidFilenameError(filename, "filename is empty")

    try:
        base = Path(base_dir).resolve()
        resolved = (base / filename).resolve()
    except (OSError, RuntimeError, ValueError) as e:
        raise InvalidFilenameError(filename, f"invalid path ({e})") from e

    if not is_inside(base, resolved):
        raise InvalidFilenameError(filename, "path is outside the memes directory")

    ext = file_extension(resolved.name)
    if not ext:
        raise InvalidFilenameError(filename, "missing file extension")
    if ext not in ALLOWED_EXTENSIONS:
        allowed = ", ".join(sorted(ALLOWED_EXTENSIONS))
        raise InvalidFilenameError(filename, f"unsupported file type '{ext}' (allowed: {allowed})")

    return resolved


def content_type_for(name: str) -> str:
    return CONTENT_TYPES.get(file_extension(name), DEFAULT_CONTENT_TYPE)


def to_data_url(data: bytes, content_type: str) -> str:
    return f"data:{content_type};base64," + base64.b64encode(data).decode("ascii")


def load_meme(path: Path, template_name: str) -> Dict[str, Any]:
    """
    Read an image and describe it as a response entry.

    Returns a dict with template_name, image_url (data URL), content_type,
    size_bytes and generated_at.
    """
    path = Path(path)
    try:
        data = path.read_bytes()
    except OSError as e:
        raise MemeLoadError(path, e) from e

    content_type = content_type_for(path.name)
    return {
        "template_name": template_name,
        "image_url": to_data_url(data, content_type),
        "content_type": content_type,
        "size_bytes": len(data),
        "generated_at": datetime.now(timezone.utc).isoformat(),
    }
