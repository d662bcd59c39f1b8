import logging
import os

from django.conf import settings

from .errors import InvalidChangeSet, NotFound
from .objects import Change

logger = logging.getLogger(__name__)


def _upload_path(name: str) -> str:
    base = os.path.basename((name or "").replace("\\", "/"))
    if not base or base in (".", ".."):
        raise InvalidChangeSet(f"Invalid file name '{name}'", operation="upload", identifier=name or "")
    return os.path.join(settings.UPLOAD_DIR, base)


def save_upload(uploaded_file) -> str:
    path = _upload_path(uploaded_file.name)
    os.makedirs(settings.UPLOAD_DIR, exist_ok=True)
    with open(path, "wb") as f:
        for chunk in uploaded_file.chunks():
            f.write(chunk)
    logger.info("Stored upload %s (%d bytes)", path, uploaded_file.size)
    return os.path.basename(path)


def read_upload(name: str) -> bytes:
    path = _upload_path(name)
    try:
        with open(path, "rb") as f:
            return f.read()
    except FileNotFoundError:
        raise NotFound(f"Uploaded file '{name}' not found", operation="read_upload", identifier=name) from None


def upload_changes(names) -> list[Change]:
    """Changes committing each uploaded file under UPLOAD_PREFIX."""
    prefix = settings.UPLOAD_PREFIX.strip("/")
    changes = []
    for name in names:
        if prefix and name.startswith(prefix + "/"):
            name = name[len(prefix) + 1:]
        # uploads are stored flat
        if "/" in name or "\\" in name:
            raise InvalidChangeSet(
                f"Uploaded file name '{name}' must not contain a directory",
                operation="commit", identifier=name,
            )
        path = f"{prefix}/{name}" if prefix else name
        changes.append(Change(path=path, content=read_upload(name)))
    return changes
