import logging
import os
import shutil
import uuid
from typing import BinaryIO, Optional

logger = logging.getLogger(__name__)


def get_file_extension(filename: Optional[str]) -> str:
    """Get file extension from filename"""
    if not filename:
        return ""
    return os.path.splitext(filename)[1].lower()


def save_upload(source: BinaryIO, filename: str, target_dir: str) -> str:
    """
    Copy an uploaded stream to disk under a unique name, keeping its extension.

    Browsers send webcam frames without a filename, so those default to .jpg.
    """
    os.makedirs(target_dir, exist_ok=True)
    ext = get_file_extension(filename) or ".jpg"
    path = os.path.join(target_dir, f"raw_{uuid.uuid4().hex}{ext}")

    with open(path, "wb") as buffer:
        shutil.copyfileobj(source, buffer)

    return path


def cleanup_file(file_path: Optional[str]) -> None:
    """Best-effort removal of a temporary file; failures are only logged"""
    if not file_path:
        return
    try:
        if os.path.exists(file_path):
            os.remove(file_path)
    except OSError as e:
        logger.warning("Could not delete %s: %s", file_path, e)


def cleanup_dir(dir_path: Optional[str]) -> None:
    if dir_path and os.path.exists(dir_path):
        shutil.rmtree(dir_path, ignore_errors=True)
