from __future__ import annotations

import logging
import secrets
import time
from pathlib import Path

from starlette.datastructures import UploadFile

from rep_stock.config import settings
from rep_stock.errors import InvalidArgumentError

logger = logging.getLogger(__name__)

UPLOADS_URL_PREFIX = '/uploads/'


def uploads_path() -> Path:
    path = Path(settings.uploads_dir)
    path.mkdir(parents=True, exist_ok=True)
    return path


def _unique_filename(field_name: str, original_name: str | None) -> str:
    suffix = Path(original_name or '').suffix.lower()
    return f'{field_name}-{int(time.time() * 1000)}-{secrets.randbelow(10**9)}{suffix}'


async def save_image(upload: UploadFile, *, field_name: str = 'image', directory: Path | None = None) -> str:
    """Store an uploaded image and return its public URL."""
    content_type = upload.content_type or ''
    if not content_type.startswith('image/'):
        raise InvalidArgumentError('Only image files are allowed')

    # One byte past the limit is enough to reject.
    data = await upload.read(settings.max_upload_bytes + 1)
    if len(data) > settings.max_upload_bytes:
        raise InvalidArgumentError('Image exceeds the maximum upload size')

    target_dir = directory or uploads_path()
    filename = _unique_filename(field_name, upload.filename)
    (target_dir / filename).write_bytes(data)
    return UPLOADS_URL_PREFIX + filename


def delete_image(image_url: str | None, *, directory: Path | None = None) -> bool:
    if not image_url or not image_url.startswith(UPLOADS_URL_PREFIX):
        return False

    target_dir = directory or uploads_path()
    # Only the basename: never follow a path out of the uploads dir.
    path = target_dir / Path(image_url[len(UPLOADS_URL_PREFIX) :]).name
    if not path.is_file():
        return False
    path.unlink()
    logger.info('Removed image %s', path.name)
    return True
