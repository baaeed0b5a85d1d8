from __future__ import annotations

import logging
import uuid
from pathlib import Path

from halaqat.config import settings
from halaqat.core.errors import ValidationFailedError


logger = logging.getLogger(__name__)

BUCKETS = {'center-logos', 'student-photos'}
ALLOWED_EXTENSIONS = {'.png', '.jpg', '.jpeg', '.webp'}
PUBLIC_PREFIX = '/uploads'

_SIGNATURES = (
    b'\x89PNG\r\n\x1a\n',
    b'\xff\xd8\xff',
)


class StorageError(RuntimeError):
    pass


def _looks_like_image(content: bytes) -> bool:
    if any(content.startswith(signature) for signature in _SIGNATURES):
        return True
    return content[:4] == b'RIFF' and content[8:12] == b'WEBP'


def upload_root() -> Path:
    return Path(settings.upload_dir)


def store_upload(bucket: str, filename: str, content: bytes) -> dict:
    """Write an image under a generated name and return its storage path and public URL."""
    if bucket not in BUCKETS:
        raise ValidationFailedError(f'Unknown bucket: {bucket}')
    extension = Path(filename or '').suffix.lower()
    if extension not in ALLOWED_EXTENSIONS:
        raise ValidationFailedError('Only png, jpg, jpeg and webp images are allowed')
    if not content:
        raise ValidationFailedError('File is empty')
    if len(content) > settings.upload_max_bytes:
        raise ValidationFailedError('File is too large')
    if not _looks_like_image(content):
        raise ValidationFailedError('File is not a valid image')

    relative = f'{bucket}/{uuid.uuid4().hex}{extension}'
    target = upload_root() / relative
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(content)
    except OSError as exc:
        logger.exception('storage_write_failed path=%s', relative)
        raise StorageError('Could not store file') from exc
    logger.info('storage_file_stored path=%s bytes=%s', relative, len(content))
    return {
        'path': relative,
        'public_url': f"{settings.app_base_url.rstrip('/')}{PUBLIC_PREFIX}/{relative}",
    }
