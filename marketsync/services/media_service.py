"""
Media storage for product images.

Storage is a key -> bytes mapping on the local filesystem with URL resolution.
Uploads land in a temporary directory first. The reconciliation engine moves
them to permanent keys only after the whole batch has committed.
"""

import logging
import os
import shutil
from pathlib import Path
from typing import List, Optional, Tuple

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from marketsync.core.config import get_settings
from marketsync.core.exceptions import BusinessError
from marketsync.models.upload import UploadSession
from marketsync.schemas.product import is_url, is_uuid

logger = logging.getLogger(__name__)


class Storage:
    def __init__(self, root: str, base_url: str):
        self.root = Path(root)
        self.base_url = base_url.rstrip('/')

    def path(self, key: str) -> Path:
        return self.root / key.lstrip('/')

    def put(self, key: str, content: bytes) -> str:
        target = self.path(key)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(content)
        return key

    def get(self, key: str) -> bytes:
        return self.path(key).read_bytes()

    def exists(self, key: str) -> bool:
        return self.path(key).exists()

    def delete(self, key: str) -> bool:
        target = self.path(key)
        if target.exists():
            target.unlink()
            return True
        return False

    def url(self, key: str) -> str:
        if is_url(key):
            return key
        return f"{self.base_url}/{key.lstrip('/')}"

    def move_in(self, source: Path, key: str) -> str:
        """Move an external file under `key`; a rename when both sit on one filesystem."""
        target = self.path(key)
        target.parent.mkdir(parents=True, exist_ok=True)
        try:
            os.replace(source, target)
        except OSError:
            shutil.move(str(source), str(target))
        return key


def get_storage() -> Storage:
    settings = get_settings()
    return Storage(settings.STORAGE_DIR, settings.STORAGE_URL)


class MediaService:
    def __init__(self, db: AsyncSession, user_id: int, storage: Optional[Storage] = None):
        self.db = db
        self.user_id = user_id
        self.storage = storage or get_storage()
        self.temp_root = Path(get_settings().TEMP_UPLOAD_DIR)
        self._pending_moves: List[Tuple[Path, str, str]] = []

    async def resolve(self, reference: str) -> str:
        """
        Turn an image reference from a payload into its permanent storage key.

        URLs are kept as they are. Upload uuids map to a product image key; the
        file itself is moved later by apply_pending_moves().

        Raises:
            BusinessError: If the uuid does not match an upload of this user
        """
        if is_url(reference):
            return reference
        if not is_uuid(reference):
            raise BusinessError(f"Invalid image reference: {reference}")

        for source, key, upload_uuid in self._pending_moves:
            if upload_uuid == reference:
                return key

        result = await self.db.execute(
            select(UploadSession).where(
                UploadSession.uuid == reference,
                UploadSession.user_id == self.user_id,
            )
        )
        upload = result.scalars().first()
        if not upload:
            raise BusinessError(f"Uploaded image {reference} was not found")

        suffix = Path(upload.filename or upload.temp_path).suffix or ".jpg"
        key = f"products/{self.user_id}/{upload.uuid}{suffix}"
        self._pending_moves.append((self.temp_root / upload.temp_path, key, upload.uuid))
        return key

    @property
    def pending_moves(self) -> int:
        return len(self._pending_moves)

    def discard_pending(self, since: int = 0) -> None:
        """Drop queued moves from position `since` on (all of them by default)."""
        del self._pending_moves[since:]

    async def apply_pending_moves(self) -> int:
        """
        Move resolved uploads to their permanent keys and drop their sessions.

        Call only after the batch that references them has committed.
        """
        moved_uuids = []
        for source, key, upload_uuid in self._pending_moves:
            if not source.exists():
                logger.warning(f"Temporary upload {source} is missing, skipping move to {key}")
                continue
            self.storage.move_in(source, key)
            moved_uuids.append(upload_uuid)

        self._pending_moves.clear()
        if moved_uuids:
            await self.db.execute(delete(UploadSession).where(UploadSession.uuid.in_(moved_uuids)))
            await self.db.commit()
            logger.info(f"Moved {len(moved_uuids)} uploaded images for user {self.user_id}")
        return len(moved_uuids)

    def delete(self, key: str) -> None:
        if is_url(key):
            return
        try:
            self.storage.delete(key)
        except OSError as e:
            logger.error(f"Failed to delete stored image {key}: {e}")
