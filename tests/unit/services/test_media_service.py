# tests/unit/services/test_media_service.py
import pytest
from sqlalchemy import func, select

from marketsync.core.config import clear_settings_cache
from marketsync.core.exceptions import BusinessError
from marketsync.models.upload import UploadSession
from marketsync.services.media_service import MediaService, Storage

UPLOAD_UUID = "3a0f8c52-1d4e-4b7a-9c61-5e2f0a9b7d33"


@pytest.fixture
def storage(tmp_path):
    return Storage(str(tmp_path / "storage"), "https://media.example.com/")


@pytest.fixture
def temp_dir(tmp_path, monkeypatch):
    directory = tmp_path / "tmp"
    directory.mkdir()
    monkeypatch.setenv("TEMP_UPLOAD_DIR", str(directory))
    clear_settings_cache()
    return directory


def test_storage_put_get_and_url(storage):
    storage.put("products/1/a.png", b"data")

    assert storage.get("products/1/a.png") == b"data"
    assert storage.exists("/products/1/a.png")
    assert storage.url("products/1/a.png") == "https://media.example.com/products/1/a.png"
    assert storage.url("https://cdn.example.com/x.jpg") == "https://cdn.example.com/x.jpg"
    assert storage.delete("products/1/a.png") is True
    assert storage.delete("products/1/a.png") is False


@pytest.mark.asyncio
async def test_resolve_keeps_urls_and_rejects_garbage(db_session, user, storage, temp_dir):
    media = MediaService(db_session, user.id, storage=storage)

    assert await media.resolve("https://cdn.example.com/1.jpg") == "https://cdn.example.com/1.jpg"
    with pytest.raises(BusinessError):
        await media.resolve("not-a-reference")
    assert media.pending_moves == 0


@pytest.mark.asyncio
async def test_upload_is_moved_only_when_applied(db_session, user, storage, temp_dir):
    (temp_dir / "abc.tmp").write_bytes(b"jpeg")
    db_session.add(UploadSession(user_id=user.id, uuid=UPLOAD_UUID, temp_path="abc.tmp", filename="photo.jpeg"))
    await db_session.flush()
    media = MediaService(db_session, user.id, storage=storage)

    key = await media.resolve(UPLOAD_UUID)
    assert await media.resolve(UPLOAD_UUID) == key
    assert key == f"products/{user.id}/{UPLOAD_UUID}.jpeg"
    assert media.pending_moves == 1
    assert not storage.exists(key)

    assert await media.apply_pending_moves() == 1
    assert storage.get(key) == b"jpeg"
    assert not (temp_dir / "abc.tmp").exists()
    assert (await db_session.execute(select(func.count(UploadSession.id)))).scalar() == 0


@pytest.mark.asyncio
async def test_upload_of_another_user_is_not_found(db_session, make_user, storage, temp_dir):
    owner = await make_user()
    other = await make_user()
    db_session.add(UploadSession(user_id=owner.id, uuid=UPLOAD_UUID, temp_path="abc.tmp", filename="a.png"))
    await db_session.flush()

    with pytest.raises(BusinessError) as exc_info:
        await MediaService(db_session, other.id, storage=storage).resolve(UPLOAD_UUID)

    assert "was not found" in exc_info.value.user_message


@pytest.mark.asyncio
async def test_discarded_moves_leave_temp_file(db_session, user, storage, temp_dir):
    (temp_dir / "abc.tmp").write_bytes(b"jpeg")
    db_session.add(UploadSession(user_id=user.id, uuid=UPLOAD_UUID, temp_path="abc.tmp", filename="a.jpg"))
    await db_session.flush()
    media = MediaService(db_session, user.id, storage=storage)
    await media.resolve(UPLOAD_UUID)

    media.discard_pending()

    assert await media.apply_pending_moves() == 0
    assert (temp_dir / "abc.tmp").exists()
