# tests/unit/services/test_catalog_service.py
import pytest
from sqlalchemy import select

from marketsync.core.enums import JobType, PublishStatus
from marketsync.core.exceptions import ApiError
from marketsync.models.product import Product, ProductImage, ProductVariation
from marketsync.models.sync_job import SyncJob
from marketsync.services.catalog_service import CatalogService
from marketsync.services.media_service import Storage


@pytest.mark.asyncio
async def test_image_urls_fall_back_to_product_images(db_session, user, make_product):
    product = await make_product(user, vendor_code="DRESS-1")
    variation = (await db_session.execute(
        select(ProductVariation).where(ProductVariation.product_id == product.id)
    )).scalars().one()
    second = ProductVariation(product_id=product.id, uuid="00000000-0000-4000-8000-999999999999", vendor_code="DRESS-2", title="Blue")
    db_session.add(second)
    await db_session.flush()
    db_session.add_all([
        ProductImage(product_id=product.id, path="products/1/main.jpg", position=0),
        ProductImage(product_id=product.id, path="https://cdn.example.com/back.jpg", position=1),
        ProductImage(product_id=product.id, variation_id=second.id, path="products/1/blue.jpg", position=0),
    ])
    await db_session.flush()
    service = CatalogService(db_session, storage=Storage("/unused", "https://media.example.com"))

    urls = await service.image_urls(user.id, [product.id])

    assert urls[variation.vendor_code] == [
        "https://media.example.com/products/1/main.jpg",
        "https://cdn.example.com/back.jpg",
    ]
    assert urls["DRESS-2"] == ["https://media.example.com/products/1/blue.jpg"]


@pytest.mark.asyncio
async def test_image_urls_ignore_foreign_products(db_session, make_user, make_product):
    owner = await make_user()
    other = await make_user()
    product = await make_product(owner)

    assert await CatalogService(db_session).image_urls(other.id, [product.id]) == {}


@pytest.mark.asyncio
async def test_ensure_default_variation(db_session, user):
    product = Product(user_id=user.id, sku="BARE", title="Bare", barcode="4600000000035")
    db_session.add(product)
    await db_session.flush()
    service = CatalogService(db_session)

    variation = await service.ensure_default_variation(product)
    again = await service.ensure_default_variation(product)

    assert again.id == variation.id
    assert variation.vendor_code == "BARE"
    assert variation.barcode == "4600000000035"
    assert variation.is_main is True


@pytest.mark.asyncio
async def test_change_status_queues_propagation(db_session, user, make_product):
    published = await make_product(user)
    hidden = await make_product(user, status=PublishStatus.UNPUBLISHED.value)

    await CatalogService(db_session).change_status(user.id, [published.id, hidden.id], PublishStatus.UNPUBLISHED.value)

    assert published.status == PublishStatus.UNPUBLISHED.value
    job = (await db_session.execute(select(SyncJob))).scalars().one()
    assert job.job_type == JobType.PRODUCT_STATUS_CHANGED.value
    assert job.payload == {"user_id": user.id, "product_ids": [published.id], "status": "unpublished"}


@pytest.mark.asyncio
async def test_change_status_without_changes_queues_nothing(db_session, user, make_product):
    product = await make_product(user)

    await CatalogService(db_session).change_status(user.id, [product.id], PublishStatus.PUBLISHED.value)

    assert (await db_session.execute(select(SyncJob))).scalars().first() is None


@pytest.mark.asyncio
async def test_change_status_of_foreign_product(db_session, make_user, make_product):
    owner = await make_user()
    other = await make_user()
    product = await make_product(owner)

    with pytest.raises(ApiError):
        await CatalogService(db_session).change_status(other.id, [product.id], PublishStatus.UNPUBLISHED.value)


@pytest.mark.asyncio
async def test_set_external_ids(db_session, user, make_product):
    first = await make_product(user, external_id="a")
    second = await make_product(user, external_id="b")

    updated = await CatalogService(db_session).set_external_ids(user.id, {first.id: "a", second.id: "c"})

    assert updated == 1
    assert second.external_id == "c"


@pytest.mark.asyncio
async def test_delete_products_removes_stored_files(db_session, user, make_product, tmp_path):
    storage = Storage(str(tmp_path), "https://media.example.com")
    storage.put("products/1/main.jpg", b"img")
    product = await make_product(user)
    db_session.add(ProductImage(product_id=product.id, path="products/1/main.jpg", position=0))
    await db_session.flush()

    deleted = await CatalogService(db_session, storage=storage).delete_products(user.id, [product.id])

    assert deleted == 1
    assert not storage.exists("products/1/main.jpg")
    assert (await db_session.execute(select(ProductImage))).scalars().first() is None
