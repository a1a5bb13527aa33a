# tests/unit/services/reconciliation/test_product_reconciler.py
import pytest
from sqlalchemy import func, select

from marketsync.core.config import clear_settings_cache
from marketsync.core.exceptions import BusinessError, ConflictError
from marketsync.models.price import price_list_products
from marketsync.models.product import Product, ProductImage, ProductVariation, ProductVariationItem
from marketsync.models.upload import UploadSession
from marketsync.services.reconciliation import ProductReconciler

UPDATE_SETTINGS = {"import": {"update_exists_products": True}}


def product_record(**overrides):
    record = {
        "external_id": "1001",
        "sku": "DRESS-1",
        "title": "Summer dress",
        "description": "Cotton",
        "variations": [
            {
                "vendor_code": "DRESS-1-RED",
                "title": "Red",
                "items": [{"barcode": "4600000000011", "title": "S"}, {"barcode": "4600000000028", "title": "M"}],
            }
        ],
    }
    record.update(overrides)
    return record


async def count(db_session, model, *criteria):
    result = await db_session.execute(select(func.count(model.id)).where(*criteria))
    return result.scalar()


@pytest.mark.asyncio
async def test_creates_product_with_variations_and_items(db_session, user, make_integration):
    integration = await make_integration(user, marketplace="api")

    result = await ProductReconciler(db_session, user.id, integration=integration).reconcile([product_record()])

    assert result.all == 1
    assert result.created == 1
    assert result.additional_info == []

    product = (await db_session.execute(select(Product).where(Product.sku == "DRESS-1"))).scalars().one()
    assert product.external_id == "1001"
    variation = (await db_session.execute(
        select(ProductVariation).where(ProductVariation.product_id == product.id)
    )).scalars().one()
    assert variation.vendor_code == "DRESS-1-RED"
    assert variation.is_main is True
    assert await count(db_session, ProductVariationItem, ProductVariationItem.variation_id == variation.id) == 2


@pytest.mark.asyncio
async def test_product_without_variations_gets_default_one(db_session, user, make_integration):
    integration = await make_integration(user, marketplace="api")

    await ProductReconciler(db_session, user.id, integration=integration).reconcile(
        [product_record(variations=[], barcode="4600000000035")]
    )

    product = (await db_session.execute(select(Product).where(Product.sku == "DRESS-1"))).scalars().one()
    variation = (await db_session.execute(
        select(ProductVariation).where(ProductVariation.product_id == product.id)
    )).scalars().one()
    assert variation.vendor_code == "DRESS-1"
    assert variation.barcode == "4600000000035"


@pytest.mark.asyncio
async def test_invalid_records_are_reported_by_index(db_session, user, make_integration):
    integration = await make_integration(user, marketplace="api")
    records = [
        product_record(title=""),
        product_record(external_id="1002", sku="DRESS-2"),
        {"sku": "NO-ID", "title": "Missing identifier"},
    ]

    result = await ProductReconciler(db_session, user.id, integration=integration).reconcile(records)

    assert result.all == 3
    assert result.created == 1
    assert [info.index for info in result.additional_info] == [0, 2]
    assert "title" in result.additional_info[0].field_errors
    assert result.additional_info[0].original_payload["sku"] == "DRESS-1"

    dumped = result.model_dump(by_alias=True)
    assert "additionalInfo" in dumped


@pytest.mark.asyncio
async def test_unknown_category_rejects_record(db_session, user, make_integration):
    integration = await make_integration(user, marketplace="api")

    result = await ProductReconciler(db_session, user.id, integration=integration).reconcile(
        [product_record(category_id="missing")]
    )

    assert result.created == 0
    assert result.additional_info[0].field_errors == {"record": ["Category missing not found"]}


@pytest.mark.asyncio
async def test_category_is_bound_by_external_id(db_session, user, make_integration, make_category):
    integration = await make_integration(user, marketplace="api")
    category = await make_category(user, external_id="77")

    await ProductReconciler(db_session, user.id, integration=integration).reconcile([product_record(category_id=77)])

    product = (await db_session.execute(select(Product).where(Product.sku == "DRESS-1"))).scalars().one()
    assert product.category_id == category.id


@pytest.mark.asyncio
async def test_existing_product_untouched_without_update_setting(db_session, user, make_integration, make_product):
    integration = await make_integration(user, marketplace="api")
    await make_product(user, sku="DRESS-1", external_id="1001", title="Old title")

    result = await ProductReconciler(db_session, user.id, integration=integration).reconcile([product_record()])

    assert result.created == 0
    assert result.updated == 0
    product = (await db_session.execute(select(Product).where(Product.sku == "DRESS-1"))).scalars().one()
    assert product.title == "Old title"


@pytest.mark.asyncio
async def test_existing_product_updated_with_present_fields_only(db_session, user, make_integration, make_product):
    integration = await make_integration(user, marketplace="api", settings=UPDATE_SETTINGS)
    await make_product(user, sku="DRESS-1", external_id="1001", title="Old title", description="Keep me")

    result = await ProductReconciler(db_session, user.id, integration=integration).reconcile(
        [{"external_id": "1001", "sku": "DRESS-1", "title": "New title"}]
    )

    assert result.updated == 1
    product = (await db_session.execute(select(Product).where(Product.sku == "DRESS-1"))).scalars().one()
    assert product.title == "New title"
    assert product.description == "Keep me"


@pytest.mark.asyncio
async def test_unchanged_product_is_not_counted(db_session, user, make_integration, make_product):
    integration = await make_integration(user, marketplace="api", settings=UPDATE_SETTINGS)
    await make_product(user, sku="DRESS-1", external_id="1001", title="Same")

    result = await ProductReconciler(db_session, user.id, integration=integration).reconcile(
        [{"external_id": "1001", "sku": "DRESS-1", "title": "Same"}]
    )

    assert result.updated == 0
    assert result.created == 0


@pytest.mark.asyncio
async def test_records_sharing_sku_are_merged(db_session, user, make_integration):
    integration = await make_integration(user, marketplace="api")
    first = product_record()
    second = product_record(variations=[{"vendor_code": "DRESS-1-BLUE", "items": [{"barcode": "4600000000042"}]}])

    result = await ProductReconciler(db_session, user.id, integration=integration).reconcile([first, second])

    assert result.all == 2
    assert result.created == 1
    product = (await db_session.execute(select(Product).where(Product.sku == "DRESS-1"))).scalars().one()
    codes = (await db_session.execute(
        select(ProductVariation.vendor_code).where(ProductVariation.product_id == product.id).order_by(ProductVariation.id)
    )).scalars().all()
    assert codes == ["DRESS-1-RED", "DRESS-1-BLUE"]


@pytest.mark.asyncio
async def test_foreign_product_id_is_rejected(db_session, make_user, make_integration, make_product):
    owner = await make_user()
    other = await make_user()
    foreign = await make_product(owner, sku="FOREIGN")
    integration = await make_integration(other, marketplace="api", settings=UPDATE_SETTINGS)

    result = await ProductReconciler(db_session, other.id, integration=integration).reconcile(
        [{"product_id": foreign.id, "sku": "FOREIGN", "title": "Hijack"}]
    )

    assert result.updated == 0
    assert result.additional_info[0].field_errors == {"record": [f"Product {foreign.id} is not available"]}


@pytest.mark.asyncio
async def test_sku_collision_aborts_batch(db_session, user, make_integration, make_product):
    integration = await make_integration(user, marketplace="api", settings=UPDATE_SETTINGS)
    first = await make_product(user, sku="A", external_id="a")
    await make_product(user, sku="B", external_id="b")
    user_id, first_id = user.id, first.id
    await db_session.commit()

    records = [
        {"external_id": "new", "sku": "NEW", "title": "Created before the collision"},
        {"product_id": first_id, "sku": "B", "title": "Steals B"},
    ]
    with pytest.raises(ConflictError) as exc_info:
        await ProductReconciler(db_session, user_id, integration=integration).reconcile(records)

    assert 'SKU "B" is not unique' in exc_info.value.user_message
    assert await count(db_session, Product, Product.sku == "NEW") == 0


@pytest.mark.asyncio
async def test_batch_size_limit(db_session, make_user, make_integration):
    limited = await make_user(max_products=1)
    integration = await make_integration(limited, marketplace="api")
    reconciler = ProductReconciler(db_session, limited.id, integration=integration, max_products=limited.max_products)

    with pytest.raises(BusinessError) as exc_info:
        await reconciler.reconcile([product_record(), product_record(sku="DRESS-2", external_id="2")])

    assert "limit is 1" in exc_info.value.user_message


@pytest.mark.asyncio
async def test_touched_products_join_price_list(db_session, user, make_integration):
    integration = await make_integration(user, marketplace="api")
    assert integration.price_list_id is None

    await ProductReconciler(db_session, user.id, integration=integration).reconcile([product_record()])

    assert integration.price_list_id is not None
    product_id = (await db_session.execute(select(Product.id).where(Product.sku == "DRESS-1"))).scalar()
    members = (await db_session.execute(
        select(price_list_products.c.product_id).where(price_list_products.c.price_list_id == integration.price_list_id)
    )).scalars().all()
    assert members == [product_id]


@pytest.mark.asyncio
async def test_uploaded_images_move_after_commit(db_session, user, make_integration, tmp_path, monkeypatch):
    monkeypatch.setenv("STORAGE_DIR", str(tmp_path / "storage"))
    monkeypatch.setenv("TEMP_UPLOAD_DIR", str(tmp_path / "tmp"))
    clear_settings_cache()

    upload_uuid = "6f1c2a9e-3b7d-4c1e-9a55-0d7f3e2b1a10"
    (tmp_path / "tmp").mkdir()
    (tmp_path / "tmp" / "upload.png").write_bytes(b"png")
    db_session.add(UploadSession(user_id=user.id, uuid=upload_uuid, temp_path="upload.png", filename="photo.png"))
    integration = await make_integration(user, marketplace="api")

    await ProductReconciler(db_session, user.id, integration=integration).reconcile(
        [product_record(images=[upload_uuid, "https://cdn.example.com/1.jpg"])]
    )

    key = f"products/{user.id}/{upload_uuid}.png"
    assert (tmp_path / "storage" / key).read_bytes() == b"png"
    assert not (tmp_path / "tmp" / "upload.png").exists()
    paths = (await db_session.execute(
        select(ProductImage.path).where(ProductImage.variation_id.is_(None)).order_by(ProductImage.position)
    )).scalars().all()
    assert paths == [key, "https://cdn.example.com/1.jpg"]
    assert await count(db_session, UploadSession) == 0


@pytest.mark.asyncio
async def test_unknown_upload_uuid_rejects_record(db_session, user, make_integration):
    integration = await make_integration(user, marketplace="api")

    result = await ProductReconciler(db_session, user.id, integration=integration).reconcile(
        [product_record(images=["6f1c2a9e-3b7d-4c1e-9a55-0d7f3e2b1a10"])]
    )

    assert result.created == 0
    assert "was not found" in result.additional_info[0].field_errors["record"][0]


@pytest.mark.asyncio
async def test_rejected_record_keeps_its_upload(db_session, user, make_integration, tmp_path, monkeypatch):
    monkeypatch.setenv("STORAGE_DIR", str(tmp_path / "storage"))
    monkeypatch.setenv("TEMP_UPLOAD_DIR", str(tmp_path / "tmp"))
    clear_settings_cache()

    upload_uuid = "6f1c2a9e-3b7d-4c1e-9a55-0d7f3e2b1a10"
    (tmp_path / "tmp").mkdir()
    (tmp_path / "tmp" / "upload.png").write_bytes(b"png")
    db_session.add(UploadSession(user_id=user.id, uuid=upload_uuid, temp_path="upload.png", filename="photo.png"))
    integration = await make_integration(user, marketplace="api")

    result = await ProductReconciler(db_session, user.id, integration=integration).reconcile(
        [product_record(images=[upload_uuid, "0b8e4f2c-1d3a-4e5b-8c6d-7f9a0b1c2d3e"])]
    )

    assert result.created == 0
    assert len(result.additional_info) == 1
    assert (tmp_path / "tmp" / "upload.png").exists()
    assert await count(db_session, UploadSession) == 1
    assert await count(db_session, ProductImage) == 0

    # the corrected record can reuse the same upload
    result = await ProductReconciler(db_session, user.id, integration=integration).reconcile(
        [product_record(images=[upload_uuid])]
    )

    assert result.created == 1
    assert (tmp_path / "storage" / f"products/{user.id}/{upload_uuid}.png").exists()
    assert await count(db_session, UploadSession) == 0


@pytest.mark.asyncio
async def test_resubmitted_batch_without_updates(db_session, user, make_integration):
    integration = await make_integration(user, marketplace="api")
    batch = [product_record(variations=[])]

    first = await ProductReconciler(db_session, user.id, integration=integration).reconcile(batch)
    second = await ProductReconciler(db_session, user.id, integration=integration).reconcile(
        [product_record(variations=[], title="Renamed dress")]
    )

    assert (first.created, second.created, second.updated) == (1, 0, 0)
    assert await count(db_session, Product) == 1
    assert await count(db_session, ProductVariation) == 1
    title = (await db_session.execute(select(Product.title))).scalar()
    assert title == "Summer dress"


@pytest.mark.asyncio
async def test_resubmitted_batch_with_updates(db_session, user, make_integration):
    integration = await make_integration(user, marketplace="api", settings=UPDATE_SETTINGS)
    batch = [product_record(variations=[])]

    first = await ProductReconciler(db_session, user.id, integration=integration).reconcile(batch)
    unchanged = await ProductReconciler(db_session, user.id, integration=integration).reconcile(batch)
    changed = await ProductReconciler(db_session, user.id, integration=integration).reconcile(
        [product_record(variations=[], title="Renamed dress")]
    )

    assert first.created == 1
    assert (unchanged.created, unchanged.updated) == (0, 0)
    assert (changed.created, changed.updated) == (0, 1)
    assert await count(db_session, Product) == 1
    assert await count(db_session, ProductVariation) == 1
    title = (await db_session.execute(select(Product.title))).scalar()
    assert title == "Renamed dress"
