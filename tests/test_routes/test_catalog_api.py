# tests/test_routes/test_catalog_api.py
import pytest
from sqlalchemy import select

from marketsync.core.enums import JobType
from marketsync.models.category import Category
from marketsync.models.price import Price
from marketsync.models.product import Product, ProductVariation
from marketsync.models.sync_job import SyncJob
from marketsync.services.reconciliation import ProductReconciler


"""
1. Authentication and envelopes
"""

@pytest.mark.asyncio
async def test_missing_token_is_rejected(api_client, user):
    response = await api_client.get("/api/products")

    assert response.status_code == 401
    assert response.json() == {"success": False, "message": "API token is required", "errors": None, "data": []}


@pytest.mark.asyncio
async def test_unknown_token_is_rejected(api_client, user):
    response = await api_client.get("/api/products", headers={"X-Api-Token": "nope"})

    assert response.status_code == 401
    assert response.json()["message"] == "Invalid API token"


@pytest.mark.asyncio
async def test_batch_without_records(api_client, user, auth_headers):
    response = await api_client.post("/api/products", json={"items": []}, headers=auth_headers)

    assert response.status_code == 400
    assert response.json()["message"] == "Request must contain a non-empty 'products' list"


@pytest.mark.asyncio
async def test_unexpected_error_is_hidden(api_client, user, auth_headers, mocker):
    mocker.patch.object(ProductReconciler, "reconcile", side_effect=RuntimeError("secret detail"))

    response = await api_client.post("/api/products", json={"products": [{"sku": "A"}]}, headers=auth_headers)

    assert response.status_code == 500
    assert response.json()["message"] == "System error"
    assert "secret detail" not in response.text


@pytest.mark.asyncio
async def test_validation_errors_use_envelope(api_client, user, auth_headers):
    response = await api_client.post("/api/products/status", json={"product_ids": [], "status": "gone"}, headers=auth_headers)

    assert response.status_code == 422
    body = response.json()
    assert body["success"] is False
    assert body["message"] == "The given data was invalid"
    assert set(body["errors"]) == {"product_ids", "status"}


"""
2. Products
"""

@pytest.mark.asyncio
async def test_store_products_reports_rejected_records(api_client, db_session, user, auth_headers):
    payload = {"products": [
        {"external_id": "1", "sku": "DRESS-1", "title": "Dress", "variations": [{"vendor_code": "DRESS-1-S", "items": [{"barcode": "4600000000011"}]}]},
        {"external_id": "2", "sku": "", "title": "Broken"},
    ]}

    response = await api_client.post("/api/products", json=payload, headers=auth_headers)

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["all"] == 2
    assert data["created"] == 1
    assert data["additionalInfo"][0]["index"] == 1
    assert "sku" in data["additionalInfo"][0]["field_errors"]

    codes = (await db_session.execute(select(ProductVariation.vendor_code))).scalars().all()
    assert codes == ["DRESS-1-S"]


@pytest.mark.asyncio
async def test_list_products_is_scoped_to_user(api_client, make_user, user, make_product, auth_headers):
    other = await make_user()
    await make_product(other, sku="FOREIGN")
    await make_product(user, sku="MINE")

    response = await api_client.get("/api/products", headers=auth_headers)

    assert [p["sku"] for p in response.json()["data"]] == ["MINE"]


@pytest.mark.asyncio
async def test_delete_products(api_client, db_session, user, make_product, auth_headers):
    product = await make_product(user)
    product_id = product.id

    response = await api_client.request("DELETE", "/api/products", json={"products": [{"id": product_id}, {"id": 999}]}, headers=auth_headers)

    data = response.json()["data"]
    assert data["deleted"] == 1
    assert [info["index"] for info in data["additionalInfo"]] == [1]
    assert (await db_session.execute(select(Product.id))).scalars().all() == []


@pytest.mark.asyncio
async def test_sync_external_ids_validates_every_record(api_client, user, make_product, auth_headers):
    product = await make_product(user)

    response = await api_client.post(
        "/api/products/sync",
        json={"products": [{"product_id": product.id, "external_id": "X-1"}, {"product_id": "abc"}]},
        headers=auth_headers,
    )

    assert response.status_code == 400
    errors = response.json()["errors"]
    assert "products.1.product_id" in errors
    assert "products.1.external_id" in errors


@pytest.mark.asyncio
async def test_status_change_queues_propagation(api_client, db_session, user, make_product, auth_headers):
    product = await make_product(user)

    response = await api_client.post(
        "/api/products/status", json={"product_ids": [product.id], "status": "unpublished"}, headers=auth_headers
    )

    assert response.status_code == 200
    assert response.json()["data"] == [{"id": product.id, "status": "unpublished"}]
    job = (await db_session.execute(select(SyncJob))).scalars().one()
    assert job.job_type == JobType.PRODUCT_STATUS_CHANGED.value


@pytest.mark.asyncio
async def test_status_change_of_foreign_product(api_client, make_user, user, make_product, auth_headers):
    other = await make_user()
    product = await make_product(other)

    response = await api_client.post(
        "/api/products/status", json={"product_ids": [product.id], "status": "unpublished"}, headers=auth_headers
    )

    assert response.status_code == 403


"""
3. Categories and prices
"""

@pytest.mark.asyncio
async def test_store_and_delete_categories(api_client, db_session, user, auth_headers):
    response = await api_client.post(
        "/api/categories",
        json={"categories": [
            {"external_id": "10", "title": "Clothes"},
            {"external_id": "11", "parent_id": "10", "title": "Dresses"},
        ]},
        headers=auth_headers,
    )
    assert response.json()["data"]["created"] == 2

    response = await api_client.request("DELETE", "/api/categories", json={"categories": [{"external_id": "10"}]}, headers=auth_headers)
    assert response.json()["data"]["deleted"] == 1

    remaining = (await db_session.execute(select(Category))).scalars().all()
    assert [(c.title, c.parent_id) for c in remaining] == [("Dresses", None)]


@pytest.mark.asyncio
async def test_store_prices_disabled_by_settings(api_client, user, make_product, auth_headers):
    await make_product(user, external_id="1001")

    response = await api_client.post(
        "/api/prices", json={"products": [{"external_id": "1001", "stocks": {"1": 5}}]}, headers=auth_headers
    )

    assert response.status_code == 400
    assert response.json()["message"] == "Price and stock updates are disabled in the integration import settings"


@pytest.mark.asyncio
async def test_store_prices_binds_price_list(api_client, db_session, user, make_integration, make_product, auth_headers):
    await make_integration(user, marketplace="api", settings={"import": {"update_prices": "1"}})
    product = await make_product(user, external_id="1001")

    response = await api_client.post(
        "/api/prices",
        json={"products": [{"external_id": "1001", "prices": {"default": {"base": 1990}}}]},
        headers=auth_headers,
    )

    assert response.status_code == 200
    assert response.json()["data"]["updated"] == 1
    price = (await db_session.execute(select(Price))).scalars().one()
    assert price.item_id == product.id
    assert price.base == 1990
    job = (await db_session.execute(select(SyncJob))).scalars().one()
    assert job.job_type == JobType.UPDATE_PRICES_STOCKS.value
    assert job.payload["product_ids"] == [product.id]
