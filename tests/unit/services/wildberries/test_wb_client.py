# tests/unit/services/wildberries/test_wb_client.py
import pytest
import httpx
from datetime import datetime, timezone

from marketsync.services.wildberries.client import WildberriesClient
from marketsync.core.exceptions import MarketplaceAPIError, ResponseError, TokenRequiredError


def _response(mocker, status_code=200, body=None, text=None):
    response = mocker.MagicMock()
    response.status_code = status_code
    response.json.return_value = body if body is not None else {}
    response.text = text if text is not None else ("{}" if body is None else "body")
    return response


def _patch_client(mocker, response):
    mock_client = mocker.patch("httpx.AsyncClient")
    mock_client.return_value.__aenter__.return_value.request.return_value = response
    return mock_client


"""
1. Client construction and headers
"""

def test_wb_client_requires_token():
    with pytest.raises(TokenRequiredError):
        WildberriesClient(token="")


@pytest.mark.asyncio
async def test_wb_request_sends_token_header(mocker):
    mock_client = _patch_client(mocker, _response(mocker, body={"data": []}))

    client = WildberriesClient(token="wb-token", base_url="https://wb.test/")
    result = await client._make_request("GET", "/content/v1/object/all", params={"top": 10})

    _, kwargs = mock_client.return_value.__aenter__.return_value.request.call_args
    assert kwargs["headers"]["Authorization"] == "wb-token"
    assert kwargs["url"] == "https://wb.test/content/v1/object/all"
    assert kwargs["params"] == {"top": 10}
    assert result == {"data": []}


"""
2. Error mapping
"""

@pytest.mark.asyncio
@pytest.mark.parametrize("status_code", [401, 403])
async def test_wb_rejected_token(mocker, status_code):
    _patch_client(mocker, _response(mocker, status_code=status_code, text="unauthorized"))

    client = WildberriesClient(token="wb-token")
    with pytest.raises(TokenRequiredError):
        await client._make_request("GET", "api/v3/warehouses")


@pytest.mark.asyncio
async def test_wb_client_error_uses_message_and_code(mocker):
    body = {"code": "IncorrectRequest", "message": "Invalid request parameters"}
    _patch_client(mocker, _response(mocker, status_code=400, body=body))

    client = WildberriesClient(token="wb-token")
    with pytest.raises(ResponseError) as exc_info:
        await client._make_request("POST", "api/v3/supplies", data={"name": "x"})

    assert "Invalid request parameters" in exc_info.value.user_message
    assert "IncorrectRequest" in exc_info.value.user_message


@pytest.mark.asyncio
async def test_wb_server_error(mocker):
    _patch_client(mocker, _response(mocker, status_code=502, text="Bad Gateway"))

    client = WildberriesClient(token="wb-token")
    with pytest.raises(MarketplaceAPIError) as exc_info:
        await client._make_request("GET", "api/v3/orders/new")

    assert "502" in str(exc_info.value)


@pytest.mark.asyncio
async def test_wb_error_flag_in_success_body(mocker):
    body = {"data": None, "error": True, "errorText": "Vendor code already exists"}
    _patch_client(mocker, _response(mocker, body=body))

    client = WildberriesClient(token="wb-token")
    with pytest.raises(ResponseError) as exc_info:
        await client._make_request("POST", "content/v1/cards/upload", data=[])

    assert exc_info.value.user_message == "Vendor code already exists"


@pytest.mark.asyncio
async def test_wb_network_error(mocker):
    mock_client = mocker.patch("httpx.AsyncClient")
    mock_client.return_value.__aenter__.return_value.request.side_effect = \
        httpx.RequestError("Connection failed")

    client = WildberriesClient(token="wb-token")
    with pytest.raises(MarketplaceAPIError) as exc_info:
        await client._make_request("GET", "api/v3/warehouses")

    assert "Network error" in str(exc_info.value)


@pytest.mark.asyncio
async def test_wb_empty_response_decodes_to_dict(mocker):
    _patch_client(mocker, _response(mocker, status_code=204, text=""))

    client = WildberriesClient(token="wb-token")
    result = await client._make_request("PATCH", "api/v3/orders/1/cancel")

    assert result == {}


"""
3. Endpoint helpers
"""

@pytest.mark.asyncio
async def test_wb_get_orders_follows_cursor(mocker):
    pages = [
        {"next": 55, "orders": [{"id": 1}, {"id": 2}]},
        {"next": 0, "orders": [{"id": 3}]},
    ]
    mock_make_request = mocker.patch.object(WildberriesClient, "_make_request", side_effect=pages)

    client = WildberriesClient(token="wb-token")
    orders = await client.get_orders(datetime(2024, 1, 1, tzinfo=timezone.utc))

    assert [o["id"] for o in orders] == [1, 2, 3]
    assert mock_make_request.call_count == 2
    second_params = mock_make_request.call_args_list[1].kwargs["params"]
    assert second_params["next"] == 55


@pytest.mark.asyncio
async def test_wb_get_order_statuses_skips_empty_request(mocker):
    mock_make_request = mocker.patch.object(WildberriesClient, "_make_request")

    client = WildberriesClient(token="wb-token")
    assert await client.get_order_statuses([]) == []
    mock_make_request.assert_not_called()


@pytest.mark.asyncio
async def test_wb_update_stocks_endpoint(mocker):
    mock_make_request = mocker.patch.object(WildberriesClient, "_make_request", return_value={})

    client = WildberriesClient(token="wb-token")
    await client.update_stocks("507", [{"sku": "2000000000011", "amount": 3}])

    mock_make_request.assert_called_once_with(
        "PUT", "api/v3/stocks/507", data={"stocks": [{"sku": "2000000000011", "amount": 3}]}
    )


@pytest.mark.asyncio
async def test_wb_card_errors_keyed_by_vendor_code(mocker):
    mocker.patch.object(WildberriesClient, "_make_request", return_value={"data": [
        {"vendorCode": "A-1", "errors": ["Bad photo"]},
        {"vendorCode": None, "errors": ["ignored"]},
    ]})

    client = WildberriesClient(token="wb-token")
    errors = await client.get_card_errors()

    assert errors == {"A-1": ["Bad photo"]}
