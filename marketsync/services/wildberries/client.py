import json
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx

from marketsync.core.config import get_settings
from marketsync.core.exceptions import MarketplaceAPIError, ResponseError, TokenRequiredError

logger = logging.getLogger(__name__)


class WildberriesClient:
    """
    Asynchronous client for the Wildberries supplier API.

    Covers the content API (categories, characteristics, dictionaries, cards,
    media), prices, FBS stocks and warehouses, and the marketplace API for
    orders, supplies and order statuses.

    Every call goes through `_make_request`, which maps failures onto the
    service error hierarchy:
        - missing token or HTTP 401/403 -> TokenRequiredError
        - other 4xx, or a 2xx body flagged with "error" -> ResponseError
        - 5xx, network errors, timeouts -> MarketplaceAPIError
    """

    MAX_PAGE_SIZE = 1000

    def __init__(self, token: Optional[str], base_url: Optional[str] = None, timeout: Optional[float] = None):
        """
        Args:
            token: Supplier API token (sent as the Authorization header)
            base_url: Override for the API root
            timeout: Request timeout in seconds

        Raises:
            TokenRequiredError: If the token is empty
        """
        if not token:
            raise TokenRequiredError()

        settings = get_settings()
        self.token = token
        self.base_url = (base_url or settings.WB_API_URL).rstrip('/')
        self.timeout = timeout or settings.WB_TIMEOUT

    def _get_headers(self) -> Dict[str, str]:
        return {
            "Authorization": self.token,
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    async def _make_request(
        self,
        method: str,
        endpoint: str,
        data: Optional[Any] = None,
        params: Optional[Dict] = None,
    ) -> Any:
        """
        Make a request to the Wildberries API

        Args:
            method: HTTP method (GET, POST, PUT, PATCH, DELETE)
            endpoint: API endpoint (without base URL)
            data: JSON body
            params: Query parameters

        Returns:
            Decoded JSON body ({} for empty responses)

        Raises:
            TokenRequiredError, ResponseError, MarketplaceAPIError
        """
        url = f"{self.base_url}/{endpoint.lstrip('/')}"

        logger.debug(f"Making {method} request to {url}")
        if params:
            logger.debug(f"Params: {params}")
        if data:
            logger.debug(f"Data: {json.dumps(data, default=str)[:500]}...")

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.request(
                    method=method,
                    url=url,
                    headers=self._get_headers(),
                    json=data,
                    params=params
                )
        except httpx.TimeoutException as e:
            logger.error(f"Wildberries timeout on {endpoint}: {str(e)}")
            raise MarketplaceAPIError(f"Request timed out: {str(e)}")
        except httpx.RequestError as e:
            logger.error(f"Wildberries network error on {endpoint}: {str(e)}")
            raise MarketplaceAPIError(f"Network error: {str(e)}")

        if response.status_code in (401, 403):
            logger.warning(f"Wildberries rejected token on {endpoint} ({response.status_code})")
            raise TokenRequiredError(message=f"Wildberries returned {response.status_code}: {response.text}")

        body = self._decode(response)

        if 400 <= response.status_code < 500:
            message = response.text
            code = ''
            if isinstance(body, dict):
                message = body.get('message') or body.get('errorText') or response.text
                code = body.get('code') or ''
            if code:
                message = f"{message} Wildberries error code: {code}"
            logger.error(f"Wildberries API error on {endpoint}: {message}")
            raise ResponseError(message)

        if response.status_code >= 500:
            logger.error(f"Wildberries server error on {endpoint}: {response.status_code} {response.text}")
            raise MarketplaceAPIError(f"Request failed: {response.status_code} {response.text}")

        if isinstance(body, dict) and body.get('error'):
            raise ResponseError(self._error_text(body))

        return body

    @staticmethod
    def _decode(response) -> Any:
        if response.status_code == 204 or not response.text:
            return {}
        try:
            return response.json()
        except ValueError:
            return {}

    @staticmethod
    def _error_text(body: Dict[str, Any]) -> str:
        if body.get('errorText'):
            return body['errorText']
        error = body.get('error')
        if isinstance(error, dict):
            return error.get('data', {}).get('cause', {}).get('err', '') or str(error)
        return str(error)

    # Content: categories and characteristics

    async def get_all_categories(self, limit: int = 10) -> List[Dict[str, Any]]:
        """
        Get the Wildberries subject (category) list

        Returns:
            List of {objectID, objectName, parentID, parentName, isVisible}
        """
        body = await self._make_request("GET", "content/v1/object/all", params={"top": limit})
        return body.get('data') or []

    async def get_category_characteristics(self, category: str) -> List[Dict[str, Any]]:
        body = await self._make_request("GET", f"content/v1/object/characteristics/{category}")
        return body.get('data') or []

    async def get_dictionary(self, dictionary: str, top: int = 5000, pattern: Optional[str] = None) -> List[Any]:
        """Get values of a content directory such as /colors or /countries"""
        params: Dict[str, Any] = {"top": top}
        if pattern:
            params["pattern"] = pattern
        body = await self._make_request("GET", f"content/v1/directory/{dictionary.strip('/')}", params=params)
        return body.get('data') or []

    # Content: cards

    async def create_cards(self, cards: List[Dict[str, Any]]) -> Dict[str, Any]:
        """
        Create product cards. Each element is a list of variations sharing one card.
        """
        return await self._make_request("POST", "content/v1/cards/upload", data=cards)

    async def update_cards(self, cards: List[Dict[str, Any]]) -> Dict[str, Any]:
        return await self._make_request("POST", "content/v1/cards/update", data=cards)

    async def add_nomenclatures_to_card(self, vendor_code: str, cards: List[Dict[str, Any]]) -> Dict[str, Any]:
        return await self._make_request(
            "POST", "content/v1/cards/upload/add",
            data={"vendorCode": vendor_code, "cards": cards}
        )

    async def get_cards_by_vendor_codes(self, vendor_codes: List[str]) -> List[Dict[str, Any]]:
        if not vendor_codes:
            return []
        body = await self._make_request("POST", "content/v1/cards/filter", data={"vendorCodes": vendor_codes})
        return body.get('data') or []

    async def get_card_errors(self) -> Dict[str, List[str]]:
        """
        Get cards rejected by Wildberries moderation

        Returns:
            Dict mapping vendor code to its error messages
        """
        body = await self._make_request("GET", "content/v1/cards/error/list")
        errors: Dict[str, List[str]] = {}
        for item in body.get('data') or []:
            vendor_code = item.get('vendorCode')
            if vendor_code:
                errors[vendor_code] = item.get('errors') or []
        return errors

    async def get_cards_page(self, limit: int = 1000, cursor: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        One page of the seller catalog

        Returns:
            {"cards": [...], "cursor": {"updatedAt", "nmID", "total"}}
        """
        request_cursor = {"limit": min(limit, self.MAX_PAGE_SIZE)}
        if cursor:
            request_cursor.update({k: v for k, v in cursor.items() if k in ("updatedAt", "nmID")})
        body = await self._make_request(
            "POST", "content/v1/cards/cursor/list",
            data={"sort": {"cursor": request_cursor, "filter": {"withPhoto": -1}}}
        )
        return body.get('data') or {"cards": [], "cursor": {"total": 0}}

    async def get_all_cards(self, page_size: int = 1000) -> List[Dict[str, Any]]:
        cards: List[Dict[str, Any]] = []
        cursor: Optional[Dict[str, Any]] = None
        while True:
            page = await self.get_cards_page(page_size, cursor)
            page_cards = page.get('cards') or []
            cards.extend(page_cards)
            cursor = page.get('cursor') or {}
            if len(page_cards) < min(page_size, self.MAX_PAGE_SIZE) or not cursor.get('nmID'):
                break
        return cards

    async def get_products_total_count(self) -> int:
        cards = await self.get_all_cards()
        return len(cards)

    async def generate_barcodes(self, count: int = 1) -> List[str]:
        body = await self._make_request("POST", "content/v1/barcodes", data={"count": count})
        return body.get('data') or []

    async def media_save(self, vendor_code: str, urls: List[str]) -> bool:
        await self._make_request("POST", "content/v1/media/save", data={"vendorCode": vendor_code, "data": urls})
        return True

    # Prices and stocks

    async def get_prices(self) -> List[Dict[str, Any]]:
        body = await self._make_request("GET", "public/api/v1/info", params={"quantity": 0})
        return body if isinstance(body, list) else []

    async def update_prices(self, prices: List[Dict[str, Any]]) -> bool:
        """
        Args:
            prices: [{"nmId": int, "price": int}]
        """
        await self._make_request("POST", "public/api/v1/prices", data=prices)
        return True

    async def update_stocks(self, warehouse_id: str, stocks: List[Dict[str, Any]]) -> bool:
        """
        Args:
            warehouse_id: Seller warehouse id
            stocks: [{"sku": barcode, "amount": int}]
        """
        await self._make_request("PUT", f"api/v3/stocks/{warehouse_id}", data={"stocks": stocks})
        return True

    async def get_stocks(self, warehouse_id: str, skus: List[str]) -> List[Dict[str, Any]]:
        body = await self._make_request("POST", f"api/v3/stocks/{warehouse_id}", data={"skus": skus})
        return body.get('stocks') or []

    async def get_warehouses(self) -> List[Dict[str, Any]]:
        body = await self._make_request("GET", "api/v3/warehouses")
        return body if isinstance(body, list) else []

    # Orders

    async def get_orders(self, date_from: datetime, limit: int = 10000) -> List[Dict[str, Any]]:
        """
        Get orders created since date_from, following the `next` cursor.

        A single page holds at most 1000 orders.
        """
        orders: List[Dict[str, Any]] = []
        next_cursor = 0
        while len(orders) < limit:
            params = {
                "next": next_cursor,
                "limit": min(limit - len(orders), self.MAX_PAGE_SIZE),
                "dateFrom": int(date_from.timestamp()),
            }
            body = await self._make_request("GET", "api/v3/orders", params=params)
            page = body.get('orders') or []
            orders.extend(page)
            next_cursor = body.get('next') or 0
            if not page or not next_cursor:
                break
        return orders

    async def get_new_orders(self) -> List[Dict[str, Any]]:
        body = await self._make_request("GET", "api/v3/orders/new")
        return body.get('orders') or []

    async def get_order_statuses(self, order_ids: List[int]) -> List[Dict[str, Any]]:
        """
        Returns:
            [{"id", "supplierStatus", "wbStatus"}]
        """
        if not order_ids:
            return []
        body = await self._make_request("POST", "api/v3/orders/status", data={"orders": order_ids})
        return body.get('orders') or []

    async def cancel_order(self, order_id: int) -> bool:
        await self._make_request("PATCH", f"api/v3/orders/{order_id}/cancel")
        return True

    async def get_order_stickers(self, order_ids: List[int], sticker_type: str = "png", width: int = 58, height: int = 40) -> List[Dict[str, Any]]:
        body = await self._make_request(
            "POST", "api/v3/orders/stickers",
            data={"orders": order_ids},
            params={"type": sticker_type, "width": width, "height": height}
        )
        return body.get('stickers') or []

    # Supplies

    async def get_supplies(self, limit: int = 10000) -> List[Dict[str, Any]]:
        supplies: List[Dict[str, Any]] = []
        next_cursor = 0
        while len(supplies) < limit:
            params = {"next": next_cursor, "limit": min(limit - len(supplies), self.MAX_PAGE_SIZE)}
            body = await self._make_request("GET", "api/v3/supplies", params=params)
            page = body.get('supplies') or []
            supplies.extend(page)
            next_cursor = body.get('next') or 0
            if not page or not next_cursor:
                break
        return supplies

    async def open_supply(self, name: str = '') -> Optional[str]:
        body = await self._make_request("POST", "api/v3/supplies", data={"name": name})
        return body.get('id')

    async def delete_supply(self, supply_id: str) -> bool:
        await self._make_request("DELETE", f"api/v3/supplies/{supply_id}")
        return True

    async def get_supply_orders(self, supply_id: str) -> List[Dict[str, Any]]:
        body = await self._make_request("GET", f"api/v3/supplies/{supply_id}/orders")
        return body.get('orders') or []

    async def add_order_to_supply(self, supply_id: str, order_id: int) -> bool:
        await self._make_request("PATCH", f"api/v3/supplies/{supply_id}/orders/{order_id}")
        return True

    async def deliver_supply(self, supply_id: str) -> bool:
        await self._make_request("PATCH", f"api/v3/supplies/{supply_id}/deliver")
        return True
