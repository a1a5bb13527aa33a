import json
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx

from marketsync.core.config import get_settings
from marketsync.core.exceptions import MarketplaceAPIError, ResponseError, TokenRequiredError

logger = logging.getLogger(__name__)


class OzonClient:
    """
    Asynchronous client for the Ozon Seller API.

    Authenticates with the Client-Id / Api-Key header pair. All endpoints are
    POST with a JSON body. Failures map onto the same error hierarchy as the
    Wildberries client so providers can treat both alike.
    """

    def __init__(self, client_id: Optional[str], api_key: Optional[str], base_url: Optional[str] = None, timeout: Optional[float] = None):
        if not client_id or not api_key:
            raise TokenRequiredError()

        settings = get_settings()
        self.client_id = str(client_id)
        self.api_key = api_key
        self.base_url = (base_url or settings.OZON_API_URL).rstrip('/')
        self.timeout = timeout or settings.OZON_TIMEOUT

    def _get_headers(self) -> Dict[str, str]:
        return {
            "Client-Id": self.client_id,
            "Api-Key": self.api_key,
            "Content-Type": "application/json",
        }

    async def _make_request(self, endpoint: str, data: Optional[Dict[str, Any]] = None, method: str = "POST") -> Dict[str, Any]:
        """
        Make a request to the Ozon API

        Args:
            endpoint: API path, e.g. "/v3/product/list"
            data: JSON body
            method: HTTP method, POST for nearly every Ozon endpoint

        Returns:
            Decoded JSON body

        Raises:
            TokenRequiredError, ResponseError, MarketplaceAPIError
        """
        url = f"{self.base_url}/{endpoint.lstrip('/')}"
        logger.debug(f"Making {method} request to {url}")
        if data:
            logger.debug(f"Data: {json.dumps(data, default=str)[:500]}...")

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.request(
                    method=method,
                    url=url,
                    headers=self._get_headers(),
                    json=data or {},
                )
        except httpx.TimeoutException as e:
            logger.error(f"Ozon timeout on {endpoint}: {str(e)}")
            raise MarketplaceAPIError(f"Request timed out: {str(e)}")
        except httpx.RequestError as e:
            logger.error(f"Ozon network error on {endpoint}: {str(e)}")
            raise MarketplaceAPIError(f"Network error: {str(e)}")

        if response.status_code in (401, 403):
            logger.warning(f"Ozon rejected credentials on {endpoint} ({response.status_code})")
            raise TokenRequiredError(message=f"Ozon returned {response.status_code}: {response.text}")

        try:
            body = response.json() if response.text else {}
        except ValueError:
            body = {}

        if 400 <= response.status_code < 500:
            message = body.get('message') if isinstance(body, dict) else None
            code = body.get('code') if isinstance(body, dict) else None
            message = message or response.text
            if code:
                message = f"{message} Ozon error code: {code}"
            logger.error(f"Ozon API error on {endpoint}: {message}")
            raise ResponseError(message)

        if response.status_code >= 500:
            logger.error(f"Ozon server error on {endpoint}: {response.status_code} {response.text}")
            raise MarketplaceAPIError(f"Request failed: {response.status_code} {response.text}")

        return body if isinstance(body, dict) else {"result": body}

    # Categories and attributes

    async def get_category_tree(self, language: str = "DEFAULT") -> List[Dict[str, Any]]:
        body = await self._make_request("/v1/description-category/tree", {"language": language})
        return body.get('result') or []

    async def get_category_attributes(self, description_category_id: int, type_id: int) -> List[Dict[str, Any]]:
        body = await self._make_request("/v1/description-category/attribute", {
            "description_category_id": description_category_id,
            "type_id": type_id,
            "language": "DEFAULT",
        })
        return body.get('result') or []

    async def get_attribute_values(
        self,
        attribute_id: int,
        description_category_id: int,
        type_id: int,
        last_value_id: int = 0,
        limit: int = 5000,
    ) -> Dict[str, Any]:
        """
        One page of an attribute's dictionary values

        Returns:
            {"result": [{"id", "value", "info", "picture"}], "has_next": bool}
        """
        return await self._make_request("/v1/description-category/attribute/values", {
            "attribute_id": attribute_id,
            "description_category_id": description_category_id,
            "type_id": type_id,
            "last_value_id": last_value_id,
            "limit": limit,
            "language": "DEFAULT",
        })

    # Products

    async def import_products(self, items: List[Dict[str, Any]]) -> Optional[str]:
        """
        Create or update products; Ozon upserts by offer_id.

        Returns:
            Asynchronous import task id
        """
        body = await self._make_request("/v3/product/import", {"items": items})
        task_id = (body.get('result') or {}).get('task_id')
        return str(task_id) if task_id else None

    async def get_import_info(self, task_id: str) -> Dict[str, Any]:
        body = await self._make_request("/v1/product/import/info", {"task_id": int(task_id)})
        return body.get('result') or {}

    async def get_product_list(self, last_id: str = "", limit: int = 1000, visibility: str = "ALL") -> Dict[str, Any]:
        body = await self._make_request("/v3/product/list", {
            "filter": {"visibility": visibility},
            "last_id": last_id,
            "limit": limit,
        })
        return body.get('result') or {"items": [], "total": 0, "last_id": ""}

    async def get_all_product_ids(self) -> List[Dict[str, Any]]:
        items: List[Dict[str, Any]] = []
        last_id = ""
        while True:
            page = await self.get_product_list(last_id=last_id)
            page_items = page.get('items') or []
            items.extend(page_items)
            last_id = page.get('last_id') or ""
            if not page_items or not last_id:
                break
        return items

    async def get_products_info(self, offer_ids: List[str]) -> List[Dict[str, Any]]:
        if not offer_ids:
            return []
        body = await self._make_request("/v3/product/info/list", {"offer_id": offer_ids})
        return body.get('items') or []

    async def get_products_total_count(self) -> int:
        page = await self.get_product_list(limit=1)
        return int(page.get('total') or 0)

    async def update_prices(self, prices: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """
        Args:
            prices: [{"offer_id", "price", "old_price"}], prices as strings
        """
        body = await self._make_request("/v1/product/import/prices", {"prices": prices})
        return body.get('result') or []

    async def update_stocks(self, stocks: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """
        Args:
            stocks: [{"offer_id", "stock", "warehouse_id"}], at most 100 per call
        """
        body = await self._make_request("/v2/products/stocks", {"stocks": stocks})
        return body.get('result') or []

    async def import_pictures(self, product_id: int, images: List[str]) -> Dict[str, Any]:
        body = await self._make_request("/v1/product/pictures/import", {"product_id": product_id, "images": images})
        return body.get('result') or {}

    async def get_warehouses(self) -> List[Dict[str, Any]]:
        body = await self._make_request("/v1/warehouse/list", {})
        return body.get('result') or []

    # FBS postings

    async def get_fbs_postings(self, since: datetime, to: datetime, status: Optional[str] = None, page_size: int = 1000) -> List[Dict[str, Any]]:
        postings: List[Dict[str, Any]] = []
        offset = 0
        while True:
            filter_data: Dict[str, Any] = {"since": since.isoformat(), "to": to.isoformat()}
            if status:
                filter_data["status"] = status
            body = await self._make_request("/v3/posting/fbs/list", {
                "dir": "ASC",
                "filter": filter_data,
                "limit": page_size,
                "offset": offset,
                "with": {"analytics_data": False, "financial_data": False},
            })
            result = body.get('result') or {}
            page = result.get('postings') or []
            postings.extend(page)
            if not result.get('has_next') or not page:
                break
            offset += len(page)
        return postings

    async def cancel_posting(self, posting_number: str, reason_id: int = 402, message: str = "") -> bool:
        await self._make_request("/v2/posting/fbs/cancel", {
            "posting_number": posting_number,
            "cancel_reason_id": reason_id,
            "cancel_reason_message": message,
        })
        return True

    async def ship_posting(self, posting_number: str, products: List[Dict[str, Any]]) -> List[str]:
        """
        Pack a posting into one package; moves it to awaiting_deliver.

        Args:
            products: [{"product_id", "quantity"}]
        """
        body = await self._make_request("/v4/posting/fbs/ship", {
            "posting_number": posting_number,
            "packages": [{"products": products}],
        })
        return body.get('result') or []
