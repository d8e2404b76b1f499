# Orderbook API Client
"""
Client for the off-chain orderbook - fetching and posting orders
"""
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_fixed

from wyvern_trader.config import Settings
from wyvern_trader.constants import API_BASE_MAINNET, ORDERBOOK_PATH
from wyvern_trader.exceptions import OrderbookError, OrderNotFoundError
from wyvern_trader.models.orders import Order, order_from_json
from wyvern_trader.utils.logger import get_logger

logger = get_logger(__name__)

POST_RETRY_DELAY = 1.0


def _query_params(query: Dict[str, Any]) -> Dict[str, Any]:
    params = {}
    for key, value in query.items():
        if value is None:
            continue
        if isinstance(value, Enum):
            value = value.value
        elif isinstance(value, bool):
            value = str(value).lower()
        params[key] = value
    return params


class OrderbookClient:
    """Client for interacting with the orderbook API"""

    def __init__(
        self,
        api_base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        page_size: int = 20,
        timeout: float = 10.0,
        post_retries: int = 2,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (api_base_url or API_BASE_MAINNET).rstrip("/")
        self.orders_endpoint = f"{self.base_url}{ORDERBOOK_PATH}/orders/"
        self.post_endpoint = f"{self.base_url}{ORDERBOOK_PATH}/orders/post/"
        self.api_key = api_key
        self.page_size = page_size
        self.timeout = timeout
        self.post_retries = post_retries
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs) -> "OrderbookClient":
        return cls(
            api_base_url=settings.API_BASE_URL,
            api_key=settings.API_KEY,
            page_size=settings.ORDERBOOK_PAGE_SIZE,
            timeout=settings.REQUEST_TIMEOUT,
            post_retries=settings.ORDERBOOK_POST_RETRIES,
            **kwargs,
        )

    def _client(self) -> httpx.AsyncClient:
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["X-API-KEY"] = self.api_key
        return httpx.AsyncClient(headers=headers, timeout=self.timeout, transport=self._transport)

    @staticmethod
    def _check_response(response: httpx.Response, url: str) -> None:
        if response.status_code != 200:
            logger.error(f"Orderbook request to {url} failed ({response.status_code}): {response.text}")
            raise OrderbookError(
                f"Unable to get data from {url} ({response.status_code}): {response.text[:200]}",
                status_code=response.status_code,
            )

    async def get_orders(self, query: Optional[Dict[str, Any]] = None, page: int = 1) -> Tuple[List[Order], int]:
        """Fetch one page of orders matching a query"""
        params: Dict[str, Any] = {
            "limit": self.page_size,
            "offset": (page - 1) * self.page_size,
        }
        params.update(_query_params(query or {}))

        async with self._client() as client:
            try:
                response = await client.get(self.orders_endpoint, params=params)
            except httpx.HTTPError as e:
                logger.error(f"Error fetching orders: {e}")
                raise OrderbookError(f"Unable to get data from {self.orders_endpoint}: {e}", cause=e) from e

        self._check_response(response, self.orders_endpoint)
        data = response.json()
        orders = [order_from_json(o) for o in data.get("orders", [])]
        return orders, int(data.get("count", len(orders)))

    async def get_order(self, query: Optional[Dict[str, Any]] = None) -> Order:
        """First order matching a query"""
        orders, _ = await self.get_orders(query)
        if not orders:
            raise OrderNotFoundError("Not found: no matching order found")
        return orders[0]

    async def post_order(self, order_json: Dict[str, Any]) -> Order:
        """
        Send an order to the orderbook.

        Transport failures are retried up to post_retries times; an error
        status from the API is never retried.
        """
        response = None
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.post_retries + 1),
                wait=wait_fixed(POST_RETRY_DELAY),
                retry=retry_if_exception_type(httpx.TransportError),
                reraise=True,
            ):
                with attempt:
                    async with self._client() as client:
                        response = await client.post(self.post_endpoint, json=order_json)
        except httpx.HTTPError as e:
            logger.error(f"Error posting order: {e}")
            raise OrderbookError(f"Unable to post order to {self.post_endpoint}: {e}", cause=e) from e

        self._check_response(response, self.post_endpoint)
        order = order_from_json(response.json())
        logger.info(f"Order posted: {order.hash}")
        return order
