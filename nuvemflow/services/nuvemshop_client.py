"""Nuvemshop API client for reading store orders"""

import logging

import httpx

from nuvemflow.config import AppConfig, config
from nuvemflow.models.order import AuthToken, Order

logger = logging.getLogger(__name__)


class UpstreamFetchError(Exception):
    """Raised when the Nuvemshop API cannot be read (network, auth, rate limit, 5xx)"""

    def __init__(self, message: str, status_code: int | None = None):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


def _describe_status(response: httpx.Response) -> str:
    """Human-readable reason for a failed upstream response"""
    status = response.status_code
    if status in (401, 403):
        return f"Nuvemshop rejected the credentials (HTTP {status})"
    if status == 429:
        retry_after = response.headers.get("retry-after")
        suffix = f", retry after {retry_after}s" if retry_after else ""
        return f"Nuvemshop rate limit exceeded (HTTP 429{suffix})"
    return f"Nuvemshop request failed (HTTP {status}): {response.text[:200]}"


class NuvemshopClient:
    """Read orders from a single Nuvemshop store"""

    def __init__(
        self,
        store_id: str | None = None,
        access_token: str | None = None,
        api_url: str | None = None,
        page_size: int | None = None,
        max_pages: int | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        settings: AppConfig | None = None,
    ):
        """
        Initialize the client

        Args:
            store_id: Nuvemshop store id (defaults to STORE_ID)
            access_token: API access token (defaults to NUVEMSHOP_TOKEN)
            api_url: API base URL
            page_size: Orders requested per page (max 200)
            max_pages: Upper bound on pages fetched by fetch_orders()
            transport: Optional httpx transport, used by tests
            settings: Configuration for everything not passed explicitly
                (defaults to the global config)
        """
        self.settings = settings or config
        self.store_id = store_id or self.settings.store_id
        self.access_token = access_token or self.settings.nuvemshop_token
        self.api_url = (api_url or self.settings.nuvemshop_api_url).rstrip("/")
        self.page_size = page_size or self.settings.nuvemshop_page_size
        self.max_pages = max_pages or self.settings.nuvemshop_max_pages

        # Nuvemshop uses the non-standard "Authentication" header
        headers = {
            "User-Agent": self.settings.nuvemshop_user_agent,
            "Content-Type": "application/json",
        }
        if self.access_token:
            headers["Authentication"] = f"bearer {self.access_token}"

        self.client = httpx.AsyncClient(
            headers=headers,
            timeout=httpx.Timeout(self.settings.nuvemshop_timeout),
            transport=transport,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.store_id and self.access_token)

    def _orders_url(self) -> str:
        return f"{self.api_url}/{self.store_id}/orders"

    def _require_credentials(self) -> None:
        if not self.is_configured:
            raise UpstreamFetchError("STORE_ID and NUVEMSHOP_TOKEN must be configured")

    async def _get(self, url: str, params: dict | None = None) -> httpx.Response:
        """GET with network errors converted to UpstreamFetchError"""
        try:
            return await self.client.get(url, params=params)
        except httpx.RequestError as e:
            raise UpstreamFetchError(f"Network error contacting Nuvemshop: {e}") from e

    async def fetch_orders(self) -> list[Order]:
        """
        Fetch the full current order set, page by page

        Pages are requested sequentially until a short page, an empty page or
        the "past the last page" 404 Nuvemshop returns.

        Returns:
            List of orders across all pages

        Raises:
            UpstreamFetchError: On network, auth, rate-limit or server failures
        """
        self._require_credentials()

        orders: list[Order] = []
        for page in range(1, self.max_pages + 1):
            response = await self._get(
                self._orders_url(), params={"page": page, "per_page": self.page_size}
            )

            if response.status_code == 404:
                # Past the last page; on page 1 it means the store has no orders
                if page == 1:
                    logger.info("Nuvemshop reported no orders for this store")
                break
            if response.is_error:
                raise UpstreamFetchError(_describe_status(response), response.status_code)

            batch = response.json()
            orders.extend(Order.model_validate(item) for item in batch)
            logger.debug(f"Fetched page {page} ({len(batch)} orders)")

            if len(batch) < self.page_size:
                break
        else:
            logger.warning(f"Stopped after {self.max_pages} pages; order list may be truncated")

        logger.info(f"Fetched {len(orders)} orders from Nuvemshop store {self.store_id}")
        return orders

    async def fetch_order(self, order_id: str | int) -> Order:
        """
        Fetch a single order

        Raises:
            UpstreamFetchError: If the order cannot be read (404 included)
        """
        self._require_credentials()

        response = await self._get(f"{self._orders_url()}/{order_id}")
        if response.is_error:
            raise UpstreamFetchError(_describe_status(response), response.status_code)
        return Order.model_validate(response.json())

    async def exchange_code(
        self, code: str, client_id: str | None = None, client_secret: str | None = None
    ) -> AuthToken:
        """
        Exchange an OAuth authorization code for a store access token

        Args:
            code: Authorization code received on the app callback
            client_id: App id (defaults to NUVEMSHOP_CLIENT_ID)
            client_secret: App secret (defaults to NUVEMSHOP_CLIENT_SECRET)

        Raises:
            UpstreamFetchError: If the token endpoint rejects the request
        """
        payload = {
            "client_id": client_id or self.settings.nuvemshop_client_id,
            "client_secret": client_secret or self.settings.nuvemshop_client_secret,
            "grant_type": "authorization_code",
            "code": code,
        }

        try:
            response = await self.client.post(self.settings.nuvemshop_auth_url, json=payload)
        except httpx.RequestError as e:
            raise UpstreamFetchError(f"Network error contacting Nuvemshop: {e}") from e

        if response.is_error:
            raise UpstreamFetchError(_describe_status(response), response.status_code)

        data = response.json()
        # The token endpoint answers 200 with an "error" body on invalid codes
        if "error" in data:
            message = data.get("error_description") or data["error"]
            raise UpstreamFetchError(f"Authorization failed: {message}", response.status_code)

        return AuthToken.model_validate(data)

    async def close(self):
        """Close the HTTP client"""
        await self.client.aclose()
