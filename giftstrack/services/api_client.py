"""
giftstrack/services/api_client.py

Purpose: HTTP access to the customer management API

- Shared httpx.AsyncClient with the client-side timeout
- Attaches the session's bearer token
- Normalizes the {success, data, message, errors} envelope
- Maps transport failures, timeouts and error statuses to client exceptions
- 401 forces a logout before the error propagates
"""

import httpx
from typing import Any, Awaitable, Callable, Dict, Optional

from giftstrack.core.config import settings, Settings
from giftstrack.core.exceptions import ApiError, NetworkError, RequestTimeoutError, SessionExpiredError
from giftstrack.core.logging import get_logger
from giftstrack.schemas.response import ApiResponse

logger = get_logger(__name__)


class ApiClient:
    """
    Thin async wrapper over httpx for the PHP API.
    """

    def __init__(
        self,
        token_provider: Callable[[], Optional[str]],
        on_unauthorized: Optional[Callable[[], Awaitable[None]]] = None,
        client: Optional[httpx.AsyncClient] = None,
        config: Optional[Settings] = None,
    ):
        self._config = config or settings
        self._token_provider = token_provider
        self._on_unauthorized = on_unauthorized
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=self._config.API_BASE_URL,
            timeout=self._config.API_TIMEOUT_SECONDS,
            headers={"Content-Type": "application/json", "Accept": "application/json"},
        )

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def _headers(self) -> Dict[str, str]:
        token = self._token_provider()
        return {"Authorization": f"Bearer {token}"} if token else {}

    async def request(
        self,
        method: str,
        url: str,
        json: Any = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> ApiResponse:
        """
        Sends a request and normalizes the response envelope.

        Raises:
            RequestTimeoutError: Client-side timeout elapsed
            NetworkError: No response received
            SessionExpiredError: Server answered 401
            ApiError: Any other non-2xx status
        """
        try:
            response = await self._client.request(
                method, url, json=json, params=params, headers=self._headers()
            )
        except httpx.TimeoutException as e:
            logger.error(f"Request timed out: {method} {url}")
            raise RequestTimeoutError(details=str(e) or None) from e
        except httpx.TransportError as e:
            logger.error(f"Network error: {method} {url}: {e}")
            raise NetworkError(details=str(e) or None) from e

        if response.status_code == 401:
            logger.warning(f"Unauthorized response from {url}", extra={"reason": "unauthorized"})
            if self._on_unauthorized is not None:
                await self._on_unauthorized()
            raise SessionExpiredError()

        if response.is_error:
            raise self._api_error(response)

        return self._normalize(response)

    def _api_error(self, response: httpx.Response) -> ApiError:
        body = self._json_body(response)
        status = response.status_code
        message = body.get("error") or body.get("message") or "An error occurred"
        if status == 500:
            message = f"Server error: {message}"
        elif status == 503:
            message = "Service temporarily unavailable. Please try again later."
        logger.error(
            f"API error response: {status} {response.request.url}",
            extra={"status": status},
        )
        return ApiError(message, status_code=status, details=body.get("errors"))

    @staticmethod
    def _json_body(response: httpx.Response) -> Dict[str, Any]:
        try:
            body = response.json()
        except ValueError:
            return {}
        return body if isinstance(body, dict) else {}

    @staticmethod
    def _normalize(response: httpx.Response) -> ApiResponse:
        try:
            body = response.json()
        except ValueError:
            return ApiResponse(success=True, data=response.text or None)
        if isinstance(body, dict) and "success" in body:
            return ApiResponse(
                success=bool(body.get("success")),
                data=body.get("data"),
                message=body.get("message") or body.get("error"),
                errors=body.get("errors") if isinstance(body.get("errors"), dict) else None,
            )
        return ApiResponse(success=True, data=body)

    async def get(self, url: str, params: Optional[Dict[str, Any]] = None) -> ApiResponse:
        return await self.request("GET", url, params=params)

    async def post(self, url: str, json: Any = None, params: Optional[Dict[str, Any]] = None) -> ApiResponse:
        return await self.request("POST", url, json=json, params=params)

    async def put(self, url: str, json: Any = None, params: Optional[Dict[str, Any]] = None) -> ApiResponse:
        return await self.request("PUT", url, json=json, params=params)

    async def patch(self, url: str, json: Any = None, params: Optional[Dict[str, Any]] = None) -> ApiResponse:
        return await self.request("PATCH", url, json=json, params=params)

    async def delete(self, url: str, params: Optional[Dict[str, Any]] = None) -> ApiResponse:
        return await self.request("DELETE", url, params=params)

    async def get_data(self, url: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """
        GETs `url` and returns the envelope's data.

        Raises:
            ApiError: If the envelope reports failure
        """
        response = await self.get(url, params=params)
        if not response.success:
            raise ApiError(response.message or "An error occurred", details=response.errors)
        return response.data
