"""
giftstrack/services/auth_service.py

Purpose: Authentication calls

- Login: validates the issued token before the session stores it
- Logout: best-effort server-side invalidation, local logout always runs
- Token verification forces logout when the server rejects the token
"""

from typing import Any, Dict, Optional

from giftstrack.core.exceptions import AuthenticationError, GiftsTrackError
from giftstrack.core.logging import get_logger
from giftstrack.services.api_client import ApiClient
from giftstrack.services.session_service import Session
from giftstrack.utils.constants import (
    AUTH_LOGIN,
    AUTH_LOGOUT,
    AUTH_REFRESH,
    AUTH_VERIFY,
    INVALID_LOGIN_RESPONSE_MESSAGE,
    LOGIN_FAILED_MESSAGE,
)

logger = get_logger(__name__)


class AuthService:

    def __init__(self, api: ApiClient, session: Session):
        self._api = api
        self._session = session

    async def login(self, username: str, password: str) -> Dict[str, Any]:
        """
        Signs in and starts the session.

        Returns:
            The user record returned by the server

        Raises:
            AuthenticationError: Rejected credentials or malformed response
        """
        try:
            response = await self._api.post(AUTH_LOGIN, json={"username": username, "password": password})
        except AuthenticationError as e:
            raise AuthenticationError(LOGIN_FAILED_MESSAGE) from e
        if not response.success or not isinstance(response.data, dict):
            raise AuthenticationError(response.message or LOGIN_FAILED_MESSAGE)

        token = response.data.get("token")
        user = response.data.get("user")
        if not isinstance(token, str) or not token:
            raise AuthenticationError(INVALID_LOGIN_RESPONSE_MESSAGE)

        await self._session.login(token, user if isinstance(user, dict) else None)
        return user if isinstance(user, dict) else {}

    async def logout(self) -> None:
        try:
            await self._api.post(AUTH_LOGOUT)
        except GiftsTrackError as e:
            logger.error(f"Logout API error: {e.message}")
        finally:
            await self._session.logout(reason="manual")

    async def verify_token(self) -> bool:
        """
        Asks the server whether the current token is still accepted.

        Returns:
            True if valid; False after forcing a logout
        """
        if not self._session.token:
            return False
        try:
            response = await self._api.get(AUTH_VERIFY)
        except AuthenticationError:
            # 401 already triggered the session logout
            return False
        if not response.success:
            await self._session.logout(reason="token_rejected")
            return False
        return True

    async def refresh_token(self) -> Optional[str]:
        """
        Exchanges the current token for a new one, re-arming the expiry timer.

        Returns:
            The new token, or None if the server did not issue one
        """
        response = await self._api.post(AUTH_REFRESH)
        token = response.data.get("token") if isinstance(response.data, dict) else None
        if not response.success or not isinstance(token, str) or not token:
            logger.warning("Token refresh returned no token")
            return None
        await self._session.set_token(token)
        return token
