"""
giftstrack/services/session_service.py

Purpose: Session ownership and logout

- Owns the bearer token and the signed-in user
- Persists both in the secure store
- Owns the token expiry monitor (one timer per token)
- Idempotent logout clearing sensitive and cached data
- Notifies logout listeners (e.g. the master-data store)
"""

import json
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from giftstrack.core.exceptions import AuthenticationError
from giftstrack.core.logging import get_logger, LogContext
from giftstrack.db.storage import KeyValueStore
from giftstrack.services.token_service import TokenExpiryMonitor, is_token_expired
from giftstrack.core.config import settings
from giftstrack.utils.constants import (
    AUTH_TOKEN_KEY,
    INVALID_LOGIN_RESPONSE_MESSAGE,
    PERSISTENT_KEYS,
    SENSITIVE_KEYS,
    USER_DATA_KEY,
    USER_ROLE_KEY,
)

logger = get_logger(__name__)

LogoutListener = Callable[[], Union[None, Awaitable[None]]]


class TokenStore:
    """
    Secure persistence for the token and user record.
    """

    def __init__(self, secure_store: KeyValueStore):
        self._store = secure_store

    async def read_token(self) -> Optional[str]:
        return await self._store.get(AUTH_TOKEN_KEY)

    async def write_token(self, token: str) -> None:
        await self._store.set(AUTH_TOKEN_KEY, token)

    async def clear_token(self) -> None:
        await self._store.remove(AUTH_TOKEN_KEY)

    async def read_user(self) -> Optional[Dict[str, Any]]:
        raw = await self._store.get(USER_DATA_KEY)
        if not raw:
            return None
        try:
            user = json.loads(raw)
        except ValueError:
            logger.warning("Stored user data is not valid JSON, ignoring")
            return None
        return user if isinstance(user, dict) else None

    async def write_user(self, user: Dict[str, Any]) -> None:
        await self._store.set(USER_DATA_KEY, json.dumps(user))
        if user.get("role"):
            await self._store.set(USER_ROLE_KEY, str(user["role"]))

    async def clear(self) -> None:
        await self._store.multi_remove(SENSITIVE_KEYS)


class Session:
    """
    The signed-in session.

    The expiry monitor is owned here and re-armed only when the token is
    replaced. Logout runs at most once at a time; repeated calls (timer plus
    an explicit check) are safe.
    """

    def __init__(
        self,
        token_store: TokenStore,
        general_store: KeyValueStore,
        buffer_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.time,
    ):
        self._token_store = token_store
        self._general_store = general_store
        self._buffer_seconds = (
            settings.TOKEN_EXPIRY_BUFFER_SECONDS if buffer_seconds is None else buffer_seconds
        )
        self._clock = clock
        self._token: Optional[str] = None
        self._user: Optional[Dict[str, Any]] = None
        self._logout_listeners: List[LogoutListener] = []
        self._logging_out = False
        self.expiry_monitor = TokenExpiryMonitor(
            on_expired=self._on_token_expired,
            buffer_seconds=self._buffer_seconds,
            clock=clock,
        )

    @property
    def token(self) -> Optional[str]:
        return self._token

    @property
    def user(self) -> Optional[Dict[str, Any]]:
        return self._user

    @property
    def role(self) -> Optional[str]:
        return (self._user or {}).get("role")

    @property
    def is_authenticated(self) -> bool:
        return self._token is not None and not is_token_expired(
            self._token, buffer_seconds=self._buffer_seconds, now=self._clock()
        )

    def add_logout_listener(self, listener: LogoutListener) -> Callable[[], None]:
        """
        Registers a callback run on every logout.

        Returns:
            Callable removing the listener
        """
        self._logout_listeners.append(listener)

        def remove() -> None:
            if listener in self._logout_listeners:
                self._logout_listeners.remove(listener)

        return remove

    async def restore(self) -> bool:
        """
        Restores a persisted session on startup.

        Returns:
            True if a usable token was found
        """
        token = await self._token_store.read_token()
        if not token:
            logger.info("No stored session")
            return False

        if is_token_expired(token, buffer_seconds=self._buffer_seconds, now=self._clock()):
            logger.info("Stored token expired, clearing session", extra={"reason": "token_expired"})
            await self.logout(reason="token_expired")
            return False

        self._token = token
        self._user = await self._token_store.read_user()
        self.expiry_monitor.observe(token)
        logger.info("Session restored")
        return True

    async def login(self, token: Any, user: Optional[Dict[str, Any]] = None) -> None:
        """
        Stores a freshly issued token and user.

        Raises:
            AuthenticationError: If the token is not a non-empty string
        """
        if not isinstance(token, str) or not token:
            logger.error("Invalid token received from server")
            raise AuthenticationError(INVALID_LOGIN_RESPONSE_MESSAGE)

        await self._token_store.write_token(token)
        if isinstance(user, dict):
            await self._token_store.write_user(user)
            self._user = user
        self._token = token
        self.expiry_monitor.observe(token)
        logger.info("Signed in", extra={"state": "authenticated"})

    async def set_token(self, token: str) -> None:
        """Replaces the token (e.g. after a refresh), re-arming the expiry timer."""
        await self._token_store.write_token(token)
        self._token = token
        self.expiry_monitor.observe(token)

    async def logout(self, reason: str = "manual") -> None:
        """
        Ends the session locally.

        - Stops the expiry timer
        - Clears token, user and every general-store key except preferences
        - Runs logout listeners, also when clearing storage fails

        Raises:
            Exception: A storage failure, re-raised after the listeners ran
        """
        if self._logging_out:
            logger.debug("Logout already in progress", extra={"reason": reason})
            return
        self._logging_out = True

        with LogContext(reason=reason):
            logger.info("Logging out")

        try:
            self.expiry_monitor.stop()
            self._token = None
            self._user = None

            try:
                await self._token_store.clear()
                keys = await self._general_store.get_all_keys()
                to_remove = [k for k in keys if not any(pk in k for pk in PERSISTENT_KEYS)]
                if to_remove:
                    await self._general_store.multi_remove(to_remove)
            finally:
                # listeners drop in-memory user data even if storage failed
                await self._notify_logout()
        finally:
            self._logging_out = False

    async def _notify_logout(self) -> None:
        for listener in list(self._logout_listeners):
            try:
                result = listener()
                if result is not None:
                    await result
            except Exception as e:
                logger.error(f"Logout listener failed: {e}", exc_info=True)

    def _on_token_expired(self) -> Awaitable[None]:
        return self.logout(reason="token_expired")
