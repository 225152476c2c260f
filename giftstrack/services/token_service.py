"""
giftstrack/services/token_service.py

Purpose: Bearer token lifecycle

- Decodes JWT payloads (signature is never verified client-side)
- Computes expiry with a clock-skew buffer
- TokenExpiryMonitor arms exactly one auto-logout timer per observed token
"""

import asyncio
import base64
import binascii
import json
import time
from typing import Any, Awaitable, Callable, Dict, Optional, Set, Union

from giftstrack.core.config import settings
from giftstrack.core.logging import get_logger

logger = get_logger(__name__)

ExpiryCallback = Callable[[], Union[None, Awaitable[None]]]


def decode_jwt(token: Optional[str]) -> Optional[Dict[str, Any]]:
    """
    Decodes the payload segment of a JWT.

    Args:
        token: header.payload.signature string

    Returns:
        Payload dict, or None when the token is malformed in any way
    """
    if not token or not isinstance(token, str):
        return None

    parts = token.split(".")
    if len(parts) != 3:
        return None

    segment = parts[1]
    segment += "=" * (-len(segment) % 4)
    try:
        raw = base64.urlsafe_b64decode(segment.encode("ascii"))
        payload = json.loads(raw.decode("utf-8"))
    except (binascii.Error, UnicodeError, ValueError):
        return None

    if not isinstance(payload, dict):
        return None
    return payload


def get_token_expiration(token: Optional[str]) -> Optional[float]:
    """
    Returns the `exp` claim in epoch seconds, or None when absent/invalid.
    """
    payload = decode_jwt(token)
    if not payload:
        return None
    exp = payload.get("exp")
    if isinstance(exp, bool) or not isinstance(exp, (int, float)) or not exp:
        return None
    return float(exp)


def is_token_expired(
    token: Optional[str],
    buffer_seconds: float = 60,
    now: Optional[float] = None,
) -> bool:
    """
    Checks whether a token is expired.

    Undecodable tokens and tokens without `exp` are always expired.

    Args:
        token: Bearer token
        buffer_seconds: Clock-skew buffer subtracted from `exp`
        now: Current epoch seconds (defaults to time.time())

    Returns:
        True if expired or unusable
    """
    exp = get_token_expiration(token)
    if exp is None:
        return True
    current = time.time() if now is None else now
    return current >= exp - buffer_seconds


def get_time_until_expiry(token: Optional[str], now: Optional[float] = None) -> float:
    """
    Seconds remaining until `exp`, never negative. 0 for unusable tokens.
    """
    exp = get_token_expiration(token)
    if exp is None:
        return 0.0
    current = time.time() if now is None else now
    return max(0.0, exp - current)


def is_expiring_within(token: Optional[str], seconds: float, now: Optional[float] = None) -> bool:
    """True when the token is still alive but expires within `seconds`."""
    remaining = get_time_until_expiry(token, now=now)
    return 0 < remaining <= seconds


class TokenExpiryMonitor:
    """
    Observes the session token and fires `on_expired` when it lapses.

    States are IDLE (no token) and OBSERVING(token). Every call to `observe`
    cancels the armed timer before anything else, so at most one timer exists.
    """

    def __init__(
        self,
        on_expired: ExpiryCallback,
        buffer_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.time,
    ):
        self._on_expired = on_expired
        self._buffer_seconds = (
            settings.TOKEN_EXPIRY_BUFFER_SECONDS if buffer_seconds is None else buffer_seconds
        )
        self._clock = clock
        self._token: Optional[str] = None
        self._handle: Optional[asyncio.TimerHandle] = None
        self._tasks: Set[asyncio.Task] = set()

    @property
    def token(self) -> Optional[str]:
        return self._token

    @property
    def is_observing(self) -> bool:
        return self._token is not None

    @property
    def is_armed(self) -> bool:
        return self._handle is not None

    def observe(self, token: Optional[str]) -> None:
        """
        Switches observation to `token`.

        - None: back to IDLE
        - expired/undecodable: fires the expiry callback immediately
        - otherwise: arms one timer for the remaining lifetime
        """
        self._cancel_timer()
        self._token = token

        if token is None:
            logger.debug("Token monitor idle")
            return

        now = self._clock()
        if is_token_expired(token, buffer_seconds=self._buffer_seconds, now=now):
            logger.info("Observed token is already expired", extra={"reason": "token_expired"})
            self._fire()
            return

        delay = get_time_until_expiry(token, now=now)
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(delay, self._on_timer)
        logger.debug(f"Expiry timer armed for {delay:.0f}s")

    def stop(self) -> None:
        """Cancels the armed timer and stops observing."""
        self._cancel_timer()
        self._token = None

    def _cancel_timer(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _on_timer(self) -> None:
        self._handle = None
        logger.info("Token expiry timer fired", extra={"reason": "token_expired"})
        self._fire()

    def _fire(self) -> None:
        result = self._on_expired()
        if asyncio.iscoroutine(result):
            task = asyncio.ensure_future(result)
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
