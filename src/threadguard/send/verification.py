"""Holder for the human-verification token issued by the challenge widget."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional

from threadguard.core.errors import VerificationTimeout

logger = logging.getLogger(__name__)


class VerificationGate:
    """Wait/notify slot for one single-use verification token.

    The widget callback calls :meth:`deliver`; the send pipeline awaits
    :meth:`wait_for_token`. :meth:`reset` discards the held token and asks the
    widget for a new challenge.
    """

    def __init__(self, timeout_seconds: float = 30.0, on_reset: Optional[Callable[[], None]] = None) -> None:
        self.timeout_seconds = timeout_seconds
        self._on_reset = on_reset
        self._token: Optional[str] = None
        self._arrived = asyncio.Event()
        self._disposed = False

    @property
    def token(self) -> Optional[str]:
        return self._token

    @property
    def has_token(self) -> bool:
        return self._token is not None

    def deliver(self, token: str) -> None:
        """Widget callback."""
        if self._disposed or not token:
            return
        self._token = token
        self._arrived.set()

    def reset(self) -> None:
        self._token = None
        self._arrived.clear()
        if self._on_reset is not None:
            try:
                self._on_reset()
            except Exception:
                logger.warning("Verification widget reset failed", exc_info=True)

    async def wait_for_token(self, timeout: Optional[float] = None) -> str:
        """Return the held token, waiting for one if necessary.

        Raises:
            VerificationTimeout: nothing arrived within ``timeout`` seconds
                (default ``timeout_seconds``), or the gate was disposed.
        """
        if self._token is not None:
            return self._token
        limit = self.timeout_seconds if timeout is None else timeout
        try:
            await asyncio.wait_for(self._arrived.wait(), limit)
        except asyncio.TimeoutError:
            raise VerificationTimeout(f"No verification token after {limit:g}s") from None
        if self._token is None:
            raise VerificationTimeout("Verification gate disposed")
        return self._token

    def dispose(self) -> None:
        """Release any waiter; later deliveries are ignored."""
        self._disposed = True
        self._token = None
        self._arrived.set()
