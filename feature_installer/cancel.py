from __future__ import annotations

import asyncio
import logging
from typing import Callable, List, Optional

from .errors import AbortedError

logger = logging.getLogger(__name__)


class CancelToken:
    """Cooperative cancellation shared between a caller and the operations it starts.

    The token never interrupts anything by itself. Each leaf operation
    registers a cleanup callback (kill a process, close a response) and
    checks the token once its own call returns.
    """

    def __init__(self) -> None:
        self._cancelled = False
        self._reason: Optional[str] = None
        self._callbacks: List[Callable[[], None]] = []
        self._event: Optional[asyncio.Event] = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    def cancel(self, reason: Optional[str] = None) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        self._reason = reason
        logger.debug("Cancellation requested (reason=%s)", reason)

        callbacks, self._callbacks = self._callbacks, []
        for cb in callbacks:
            self._invoke(cb)

        if self._event is not None:
            self._event.set()

    def add_callback(self, cb: Callable[[], None]) -> Callable[[], None]:
        """Register ``cb`` to run on cancellation; returns an unregister function.

        If the token is already cancelled, ``cb`` runs immediately.
        """
        if self._cancelled:
            self._invoke(cb)
            return lambda: None

        self._callbacks.append(cb)

        def unregister() -> None:
            try:
                self._callbacks.remove(cb)
            except ValueError:
                pass

        return unregister

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise AbortedError(self._reason)

    async def wait(self) -> None:
        if self._cancelled:
            return
        if self._event is None:
            self._event = asyncio.Event()
        await self._event.wait()

    def _invoke(self, cb: Callable[[], None]) -> None:
        try:
            cb()
        except Exception:
            logger.exception("Cancellation callback %r failed", cb)

    def __repr__(self) -> str:
        return f"<CancelToken cancelled={self._cancelled} reason={self._reason!r}>"
