"""One-shot reconnect timer."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

_LOGGER = logging.getLogger(__name__)


class ReconnectScheduler:
    """Arm a single delayed retry at a fixed interval.

    At most one timer is armed at any time: scheduling again replaces the
    pending timer.
    """

    def __init__(
        self,
        interval: float,
        callback: Callable[[], None],
        *,
        loop: asyncio.AbstractEventLoop | None = None,
        name: str = "",
    ) -> None:
        self.interval = interval
        self._callback = callback
        self._loop = loop
        self._name = name
        self._handle: asyncio.TimerHandle | None = None

    @property
    def armed(self) -> bool:
        return self._handle is not None

    def schedule(self) -> None:
        """Arm the timer, replacing any pending one."""
        self.cancel()
        loop = self._loop or asyncio.get_running_loop()
        _LOGGER.info("[%s] Reconnecting in %s seconds", self._name, self.interval)
        self._handle = loop.call_later(self.interval, self._fire)

    def cancel(self) -> bool:
        """Disarm the timer.

        Returns:
            True if a pending timer was cancelled.
        """
        if self._handle is None:
            return False
        self._handle.cancel()
        self._handle = None
        _LOGGER.debug("[%s] Reconnect timer cancelled", self._name)
        return True

    def _fire(self) -> None:
        self._handle = None
        self._callback()
