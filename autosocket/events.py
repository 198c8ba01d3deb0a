"""User event handlers and their protected invocation."""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

_LOGGER = logging.getLogger(__name__)


def _noop(*args: Any) -> None:
    return None


@dataclass
class EventHandlers:
    """Assignable callback slots.

    Each handler may be a plain callable or a coroutine function.
    """

    on_open: Callable[[], Any] = _noop
    on_message: Callable[[str], Any] = _noop
    on_error: Callable[[str], Any] = _noop
    on_close: Callable[[bool, int, str], Any] = _noop


class EventDispatcher:
    """Invoke handlers so that a failing handler cannot disturb the caller.

    Exceptions from any handler except ``on_error`` are logged and reported
    through ``on_error``. Exceptions from ``on_error`` are only logged.
    """

    def __init__(self, handlers: EventHandlers | None = None, *, name: str = "") -> None:
        self.handlers = handlers or EventHandlers()
        self._name = name
        self._pending: set[asyncio.Future[Any]] = set()

    def open(self) -> None:
        self._invoke("on_open")

    def message(self, text: str) -> None:
        self._invoke("on_message", text)

    def error(self, message: str) -> None:
        self._invoke("on_error", message)

    def close(self, was_clean: bool, code: int, reason: str) -> None:
        self._invoke("on_close", was_clean, code, reason)

    async def join(self) -> None:
        """Wait for handler coroutines that are still running."""
        while self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)

    def _invoke(self, slot: str, *args: Any) -> None:
        handler = getattr(self.handlers, slot)
        try:
            result = handler(*args)
        except Exception as err:
            self._handler_failed(slot, err)
            return

        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._pending.add(task)
            task.add_done_callback(lambda t: self._handler_done(slot, t))

    def _handler_done(self, slot: str, task: asyncio.Future[Any]) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        err = task.exception()
        if err is not None:
            self._handler_failed(slot, err)

    def _handler_failed(self, slot: str, err: BaseException) -> None:
        _LOGGER.error(
            "[%s] %s handler error: %s", self._name, slot, err, exc_info=err
        )
        if slot != "on_error":
            self._invoke("on_error", f"{slot} handler failed: {err}")
