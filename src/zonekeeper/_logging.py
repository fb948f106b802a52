"""Logging helpers: package logger, per-account log context and timing.

zonekeeper never configures handlers; applications attach their own to the
"zonekeeper" logger. Log records carry structured fields in ``extra``.
"""

import logging
import time
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar, Token

logging.getLogger("zonekeeper").addHandler(logging.NullHandler())

# Account being worked on by the current task; copied into asyncio child tasks
_current_account: ContextVar[str | None] = ContextVar("current_account", default=None)


def set_account(account_id: str | None) -> Token[str | None]:
    """Tag subsequent log records of this task with an account id.

    Args:
        account_id: Account being worked on, or None to clear.

    Returns:
        Token for reset_account().
    """
    return _current_account.set(account_id)


def reset_account(token: Token[str | None]) -> None:
    """Restore the account tag that was active before set_account()."""
    _current_account.reset(token)


@contextmanager
def account_context(account_id: str | None) -> Iterator[None]:
    """Tag log records emitted inside the block with an account id."""
    token = set_account(account_id)
    try:
        yield
    finally:
        reset_account(token)


def get_account_extra() -> dict[str, str]:
    """Log ``extra`` fields for the current account.

    Returns:
        ``{"account_id": ...}``, or an empty dict outside any account context.
    """
    account_id = _current_account.get()
    return {} if account_id is None else {"account_id": account_id}


def get_logger(name: str) -> logging.Logger:
    """Get a module logger (pass ``__name__``)."""
    return logging.getLogger(name)


class Timer:
    """Measures wall-clock time of a block in milliseconds.

    Usage:
        with Timer() as t:
            response = await client.send(request)
        logger.debug("done", extra={"elapsed_ms": t.elapsed_ms})
    """

    def __init__(self) -> None:
        self.elapsed_ms: float = 0
        self._start: float = 0

    def __enter__(self) -> "Timer":
        self._start = time.perf_counter()
        return self

    def __exit__(self, *args: object) -> None:
        self.elapsed_ms = (time.perf_counter() - self._start) * 1000
