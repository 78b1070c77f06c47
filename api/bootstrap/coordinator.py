"""
Per-process bootstrap coordinator.

A serverless instance has no startup hook it can rely on, so the first request
triggers initialization. Concurrent requests in the same process share that one
attempt instead of starting their own:

    UNINITIALIZED -> INITIALIZING -> READY
                                  -> FAILED -> (next request) INITIALIZING ...

A failure is not cached: the next request starts a fresh attempt, so a
transient network error does not wedge a long-lived process.

Across processes there is no coordination at all; schema creation and seeding
are idempotent on their own (see `schema.py` and `seed.py`).
"""

from __future__ import annotations

import asyncio
import enum
import logging
from typing import Awaitable, Callable, Sequence

from core import db
from core.errors import InitError

from . import schema, seed

logger = logging.getLogger(__name__)

Step = Callable[[], Awaitable[object]]


class InitState(str, enum.Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    FAILED = "failed"


def default_steps() -> tuple[Step, ...]:
    # Looked up at call time so the functions can be replaced in tests.
    return (db.init_pool, schema.ensure_schema, seed.seed_if_empty)


class BootstrapCoordinator:
    def __init__(self, steps: Sequence[Step] | None = None) -> None:
        self._steps = tuple(steps) if steps is not None else None
        self._state = InitState.UNINITIALIZED
        self._pending: asyncio.Task[None] | None = None
        self._attempts = 0
        self._last_error: BaseException | None = None

    @property
    def state(self) -> InitState:
        return self._state

    @property
    def initialized(self) -> bool:
        return self._state is InitState.READY

    @property
    def attempts(self) -> int:
        return self._attempts

    @property
    def last_error(self) -> BaseException | None:
        return self._last_error

    async def ensure_ready(self) -> None:
        """
        Return once this process is initialized; raise InitError otherwise.

        Callers arriving while an attempt is in flight await that attempt. The
        attempt is shielded, so a caller that is cancelled (e.g. a request
        timeout) does not cancel it for everyone else.
        """
        if self._state is InitState.READY:
            return None

        if self._pending is None:
            self._state = InitState.INITIALIZING
            self._attempts += 1
            if self._attempts > 1:
                logger.info("bootstrap_retry attempt=%s", self._attempts)
            self._pending = asyncio.ensure_future(self._run())
            self._pending.add_done_callback(self._attempt_done)

        await asyncio.shield(self._pending)

    async def _run(self) -> None:
        steps = self._steps if self._steps is not None else default_steps()
        try:
            for step in steps:
                await step()
        except asyncio.CancelledError:
            self._state = InitState.UNINITIALIZED
            logger.warning("bootstrap_cancelled attempt=%s", self._attempts)
            raise
        except Exception as exc:
            self._state = InitState.FAILED
            self._last_error = exc
            logger.exception("bootstrap_failed attempt=%s", self._attempts)
            raise InitError("Service initialization failed.") from exc
        else:
            self._state = InitState.READY
            self._last_error = None
            logger.info("bootstrap_ready attempt=%s", self._attempts)
        finally:
            self._pending = None

    def _attempt_done(self, task: asyncio.Task[None]) -> None:
        if task.cancelled():
            # Cancelled before its first step, `_run` never got to reset anything.
            if self._pending is task:
                self._pending = None
                self._state = InitState.UNINITIALIZED
            return
        # Every awaiter may have timed out before the attempt failed.
        task.exception()


default_coordinator = BootstrapCoordinator()


async def ensure_ready() -> None:
    await default_coordinator.ensure_ready()


def is_initialized() -> bool:
    return default_coordinator.initialized
