"""Readiness gate — startup barrier over independent conditions.

Learn: the service may only take traffic once storage is initialized AND
the listener is bound. Both happen concurrently, and either can finish
first. The gate is an explicit state machine instead of chained callbacks:

    pending(storage, listener) ──all ok──────────▶ ready
              │
              └──first failure(cause)────────────▶ failed(cause)

The terminal state is set at most once. The first failure wins and later
outcomes (success or failure) are ignored, so completion order never
changes the result. The event loop is single-threaded, so plain attributes
are enough; no lock is needed.
"""

import asyncio
from typing import Awaitable, Optional

import structlog

logger = structlog.get_logger()

PENDING = "pending"
OK = "ok"
FAILED = "failed"
READY = "ready"

STORAGE = "storage"
LISTENER = "listener"


class ReadinessGate:
    """All-of-N join with first-failure-wins semantics."""

    def __init__(self, conditions: tuple[str, ...] = (STORAGE, LISTENER)):
        if not conditions:
            raise ValueError("a readiness gate needs at least one condition")
        self.conditions: dict[str, str] = {name: PENDING for name in conditions}
        self.state = PENDING
        self.cause: Optional[BaseException] = None
        self._done = asyncio.Event()

    @property
    def is_ready(self) -> bool:
        return self.state == READY

    @property
    def is_failed(self) -> bool:
        return self.state == FAILED

    def succeed(self, name: str) -> None:
        """Mark a condition ok; the last one to succeed makes the gate ready."""
        self._check(name)
        if self.state != PENDING:
            return
        self.conditions[name] = OK
        logger.info("readiness.condition_ok", condition=name)
        if all(status == OK for status in self.conditions.values()):
            self.state = READY
            self._done.set()
            logger.info("readiness.ready")

    def fail(self, name: str, cause: BaseException) -> None:
        """Fail the gate unless it already reached a terminal state."""
        self._check(name)
        if self.state != PENDING:
            logger.debug("readiness.late_failure_ignored", condition=name, error=str(cause))
            return
        self.conditions[name] = FAILED
        self.state = FAILED
        self.cause = cause
        self._done.set()
        logger.error("readiness.failed", condition=name, error=str(cause))

    async def wait(self) -> None:
        """Return once ready; raise the first failure's cause once failed."""
        await self._done.wait()
        if self.cause is not None:
            raise self.cause

    async def join(self, **chains: Awaitable) -> None:
        """Run one awaitable per condition and wait for the gate.

        Each chain's outcome is mapped onto succeed()/fail(). Once the gate
        is terminal, chains still running are cancelled.
        """
        if set(chains) != set(self.conditions):
            raise ValueError(
                f"chains {sorted(chains)} do not match conditions {sorted(self.conditions)}"
            )

        async def track(name: str, chain: Awaitable) -> None:
            try:
                await chain
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self.fail(name, e)
            else:
                self.succeed(name)

        tasks = [
            asyncio.create_task(track(name, chain), name=f"readiness:{name}")
            for name, chain in chains.items()
        ]
        try:
            await self.wait()
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

    def _check(self, name: str) -> None:
        if name not in self.conditions:
            raise KeyError(f"unknown readiness condition: {name}")
