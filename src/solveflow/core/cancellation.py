"""
Cancellation tokens for in-flight runs.

One ``CancellationToken`` exists per live top-level operation (initial solve,
debug follow-up). Cancelling a token sets its flag, cancels the asyncio task
that is awaiting the provider response and runs any release hooks, so the
underlying HTTP request is torn down immediately.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

from solveflow.core.types import RunKind
from solveflow.utils.errors import RunCancelledError
from solveflow.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

ReleaseHook = Callable[[], None]


class CancellationToken:
    """
    Settable cancel flag bound to the network call currently awaited.

    Example:
        token = CancellationToken(RunKind.INITIAL)
        text = await token.guard(client.generate(prompt))
    """

    def __init__(self, kind: RunKind):
        self.kind = kind
        self._cancelled = False
        self._inflight: asyncio.Future[object] | None = None
        self._hooks: list[ReleaseHook] = []

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def add_release_hook(self, hook: ReleaseHook) -> None:
        """Register a callback run once when the token is cancelled."""
        if self._cancelled:
            hook()
            return
        self._hooks.append(hook)

    def cancel(self) -> bool:
        """
        Abort the run owning this token.

        Returns:
            False if the token was already cancelled
        """
        if self._cancelled:
            return False
        self._cancelled = True

        if self._inflight is not None and not self._inflight.done():
            self._inflight.cancel()

        hooks, self._hooks = self._hooks, []
        for hook in hooks:
            try:
                hook()
            except Exception as e:
                logger.warning("Release hook failed", run_kind=self.kind.value, error=str(e))

        logger.info("Run cancelled", run_kind=self.kind.value)
        return True

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise RunCancelledError()

    async def guard(self, awaitable: Awaitable[T]) -> T:
        """
        Await a provider call so that ``cancel()`` can abort it.

        Any failure that resolves after the token was cancelled is reported
        as ``RunCancelledError``, whatever the transport raised.

        Raises:
            RunCancelledError: If the token is or becomes cancelled
        """
        if self._cancelled:
            # Close the coroutine so it is not reported as never awaited
            close = getattr(awaitable, "close", None)
            if close is not None:
                close()
            raise RunCancelledError()

        future = asyncio.ensure_future(awaitable)
        self._inflight = future
        try:
            return await future
        except asyncio.CancelledError:
            if self._cancelled:
                raise RunCancelledError() from None
            raise
        except Exception as e:
            if self._cancelled:
                raise RunCancelledError() from e
            raise
        finally:
            if self._inflight is future:
                self._inflight = None


class CancellationController:
    """
    Owner of the per-kind tokens.

    The initial and follow-up runs hold separate tokens; cancelling one
    kind never touches the other.
    """

    def __init__(self) -> None:
        self._tokens: dict[RunKind, CancellationToken] = {}

    def acquire(self, kind: RunKind) -> CancellationToken:
        """Create the token for a new run, cancelling any previous run of the same kind."""
        previous = self._tokens.get(kind)
        if previous is not None:
            previous.cancel()
        token = CancellationToken(kind)
        self._tokens[kind] = token
        return token

    def release(self, kind: RunKind, token: CancellationToken) -> None:
        """Forget ``token`` if it is still the live token for ``kind``."""
        if self._tokens.get(kind) is token:
            del self._tokens[kind]

    def active(self, kind: RunKind) -> CancellationToken | None:
        return self._tokens.get(kind)

    def cancel(self, kind: RunKind) -> bool:
        """Cancel the live run of ``kind``; returns False when none was running."""
        token = self._tokens.pop(kind, None)
        if token is None:
            return False
        return token.cancel()

    def cancel_all(self) -> bool:
        cancelled = False
        for kind in list(self._tokens):
            cancelled = self.cancel(kind) or cancelled
        return cancelled
