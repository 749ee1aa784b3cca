"""Completion Signal — level-triggered "no more work" flag.

Any number of workers may race to set the signal; only the first call
performs the unset→set transition and is reported as the setter.  The
flag never resets within an episode, so late waiters return immediately.

An episode that is torn down before the signal is set aborts it instead:
current and future waiters raise :class:`CancellationError` rather than
waiting for a completion that will never come.

Example::

    signal = CompletionSignal()
    signal.set(setter="worker-2")   # True: this call made the transition
    signal.set(setter="worker-0")   # False: already set
    await signal.wait()             # returns immediately
    signal.set_by                   # "worker-2"
"""

from __future__ import annotations

import asyncio

from drainpool.core.errors import CancellationError
from drainpool.core.logging import get_logger

logger = get_logger(__name__)


class CompletionSignal:
    """Idempotent, monotonic completion flag backed by :class:`asyncio.Event`."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._set = False
        self._set_by: str | None = None
        self._abort_reason: BaseException | None = None
        self._aborted = False

    def set(self, setter: str | None = None) -> bool:
        """Set the signal.

        Returns:
            ``True`` only for the call that transitioned the flag.
        """
        if self._event.is_set():
            return False
        self._set = True
        self._set_by = setter
        self._event.set()
        logger.debug("signal.set", setter=setter)
        return True

    def abort(self, reason: BaseException | None = None) -> bool:
        """Release every waiter with a cancellation instead of completion.

        Has no effect once the signal is set or already aborted.

        Returns:
            ``True`` only for the call that aborted the signal.
        """
        if self._event.is_set():
            return False
        self._aborted = True
        self._abort_reason = reason
        self._event.set()
        logger.debug("signal.aborted", reason=repr(reason))
        return True

    async def wait(self) -> None:
        """Suspend until the signal is set.

        Raises:
            CancellationError: The episode was torn down first.
            asyncio.CancelledError: The waiting task was cancelled first.
        """
        await self._event.wait()
        if self._aborted:
            raise CancellationError(
                "episode ended before completion was signalled",
                stage="wait",
                cause=self._abort_reason,
            )

    def is_set(self) -> bool:
        return self._set

    @property
    def aborted(self) -> bool:
        return self._aborted

    @property
    def set_by(self) -> str | None:
        """Identity passed by the call that set the signal, if any."""
        return self._set_by

    def __repr__(self) -> str:
        return (
            f"CompletionSignal(set={self._set}, aborted={self._aborted}, "
            f"set_by={self._set_by!r})"
        )
