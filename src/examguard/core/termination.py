"""Termination policy: the single writer of a session's terminal outcome."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING

from examguard.models.enums import TerminationReason

if TYPE_CHECKING:
    from examguard.core.ledger import ViolationLedger
    from examguard.signaling.call import CallStateMachine

logger = logging.getLogger("examguard.termination")

# Called once, after the call has been torn down: (reason, warning_total)
TerminationCallback = Callable[[TerminationReason, int], Awaitable[None]]


class TerminationPolicy:
    """Decides when a session must end and performs the transition once.

    The first ledger append that brings ``warning_total`` to
    ``warning_limit`` terminates the session.  Termination marks the
    ledger, forces the call into ``ended`` and then invokes the
    ``on_terminated`` callback.  Every later request, whether it comes from
    the policy or from the user, is a no-op.

    Marking and teardown are split so callers can mark synchronously right
    after a ledger append (``evaluate``) and finish the teardown once
    they have published the record (``complete``).  ``check`` does both.
    """

    def __init__(
        self,
        ledger: ViolationLedger,
        call: CallStateMachine,
        *,
        warning_limit: int = 10,
        on_terminated: TerminationCallback | None = None,
    ) -> None:
        if warning_limit <= 0:
            raise ValueError("warning_limit must be positive")
        self._ledger = ledger
        self._call = call
        self._warning_limit = warning_limit
        self._on_terminated = on_terminated
        self._completion: asyncio.Task[None] | None = None

    @property
    def warning_limit(self) -> int:
        return self._warning_limit

    @property
    def terminated(self) -> bool:
        return self._ledger.terminated

    def should_terminate(self) -> bool:
        return not self._ledger.terminated and self._ledger.warning_total >= self._warning_limit

    def evaluate(self) -> bool:
        """Mark the ledger terminated if the warning limit is reached.

        Never awaits.  Returns True only for the call that performed the
        transition; that caller must then await :meth:`complete`.
        """
        if not self.should_terminate():
            return False
        return self._ledger._mark_terminated(TerminationReason.WARNING_LIMIT)

    async def check(self) -> bool:
        """Evaluate the limit and, if crossed, complete the termination."""
        if not self.evaluate():
            return False
        await self.complete(TerminationReason.WARNING_LIMIT)
        return True

    async def terminate(self, reason: TerminationReason) -> bool:
        """Terminate the session for *reason*.

        Safe to call any number of times; only the first call has an
        observable effect.  A call that loses the race still waits for the
        teardown of the winning termination, so the call is ended by the
        time any ``terminate`` returns.
        """
        if not self._ledger._mark_terminated(reason):
            logger.debug("Termination (%s) ignored: session already terminated", reason)
            if self._completion is None or not self._completion.done():
                await self.complete(self._ledger.state.termination_reason or reason)
            return False
        await self.complete(reason)
        return True

    async def complete(self, reason: TerminationReason) -> None:
        """Tear down the call and notify the owner of a marked termination.

        The teardown runs once, in its own task.  Every caller awaits that
        same task, and cancelling a caller does not cancel the teardown.
        """
        if self._completion is None:
            self._completion = asyncio.create_task(
                self._teardown(reason), name="examguard-termination"
            )
        elif self._completion is asyncio.current_task():
            return
        await asyncio.shield(self._completion)

    async def _teardown(self, reason: TerminationReason) -> None:
        total = self._ledger.warning_total
        logger.warning(
            "Terminating session: %s",
            reason,
            extra={"reason": str(reason), "warning_total": total},
        )
        await self._call.terminate()
        if self._on_terminated is not None:
            await self._on_terminated(reason, total)
