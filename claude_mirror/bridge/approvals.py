"""Correlates approval requests with the user's later decision.

The daemon creates a :class:`PendingApproval` when a hook asks whether a
tool may run, then awaits :meth:`ApprovalCorrelator.wait`. Button callbacks
call :meth:`ApprovalCorrelator.resolve` with the id carried in the button's
custom_id. Each entry reaches exactly one outcome: the first decision, or
``TIMEOUT`` once its deadline passes.
"""

from __future__ import annotations

import asyncio
import logging
import secrets
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum

from .types import ApprovalOutcome

logger = logging.getLogger(__name__)

DEFAULT_APPROVAL_TIMEOUT = 300.0


class ApprovalStatus(Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    ABORTED = "aborted"
    TIMED_OUT = "timed_out"


_STATUS_FOR_OUTCOME: dict[ApprovalOutcome, ApprovalStatus] = {
    ApprovalOutcome.APPROVE: ApprovalStatus.APPROVED,
    ApprovalOutcome.REJECT: ApprovalStatus.REJECTED,
    ApprovalOutcome.ABORT: ApprovalStatus.ABORTED,
    ApprovalOutcome.TIMEOUT: ApprovalStatus.TIMED_OUT,
}


def _base36(value: int) -> str:
    digits = "0123456789abcdefghijklmnopqrstuvwxyz"
    out = ""
    while value:
        value, rem = divmod(value, 36)
        out = digits[rem] + out
    return out or "0"


def new_approval_id() -> str:
    return f"approval-{_base36(int(time.time() * 1000))}-{secrets.token_hex(4)}"


@dataclass
class PendingApproval:
    """One outstanding approval request."""

    id: str
    session_id: str
    tool_description: str
    deadline: float
    future: asyncio.Future[ApprovalOutcome] = field(repr=False)
    status: ApprovalStatus = ApprovalStatus.PENDING

    @property
    def is_pending(self) -> bool:
        return self.status is ApprovalStatus.PENDING


class ApprovalCorrelator:
    """Table of approval id -> future, with deadline fallback."""

    def __init__(
        self,
        default_timeout: float = DEFAULT_APPROVAL_TIMEOUT,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.default_timeout = default_timeout
        self._clock = clock
        self._pending: dict[str, PendingApproval] = {}

    def create(
        self,
        session_id: str,
        tool_description: str,
        timeout: float | None = None,
    ) -> PendingApproval:
        """Register a new pending approval and return it."""
        wait = self.default_timeout if timeout is None else min(timeout, self.default_timeout)
        approval = PendingApproval(
            id=new_approval_id(),
            session_id=session_id,
            tool_description=tool_description,
            deadline=self._clock() + wait,
            future=asyncio.get_running_loop().create_future(),
        )
        self._pending[approval.id] = approval
        logger.debug("Approval %s created for session %s (%.0fs)", approval.id, session_id, wait)
        return approval

    def get(self, approval_id: str) -> PendingApproval | None:
        return self._pending.get(approval_id)

    def resolve(self, approval_id: str, outcome: ApprovalOutcome) -> bool:
        """Deliver a decision. Returns False if the id is unknown or already resolved."""
        approval = self._pending.get(approval_id)
        if approval is None or not approval.is_pending:
            logger.warning(
                "Approval %s is unknown or already resolved; ignoring %s",
                approval_id,
                outcome.value,
            )
            return False
        self._finish(approval, outcome)
        logger.info("Approval %s resolved: %s", approval_id, outcome.value)
        return True

    async def wait(self, approval_id: str) -> ApprovalOutcome:
        """Wait for the decision until the entry's deadline.

        On expiry the entry resolves to ``TIMEOUT``; a decision that arrives
        afterwards is ignored by :meth:`resolve`.
        """
        approval = self._pending.get(approval_id)
        if approval is None:
            raise KeyError(approval_id)
        remaining = max(0.0, approval.deadline - self._clock())
        try:
            return await asyncio.wait_for(asyncio.shield(approval.future), timeout=remaining)
        except TimeoutError:
            if approval.is_pending:
                self._finish(approval, ApprovalOutcome.TIMEOUT)
                logger.info("Approval %s timed out", approval_id)
            return approval.future.result()
        finally:
            self._pending.pop(approval_id, None)

    def pending_count(self) -> int:
        return sum(1 for a in self._pending.values() if a.is_pending)

    def pending_for(self, session_id: str) -> list[PendingApproval]:
        return [
            a for a in self._pending.values() if a.session_id == session_id and a.is_pending
        ]

    def _finish(self, approval: PendingApproval, outcome: ApprovalOutcome) -> None:
        approval.status = _STATUS_FOR_OUTCOME[outcome]
        if not approval.future.done():
            approval.future.set_result(outcome)
