"""Compensation stack for multi-step operations.

Each forward step that succeeds registers how to undo itself. On failure
the registered undo actions run in reverse order. An undo action that
fails is logged and recorded, and the remaining actions still run.
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

import structlog

logger = structlog.get_logger()

CompensatingAction = Callable[[], Awaitable[None]]


@dataclass
class Compensation:
    """One registered undo action."""

    key: str
    action: CompensatingAction


@dataclass
class UnwindResult:
    """Outcome of running a compensation stack.

    Attributes:
        compensated: Keys whose undo action succeeded, in execution order.
        failed: Keys whose undo action raised, mapped to the error.
    """

    compensated: list[str] = field(default_factory=list)
    failed: dict[str, Exception] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return not self.failed


class CompensationStack:
    """Accumulates undo actions as forward steps succeed.

    Example:
        stack = CompensationStack(saga="checkout", saga_id=order.id)
        for listing_id in listing_ids:
            await client.hold_for_order(listing_id, order.id)
            stack.push(listing_id, lambda lid=listing_id: client.release_hold(lid))
        ...
        result = await stack.unwind()
    """

    def __init__(self, saga: str, saga_id: str, request_id: str | None = None) -> None:
        self.saga = saga
        self.saga_id = saga_id
        self.request_id = request_id
        self._steps: list[Compensation] = []

    def push(self, key: str, action: CompensatingAction) -> None:
        """Register the undo action for a completed step."""
        self._steps.append(Compensation(key=key, action=action))

    @property
    def keys(self) -> list[str]:
        return [step.key for step in self._steps]

    def __len__(self) -> int:
        return len(self._steps)

    async def unwind(self) -> UnwindResult:
        """Run every undo action, newest first.

        Never raises; failures are logged and reported in the result.
        The stack is empty afterwards.
        """
        result = UnwindResult()
        while self._steps:
            step = self._steps.pop()
            try:
                await step.action()
                result.compensated.append(step.key)
            except Exception as e:
                result.failed[step.key] = e
                logger.warning(
                    "Compensating action failed",
                    saga=self.saga,
                    saga_id=self.saga_id,
                    step=step.key,
                    error=str(e),
                    request_id=self.request_id,
                )
        if result.compensated or result.failed:
            logger.info(
                "Saga compensated",
                saga=self.saga,
                saga_id=self.saga_id,
                compensated=result.compensated,
                failed=list(result.failed),
                request_id=self.request_id,
            )
        return result
