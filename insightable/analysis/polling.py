"""
Polling of an asynchronous run until it reaches a terminal state.

The loop is bounded by an attempt count, not by elapsed time. The delay before
the first poll is ``initial_delay``; each later delay is the previous one
multiplied by ``growth_factor`` and capped at ``max_delay``.
"""
from dataclasses import dataclass
from typing import Awaitable, Callable, Iterator
import asyncio
import logging

from insightable.analysis.errors import PollTimeoutError, RunFailedError, UnknownRunStatusError
from insightable.analysis.models import RunObject

LOGGER = logging.getLogger(__name__)

COMPLETED = "completed"
FAILED_STATUSES = frozenset({"failed", "cancelled", "expired", "incomplete"})
PENDING_STATUSES = frozenset({"queued", "in_progress", "requires_action", "cancelling"})

Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class BackoffPolicy:
    initial_delay: float = 2.0
    growth_factor: float = 1.5
    max_delay: float = 10.0
    max_attempts: int = 10

    def __post_init__(self):
        if self.initial_delay < 0:
            raise ValueError("initial_delay must not be negative")
        if self.growth_factor < 1:
            raise ValueError("growth_factor must be at least 1")
        if self.max_delay < 0:
            raise ValueError("max_delay must not be negative")
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    def next_delay(self, previous: float) -> float:
        return min(previous * self.growth_factor, self.max_delay)

    def delays(self) -> Iterator[float]:
        """The wait before each attempt, in order. Yields exactly max_attempts values."""
        delay = self.initial_delay
        for _ in range(self.max_attempts):
            yield delay
            delay = self.next_delay(delay)


async def poll_run(
    fetch_run: Callable[[], Awaitable[RunObject]],
    run_id: str,
    policy: BackoffPolicy = BackoffPolicy(),
    sleep: Sleep = asyncio.sleep,
) -> RunObject:
    """
    Fetch the run with fetch_run until it completes.

    Returns the completed run. Raises RunFailedError for a terminal failure,
    UnknownRunStatusError for a status this client does not know and
    PollTimeoutError once max_attempts polls have seen only pending states.
    No request is issued after a terminal status has been observed.
    """
    last_status = None
    for attempt, delay in enumerate(policy.delays(), start=1):
        await sleep(delay)
        run = await fetch_run()
        status = run.status
        LOGGER.debug(f"Run {run_id} poll {attempt}/{policy.max_attempts}: {status}")

        if status == COMPLETED:
            LOGGER.info(f"Run {run_id} completed after {attempt} poll(s)")
            return run
        if status in FAILED_STATUSES:
            last_error = run.last_error
            message = last_error.message if last_error and last_error.message else f"Run {status}"
            code = last_error.code if last_error else None
            LOGGER.error(f"Run {run_id} ended with status {status}: {message}")
            raise RunFailedError(message, status=status, code=code)
        if status not in PENDING_STATUSES:
            LOGGER.error(f"Run {run_id} returned unrecognized status: {status}")
            raise UnknownRunStatusError(run_id, status)
        last_status = status

    LOGGER.warning(f"Run {run_id} still {last_status} after {policy.max_attempts} attempts")
    raise PollTimeoutError(run_id, policy.max_attempts, last_status)
