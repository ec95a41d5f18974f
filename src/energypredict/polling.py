"""
Poll-until-done controller for prediction jobs.

A job is started with PollController.start(), which returns a PollHandle.
The handle owns one asyncio task that sleeps for the poll interval, issues a
single status request, applies the outcome, and repeats until the job
completes, fails, runs out of attempts, or is cancelled.

The interval is measured from the completion of the previous status request,
so at most one request is in flight per handle. There is no backoff and no
automatic retry; to try again, start a new job.
"""
import asyncio
import enum
import logging
from typing import Awaitable, Callable, Protocol, Sequence

import attrs

from energypredict.config import Settings
from energypredict.errors import (MissingToken, PollCancelled, PollTimedOut, SubmitError,
                                  TransportError)
from energypredict.forms import PredictionRequest
from energypredict.timeseries import TimeSeriesPoint

_LOGGER = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL_S = 8.0
DEFAULT_MAX_ATTEMPTS = 15

IN_PROGRESS_MESSAGE = "Prediction in progress. Please wait..."
SUCCESS_MESSAGE = "Energy Prediction Completed Successfully!"
TIMED_OUT_MESSAGE = "Prediction timed out. Please try again or check server status."
FAILED_MESSAGE = "Prediction failed. Check server logs."
CANCELLED_MESSAGE = "Prediction cancelled."


class PollStatus(enum.Enum):
    IDLE = 'idle'
    PENDING = 'pending'
    SUCCEEDED = 'succeeded'
    FAILED = 'failed'
    TIMED_OUT = 'timed_out'


TERMINAL_STATUSES = frozenset({PollStatus.SUCCEEDED, PollStatus.FAILED, PollStatus.TIMED_OUT})


class OutcomeKind(enum.Enum):
    PARTIAL = 'partial'
    COMPLETE = 'complete'
    TRANSPORT_ERROR = 'transport_error'


@attrs.frozen
class PollOutcome:
    """Result of one status request."""
    kind: OutcomeKind
    points: tuple[TimeSeriesPoint, ...] = attrs.field(default=(), converter=tuple)
    message: str | None = None

    @classmethod
    def partial(cls, points: Sequence[TimeSeriesPoint]) -> 'PollOutcome':
        return cls(kind=OutcomeKind.PARTIAL, points=points)

    @classmethod
    def complete(cls, points: Sequence[TimeSeriesPoint]) -> 'PollOutcome':
        return cls(kind=OutcomeKind.COMPLETE, points=points)

    @classmethod
    def transport_error(cls, message: str) -> 'PollOutcome':
        return cls(kind=OutcomeKind.TRANSPORT_ERROR, message=message)


@attrs.frozen
class PollState:
    """
    Snapshot of one polling job. Every transition produces a new PollState via
    attrs.evolve; subscribers always receive a complete, immutable snapshot.
    """
    token: str
    max_attempts: int
    interval_s: float
    attempts: int = 0
    status: PollStatus = PollStatus.IDLE
    last_data: tuple[TimeSeriesPoint, ...] = attrs.field(default=(), converter=tuple)
    message: str = ""

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def is_pending(self) -> bool:
        return self.status == PollStatus.PENDING


class PredictionService(Protocol):
    """The remote operations the controller depends on."""

    async def submit_job(self, request: PredictionRequest) -> dict:
        """Start a prediction job; the response should carry a 'token'."""
        ...

    async def fetch_status(self, username: str, token: str) -> PollOutcome:
        """Return PARTIAL or COMPLETE; raise TransportError on failure."""
        ...


Sleep = Callable[[float], Awaitable[None]]
Subscriber = Callable[[PollState], None]


class PollHandle:
    """Owns the polling task and the current PollState for one job."""

    def __init__(self, service: PredictionService, username: str, state: PollState, sleep: Sleep = asyncio.sleep):
        self._service = service
        self._username = username
        self._state = state
        self._sleep = sleep
        self._subscribers: list[Subscriber] = []
        self._task: asyncio.Task | None = None
        self._cancelled = False
        self._done = asyncio.Event()
        self.poll_count = 0

    @property
    def state(self) -> PollState:
        return self._state

    @property
    def token(self) -> str:
        return self._state.token

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def active(self) -> bool:
        return self._state.is_pending and not self._cancelled

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """
        Register callback to receive each new PollState. The current state is
        delivered immediately. Returns a function that removes the subscription.
        """
        self._subscribers.append(callback)
        self._deliver(callback, self._state)

        def unsubscribe():
            if callback in self._subscribers:
                self._subscribers.remove(callback)
        return unsubscribe

    def _deliver(self, callback: Subscriber, state: PollState) -> None:
        # A failing subscriber must not change the job's state
        try:
            callback(state)
        except Exception:
            _LOGGER.exception("Subscriber %r failed on %s state of %s", callback, state.status.value, state.token)

    def _update(self, **changes) -> None:
        self._state = attrs.evolve(self._state, **changes)
        for callback in list(self._subscribers):
            self._deliver(callback, self._state)

    def _begin(self) -> None:
        self._update(status=PollStatus.PENDING, message=IN_PROGRESS_MESSAGE)
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def poll(self) -> PollOutcome:
        """Issue one status request for this handle's token."""
        self.poll_count += 1
        try:
            return await self._service.fetch_status(self._username, self._state.token)
        except TransportError as e:
            return PollOutcome.transport_error(e.message or FAILED_MESSAGE)

    async def _run(self) -> None:
        try:
            while True:
                await self._sleep(self._state.interval_s)
                if self._cancelled:
                    return

                attempts = self._state.attempts + 1
                _LOGGER.debug("Attempt %d: fetching prediction data for token %s", attempts, self._state.token)
                if attempts > self._state.max_attempts:
                    _LOGGER.warning("Prediction %s timed out after %d attempts", self._state.token, self._state.max_attempts)
                    self._update(attempts=attempts, status=PollStatus.TIMED_OUT, message=TIMED_OUT_MESSAGE)
                    return
                self._update(attempts=attempts)

                outcome = await self.poll()
                if self._cancelled:
                    return

                if outcome.kind == OutcomeKind.PARTIAL:
                    self._update(last_data=outcome.points)
                elif outcome.kind == OutcomeKind.COMPLETE:
                    _LOGGER.info("Prediction %s completed with %d points", self._state.token, len(outcome.points))
                    self._update(last_data=outcome.points, status=PollStatus.SUCCEEDED, message=SUCCESS_MESSAGE)
                    return
                else:
                    _LOGGER.error("Prediction %s failed: %s", self._state.token, outcome.message)
                    self._update(status=PollStatus.FAILED, message=outcome.message)
                    return
        except Exception as e:
            _LOGGER.exception("Polling for %s stopped unexpectedly", self._state.token)
            self._update(status=PollStatus.FAILED, message=str(e) or FAILED_MESSAGE)
        finally:
            self._done.set()

    def cancel(self) -> None:
        """Stop polling. Safe to call more than once and after the job has finished."""
        if self._cancelled or self._state.is_terminal:
            return
        self._cancelled = True
        if self._task is not None and not self._task.done():
            self._task.cancel()
        _LOGGER.info("Prediction %s cancelled after %d attempts", self._state.token, self._state.attempts)
        self._update(status=PollStatus.IDLE, message=CANCELLED_MESSAGE)
        self._done.set()

    async def wait(self) -> PollState:
        """Wait until the job is terminal or cancelled and return the final state."""
        await self._done.wait()
        return self._state

    async def result(self) -> list[TimeSeriesPoint]:
        state = await self.wait()
        if state.status == PollStatus.SUCCEEDED:
            return list(state.last_data)
        if state.status == PollStatus.FAILED:
            raise TransportError(state.message)
        if state.status == PollStatus.TIMED_OUT:
            raise PollTimedOut(state.max_attempts)
        raise PollCancelled(f"Prediction {state.token} was cancelled")


class PollController:
    """
    Starts prediction jobs and hands back a PollHandle for each.

    Args:
        service: PredictionService used for submit and status calls
        interval_s: seconds to wait before each status request
        max_attempts: number of status requests before giving up
        sleep: coroutine function used as the timer; injectable for tests
    """

    def __init__(self, service: PredictionService,
                 interval_s: float = DEFAULT_POLL_INTERVAL_S,
                 max_attempts: int = DEFAULT_MAX_ATTEMPTS,
                 sleep: Sleep = asyncio.sleep):
        if interval_s < 0:
            raise ValueError("interval_s must be non-negative")
        if max_attempts < 0:
            raise ValueError("max_attempts must be non-negative")
        self.service = service
        self.interval_s = interval_s
        self.max_attempts = max_attempts
        self.sleep = sleep

    @classmethod
    def from_settings(cls, service: PredictionService, settings: Settings, **kwargs) -> 'PollController':
        return cls(service, interval_s=settings.poll_interval_s, max_attempts=settings.max_poll_attempts, **kwargs)

    async def start(self, request: PredictionRequest) -> PollHandle:
        """
        Submit the job and begin polling.

        Raises:
            SubmitError: the submit call failed
            MissingToken: the submit response carried no token
        """
        try:
            response = await self.service.submit_job(request)
        except TransportError as e:
            _LOGGER.error("Prediction initiation failed: %s", e.message)
            raise SubmitError(e.server_message or SubmitError().message) from e

        token = response.get('token') if isinstance(response, dict) else None
        if not token:
            _LOGGER.error("Prediction initiation response has no token: %r", response)
            raise MissingToken()

        _LOGGER.info("Prediction %s started for %s", token, request.username)
        handle = PollHandle(
            self.service,
            username=request.username,
            state=PollState(token=token, max_attempts=self.max_attempts, interval_s=self.interval_s),
            sleep=self.sleep,
        )
        handle._begin()
        return handle
