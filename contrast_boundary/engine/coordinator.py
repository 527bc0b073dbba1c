import logging
import math
import time
from enum import Enum
from typing import Callable, Optional

from pydantic import ValidationError

from contrast_boundary.engine.protocol import is_ready_message, parse_response, request_message
from contrast_boundary.engine.types import BoundaryCalculationResult, SampleParams

logger = logging.getLogger(__name__)

THROTTLE_DELAY_S = 0.1
CALCULATION_TIMEOUT_S = 2.0

Clock = Callable[[], float]
Dispatch = Callable[[dict], None]
ResultCallback = Callable[[BoundaryCalculationResult, SampleParams], None]


class CoordinatorState(str, Enum):
    IDLE = "idle"
    PENDING = "pending"  # a throttled dispatch is scheduled
    COMPUTING = "computing"  # exactly one request is in flight


class RequestCoordinator:
    """
    Throttled, supersede-aware dispatcher for boundary requests.

    Time only enters through the injected ``clock`` and through ``poll()``,
    which the owner calls whenever ``next_deadline()`` passes, so the state
    machine can be driven deterministically in tests.

    Transitions:
      IDLE      --set_params--> COMPUTING   (throttle window elapsed)
      IDLE      --set_params--> PENDING     (inside throttle window)
      PENDING   --deadline----> COMPUTING
      COMPUTING --response----> IDLE        (result applied, or error)
      COMPUTING --response----> COMPUTING   (params changed meanwhile: re-dispatch)
      COMPUTING --timeout-----> IDLE / PENDING
    """

    def __init__(
        self,
        dispatch: Dispatch,
        clock: Clock = time.monotonic,
        throttle_delay: float = THROTTLE_DELAY_S,
        calculation_timeout: float = CALCULATION_TIMEOUT_S,
        on_result: Optional[ResultCallback] = None,
    ) -> None:
        self._dispatch_message = dispatch
        self._clock = clock
        self._throttle_delay = float(throttle_delay)
        self._calculation_timeout = float(calculation_timeout)
        self._on_result = on_result

        self.state = CoordinatorState.IDLE
        self.ready = False

        self._latest: Optional[SampleParams] = None
        self._request_id = 0
        self._in_flight_id: Optional[int] = None
        self._in_flight_params: Optional[SampleParams] = None
        self._last_dispatch_at = -math.inf
        self._pending_at: Optional[float] = None
        self._timeout_at: Optional[float] = None

        self._result: Optional[BoundaryCalculationResult] = None
        self._applied_params: Optional[SampleParams] = None

    # -----------------------------
    # Read-only views
    # -----------------------------
    @property
    def result(self) -> Optional[BoundaryCalculationResult]:
        return self._result

    @property
    def applied_params(self) -> Optional[SampleParams]:
        return self._applied_params

    @property
    def latest_params(self) -> Optional[SampleParams]:
        return self._latest

    @property
    def in_flight_id(self) -> Optional[int]:
        return self._in_flight_id

    @property
    def is_calculating(self) -> bool:
        return self.state == CoordinatorState.COMPUTING

    def next_deadline(self) -> Optional[float]:
        if self.state == CoordinatorState.PENDING:
            return self._pending_at
        if self.state == CoordinatorState.COMPUTING:
            return self._timeout_at
        return None

    # -----------------------------
    # Inputs
    # -----------------------------
    def set_params(self, params: SampleParams) -> None:
        # The latest params are always recorded; whether anything is sent depends on state.
        self._latest = params
        if not self.ready or self.state == CoordinatorState.COMPUTING:
            # In flight: the response handler notices the change and re-dispatches.
            return
        if self._matches_applied(params):
            # Back to what is already displayed: drop any deferred dispatch.
            self.state = CoordinatorState.IDLE
            self._pending_at = None
            return
        self._schedule()

    def handle_message(self, message: dict) -> Optional[BoundaryCalculationResult]:
        """Feed one worker message in; returns the result if this message got applied."""
        if is_ready_message(message):
            self._mark_ready()
            return None

        try:
            response = parse_response(message)
        except ValidationError:
            logger.error("Dropping malformed worker message: %r", message)
            return None

        if self.state != CoordinatorState.COMPUTING or response.id != self._in_flight_id:
            # Superseded, timed out or unknown; never let it regress the displayed result.
            logger.debug("Ignoring stale boundary response id=%s (in flight: %s)", response.id, self._in_flight_id)
            return None

        requested = self._in_flight_params
        self._clear_in_flight()

        if requested is None or self._latest is None:
            return None

        if self._latest.fingerprint() != requested.fingerprint():
            # Params moved while computing; whatever came back describes the past.
            if response.error is not None:
                logger.error("Boundary worker failed request %s: %s", response.id, response.error)
            logger.debug("Request %s is stale, recomputing immediately", response.id)
            self._dispatch()
            return None

        if response.error is not None:
            # Same params as the failed request: keep the previous result, no retry.
            logger.error("Boundary worker failed request %s: %s", response.id, response.error)
            return None

        if response.result is None:
            return None

        self._result = response.result
        self._applied_params = requested
        if self._on_result is not None:
            self._on_result(response.result, requested)
        return response.result

    def poll(self) -> None:
        now = self._clock()

        if self.state == CoordinatorState.PENDING and self._pending_at is not None and now >= self._pending_at:
            self._dispatch()
            return

        if self.state == CoordinatorState.COMPUTING and self._timeout_at is not None and now >= self._timeout_at:
            timed_out = self._in_flight_params
            logger.warning(
                "Boundary request %s timed out after %.0f ms",
                self._in_flight_id,
                self._calculation_timeout * 1000.0,
            )
            # The computation itself keeps running; its late answer will be ignored.
            self._clear_in_flight()
            if self._latest is not None and (
                timed_out is None or self._latest.fingerprint() != timed_out.fingerprint()
            ):
                self._schedule()

    # -----------------------------
    # Internals
    # -----------------------------
    def _mark_ready(self) -> None:
        if self.ready:
            return
        logger.debug("Boundary worker ready")
        self.ready = True
        if self._latest is not None and self.state == CoordinatorState.IDLE:
            self._schedule()

    def _matches_applied(self, params: SampleParams) -> bool:
        return self._applied_params is not None and self._applied_params.fingerprint() == params.fingerprint()

    def _schedule(self) -> None:
        now = self._clock()
        elapsed = now - self._last_dispatch_at
        if elapsed >= self._throttle_delay:
            self._dispatch()
            return
        # A single deferred dispatch; a newer schedule simply replaces the deadline.
        self.state = CoordinatorState.PENDING
        self._pending_at = self._last_dispatch_at + self._throttle_delay

    def _dispatch(self) -> None:
        if self._latest is None:
            self.state = CoordinatorState.IDLE
            return
        now = self._clock()
        self._request_id += 1
        self._in_flight_id = self._request_id
        self._in_flight_params = self._latest
        self._last_dispatch_at = now
        self._pending_at = None
        self._timeout_at = now + self._calculation_timeout
        self.state = CoordinatorState.COMPUTING
        self._dispatch_message(request_message(self._request_id, self._latest))

    def _clear_in_flight(self) -> None:
        self._in_flight_id = None
        self._in_flight_params = None
        self._timeout_at = None
        self.state = CoordinatorState.IDLE
