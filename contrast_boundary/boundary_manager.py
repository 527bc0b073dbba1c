import logging
import queue
import threading
import time
from typing import Optional, Tuple

from contrast_boundary.engine.coordinator import (
    CALCULATION_TIMEOUT_S,
    THROTTLE_DELAY_S,
    Clock,
    RequestCoordinator,
)
from contrast_boundary.engine.recommend import calculate_recommended_point, position_to_pixel
from contrast_boundary.engine.types import BoundaryCalculationResult, RecommendedPoint, SampleParams
from contrast_boundary.engine.worker import BoundaryWorker

logger = logging.getLogger(__name__)

# Upper bound on how long the driver sleeps without re-checking its stop flag.
MAX_IDLE_WAIT_S = 0.5

_WAKE = object()


class BoundaryManager:
    """
    One picker's boundary pipeline: a worker thread plus the request coordinator.

    A driver thread is the only place the coordinator runs: it consumes worker
    messages and parameter updates from one queue and fires timer deadlines,
    so the coordinator itself needs no locking beyond ``_lock``.
    """

    def __init__(
        self,
        throttle_delay: float = THROTTLE_DELAY_S,
        calculation_timeout: float = CALCULATION_TIMEOUT_S,
        clock: Clock = time.monotonic,
    ) -> None:
        self._clock = clock
        self._events: "queue.Queue[object]" = queue.Queue()
        self._stop = threading.Event()
        self._ready = threading.Event()
        self._thread: Optional[threading.Thread] = None

        # Single lock protects coordinator state and the result sequence number.
        # The condition lets readers wait for "a result newer than seq".
        self._lock = threading.Lock()
        self._result_cond = threading.Condition(self._lock)
        self._result_seq = 0

        self._worker = BoundaryWorker(self._events.put)
        self._coordinator = RequestCoordinator(
            self._worker.post,
            clock=clock,
            throttle_delay=throttle_delay,
            calculation_timeout=calculation_timeout,
            on_result=self._on_result,
        )

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._stop.clear()
        self._worker.start()
        self._thread = threading.Thread(target=self._run, name="BoundaryDriver", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        self._events.put(_WAKE)
        if self._thread:
            self._thread.join(timeout=2)
        self._worker.stop()
        with self._lock:
            self._result_cond.notify_all()

    def is_ready(self) -> bool:
        return self._ready.is_set()

    def wait_until_ready(self, timeout: float) -> bool:
        return self._ready.wait(timeout=timeout)

    def update_params(self, params: SampleParams) -> None:
        with self._lock:
            self._coordinator.set_params(params)
        # Wake the driver so it re-reads the (possibly new) deadline.
        self._events.put(_WAKE)

    def is_calculating(self) -> bool:
        with self._lock:
            return self._coordinator.is_calculating

    def get_result(self) -> Tuple[Optional[BoundaryCalculationResult], int]:
        with self._lock:
            return self._coordinator.result, self._result_seq

    def applied_params(self) -> Optional[SampleParams]:
        with self._lock:
            return self._coordinator.applied_params

    def wait_for_result(self, last_seq: int, timeout: float = 1.0) -> Tuple[Optional[BoundaryCalculationResult], int]:
        # Blocks until a result newer than last_seq is applied, or until timeout elapses.
        deadline = time.monotonic() + max(float(timeout), 0.0)
        with self._lock:
            while True:
                if self._result_seq != last_seq and self._coordinator.result is not None:
                    return self._coordinator.result, self._result_seq
                remaining = deadline - time.monotonic()
                if remaining <= 0 or self._stop.is_set():
                    return self._coordinator.result, self._result_seq
                self._result_cond.wait(timeout=remaining)

    def recommend(self, saturation: float, value: float) -> Optional[RecommendedPoint]:
        # Runs on the caller's thread against the immutable applied result.
        with self._lock:
            result = self._coordinator.result
            params = self._coordinator.applied_params
        if result is None or params is None:
            return None
        x, y = position_to_pixel(saturation, value, params.width, params.height)
        return calculate_recommended_point(result, x, y, params.width, params.height)

    def _on_result(self, result: BoundaryCalculationResult, params: SampleParams) -> None:
        # Called by the coordinator with _lock held.
        self._result_seq += 1
        logger.debug("Applied boundary result #%s for %s", self._result_seq, params.fingerprint())
        self._result_cond.notify_all()

    def _wait_timeout(self) -> float:
        with self._lock:
            deadline = self._coordinator.next_deadline()
        if deadline is None:
            return MAX_IDLE_WAIT_S
        return min(max(deadline - self._clock(), 0.0), MAX_IDLE_WAIT_S)

    def _run(self) -> None:
        while not self._stop.is_set():
            try:
                event = self._events.get(timeout=self._wait_timeout())
            except queue.Empty:
                event = _WAKE

            with self._lock:
                if isinstance(event, dict):
                    self._coordinator.handle_message(event)
                    if self._coordinator.ready:
                        self._ready.set()
                self._coordinator.poll()
