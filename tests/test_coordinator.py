"""
State-machine tests for the request coordinator.

Time is a fake clock and dispatch appends to a list, so every transition is
driven explicitly by the test.
"""

import random

import pytest

from contrast_boundary.engine.coordinator import CoordinatorState, RequestCoordinator
from contrast_boundary.engine.protocol import ComputeResponse, ready_message
from contrast_boundary.engine.types import BoundaryCalculationResult

from tests.conftest import make_params


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sent():
    return []


@pytest.fixture
def applied():
    return []


@pytest.fixture
def coordinator(clock, sent, applied):
    return RequestCoordinator(
        sent.append,
        clock=clock,
        throttle_delay=0.1,
        calculation_timeout=2.0,
        on_result=lambda result, params: applied.append((result, params)),
    )


def _ok(request_id, threshold=4.5):
    return ComputeResponse(id=request_id, result=BoundaryCalculationResult(threshold=threshold)).to_wire()


def _ready(coordinator):
    coordinator.handle_message(ready_message())


class TestReadiness:
    def test_nothing_sent_before_ready(self, coordinator, sent):
        coordinator.set_params(make_params())
        assert sent == []
        assert coordinator.state == CoordinatorState.IDLE

    def test_latest_params_dispatched_on_ready(self, coordinator, sent):
        coordinator.set_params(make_params(hue=10))
        coordinator.set_params(make_params(hue=20))
        _ready(coordinator)
        assert len(sent) == 1
        assert sent[0]["id"] == 1
        assert sent[0]["params"]["hue"] == 20
        assert coordinator.state == CoordinatorState.COMPUTING

    def test_ready_without_params_stays_idle(self, coordinator, sent):
        _ready(coordinator)
        assert coordinator.ready
        assert sent == []


class TestDispatch:
    def test_result_applied(self, coordinator, sent, applied):
        params = make_params()
        _ready(coordinator)
        coordinator.set_params(params)
        result = coordinator.handle_message(_ok(1))
        assert result is not None
        assert coordinator.result == result
        assert coordinator.applied_params == params
        assert coordinator.state == CoordinatorState.IDLE
        assert applied == [(result, params)]

    def test_throttled_dispatch(self, coordinator, clock, sent):
        _ready(coordinator)
        coordinator.set_params(make_params(hue=1))
        clock.now = 0.01
        coordinator.handle_message(_ok(1))

        clock.now = 0.02
        coordinator.set_params(make_params(hue=2))
        assert coordinator.state == CoordinatorState.PENDING
        assert coordinator.next_deadline() == pytest.approx(0.1)

        clock.now = 0.05
        coordinator.poll()
        assert len(sent) == 1

        clock.now = 0.1
        coordinator.poll()
        assert len(sent) == 2
        assert sent[1]["params"]["hue"] == 2

    def test_pending_coalesces_to_latest(self, coordinator, clock, sent):
        _ready(coordinator)
        coordinator.set_params(make_params(hue=1))
        coordinator.handle_message(_ok(1))
        for hue in (2, 3, 4):
            coordinator.set_params(make_params(hue=hue))
        clock.now = 0.2
        coordinator.poll()
        assert len(sent) == 2
        assert sent[1]["params"]["hue"] == 4

    def test_same_as_applied_is_noop(self, coordinator, clock, sent):
        _ready(coordinator)
        coordinator.set_params(make_params(hue=0))
        coordinator.handle_message(_ok(1))
        clock.now = 1.0
        coordinator.set_params(make_params(hue=0.4))
        assert len(sent) == 1
        assert coordinator.state == CoordinatorState.IDLE

    def test_returning_to_applied_cancels_pending(self, coordinator, clock, sent):
        _ready(coordinator)
        coordinator.set_params(make_params(hue=0))
        coordinator.handle_message(_ok(1))
        clock.now = 0.01
        coordinator.set_params(make_params(hue=5))
        assert coordinator.state == CoordinatorState.PENDING
        coordinator.set_params(make_params(hue=0))
        assert coordinator.state == CoordinatorState.IDLE
        assert coordinator.next_deadline() is None
        clock.now = 1.0
        coordinator.poll()
        assert len(sent) == 1


class TestSupersede:
    def test_stale_result_triggers_redispatch(self, coordinator, sent, applied):
        _ready(coordinator)
        coordinator.set_params(make_params(hue=1))
        coordinator.set_params(make_params(hue=2))
        assert len(sent) == 1

        assert coordinator.handle_message(_ok(1)) is None
        assert coordinator.result is None
        assert applied == []
        assert len(sent) == 2
        assert sent[1]["params"]["hue"] == 2
        assert coordinator.in_flight_id == 2

        assert coordinator.handle_message(_ok(2)) is not None
        assert coordinator.applied_params.hue == 2

    def test_request_ids_strictly_increase(self, coordinator, clock, sent):
        _ready(coordinator)
        for i in range(5):
            clock.now = i * 1.0
            coordinator.set_params(make_params(hue=i))
            coordinator.handle_message(_ok(coordinator.in_flight_id))
        ids = [message["id"] for message in sent]
        assert ids == sorted(set(ids))
        assert ids[0] >= 1

    def test_unknown_id_ignored(self, coordinator, sent):
        _ready(coordinator)
        coordinator.set_params(make_params())
        assert coordinator.handle_message(_ok(42)) is None
        assert coordinator.state == CoordinatorState.COMPUTING
        assert coordinator.in_flight_id == 1

    def test_late_response_after_apply_ignored(self, coordinator, clock):
        _ready(coordinator)
        coordinator.set_params(make_params(hue=1))
        first = coordinator.handle_message(_ok(1, threshold=4.5))
        assert coordinator.handle_message(_ok(1, threshold=7.0)) is None
        assert coordinator.result == first


class TestFailures:
    def test_error_keeps_previous_result(self, coordinator, clock):
        _ready(coordinator)
        coordinator.set_params(make_params(hue=1))
        previous = coordinator.handle_message(_ok(1))

        clock.now = 1.0
        coordinator.set_params(make_params(hue=2))
        assert coordinator.handle_message({"id": 2, "error": "boom"}) is None
        assert coordinator.result == previous
        assert coordinator.state == CoordinatorState.IDLE
        assert not coordinator.is_calculating

    def test_malformed_message_dropped(self, coordinator):
        _ready(coordinator)
        coordinator.set_params(make_params())
        assert coordinator.handle_message({"nonsense": True}) is None
        assert coordinator.state == CoordinatorState.COMPUTING

    def test_timeout_clears_in_flight(self, coordinator, clock, sent):
        _ready(coordinator)
        coordinator.set_params(make_params())
        assert coordinator.next_deadline() == pytest.approx(2.0)
        clock.now = 2.0
        coordinator.poll()
        assert coordinator.state == CoordinatorState.IDLE
        assert coordinator.in_flight_id is None
        assert len(sent) == 1
        # The late answer no longer matches anything in flight.
        assert coordinator.handle_message(_ok(1)) is None

    def test_timeout_reschedules_changed_params(self, coordinator, clock, sent):
        _ready(coordinator)
        coordinator.set_params(make_params(hue=1))
        coordinator.set_params(make_params(hue=2))
        clock.now = 2.5
        coordinator.poll()
        assert len(sent) == 2
        assert sent[1]["id"] == 2
        assert sent[1]["params"]["hue"] == 2

    def test_error_for_superseded_params_sends_latest(self, coordinator, clock, sent):
        """A failed request whose params already moved on must not strand the newest params."""
        _ready(coordinator)
        coordinator.set_params(make_params(hue=1))
        coordinator.set_params(make_params(hue=2))

        assert coordinator.handle_message({"id": 1, "error": "boom"}) is None
        assert len(sent) == 2
        assert sent[1]["params"]["hue"] == 2
        assert coordinator.state == CoordinatorState.COMPUTING

        for now in (0.5, 1.0, 5.0):
            clock.now = now
            coordinator.poll()
        assert coordinator.handle_message(_ok(2)) is not None
        assert coordinator.applied_params.hue == 2

    def test_error_for_current_params_is_not_retried(self, coordinator, clock, sent):
        _ready(coordinator)
        coordinator.set_params(make_params(hue=1))
        coordinator.handle_message({"id": 1, "error": "boom"})
        clock.now = 5.0
        coordinator.poll()
        assert len(sent) == 1
        assert coordinator.state == CoordinatorState.IDLE


class TestParameterBurst:
    """Rapid parameter changes against a slow, sometimes failing worker."""

    @pytest.mark.parametrize("seed", range(8))
    def test_one_in_flight_and_latest_applied(self, seed):
        rng = random.Random(seed)
        clock = FakeClock()
        outstanding = []

        def dispatch(message):
            # Never more than one computation in flight.
            assert outstanding == []
            outstanding.append(message)

        coordinator = RequestCoordinator(dispatch, clock=clock, throttle_delay=0.1, calculation_timeout=1000.0)
        _ready(coordinator)

        def answer(allow_error):
            message = outstanding.pop(0)
            superseded = message["params"]["hue"] != coordinator.latest_params.hue
            if allow_error and superseded and rng.random() < 0.5:
                coordinator.handle_message({"id": message["id"], "error": "worker failed"})
            else:
                coordinator.handle_message(_ok(message["id"]))

        for _ in range(300):
            if rng.random() < 0.5:
                coordinator.set_params(make_params(hue=rng.randrange(360)))
            clock.now += rng.uniform(0.0, 0.05)
            coordinator.poll()
            if outstanding and rng.random() < 0.3:
                answer(allow_error=True)

        for _ in range(100):
            clock.now += 1.0
            coordinator.poll()
            if outstanding:
                answer(allow_error=False)
            elif coordinator.state == CoordinatorState.IDLE:
                break

        assert coordinator.state == CoordinatorState.IDLE
        assert coordinator.applied_params is not None
        assert coordinator.applied_params.fingerprint() == coordinator.latest_params.fingerprint()
