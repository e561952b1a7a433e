from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

import pytest

from snowdrift.constants import DEFAULT_EPOCH, MAX_SEQUENCE
from snowdrift.utils.errors import ClockRegressionFatal, GeneratorClosed
from snowdrift.utils.ids import Generator, GeneratorStatus
from snowdrift.utils.layout import unpack


def _generator(clock, **kwargs) -> Generator:
    kwargs.setdefault("regression_threshold", 5)
    return Generator(worker_id=7, datacenter_id=3, clock=clock, **kwargs)


def test_ids_strictly_increase_under_monotonic_clock(clock) -> None:
    generator = _generator(clock)
    previous = -1
    for n in range(5_000):
        if n % 7 == 0:
            clock.advance()
        identifier = generator.next_id()
        assert identifier > previous
        previous = identifier


def test_sequence_counts_within_a_millisecond_and_resets_on_the_next(clock) -> None:
    generator = _generator(clock)
    first_ms = [unpack(generator.next_id()) for _ in range(5)]
    clock.advance()
    next_ms = unpack(generator.next_id())

    assert [p.sequence for p in first_ms] == [0, 1, 2, 3, 4]
    assert {p.timestamp for p in first_ms} == {clock.now - 1 - DEFAULT_EPOCH}
    assert next_ms.sequence == 0
    assert next_ms.timestamp == first_ms[0].timestamp + 1


def test_identity_is_encoded(clock) -> None:
    parts = unpack(_generator(clock).next_id())
    assert (parts.worker_id, parts.datacenter_id) == (7, 3)


def test_sequence_rollover_spins_to_the_next_millisecond(clock) -> None:
    generator = _generator(clock)
    generator.next_id()
    generator.state.sequence = MAX_SEQUENCE
    start = clock.now
    clock.script = [start, start, start, start + 1]

    parts = unpack(generator.next_id())

    assert parts.sequence == 0
    assert parts.timestamp == start + 1 - DEFAULT_EPOCH
    assert generator.state.last_timestamp == start + 1


def test_rollover_spin_is_bounded(clock) -> None:
    generator = _generator(clock, spin_limit=0.01)
    generator.next_id()
    generator.state.sequence = MAX_SEQUENCE

    with pytest.raises(ClockRegressionFatal):
        generator.next_id()
    assert generator.state.sequence == MAX_SEQUENCE
    assert generator.state.last_timestamp == clock.now


def test_small_regression_is_waited_out(clock) -> None:
    generator = _generator(clock)
    before = unpack(generator.next_id())
    start = clock.now
    clock.script = [start - 3, start + 1]

    after = unpack(generator.next_id())

    assert after.timestamp >= before.timestamp
    assert after.timestamp == start + 1 - DEFAULT_EPOCH
    assert generator.status is GeneratorStatus.GENERATING


def test_recovering_onto_the_last_millisecond_continues_its_sequence(clock) -> None:
    generator = _generator(clock)
    generator.next_id()
    start = clock.now
    clock.script = [start - 3, start]

    parts = unpack(generator.next_id())

    assert parts.timestamp == start - DEFAULT_EPOCH
    assert parts.sequence == 1


def test_small_regression_that_never_recovers_fails(clock) -> None:
    generator = _generator(clock, regression_checks=2)
    generator.next_id()
    start = clock.now
    clock.script = [start - 3, start - 3, start - 3]

    with pytest.raises(ClockRegressionFatal) as excinfo:
        generator.next_id()
    assert excinfo.value.last_timestamp == start
    assert generator.state.last_timestamp == start
    assert generator.state.sequence == 0
    assert generator.status is GeneratorStatus.GENERATING


def test_large_regression_fails_immediately_and_keeps_state(clock) -> None:
    generator = _generator(clock)
    generator.next_id()
    generator.next_id()
    start = clock.now
    clock.script = [start - 50]

    with pytest.raises(ClockRegressionFatal) as excinfo:
        generator.next_id()

    assert excinfo.value.offset == 50
    assert clock.reads == 3
    assert generator.state.last_timestamp == start
    assert generator.state.sequence == 1
    assert generator.status is GeneratorStatus.GENERATING


def test_generator_keeps_working_after_a_failed_call(clock) -> None:
    generator = _generator(clock)
    last = generator.next_id()
    start = clock.now
    clock.script = [start - 50, start + 1]

    with pytest.raises(ClockRegressionFatal):
        generator.next_id()
    identifier = generator.next_id()

    assert identifier > last
    assert unpack(identifier).sequence == 0


def test_concurrent_callers_get_distinct_ids() -> None:
    generator = Generator(worker_id=1, datacenter_id=2)

    def burst(_):
        return [generator.next_id() for _ in range(500)]

    with ThreadPoolExecutor(max_workers=8) as pool:
        batches = list(pool.map(burst, range(8)))

    ids = [identifier for batch in batches for identifier in batch]
    assert len(ids) == len(set(ids)) == 4_000
    for batch in batches:
        assert batch == sorted(batch)


def test_closed_generator_refuses_calls(clock) -> None:
    generator = _generator(clock)
    generator.close()
    assert generator.closed
    with pytest.raises(GeneratorClosed):
        generator.next_id()


def test_close_interrupts_regression_wait(clock) -> None:
    generator = _generator(clock)
    generator.next_id()
    start = clock.now

    def closing_clock():
        generator.close()
        return start - 3

    generator.clock = closing_clock
    with pytest.raises(GeneratorClosed):
        generator.next_id()
    assert generator.state.last_timestamp == start


def test_close_interrupts_rollover_spin(clock) -> None:
    generator = _generator(clock, spin_limit=5.0)
    generator.next_id()
    generator.state.sequence = MAX_SEQUENCE
    start = clock.now

    def closing_clock():
        generator.close()
        return start

    generator.clock = closing_clock
    with pytest.raises(GeneratorClosed):
        generator.next_id()
    assert generator.state.sequence == MAX_SEQUENCE


def test_clock_before_epoch_is_rejected(clock) -> None:
    generator = _generator(clock, epoch=clock.now + 1)
    with pytest.raises(ValueError):
        generator.next_id()
    assert generator.state.last_timestamp == -1


@pytest.mark.parametrize(
    "kwargs, error",
    [
        ({"worker_id": 32, "datacenter_id": 0}, ValueError),
        ({"worker_id": 0, "datacenter_id": -1}, ValueError),
        ({"worker_id": "1", "datacenter_id": 0}, TypeError),
        ({"worker_id": 0, "datacenter_id": 0, "regression_checks": 0}, ValueError),
        ({"worker_id": 0, "datacenter_id": 0, "regression_threshold": -1}, ValueError),
        ({"worker_id": 0, "datacenter_id": 0, "spin_limit": 0}, ValueError),
    ],
)
def test_constructor_validates_arguments(kwargs, error) -> None:
    with pytest.raises(error):
        Generator(**kwargs)


def test_status_reports_drift_wait_only_while_waiting(clock) -> None:
    generator = _generator(clock)
    generator.next_id()
    start = clock.now
    reads = iter([start - 3, start + 1])
    seen = []

    def observing_clock():
        seen.append(generator.status)
        return next(reads)

    generator.clock = observing_clock
    generator.next_id()

    assert seen == [GeneratorStatus.GENERATING, GeneratorStatus.WAITING_OUT_DRIFT]
    assert generator.status is GeneratorStatus.GENERATING
