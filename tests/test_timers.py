from __future__ import annotations

from dataclasses import dataclass

import pytest

from number_drill.timers import DeadlineTimer, PeriodicDriver, TimerState


@dataclass
class FakeClock:
    t: float = 0.0

    def now(self) -> float:
        return self.t

    def advance(self, dt: float) -> None:
        self.t += float(dt)


def test_deadline_fires_once_at_boundary() -> None:
    clock = FakeClock()
    timer = DeadlineTimer(clock=clock)
    fired: list[int] = []

    timer.arm(5.0, lambda: fired.append(1))
    clock.advance(4.99)
    assert timer.poll() is False
    assert timer.state is TimerState.ARMED

    clock.advance(0.01)
    assert timer.poll() is True
    assert timer.state is TimerState.FIRED

    clock.advance(10.0)
    assert timer.poll() is False
    assert fired == [1]


def test_rearm_cancels_previous_callback() -> None:
    clock = FakeClock()
    timer = DeadlineTimer(clock=clock)
    fired: list[str] = []

    first = timer.arm(5.0, lambda: fired.append("first"))
    clock.advance(3.0)
    second = timer.arm(5.0, lambda: fired.append("second"))
    assert second == first + 1

    clock.advance(2.5)  # first deadline has passed
    timer.poll()
    assert fired == []

    clock.advance(2.5)
    timer.poll()
    assert fired == ["second"]


def test_cancel_prevents_fire_and_is_idempotent() -> None:
    clock = FakeClock()
    timer = DeadlineTimer(clock=clock)
    fired: list[int] = []

    timer.arm(1.0, lambda: fired.append(1))
    timer.cancel()
    timer.cancel()
    assert timer.state is TimerState.IDLE

    clock.advance(5.0)
    assert timer.poll() is False
    assert fired == []


def test_cancel_after_fire_leaves_fired_state() -> None:
    clock = FakeClock()
    timer = DeadlineTimer(clock=clock)
    timer.arm(0.5, lambda: None)
    clock.advance(0.5)
    timer.poll()

    timer.cancel()
    assert timer.state is TimerState.FIRED


def test_time_remaining_only_while_armed() -> None:
    clock = FakeClock()
    timer = DeadlineTimer(clock=clock)
    assert timer.time_remaining_s() is None

    timer.arm(5.0, lambda: None)
    clock.advance(2.0)
    assert timer.time_remaining_s() == pytest.approx(3.0)

    timer.cancel()
    assert timer.time_remaining_s() is None


def test_negative_duration_rejected() -> None:
    with pytest.raises(ValueError):
        DeadlineTimer(clock=FakeClock()).arm(-1.0, lambda: None)


def test_periodic_driver_ticks_every_period() -> None:
    clock = FakeClock()
    driver = PeriodicDriver(clock=clock)
    ticks: list[float] = []

    driver.start(5.0, lambda: ticks.append(clock.now()))
    for _ in range(32):
        clock.advance(0.5)
        driver.poll()

    assert ticks == pytest.approx([5.0, 10.0, 15.0])


def test_periodic_driver_does_not_burst_after_a_stall() -> None:
    clock = FakeClock()
    driver = PeriodicDriver(clock=clock)
    ticks: list[float] = []

    driver.start(1.0, lambda: ticks.append(clock.now()))
    clock.advance(10.0)
    driver.poll()
    driver.poll()
    assert ticks == [10.0]

    clock.advance(1.0)
    driver.poll()
    assert ticks == [10.0, 11.0]


def test_periodic_driver_stop_and_restart() -> None:
    clock = FakeClock()
    driver = PeriodicDriver(clock=clock)
    ticks: list[float] = []

    driver.start(2.0, lambda: ticks.append(clock.now()))
    clock.advance(1.5)
    driver.stop()
    assert driver.running is False
    clock.advance(1.0)
    assert driver.poll() is False

    driver.start(2.0, lambda: ticks.append(clock.now()))
    clock.advance(2.0)
    driver.poll()
    assert ticks == [4.5]
