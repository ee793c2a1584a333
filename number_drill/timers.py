from __future__ import annotations

import time
from collections.abc import Callable
from enum import StrEnum
from typing import Protocol


class Clock(Protocol):
    """Monotonic clock abstraction.

    Timers and the session engine read time through this interface so that
    tests can drive them with a fake clock.
    """

    def now(self) -> float:
        """Return monotonic seconds."""


class RealClock:
    """Production clock backed by time.monotonic()."""

    def now(self) -> float:
        return time.monotonic()


class TimerState(StrEnum):
    IDLE = "idle"
    ARMED = "armed"
    FIRED = "fired"


class DeadlineTimer:
    """Single-slot restartable countdown, polled by the host loop.

    Each ``arm`` hands out a new token and replaces whatever was armed before,
    so at most one expiry callback is ever pending. ``poll`` fires an expired
    arming exactly once.
    """

    def __init__(self, *, clock: Clock) -> None:
        self._clock = clock
        self._state = TimerState.IDLE
        self._token = 0
        self._deadline_s: float | None = None
        self._on_expire: Callable[[], None] | None = None

    @property
    def state(self) -> TimerState:
        return self._state

    @property
    def token(self) -> int:
        return self._token

    def arm(self, duration_s: float, on_expire: Callable[[], None]) -> int:
        if duration_s < 0:
            raise ValueError("duration_s must be >= 0")
        self._token += 1
        self._deadline_s = self._clock.now() + float(duration_s)
        self._on_expire = on_expire
        self._state = TimerState.ARMED
        return self._token

    def cancel(self) -> None:
        if self._state is not TimerState.ARMED:
            return
        self._state = TimerState.IDLE
        self._deadline_s = None
        self._on_expire = None

    def time_remaining_s(self) -> float | None:
        if self._state is not TimerState.ARMED:
            return None
        assert self._deadline_s is not None
        return max(0.0, self._deadline_s - self._clock.now())

    def poll(self) -> bool:
        """Fire the callback if the armed deadline has passed. Returns True if fired."""

        if self._state is not TimerState.ARMED:
            return False
        assert self._deadline_s is not None
        if self._clock.now() < self._deadline_s:
            return False

        callback = self._on_expire
        self._state = TimerState.FIRED
        self._deadline_s = None
        self._on_expire = None
        if callback is not None:
            callback()
        return True


class PeriodicDriver:
    """Recurring tick for the host loop.

    A tick that falls behind by several periods fires once and reschedules from
    the current time instead of bursting.
    """

    def __init__(self, *, clock: Clock) -> None:
        self._clock = clock
        self._period_s: float | None = None
        self._next_tick_s: float | None = None
        self._on_tick: Callable[[], None] | None = None

    @property
    def running(self) -> bool:
        return self._on_tick is not None

    def start(self, period_s: float, on_tick: Callable[[], None]) -> None:
        if period_s <= 0:
            raise ValueError("period_s must be > 0")
        self._period_s = float(period_s)
        self._next_tick_s = self._clock.now() + self._period_s
        self._on_tick = on_tick

    def stop(self) -> None:
        self._period_s = None
        self._next_tick_s = None
        self._on_tick = None

    def poll(self) -> bool:
        if self._on_tick is None:
            return False
        assert self._period_s is not None and self._next_tick_s is not None
        now = self._clock.now()
        if now < self._next_tick_s:
            return False

        self._next_tick_s += self._period_s
        if self._next_tick_s <= now:
            self._next_tick_s = now + self._period_s
        self._on_tick()
        return True
