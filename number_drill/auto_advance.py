from __future__ import annotations

import logging

from .drill_core import SessionEngine
from .number_source import NumberRange
from .timers import Clock, PeriodicDriver

logger = logging.getLogger(__name__)


class AutoAdvanceLoop:
    """Per-frame pump that keeps the periodic driver in step with the engine.

    The driver runs only while auto-advance is on and is restarted whenever
    auto-advance toggles or the rate/range changes, so a tick never acts on
    configuration older than the last change.
    """

    def __init__(self, engine: SessionEngine, *, clock: Clock) -> None:
        self._engine = engine
        self._driver = PeriodicDriver(clock=clock)
        self._fingerprint: tuple[bool, float, NumberRange] | None = None

    @property
    def driver_running(self) -> bool:
        return self._driver.running

    def update(self) -> None:
        self._engine.update()
        self._sync_driver()
        self._driver.poll()

    def _sync_driver(self) -> None:
        engine = self._engine
        fingerprint = (engine.auto_advance, engine.speech_rate, engine.number_range)
        if fingerprint == self._fingerprint:
            return
        self._fingerprint = fingerprint
        if engine.auto_advance:
            logger.debug("Restarting auto-advance driver")
            self._driver.start(engine.config.auto_advance_period_s, self._on_tick)
        else:
            self._driver.stop()

    def _on_tick(self) -> None:
        self._engine.advance_if_allowed()
