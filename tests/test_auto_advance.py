from __future__ import annotations

from dataclasses import dataclass, field

from number_drill.auto_advance import AutoAdvanceLoop
from number_drill.drill_core import DrillConfig, Outcome, build_number_drill
from number_drill.number_source import NumberRange


@dataclass
class FakeClock:
    t: float = 0.0

    def now(self) -> float:
        return self.t

    def advance(self, dt: float) -> None:
        self.t += float(dt)


@dataclass
class FakeSpeaker:
    spoken: list[str] = field(default_factory=list)

    def find_voice(self, language_tag: str) -> str | None:
        return "v"

    def speak(self, text: str, voice_id: str, rate: float) -> None:
        self.spoken.append(text)

    def cancel_all(self) -> None:
        return None


def _setup(lo: int = 4, hi: int = 4):
    clock = FakeClock()
    engine = build_number_drill(
        clock=clock,
        speaker=FakeSpeaker(),
        seed=1,
        config=DrillConfig(initial_range=NumberRange(lo, hi)),
    )
    return AutoAdvanceLoop(engine, clock=clock), engine, clock


def _step_to(loop: AutoAdvanceLoop, clock: FakeClock, t: float, dt: float = 0.25) -> None:
    while clock.t < t:
        clock.advance(dt)
        loop.update()


def test_first_round_starts_after_one_period() -> None:
    loop, engine, clock = _setup()
    loop.update()
    assert loop.driver_running is True
    assert engine.active_round is None

    _step_to(loop, clock, 4.75)
    assert engine.active_round is None

    _step_to(loop, clock, 5.0)
    assert engine.active_round is not None
    assert engine.active_round.started_at_s == 5.0


def test_timeout_stops_the_driver_and_nothing_restarts() -> None:
    loop, engine, clock = _setup()
    loop.update()
    _step_to(loop, clock, 10.0)

    assert [e.outcome for e in engine.history] == [Outcome.TIMED_OUT]
    assert loop.driver_running is False

    _step_to(loop, clock, 40.0)
    assert len(engine.history) == 1
    assert engine.active_round is None


def test_tick_during_active_round_does_not_double_start() -> None:
    loop, engine, clock = _setup()
    loop.update()
    _step_to(loop, clock, 5.0)
    _step_to(loop, clock, 6.0)
    engine.submit_answer("4")  # chains a round at t=6
    chained = engine.active_round

    _step_to(loop, clock, 10.0)  # driver tick with a pending round
    assert engine.active_round is chained
    assert len(engine.history) == 1


def test_rate_change_restarts_the_period() -> None:
    loop, engine, clock = _setup()
    loop.update()
    _step_to(loop, clock, 4.0)

    engine.set_speech_rate(1.3)
    loop.update()
    _step_to(loop, clock, 5.0)
    assert engine.active_round is None

    _step_to(loop, clock, 9.0)
    assert engine.active_round is not None
    assert engine.active_round.started_at_s == 9.0


def test_range_change_restarts_the_period() -> None:
    loop, engine, clock = _setup()
    loop.update()
    _step_to(loop, clock, 3.0)

    engine.set_range(NumberRange(1, 2))
    loop.update()
    _step_to(loop, clock, 7.75)
    assert engine.active_round is None
    _step_to(loop, clock, 8.0)
    assert engine.active_round is not None
    assert engine.active_round.value in (1, 2)


def test_manual_trigger_revives_the_driver() -> None:
    loop, engine, clock = _setup()
    loop.update()
    _step_to(loop, clock, 10.0)
    assert loop.driver_running is False

    engine.set_auto_advance(True)  # round at t=10
    loop.update()
    assert loop.driver_running is True

    _step_to(loop, clock, 10.5)
    engine.submit_answer("4")  # chain at 10.5, deadline 15.5
    _step_to(loop, clock, 15.5)
    assert [e.outcome for e in engine.history] == [
        Outcome.TIMED_OUT,
        Outcome.CORRECT,
        Outcome.TIMED_OUT,
    ]
    assert loop.driver_running is False
