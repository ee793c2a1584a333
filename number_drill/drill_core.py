from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import StrEnum

from .number_source import NumberRange, RandomNumberSource
from .speech import Speaker, phrases_for
from .timers import Clock, DeadlineTimer

logger = logging.getLogger(__name__)


class RoundInProgressError(RuntimeError):
    """A round was started while another one is still pending."""


class RoundAlreadyResolvedError(RuntimeError):
    """A terminal round was asked to change its outcome."""


class Outcome(StrEnum):
    PENDING = "pending"
    CORRECT = "correct"
    INCORRECT = "incorrect"
    TIMED_OUT = "timed_out"


class DrillPhase(StrEnum):
    IDLE = "idle"
    ARMED = "armed"
    RESOLVED = "resolved"


class _Continuation(StrEnum):
    CHAIN = "chain"
    HALT = "halt"


# Resolved(outcome) -> what happens next.
_AFTER_RESOLUTION: dict[Outcome, _Continuation] = {
    Outcome.CORRECT: _Continuation.CHAIN,
    Outcome.INCORRECT: _Continuation.HALT,
    Outcome.TIMED_OUT: _Continuation.HALT,
}


@dataclass(frozen=True, slots=True)
class DrillConfig:
    title: str = "Practice French Numbers"
    language_tag: str = "fr-FR"
    deadline_s: float = 5.0
    auto_advance_period_s: float = 5.0
    initial_range: NumberRange = NumberRange(0, 100)
    initial_rate: float = 1.0
    min_rate: float = 0.5
    max_rate: float = 2.0
    rate_step: float = 0.1


@dataclass(slots=True)
class Round:
    seq: int
    value: int
    started_at_s: float
    outcome: Outcome = Outcome.PENDING

    @property
    def pending(self) -> bool:
        return self.outcome is Outcome.PENDING

    def resolve(self, outcome: Outcome) -> None:
        if outcome is Outcome.PENDING:
            raise ValueError("cannot resolve a round to pending")
        if not self.pending:
            raise RoundAlreadyResolvedError(f"round {self.seq} is already {self.outcome.value}")
        self.outcome = outcome


@dataclass(frozen=True, slots=True)
class HistoryEntry:
    seq: int
    value: int
    outcome: Outcome
    response: str | None = None
    response_time_s: float | None = None


@dataclass(frozen=True, slots=True)
class DrillSnapshot:
    """View model for the UI (pure data)."""

    title: str
    phase: DrillPhase
    auto_advance: bool
    speech_rate: float
    number_range: NumberRange
    revealed_value: int | None
    message: str
    time_remaining_s: float | None
    history: tuple[HistoryEntry, ...]


class SessionEngine:
    """Owns the drill session state and every transition on it.

    generate -> speak -> arm deadline -> accept one answer -> resolve, then
    either chain into the next round (correct) or halt auto-advance.
    Time comes from the injected clock; the host polls ``update()``.
    """

    def __init__(
        self,
        *,
        clock: Clock,
        speaker: Speaker,
        source: RandomNumberSource,
        config: DrillConfig | None = None,
    ) -> None:
        self._config = config or DrillConfig()
        self._clock = clock
        self._speaker = speaker
        self._source = source
        self._deadline = DeadlineTimer(clock=clock)
        self._phrases = phrases_for(self._config.language_tag)

        self._active: Round | None = None
        self._auto_advance = True
        self._speech_rate = float(self._config.initial_rate)
        self._range = self._config.initial_range
        self._history: list[HistoryEntry] = []

        self._phase = DrillPhase.IDLE
        self._next_seq = 1
        self._voice_id: str | None = None
        self._revealed_value: int | None = None
        self._message = ""
        self._notice: str | None = None

    @property
    def config(self) -> DrillConfig:
        return self._config

    @property
    def phase(self) -> DrillPhase:
        return self._phase

    @property
    def auto_advance(self) -> bool:
        return self._auto_advance

    @property
    def speech_rate(self) -> float:
        return self._speech_rate

    @property
    def number_range(self) -> NumberRange:
        return self._range

    @property
    def active_round(self) -> Round | None:
        return self._active

    @property
    def history(self) -> tuple[HistoryEntry, ...]:
        return tuple(self._history)

    @property
    def revealed_value(self) -> int | None:
        return self._revealed_value

    @property
    def message(self) -> str:
        return self._message

    def set_range(self, number_range: NumberRange) -> None:
        self._range = number_range

    def set_speech_rate(self, rate: float) -> None:
        self._speech_rate = float(rate)

    def set_auto_advance(self, enabled: bool) -> None:
        """Manual trigger when enabled: supersede any pending round and start a new one."""

        if not enabled:
            self._auto_advance = False
            return
        self._auto_advance = True
        self.start_round(override=True)

    def advance_if_allowed(self) -> bool:
        """Periodic entry point; starts a round only when nothing is active."""

        if not self._auto_advance or self._active is not None:
            return False
        return self.start_round() is not None

    def start_round(self, *, override: bool = False) -> Round | None:
        if self._active is not None and self._active.pending and not override:
            logger.warning("start_round refused: round %d is still pending", self._active.seq)
            raise RoundInProgressError(f"round {self._active.seq} is still pending")

        if self._active is not None:
            logger.debug("Abandoning round %d (value %d)", self._active.seq, self._active.value)
            self._active = None
        self._deadline.cancel()

        voice_id = self._speaker.find_voice(self._config.language_tag)
        if voice_id is None:
            self._halt_for_missing_voice()
            return None
        self._voice_id = voice_id

        value = self._source.next(self._range)
        rnd = Round(seq=self._next_seq, value=value, started_at_s=self._clock.now())
        self._next_seq += 1
        self._active = rnd
        self._phase = DrillPhase.ARMED
        self._revealed_value = None

        self._say(str(value))
        self._deadline.arm(self._config.deadline_s, lambda: self._on_deadline(rnd.seq))
        logger.debug("Round %d armed", rnd.seq)
        return rnd

    def submit_answer(self, raw: str) -> Outcome | None:
        """Score a typed answer. Returns None when the submission is ignored.

        An expired deadline is settled first, so an answer arriving after it
        loses even when no ``update()`` ran in between.
        """

        self._deadline.poll()
        rnd = self._active
        if rnd is None or not rnd.pending:
            return None
        text = raw.strip()
        try:
            candidate = int(text)
        except ValueError:
            return None

        response_time_s = max(0.0, self._clock.now() - rnd.started_at_s)
        self._deadline.cancel()
        if candidate == rnd.value:
            self._message = "Correct!"
            self._resolve(rnd, Outcome.CORRECT, response=text, response_time_s=response_time_s)
            self._say(self._phrases.correct)
        else:
            self._message = f"Incorrect, the correct number was {rnd.value}."
            self._resolve(rnd, Outcome.INCORRECT, response=text, response_time_s=response_time_s)
            self._say(self._phrases.incorrect)

        self._continue_after(rnd.outcome)
        return rnd.outcome

    def update(self) -> None:
        self._deadline.poll()

    def time_remaining_s(self) -> float | None:
        return self._deadline.time_remaining_s()

    def pop_notice(self) -> str | None:
        notice = self._notice
        self._notice = None
        return notice

    def snapshot(self) -> DrillSnapshot:
        return DrillSnapshot(
            title=self._config.title,
            phase=self._phase,
            auto_advance=self._auto_advance,
            speech_rate=self._speech_rate,
            number_range=self._range,
            revealed_value=self._revealed_value,
            message=self._message,
            time_remaining_s=self.time_remaining_s(),
            history=self.history,
        )

    def _on_deadline(self, seq: int) -> None:
        rnd = self._active
        if rnd is None or rnd.seq != seq or not rnd.pending:
            return
        self._message = "Time is up!"
        self._resolve(rnd, Outcome.TIMED_OUT)
        self._say(self._phrases.time_up)
        self._continue_after(rnd.outcome)

    def _resolve(
        self,
        rnd: Round,
        outcome: Outcome,
        *,
        response: str | None = None,
        response_time_s: float | None = None,
    ) -> None:
        rnd.resolve(outcome)
        self._phase = DrillPhase.RESOLVED
        self._revealed_value = rnd.value
        self._history.append(
            HistoryEntry(
                seq=rnd.seq,
                value=rnd.value,
                outcome=outcome,
                response=response,
                response_time_s=response_time_s,
            )
        )
        self._active = None
        logger.debug("Round %d resolved as %s", rnd.seq, outcome.value)

    def _continue_after(self, outcome: Outcome) -> None:
        step = _AFTER_RESOLUTION[outcome]
        self._phase = DrillPhase.IDLE
        if step is _Continuation.CHAIN:
            self.start_round()
        else:
            self._auto_advance = False

    def _halt_for_missing_voice(self) -> None:
        tag = self._config.language_tag
        logger.warning("No voice available for %s; pausing the drill", tag)
        self._auto_advance = False
        self._phase = DrillPhase.IDLE
        self._message = f"No voice found for {tag}."
        self._notice = f"No voice found for {tag}. Install one and press Space to retry."

    def _say(self, text: str) -> None:
        if self._voice_id is None:
            return
        self._speaker.cancel_all()
        self._speaker.speak(text, self._voice_id, self._speech_rate)


def build_number_drill(
    *,
    clock: Clock,
    speaker: Speaker,
    seed: int | None = None,
    config: DrillConfig | None = None,
) -> SessionEngine:
    return SessionEngine(
        clock=clock,
        speaker=speaker,
        source=RandomNumberSource(seed),
        config=config,
    )
