from __future__ import annotations

import logging
from enum import StrEnum

from .drill_core import Outcome, SessionEngine
from .number_source import DrillConfigurationError, NumberRange

logger = logging.getLogger(__name__)


class Command(StrEnum):
    TRIGGER = "trigger"
    FOCUS_ANSWER = "focus_answer"
    SLOWER = "slower"
    FASTER = "faster"
    SUBMIT = "submit"
    NEXT_FIELD = "next_field"
    ERASE = "erase"


class FocusField(StrEnum):
    ANSWER = "answer"
    RANGE_MIN = "range_min"
    RANGE_MAX = "range_max"


# Key names follow pygame.key.name().
KEY_BINDINGS: dict[str, Command] = {
    "space": Command.TRIGGER,
    "/": Command.FOCUS_ANSWER,
    "left": Command.SLOWER,
    "right": Command.FASTER,
    "return": Command.SUBMIT,
    "enter": Command.SUBMIT,
    "tab": Command.NEXT_FIELD,
    "backspace": Command.ERASE,
}

_FOCUS_ORDER = (FocusField.ANSWER, FocusField.RANGE_MIN, FocusField.RANGE_MAX)
_MAX_FIELD_CHARS = 9


class InputGate:
    """Routes keys and typed text into SessionEngine calls.

    Holds only presentation state: which field has focus and the raw text of
    the answer and range fields. Range edits are validated here so the engine
    never receives an ill-defined range.
    """

    def __init__(self, engine: SessionEngine, *, bindings: dict[str, Command] | None = None) -> None:
        self._engine = engine
        self._bindings = dict(KEY_BINDINGS if bindings is None else bindings)
        self._focus = FocusField.ANSWER
        current = engine.number_range
        self._buffers: dict[FocusField, str] = {
            FocusField.ANSWER: "",
            FocusField.RANGE_MIN: str(current.minimum),
            FocusField.RANGE_MAX: str(current.maximum),
        }
        self._error: str | None = None

    @property
    def focus(self) -> FocusField:
        return self._focus

    @property
    def error(self) -> str | None:
        return self._error

    def text(self, field: FocusField) -> str:
        return self._buffers[field]

    def command_for(self, key_name: str) -> Command | None:
        return self._bindings.get(key_name)

    def handle_key(self, key_name: str) -> bool:
        """Dispatch a bound key. Returns False when the key has no binding."""

        command = self.command_for(key_name)
        if command is None:
            return False
        self.dispatch(command)
        return True

    def dispatch(self, command: Command) -> None:
        if command is Command.TRIGGER:
            self._engine.set_auto_advance(True)
        elif command is Command.FOCUS_ANSWER:
            self._focus = FocusField.ANSWER
        elif command is Command.SLOWER:
            self.adjust_rate(-self._engine.config.rate_step)
        elif command is Command.FASTER:
            self.adjust_rate(self._engine.config.rate_step)
        elif command is Command.SUBMIT:
            self.submit()
        elif command is Command.NEXT_FIELD:
            idx = _FOCUS_ORDER.index(self._focus)
            self._focus = _FOCUS_ORDER[(idx + 1) % len(_FOCUS_ORDER)]
        elif command is Command.ERASE:
            self._buffers[self._focus] = self._buffers[self._focus][:-1]

    def type_text(self, text: str) -> None:
        buf = self._buffers[self._focus]
        for ch in text:
            if ch.isdigit():
                buf += ch
            elif ch == "-" and buf == "":
                buf = ch
        self._buffers[self._focus] = buf[:_MAX_FIELD_CHARS]

    def adjust_rate(self, delta: float) -> float:
        cfg = self._engine.config
        rate = round(self._engine.speech_rate + delta, 1)
        rate = max(cfg.min_rate, min(cfg.max_rate, rate))
        self._engine.set_speech_rate(rate)
        return rate

    def submit(self) -> Outcome | None:
        if self._focus is FocusField.ANSWER:
            outcome = self._engine.submit_answer(self._buffers[FocusField.ANSWER])
            if outcome is Outcome.CORRECT:
                self._buffers[FocusField.ANSWER] = ""
            return outcome
        self.apply_range()
        return None

    def apply_range(self) -> bool:
        try:
            number_range = NumberRange.parse(
                self._buffers[FocusField.RANGE_MIN],
                self._buffers[FocusField.RANGE_MAX],
            )
        except DrillConfigurationError as exc:
            logger.info("Rejected range input: %s", exc)
            self._error = str(exc)
            return False
        self._error = None
        self._engine.set_range(number_range)
        return True
