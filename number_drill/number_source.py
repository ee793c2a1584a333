from __future__ import annotations

import random
from dataclasses import dataclass


class DrillConfigurationError(ValueError):
    """Raised for user-supplied configuration that cannot define a round."""


@dataclass(frozen=True, slots=True)
class NumberRange:
    minimum: int
    maximum: int

    def __post_init__(self) -> None:
        if self.minimum > self.maximum:
            raise DrillConfigurationError(
                f"range minimum {self.minimum} is greater than maximum {self.maximum}"
            )

    @property
    def width(self) -> int:
        return self.maximum - self.minimum + 1

    def __contains__(self, value: object) -> bool:
        return isinstance(value, int) and self.minimum <= value <= self.maximum

    @classmethod
    def parse(cls, minimum: str, maximum: str) -> "NumberRange":
        """Build a range from raw text fields, rejecting anything non-integer."""

        try:
            lo = int(minimum.strip())
            hi = int(maximum.strip())
        except ValueError:
            raise DrillConfigurationError("range bounds must be whole numbers") from None
        return cls(lo, hi)


class RandomNumberSource:
    """Seeded uniform integer draws over an inclusive NumberRange."""

    def __init__(self, seed: int | None = None) -> None:
        self._seed = seed
        self._rng = random.Random(seed)

    @property
    def seed(self) -> int | None:
        return self._seed

    def next(self, number_range: NumberRange) -> int:
        # NumberRange already refuses min > max; this guards duck-typed callers.
        if number_range.minimum > number_range.maximum:
            raise DrillConfigurationError("range minimum is greater than maximum")
        return self._rng.randint(number_range.minimum, number_range.maximum)
