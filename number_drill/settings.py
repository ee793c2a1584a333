from __future__ import annotations

import logging
import random
import sys
from collections.abc import Mapping
from dataclasses import dataclass

from .number_source import DrillConfigurationError
from .speech import OfflineTtsSpeaker

ENV_PREFIX = "NUMBER_DRILL_"

_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


@dataclass(frozen=True, slots=True)
class DrillSettings:
    language_tag: str = "fr-FR"
    seed: int | None = None
    tts_enabled: bool = True
    tts_backend: str | None = None
    log_level: str = "WARNING"


def _env(environ: Mapping[str, str], name: str) -> str:
    return environ.get(ENV_PREFIX + name, "").strip()


def load_settings(environ: Mapping[str, str]) -> DrillSettings:
    """Read NUMBER_DRILL_* variables; unset or blank variables keep their defaults."""

    defaults = DrillSettings()

    language = _env(environ, "LANGUAGE") or defaults.language_tag

    seed: int | None = None
    raw_seed = _env(environ, "SEED")
    if raw_seed:
        try:
            seed = int(raw_seed)
        except ValueError:
            raise DrillConfigurationError(f"{ENV_PREFIX}SEED must be an integer, got {raw_seed!r}") from None

    backend = _env(environ, "TTS_BACKEND").lower() or None
    if backend is not None and backend not in OfflineTtsSpeaker.SUPPORTED_BACKENDS:
        supported = ", ".join(OfflineTtsSpeaker.SUPPORTED_BACKENDS)
        raise DrillConfigurationError(f"{ENV_PREFIX}TTS_BACKEND must be one of: {supported}")

    level = (_env(environ, "LOG_LEVEL") or defaults.log_level).upper()
    if not isinstance(logging.getLevelName(level), int):
        raise DrillConfigurationError(f"unknown log level {level!r}")

    return DrillSettings(
        language_tag=language,
        seed=seed,
        tts_enabled=_env(environ, "DISABLE_TTS") != "1",
        tts_backend=backend,
        log_level=level,
    )


def new_seed() -> int:
    return random.SystemRandom().randint(1, 2**31 - 1)


def configure_logging(level: str = "WARNING") -> logging.Logger:
    """Send number_drill log records to stderr at ``level``."""

    log = logging.getLogger("number_drill")
    log.setLevel(level)
    log.handlers.clear()
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(_LOG_FORMAT, datefmt="%H:%M:%S"))
    log.addHandler(handler)
    return log
