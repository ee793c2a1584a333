from __future__ import annotations

import importlib.util
import logging
import os
import re
import shutil
import subprocess
import sys
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)

BASE_WORDS_PER_MIN = 176


@dataclass(frozen=True, slots=True)
class Voice:
    voice_id: str
    name: str
    language: str


@dataclass(frozen=True, slots=True)
class Phrases:
    correct: str
    incorrect: str
    time_up: str


PHRASEBOOK: dict[str, Phrases] = {
    "en": Phrases(correct="Correct", incorrect="Incorrect", time_up="Time is up!"),
    "fr": Phrases(correct="Correct", incorrect="Incorrect", time_up="Le temps est écoulé !"),
}


def phrases_for(language_tag: str) -> Phrases:
    return PHRASEBOOK.get(_primary_subtag(language_tag), PHRASEBOOK["en"])


class Speaker(Protocol):
    """Text-to-speech collaborator used by the session engine."""

    def find_voice(self, language_tag: str) -> str | None:
        """Return the id of a voice for ``language_tag``, or None if none is installed."""
        ...

    def speak(self, text: str, voice_id: str, rate: float) -> None:
        """Queue an utterance; returns immediately."""
        ...

    def cancel_all(self) -> None:
        """Drop queued speech and stop the utterance currently playing."""
        ...


def normalize_language_tag(tag: str) -> str:
    return str(tag).strip().replace("_", "-").lower()


def _primary_subtag(tag: str) -> str:
    return normalize_language_tag(tag).split("-", 1)[0]


def match_voice(voices: list[Voice], language_tag: str) -> Voice | None:
    """Exact tag match first, then the first voice sharing the primary subtag."""

    wanted = normalize_language_tag(language_tag)
    if wanted == "":
        return None
    for voice in voices:
        if normalize_language_tag(voice.language) == wanted:
            return voice
    primary = _primary_subtag(wanted)
    for voice in voices:
        if _primary_subtag(voice.language) == primary:
            return voice
    return None


def parse_espeak_voices(output: str) -> list[Voice]:
    # Columns: Pty Language Age/Gender VoiceName File [Other Languages]
    voices: list[Voice] = []
    for line in output.splitlines():
        parts = line.split()
        if len(parts) < 4 or parts[0] == "Pty":
            continue
        language = parts[1]
        voices.append(Voice(voice_id=language, name=parts[3].replace("_", " "), language=language))
    return voices


_SAY_LINE = re.compile(r"^(?P<name>.*?)\s+(?P<lang>[A-Za-z]{2,3}[_-][A-Za-z0-9]{2,})\s+#")


def parse_say_voices(output: str) -> list[Voice]:
    voices: list[Voice] = []
    for line in output.splitlines():
        m = _SAY_LINE.match(line)
        if m is None:
            continue
        name = m.group("name").strip()
        voices.append(Voice(voice_id=name, name=name, language=m.group("lang")))
    return voices


def parse_tab_voices(output: str) -> list[Voice]:
    """Parse ``id<TAB>name<TAB>language`` lines (or ``name<TAB>language``)."""

    voices: list[Voice] = []
    for line in output.splitlines():
        parts = [p.strip() for p in line.split("\t")]
        if len(parts) == 3 and parts[0] and parts[2]:
            voices.append(Voice(voice_id=parts[0], name=parts[1], language=parts[2]))
        elif len(parts) == 2 and parts[0] and parts[1]:
            voices.append(Voice(voice_id=parts[0], name=parts[0], language=parts[1]))
    return voices


@dataclass(frozen=True, slots=True)
class _Utterance:
    text: str
    voice_id: str
    rate: float


_PYTTSX3_LIST_SCRIPT = (
    "import pyttsx3\n"
    "e=pyttsx3.init()\n"
    "for v in e.getProperty('voices'):\n"
    "    langs=[]\n"
    "    for l in (getattr(v,'languages',None) or []):\n"
    "        if isinstance(l,bytes):\n"
    "            l=l[1:].decode('ascii','ignore')\n"
    "        langs.append(str(l))\n"
    "    for l in langs[:1]:\n"
    "        print(f'{v.id}\\t{v.name}\\t{l}')\n"
)

_PYTTSX3_SPEAK_SCRIPT = (
    "import sys\n"
    "voice, rate = sys.argv[1], int(sys.argv[2])\n"
    "txt=' '.join(sys.argv[3:]).strip()\n"
    "import pyttsx3\n"
    "e=pyttsx3.init()\n"
    "e.setProperty('voice', voice)\n"
    "e.setProperty('rate', rate)\n"
    "e.setProperty('volume', 0.95)\n"
    "e.say(txt)\n"
    "e.runAndWait()\n"
)

_POWERSHELL_LIST_SCRIPT = (
    "Add-Type -AssemblyName System.Speech; "
    "$s=New-Object System.Speech.Synthesis.SpeechSynthesizer; "
    "foreach($v in $s.GetInstalledVoices()){ $i=$v.VoiceInfo; "
    'Write-Output ($i.Name + "`t" + $i.Culture.Name) }'
)

_POWERSHELL_SPEAK_SCRIPT = (
    "Add-Type -AssemblyName System.Speech; "
    "$s=New-Object System.Speech.Synthesis.SpeechSynthesizer; "
    "$s.SelectVoice($args[0]); "
    "$s.Rate=[int]$args[1]; "
    "$txt=($args[2..($args.Length-1)] -join ' '); "
    "$s.Speak($txt);"
)


class OfflineTtsSpeaker:
    """Offline TTS via isolated subprocesses, one utterance at a time.

    Backends are probed in platform order; a backend that fails to launch is
    dropped and the next one takes over. Voice catalogs are queried for every
    backend at construction, before any frame runs; a backend whose catalog is
    empty is dropped. Voice ids are remembered with the language they were
    found for, so queued speech re-resolves its voice after a fallback.
    """

    SUPPORTED_BACKENDS = ("pyttsx3-subprocess", "say", "powershell", "espeak")

    _max_queue = 8
    _max_utterance_s = 12.0
    _catalog_timeout_s = 8.0

    def __init__(self, *, enabled: bool = True, forced_backend: str | None = None) -> None:
        self._enabled = False
        self._backends: list[str] = []
        self._backend: str | None = None
        self._pending: list[_Utterance] = []
        self._active_proc: subprocess.Popen[bytes] | None = None
        self._active_started_s = 0.0
        self._catalogs: dict[str, list[Voice]] = {}
        self._tag_for_voice: dict[str, str] = {}

        if not enabled:
            return
        if os.environ.get("SDL_AUDIODRIVER", "").strip().lower() == "dummy":
            # Keep automated/headless runs silent and stable.
            return

        for name in self._resolve_backends(forced_backend):
            catalog = self._query_catalog(name)
            logger.debug("Backend %s reports %d voices", name, len(catalog))
            if not catalog:
                logger.warning("TTS backend %s lists no voices; skipping it", name)
                continue
            self._catalogs[name] = catalog
            self._backends.append(name)
        self._backend = self._backends[0] if self._backends else None
        self._enabled = self._backend is not None
        if self._enabled:
            logger.info("Using TTS backend %s", self._backend)
        else:
            logger.warning("No offline TTS backend available")

    @property
    def enabled(self) -> bool:
        return bool(self._enabled)

    @property
    def backend(self) -> str | None:
        return self._backend

    @property
    def pending_count(self) -> int:
        active = 1 if self._active_proc is not None else 0
        return active + len(self._pending)

    def voices(self) -> list[Voice]:
        backend = self._backend
        if not self._enabled or backend is None:
            return []
        return list(self._catalogs.get(backend, []))

    def find_voice(self, language_tag: str) -> str | None:
        """Match ``language_tag`` against each backend in preference order.

        The first backend that has the language becomes the current one.
        """

        if not self._enabled:
            return None
        for name in self._backends:
            voice = match_voice(self._catalogs.get(name, []), language_tag)
            if voice is None:
                continue
            if name != self._backend:
                logger.info("Switching TTS backend %s -> %s for %s", self._backend, name, language_tag)
                self._backend = name
            self._tag_for_voice[voice.voice_id] = language_tag
            return voice.voice_id
        return None

    def speak(self, text: str, voice_id: str, rate: float) -> None:
        if not self._enabled:
            return
        phrase = " ".join(str(text).strip().split())
        if phrase == "":
            return
        self._pending.append(_Utterance(text=phrase, voice_id=str(voice_id), rate=float(rate)))
        if len(self._pending) > self._max_queue:
            del self._pending[: len(self._pending) - self._max_queue]

    def cancel_all(self) -> None:
        self._pending.clear()
        proc = self._active_proc
        self._active_proc = None
        if proc is not None:
            self._terminate_process(proc)

    def update(self) -> None:
        if not self._enabled:
            return

        proc = self._active_proc
        if proc is not None:
            if proc.poll() is None:
                if (time.monotonic() - self._active_started_s) > self._max_utterance_s:
                    self._terminate_process(proc)
                    self._active_proc = None
            else:
                self._active_proc = None

        if self._active_proc is not None:
            return
        if not self._pending:
            return

        while self._pending and self._enabled:
            voice_id = self._voice_on_current_backend(self._pending[0].voice_id)
            launched = None
            if voice_id is not None:
                launched = self._launch_process(self._pending[0], voice_id)
            if launched is not None:
                del self._pending[0]
                self._active_proc = launched
                self._active_started_s = time.monotonic()
                return
            self._drop_current_backend()

        if not self._enabled:
            self._pending.clear()

    @staticmethod
    def _terminate_process(proc: subprocess.Popen[bytes]) -> None:
        try:
            proc.terminate()
        except OSError:
            return
        try:
            proc.wait(timeout=0.5)
        except subprocess.TimeoutExpired:
            try:
                proc.kill()
            except OSError:
                pass

    @classmethod
    def _resolve_backends(cls, forced: str | None) -> list[str]:
        forced_name = (forced or "").strip().lower()
        if forced_name in cls.SUPPORTED_BACKENDS and cls._backend_available(forced_name):
            return [forced_name]

        candidates: list[str] = []
        if sys.platform == "darwin":
            candidates.append("say")
        if os.name == "nt":
            candidates.append("powershell")
        candidates.extend(("pyttsx3-subprocess", "espeak"))

        seen: set[str] = set()
        resolved: list[str] = []
        for name in candidates:
            if name in seen:
                continue
            seen.add(name)
            if cls._backend_available(name):
                resolved.append(name)
        return resolved

    @staticmethod
    def _backend_available(name: str) -> bool:
        if name == "say":
            return (shutil.which("say") is not None) or Path("/usr/bin/say").exists()
        if name == "powershell":
            return (shutil.which("powershell") is not None) or (shutil.which("pwsh") is not None)
        if name == "pyttsx3-subprocess":
            return importlib.util.find_spec("pyttsx3") is not None
        if name == "espeak":
            return shutil.which("espeak") is not None
        return False

    def _drop_current_backend(self) -> None:
        backend = self._backend
        if backend is None:
            self._enabled = False
            return
        logger.warning("TTS backend %s failed; dropping it", backend)
        self._backends = [name for name in self._backends if name != backend]
        self._backend = self._backends[0] if self._backends else None
        self._enabled = self._backend is not None

    def _voice_on_current_backend(self, voice_id: str) -> str | None:
        catalog = self._catalogs.get(self._backend or "", [])
        if any(voice.voice_id == voice_id for voice in catalog):
            return voice_id
        tag = self._tag_for_voice.get(voice_id)
        voice = match_voice(catalog, tag) if tag else None
        if tag is None or voice is None:
            logger.warning("Voice %s has no counterpart on backend %s", voice_id, self._backend)
            return None
        self._tag_for_voice[voice.voice_id] = tag
        return voice.voice_id

    def _query_catalog(self, backend: str) -> list[Voice]:
        if backend == "pyttsx3-subprocess":
            argv = [sys.executable, "-c", _PYTTSX3_LIST_SCRIPT]
            parser = parse_tab_voices
        elif backend == "say":
            argv = [shutil.which("say") or "/usr/bin/say", "-v", "?"]
            parser = parse_say_voices
        elif backend == "powershell":
            ps_bin = shutil.which("powershell") or shutil.which("pwsh")
            if ps_bin is None:
                return []
            argv = [ps_bin, "-NoProfile", "-NonInteractive", "-Command", _POWERSHELL_LIST_SCRIPT]
            parser = parse_tab_voices
        elif backend == "espeak":
            argv = ["espeak", "--voices"]
            parser = parse_espeak_voices
        else:
            return []

        try:
            done = subprocess.run(
                argv,
                capture_output=True,
                text=True,
                timeout=self._catalog_timeout_s,
                check=False,
            )
        except (OSError, subprocess.SubprocessError) as exc:
            logger.warning("Voice catalog query for %s failed: %s", backend, exc)
            return []
        return parser(done.stdout or "")

    def _launch_process(self, utterance: _Utterance, voice_id: str) -> subprocess.Popen[bytes] | None:
        backend = self._backend
        if backend is None:
            return None

        wpm = int(round(BASE_WORDS_PER_MIN * utterance.rate))
        try:
            if backend == "pyttsx3-subprocess":
                return subprocess.Popen(
                    [sys.executable, "-c", _PYTTSX3_SPEAK_SCRIPT, voice_id, str(wpm), utterance.text],
                    stdout=subprocess.DEVNULL,
                    stderr=subprocess.DEVNULL,
                )

            if backend == "say":
                return subprocess.Popen(
                    [
                        shutil.which("say") or "/usr/bin/say",
                        "-v",
                        voice_id,
                        "-r",
                        str(wpm),
                        utterance.text,
                    ],
                    stdout=subprocess.DEVNULL,
                    stderr=subprocess.DEVNULL,
                )

            if backend == "powershell":
                ps_bin = shutil.which("powershell") or shutil.which("pwsh")
                if ps_bin is None:
                    return None
                sapi_rate = max(-10, min(10, int(round((utterance.rate - 1.0) * 10.0))))
                return subprocess.Popen(
                    [
                        ps_bin,
                        "-NoProfile",
                        "-NonInteractive",
                        "-Command",
                        _POWERSHELL_SPEAK_SCRIPT,
                        voice_id,
                        str(sapi_rate),
                        utterance.text,
                    ],
                    stdout=subprocess.DEVNULL,
                    stderr=subprocess.DEVNULL,
                )

            if backend == "espeak":
                return subprocess.Popen(
                    ["espeak", "-v", voice_id, "-s", str(wpm), utterance.text],
                    stdout=subprocess.DEVNULL,
                    stderr=subprocess.DEVNULL,
                )
        except OSError as exc:
            logger.warning("Could not launch %s: %s", backend, exc)
            return None
        return None
