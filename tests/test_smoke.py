"""Smoke tests for the pygame UI.

These run the application's main loop for a handful of frames with the SDL
dummy drivers. With the dummy audio driver no TTS voice is available, so the
drill must surface the missing-voice notice instead of starting a mute round.
"""

from __future__ import annotations

import os

# Use the dummy drivers before importing pygame or the application
os.environ.setdefault("SDL_VIDEODRIVER", "dummy")
os.environ.setdefault("SDL_AUDIODRIVER", "dummy")
os.environ.setdefault("PYGAME_HIDE_SUPPORT_PROMPT", "1")

from dataclasses import dataclass


@dataclass
class FakeClock:
    t: float = 0.0

    def now(self) -> float:
        return self.t

    def advance(self, dt: float) -> None:
        self.t += float(dt)


def _key(key: int, unicode: str = ""):
    import pygame

    return pygame.event.Event(pygame.KEYDOWN, {"key": key, "unicode": unicode, "mod": 0})


def test_app_runs_headless() -> None:
    from number_drill.app import run

    exit_code = run(max_frames=3)
    assert exit_code == 0


def test_app_handles_keys_and_quits_on_escape() -> None:
    import pygame

    from number_drill.app import run

    def inject(frame: int) -> None:
        if frame == 1:
            pygame.event.post(_key(pygame.K_SPACE, " "))
        elif frame == 3:
            pygame.event.post(_key(pygame.K_RETURN))
        elif frame == 4:
            pygame.event.post(_key(pygame.K_RIGHT))
        elif frame == 5:
            pygame.event.post(_key(pygame.K_ESCAPE))

    assert run(max_frames=200, event_injector=inject) == 0


def test_missing_voice_pushes_blocking_notice() -> None:
    import pygame

    from number_drill.app import App, DrillScreen, NoticeScreen
    from number_drill.drill_core import build_number_drill
    from number_drill.speech import OfflineTtsSpeaker

    pygame.init()
    try:
        surface = pygame.display.set_mode((960, 540))
        app = App(surface=surface, font=pygame.font.Font(None, 36))
        clock = FakeClock()
        speaker = OfflineTtsSpeaker(enabled=False)
        engine = build_number_drill(clock=clock, speaker=speaker, seed=1)
        screen = DrillScreen(app, engine=engine, speaker=speaker, clock=clock)
        app.push(screen)

        app.render()
        assert app.top is screen

        app.handle_event(_key(pygame.K_SPACE, " "))
        app.render()
        assert isinstance(app.top, NoticeScreen)
        assert "fr-FR" in app.top.message
        assert engine.auto_advance is False
        assert engine.active_round is None

        app.render()
        app.handle_event(_key(pygame.K_RETURN))
        assert app.top is screen
    finally:
        pygame.quit()


def test_drill_screen_routes_typing_to_focused_field() -> None:
    import pygame

    from number_drill.app import App, DrillScreen
    from number_drill.drill_core import build_number_drill
    from number_drill.input_gate import FocusField
    from number_drill.speech import OfflineTtsSpeaker

    pygame.init()
    try:
        surface = pygame.display.set_mode((960, 540))
        app = App(surface=surface, font=pygame.font.Font(None, 36))
        clock = FakeClock()
        speaker = OfflineTtsSpeaker(enabled=False)
        engine = build_number_drill(clock=clock, speaker=speaker, seed=1)
        screen = DrillScreen(app, engine=engine, speaker=speaker, clock=clock)
        app.push(screen)

        app.handle_event(_key(pygame.K_4, "4"))
        app.handle_event(_key(pygame.K_2, "2"))
        assert screen.gate.text(FocusField.ANSWER) == "42"

        app.handle_event(_key(pygame.K_TAB))
        app.handle_event(_key(pygame.K_BACKSPACE))
        assert screen.gate.text(FocusField.RANGE_MIN) == ""

        app.handle_event(_key(pygame.K_SLASH, "/"))
        assert screen.gate.focus is FocusField.ANSWER
        assert screen.gate.text(FocusField.ANSWER) == "42"

        app.handle_event(_key(pygame.K_LEFT))
        assert engine.speech_rate == 0.9
        app.render()
    finally:
        pygame.quit()


def test_console_entry_point_delegates_to_run(monkeypatch) -> None:
    import number_drill.__main__ as entry

    monkeypatch.setattr(entry, "run", lambda: 0)
    assert entry.main() == 0
