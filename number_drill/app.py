"""Pygame UI shell for the number listening drill.

One drill screen (range fields, speed bar, answer box, feedback, history) plus
a blocking notice screen. Timing, scoring and session state live in
number_drill/drill_core.py; this module only draws snapshots and forwards keys
through the InputGate.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable
from typing import Protocol

import pygame

from .auto_advance import AutoAdvanceLoop
from .drill_core import DrillConfig, DrillSnapshot, Outcome, SessionEngine, build_number_drill
from .input_gate import Command, FocusField, InputGate
from .settings import configure_logging, load_settings, new_seed
from .speech import OfflineTtsSpeaker, normalize_language_tag
from .timers import Clock, RealClock

logger = logging.getLogger(__name__)

WINDOW_SIZE = (960, 540)
TARGET_FPS = 60

_BG = (3, 9, 78)
_PANEL_BG = (8, 18, 104)
_BORDER = (226, 236, 255)
_TEXT_MAIN = (238, 245, 255)
_TEXT_MUTED = (186, 200, 224)
_BAD = (236, 92, 92)

_KEY_NAMES: dict[int, str] = {
    pygame.K_SPACE: "space",
    pygame.K_SLASH: "/",
    pygame.K_LEFT: "left",
    pygame.K_RIGHT: "right",
    pygame.K_RETURN: "return",
    pygame.K_KP_ENTER: "enter",
    pygame.K_TAB: "tab",
    pygame.K_BACKSPACE: "backspace",
}

_LANGUAGE_NAMES = {"fr": "French", "en": "English", "de": "German", "es": "Spanish", "it": "Italian"}


class Screen(Protocol):
    def handle_event(self, event: pygame.event.Event) -> None: ...
    def render(self, surface: pygame.Surface) -> None: ...


class App:
    def __init__(self, surface: pygame.Surface, font: pygame.font.Font) -> None:
        self._surface = surface
        self._font = font
        self._screens: list[Screen] = []
        self._running = True

    @property
    def running(self) -> bool:
        return self._running

    @property
    def font(self) -> pygame.font.Font:
        return self._font

    @property
    def top(self) -> Screen | None:
        return self._screens[-1] if self._screens else None

    def push(self, screen: Screen) -> None:
        self._screens.append(screen)

    def pop(self) -> None:
        # The drill screen is the root; only overlays are popped.
        if len(self._screens) > 1:
            self._screens.pop()

    def quit(self) -> None:
        self._running = False

    def handle_event(self, event: pygame.event.Event) -> None:
        if event.type == pygame.QUIT:
            self.quit()
            return
        if not self._screens:
            return
        self._screens[-1].handle_event(event)

    def render(self) -> None:
        if not self._screens:
            return
        self._screens[-1].render(self._surface)


class NoticeScreen:
    """Blocking alert; any key or click dismisses it."""

    def __init__(self, app: App, message: str) -> None:
        self._app = app
        self._message = message
        self._hint_font = pygame.font.Font(None, 24)

    @property
    def message(self) -> str:
        return self._message

    def handle_event(self, event: pygame.event.Event) -> None:
        if event.type in (pygame.KEYDOWN, pygame.MOUSEBUTTONDOWN):
            self._app.pop()

    def render(self, surface: pygame.Surface) -> None:
        w, h = surface.get_size()
        surface.fill(_BG)
        box = pygame.Rect(0, 0, max(320, int(w * 0.7)), max(140, int(h * 0.3)))
        box.center = (w // 2, h // 2)
        pygame.draw.rect(surface, _PANEL_BG, box)
        pygame.draw.rect(surface, _BORDER, box, 2)

        text = self._app.font.render(self._message, True, _TEXT_MAIN)
        if text.get_width() > box.w - 24:
            text = self._hint_font.render(self._message, True, _TEXT_MAIN)
        surface.blit(text, text.get_rect(center=(box.centerx, box.centery - 14)))
        hint = self._hint_font.render("Press any key to continue.", True, _TEXT_MUTED)
        surface.blit(hint, hint.get_rect(midtop=(box.centerx, box.centery + 18)))


class DrillScreen:
    def __init__(
        self,
        app: App,
        *,
        engine: SessionEngine,
        speaker: OfflineTtsSpeaker,
        clock: Clock,
    ) -> None:
        self._app = app
        self._engine = engine
        self._speaker = speaker
        self._gate = InputGate(engine)
        self._loop = AutoAdvanceLoop(engine, clock=clock)

        self._small_font = pygame.font.Font(None, 24)
        self._tiny_font = pygame.font.Font(None, 20)
        self._big_font = pygame.font.Font(None, 112)
        self._input_font = pygame.font.Font(None, 44)

        self._trigger_hitbox: pygame.Rect | None = None

    @property
    def gate(self) -> InputGate:
        return self._gate

    def handle_event(self, event: pygame.event.Event) -> None:
        if event.type == pygame.KEYDOWN:
            if event.key == pygame.K_ESCAPE:
                self._speaker.cancel_all()
                self._app.quit()
                return
            name = _KEY_NAMES.get(event.key)
            if name is not None and self._gate.handle_key(name):
                return
            unicode = getattr(event, "unicode", "")
            if unicode:
                self._gate.type_text(unicode)
            return

        if event.type == pygame.MOUSEBUTTONDOWN and getattr(event, "button", 0) == 1:
            pos = getattr(event, "pos", None)
            if pos is not None and self._trigger_hitbox is not None and self._trigger_hitbox.collidepoint(pos):
                self._gate.dispatch(Command.TRIGGER)

    def render(self, surface: pygame.Surface) -> None:
        self._loop.update()
        self._speaker.update()

        notice = self._engine.pop_notice()
        if notice is not None:
            self._app.push(NoticeScreen(self._app, notice))

        snap = self._engine.snapshot()
        w, h = surface.get_size()
        surface.fill(_BG)

        title = self._app.font.render(snap.title, True, _TEXT_MAIN)
        surface.blit(title, title.get_rect(midtop=(w // 2, 18)))

        self._render_range_fields(surface, top=64)
        self._render_number(surface, snap)
        self._render_speed(surface, snap, top=int(h * 0.48))
        self._render_answer_box(surface, top=int(h * 0.56))

        message = self._small_font.render(snap.message, True, _TEXT_MAIN)
        surface.blit(message, message.get_rect(midtop=(w // 2, int(h * 0.56) + 60)))
        if self._gate.error:
            err = self._small_font.render(self._gate.error, True, _BAD)
            surface.blit(err, err.get_rect(midtop=(w // 2, int(h * 0.56) + 84)))

        self._render_trigger_button(surface, top=int(h * 0.80))
        self._render_history(surface, snap)

        footer = "Space: new number  |  /: answer  |  Tab: fields  |  Left/Right: speed  |  Esc: quit"
        foot = self._tiny_font.render(footer, True, _TEXT_MUTED)
        surface.blit(foot, foot.get_rect(midbottom=(w // 2, h - 8)))

    def _render_range_fields(self, surface: pygame.Surface, *, top: int) -> None:
        w = surface.get_width()
        fields = ((FocusField.RANGE_MIN, "Min Range:"), (FocusField.RANGE_MAX, "Max Range:"))
        x = w // 2 - 250
        for field, label in fields:
            lbl = self._small_font.render(label, True, _TEXT_MUTED)
            surface.blit(lbl, (x, top + 8))
            box = pygame.Rect(x + lbl.get_width() + 8, top, 120, 32)
            self._draw_field(surface, box, field)
            x = box.right + 40

    def _render_number(self, surface: pygame.Surface, snap: DrillSnapshot) -> None:
        w, h = surface.get_size()
        if snap.revealed_value is not None:
            num = self._big_font.render(str(snap.revealed_value), True, _TEXT_MAIN)
            surface.blit(num, num.get_rect(center=(w // 2, int(h * 0.33))))
        elif snap.time_remaining_s is not None:
            # Deadline bar while a round is pending; the number stays hidden.
            frac = snap.time_remaining_s / max(0.001, self._engine.config.deadline_s)
            bar = pygame.Rect(w // 2 - 150, int(h * 0.33) - 6, 300, 12)
            pygame.draw.rect(surface, (6, 13, 92), bar)
            fill = bar.copy()
            fill.w = int(bar.w * max(0.0, min(1.0, frac)))
            pygame.draw.rect(surface, (120, 142, 196), fill)
            pygame.draw.rect(surface, (78, 102, 170), bar, 1)

    def _render_speed(self, surface: pygame.Surface, snap: DrillSnapshot, *, top: int) -> None:
        w = surface.get_width()
        cfg = self._engine.config
        label = self._small_font.render(f"Speed: {snap.speech_rate:.1f}", True, _TEXT_MUTED)
        surface.blit(label, (w // 2 - 200, top))
        track = pygame.Rect(w // 2 - 80, top + 6, 280, 8)
        pygame.draw.rect(surface, (6, 13, 92), track)
        pygame.draw.rect(surface, (78, 102, 170), track, 1)
        frac = (snap.speech_rate - cfg.min_rate) / max(0.001, cfg.max_rate - cfg.min_rate)
        knob_x = track.x + int(track.w * max(0.0, min(1.0, frac)))
        pygame.draw.circle(surface, _BORDER, (knob_x, track.centery), 8)

    def _render_answer_box(self, surface: pygame.Surface, *, top: int) -> None:
        w = surface.get_width()
        box = pygame.Rect(w // 2 - 140, top, 200, 48)
        self._draw_field(surface, box, FocusField.ANSWER, font=self._input_font)
        check = self._small_font.render("Enter: Check", True, _TEXT_MUTED)
        surface.blit(check, (box.right + 14, box.y + (box.h - check.get_height()) // 2))

    def _render_trigger_button(self, surface: pygame.Surface, *, top: int) -> None:
        w = surface.get_width()
        button = pygame.Rect(0, 0, 280, 44)
        button.midtop = (w // 2, top)
        pygame.draw.rect(surface, (18, 30, 118), button)
        pygame.draw.rect(surface, _BORDER, button, 2)
        text = self._small_font.render("Generate Number Now", True, _TEXT_MAIN)
        surface.blit(text, text.get_rect(center=button.center))
        self._trigger_hitbox = button

    def _render_history(self, surface: pygame.Surface, snap: DrillSnapshot) -> None:
        w, h = surface.get_size()
        x = w - 170
        head = self._small_font.render("History", True, _TEXT_MAIN)
        surface.blit(head, (x, 64))
        row_h = 20
        max_rows = max(1, (h - 130) // row_h)
        start = max(0, len(snap.history) - max_rows)
        y = 92
        for idx in range(start, len(snap.history)):
            entry = snap.history[idx]
            missed = entry.outcome in (Outcome.INCORRECT, Outcome.TIMED_OUT)
            color = _BAD if missed else _TEXT_MAIN
            text = self._tiny_font.render(f"#{idx + 1}: {entry.value}", True, color)
            surface.blit(text, (x, y))
            if entry.outcome is Outcome.TIMED_OUT:
                mid = y + text.get_height() // 2
                pygame.draw.line(surface, color, (x, mid), (x + text.get_width(), mid), 1)
            y += row_h

    def _draw_field(
        self,
        surface: pygame.Surface,
        box: pygame.Rect,
        field: FocusField,
        *,
        font: pygame.font.Font | None = None,
    ) -> None:
        focused = self._gate.focus is field
        pygame.draw.rect(surface, (246, 250, 255) if focused else (200, 210, 232), box)
        pygame.draw.rect(surface, (142, 168, 210), box, 2)
        caret = "|" if focused and (pygame.time.get_ticks() // 500) % 2 == 0 else ""
        use_font = font or self._small_font
        entry = use_font.render(self._gate.text(field) + caret, True, (12, 26, 88))
        surface.blit(entry, (box.x + 8, box.y + max(2, (box.h - entry.get_height()) // 2)))


def _title_for(language_tag: str) -> str:
    primary = normalize_language_tag(language_tag).split("-", 1)[0]
    name = _LANGUAGE_NAMES.get(primary)
    if name is None:
        return f"Practice Numbers ({language_tag})"
    return f"Practice {name} Numbers"


def run(*, max_frames: int | None = None, event_injector: Callable[[int], None] | None = None) -> int:
    settings = load_settings(os.environ)
    configure_logging(settings.log_level)

    pygame.init()
    pygame.display.set_caption("Number Drill")
    surface = pygame.display.set_mode(WINDOW_SIZE, pygame.RESIZABLE)

    font = pygame.font.Font(None, 36)
    clock = pygame.time.Clock()

    app = App(surface=surface, font=font)

    speaker = OfflineTtsSpeaker(enabled=settings.tts_enabled, forced_backend=settings.tts_backend)
    real_clock = RealClock()
    seed = settings.seed if settings.seed is not None else new_seed()
    logger.info("Starting drill for %s with seed %d", settings.language_tag, seed)
    engine = build_number_drill(
        clock=real_clock,
        speaker=speaker,
        seed=seed,
        config=DrillConfig(title=_title_for(settings.language_tag), language_tag=settings.language_tag),
    )
    app.push(DrillScreen(app, engine=engine, speaker=speaker, clock=real_clock))

    frame = 0
    try:
        while app.running:
            if event_injector is not None:
                event_injector(frame)

            for event in pygame.event.get():
                app.handle_event(event)

            app.render()

            pygame.display.flip()

            frame += 1
            if max_frames is not None and frame >= max_frames:
                break

            clock.tick(TARGET_FPS)
    finally:
        speaker.cancel_all()
        pygame.quit()

    return 0
