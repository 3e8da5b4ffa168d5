"""
CHIP-8 Display
===============
Front ends for the video buffer of a Chip8System.

  render_text()     row-major text rendering ('█' lit, ' ' dark)
  HeadlessDisplay   runs frames without a window, records text snapshots
  Chip8Display      pygame window; drives tick() at 60 Hz on the calling
                    thread and feeds the keyboard into the 16-key pad

Keyboard layout (host -> CHIP-8):

    1 2 3 4        1 2 3 C
    Q W E R   ->   4 5 6 D
    A S D F        7 8 9 E
    Z X C V        A 0 B F

Debug keys: J single-step, K leave stepping, L resume from breakpoint,
M log CPU state, P log the screen, Esc quit.

Usage (programmatic):
    from display import Chip8Display
    Chip8Display(sys_emu, scale=10).run()
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Sequence

if TYPE_CHECKING:
    from system import Chip8System

log = logging.getLogger(__name__)

KEYMAP = {
    "1": 0x1, "2": 0x2, "3": 0x3, "4": 0xC,
    "q": 0x4, "w": 0x5, "e": 0x6, "r": 0xD,
    "a": 0x7, "s": 0x8, "d": 0x9, "f": 0xE,
    "z": 0xA, "x": 0x0, "c": 0xB, "v": 0xF,
}

FG_COLOR = (255, 255, 255)
BG_COLOR = (0, 0, 0)
LIT, DARK = "█", " "


def render_text(vram: Sequence[bool], width: int) -> str:
    """Render the buffer as text, one line per row."""
    return "\n".join(
        "".join(LIT if px else DARK for px in vram[base:base + width])
        for base in range(0, len(vram), width)
    )


# ── Headless ──────────────────────────────────────────────────────────


class HeadlessDisplay:
    """No-window display for tests and batch runs; records text snapshots."""

    def __init__(self, sys_emu: "Chip8System"):
        self.sys = sys_emu
        self.snapshots: list[str] = []

    def run(self, frames: int) -> int:
        """Tick up to *frames* frames, stopping early when the program ends
        or a breakpoint halts it.  Returns the frames ticked."""
        for n in range(frames):
            if not self.sys.running or self.sys.halted:
                return n
            self.sys.tick()
        return frames

    def snapshot(self) -> str:
        text = render_text(self.sys.vram, self.sys.width)
        self.snapshots.append(text)
        return text


# ── pygame window ─────────────────────────────────────────────────────


class Chip8Display:
    """pygame window for a Chip8System."""

    def __init__(self, sys_emu: "Chip8System", scale: int = 10,
                 fps: int = 60, title: str = "chip8"):
        self.sys = sys_emu
        self.scale = max(1, scale)
        self.fps = fps
        self.title = title
        self.stepping = False

    def run(self):
        """Main loop.  Returns when the window is closed or Esc is pressed."""
        import numpy as np
        import pygame

        pygame.init()
        pygame.display.set_caption(self.title)
        win_w = 64 * self.scale
        win_h = 32 * self.scale
        screen = pygame.display.set_mode((win_w, win_h))
        clock = pygame.time.Clock()

        fg = np.array(FG_COLOR, dtype=np.uint8)
        bg = np.array(BG_COLOR, dtype=np.uint8)
        fb_surface = pygame.Surface((self.sys.width, self.sys.height))

        try:
            while True:
                for event in pygame.event.get():
                    if event.type == pygame.QUIT:
                        return
                    elif event.type == pygame.KEYDOWN:
                        if event.key == pygame.K_ESCAPE:
                            return
                        self._key_down(pygame.key.name(event.key).lower())
                    elif event.type == pygame.KEYUP:
                        key = KEYMAP.get(pygame.key.name(event.key).lower())
                        if key is not None:
                            self.sys.keyup(key)

                if not self.stepping:
                    self.sys.tick()

                w, h = self.sys.width, self.sys.height
                if fb_surface.get_size() != (w, h):
                    fb_surface = pygame.Surface((w, h))

                # surfarray wants (width, height, rgb)
                lit = np.array(self.sys.vram, dtype=bool).reshape(h, w).T
                pixels = np.where(lit[..., None], fg, bg).astype(np.uint8)
                pygame.surfarray.blit_array(fb_surface, pixels)
                screen.blit(pygame.transform.scale(fb_surface, (win_w, win_h)),
                            (0, 0))
                pygame.display.flip()
                clock.tick(self.fps)
        finally:
            pygame.quit()

    def _key_down(self, name: str):
        key = KEYMAP.get(name)
        if key is not None:
            self.sys.keydown(key)
        elif name == "j":
            self.stepping = True
            self.sys.step_instruction()
            log.info("%s", self.sys.cpu)
        elif name == "k" and self.stepping:
            self.stepping = False
        elif name == "l" and self.sys.halted:
            log.info("Resuming from breakpoint at %#05x", self.sys.pc)
            self.sys.resume()
        elif name == "m":
            log.info("CPU: %s", self.sys.cpu)
        elif name == "p":
            border = "-" * self.sys.width
            log.info("\n%s\n%s\n%s", border,
                     render_text(self.sys.vram, self.sys.width), border)
