"""
CHIP-8 Quirks
==============
Behavioural switches that differ between the CHIP-8 family of interpreters.
A Quirks value is picked once when the machine is configured and is read by
the CPU on every instruction whose semantics depend on it.

  vf_reset         AND/OR/XOR clear VF
  memory           LD [I],Vx / LD Vx,[I] advance I by x+1
  display_wait     DRW stalls until the next timer tick
  sprite_wrapping  pixels drawn past an edge wrap instead of clipping
  hires_draw_flag  stored only; no instruction reads it yet
  shifting         SHR/SHL shift Vx in place instead of copying Vy first
  jumping          JP V0,addr uses Vx (high nibble of addr) instead of V0
"""

from __future__ import annotations
from dataclasses import dataclass


@dataclass(frozen=True)
class Quirks:
    vf_reset: bool = True
    memory: bool = True
    display_wait: bool = True
    sprite_wrapping: bool = False
    hires_draw_flag: bool = False
    shifting: bool = False
    jumping: bool = False

    @classmethod
    def chip8(cls) -> Quirks:
        """Original COSMAC VIP interpreter behaviour."""
        return cls(vf_reset=True, memory=True, display_wait=True,
                   sprite_wrapping=False, hires_draw_flag=False,
                   shifting=False, jumping=False)

    @classmethod
    def superchip(cls) -> Quirks:
        """SUPER-CHIP 1.1 on the HP48."""
        return cls(vf_reset=False, memory=False, display_wait=False,
                   sprite_wrapping=False, hires_draw_flag=True,
                   shifting=True, jumping=True)

    @classmethod
    def xochip(cls) -> Quirks:
        """XO-CHIP as implemented by Octo."""
        return cls(vf_reset=False, memory=True, display_wait=False,
                   sprite_wrapping=True, hires_draw_flag=False,
                   shifting=False, jumping=False)

    @classmethod
    def preset(cls, name: str) -> Quirks:
        """Look up a preset by name (case-insensitive)."""
        factory = PRESETS.get(name.strip().lower())
        if factory is None:
            raise ValueError(f"Unknown quirks preset {name!r} "
                             f"(expected one of: {', '.join(PRESETS)})")
        return factory()

    def describe(self) -> str:
        on = [name for name, val in vars(self).items() if val]
        return ", ".join(on) if on else "none"


PRESETS = {
    "chip8": Quirks.chip8,
    "superchip": Quirks.superchip,
    "xochip": Quirks.xochip,
}
