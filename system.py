"""
CHIP-8 System
==============
Wires a CPU to the 60 Hz frame clock and the debugger:

  - tick() runs one frame's budget of instructions, then the timers
  - breakpoints stop a tick on the instruction that lands on them
  - halted is a resumable debugger pause; cpu.running=False is final

The front end calls tick() once per displayed frame and pushes key events
in with keydown()/keyup().
"""

from __future__ import annotations
import logging
from typing import Optional

from chip8 import CPU, DEFAULT_CLOCK_SPEED
from memory import MAX_PROGRAM_SIZE
from quirks import Quirks

log = logging.getLogger(__name__)


class Chip8System:
    """One loaded program on one CPU, driven a frame at a time."""

    def __init__(self, quirks: Optional[Quirks] = None,
                 clock_speed: int = DEFAULT_CLOCK_SPEED,
                 seed: Optional[int] = None):
        self.cpu = CPU(quirks=quirks, clock_speed=clock_speed, seed=seed)
        self.halted: bool = False
        self.breakpoints: set[int] = set()
        self.program: bytes = b""
        self._seed = seed
        # Cycles accumulated by step_instruction() toward the next timer tick
        self._step_cycles = 0

    # -- observation --

    @property
    def running(self) -> bool:
        return self.cpu.running

    @property
    def vram(self) -> list[bool]:
        return self.cpu.vram

    @property
    def width(self) -> int:
        return self.cpu.width

    @property
    def height(self) -> int:
        return self.cpu.height

    @property
    def pc(self) -> int:
        return self.cpu.pc

    @property
    def quirks(self) -> Quirks:
        return self.cpu.quirks

    # -- loading --

    def load_program(self, program: bytes | bytearray):
        """Copy a raw program image into memory at 0x200."""
        if len(program) > MAX_PROGRAM_SIZE:
            raise ValueError(f"Program is {len(program)} bytes, "
                             f"max is {MAX_PROGRAM_SIZE}")
        self.program = bytes(program)
        self.cpu.memory.load_program(program)

    def load_program_file(self, path: str) -> int:
        """Load a .ch8 file.  Returns its size in bytes."""
        with open(path, "rb") as f:
            data = f.read()
        self.load_program(data)
        return len(data)

    def reset(self, quirks: Optional[Quirks] = None):
        """Fresh CPU with the same program and breakpoints."""
        cpu = self.cpu
        self.cpu = CPU(quirks=quirks if quirks is not None else cpu.quirks,
                       clock_speed=cpu.clock_speed, seed=self._seed)
        if self.program:
            self.cpu.memory.load_program(self.program)
        self.halted = False
        self._step_cycles = 0

    # -- execution --

    def tick(self):
        """Run one 60 Hz frame: a budget of instructions plus a timer tick."""
        cpu = self.cpu
        if not cpu.running or self.halted:
            return

        max_cycles = cpu.cycles_per_tick
        cycles = 0
        while cpu.running and cycles < max_cycles:
            cycles += cpu.step()
            if cpu.pc in self.breakpoints:
                log.info("Breakpoint hit at %#05x", cpu.pc)
                self.halted = True
                return

        cpu.tick_timers()

    def step_instruction(self) -> int:
        """Single-step one instruction, ticking timers every frame's worth."""
        cpu = self.cpu
        cycles = cpu.step()
        self._step_cycles += cycles
        budget = cpu.cycles_per_tick
        if budget and self._step_cycles >= budget:
            cpu.tick_timers()
            self._step_cycles -= budget
        return cycles

    def run_until_finished(self, max_ticks: int = 1000) -> int:
        """Tick until the program stops.  Returns the ticks used."""
        for n in range(max_ticks):
            self.tick()
            if not self.cpu.running:
                return n
        raise TimeoutError(f"Did not exit in {max_ticks} ticks")

    def resume(self):
        self.halted = False

    # -- breakpoints --

    def set_breakpoint(self, addr: int):
        self.breakpoints.add(addr & 0xFFFF)

    def remove_breakpoint(self, addr: int):
        self.breakpoints.discard(addr & 0xFFFF)

    def list_breakpoints(self) -> list[int]:
        return sorted(self.breakpoints)

    # -- input --

    def keydown(self, key: int):
        self.cpu.keydown(key)

    def keyup(self, key: int):
        self.cpu.keyup(key)

    # -- debug --

    def dump_state(self) -> str:
        cpu = self.cpu
        lines = [
            f"CHIP-8 system  quirks: {cpu.quirks.describe()}",
            f"  clock={cpu.clock_speed} Hz  "
            f"{cpu.cycles_per_tick} cycles/tick",
            f"  running={cpu.running}  halted={self.halted}",
            f"  program: {len(self.program)} bytes",
        ]
        if self.breakpoints:
            bps = " ".join(f"{a:#05x}" for a in self.list_breakpoints())
            lines.append(f"  breakpoints: {bps}")
        lines.append(cpu.dump_regs())
        return "\n".join(lines)
