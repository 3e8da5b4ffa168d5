"""
CHIP-8 CPU
===========
The execution engine: sixteen 8-bit V registers, the 12-bit index register
I, delay/sound timers, the call stack, 16 input keys and a monochrome video
buffer that switches between 64x32 (lores) and 128x64 (hires).

Every step fetches a big-endian word at PC, decodes it, advances PC by 2
and only then executes, so jump and call targets are absolute.  Behaviour
that differs between CHIP-8, SUPER-CHIP and XO-CHIP is selected by the
Quirks value the CPU was built with.
"""

from __future__ import annotations
import logging
import random
from typing import Optional

from instruction import Chip8Error, InvalidOpcodeError, Instruction, Op, parse
from memory import Memory, PROGRAM_START
from quirks import Quirks

log = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
#  Constants
# ---------------------------------------------------------------------------

DEFAULT_CLOCK_SPEED = 1_000_000
CYCLES_PER_INSTRUCTION = 8
TICK_DIVISOR = 6000          # clock_speed / 6000 cycles per 60 Hz tick

LORES_WIDTH, LORES_HEIGHT = 64, 32
HIRES_WIDTH, HIRES_HEIGHT = 128, 64

NUM_REGS = 16
NUM_KEYS = 16
SAVE_SLOTS = 8
VF = 0xF

__all__ = ["CPU", "Chip8Error", "InvalidOpcodeError"]


# ---------------------------------------------------------------------------
#  CPU
# ---------------------------------------------------------------------------

class CPU:
    """CHIP-8 / SUPER-CHIP interpreter core."""

    def __init__(self, quirks: Optional[Quirks] = None,
                 clock_speed: int = DEFAULT_CLOCK_SPEED,
                 seed: Optional[int] = None):
        self.quirks: Quirks = quirks if quirks is not None else Quirks.chip8()
        self.clock_speed: int = clock_speed

        self.running: bool = True
        self.hires: bool = False

        self.memory = Memory()
        self.keys: list[bool] = [False] * NUM_KEYS

        self.pc: int = PROGRAM_START
        self.stack: list[int] = []

        self.v: list[int] = [0] * NUM_REGS
        self.i: int = 0
        self.dt: int = 0
        self.st: int = 0

        # SUPER-CHIP "RPL" flag registers, separate from main memory
        self.save: list[int] = [0] * SAVE_SLOTS

        self.width: int = LORES_WIDTH
        self.height: int = LORES_HEIGHT
        self.vram: list[bool] = [False] * (LORES_WIDTH * LORES_HEIGHT)

        self.rng = random.Random(seed)

        self._handlers = {op: getattr(self, f"_op_{op.name.lower()}")
                          for op in Op}

    def __str__(self) -> str:
        return (f"CPU(pc=${self.pc:04x} i=${self.i:04x} dt=${self.dt:02x} "
                f"st=${self.st:02x} sp={len(self.stack)})")

    @property
    def cycles_per_tick(self) -> int:
        return self.clock_speed // TICK_DIVISOR

    # -- run state / input --

    def start(self):
        self.running = True

    def stop(self):
        self.running = False

    def keydown(self, key: int):
        self.keys[key & 0xF] = True

    def keyup(self, key: int):
        self.keys[key & 0xF] = False

    # -- stack --

    def push(self, val: int):
        self.stack.append(val)

    def pop(self) -> int:
        """Pop a return address; an empty stack yields 0."""
        return self.stack.pop() if self.stack else 0

    # =====================================================================
    #  STEP
    # =====================================================================

    def step(self) -> int:
        """Execute one instruction.  Returns the cycles it consumed."""
        addr = self.pc
        opcode = self.memory.read16(addr)
        try:
            inst = parse(opcode)
        except InvalidOpcodeError:
            log.error("Invalid opcode $%04x at %#05x", opcode, addr)
            raise InvalidOpcodeError(opcode, addr) from None

        if log.isEnabledFor(logging.DEBUG):
            log.debug("%s %s", self, inst)

        self.pc = (self.pc + 2) & 0xFFFF
        cycles = self.execute(inst)

        if inst.op is Op.DRW_Vx_Vy_n and self.quirks.display_wait:
            # Draw waits for vertical blank: burn the rest of the tick
            return self.cycles_per_tick
        return cycles

    def tick_timers(self):
        if self.st > 0:
            self.st -= 1
        if self.dt > 0:
            self.dt -= 1

    def execute(self, inst: Instruction) -> int:
        """Apply one decoded instruction to the machine state."""
        self._handlers[inst.op](*inst.args)
        return CYCLES_PER_INSTRUCTION

    def _skip(self):
        self.pc = (self.pc + 2) & 0xFFFF

    # =====================================================================
    #  Control flow
    # =====================================================================

    def _op_sys_addr(self, addr: int):
        pass

    def _op_exit(self):
        self.stop()

    def _op_ret(self):
        self.pc = self.pop()

    def _op_jp_addr(self, addr: int):
        if self.pc == (addr + 2) & 0xFFFF:
            log.info("Infinite loop detected at %#05x, halting", addr)
            self.running = False
        self.pc = addr

    def _op_jp_vx_addr(self, x: int, addr: int):
        reg = x if self.quirks.jumping else 0
        self.pc = (addr + self.v[reg]) & 0xFFFF

    def _op_call_addr(self, addr: int):
        self.push(self.pc)
        self.pc = addr

    def _op_se_vx_kk(self, x: int, kk: int):
        if self.v[x] == kk:
            self._skip()

    def _op_sne_vx_kk(self, x: int, kk: int):
        if self.v[x] != kk:
            self._skip()

    def _op_se_vx_vy(self, x: int, y: int):
        if self.v[x] == self.v[y]:
            self._skip()

    def _op_sne_vx_vy(self, x: int, y: int):
        if self.v[x] != self.v[y]:
            self._skip()

    # =====================================================================
    #  Loads
    # =====================================================================

    def _op_ld_vx_kk(self, x: int, kk: int):
        self.v[x] = kk

    def _op_ld_vx_vy(self, x: int, y: int):
        self.v[x] = self.v[y]

    def _op_ld_i_addr(self, addr: int):
        self.i = addr

    def _op_ld_dt_vx(self, x: int):
        self.dt = self.v[x]

    def _op_ld_st_vx(self, x: int):
        self.st = self.v[x]

    def _op_ld_vx_dt(self, x: int):
        self.v[x] = self.dt

    def _op_ld_f_vx(self, x: int):
        self.i = 5 * self.v[x]

    def _op_ld_hf_vx(self, x: int):
        self.i = 0x050 + 10 * self.v[x]

    def _op_ld_ii_vx(self, x: int):
        for k in range(x + 1):
            self.memory.write(self.i + k, self.v[k])
        if self.quirks.memory:
            self.i = (self.i + x + 1) & 0xFFFF

    def _op_ld_vx_ii(self, x: int):
        for k in range(x + 1):
            self.v[k] = self.memory.read(self.i + k)
        if self.quirks.memory:
            self.i = (self.i + x + 1) & 0xFFFF

    def _op_ld_b_vx(self, x: int):
        val = self.v[x]
        self.memory.write(self.i, (val // 100) % 10)
        self.memory.write(self.i + 1, (val // 10) % 10)
        self.memory.write(self.i + 2, val % 10)

    def _op_save_vx(self, x: int):
        for k in range(min(x, SAVE_SLOTS - 1) + 1):
            self.save[k] = self.v[k]

    def _op_load_vx(self, x: int):
        for k in range(min(x, SAVE_SLOTS - 1) + 1):
            self.v[k] = self.save[k]

    # =====================================================================
    #  Arithmetic / logic
    # =====================================================================

    def _op_add_vx_kk(self, x: int, kk: int):
        self.v[x] = (self.v[x] + kk) & 0xFF

    def _op_add_vx_vy(self, x: int, y: int):
        total = self.v[x] + self.v[y]
        self.v[x] = total & 0xFF
        self.v[VF] = 1 if total > 0xFF else 0

    def _op_sub_vx_vy(self, x: int, y: int):
        a, b = self.v[x], self.v[y]
        self.v[x] = (a - b) & 0xFF
        self.v[VF] = 1 if a >= b else 0

    def _op_subn_vx_vy(self, x: int, y: int):
        a, b = self.v[x], self.v[y]
        self.v[x] = (b - a) & 0xFF
        self.v[VF] = 1 if b >= a else 0

    def _op_add_i_vx(self, x: int):
        self.i += self.v[x]
        self.v[VF] = 1 if self.i > 0x0FFF else 0
        self.i &= 0x0FFF

    def _op_and_vx_vy(self, x: int, y: int):
        self.v[x] &= self.v[y]
        if self.quirks.vf_reset:
            self.v[VF] = 0

    def _op_or_vx_vy(self, x: int, y: int):
        self.v[x] |= self.v[y]
        if self.quirks.vf_reset:
            self.v[VF] = 0

    def _op_xor_vx_vy(self, x: int, y: int):
        self.v[x] ^= self.v[y]
        if self.quirks.vf_reset:
            self.v[VF] = 0

    def _op_shr_vx_vy(self, x: int, y: int):
        if not self.quirks.shifting:
            self.v[x] = self.v[y]
        out = self.v[x] & 0x01
        self.v[x] >>= 1
        self.v[VF] = out

    def _op_shl_vx_vy(self, x: int, y: int):
        if not self.quirks.shifting:
            self.v[x] = self.v[y]
        out = (self.v[x] >> 7) & 0x01
        self.v[x] = (self.v[x] << 1) & 0xFF
        self.v[VF] = out

    def _op_rnd_vx_kk(self, x: int, kk: int):
        self.v[x] = self.rng.randint(0, kk)

    # =====================================================================
    #  Input
    # =====================================================================

    def _op_ld_vx_k(self, x: int):
        for key, held in enumerate(self.keys):
            if held:
                self.v[x] = key
                return
        # Nothing held: retry this instruction on the next step
        self.pc = (self.pc - 2) & 0xFFFF

    def _op_skp_vx(self, x: int):
        if self.keys[self.v[x] & 0xF]:
            self._skip()

    def _op_sknp_vx(self, x: int):
        if not self.keys[self.v[x] & 0xF]:
            self._skip()

    # =====================================================================
    #  Display
    # =====================================================================

    def _set_resolution(self, hires: bool):
        self.hires = hires
        if hires:
            self.width, self.height = HIRES_WIDTH, HIRES_HEIGHT
        else:
            self.width, self.height = LORES_WIDTH, LORES_HEIGHT
        self.vram[:] = [False] * (self.width * self.height)

    def _op_cls(self):
        self.vram[:] = [False] * len(self.vram)

    def _op_lores(self):
        self._set_resolution(False)

    def _op_hires(self):
        self._set_resolution(True)

    def _op_scd_n(self, n: int):
        shift = min(n, self.height) * self.width
        size = len(self.vram)
        self.vram[:] = [False] * shift + self.vram[:size - shift]

    def _op_scr(self):
        w = self.width
        for base in range(0, len(self.vram), w):
            self.vram[base:base + w] = [False] * 4 + self.vram[base:base + w - 4]

    def _op_scl(self):
        w = self.width
        for base in range(0, len(self.vram), w):
            self.vram[base:base + w] = self.vram[base + 4:base + w] + [False] * 4

    def _op_drw_vx_vy_n(self, vx: int, vy: int, n: int):
        w, h = self.width, self.height
        x0 = self.v[vx] % w
        y0 = self.v[vy] % h
        wrap = self.quirks.sprite_wrapping

        self.v[VF] = 0

        if n == 0:
            # 16x16 sprite, two bytes per row.  VF counts colliding rows
            # plus rows that fall off the bottom edge.
            for row in range(16):
                y = y0 + row
                if y >= h:
                    self.v[VF] += 1
                    if not wrap:
                        break
                    y -= h
                addr = self.i + row * 2
                bits = (self.memory.read(addr) << 8) | self.memory.read(addr + 1)
                if self._blit_row(bits, 16, x0, y * w, wrap):
                    self.v[VF] += 1
        else:
            for row in range(n):
                y = y0 + row
                if y >= h:
                    if not wrap:
                        break
                    y -= h
                bits = self.memory.read(self.i + row)
                if self._blit_row(bits, 8, x0, y * w, wrap):
                    self.v[VF] = 1

    def _blit_row(self, bits: int, nbits: int, x0: int, row_offset: int,
                  wrap: bool) -> bool:
        """XOR one sprite row into vram.  Returns True if a lit pixel was cleared."""
        w = self.width
        vram = self.vram
        collided = False
        for col in range(nbits):
            x = x0 + col
            if x >= w:
                if not wrap:
                    break
                x -= w
            if bits & (1 << (nbits - 1 - col)):
                idx = row_offset + x
                if vram[idx]:
                    collided = True
                vram[idx] = not vram[idx]
        return collided

    # =====================================================================
    #  Debug / introspection
    # =====================================================================

    def dump_regs(self) -> str:
        lines = []
        for row in range(0, NUM_REGS, 4):
            lines.append("  " + "  ".join(
                f"V{r:X}={self.v[r]:#04x}" for r in range(row, row + 4)))
        lines.append(f"  I={self.i:#06x}  PC={self.pc:#06x}  "
                     f"DT={self.dt:#04x}  ST={self.st:#04x}")
        stack = " ".join(f"{a:#05x}" for a in self.stack) or "empty"
        lines.append(f"  Stack: {stack}")
        lines.append(f"  Mode: {'hires' if self.hires else 'lores'} "
                     f"{self.width}x{self.height}  "
                     f"running={self.running}")
        return "\n".join(lines)
