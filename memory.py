"""
CHIP-8 Memory
==============
The 4 KiB address space shared by the interpreter fonts and the loaded
program.  Every access wraps modulo 4096; there is no bus fault.

Layout:
  0x000 - 0x04F   5-row hex digit font (CHIP-8)
  0x050 - 0x0EF   10-row hex digit font (SUPER-CHIP)
  0x200 - 0xFFF   program space
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
#  Constants
# ---------------------------------------------------------------------------

MEM_SIZE = 0x1000
ADDR_MASK = MEM_SIZE - 1

FONT_5_5_BASE = 0x000
FONT_10_10_BASE = 0x050
PROGRAM_START = 0x200
MAX_PROGRAM_SIZE = MEM_SIZE - PROGRAM_START  # 0xE00

FONT_5_5 = bytes([
    0xF0, 0x90, 0x90, 0x90, 0xF0,  # 0
    0x20, 0x60, 0x20, 0x20, 0x70,  # 1
    0xF0, 0x10, 0xF0, 0x80, 0xF0,  # 2
    0xF0, 0x10, 0xF0, 0x10, 0xF0,  # 3
    0x90, 0x90, 0xF0, 0x10, 0x10,  # 4
    0xF0, 0x80, 0xF0, 0x10, 0xF0,  # 5
    0xF0, 0x80, 0xF0, 0x90, 0xF0,  # 6
    0xF0, 0x10, 0x20, 0x40, 0x40,  # 7
    0xF0, 0x90, 0xF0, 0x90, 0xF0,  # 8
    0xF0, 0x90, 0xF0, 0x10, 0xF0,  # 9
    0xF0, 0x90, 0xF0, 0x90, 0x90,  # A
    0xE0, 0x90, 0xE0, 0x90, 0xE0,  # B
    0xF0, 0x80, 0x80, 0x80, 0xF0,  # C
    0xE0, 0x90, 0x90, 0x90, 0xE0,  # D
    0xF0, 0x80, 0xF0, 0x80, 0xF0,  # E
    0xF0, 0x80, 0xF0, 0x80, 0x80,  # F
])

FONT_10_10 = bytes([
    0x3C, 0x7E, 0xE7, 0xC3, 0xC3, 0xC3, 0xC3, 0xE7, 0x7E, 0x3C,  # 0
    0x18, 0x38, 0x58, 0x18, 0x18, 0x18, 0x18, 0x18, 0x18, 0x3C,  # 1
    0x3E, 0x7F, 0xC3, 0x06, 0x0C, 0x18, 0x30, 0x60, 0xFF, 0xFF,  # 2
    0x3C, 0x7E, 0xC3, 0x03, 0x0E, 0x0E, 0x03, 0xC3, 0x7E, 0x3C,  # 3
    0x06, 0x0E, 0x1E, 0x36, 0x66, 0xC6, 0xFF, 0xFF, 0x06, 0x06,  # 4
    0xFF, 0xFF, 0xC0, 0xC0, 0xFC, 0xFE, 0x03, 0xC3, 0x7E, 0x3C,  # 5
    0x3E, 0x7C, 0xE0, 0xC0, 0xFC, 0xFE, 0xC3, 0xC3, 0x7E, 0x3C,  # 6
    0xFF, 0xFF, 0x03, 0x06, 0x0C, 0x18, 0x30, 0x60, 0x60, 0x60,  # 7
    0x3C, 0x7E, 0xC3, 0xC3, 0x7E, 0x7E, 0xC3, 0xC3, 0x7E, 0x3C,  # 8
    0x3C, 0x7E, 0xC3, 0xC3, 0x7F, 0x3F, 0x03, 0x03, 0x3E, 0x7C,  # 9
    0x7E, 0xFF, 0xC3, 0xC3, 0xC3, 0xFF, 0xFF, 0xC3, 0xC3, 0xC3,  # A
    0xFC, 0xFC, 0xC3, 0xC3, 0xFC, 0xFC, 0xC3, 0xC3, 0xFC, 0xFC,  # B
    0x3C, 0xFF, 0xC3, 0xC0, 0xC0, 0xC0, 0xC0, 0xC3, 0xFF, 0x3C,  # C
    0xFC, 0xFE, 0xC3, 0xC3, 0xC3, 0xC3, 0xC3, 0xC3, 0xFE, 0xFC,  # D
    0xFF, 0xFF, 0xC0, 0xC0, 0xFF, 0xFF, 0xC0, 0xC0, 0xFF, 0xFF,  # E
    0xFF, 0xFF, 0xC0, 0xC0, 0xFF, 0xFF, 0xC0, 0xC0, 0xC0, 0xC0,  # F
])


# ---------------------------------------------------------------------------
#  Memory
# ---------------------------------------------------------------------------

class Memory:
    """Flat byte store with both fonts pre-seeded."""

    def __init__(self):
        self.mem = bytearray(MEM_SIZE)
        self.reset()

    def reset(self):
        """Zero everything and re-seed the font regions."""
        self.mem[:] = bytes(MEM_SIZE)
        self.mem[FONT_5_5_BASE:FONT_5_5_BASE + len(FONT_5_5)] = FONT_5_5
        self.mem[FONT_10_10_BASE:FONT_10_10_BASE + len(FONT_10_10)] = FONT_10_10

    def load_program(self, program: bytes | bytearray):
        """Copy raw program bytes into memory at 0x200."""
        if len(program) > MAX_PROGRAM_SIZE:
            raise ValueError(f"Program is {len(program)} bytes, "
                             f"max is {MAX_PROGRAM_SIZE}")
        self.mem[PROGRAM_START:PROGRAM_START + len(program)] = program

    def read(self, addr: int) -> int:
        return self.mem[addr & ADDR_MASK]

    def write(self, addr: int, val: int):
        self.mem[addr & ADDR_MASK] = val & 0xFF

    def read16(self, addr: int) -> int:
        """Big-endian word at addr, addr+1 (each byte wraps independently)."""
        return (self.read(addr) << 8) | self.read(addr + 1)
