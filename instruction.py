"""
CHIP-8 Instruction Set
=======================
The closed set of CHIP-8 / SUPER-CHIP opcodes, a decoder from 16-bit words
and the matching encoder.

Each opcode pattern is written as four nibbles: upper-case hex digits are
fixed, lower-case letters are operand fields.

  x    register index        bits 11-8
  y    register index        bits  7-4
  n    4-bit immediate       bits  3-0
  kk   8-bit immediate       bits  7-0
  nnn  12-bit address        bits 11-0

The decode table is priority ordered: the display extensions under the 00
prefix (and the 0230 alias of CLS) are matched before the SYS catch-all.
"""

from __future__ import annotations
import enum
import functools
from typing import NamedTuple, Optional


# ---------------------------------------------------------------------------
#  Errors
# ---------------------------------------------------------------------------

class Chip8Error(Exception):
    """Base for interpreter errors."""
    pass


class InvalidOpcodeError(Chip8Error):
    def __init__(self, opcode: int, addr: Optional[int] = None):
        self.opcode = opcode
        self.addr = addr
        where = f" at {addr:#05x}" if addr is not None else ""
        super().__init__(f"Invalid opcode ${opcode:04x}{where}")


# ---------------------------------------------------------------------------
#  Opcodes
# ---------------------------------------------------------------------------

class Op(enum.Enum):
    SYS_addr = "SYS_addr"
    CLS = "CLS"
    RET = "RET"
    JP_addr = "JP_addr"
    CALL_addr = "CALL_addr"
    SE_Vx_kk = "SE_Vx_kk"
    SNE_Vx_kk = "SNE_Vx_kk"
    SE_Vx_Vy = "SE_Vx_Vy"
    LD_Vx_kk = "LD_Vx_kk"
    ADD_Vx_kk = "ADD_Vx_kk"
    LD_Vx_Vy = "LD_Vx_Vy"
    OR_Vx_Vy = "OR_Vx_Vy"
    AND_Vx_Vy = "AND_Vx_Vy"
    XOR_Vx_Vy = "XOR_Vx_Vy"
    ADD_Vx_Vy = "ADD_Vx_Vy"
    SUB_Vx_Vy = "SUB_Vx_Vy"
    SHR_Vx_Vy = "SHR_Vx_Vy"
    SUBN_Vx_Vy = "SUBN_Vx_Vy"
    SHL_Vx_Vy = "SHL_Vx_Vy"
    SNE_Vx_Vy = "SNE_Vx_Vy"
    LD_I_addr = "LD_I_addr"
    JP_Vx_addr = "JP_Vx_addr"
    RND_Vx_kk = "RND_Vx_kk"
    DRW_Vx_Vy_n = "DRW_Vx_Vy_n"
    SKP_Vx = "SKP_Vx"
    SKNP_Vx = "SKNP_Vx"
    LD_Vx_DT = "LD_Vx_DT"
    LD_Vx_K = "LD_Vx_K"
    LD_DT_Vx = "LD_DT_Vx"
    LD_ST_Vx = "LD_ST_Vx"
    ADD_I_Vx = "ADD_I_Vx"
    LD_F_Vx = "LD_F_Vx"
    LD_B_Vx = "LD_B_Vx"
    LD_iI_Vx = "LD_iI_Vx"
    LD_Vx_iI = "LD_Vx_iI"
    # SUPER-CHIP
    SCD_n = "SCD_n"
    SCR = "SCR"
    SCL = "SCL"
    EXIT = "EXIT"
    LORES = "LORES"
    HIRES = "HIRES"
    LD_HF_Vx = "LD_HF_Vx"
    SAVE_Vx = "SAVE_Vx"
    LOAD_Vx = "LOAD_Vx"


class Instruction(NamedTuple):
    op: Op
    args: tuple[int, ...] = ()

    def __str__(self) -> str:
        return format_instruction(self)


# Operand fields carried by each opcode, in argument order.
OPERANDS: dict[Op, tuple[str, ...]] = {
    Op.SYS_addr: ("nnn",),
    Op.CLS: (),
    Op.RET: (),
    Op.JP_addr: ("nnn",),
    Op.CALL_addr: ("nnn",),
    Op.SE_Vx_kk: ("x", "kk"),
    Op.SNE_Vx_kk: ("x", "kk"),
    Op.SE_Vx_Vy: ("x", "y"),
    Op.LD_Vx_kk: ("x", "kk"),
    Op.ADD_Vx_kk: ("x", "kk"),
    Op.LD_Vx_Vy: ("x", "y"),
    Op.OR_Vx_Vy: ("x", "y"),
    Op.AND_Vx_Vy: ("x", "y"),
    Op.XOR_Vx_Vy: ("x", "y"),
    Op.ADD_Vx_Vy: ("x", "y"),
    Op.SUB_Vx_Vy: ("x", "y"),
    Op.SHR_Vx_Vy: ("x", "y"),
    Op.SUBN_Vx_Vy: ("x", "y"),
    Op.SHL_Vx_Vy: ("x", "y"),
    Op.SNE_Vx_Vy: ("x", "y"),
    Op.LD_I_addr: ("nnn",),
    Op.JP_Vx_addr: ("x", "nnn"),
    Op.RND_Vx_kk: ("x", "kk"),
    Op.DRW_Vx_Vy_n: ("x", "y", "n"),
    Op.SKP_Vx: ("x",),
    Op.SKNP_Vx: ("x",),
    Op.LD_Vx_DT: ("x",),
    Op.LD_Vx_K: ("x",),
    Op.LD_DT_Vx: ("x",),
    Op.LD_ST_Vx: ("x",),
    Op.ADD_I_Vx: ("x",),
    Op.LD_F_Vx: ("x",),
    Op.LD_B_Vx: ("x",),
    Op.LD_iI_Vx: ("x",),
    Op.LD_Vx_iI: ("x",),
    Op.SCD_n: ("n",),
    Op.SCR: (),
    Op.SCL: (),
    Op.EXIT: (),
    Op.LORES: (),
    Op.HIRES: (),
    Op.LD_HF_Vx: ("x",),
    Op.SAVE_Vx: ("x",),
    Op.LOAD_Vx: ("x",),
}

# Priority-ordered decode table: first match wins.
PATTERNS: list[tuple[str, Op]] = [
    ("00E0", Op.CLS),
    ("00EE", Op.RET),
    ("00FB", Op.SCR),
    ("00FC", Op.SCL),
    ("00FD", Op.EXIT),
    ("00FE", Op.LORES),
    ("00FF", Op.HIRES),
    ("00Cn", Op.SCD_n),
    ("0230", Op.CLS),       # hires CLS used by some SUPER-CHIP programs
    ("0nnn", Op.SYS_addr),
    ("1nnn", Op.JP_addr),
    ("2nnn", Op.CALL_addr),
    ("3xkk", Op.SE_Vx_kk),
    ("4xkk", Op.SNE_Vx_kk),
    ("5xy0", Op.SE_Vx_Vy),
    ("6xkk", Op.LD_Vx_kk),
    ("7xkk", Op.ADD_Vx_kk),
    ("8xy0", Op.LD_Vx_Vy),
    ("8xy1", Op.OR_Vx_Vy),
    ("8xy2", Op.AND_Vx_Vy),
    ("8xy3", Op.XOR_Vx_Vy),
    ("8xy4", Op.ADD_Vx_Vy),
    ("8xy5", Op.SUB_Vx_Vy),
    ("8xy6", Op.SHR_Vx_Vy),
    ("8xy7", Op.SUBN_Vx_Vy),
    ("8xyE", Op.SHL_Vx_Vy),
    ("9xy0", Op.SNE_Vx_Vy),
    ("Annn", Op.LD_I_addr),
    ("Bnnn", Op.JP_Vx_addr),
    ("Cxkk", Op.RND_Vx_kk),
    ("Dxyn", Op.DRW_Vx_Vy_n),
    ("Ex9E", Op.SKP_Vx),
    ("ExA1", Op.SKNP_Vx),
    ("Fx07", Op.LD_Vx_DT),
    ("Fx0A", Op.LD_Vx_K),
    ("Fx15", Op.LD_DT_Vx),
    ("Fx18", Op.LD_ST_Vx),
    ("Fx1E", Op.ADD_I_Vx),
    ("Fx29", Op.LD_F_Vx),
    ("Fx30", Op.LD_HF_Vx),
    ("Fx33", Op.LD_B_Vx),
    ("Fx55", Op.LD_iI_Vx),
    ("Fx65", Op.LD_Vx_iI),
    ("Fx75", Op.SAVE_Vx),
    ("Fx85", Op.LOAD_Vx),
]

_FIELD_SHIFT = {"x": 8, "y": 4, "n": 0, "kk": 0, "nnn": 0}
_FIELD_MASK = {"x": 0xF, "y": 0xF, "n": 0xF, "kk": 0xFF, "nnn": 0xFFF}


def _compile(template: str) -> tuple[int, int]:
    """Turn a nibble template into a (mask, value) pair."""
    mask = value = 0
    for i, ch in enumerate(template):
        shift = 12 - 4 * i
        if ch in "0123456789ABCDEF":
            mask |= 0xF << shift
            value |= int(ch, 16) << shift
    return mask, value


_DECODE: list[tuple[int, int, Op]] = [
    (*_compile(template), op) for template, op in PATTERNS
]

# Encoding uses the first (canonical) template of each opcode.
_ENCODE: dict[Op, int] = {}
for _mask, _value, _op in _DECODE:
    _ENCODE.setdefault(_op, _value)


# ---------------------------------------------------------------------------
#  Decode / encode
# ---------------------------------------------------------------------------

@functools.lru_cache(maxsize=None)
def parse(opcode: int) -> Instruction:
    """Decode a 16-bit word.  Raises InvalidOpcodeError if nothing matches."""
    opcode &= 0xFFFF
    for mask, value, op in _DECODE:
        if opcode & mask == value:
            args = tuple((opcode >> _FIELD_SHIFT[f]) & _FIELD_MASK[f]
                         for f in OPERANDS[op])
            return Instruction(op, args)
    raise InvalidOpcodeError(opcode)


def encode(inst: Instruction) -> int:
    """Encode an instruction back to its 16-bit word."""
    fields = OPERANDS[inst.op]
    if len(inst.args) != len(fields):
        raise ValueError(f"{inst.op.name} takes {len(fields)} operand(s), "
                         f"got {len(inst.args)}")
    word = _ENCODE[inst.op]
    for name, val in zip(fields, inst.args):
        if not 0 <= val <= _FIELD_MASK[name]:
            raise ValueError(f"{inst.op.name}: operand {name}={val:#x} "
                             f"out of range")
        word |= val << _FIELD_SHIFT[name]
    if inst.op is Op.JP_Vx_addr:
        x, nnn = inst.args
        if x != nnn >> 8:
            raise ValueError(f"JP_Vx_addr: register V{x:X} does not match "
                             f"address {nnn:#05x}")
    return word


# ---------------------------------------------------------------------------
#  Text form
# ---------------------------------------------------------------------------

FORMATS: dict[Op, str] = {
    Op.SYS_addr: "SYS {nnn:#05x}",
    Op.CLS: "CLS",
    Op.RET: "RET",
    Op.JP_addr: "JP {nnn:#05x}",
    Op.CALL_addr: "CALL {nnn:#05x}",
    Op.SE_Vx_kk: "SE V{x:X}, {kk:#04x}",
    Op.SNE_Vx_kk: "SNE V{x:X}, {kk:#04x}",
    Op.SE_Vx_Vy: "SE V{x:X}, V{y:X}",
    Op.LD_Vx_kk: "LD V{x:X}, {kk:#04x}",
    Op.ADD_Vx_kk: "ADD V{x:X}, {kk:#04x}",
    Op.LD_Vx_Vy: "LD V{x:X}, V{y:X}",
    Op.OR_Vx_Vy: "OR V{x:X}, V{y:X}",
    Op.AND_Vx_Vy: "AND V{x:X}, V{y:X}",
    Op.XOR_Vx_Vy: "XOR V{x:X}, V{y:X}",
    Op.ADD_Vx_Vy: "ADD V{x:X}, V{y:X}",
    Op.SUB_Vx_Vy: "SUB V{x:X}, V{y:X}",
    Op.SHR_Vx_Vy: "SHR V{x:X}, V{y:X}",
    Op.SUBN_Vx_Vy: "SUBN V{x:X}, V{y:X}",
    Op.SHL_Vx_Vy: "SHL V{x:X}, V{y:X}",
    Op.SNE_Vx_Vy: "SNE V{x:X}, V{y:X}",
    Op.LD_I_addr: "LD I, {nnn:#05x}",
    Op.JP_Vx_addr: "JP V0, {nnn:#05x}",
    Op.RND_Vx_kk: "RND V{x:X}, {kk:#04x}",
    Op.DRW_Vx_Vy_n: "DRW V{x:X}, V{y:X}, {n}",
    Op.SKP_Vx: "SKP V{x:X}",
    Op.SKNP_Vx: "SKNP V{x:X}",
    Op.LD_Vx_DT: "LD V{x:X}, DT",
    Op.LD_Vx_K: "LD V{x:X}, K",
    Op.LD_DT_Vx: "LD DT, V{x:X}",
    Op.LD_ST_Vx: "LD ST, V{x:X}",
    Op.ADD_I_Vx: "ADD I, V{x:X}",
    Op.LD_F_Vx: "LD F, V{x:X}",
    Op.LD_B_Vx: "LD B, V{x:X}",
    Op.LD_iI_Vx: "LD [I], V{x:X}",
    Op.LD_Vx_iI: "LD V{x:X}, [I]",
    Op.SCD_n: "SCD {n}",
    Op.SCR: "SCR",
    Op.SCL: "SCL",
    Op.EXIT: "EXIT",
    Op.LORES: "LOW",
    Op.HIRES: "HIGH",
    Op.LD_HF_Vx: "LD HF, V{x:X}",
    Op.SAVE_Vx: "SAVE V{x:X}",
    Op.LOAD_Vx: "LOAD V{x:X}",
}


def format_instruction(inst: Instruction) -> str:
    """Render as assembly text, e.g. ``DRW V0, V1, 5``."""
    return FORMATS[inst.op].format(**dict(zip(OPERANDS[inst.op], inst.args)))
