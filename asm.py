"""
CHIP-8 Assembler
=================
Translates CHIP-8 / SUPER-CHIP assembly text into a raw program image.

Supports:
  - Labels (``name:`` on its own line or in front of an instruction)
  - The full instruction set in conventional mnemonics (CLS, LD, DRW, ...)
  - Registers V0-VF, immediates in decimal, 0x hex or 0b binary
  - Comments (';' to end of line)
  - .org, .db, .dw directives (.dw is big-endian, like the CPU)

Usage:
  from asm import assemble
  program = assemble(source_text)          # image for address 0x200
"""

from __future__ import annotations
import re

from instruction import (Instruction, InvalidOpcodeError, Op, OPERANDS, encode,
                         format_instruction, parse)
from memory import PROGRAM_START

# ---------------------------------------------------------------------------
#  Operand forms
# ---------------------------------------------------------------------------
# Operand kinds: "V" register, "N" number or label, anything else is a
# keyword operand that must appear literally.

FORMS: dict[tuple[str, tuple[str, ...]], Op] = {
    ("sys", ("N",)): Op.SYS_addr,
    ("cls", ()): Op.CLS,
    ("ret", ()): Op.RET,
    ("jp", ("N",)): Op.JP_addr,
    ("jp", ("V", "N")): Op.JP_Vx_addr,
    ("call", ("N",)): Op.CALL_addr,
    ("se", ("V", "N")): Op.SE_Vx_kk,
    ("se", ("V", "V")): Op.SE_Vx_Vy,
    ("sne", ("V", "N")): Op.SNE_Vx_kk,
    ("sne", ("V", "V")): Op.SNE_Vx_Vy,
    ("ld", ("V", "N")): Op.LD_Vx_kk,
    ("ld", ("V", "V")): Op.LD_Vx_Vy,
    ("ld", ("I", "N")): Op.LD_I_addr,
    ("ld", ("V", "DT")): Op.LD_Vx_DT,
    ("ld", ("V", "K")): Op.LD_Vx_K,
    ("ld", ("DT", "V")): Op.LD_DT_Vx,
    ("ld", ("ST", "V")): Op.LD_ST_Vx,
    ("ld", ("F", "V")): Op.LD_F_Vx,
    ("ld", ("HF", "V")): Op.LD_HF_Vx,
    ("ld", ("B", "V")): Op.LD_B_Vx,
    ("ld", ("[I]", "V")): Op.LD_iI_Vx,
    ("ld", ("V", "[I]")): Op.LD_Vx_iI,
    ("add", ("V", "N")): Op.ADD_Vx_kk,
    ("add", ("V", "V")): Op.ADD_Vx_Vy,
    ("add", ("I", "V")): Op.ADD_I_Vx,
    ("or", ("V", "V")): Op.OR_Vx_Vy,
    ("and", ("V", "V")): Op.AND_Vx_Vy,
    ("xor", ("V", "V")): Op.XOR_Vx_Vy,
    ("sub", ("V", "V")): Op.SUB_Vx_Vy,
    ("subn", ("V", "V")): Op.SUBN_Vx_Vy,
    ("shr", ("V", "V")): Op.SHR_Vx_Vy,
    ("shr", ("V",)): Op.SHR_Vx_Vy,
    ("shl", ("V", "V")): Op.SHL_Vx_Vy,
    ("shl", ("V",)): Op.SHL_Vx_Vy,
    ("rnd", ("V", "N")): Op.RND_Vx_kk,
    ("drw", ("V", "V", "N")): Op.DRW_Vx_Vy_n,
    ("skp", ("V",)): Op.SKP_Vx,
    ("sknp", ("V",)): Op.SKNP_Vx,
    ("scd", ("N",)): Op.SCD_n,
    ("scr", ()): Op.SCR,
    ("scl", ()): Op.SCL,
    ("exit", ()): Op.EXIT,
    ("low", ()): Op.LORES,
    ("high", ()): Op.HIRES,
    ("save", ("V",)): Op.SAVE_Vx,
    ("load", ("V",)): Op.LOAD_Vx,
}

KEYWORDS = {"I", "[I]", "DT", "ST", "K", "F", "HF", "B"}

_REG_RE = re.compile(r"^v([0-9a-f])$", re.IGNORECASE)
_LABEL_RE = re.compile(r"^([A-Za-z_][\w.]*):\s*(.*)$")


class AsmError(Exception):
    def __init__(self, line: int, msg: str):
        self.line = line
        super().__init__(f"Line {line}: {msg}")


# ---------------------------------------------------------------------------
#  Parser helpers
# ---------------------------------------------------------------------------

def _split_ops(rest: str) -> list[str]:
    """Split operand string by comma, trimming whitespace."""
    return [s.strip() for s in rest.split(",") if s.strip()]


def _classify(tok: str) -> tuple[str, str]:
    """Return (kind, token) for an operand."""
    if _REG_RE.match(tok):
        return "V", tok
    upper = tok.upper().replace(" ", "")
    if upper in KEYWORDS:
        return upper, tok
    return "N", tok


def _value(lineno: int, tok: str, labels: dict[str, int]) -> int:
    if tok in labels:
        return labels[tok]
    try:
        return int(tok, 0)
    except ValueError:
        raise AsmError(lineno, f"Undefined label or bad number: {tok!r}") from None


def _strip_comment(raw: str) -> str:
    return raw.split(";", 1)[0].strip()


# ---------------------------------------------------------------------------
#  Single instruction
# ---------------------------------------------------------------------------

def assemble_instruction(lineno: int, text: str,
                         labels: dict[str, int]) -> Instruction:
    """Parse one instruction line into an Instruction."""
    parts = text.split(None, 1)
    mnem = parts[0].lower()
    ops = _split_ops(parts[1]) if len(parts) > 1 else []
    kinds = [_classify(o) for o in ops]
    sig = tuple(k for k, _ in kinds)

    op = FORMS.get((mnem, sig))
    if op is None:
        raise AsmError(lineno, f"Unknown instruction form: {text!r}")

    vals: list[int] = []
    for kind, tok in kinds:
        if kind == "V":
            vals.append(int(_REG_RE.match(tok).group(1), 16))
        elif kind == "N":
            vals.append(_value(lineno, tok, labels))

    if op in (Op.SHR_Vx_Vy, Op.SHL_Vx_Vy) and len(vals) == 1:
        vals.append(vals[0])
    elif op is Op.JP_Vx_addr:
        reg, addr = vals
        if reg not in (0, (addr >> 8) & 0xF):
            raise AsmError(lineno, f"JP V{reg:X}, {addr:#05x}: register "
                                   f"must be V0 or the address high nibble")
        vals = [(addr >> 8) & 0xF, addr]

    # Negative byte immediates wrap (ADD V0, -1 == ADD V0, 0xFF)
    for idx, field in enumerate(OPERANDS[op]):
        if field == "kk" and -0x80 <= vals[idx] < 0:
            vals[idx] &= 0xFF

    inst = Instruction(op, tuple(vals))
    try:
        encode(inst)
    except ValueError as e:
        raise AsmError(lineno, str(e)) from None
    return inst


# ---------------------------------------------------------------------------
#  Assembler
# ---------------------------------------------------------------------------

def assemble(source: str, base_addr: int = PROGRAM_START,
             listing: bool = False) -> bytearray:
    """
    Two-pass assembler.
    Pass 1: collect labels (every instruction is two bytes).
    Pass 2: emit the image with resolved addresses.
    If listing=True, print an address/hex/source listing to stdout.
    """
    cleaned: list[tuple[int, str]] = []
    labels: dict[str, int] = {}
    pc = base_addr

    # ---- Pass 1: labels and sizes ----
    for lineno, raw in enumerate(source.split("\n"), 1):
        text = _strip_comment(raw)
        while text:
            m = _LABEL_RE.match(text)
            if not m:
                break
            lbl = m.group(1)
            if lbl in labels:
                raise AsmError(lineno, f"Duplicate label: {lbl}")
            labels[lbl] = pc
            text = m.group(2).strip()
        if not text:
            continue

        lower = text.lower()
        if lower.startswith(".org"):
            target = _value(lineno, text[4:].strip(), labels)
            if target < pc:
                raise AsmError(lineno, f".org {target:#x} is behind {pc:#x}")
            pc = target
        elif lower.startswith(".db"):
            pc += len(_split_ops(text[3:]))
        elif lower.startswith(".dw"):
            pc += 2 * len(_split_ops(text[3:]))
        else:
            pc += 2
        cleaned.append((lineno, text))

    # ---- Pass 2: emit bytes ----
    code = bytearray()
    pc = base_addr

    for lineno, text in cleaned:
        start_pc = pc
        lower = text.lower()

        if lower.startswith(".org"):
            target = _value(lineno, text[4:].strip(), labels)
            code.extend(bytes(target - pc))
            pc = target
            continue

        if lower.startswith(".db"):
            emitted = bytearray()
            for tok in _split_ops(text[3:]):
                emitted.append(_value(lineno, tok, labels) & 0xFF)
        elif lower.startswith(".dw"):
            emitted = bytearray()
            for tok in _split_ops(text[3:]):
                v = _value(lineno, tok, labels) & 0xFFFF
                emitted += bytes([(v >> 8) & 0xFF, v & 0xFF])
        else:
            word = encode(assemble_instruction(lineno, text, labels))
            emitted = bytearray([(word >> 8) & 0xFF, word & 0xFF])

        code += emitted
        pc += len(emitted)
        if listing:
            hexstr = " ".join(f"{b:02X}" for b in emitted[:8])
            if len(emitted) > 8:
                hexstr += " ..."
            print(f"  {start_pc:04X}  {hexstr:<26s} {text}")

    return code


def disassemble_word(word: int) -> str:
    """Assembly text for one word; undecodable words show as ``.dw``."""
    try:
        return format_instruction(parse(word))
    except InvalidOpcodeError:
        return f".dw {word:#06x}"


def disassemble(code: bytes | bytearray, base_addr: int = PROGRAM_START) -> list[str]:
    """Best-effort listing of a program image (data words show as .dw)."""
    out = []
    for off in range(0, len(code) - 1, 2):
        word = (code[off] << 8) | code[off + 1]
        out.append(f"{base_addr + off:04X}  {word:04X}  {disassemble_word(word)}")
    return out
