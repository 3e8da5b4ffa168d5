#!/usr/bin/env python3
"""
CHIP-8 Monitor / CLI
=====================
Command-line entry point and interactive debug monitor for the CHIP-8
virtual machine.

Provides:
  - Quirks preset and clock configuration
  - Program loading (raw .ch8 images or assembly source)
  - Tick / step / breakpoint execution
  - Register and memory inspection / modification
  - Disassembly and a text view of the screen

Usage:
  python cli.py [ROM] [--quirks chip8|superchip|xochip] [--clock HZ]
                [--break ADDR,...] [--set ADDR:VAL,...] [--scale N]
                [--headless [--frames N]] [--monitor] [--seed N] [-v]
  python cli.py --assemble SRC.asm OUT.ch8 [--listing]
"""

from __future__ import annotations
import argparse
import cmd
import logging
import shlex
import sys

from asm import AsmError, assemble, disassemble_word
from instruction import Chip8Error, InvalidOpcodeError
from display import HeadlessDisplay, render_text
from memory import MEM_SIZE
from quirks import PRESETS, Quirks
from system import Chip8System

log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
#  Disassembler
# ---------------------------------------------------------------------------

def disasm_one(sys_emu: Chip8System, addr: int) -> str:
    """Disassemble the word at addr.  Undecodable words show as data."""
    return disassemble_word(sys_emu.cpu.memory.read16(addr))


# ---------------------------------------------------------------------------
#  Argument helpers
# ---------------------------------------------------------------------------

def parse_breakpoints(args: list[str]) -> list[int]:
    """'--break 2a0,2b4' -> [0x2a0, 0x2b4] (hex, with or without 0x)."""
    addrs = []
    for arg in args:
        for tok in arg.split(","):
            if tok.strip():
                addrs.append(int(tok.strip(), 16))
    return addrs


def parse_pokes(args: list[str]) -> list[tuple[int, int]]:
    """'--set 1ff:1,300:ff' -> [(0x1ff, 0x01), (0x300, 0xff)]."""
    pokes = []
    for arg in args:
        for tok in arg.split(","):
            if not tok.strip():
                continue
            addr_s, sep, val_s = tok.partition(":")
            if not sep:
                raise ValueError(f"Expected ADDR:VAL, got {tok!r}")
            pokes.append((int(addr_s, 16), int(val_s, 16) & 0xFF))
    return pokes


# ---------------------------------------------------------------------------
#  Interactive monitor
# ---------------------------------------------------------------------------

class Chip8CLI(cmd.Cmd):
    intro = (
        "\n"
        "╔══════════════════════════════════════════════════════════╗\n"
        "║             CHIP-8 Debug Monitor                         ║\n"
        "║   Type 'help' for commands.  'quit' to exit.             ║\n"
        "╚══════════════════════════════════════════════════════════╝\n"
    )
    prompt = "CHIP8> "

    def __init__(self, system: Chip8System):
        super().__init__()
        self.sys = system

    # -- Parsing helpers --

    def _parse_addr(self, s: str) -> int:
        """Parse an address (hex with optional 0x prefix, or 'pc' / 'i')."""
        s = s.strip().lower()
        if s == "pc":
            return self.sys.cpu.pc
        if s == "i":
            return self.sys.cpu.i
        return int(s, 16)

    def _parse_int(self, s: str) -> int:
        return int(s.strip(), 0)

    def _report_error(self, e: Exception):
        print(f"Error: {e}")

    # ================================================================
    #  Commands
    # ================================================================

    # -- Loading --

    def do_load(self, arg):
        """Load a raw program image at 0x200: load <file.ch8>"""
        parts = shlex.split(arg)
        if not parts:
            print("Usage: load <file>")
            return
        try:
            n = self.sys.load_program_file(parts[0])
            print(f"Loaded {n} bytes from '{parts[0]}' at 0x200")
        except (OSError, ValueError) as e:
            self._report_error(e)

    def do_asm(self, arg):
        """Assemble source and load: asm <file.asm>
        Or inline:  asm -e "ld v0, 1; jp 0x202" """
        parts = shlex.split(arg)
        if not parts:
            print("Usage: asm <file.asm>  OR  asm -e \"code\"")
            return
        if parts[0] == "-e":
            source = parts[1].replace(";", "\n") if len(parts) > 1 else ""
        else:
            try:
                with open(parts[0], "r") as f:
                    source = f.read()
            except OSError as e:
                print(f"Error reading '{parts[0]}': {e}")
                return
        try:
            code = assemble(source)
            self.sys.load_program(code)
            print(f"Assembled {len(code)} bytes at 0x200")
        except AsmError as e:
            print(f"Assembly error: {e}")
        except ValueError as e:
            self._report_error(e)

    def do_reset(self, arg):
        """Reset the CPU and reload the current program."""
        self.sys.reset()
        print("System reset.")

    def do_quirks(self, arg):
        """Show or select the quirks preset: quirks [chip8|superchip|xochip]
        Selecting a preset resets the machine."""
        if not arg.strip():
            print(f"  {self.sys.quirks.describe()}")
            return
        try:
            self.sys.reset(Quirks.preset(arg))
        except ValueError as e:
            self._report_error(e)
            return
        print(f"  Quirks set to {arg.strip().lower()} (system reset).")

    # -- Execution --

    def do_step(self, arg):
        """Step N instructions: step [count]"""
        count = self._parse_int(arg) if arg.strip() else 1
        for _ in range(count):
            if not self.sys.running:
                print("Program has stopped.")
                break
            addr = self.sys.pc
            text = disasm_one(self.sys, addr)
            try:
                cycles = self.sys.step_instruction()
            except Chip8Error as e:
                self._report_error(e)
                break
            print(f"  {addr:#05x}: {text:<20s} ({cycles} cyc)")

    def do_tick(self, arg):
        """Run N frames (60 Hz ticks): tick [count]"""
        count = self._parse_int(arg) if arg.strip() else 1
        self._run_frames(count)

    def do_run(self, arg):
        """Run until the program stops or a breakpoint hits: run [max_ticks]"""
        max_ticks = self._parse_int(arg) if arg.strip() else 100_000
        self._run_frames(max_ticks)

    def _run_frames(self, count: int):
        ran = 0
        try:
            for _ in range(count):
                if not self.sys.running or self.sys.halted:
                    break
                self.sys.tick()
                ran += 1
        except Chip8Error as e:
            self._report_error(e)
            return
        if self.sys.halted:
            print(f"Breakpoint hit at {self.sys.pc:#05x} after {ran} ticks.")
        elif not self.sys.running:
            print(f"Program stopped after {ran} ticks.")
        else:
            print(f"Ran {ran} ticks.  PC={self.sys.pc:#05x}")

    def do_resume(self, arg):
        """Clear a breakpoint halt (then 'run' or 'tick')."""
        self.sys.resume()
        print("Resumed.")

    def do_continue(self, arg):
        """Resume from a breakpoint and keep running: continue [max_ticks]"""
        self.sys.resume()
        self.do_run(arg)
    do_c = do_continue

    # -- Breakpoints --

    def do_bp(self, arg):
        """Set breakpoint: bp <address>"""
        if not arg.strip():
            if self.sys.breakpoints:
                print("Breakpoints:")
                for a in self.sys.list_breakpoints():
                    print(f"  {a:#05x}")
            else:
                print("No breakpoints set.")
            return
        addr = self._parse_addr(arg)
        self.sys.set_breakpoint(addr)
        print(f"Breakpoint set at {addr:#05x}")

    def do_bpd(self, arg):
        """Delete breakpoint: bpd <address|all>"""
        if arg.strip().lower() == "all":
            for a in self.sys.list_breakpoints():
                self.sys.remove_breakpoint(a)
            print("All breakpoints cleared.")
            return
        addr = self._parse_addr(arg)
        self.sys.remove_breakpoint(addr)
        print(f"Breakpoint at {addr:#05x} removed.")

    # -- Inspection --

    def do_regs(self, arg):
        """Show CPU registers."""
        print(self.sys.cpu.dump_regs())

    def do_setreg(self, arg):
        """Set register: setreg <V0-VF|I|PC|DT|ST> <value>"""
        parts = shlex.split(arg)
        if len(parts) < 2:
            print("Usage: setreg <reg> <value>")
            return
        reg_s = parts[0].lower()
        val = self._parse_int(parts[1])
        cpu = self.sys.cpu
        if reg_s == "pc":
            cpu.pc = val & 0xFFFF
        elif reg_s == "i":
            cpu.i = val & 0xFFFF
        elif reg_s == "dt":
            cpu.dt = val & 0xFF
        elif reg_s == "st":
            cpu.st = val & 0xFF
        elif len(reg_s) == 2 and reg_s[0] == "v" and reg_s[1] in "0123456789abcdef":
            cpu.v[int(reg_s[1], 16)] = val & 0xFF
        else:
            print("Unknown register.")
            return
        print(f"  {reg_s.upper()} = {val:#x}")

    def do_dump(self, arg):
        """Hex dump memory: dump <address> [count]
        Count defaults to 64 bytes."""
        parts = shlex.split(arg)
        if not parts:
            print("Usage: dump <address> [count]")
            return
        addr = self._parse_addr(parts[0])
        count = self._parse_int(parts[1]) if len(parts) > 1 else 64
        mem = self.sys.cpu.memory
        for row_start in range(addr, addr + count, 16):
            n = min(16, addr + count - row_start)
            hex_bytes = [f"{mem.read(row_start + i):02x}" for i in range(n)]
            hex_str = " ".join(hex_bytes[:8]) + "  " + " ".join(hex_bytes[8:])
            print(f"  {row_start % MEM_SIZE:#05x}: {hex_str}")

    def do_setmem(self, arg):
        """Set memory bytes: setmem <address> <byte> [byte] ..."""
        parts = shlex.split(arg)
        if len(parts) < 2:
            print("Usage: setmem <addr> <byte...>")
            return
        addr = self._parse_addr(parts[0])
        for i, tok in enumerate(parts[1:]):
            self.sys.cpu.memory.write(addr + i, int(tok, 16))
        print(f"  Wrote {len(parts) - 1} bytes at {addr:#05x}")

    def do_disasm(self, arg):
        """Disassemble: disasm [address] [count]
        Defaults to current PC, 16 instructions."""
        parts = shlex.split(arg)
        addr = self._parse_addr(parts[0]) if parts else self.sys.pc
        count = self._parse_int(parts[1]) if len(parts) > 1 else 16
        mem = self.sys.cpu.memory
        for _ in range(count):
            marker = ">>>" if addr == self.sys.pc else "   "
            bp = "*" if addr in self.sys.breakpoints else " "
            print(f"  {marker}{bp}{addr:#05x}: {mem.read16(addr):04x}  "
                  f"{disasm_one(self.sys, addr)}")
            addr += 2

    def do_screen(self, arg):
        """Print the video buffer as text."""
        border = "+" + "-" * self.sys.width + "+"
        print(border)
        for line in render_text(self.sys.vram, self.sys.width).split("\n"):
            print(f"|{line}|")
        print(border)

    def do_key(self, arg):
        """Press or release a key: key down|up <0-F>"""
        parts = shlex.split(arg)
        if len(parts) != 2 or parts[0] not in ("down", "up"):
            print("Usage: key down|up <0-F>")
            return
        key = int(parts[1], 16)
        if not 0 <= key <= 0xF:
            print("Key must be 0-F.")
            return
        if parts[0] == "down":
            self.sys.keydown(key)
        else:
            self.sys.keyup(key)
        print(f"  Key {key:X} {parts[0]}")

    def do_status(self, arg):
        """Show full system status."""
        print(self.sys.dump_state())

    # -- Misc --

    def do_quit(self, arg):
        """Exit the monitor."""
        print("Goodbye.")
        return True
    do_exit = do_quit
    do_q = do_quit

    def do_EOF(self, arg):
        print()
        return self.do_quit(arg)

    def default(self, line):
        """Handle unknown commands gracefully."""
        print(f"Unknown command: {line.split()[0]!r}. Type 'help' for available commands.")

    def emptyline(self):
        """Don't repeat the last command on empty input."""
        pass

    def onecmd(self, line):
        try:
            return super().onecmd(line)
        except ValueError as e:
            self._report_error(e)
            return False


# ---------------------------------------------------------------------------
#  Main
# ---------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="CHIP-8 / SUPER-CHIP virtual machine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="Examples:\n"
               "  python cli.py roms/ibm-logo.ch8\n"
               "  python cli.py game.ch8 --quirks superchip --clock 2000000\n"
               "  python cli.py quirks.ch8 --set 1ff:1 --break 5d2\n"
               "  python cli.py test.ch8 --headless --frames 300\n"
               "  python cli.py game.ch8 --monitor\n"
               "  python cli.py --assemble game.asm game.ch8 --listing\n"
    )
    parser.add_argument("rom", nargs="?", default=None,
                        help="Program image (.ch8) or assembly source (.asm)")
    parser.add_argument("--quirks", choices=sorted(PRESETS), default="chip8",
                        help="Quirks preset (default: chip8)")
    parser.add_argument("--clock", type=int, default=1_000_000, metavar="HZ",
                        help="Clock speed in Hz (default: 1000000)")
    parser.add_argument("--break", dest="breakpoints", action="append",
                        default=[], metavar="ADDR[,ADDR...]",
                        help="Breakpoint address in hex (can repeat)")
    parser.add_argument("--set", dest="pokes", action="append", default=[],
                        metavar="ADDR:VAL[,...]",
                        help="Poke a hex byte into memory after loading (can repeat)")
    parser.add_argument("--scale", type=int, default=10, metavar="N",
                        help="Window pixels per lores pixel (default: 10)")
    parser.add_argument("--headless", action="store_true",
                        help="Run without a window and print the final screen")
    parser.add_argument("--frames", type=int, default=600, metavar="N",
                        help="Frame budget for --headless (default: 600)")
    parser.add_argument("--monitor", action="store_true",
                        help="Start the interactive debug monitor")
    parser.add_argument("--seed", type=int, default=None,
                        help="Seed for RND (default: random)")
    parser.add_argument("--assemble", nargs=2, metavar=("SRC", "OUT"),
                        help="Assemble SRC.asm to OUT.ch8 and exit")
    parser.add_argument("--listing", "-l", action="store_true",
                        help="Print assembly listing (with --assemble)")
    parser.add_argument("-v", "--verbose", action="store_true",
                        help="Enable debug logging (per-instruction trace)")
    return parser


def load_rom(sys_emu: Chip8System, path: str) -> int:
    """Load a .ch8 image, or assemble a .asm source.  Returns bytes loaded."""
    if path.endswith(".asm"):
        with open(path, "r") as f:
            code = assemble(f.read())
        sys_emu.load_program(code)
        return len(code)
    return sys_emu.load_program_file(path)


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format="%(levelname)s %(name)s: %(message)s")

    try:
        breakpoints = parse_breakpoints(args.breakpoints)
        pokes = parse_pokes(args.pokes)
    except ValueError as e:
        parser.error(str(e))

    # ---- Assemble-only mode -------------------------------------------
    if args.assemble:
        src_path, out_path = args.assemble
        try:
            with open(src_path, "r") as f:
                source = f.read()
            code = assemble(source, listing=args.listing)
        except (OSError, AsmError) as e:
            print(f"Assembly error: {e}", file=sys.stderr)
            return 1
        with open(out_path, "wb") as f:
            f.write(code)
        print(f"Assembled {src_path} -> {out_path} ({len(code)} bytes)")
        return 0

    sys_emu = Chip8System(quirks=Quirks.preset(args.quirks),
                          clock_speed=args.clock, seed=args.seed)
    for addr in breakpoints:
        sys_emu.set_breakpoint(addr)

    if args.rom:
        try:
            n = load_rom(sys_emu, args.rom)
        except (OSError, ValueError, AsmError) as e:
            print(f"Cannot load '{args.rom}': {e}", file=sys.stderr)
            return 1
        log.info("Loaded %d bytes from '%s' (quirks: %s)",
                 n, args.rom, args.quirks)
    for addr, val in pokes:
        sys_emu.cpu.memory.write(addr, val)

    if args.monitor or not args.rom:
        cli = Chip8CLI(sys_emu)
        try:
            cli.cmdloop()
        except KeyboardInterrupt:
            print("\nInterrupted. Goodbye.")
        return 0

    try:
        if args.headless:
            headless = HeadlessDisplay(sys_emu)
            frames = headless.run(args.frames)
            log.info("Ran %d frames (running=%s halted=%s)",
                     frames, sys_emu.running, sys_emu.halted)
            print(headless.snapshot())
            return 0

        try:
            from display import Chip8Display
            import pygame  # noqa: F401
        except ImportError as e:
            print(f"[display] pygame not available: {e}", file=sys.stderr)
            print("[display] Install with: pip install pygame", file=sys.stderr)
            return 1

        print("CHIP-8 running!")
        print("  [J] to step through instructions")
        print("  [K] disables stepping")
        print("  [L] continues after a breakpoint")
        Chip8Display(sys_emu, scale=args.scale,
                     title=f"chip8 - {args.rom}").run()
    except InvalidOpcodeError as e:
        print(f"Fatal: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
