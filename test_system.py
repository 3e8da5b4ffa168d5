#!/usr/bin/env python3
"""
Integration tests for the CHIP-8 system: the tick scheduler, breakpoints,
timers, and a corpus of reference programs rendered to text.

The reference programs are assembled from source in this file and run to
completion; the whole video buffer is compared against the expected
rendering.  Select just those with ``python -m pytest -m roms``.
"""
import unittest

import pytest

from asm import assemble
from display import HeadlessDisplay, render_text
from instruction import InvalidOpcodeError
from memory import MAX_PROGRAM_SIZE
from quirks import Quirks
from system import Chip8System


def make_system(source: str, quirks: Quirks = None,
                clock_speed: int = 1_000_000) -> Chip8System:
    """Assemble source and load it into a fresh system."""
    sys_emu = Chip8System(quirks=quirks, clock_speed=clock_speed, seed=1)
    sys_emu.load_program(assemble(source))
    return sys_emu


def screen(rows: dict[int, str], width: int = 64, height: int = 32) -> str:
    """Expected render_text output: given rows, everything else dark."""
    return "\n".join(rows.get(y, "").ljust(width) for y in range(height))


# ---------------------------------------------------------------------------
#  Scheduler
# ---------------------------------------------------------------------------

COUNT_LOOP = """
loop:   add v0, 1
        jp loop
"""

STRAIGHT_LINE = """
        ld v0, 1        ; 0x200
        ld v1, 2        ; 0x202
        ld v2, 3        ; 0x204
end:    jp end          ; 0x206
"""


class TestTick(unittest.TestCase):

    def test_tick_runs_cycle_budget(self):
        sys_emu = make_system(COUNT_LOOP)
        sys_emu.tick()
        # 166-cycle budget -> 21 eight-cycle steps, 11 of them ADDs
        self.assertEqual(sys_emu.cpu.v[0], 11)
        self.assertEqual(sys_emu.pc, 0x202)

    def test_budget_scales_with_clock(self):
        sys_emu = make_system(COUNT_LOOP, clock_speed=480_000)
        sys_emu.tick()
        # 80 cycles -> 10 steps, 5 ADDs
        self.assertEqual(sys_emu.cpu.v[0], 5)

    def test_timers_tick_once_per_frame(self):
        sys_emu = make_system("""
                ld v0, 10
                ld dt, v0
                ld st, v0
        loop:   jp loop2
        loop2:  jp loop
        """)
        sys_emu.tick()
        self.assertEqual((sys_emu.cpu.dt, sys_emu.cpu.st), (9, 9))
        sys_emu.tick()
        self.assertEqual((sys_emu.cpu.dt, sys_emu.cpu.st), (8, 8))

    def test_draw_stalls_rest_of_tick(self):
        sys_emu = make_system("""
                drw v0, v0, 1
                add v1, 1
        end:    jp end
        """)
        sys_emu.tick()
        self.assertEqual(sys_emu.pc, 0x202)
        self.assertEqual(sys_emu.cpu.v[1], 0)
        sys_emu.tick()
        self.assertEqual(sys_emu.cpu.v[1], 1)
        self.assertFalse(sys_emu.running)

    def test_tick_noop_when_stopped(self):
        sys_emu = make_system("end: jp end\nadd v0, 1")
        sys_emu.tick()
        self.assertFalse(sys_emu.running)
        dt_before = sys_emu.cpu.dt = 5
        sys_emu.tick()
        self.assertEqual(sys_emu.cpu.dt, dt_before)
        self.assertEqual(sys_emu.cpu.v[0], 0)

    def test_invalid_opcode_propagates(self):
        sys_emu = Chip8System()
        sys_emu.load_program(b"\x60\x01\x51\x21")
        with self.assertLogs("chip8", "ERROR"):
            with self.assertRaises(InvalidOpcodeError) as cm:
                sys_emu.tick()
        self.assertEqual(cm.exception.addr, 0x202)

    def test_wait_for_key_across_ticks(self):
        sys_emu = make_system("""
                ld v0, k
        end:    jp end
        """)
        sys_emu.tick()
        sys_emu.tick()
        self.assertTrue(sys_emu.running)
        self.assertEqual(sys_emu.pc, 0x200)
        sys_emu.keydown(7)
        sys_emu.tick()
        self.assertEqual(sys_emu.cpu.v[0], 7)
        self.assertFalse(sys_emu.running)
        sys_emu.keyup(7)
        self.assertFalse(sys_emu.cpu.keys[7])


class TestBreakpoints(unittest.TestCase):

    def test_breakpoint_halts_mid_tick(self):
        sys_emu = make_system(STRAIGHT_LINE)
        sys_emu.set_breakpoint(0x204)
        sys_emu.cpu.dt = 5
        with self.assertLogs("system", "INFO") as cm:
            sys_emu.tick()
        self.assertIn("0x204", cm.output[0])
        self.assertTrue(sys_emu.halted)
        self.assertTrue(sys_emu.running)
        self.assertEqual(sys_emu.pc, 0x204)
        self.assertEqual(sys_emu.cpu.v[1], 2)
        self.assertEqual(sys_emu.cpu.v[2], 0)
        # The interrupted tick does not decrement the timers
        self.assertEqual(sys_emu.cpu.dt, 5)

    def test_halted_tick_is_noop(self):
        sys_emu = make_system(STRAIGHT_LINE)
        sys_emu.set_breakpoint(0x204)
        sys_emu.tick()
        sys_emu.tick()
        self.assertEqual(sys_emu.pc, 0x204)
        self.assertEqual(sys_emu.cpu.v[2], 0)

    def test_resume_continues_where_it_stopped(self):
        sys_emu = make_system(STRAIGHT_LINE)
        sys_emu.set_breakpoint(0x204)
        sys_emu.cpu.dt = 5
        sys_emu.tick()
        sys_emu.resume()
        self.assertFalse(sys_emu.halted)
        self.assertEqual(sys_emu.pc, 0x204)
        sys_emu.tick()
        self.assertEqual(sys_emu.cpu.v[2], 3)
        self.assertFalse(sys_emu.running)
        self.assertEqual(sys_emu.cpu.dt, 4)

    def test_set_remove_list(self):
        sys_emu = Chip8System()
        sys_emu.set_breakpoint(0x300)
        sys_emu.set_breakpoint(0x204)
        sys_emu.set_breakpoint(0x10300)     # masked to 16 bits
        self.assertEqual(sys_emu.list_breakpoints(), [0x204, 0x300])
        sys_emu.remove_breakpoint(0x300)
        sys_emu.remove_breakpoint(0x999)    # not set: ignored
        self.assertEqual(sys_emu.list_breakpoints(), [0x204])

    def test_removed_breakpoint_not_hit(self):
        sys_emu = make_system(STRAIGHT_LINE)
        sys_emu.set_breakpoint(0x204)
        sys_emu.remove_breakpoint(0x204)
        sys_emu.tick()
        self.assertFalse(sys_emu.halted)
        self.assertFalse(sys_emu.running)


class TestSystemControl(unittest.TestCase):

    def test_load_program_limit(self):
        sys_emu = Chip8System()
        sys_emu.load_program(bytes(MAX_PROGRAM_SIZE))
        with self.assertRaises(ValueError):
            sys_emu.load_program(bytes(MAX_PROGRAM_SIZE + 1))

    def test_run_until_finished(self):
        sys_emu = make_system("""
                ld v0, 0
        loop:   add v0, 1
                se v0, 100
                jp loop
        end:    jp end
        """)
        ticks = sys_emu.run_until_finished()
        self.assertEqual(sys_emu.cpu.v[0], 100)
        self.assertLess(ticks, 20)

    def test_run_until_finished_timeout(self):
        sys_emu = make_system(COUNT_LOOP)
        with self.assertRaises(TimeoutError):
            sys_emu.run_until_finished(max_ticks=5)

    def test_step_instruction(self):
        sys_emu = make_system(STRAIGHT_LINE)
        self.assertEqual(sys_emu.step_instruction(), 8)
        self.assertEqual(sys_emu.pc, 0x202)
        self.assertEqual(sys_emu.cpu.v[0], 1)

    def test_step_instruction_ticks_timers_per_frame(self):
        sys_emu = make_system(COUNT_LOOP)
        sys_emu.cpu.dt = 3
        for _ in range(20):
            sys_emu.step_instruction()
        self.assertEqual(sys_emu.cpu.dt, 3)
        sys_emu.step_instruction()          # 21 * 8 = 168 >= 166
        self.assertEqual(sys_emu.cpu.dt, 2)

    def test_reset_reloads_program(self):
        sys_emu = make_system(STRAIGHT_LINE)
        sys_emu.set_breakpoint(0x300)
        sys_emu.run_until_finished()
        sys_emu.reset()
        self.assertTrue(sys_emu.running)
        self.assertEqual(sys_emu.pc, 0x200)
        self.assertEqual(sys_emu.cpu.v[0], 0)
        self.assertEqual(sys_emu.cpu.memory.read16(0x200), 0x6001)
        self.assertEqual(sys_emu.list_breakpoints(), [0x300])
        self.assertEqual(sys_emu.quirks, Quirks.chip8())

    def test_reset_with_new_quirks(self):
        sys_emu = make_system(STRAIGHT_LINE)
        sys_emu.reset(Quirks.superchip())
        self.assertEqual(sys_emu.quirks, Quirks.superchip())
        self.assertEqual(sys_emu.cpu.memory.read16(0x200), 0x6001)

    def test_dump_state(self):
        sys_emu = make_system(STRAIGHT_LINE)
        sys_emu.set_breakpoint(0x204)
        text = sys_emu.dump_state()
        self.assertIn("166 cycles/tick", text)
        self.assertIn("breakpoints: 0x204", text)
        self.assertIn("program: 8 bytes", text)


# ---------------------------------------------------------------------------
#  Reference programs
# ---------------------------------------------------------------------------

@pytest.mark.roms
class TestReferencePrograms(unittest.TestCase):

    def run_program(self, source, quirks=None):
        sys_emu = make_system(source, quirks)
        sys_emu.run_until_finished(max_ticks=100)
        self.assertFalse(sys_emu.running)
        return sys_emu

    def test_font_zero(self):
        sys_emu = self.run_program("""
                cls
                ld v0, 0
                ld f, v0
                ld v1, 0
                ld v2, 0
                drw v1, v2, 5
        end:    jp end
        """)
        expected = screen({
            0: "████",
            1: "█  █",
            2: "█  █",
            3: "█  █",
            4: "████",
        })
        self.assertEqual(render_text(sys_emu.vram, sys_emu.width), expected)

    def test_bcd_digits(self):
        sys_emu = self.run_program("""
                ld i, digits
                ld v0, 137
                ld b, v0
                ld v2, [I]      ; v0..v2 = 1, 3, 7
                ld v3, 0
                ld v4, 0
                ld f, v0
                drw v3, v4, 5
                add v3, 5
                ld f, v1
                drw v3, v4, 5
                add v3, 5
                ld f, v2
                drw v3, v4, 5
        end:    jp end
        digits: .db 0, 0, 0
        """)
        expected = screen({
            0: "  █  ████ ████",
            1: " ██     █    █",
            2: "  █  ████   █",
            3: "  █     █  █",
            4: " ███ ████  █",
        })
        self.assertEqual(render_text(sys_emu.vram, sys_emu.width), expected)

    def test_xor_collision(self):
        sys_emu = self.run_program("""
                ld v0, 8
                ld f, v0
                ld v1, 10
                ld v2, 3
                drw v1, v2, 5
                ld v0, 0
                ld f, v0
                drw v1, v2, 5   ; "8" xor "0" leaves the middle bar
                ld v5, vf
        end:    jp end
        """)
        self.assertEqual(sys_emu.cpu.v[5], 1)
        expected = screen({5: "           ██"})
        self.assertEqual(render_text(sys_emu.vram, sys_emu.width), expected)

    def test_wrapping_sprite(self):
        sys_emu = self.run_program("""
                ld v0, 0
                ld f, v0
                ld v1, 62
                ld v2, 30
                drw v1, v2, 5
        end:    jp end
        """, Quirks.xochip())
        bar = "██" + " " * 60 + "██"
        sides = " █" + " " * 60 + "█ "
        expected = screen({0: sides, 1: sides, 2: bar, 30: bar, 31: sides})
        self.assertEqual(render_text(sys_emu.vram, sys_emu.width), expected)

    def test_hires_clipped_box(self):
        sys_emu = self.run_program("""
                high
                ld i, box
                ld v0, 120
                ld v1, 0
                drw v0, v1, 0
        end:    jp end
        box:    .dw 0xFFFF
                .dw 0x8001, 0x8001, 0x8001, 0x8001, 0x8001, 0x8001, 0x8001
                .dw 0x8001, 0x8001, 0x8001, 0x8001, 0x8001, 0x8001, 0x8001
                .dw 0xFFFF
        """, Quirks.superchip())
        self.assertEqual((sys_emu.width, sys_emu.height), (128, 64))
        top = " " * 120 + "█" * 8
        side = " " * 120 + "█"
        rows = {y: side for y in range(1, 15)}
        rows[0] = rows[15] = top
        self.assertEqual(render_text(sys_emu.vram, sys_emu.width),
                         screen(rows, 128, 64))

    def test_headless_display_matches(self):
        sys_emu = make_system("""
                ld v0, 0xF
                ld f, v0
                drw v1, v1, 5
        end:    jp end
        """)
        headless = HeadlessDisplay(sys_emu)
        frames = headless.run(50)
        self.assertLess(frames, 50)
        expected = screen({0: "████", 1: "█", 2: "████", 3: "█", 4: "█"})
        self.assertEqual(headless.snapshot(), expected)
        self.assertEqual(headless.snapshots, [expected])


if __name__ == "__main__":
    unittest.main()
