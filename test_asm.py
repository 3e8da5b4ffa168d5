#!/usr/bin/env python3
"""Tests for the CHIP-8 assembler and disassembler."""
import contextlib
import io
import unittest

from asm import (AsmError, assemble, assemble_instruction, disassemble,
                 disassemble_word)
from instruction import Instruction, Op


class TestAssemble(unittest.TestCase):

    def test_simple(self):
        self.assertEqual(assemble("cls\nret"), bytearray(b"\x00\xE0\x00\xEE"))

    def test_comments_and_blank_lines(self):
        src = """
        ; clear the screen
        cls         ; trailing comment

        ret
        """
        self.assertEqual(assemble(src), bytearray(b"\x00\xE0\x00\xEE"))

    def test_backward_label(self):
        self.assertEqual(assemble("start: ld v0, 1\njp start"),
                         bytearray.fromhex("6001 1200"))

    def test_forward_label(self):
        src = "jp skip\ncls\nskip:\nret"
        self.assertEqual(assemble(src), bytearray.fromhex("1204 00E0 00EE"))

    def test_base_address(self):
        self.assertEqual(assemble("here: jp here", base_addr=0x600),
                         bytearray.fromhex("1600"))

    def test_registers_and_keywords(self):
        src = """
        LD I, 0x300
        ld hf, v2
        ld [i], vA
        ld v3, [I]
        ld b, v1
        add i, v4
        ld v5, dt
        ld st, v6
        ld v7, k
        """
        self.assertEqual(assemble(src), bytearray.fromhex(
            "A300 F230 FA55 F365 F133 F41E F507 F618 F70A"))

    def test_super_chip_mnemonics(self):
        src = "scd 3\nscr\nscl\nexit\nlow\nhigh\nsave v3\nload v3"
        self.assertEqual(assemble(src), bytearray.fromhex(
            "00C3 00FB 00FC 00FD 00FE 00FF F375 F385"))

    def test_shift_shorthand(self):
        self.assertEqual(assemble("shr v3\nshl v4, v5"),
                         bytearray.fromhex("8336 845E"))

    def test_indexed_jump(self):
        self.assertEqual(assemble("jp v0, 0x300\njp v3, 0x345"),
                         bytearray.fromhex("B300 B345"))
        with self.assertRaises(AsmError):
            assemble("jp v2, 0x300")

    def test_negative_immediate(self):
        self.assertEqual(assemble("add v0, -1"), bytearray.fromhex("70FF"))

    def test_number_bases(self):
        self.assertEqual(assemble("ld v0, 0b1010\nld v1, 10\nld v2, 0x0a"),
                         bytearray.fromhex("600A 610A 620A"))

    def test_data_directives(self):
        self.assertEqual(assemble(".db 1, 2, 0xff\n.dw 0x1234"),
                         bytearray.fromhex("0102FF 1234"))

    def test_data_after_code_label(self):
        src = "ld i, sprite\nsprite: .db 0xF0, 0x90"
        self.assertEqual(assemble(src), bytearray.fromhex("A202 F090"))

    def test_org_pads(self):
        self.assertEqual(assemble("cls\n.org 0x206\nret"),
                         bytearray.fromhex("00E0 0000 0000 00EE"))

    def test_assemble_instruction(self):
        self.assertEqual(assemble_instruction(1, "drw v1, v2, 15", {}),
                         Instruction(Op.DRW_Vx_Vy_n, (1, 2, 15)))
        self.assertEqual(assemble_instruction(1, "call sub", {"sub": 0x280}),
                         Instruction(Op.CALL_addr, (0x280,)))


class TestAssembleErrors(unittest.TestCase):

    def assertAsmError(self, src, line):
        with self.assertRaises(AsmError) as cm:
            assemble(src)
        self.assertEqual(cm.exception.line, line)
        return cm.exception

    def test_unknown_mnemonic(self):
        e = self.assertAsmError("cls\nbogus v0", 2)
        self.assertIn("Line 2", str(e))

    def test_wrong_operand_form(self):
        self.assertAsmError("ld dt, 5", 1)

    def test_out_of_range(self):
        self.assertAsmError("ld v0, 0x100", 1)
        self.assertAsmError("drw v0, v1, 16", 1)

    def test_undefined_label(self):
        self.assertAsmError("cls\ncls\njp nowhere", 3)

    def test_duplicate_label(self):
        self.assertAsmError("a: cls\na: ret", 2)

    def test_org_backwards(self):
        self.assertAsmError("cls\ncls\n.org 0x200", 3)


class TestListing(unittest.TestCase):

    def test_listing_printed(self):
        out = io.StringIO()
        with contextlib.redirect_stdout(out):
            code = assemble("cls\nloop: jp loop", listing=True)
        self.assertEqual(code, bytearray.fromhex("00E0 1202"))
        lines = out.getvalue().splitlines()
        self.assertEqual(len(lines), 2)
        self.assertTrue(lines[0].startswith("  0200  00 E0"))
        self.assertTrue(lines[1].startswith("  0202  12 02"))

    def test_no_listing_by_default(self):
        out = io.StringIO()
        with contextlib.redirect_stdout(out):
            assemble("cls")
        self.assertEqual(out.getvalue(), "")


class TestDisassemble(unittest.TestCase):

    def test_listing(self):
        lines = disassemble(bytes.fromhex("00E0 612A D015 5121"))
        self.assertEqual(lines, [
            "0200  00E0  CLS",
            "0202  612A  LD V1, 0x2a",
            "0204  D015  DRW V0, V1, 5",
            "0206  5121  .dw 0x5121",
        ])

    def test_word(self):
        self.assertEqual(disassemble_word(0x00E0), "CLS")
        self.assertEqual(disassemble_word(0x0230), "CLS")
        self.assertEqual(disassemble_word(0xF733), "LD B, V7")
        self.assertEqual(disassemble_word(0x5121), ".dw 0x5121")
        self.assertEqual(disassemble_word(0xFFFF), ".dw 0xffff")

    def test_reassembles(self):
        src = "ld v0, 0x2a\nadd v0, v1\nld [I], v3\nhigh\nscd 4\njp 0x204"
        code = assemble(src)
        text = "\n".join(line.split("  ", 2)[2] for line in disassemble(code))
        self.assertEqual(assemble(text), code)


if __name__ == "__main__":
    unittest.main()
