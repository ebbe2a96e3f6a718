#!/usr/bin/env python3

__copyright__ = "Copyright (C) 2022 Gregory Maynard-Hoare"
__license__ = "GNU Affero General Public License v3.0"

import io
import random
import unittest
from cchip.audio.a_null import Audio
from cchip.constants import SYSTEM_FONT
from cchip.cpu import CPU, CPUError
from cchip.debugger import Debugger
from cchip.framebuffer import Framebuffer
from cchip.keypad import Keypad
from cchip.ram import RAM
from cchip.renderers.r_null import Renderer
from cchip.stack import Stack


class FixedRandom:
    # Stands in for random.Random, always producing the same byte
    def __init__(self, value):
        self.value = value
        self.seeds = []

    def seed(self, seed=None):
        self.seeds.append(seed)

    def randint(self, low, high):  # pylint: disable=unused-argument
        return self.value


class TestCPU(unittest.TestCase):
    def setUp(self):
        self.ram = RAM()
        self.ram.resize(0x1000)
        self.stack = Stack(16)
        self.framebuffer = Framebuffer(Renderer())
        self.keypad = Keypad()
        self.audio = Audio()
        self.debug_stream = io.StringIO()
        self.debugger = Debugger(stream=self.debug_stream)
        self.cpu = self._make_cpu()

    def _make_cpu(self, **kwargs):
        return CPU(self.ram, self.stack, self.framebuffer, self.keypad, self.audio, self.debugger, **kwargs)

    def _run_opcode(self, opcode):
        # Place the instruction wherever the program counter is, and run a single cycle
        self.ram.write_block(self.cpu.pc, opcode.to_bytes(2, "big"))
        return self.cpu.step()

    # Reset, loading and fetching

    def test_cpu_initialize(self):
        cpu = self.cpu
        cpu.v[0x3] = 0x12
        cpu.i = 0x345
        cpu.dt = 9
        cpu.ds = 8
        cpu.pc = 0x600
        self.stack.push(0x222)
        self.ram.write(0x400, 0xAA)
        self.framebuffer.xor_pixel(3, 3)
        self.keypad.set_key(0x9, True)
        cpu.initialize()

        self.assertEqual(bytes(16), bytes(cpu.v))
        self.assertEqual((0, 0, 0, 0x200), (cpu.i, cpu.dt, cpu.ds, cpu.pc))
        self.assertEqual(0, self.stack.sp)
        self.assertEqual(0, self.ram.read(0x400))
        self.assertEqual(0, self.framebuffer.get_pixel(3, 3))
        self.assertEqual([False] * 16, self.keypad.get_keys())
        self.assertEqual(SYSTEM_FONT, bytes(self.ram.read_block(0x000, 80)))
        self.assertEqual(0, self.ram.read(0x050))

    def test_cpu_initialize_reseeds(self):
        rng = FixedRandom(0)
        cpu = self._make_cpu(rng=rng, seed=42)
        cpu.initialize()
        self.assertEqual([42, 42], rng.seeds)

    def test_cpu_load_program(self):
        self.cpu.v[0x1] = 0x99
        self.cpu.load_program(b"\x60\x01\x12\x00")
        self.assertEqual(b"\x60\x01\x12\x00", bytes(self.ram.read_block(0x200, 4)))
        self.assertEqual(0x99, self.cpu.v[0x1])
        self.assertEqual(0x200, self.cpu.pc)

    def test_cpu_load_program_too_large(self):
        self.assertRaises(CPUError, self.cpu.load_program, b"\x00" * 3585)
        self.cpu.load_program(b"\xAB" * 3584)
        self.assertEqual(0xAB, self.ram.read(0xFFF))

    def test_cpu_fetch(self):
        self.cpu.ram.write_block(0x200, bytearray(b"\xFF\xFE"))
        self.assertEqual(0xFFFE, self.cpu.fetch())

    def test_cpu_inc_pc(self):
        self.cpu.inc_pc()
        self.assertEqual(0x202, self.cpu.pc)

    def test_cpu_dec_pc(self):
        self.cpu.dec_pc()
        self.assertEqual(0x1FE, self.cpu.pc)

    def test_cpu_decode_fields(self):
        self.cpu.opcode = 0xD7A3
        self.assertEqual(0xD, self.cpu.group)
        self.assertEqual(0x7, self.cpu.vx)
        self.assertEqual(0xA, self.cpu.vy)
        self.assertEqual(0x3, self.cpu.nibble)
        self.assertEqual(0xA3, self.cpu.byte)
        self.assertEqual(0x7A3, self.cpu.addr)

    # Cycle behaviour

    def test_cpu_step_halts_outside_memory(self):
        cpu = self.cpu
        cpu.pc = 0xFFF
        cpu.dt = 5
        cpu.ds = 5
        self.assertEqual((False, False), cpu.step())
        self.assertEqual((0xFFF, 5, 5), (cpu.pc, cpu.dt, cpu.ds))
        cpu.pc = 0x1000
        self.assertEqual((False, False), cpu.step())

    def test_cpu_step_last_instruction_in_memory(self):
        self.cpu.pc = 0xFFE
        self.assertEqual((True, False), self._run_opcode(0x6A01))
        self.assertEqual(0x1000, self.cpu.pc)
        self.assertEqual(0x01, self.cpu.v[0xA])
        self.assertEqual((False, False), self.cpu.step())

    def test_cpu_step_ticks_timers(self):
        cpu = self.cpu
        cpu.dt = 2
        cpu.ds = 0
        self._run_opcode(0x6000)
        self.assertEqual(1, cpu.dt)
        self._run_opcode(0x6000)
        self.assertEqual(0, cpu.dt)
        self._run_opcode(0x6000)
        self.assertEqual(0, cpu.dt)  # Never drops below 0
        self.assertEqual(0, cpu.ds)

    def test_cpu_sound_timer_beeps_once(self):
        cpu = self.cpu
        cpu.ds = 3

        for expected_ds, expected_beeps in (2, 0), (1, 0), (0, 1), (0, 1):
            self._run_opcode(0x6000)
            self.assertEqual(expected_ds, cpu.ds)
            self.assertEqual(expected_beeps, self.audio.beeps)

    def test_cpu_unrecognised_opcodes(self):
        for opcode in 0x0001, 0x0123, 0x5001, 0x8008, 0x800F, 0x9001, 0xE09F, 0xE0A2, 0xF100, 0xFFFF:
            self.cpu.pc = 0x300
            self.assertEqual((True, False), self._run_opcode(opcode))
            self.assertEqual(0x302, self.cpu.pc)

        self.assertEqual(10, self.debugger.warnings)
        self.assertIn("0xffff at address 0x300", self.debug_stream.getvalue())

    def test_cpu_blank_memory_not_reported(self):
        self._run_opcode(0x0000)
        self.assertEqual(0x202, self.cpu.pc)
        self.assertEqual(0, self.debugger.warnings)

    def test_cpu_live_debug(self):
        self.debugger.set_live(True)
        self.cpu = self._make_cpu()
        self._run_opcode(0x7201)
        output = self.debug_stream.getvalue()
        self.assertIn("IN: ADD V2, 0x01", output)
        self.assertIn("PC: 0x200 OP: 0x7201", output)

    # Tests for each instruction

    def test_cpu_00e0(self):  # CLS
        self.framebuffer.xor_pixel(10, 10)
        self.assertEqual((True, True), self._run_opcode(0x00E0))
        self.assertEqual(0, self.framebuffer.get_pixel(10, 10))
        self.assertEqual(0x202, self.cpu.pc)

    def test_cpu_00ee(self):  # RET
        self.stack.push(0x400)
        self._run_opcode(0x00EE)
        self.assertEqual(0x402, self.cpu.pc)
        self.assertEqual(0, self.stack.sp)

    def test_cpu_00ee_underflow(self):  # RET
        self.cpu.dt = 3

        with self.assertRaises(CPUError) as ctx:
            self._run_opcode(0x00EE)

        self.assertIn("Stack underflow", str(ctx.exception))
        self.assertIn("0x00ee at address 0x200", str(ctx.exception))
        # The failed cycle leaves the machine as it was
        self.assertEqual(0x200, self.cpu.pc)
        self.assertEqual(3, self.cpu.dt)

    def test_cpu_fatal_dump(self):
        self.stack.push(0x2AA)
        self.keypad.set_key(0x3, True)
        self.keypad.set_key(0xB, True)
        self.cpu.i = 0xFFF

        with self.assertRaises(CPUError) as ctx:
            self._run_opcode(0xF133)

        self.assertIn("SP: 1\nStack: 0x2aa\nKeys: 3 b", str(ctx.exception))

    def test_cpu_1nnn(self):  # JP addr
        self._run_opcode(0x1765)
        self.assertEqual(0x765, self.cpu.pc)

    def test_cpu_2nnn(self):  # CALL addr
        self._run_opcode(0x2345)
        self.assertEqual(0x345, self.cpu.pc)
        self.assertEqual(1, self.stack.sp)
        self.assertEqual([0x200], self.stack.get_items())

    def test_cpu_2nnn_00ee(self):  # CALL addr, then RET
        self._run_opcode(0x2345)
        self._run_opcode(0x00EE)
        self.assertEqual(0x202, self.cpu.pc)
        self.assertEqual(0, self.stack.sp)

    def test_cpu_2nnn_overflow(self):  # CALL addr
        # Calling itself, 16 calls fit on the stack
        for _ in range(16):
            self._run_opcode(0x2200)

        self.assertEqual(16, self.stack.sp)
        self.assertRaises(CPUError, self._run_opcode, 0x2200)
        self.assertEqual(16, self.stack.sp)
        self.assertEqual(0x200, self.cpu.pc)

    def test_cpu_3xkk(self):  # SE Vx, byte
        self.cpu.v[0x5] = 0xDC
        self._run_opcode(0x35DC)
        self.assertEqual(0x204, self.cpu.pc)
        self._run_opcode(0x3511)
        self.assertEqual(0x206, self.cpu.pc)

    def test_cpu_4xkk(self):  # SNE Vx, byte
        self.cpu.v[0x5] = 0xDC
        self._run_opcode(0x45DC)
        self.assertEqual(0x202, self.cpu.pc)
        self._run_opcode(0x4511)
        self.assertEqual(0x206, self.cpu.pc)

    def test_cpu_5xy0(self):  # SE Vx, Vy
        self.cpu.v[0x8] = 0xCC
        self.cpu.v[0x6] = 0xBB
        self.cpu.v[0x5] = 0xCC
        self._run_opcode(0x5860)
        self.assertEqual(0x202, self.cpu.pc)
        self._run_opcode(0x5580)
        self.assertEqual(0x206, self.cpu.pc)
        self._run_opcode(0x5660)
        self.assertEqual(0x20A, self.cpu.pc)

    def test_cpu_6xkk(self):  # LD Vx, byte
        self._run_opcode(0x63BC)
        self.assertEqual(0xBC, self.cpu.v[0x3])
        self.assertEqual(0x202, self.cpu.pc)

    def test_cpu_7xkk(self):  # ADD Vx, byte
        self.cpu.v[0x5] = 58
        self._run_opcode(0x75AB)
        self.assertEqual(229, self.cpu.v[0x5])

    def test_cpu_7xkk_wrap(self):  # ADD Vx, byte
        self.cpu.v[0x2] = 0xFF
        self.cpu.v[0xF] = 0x7
        self._run_opcode(0x72FF)
        self.assertEqual(0xFE, self.cpu.v[0x2])
        self.assertEqual(0x7, self.cpu.v[0xF])  # No carry flag

    def test_cpu_8xy0(self):  # LD Vx, Vy
        self.cpu.v[0x2] = 0xAF
        self._run_opcode(0x8920)
        self.assertEqual(0xAF, self.cpu.v[0x9])
        self.assertEqual(0x202, self.cpu.pc)

    def _prepare_alu(self):
        self.cpu.v[0x7] = 0xDE
        self.cpu.v[0x4] = 0x47

    def test_cpu_8xy1(self):  # OR Vx, Vy
        self._prepare_alu()
        self._run_opcode(0x8741)
        self.assertEqual(0xDE | 0x47, self.cpu.v[0x7])

    def test_cpu_8xy2(self):  # AND Vx, Vy
        self._prepare_alu()
        self._run_opcode(0x8742)
        self.assertEqual(0xDE & 0x47, self.cpu.v[0x7])

    def test_cpu_8xy3(self):  # XOR Vx, Vy
        self._prepare_alu()
        self._run_opcode(0x8743)
        self.assertEqual(0xDE ^ 0x47, self.cpu.v[0x7])

    def test_cpu_8xy4(self):  # ADD Vx, Vy
        self.cpu.v[0x7] = 128
        self.cpu.v[0x8] = 128
        self._run_opcode(0x8874)
        self.assertEqual(1, self.cpu.v[0xF])
        self.assertEqual(0, self.cpu.v[0x8])
        self.cpu.v[0x7] = 79
        self.cpu.v[0x8] = 115
        self._run_opcode(0x8874)
        self.assertEqual(0, self.cpu.v[0xF])
        self.assertEqual(79 + 115, self.cpu.v[0x8])
        self.assertEqual(0x204, self.cpu.pc)

    def test_cpu_8xy4_flag_destination(self):  # ADD Vf, Vy
        self.cpu.v[0xF] = 0xFF
        self.cpu.v[0x1] = 0x1
        self._run_opcode(0x8F14)
        self.assertEqual(2, self.cpu.v[0xF])  # The sum overwrites the carry flag

    def test_cpu_8xy4_flag_source(self):  # ADD Vx, Vf
        self.cpu.v[0xF] = 0x5
        self.cpu.v[0x1] = 0x10
        self._run_opcode(0x81F4)
        self.assertEqual(0x10, self.cpu.v[0x1])  # The new flag (no carry) is added, not the old Vf
        self.assertEqual(0, self.cpu.v[0xF])

    def test_cpu_8xy5_flag_destination(self):  # SUB Vf, Vy
        self.cpu.v[0xF] = 0x30
        self.cpu.v[0x1] = 0x10
        self._run_opcode(0x8F15)
        self.assertEqual(0xF1, self.cpu.v[0xF])  # 1 - 0x10, wrapped

    def test_cpu_8xy6_flag_destination(self):  # SHR Vf
        self.cpu.v[0xF] = 0x3
        self._run_opcode(0x8F06)
        self.assertEqual(0, self.cpu.v[0xF])  # The flag (1) is what gets shifted

    def test_cpu_8xye_flag_destination(self):  # SHL Vf
        self.cpu.v[0xF] = 0x81
        self._run_opcode(0x8F0E)
        self.assertEqual(2, self.cpu.v[0xF])

    def test_cpu_8xy5(self):  # SUB Vx, Vy
        self.cpu.v[0x7] = 128
        self.cpu.v[0x8] = 128
        self._run_opcode(0x8875)
        self.assertEqual(1, self.cpu.v[0xF])
        self.assertEqual(0, self.cpu.v[0x8])
        self.cpu.v[0x7] = 200
        self.cpu.v[0x8] = 100
        self._run_opcode(0x8875)
        self.assertEqual(0, self.cpu.v[0xF])
        self.assertEqual(156, self.cpu.v[0x8])

    def test_cpu_8xy6(self):  # SHR Vx
        self.cpu.v[0x2] = 0b01010101
        self.cpu.v[0xF] = 0b11110000  # Vy is ignored
        self._run_opcode(0x82F6)
        self.assertEqual(0b00101010, self.cpu.v[0x2])
        self.assertEqual(1, self.cpu.v[0xF])
        self._run_opcode(0x82F6)
        self.assertEqual(0b00010101, self.cpu.v[0x2])
        self.assertEqual(0, self.cpu.v[0xF])

    def test_cpu_8xy7(self):  # SUBN Vx, Vy
        self.cpu.v[0x7] = 128
        self.cpu.v[0x8] = 128
        self._run_opcode(0x8877)
        self.assertEqual(1, self.cpu.v[0xF])
        self.assertEqual(0, self.cpu.v[0x8])
        self.cpu.v[0x7] = 100
        self.cpu.v[0x8] = 200
        self._run_opcode(0x8877)
        self.assertEqual(0, self.cpu.v[0xF])
        self.assertEqual(156, self.cpu.v[0x8])

    def test_cpu_8xye(self):  # SHL Vx
        self.cpu.v[0x2] = 0b10101010
        self._run_opcode(0x82FE)
        self.assertEqual(0b01010100, self.cpu.v[0x2])
        self.assertEqual(1, self.cpu.v[0xF])
        self._run_opcode(0x82FE)
        self.assertEqual(0b10101000, self.cpu.v[0x2])
        self.assertEqual(0, self.cpu.v[0xF])

    def test_cpu_9xy0(self):  # SNE Vx, Vy
        self.cpu.v[0x4] = 34
        self.cpu.v[0x1] = 54
        self._run_opcode(0x9410)
        self.assertEqual(0x204, self.cpu.pc)
        self.cpu.v[0x1] = 34
        self._run_opcode(0x9410)
        self.assertEqual(0x206, self.cpu.pc)

    def test_cpu_annn(self):  # LD I, addr
        self._run_opcode(0xAABC)
        self.assertEqual(0xABC, self.cpu.i)
        self.assertEqual(0x202, self.cpu.pc)

    def test_cpu_bnnn(self):  # JP V0, addr
        self.cpu.v[0x0] = 0x43
        self._run_opcode(0xB2BB)
        self.assertEqual(0x43 + 0x2BB, self.cpu.pc)

    def test_cpu_bnnn_past_memory(self):  # JP V0, addr
        self.cpu.v[0x0] = 0xFF
        self._run_opcode(0xBFFF)
        self.assertEqual(0x10FE, self.cpu.pc)
        self.assertEqual((False, False), self.cpu.step())

    def test_cpu_cxkk(self):  # RND Vx, byte
        self._run_opcode(0xC300 | 0b10101010)
        self.assertEqual(0, self.cpu.v[0x3] & 0b01010101)

    def test_cpu_cxkk_injected_random(self):  # RND Vx, byte
        self.cpu = self._make_cpu(rng=FixedRandom(0xF3))
        self._run_opcode(0xC33C)
        self.assertEqual(0x30, self.cpu.v[0x3])

    def test_cpu_cxkk_seeded(self):  # RND Vx, byte
        results = []

        for _ in range(2):
            self.cpu = self._make_cpu(seed=1234)

            for reg_num in range(4):
                self._run_opcode(0xC0FF | (reg_num << 8))

            results.append(bytes(self.cpu.v[:4]))

        self.assertEqual(results[0], results[1])

    def test_cpu_dxyn(self):  # DRW Vx, Vy, nibble
        # Draw the '0' glyph from the font at (0, 0)
        self.cpu.v[0xF] = 1
        self.assertEqual((True, True), self._run_opcode(0xD015))
        self.assertEqual(0, self.cpu.v[0xF])
        self.assertEqual([1, 1, 1, 1, 0], [self.framebuffer.get_pixel(x, 0) for x in range(5)])
        self.assertEqual([1, 0, 0, 1, 0], [self.framebuffer.get_pixel(x, 1) for x in range(5)])
        self.assertEqual(0x202, self.cpu.pc)

        # Drawing it again erases it, and reports a collision
        self._run_opcode(0xD015)
        self.assertEqual(1, self.cpu.v[0xF])
        self.assertEqual(bytes(2048), bytes(self.framebuffer.vram.mem))

    def test_cpu_dxyn_partial_collision(self):  # DRW Vx, Vy, nibble
        self.framebuffer.xor_pixel(2, 0)
        self.framebuffer.xor_pixel(40, 20)
        self._run_opcode(0xD011)
        self.assertEqual(1, self.cpu.v[0xF])
        self.assertEqual([1, 1, 0, 1], [self.framebuffer.get_pixel(x, 0) for x in range(4)])
        self.assertEqual(1, self.framebuffer.get_pixel(40, 20))

    def test_cpu_dxyn_wrap(self):  # DRW Vx, Vy, nibble
        self.cpu.v[0x1] = 62
        self.cpu.v[0x2] = 31
        self._run_opcode(0xD122)
        # Row 0 of the '0' glyph (0xF0) lands on the bottom line, row 1 (0x90) wraps to the top
        self.assertEqual([1, 1], [self.framebuffer.get_pixel(x, 31) for x in (62, 63)])
        self.assertEqual([1, 1], [self.framebuffer.get_pixel(x, 31) for x in (0, 1)])
        self.assertEqual([1, 0, 0, 1], [self.framebuffer.get_pixel(x, 0) for x in (62, 63, 0, 1)])

    def test_cpu_dxyn_zero_rows(self):  # DRW Vx, Vy, nibble
        self.cpu.v[0xF] = 1
        self.assertEqual((True, True), self._run_opcode(0xD010))
        self.assertEqual(0, self.cpu.v[0xF])
        self.assertEqual(bytes(2048), bytes(self.framebuffer.vram.mem))

    def test_cpu_dxyn_past_memory(self):  # DRW Vx, Vy, nibble
        self.cpu.i = 0xFFE
        self.assertRaises(CPUError, self._run_opcode, 0xD015)
        self.assertEqual(bytes(2048), bytes(self.framebuffer.vram.mem))
        self.assertEqual(0x200, self.cpu.pc)

    def test_cpu_ex9e(self):  # SKP Vx
        self.cpu.v[0x4] = 0xE
        self.keypad.set_key(0xE, True)
        self._run_opcode(0xE49E)
        self.assertEqual(0x204, self.cpu.pc)
        self.keypad.set_key(0xE, False)
        self._run_opcode(0xE49E)
        self.assertEqual(0x206, self.cpu.pc)

    def test_cpu_exa1(self):  # SKNP Vx
        self.cpu.v[0x4] = 0xE
        self.keypad.set_key(0xE, True)
        self._run_opcode(0xE4A1)
        self.assertEqual(0x202, self.cpu.pc)
        self.keypad.set_key(0xE, False)
        self._run_opcode(0xE4A1)
        self.assertEqual(0x206, self.cpu.pc)

    def test_cpu_ex9e_high_nibble_ignored(self):  # SKP Vx
        self.cpu.v[0x4] = 0x1E
        self.keypad.set_key(0xE, True)
        self._run_opcode(0xE49E)
        self.assertEqual(0x204, self.cpu.pc)
        self._run_opcode(0xE4A1)
        self.assertEqual(0x206, self.cpu.pc)

    def test_cpu_fx07(self):  # LD Vx, DT
        self.cpu.dt = 120
        self._run_opcode(0xF207)
        self.assertEqual(120, self.cpu.v[0x2])
        self.assertEqual(119, self.cpu.dt)

    def test_cpu_fx0a(self):  # LD Vx, K
        self.cpu.dt = 5
        self._run_opcode(0xF60A)
        self.assertEqual(0x200, self.cpu.pc)
        self.assertEqual(0, self.cpu.v[0x6])
        self.assertTrue(self.cpu.awaiting_keypress)
        self.assertEqual(4, self.cpu.dt)  # Timers keep running while waiting

        self.cpu.step()
        self.assertEqual(0x200, self.cpu.pc)
        self.assertEqual(3, self.cpu.dt)

        self.keypad.set_key(0xC, True)
        self.cpu.step()
        self.assertEqual(0x202, self.cpu.pc)
        self.assertEqual(0xC, self.cpu.v[0x6])
        self.assertFalse(self.cpu.awaiting_keypress)

    def test_cpu_fx15(self):  # LD DT, Vx
        self.cpu.v[0x8] = 123
        self._run_opcode(0xF815)
        # The raw value is stored, then ticked once at the end of the same cycle
        self.assertEqual(122, self.cpu.dt)
        self.assertEqual(0x202, self.cpu.pc)

    def test_cpu_fx18(self):  # LD ST, Vx
        self.cpu.v[0x8] = 123
        self._run_opcode(0xF818)
        self.assertEqual(122, self.cpu.ds)
        self.assertEqual(0, self.audio.beeps)

    def test_cpu_fx18_one(self):  # LD ST, Vx
        self.cpu.v[0x8] = 1
        self._run_opcode(0xF818)
        self.assertEqual(0, self.cpu.ds)
        self.assertEqual(1, self.audio.beeps)

    def test_cpu_fx1e(self):  # ADD I, Vx
        self.cpu.i = 23
        self.cpu.v[0x5] = 149
        self._run_opcode(0xF51E)
        self.assertEqual(23 + 149, self.cpu.i)
        self.assertEqual(0, self.cpu.v[0xF])

    def test_cpu_fx1e_overflow(self):  # ADD I, Vx
        self.cpu.i = 0xFFFF
        self.cpu.v[0x5] = 2
        self._run_opcode(0xF51E)
        self.assertEqual(0x1, self.cpu.i)

    def test_cpu_fx29(self):  # LD F, Vx
        self.cpu.v[0x8] = 8
        self._run_opcode(0xF829)
        self.assertEqual(40, self.cpu.i)
        self.assertEqual(SYSTEM_FONT[40:45], bytes(self.ram.read_block(self.cpu.i, 5)))

    def test_cpu_fx33(self):  # LD B, Vx
        self.cpu.i = 0x300
        self.cpu.v[0x1] = 0xFE
        self._run_opcode(0xF133)
        # Ensure 254 (base 10 of 0xFE) is calculated
        self.assertEqual(b"\x02\x05\x04", bytes(self.ram.read_block(0x300, 3)))

    def test_cpu_fx33_small(self):  # LD B, Vx
        self.cpu.i = 0x300
        self.cpu.v[0x1] = 7
        self._run_opcode(0xF133)
        self.assertEqual(b"\x00\x00\x07", bytes(self.ram.read_block(0x300, 3)))

    def test_cpu_fx33_past_memory(self):  # LD B, Vx
        self.cpu.i = 0xFFE
        self.cpu.v[0x1] = 0xFE
        self.assertRaises(CPUError, self._run_opcode, 0xF133)
        self.assertEqual(b"\x00\x00", bytes(self.ram.read_block(0xFFE, 2)))

    def test_cpu_fx55(self):  # LD [I], Vx
        self.cpu.i = 0x300
        self.cpu.v[0x0] = 0xAB
        self.cpu.v[0x4] = 0xCB
        self.cpu.v[0x5] = 0xDB  # Shouldn't be written into RAM
        self._run_opcode(0xF455)
        self.assertEqual(0xAB, self.ram.read(0x300))
        self.assertEqual(0xCB, self.ram.read(0x304))
        self.assertEqual(0x0, self.ram.read(0x305))
        self.assertEqual(0x300, self.cpu.i)

    def test_cpu_fx65(self):  # LD Vx, [I]
        self.cpu.i = 0x300
        self.ram.write(0x300, 0xAB)
        self.ram.write(0x304, 0xCB)
        self.ram.write(0x305, 0xDB)  # Shouldn't be copied to register V5
        self._run_opcode(0xF465)
        self.assertEqual(0xAB, self.cpu.v[0x0])
        self.assertEqual(0xCB, self.cpu.v[0x4])
        self.assertEqual(0x0, self.cpu.v[0x5])
        self.assertEqual(0x300, self.cpu.i)

    def test_cpu_fx55_fx65_restore(self):  # LD [I], Vx / LD Vx, [I]
        source = random.Random(8)

        for vx in range(16):
            self.cpu.pc = 0x200
            self.cpu.i = 0x400
            saved = bytes(source.randint(0, 0xFF) for _ in range(16))
            self.cpu.v[:] = saved
            self._run_opcode(0xF055 | (vx << 8))
            self.cpu.v[:] = bytes(16)
            self._run_opcode(0xF065 | (vx << 8))
            self.assertEqual(saved[:vx + 1], bytes(self.cpu.v[:vx + 1]))
            self.assertEqual(bytes(15 - vx), bytes(self.cpu.v[vx + 1:]))

    def test_cpu_fx55_past_memory(self):  # LD [I], Vx
        self.cpu.i = 0xFFF
        self.assertRaises(CPUError, self._run_opcode, 0xF155)
        self.assertEqual(0x200, self.cpu.pc)
