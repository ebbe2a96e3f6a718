#!/usr/bin/env python3

"""
CPU Emulator (CHIP-8)

Like a real computer, this is where most of the processing happens.  Each call
to 'step' runs exactly one cycle: fetch the two-byte instruction at the program
counter, decode and execute it, then tick the delay and sound timers.  The CPU
never paces itself or talks to the host directly.  The driver calls 'step' as
often as it likes, and the renderer, input and audio plugins sit behind the
framebuffer, keypad and audio objects handed in at construction time.

Instructions are dispatched through a flat dictionary keyed on the opcode
masked down to its distinguishing bits, so an unknown opcode always ends up in
the same place: it is reported, skipped, and execution carries on.
"""

__copyright__ = "Copyright (C) 2022 Gregory Maynard-Hoare"
__license__ = "GNU Affero General Public License v3.0"

from random import Random
from .constants import APP_INTRO, FONT_GLYPH_SIZE, FONT_LOCATION, MEM_SIZE, NUM_REGISTERS, PROGRAM_LOCATION, SYSTEM_FONT
from .ram import RAMError
from .stack import StackError

CPU_ENDIAN = "big"  # CHIP-8 is big-endian
PC_MASK = 0xFFFF    # The program counter and index register are stored as 16 bits, but only 12 are addressable
I_MASK = 0xFFFF


class CPUError(Exception):
    pass


class CPU:
    def __init__(self, ram, stack, framebuffer, keypad, audio, debugger, rng=None, seed=None):
        self.ram = ram
        self.stack = stack
        self.framebuffer = framebuffer
        self.keypad = keypad
        self.audio = audio
        self.debugger = debugger
        self.live_debug = self.debugger.is_live()
        # A seed of None reseeds from the OS on every reset.  Tests pass a fixed seed or their own generator.
        self.rng = Random() if rng is None else rng
        self.seed = seed

        # Define instruction pointers.
        # n = Nibble
        # kk = Byte
        # nnn = address
        # x/y = register (0-15)
        self.instructions = {
            # Initial lookup for instructions' first nibble
            0x0: self._0nnn,  # Alias for bitmask 0xFFFF
            0x1: self._1nnn,
            0x2: self._2nnn,
            0x3: self._3xkk,
            0x4: self._4xkk,
            0x5: self._5nnn_8nnn_9nnn,  # Alias for bitmask 0xF00F
            0x6: self._6xkk,
            0x7: self._7xkk,
            0x8: self._5nnn_8nnn_9nnn,  # Alias for bitmask 0xF00F
            0x9: self._5nnn_8nnn_9nnn,  # Alias for bitmask 0xF00F
            0xA: self._Annn,
            0xB: self._Bnnn,
            0xC: self._Cxkk,
            0xD: self._Dxyn,
            0xE: self._Ennn_Fnnn,  # Alias for bitmask 0xF0FF
            0xF: self._Ennn_Fnnn,  # Alias for bitmask 0xF0FF
            # Instructions beginning with nibble 0x0, bitmask 0xFFFF (i.e., exact match)
            0x00E0: self._00E0,
            0x00EE: self._00EE,
            # Instructions beginning with nibble 0x5/0x8/0x9, bitmask 0xF00F
            0x5000: self._5xy0,
            0x8000: self._8xy0,
            0x8001: self._8xy1,
            0x8002: self._8xy2,
            0x8003: self._8xy3,
            0x8004: self._8xy4,
            0x8005: self._8xy5,
            0x8006: self._8xy6,
            0x8007: self._8xy7,
            0x800E: self._8xyE,
            0x9000: self._9xy0,
            # Instructions beginning with nibble 0xE/0xF, bitmask 0xF0FF
            0xE09E: self._Ex9E,
            0xE0A1: self._ExA1,
            0xF007: self._Fx07,
            0xF00A: self._Fx0A,
            0xF015: self._Fx15,
            0xF018: self._Fx18,
            0xF01E: self._Fx1E,
            0xF029: self._Fx29,
            0xF033: self._Fx33,
            0xF055: self._Fx55,
            0xF065: self._Fx65
        }

        # Initialise registers
        self.v = memoryview(bytearray(NUM_REGISTERS))  # Bytearrays are mutable, and hold every value modulo 256
        self.i = 0  # Index register

        # Initialise timers
        self.dt = 0  # Delay timer integer (byte)
        self.ds = 0  # Sound timer integer (byte)

        # Initialise program counter and current opcode
        self.pc = 0
        self.op_pc = 0
        self.opcode = 0

        # Set whenever the current cycle cleared or drew on the framebuffer
        self.draw_flag = False

        # Input-related vars
        self.awaiting_keypress = False

        self.initialize()

    def initialize(self):
        # Full reset: memory, registers, stack, screen and timers
        self.ram.clear()
        self.ram.write_block(FONT_LOCATION, SYSTEM_FONT)
        self.v[:] = bytes(NUM_REGISTERS)
        self.i = 0
        self.dt = 0
        self.ds = 0
        self.pc = PROGRAM_LOCATION
        self.op_pc = PROGRAM_LOCATION
        self.opcode = 0
        self.draw_flag = False
        self.awaiting_keypress = False
        self.stack.clear()
        self.keypad.release_all()
        self.framebuffer.clear()
        self.rng.seed(self.seed)

    def load_program(self, data):
        # Writes the program verbatim at the start address.  Nothing else is touched.
        try:
            self.ram.write_block(PROGRAM_LOCATION, data)
        except RAMError:
            raise CPUError(
                "Program is {} bytes, but only {} bytes are available from address 0x{:03x}".format(
                    len(data), MEM_SIZE - PROGRAM_LOCATION, PROGRAM_LOCATION
                )
            ) from None

    def step(self):
        """
        Run one fetch-decode-execute cycle, then tick the timers.

        Returns a tuple of (running, framebuffer_changed).  If the program
        counter has run off the end of memory, nothing is changed and running
        is False, so the driver can stop.

        A CPUError is raised for fatal program errors (stack overflow or
        underflow, and memory accesses beyond the end of RAM).  When that
        happens, the program counter is left pointing at the faulting
        instruction and the timers are not ticked.
        """
        pc = self.pc

        if pc + 1 >= MEM_SIZE:
            return False, False

        # Keep track of the program counter before altering it, both for debugging and for instructions that need it
        self.op_pc = pc
        self.opcode = self.fetch()
        self.draw_flag = False
        self.inc_pc()  # Program counter updates after fetch (and technically before decode), but before execute

        try:
            self.decode_exec()
        except (RAMError, StackError) as err:
            self.pc = pc
            self._fatal(str(err))

        self.tick_timers()
        return True, self.draw_flag

    def fetch(self):
        return int.from_bytes(self.ram.read_block(self.pc, 2), CPU_ENDIAN, signed=False)

    def tick_timers(self):
        if self.dt > 0:
            self.dt -= 1

        if self.ds > 0:
            if self.ds == 1:
                # Sound timer is about to reach zero.  One beep per expiry.
                self.audio.beep()

            self.ds -= 1

    def _call_masked_instruction(self, masked_opcode):
        instruction = self.instructions.get(masked_opcode)

        if instruction is None:
            self._opcode_unsupported()
        else:
            instruction()

    def decode_exec(self):
        self._call_masked_instruction(self.group)

    def inc_pc(self):
        self.pc = (self.pc + 2) & PC_MASK

    def dec_pc(self):
        # Only used to re-run instructions (i.e. keypress wait).
        self.pc = (self.pc - 2) & PC_MASK

    # References to Vx, Vy, byte and addr are always in the same opcode position throughout all instructions, so avoid
    # excessive code duplication (ever so slight slowdown).  Don't reference these more than necessary as they are
    # recalculated each time.
    @property
    def group(self):
        return (self.opcode & 0xF000) >> 12

    @property
    def vx(self):
        return (self.opcode & 0xF00) >> 8

    @property
    def vy(self):
        return (self.opcode & 0xF0) >> 4

    @property
    def addr(self):
        return self.opcode & 0xFFF

    @property
    def byte(self):
        return self.opcode & 0xFF

    @property
    def nibble(self):
        return self.opcode & 0xF

    def _opcode_unsupported(self):
        # Not fatal.  The program counter has already moved on, so the instruction is simply skipped.  Runs of 0x0000
        # are just blank memory after a program, so they aren't worth reporting.
        if self.opcode != 0x0000:
            self.debugger.warn(
                "Opcode 0x{:04x} at address 0x{:03x} is not recognised, skipping".format(self.opcode, self.op_pc)
            )

    def _fatal(self, reason):
        raise CPUError(
            (
                "Emulation halted.\n\n" +
                "{}Debug info:\n" +
                "{}\n\n{} executing opcode 0x{:04x} at address 0x{:03x}."
            ).format(
                APP_INTRO, self.debugger.debug(self, "???", verbose=True), reason, self.opcode, self.op_pc
            )
        ) from None

    def debug(self, instruction):
        self.debugger.output(self, instruction)

    def _0nnn(self):
        opcode = self.opcode

        if opcode < 0x10:
            # Opcodes 0x0 - 0xF are used internally for indexing the first nibble, so can't be looked up here
            self._opcode_unsupported()
        else:
            self._call_masked_instruction(opcode)

    def _5nnn_8nnn_9nnn(self):
        self._call_masked_instruction(self.opcode & 0xF00F)

    def _Ennn_Fnnn(self):
        self._call_masked_instruction(self.opcode & 0xF0FF)

    def _00E0(self):  # CLS
        if self.live_debug:
            self.debug("CLS")

        self.framebuffer.clear()
        self.draw_flag = True

    def _00EE(self):  # RET
        if self.live_debug:
            self.debug("RET")

        # The stack holds the address of the CALL itself, so step over it
        self.pc = (self.stack.pop() + 2) & PC_MASK

    def _1nnn(self):  # JP addr
        if self.live_debug:
            self.debug("JP 0x{:03x}".format(self.addr))

        self.pc = self.addr

    def _2nnn(self):  # CALL addr
        if self.live_debug:
            self.debug("CALL 0x{:03x}".format(self.addr))

        self.stack.push(self.op_pc)
        self.pc = self.addr

    def _3xkk(self):  # SE Vx, byte
        if self.live_debug:
            self.debug("SE V{:01x}, 0x{:02x}".format(self.vx, self.byte))

        if self.v[self.vx] == self.byte:
            self.inc_pc()

    def _4xkk(self):  # SNE Vx, byte
        if self.live_debug:
            self.debug("SNE V{:01x}, 0x{:02x}".format(self.vx, self.byte))

        if self.v[self.vx] != self.byte:
            self.inc_pc()

    def _5xy0(self):  # SE Vx, Vy
        if self.live_debug:
            self.debug("SE V{:01x}, V{:01x}".format(self.vx, self.vy))

        if self.v[self.vx] == self.v[self.vy]:
            self.inc_pc()

    def _6xkk(self):  # LD Vx, byte
        if self.live_debug:
            self.debug("LD V{:01x}, 0x{:02x}".format(self.vx, self.byte))

        self.v[self.vx] = self.byte

    def _7xkk(self):  # ADD Vx, byte
        vx = self.vx
        byte = self.byte

        if self.live_debug:
            self.debug("ADD V{:01x}, 0x{:02x}".format(vx, byte))

        # No carry flag for this one
        byte += self.v[vx]
        self.v[vx] = byte & 0xFF

    def _8xy0(self):  # LD Vx, Vy
        if self.live_debug:
            self.debug("LD V{:01x}, V{:01x}".format(self.vx, self.vy))

        self.v[self.vx] = self.v[self.vy]

    def _8xy1(self):  # OR Vx, Vy
        if self.live_debug:
            self.debug("OR V{:01x}, V{:01x}".format(self.vx, self.vy))

        self.v[self.vx] |= self.v[self.vy]

    def _8xy2(self):  # AND Vx, Vy
        if self.live_debug:
            self.debug("AND V{:01x}, V{:01x}".format(self.vx, self.vy))

        self.v[self.vx] &= self.v[self.vy]

    def _8xy3(self):  # XOR Vx, Vy
        if self.live_debug:
            self.debug("XOR V{:01x}, V{:01x}".format(self.vx, self.vy))

        self.v[self.vx] ^= self.v[self.vy]

    # For the flag-setting 8 instructions, Vf is written first from the operands, and the result is then worked out
    # from whatever the registers hold afterwards.  So if Vf is the destination, the result overwrites the flag, and
    # if Vf is a source, the new flag is what gets used.

    def _8xy4(self):  # ADD Vx, Vy
        vx = self.vx
        vy = self.vy

        if self.live_debug:
            self.debug("ADD V{:01x}, V{:01x}".format(vx, vy))

        v = self.v
        v[0xF] = int(v[vx] + v[vy] > 0xFF)  # Vf is set when carrying
        v[vx] = (v[vx] + v[vy]) & 0xFF

    def _8xy5(self):  # SUB Vx, Vy
        vx = self.vx
        vy = self.vy

        if self.live_debug:
            self.debug("SUB V{:01x}, V{:01x}".format(vx, vy))

        v = self.v
        v[0xF] = int(v[vx] >= v[vy])  # Vf is set when NOT borrowing
        v[vx] = (v[vx] - v[vy]) & 0xFF

    def _8xy6(self):  # SHR Vx
        # Vy is ignored.  The shift always happens on Vx in place.
        vx = self.vx

        if self.live_debug:
            self.debug("SHR V{:01x}".format(vx))

        v = self.v
        v[0xF] = v[vx] & 1  # The whole byte gets set just for the flag
        v[vx] >>= 1

    def _8xy7(self):  # SUBN Vx, Vy
        vx = self.vx
        vy = self.vy

        if self.live_debug:
            self.debug("SUBN V{:01x}, V{:01x}".format(vx, vy))

        v = self.v
        v[0xF] = int(v[vy] >= v[vx])
        v[vx] = (v[vy] - v[vx]) & 0xFF

    def _8xyE(self):  # SHL Vx
        vx = self.vx

        if self.live_debug:
            self.debug("SHL V{:01x}".format(vx))

        v = self.v
        v[0xF] = v[vx] >> 7
        v[vx] = (v[vx] << 1) & 0xFF

    def _9xy0(self):  # SNE Vx, Vy
        if self.live_debug:
            self.debug("SNE V{:01x}, V{:01x}".format(self.vx, self.vy))

        if self.v[self.vx] != self.v[self.vy]:
            self.inc_pc()

    def _Annn(self):  # LD I, addr
        if self.live_debug:
            self.debug("LD I, 0x{:03x}".format(self.addr))

        self.i = self.addr

    def _Bnnn(self):  # JP V0, addr
        if self.live_debug:
            self.debug("JP V0, 0x{:03x}".format(self.addr))

        # Not wrapped to 12 bits.  Jumping past the end of memory halts on the next fetch.
        self.pc = self.v[0] + self.addr

    def _Cxkk(self):  # RND Vx, byte
        if self.live_debug:
            self.debug("RND V{:01x}, 0x{:02x}".format(self.vx, self.byte))

        # The ANDing here is intentional.  This is not a random number between 0 and 'byte' inclusive.
        self.v[self.vx] = self.rng.randint(0, 0xFF) & self.byte

    def _Dxyn(self):  # DRW Vx, Vy, nibble
        # Main sprite drawing routine.  Sprites are always 8 pixels wide, and 'nibble' rows high.
        height = self.nibble

        if self.live_debug:
            self.debug("DRW V{:01x}, V{:01x}, 0x{:01x}".format(self.vx, self.vy, height))

        # Read the whole sprite first, so a sprite hanging off the end of RAM fails before anything is drawn
        spr_rows = self.ram.read_block(self.i, height) if height else b""
        vx_pos = self.v[self.vx]
        vy_pos = self.v[self.vy]
        framebuffer = self.framebuffer
        collided = False

        for y, spr_data in enumerate(spr_rows):
            for x in range(8):
                if spr_data & (0x80 >> x):
                    # Don't stop drawing on a collision.  Set the flag, and never unset it for this sprite.
                    if framebuffer.xor_pixel(vx_pos + x, vy_pos + y):
                        collided = True

        self.v[0xF] = int(collided)
        framebuffer.mark_changed()
        self.draw_flag = True

    def _Ex9E(self):  # SKP Vx
        if self.live_debug:
            self.debug("SKP V{:01x}".format(self.vx))

        if self.keypad.is_key_down(self.v[self.vx] & 0xF):
            self.inc_pc()

    def _ExA1(self):  # SKNP Vx
        if self.live_debug:
            self.debug("SKNP V{:01x}".format(self.vx))

        if not self.keypad.is_key_down(self.v[self.vx] & 0xF):
            self.inc_pc()

    def _Fx07(self):  # LD Vx, DT
        if self.live_debug:
            self.debug("LD V{:01x}, DT".format(self.vx))

        self.v[self.vx] = self.dt

    def _Fx0A(self):  # LD Vx, K
        if self.live_debug:
            self.debug("LD V{:01x}, K".format(self.vx))

        # This opcode waits for a keypress, but since the sound and delay timers still need to expire correctly, and
        # the driver still needs to refresh the screen and inputs, we'll return control and simply decrement the
        # incremented program counter.  The same instruction then runs again on the next cycle.
        key = self.keypad.get_keypress()

        if key is None:
            self.awaiting_keypress = True
            self.dec_pc()
        else:
            self.v[self.vx] = key
            self.awaiting_keypress = False

    def _Fx15(self):  # LD DT, Vx
        if self.live_debug:
            self.debug("LD DT, V{:01x}".format(self.vx))

        self.dt = self.v[self.vx]

    def _Fx18(self):  # LD ST, Vx
        if self.live_debug:
            self.debug("LD ST, V{:01x}".format(self.vx))

        self.ds = self.v[self.vx]

    def _Fx1E(self):  # ADD I, Vx
        if self.live_debug:
            self.debug("ADD I, V{:01x}".format(self.vx))

        # Vf is not affected
        self.i = (self.i + self.v[self.vx]) & I_MASK

    def _Fx29(self):  # LD F, Vx
        if self.live_debug:
            self.debug("LD F, V{:01x}".format(self.vx))

        self.i = FONT_LOCATION + FONT_GLYPH_SIZE * self.v[self.vx]

    def _Fx33(self):  # LD B, Vx
        if self.live_debug:
            self.debug("LD B, V{:01x}".format(self.vx))

        val = self.v[self.vx]
        self.ram.write_block(self.i, bytes((
            val // 100,        # Most-significant digit
            (val // 10) % 10,  # Middle digit
            val % 10           # Least-significant digit
        )))

    def _Fx55(self):  # LD [I], Vx
        if self.live_debug:
            self.debug("LD [I], V{:01x}".format(self.vx))

        # Ensure with +1s that the final register is copied.  I is left unchanged.
        vx = self.vx
        self.ram.write_block(self.i, self.v[:vx + 1])

    def _Fx65(self):  # LD Vx, [I]
        if self.live_debug:
            self.debug("LD V{:01x}, [I]".format(self.vx))

        vx = self.vx
        self.v[:vx + 1] = self.ram.read_block(self.i, vx + 1)
