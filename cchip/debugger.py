#!/usr/bin/env python3

"""
CPU Debugger

If enabled, this will output information before each instruction executed:
    * All 16 of the [V] registers, starting with most significant (Vf) and
      reducing to least significant (V0)
    * I  - Index register
    * DT - Delay timer
    * ST - Sound timer
    * PC - Program counter
    * OP - OpCode number
    * IN - Decoded instruction

If a crash occurs, all of the above will be outputted, with the addition of:
    * SP    - Stack pointer
    * Stack - Stack contents
    * Keys  - Keys held down at the time

Warnings (such as an unknown opcode being skipped) are always printed, whether
or not live output is enabled.
"""

__copyright__ = "Copyright (C) 2022 Gregory Maynard-Hoare"
__license__ = "GNU Affero General Public License v3.0"

import sys


class Debugger:
    def __init__(self, stream=None):
        self.live = False
        self.stream = stream
        self.warnings = 0

    def debug(self, cpu, instruction, verbose=False):
        debug_str = (
            "V: 0x" + ("{:02x}" * 16) + " I: 0x{:04x} DT: 0x{:02x} ST: 0x{:02x} PC: 0x{:03x} OP: 0x{:04x} IN: {}"
        ).format(
            *[cpu.v[reg_num] for reg_num in range(15, -1, -1)] +
            [cpu.i, cpu.dt, cpu.ds, cpu.op_pc, cpu.opcode, instruction]
        )

        if verbose:
            stack_items = cpu.stack.get_items()
            stack_str = (" 0x{:03x}" * len(stack_items)).format(*stack_items)
            held_keys = [key_num for key_num, down in enumerate(cpu.keypad.get_keys()) if down]
            keys_str = (" {:01x}" * len(held_keys)).format(*held_keys)
            debug_str += ("\nSP: {}\nStack:{}\nKeys:{}").format(
                cpu.stack.sp, stack_str or " (Empty)", keys_str or " (None)"
            )

        return debug_str

    def set_live(self, enabled):
        self.live = enabled

    def is_live(self):
        return self.live

    def output(self, cpu, instruction):
        print(self.debug(cpu, instruction), file=sys.stdout if self.stream is None else self.stream)

    def warn(self, message):
        self.warnings += 1
        print("Warning: {}".format(message), file=sys.stderr if self.stream is None else self.stream)
