#!/usr/bin/env python3

"""
Host I/O Functionality

Handles loading program binaries for later writing into RAM.  Programs are raw
bytes with no header, so the only check that can be made is whether the whole
thing fits between the program start address and the end of memory.  Anything
larger is rejected here, before the CPU is ever started.
"""

__copyright__ = "Copyright (C) 2022 Gregory Maynard-Hoare"
__license__ = "GNU Affero General Public License v3.0"

from .constants import MAX_PROGRAM_SIZE


class LoaderError(Exception):
    pass


class Loader:
    def __init__(self, max_size=MAX_PROGRAM_SIZE):
        self.max_size = max_size

    def load_binary(self, filename):
        with open(filename, "rb") as f:
            return f.read()

    def load_program(self, filename):
        data = self.load_binary(filename)

        if len(data) > self.max_size:
            raise LoaderError(
                "'{}' is {} bytes, which is too large to fit in memory (maximum {} bytes)".format(
                    filename, len(data), self.max_size
                )
            )

        return data
