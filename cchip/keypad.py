#!/usr/bin/env python3

"""
Keypad State

Sixteen on/off slots, one for each hexadecimal key (0-F).  Input plugins write
into these whenever they process host events, and the CPU only ever reads them.
Which physical key maps to which slot is entirely up to the input plugin.
"""

__copyright__ = "Copyright (C) 2022 Gregory Maynard-Hoare"
__license__ = "GNU Affero General Public License v3.0"

from .constants import NUM_KEYS


class Keypad:
    def __init__(self):
        self.keys = [False] * NUM_KEYS

    def set_key(self, key, down):
        self.keys[key] = bool(down)

    def is_key_down(self, key):
        return self.keys[key]

    def get_keypress(self):
        # Lowest-numbered key currently held, if any
        for key_num, down in enumerate(self.keys):
            if down:
                return key_num

        return None

    def release_all(self):
        for key_num in range(NUM_KEYS):
            self.keys[key_num] = False

    def get_keys(self):
        return self.keys
