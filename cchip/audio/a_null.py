#!/usr/bin/env python3

"""
Null Audio Plugin

Serves as a base class for other Audio plugins.  Can be used on its own if no
sound is required.

The CPU calls 'beep' once each time the sound timer runs down to zero.  How
long the tone lasts is up to the plugin.
"""

__copyright__ = "Copyright (C) 2022 Gregory Maynard-Hoare"
__license__ = "GNU Affero General Public License v3.0"


class Audio:
    def __init__(self):
        self.beeps = 0

    def set_frequency(self, frequency):
        # Set playback rate in Hz
        pass

    def set_buffer(self, buffer):
        # Change the 1-bit (16 byte) tone sample
        pass

    def beep(self):
        # Counted so headless runs can still see the tone was requested
        self.beeps += 1

    def is_null(self):
        # Only the null audio device should return True
        return True

    def shutdown(self):
        pass
