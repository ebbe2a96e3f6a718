#!/usr/bin/env python3

"""
PyGame Audio Plugin

Plays the tone as a short sampled sound within PyGame / SDL.

The tone is described by a 1-bit buffer of 16 bytes (128 samples), played back
at a given frequency.  The waveform has to effectively be stretched lengthways
and have its offset moved to fit in a modern 8-bit PyGame / SDL buffer, but it
will retain the shape of a square wave.
"""

__copyright__ = "Copyright (C) 2022 Gregory Maynard-Hoare"
__license__ = "GNU Affero General Public License v3.0"

import pygame
from .a_null import Audio as AudioBase

PLAYBACK_FREQUENCY = 44100.0
DEFAULT_VOLUME = 0.1
BEEP_DURATION_MS = 100


class Audio(AudioBase):
    def __init__(self):
        self.orig_buffer = None
        self.sound = None
        self.frequency = None
        self.sample_multiplier = None
        self.resampled_buffer = None
        self.resampled_buffer_size = None
        pygame.mixer.pre_init(int(PLAYBACK_FREQUENCY), size=8, channels=1, buffer=512, allowedchanges=0)
        pygame.mixer.init()
        super().__init__()

    def set_frequency(self, frequency):
        # Setting PyGame's playback rate is very slow, so we must resample audio for it when building the buffer
        if frequency != self.frequency:
            self.frequency = frequency
            self.sample_multiplier = PLAYBACK_FREQUENCY / frequency

            # If the frequency has been changed, and there is a sample in the buffer, resample it now
            if self.orig_buffer is not None:
                self.set_buffer()

    def set_buffer(self, buffer=None):
        # Copy the bit-level buffer into PyGame as an extended audio sample.  If None is supplied for the buffer (such
        # as when changing sample playback frequency), then the previously supplied one will be used.

        if buffer is None:
            buffer = self.orig_buffer
        else:
            self.orig_buffer = buffer

        sample_multiplier = self.sample_multiplier
        resampled_buffer_size = int(128 * sample_multiplier)  # 128 one-bit input samples * stretch factor

        # Resize host audio buffer if necessary
        if resampled_buffer_size != self.resampled_buffer_size:
            self.resampled_buffer = memoryview(bytearray(resampled_buffer_size))
            self.resampled_buffer_size = resampled_buffer_size

        # Resample (stretch the width and height of) the square waveform to fit the host buffer
        for resampled_buffer_pos in range(resampled_buffer_size):
            buffer_byte_pos = resampled_buffer_pos / sample_multiplier
            byte = int(buffer_byte_pos / 8.0)
            bit = 7 - int(buffer_byte_pos % 8.0)
            self.resampled_buffer[resampled_buffer_pos] = ((buffer[byte] >> bit) & 1) * 0xFF

        self.sound = pygame.mixer.Sound(buffer=self.resampled_buffer)
        self.sound.set_volume(DEFAULT_VOLUME)

    def beep(self):
        # Loop the sample until the fixed tone length has passed.  A beep already playing is restarted.
        if self.sound:
            self.sound.stop()
            self.sound.play(-1, maxtime=BEEP_DURATION_MS)

        super().beep()

    def shutdown(self):
        if self.sound:
            self.sound.stop()

        pygame.mixer.quit()
        super().shutdown()

    def is_null(self):
        # Only the null audio device should return True
        return False
