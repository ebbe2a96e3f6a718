#!/usr/bin/env python3

"""
Framebuffer Emulator

Pixels are written here, and are only drawn to the actual display (the host
rendering system) when the driver asks for a refresh, normally at 60Hz.
PyGame/Curses can lower speed substantially when calling some methods tens of
thousands of times a second, so the renderer is given individual pixel
changes, and told to present them only when something actually changed.

Programs cannot write directly into video RAM.  Instead, sprites are drawn to
the screen using an XOR method, and the screen can be cleared.  Those are the
only two ways the display changes, and both raise the 'changed' flag.

Collisions (where a pixel was set, but was unset by an XOR) are reported back
to the caller.  Coordinates always wrap around the edges of the 64x32 grid.
"""

__copyright__ = "Copyright (C) 2022 Gregory Maynard-Hoare"
__license__ = "GNU Affero General Public License v3.0"

from .constants import APP_NAME, VID_WIDTH, VID_HEIGHT
from .ram import RAM


class Framebuffer():
    def __init__(self, renderer, vid_width=VID_WIDTH, vid_height=VID_HEIGHT):
        self.renderer = renderer
        self.vid_width = vid_width
        self.vid_height = vid_height
        self.vid_size = vid_width * vid_height
        self.vram = RAM()
        self.vram.resize(self.vid_size)
        self.changed = False
        self.renderer.set_resolution(vid_width, vid_height)
        self.report_perf()

    def clear(self):
        self.vram.clear()
        self.changed = True

        for y in range(self.vid_height):
            for x in range(self.vid_width):
                self.renderer.set_pixel(x, y, 0)

    def xor_pixel(self, x, y):
        # Returns True if a lit pixel was switched off
        x %= self.vid_width
        y %= self.vid_height
        pixel = self.get_pixel(x, y)
        self.vram.write(y * self.vid_width + x, 0x00 if pixel else 0xFF)
        self.renderer.set_pixel(x, y, pixel ^ 1)
        self.changed = True

        return pixel == 1

    def get_pixel(self, x, y):
        return int(self.vram.read(y * self.vid_width + x) != 0)

    def mark_changed(self):
        self.changed = True

    def is_changed(self):
        return self.changed

    def refresh_display(self):
        # Present pending pixel updates, and consume the changed flag
        content_changed = self.changed
        self.changed = False
        self.renderer.refresh_display(content_changed)
        return content_changed

    def get_vid_size(self):
        return self.vid_width, self.vid_height

    def report_perf(self, fps=0, ops=0):
        title = "{} - {} FPS, {} OPS".format(APP_NAME, fps, ops)
        self.renderer.set_title(title)
