#!/usr/bin/env python3

"""
Curses Renderer Plugin

Used by a Framebuffer object to draw the screen.  This draws graphics in a
standard Linux-style TTY Terminal, the Windows Command Prompt, or PowerShell.

Each lit pixel is drawn as a run of inverted spaces, 'scale' characters wide,
to make up for terminal characters being roughly twice as tall as they are
wide.  The top line of the pad is reserved for the title.
"""

__copyright__ = "Copyright (C) 2022 Gregory Maynard-Hoare"
__license__ = "GNU Affero General Public License v3.0"

import curses
import _curses
from .r_null import Renderer as RendererBase


class Renderer(RendererBase):
    def __init__(self, scale=None, curses_cursor_mode=0, **kwargs):
        if scale is None:
            scale = 2  # Default horizontal stretch if not supplied, or set to default

        self.pixel_char = " " * scale
        self.pad = None
        self.last_screen_height = -1
        self.last_screen_width = -1
        self.cursor_mode = curses_cursor_mode
        self.screen = curses.initscr()

        try:
            curses.curs_set(self.cursor_mode)
        except _curses.error:
            pass  # Not every terminal supports every cursor mode

        curses.noecho()
        curses.cbreak()
        super().__init__(scale)

    def set_resolution(self, width, height):
        super().set_resolution(width, height)

        if not (width and height):
            return

        # We have to allow one extra character, presumably for the cursor, otherwise we can't write the furthest
        # bottom-right pixel.
        self.pad = curses.newpad(height + 1, width * self.scale + 1)

    def set_pixel(self, x, y, colour):
        curses_colour = curses.A_REVERSE if colour else curses.A_NORMAL
        self.pad.addstr(y + 1, x * self.scale, self.pixel_char, curses_colour)
        super().set_pixel(x, y, colour)

    def refresh_display(self, content_changed=False):
        if self.pad is None:
            return

        screen_height, screen_width = self.screen.getmaxyx()  # This doesn't seem to ever change/work on Windows?!

        if screen_height == self.last_screen_height and screen_width == self.last_screen_width:
            # Fast delta update
            if self.refresh_needed or content_changed:
                self.pad.refresh(0, 0, 0, 0, screen_height - 1, screen_width - 1)
        else:
            # Screen resolution changed, redraw everything
            self.screen.clear()

            if hasattr(curses, "resizeterm"):
                # This doesn't work on Windows
                curses.resizeterm(screen_height, screen_width)

            self.screen.refresh()
            self.pad.refresh(0, 0, 0, 0, screen_height - 1, screen_width - 1)
            self.last_screen_height = screen_height
            self.last_screen_width = screen_width

        super().refresh_display(content_changed)

    def set_title(self, title):
        if self.pad:
            title_len = len(title)
            pad_width = self.width * self.scale

            if pad_width > title_len:
                self.pad.addstr(0, 0, title + " " * (pad_width - title_len), curses.A_REVERSE)
                self.refresh_needed = True

    def shutdown(self):
        curses.nocbreak()
        curses.echo()

        if self.cursor_mode != 1:
            try:
                curses.curs_set(1)
            except _curses.error:
                pass

        curses.endwin()
        super().shutdown()

    # No Superclass for this Curses-specific method

    def get_curses_screen(self):
        return self.screen
