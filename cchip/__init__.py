#!/usr/bin/env python3

"""
Main Startup Module

Simply call main(args) to start the emulator, replacing args with a dictionary
of options.  This can be done via the Terminal or GUI.

All options must be supplied.  Defaults can be specified with a 'None'.

The CPU only knows how to run a single cycle, so this module owns everything
around it: choosing and starting the host plugins, loading the program, pacing
cycles to the requested clock speed, polling inputs and presenting the display
at 60Hz, and shutting it all down again when the program halts or the user
quits.
"""

__copyright__ = "Copyright (C) 2022 Gregory Maynard-Hoare"
__license__ = "GNU Affero General Public License v3.0"

from time import perf_counter
from .constants import APP_INTRO, APP_COPYRIGHT, DEFAULT_CLOCK_SPEED, DEFAULT_KEYMAP, MEM_SIZE, STACK_SIZE
from .cpu import CPU
from .debugger import Debugger
from .framebuffer import Framebuffer
from .hostio import Loader, LoaderError
from .inputs.i_null import InputsError
from .renderers.r_null import RendererError
from .keypad import Keypad
from .ram import RAM
from .stack import Stack

DISPLAY_FREQ = 60.0  # 60Hz display and input refresh
DISPLAY_INTERVAL = 1.0 / DISPLAY_FREQ


class StartupError(Exception):
    pass


def run(cpu, framebuffer, inputs, keypad, clock_speed=DEFAULT_CLOCK_SPEED):
    """
    Call the CPU repeatedly until the program halts or the user quits.

    Returns True if the user asked to quit, or False if the CPU halted by
    running off the end of memory.
    """
    core_interval = None if clock_speed <= 0 else 1.0 / clock_speed
    next_display_update_time = 0
    next_perf_report_time = 0
    perf_counter_fps = 0
    perf_counter_ops = 0

    while True:
        this_time = perf_counter()  # Do this first for maximum precision

        # Performance counters
        if this_time >= next_perf_report_time:
            next_perf_report_time = int(this_time) + 1.0
            # Reporting the performance should be done before a refresh, as refreshing will likely show the report
            framebuffer.report_perf(perf_counter_fps, perf_counter_ops)
            perf_counter_ops = 0
            perf_counter_fps = 0

        # Prevent unnecessary display rendering in excess of host frame rate
        if this_time >= next_display_update_time:
            if inputs.process_messages():  # Process inputs at 60Hz too, to avoid slowdown
                return True

            inputs.refresh_keypad(keypad)
            next_display_update_time = this_time + DISPLAY_INTERVAL

            if framebuffer.refresh_display():
                perf_counter_fps += 1

        running, _ = cpu.step()

        if not running:
            # Show whatever was drawn last before handing back
            if framebuffer.is_changed():
                framebuffer.refresh_display()

            return False

        if core_interval is not None:
            # Wait for next CPU cycle.  Do this last for maximum precision (takes into account time spent on this
            # cycle)
            next_time = this_time + core_interval

            while perf_counter() < next_time:  # Unfortunately we have to do this to get the timing right
                pass

        perf_counter_ops += 1


def main(args):
    print("".join((APP_INTRO, APP_COPYRIGHT)))

    # Read the program before starting any plugins, so a bad file doesn't leave the terminal or a window in a mess
    loader = Loader()

    try:
        program = loader.load_program(args["filename"])
    except OSError as err:
        raise StartupError("Unable to read '{}': {}".format(args["filename"], err.strerror or err)) from None
    except LoaderError as err:
        raise StartupError(str(err)) from None

    print("Loaded '{}' ({} bytes)".format(args["filename"], len(program)))

    opt_renderer = args["renderer"]
    auto_select_renderer = opt_renderer is None  # If necessary, try PyGame first, then Curses.
    mute_audio = args["mute"]

    # flake8: noqa: F401
    if auto_select_renderer or opt_renderer == "pygame":
        # pylint: disable=unused-import, import-outside-toplevel, raise-missing-from
        try:
            import pygame
        except ImportError:
            if auto_select_renderer:
                opt_renderer = "curses"
            else:
                raise StartupError(
                    "PyGame does not appear to be installed."
                )
        else:
            opt_renderer = "pygame"
            from .inputs.i_pygame import Inputs
            from .renderers.r_pygame import Renderer

            # PyGame can handle proper waveforms
            if mute_audio:
                from .audio.a_null import Audio
            else:
                from .audio.a_pygame import Audio

    if opt_renderer == "curses":
        # pylint: disable=unused-import, import-outside-toplevel, raise-missing-from
        try:
            import curses
        except ImportError:
            if auto_select_renderer:
                raise StartupError(
                    "Neither PyGame nor Curses (or Windows-Curses) appear to be installed."
                )

            raise StartupError(
                "Curses (or Windows-Curses) does not appear to be installed."
            )
        else:
            from .inputs.i_curses import Inputs
            from .renderers.r_curses import Renderer

            # Terminals can handle fixed-length beeps, but not sampled sound
            if mute_audio or mute_audio is None:
                from .audio.a_null import Audio
            else:
                from .audio.a_curses import Audio

    if opt_renderer == "null":
        # pylint: disable=import-outside-toplevel
        from .inputs.i_null import Inputs
        from .renderers.r_null import Renderer
        from .audio.a_null import Audio

    # Set up a new rendering system, and attach a framebuffer to it
    try:
        renderer = Renderer(
            scale=args["scale"],
            pygame_palette=args["pygame_palette"],
            curses_cursor_mode=args["curses_cursor_mode"],
            smoothing=args["smoothing"]
        )
    except RendererError as err:
        raise StartupError("Unable to start the display: {}".format(err)) from None

    inputs = None
    audio = None

    try:
        framebuffer = Framebuffer(renderer)

        # Set up host inputs, and link to the chosen rendering module in case it provides inputs too
        try:
            inputs = Inputs(args["keymap"] or DEFAULT_KEYMAP, renderer)
        except InputsError as err:
            raise StartupError("Bad keymap: {}".format(err)) from None

        keypad = Keypad()

        # Start up the audio system and set a default square beep waveform
        audio = Audio()
        audio.set_frequency(4000.0)
        audio.set_buffer(memoryview(bytearray((b"\x00\xFF") * 8)))

        # Set up debugger and live output if necessary
        debugger = Debugger()
        debugger.set_live(args["debug"])

        # Create a new CPU, plug it into the rest of the system, reset it, and load the program
        ram = RAM()
        ram.resize(MEM_SIZE)
        cpu = CPU(ram, Stack(STACK_SIZE), framebuffer, keypad, audio, debugger, seed=args["seed"])
        cpu.load_program(program)

        clock_speed = args["clock_speed"]
        user_quit = run(cpu, framebuffer, inputs, keypad, DEFAULT_CLOCK_SPEED if clock_speed is None else clock_speed)
    finally:
        # Shut down the host framework.  __del__ cannot be relied upon when using PyPy
        if audio is not None:
            audio.shutdown()

        if inputs is not None:
            inputs.shutdown()

        renderer.shutdown()

    if not user_quit:
        print("Program counter 0x{:04x} is outside memory.  Emulation halted.".format(cpu.pc))
