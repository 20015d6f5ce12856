"""Platform primitives the harness calls but does not own.

Each function here can be replaced (for example from a test, or when running
on an interpreter without a usable ``breakpoint()``) by assigning a new
callable to the module attribute.
"""

import os
import sys
import threading
import time

from .errors import CutestAbort

COLOR_DEFAULT = 0
COLOR_RED = 1
COLOR_GREEN = 2
COLOR_YELLOW = 3

_ANSI_CODES = {
    COLOR_RED: "\033[31m",
    COLOR_GREEN: "\033[32m",
    COLOR_YELLOW: "\033[33m",
}
_ANSI_RESET = "\033[0m"


def clock():
    """Monotonic clock in seconds."""
    return time.perf_counter()


def thread_id():
    return threading.get_ident()


def debug_break():
    """Stop in the interactive debugger (honours PYTHONBREAKPOINT)."""
    breakpoint()


def abort(fmt, *args):
    message = fmt % args if args else fmt
    print(f"--- cutest abort: {message} ---", file=sys.stderr)
    raise CutestAbort(message)


def stream_supports_color(stream):
    if os.environ.get("NO_COLOR"):
        return False
    isatty = getattr(stream, "isatty", None)
    if isatty is None:
        return False
    try:
        return bool(isatty())
    except ValueError:
        # closed stream
        return False


def color_print(stream, color, text, use_color=True):
    """Write ``text`` to ``stream``, wrapped in ANSI color codes if requested.

    Returns the number of visible characters written.
    """
    code = _ANSI_CODES.get(color)
    if use_color and code is not None:
        stream.write(f"{code}{text}{_ANSI_RESET}")
    else:
        stream.write(text)
    return len(text)
