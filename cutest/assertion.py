"""Assertion families.

``EXPECT`` records a failed comparison and lets the phase continue;
``ASSERT`` records it and then leaves the phase. Both route every comparison
through :mod:`cutest.compare`::

    EXPECT.eq("int", 2 + 2, 4)
    ASSERT.lt("double", elapsed, 1.5, "took %.2fs", elapsed)
"""

import ast
import io
import os
import traceback

from . import compare, porting
from .context import active_context
from .errors import CutestAbort
from .fault import AssertionAbort

_PACKAGE_DIR = os.path.dirname(os.path.abspath(__file__))


def _caller_frame():
    """Innermost stack frame that does not belong to cutest itself."""
    for frame in reversed(traceback.extract_stack()):
        if os.path.dirname(os.path.abspath(frame.filename)) != _PACKAGE_DIR:
            return frame
    return None


def _operand_sources(source_line, method):
    if not source_line or method == "check":
        return None
    source = source_line.strip()
    try:
        tree = ast.parse(source)
    except SyntaxError:
        # the call spans several lines
        return None
    for node in ast.walk(tree):
        if (
            isinstance(node, ast.Call)
            and isinstance(node.func, ast.Attribute)
            and node.func.attr == method
            and len(node.args) >= 3
        ):
            return (
                ast.get_source_segment(source, node.args[1]),
                ast.get_source_segment(source, node.args[2]),
            )
    return None


def format_failure(handler, op, left, right, raw_left, raw_right, frame, method, message):
    sources = _operand_sources(frame.line if frame else None, method)
    if sources is None:
        sources = (repr(raw_left), repr(raw_right))

    dump_left = io.StringIO()
    compare.dump_value(dump_left, handler, left)
    dump_right = io.StringIO()
    compare.dump_value(dump_right, handler, right)

    location = f"{frame.filename}:{frame.lineno}" if frame else "<unknown>"
    lines = [
        f"{location}:failure:",
        f"            expected: `{sources[0]}' {op} `{sources[1]}'",
        f"              actual: {dump_left.getvalue()} vs {dump_right.getvalue()}",
        f"                type: {handler.name}",
    ]
    if message:
        lines.append(message)
    return "\n".join(lines) + "\n"


def _abort(ctx, fmt, *args):
    try:
        porting.abort(fmt, *args)
    except CutestAbort as exc:
        # re-raised on the harness thread after the current phase
        if ctx is not None and porting.thread_id() != ctx.thread_id:
            ctx.note_fatal(exc)
        raise


def check(fatal, type_name, op, a, b, fmt="", *args, _method=None):
    """Compare ``a`` and ``b`` as ``type_name`` values with operator ``op``.

    Returns True when the comparison holds. On failure the diagnostic is
    reported and the failure is counted against the running test; a fatal
    check then unwinds the current phase.
    """
    ctx = active_context()
    if ctx is None or ctx.result is None:
        _abort(ctx, "assertion used outside of a running test")
    if porting.thread_id() != ctx.thread_id:
        _abort(
            ctx,
            "assertion called from thread %s, tests run on thread %s",
            porting.thread_id(),
            ctx.thread_id,
        )

    handler = compare.resolve(type_name, ctx.types)
    left = handler.coerce(a)
    right = handler.coerce(b)
    if compare.evaluate(handler, op, left, right):
        return True

    message = fmt % args if args else fmt
    text = format_failure(
        handler, op, left, right, a, b, _caller_frame(), _method or "check", message
    )
    if ctx.break_on_failure:
        porting.debug_break()
    ctx.record_failure(text)
    if fatal:
        raise AssertionAbort()
    return False


class AssertionFamily:
    def __init__(self, fatal):
        self.fatal = fatal

    def __repr__(self):
        return "ASSERT" if self.fatal else "EXPECT"

    def eq(self, type_name, a, b, fmt="", *args):
        return check(self.fatal, type_name, "==", a, b, fmt, *args, _method="eq")

    def ne(self, type_name, a, b, fmt="", *args):
        return check(self.fatal, type_name, "!=", a, b, fmt, *args, _method="ne")

    def lt(self, type_name, a, b, fmt="", *args):
        return check(self.fatal, type_name, "<", a, b, fmt, *args, _method="lt")

    def le(self, type_name, a, b, fmt="", *args):
        return check(self.fatal, type_name, "<=", a, b, fmt, *args, _method="le")

    def gt(self, type_name, a, b, fmt="", *args):
        return check(self.fatal, type_name, ">", a, b, fmt, *args, _method="gt")

    def ge(self, type_name, a, b, fmt="", *args):
        return check(self.fatal, type_name, ">=", a, b, fmt, *args, _method="ge")


ASSERT = AssertionFamily(fatal=True)
EXPECT = AssertionFamily(fatal=False)
