"""Fault isolation for test phases.

:class:`FaultGuard` is the single recovery slot of a run. While it is armed,
handlers for the fatal signal class raise :class:`FatalSignal` inside the
guarded procedure, which unwinds it back to :meth:`FaultGuard.run_guarded`.
Python exceptions escaping the procedure are treated the same way.

A signal caused by an invalid memory access inside native code cannot be
resumed from Python: the interpreter returns from its low level handler and
the faulting instruction runs again. :func:`run_forked` covers that case by
running the whole test instance in a child process and reading back what it
reports over a pipe.
"""

import json
import os
import signal
import sys
import threading
import traceback
from typing import Callable, Optional

from .errors import FatalError, IsolationUnavailableError
from . import porting

FATAL_SIGNAL_NAMES = ("SIGILL", "SIGSEGV", "SIGFPE", "SIGABRT")
FATAL_SIGNALS = tuple(
    getattr(signal, name) for name in FATAL_SIGNAL_NAMES if hasattr(signal, name)
)

OUTCOME_COMPLETED = "completed"
OUTCOME_FAULT = "fault"
OUTCOME_ASSERTION = "assertion"

# Exit status of a forked child whose harness code itself failed.
CHILD_INTERNAL_ERROR = 70


class FatalSignal(BaseException):
    """Raised from the signal handler installed by an armed guard.

    Derives from BaseException so that ``except Exception`` blocks in test
    code cannot intercept the unwind.
    """

    def __init__(self, signum):
        super().__init__(signum)
        self.signum = signum


class AssertionAbort(BaseException):
    """Leaves the current phase after a fatal assertion has been recorded."""


def signal_name(signum):
    try:
        return signal.Signals(signum).name
    except ValueError:
        return f"signal {signum}"


class Fault:
    """What brought a phase down: a fatal signal or an uncaught exception."""

    def __init__(self, kind, signum=None, message="", traceback_text=""):
        self.kind = kind
        self.signum = signum
        self.message = message
        self.traceback_text = traceback_text

    def __repr__(self):
        return f"Fault({self.description!r})"

    @classmethod
    def from_signal(cls, signum):
        return cls(signal_name(signum), signum=signum)

    @classmethod
    def from_exception(cls, exc):
        text = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        return cls(type(exc).__name__, message=str(exc), traceback_text=text)

    @property
    def is_signal(self):
        return self.signum is not None

    @property
    def description(self):
        if self.message:
            return f"{self.kind}: {self.message}"
        return self.kind

    def to_dict(self):
        return {
            "kind": self.kind,
            "signum": self.signum,
            "message": self.message,
            "traceback": self.traceback_text,
        }

    @classmethod
    def from_dict(cls, data):
        return cls(
            data["kind"],
            signum=data.get("signum"),
            message=data.get("message", ""),
            traceback_text=data.get("traceback", ""),
        )


class Outcome:
    def __init__(self, status, fault: Optional[Fault] = None):
        self.status = status
        self.fault = fault

    def __repr__(self):
        return f"Outcome({self.status!r}, {self.fault!r})"

    @property
    def completed(self):
        return self.status == OUTCOME_COMPLETED

    @property
    def faulted(self):
        return self.status == OUTCOME_FAULT


class FaultGuard:
    def __init__(self, trap_signals=True):
        self.trap_signals = trap_signals
        self._armed = False
        self._previous_handlers = {}

    @property
    def armed(self):
        return self._armed

    def run_guarded(self, procedure: Callable, *args) -> Outcome:
        """Call ``procedure(*args)`` with the recovery point armed."""
        self._arm()
        try:
            procedure(*args)
        except FatalSignal as exc:
            return Outcome(OUTCOME_FAULT, Fault.from_signal(exc.signum))
        except AssertionAbort:
            return Outcome(OUTCOME_ASSERTION)
        except FatalError:
            raise
        except (Exception, SystemExit) as exc:
            return Outcome(OUTCOME_FAULT, Fault.from_exception(exc))
        finally:
            self._disarm()
        return Outcome(OUTCOME_COMPLETED)

    def _on_signal(self, signum, frame):
        raise FatalSignal(signum)

    def _arm(self):
        if self._armed:
            porting.abort("fault guard is already armed; guarded calls cannot nest")
        self._armed = True
        # signal.signal() is only permitted from the main thread
        if not self.trap_signals or threading.current_thread() is not threading.main_thread():
            return
        for signum in FATAL_SIGNALS:
            self._previous_handlers[signum] = signal.getsignal(signum)
            signal.signal(signum, self._on_signal)

    def _disarm(self):
        for signum, previous in self._previous_handlers.items():
            signal.signal(signum, previous if previous is not None else signal.SIG_DFL)
        self._previous_handlers.clear()
        self._armed = False


class ChildChannel:
    """Write side of the pipe a forked test instance reports through."""

    def __init__(self, stream):
        self._stream = stream

    def send(self, event, **payload):
        payload["event"] = event
        self._stream.write(json.dumps(payload) + "\n")
        self._stream.flush()


class ChannelSink:
    """File-like object forwarding writes over a :class:`ChildChannel`."""

    def __init__(self, channel):
        self._channel = channel

    def write(self, text):
        if text:
            self._channel.send("output", text=text)
        return len(text)

    def flush(self):
        pass

    def isatty(self):
        return False


class ChildExit:
    def __init__(self, signum=None, exit_code=None):
        self.signum = signum
        self.exit_code = exit_code

    @property
    def signaled(self):
        return self.signum is not None


def fork_available():
    return hasattr(os, "fork")


def _reset_fatal_signals():
    for signum in FATAL_SIGNALS:
        signal.signal(signum, signal.SIG_DFL)


def run_forked(procedure: Callable[[ChildChannel], None],
               on_event: Callable[[dict], None]) -> ChildExit:
    """Run ``procedure(channel)`` in a forked child.

    Every event the child sends is handed to ``on_event`` as soon as it
    arrives, so the parent knows how far the child got even if it is killed
    by a signal.
    """
    if not fork_available():
        raise IsolationUnavailableError("process isolation requires os.fork()")

    sys.stdout.flush()
    sys.stderr.flush()
    read_fd, write_fd = os.pipe()
    pid = os.fork()
    if pid == 0:
        os.close(read_fd)
        status = 0
        try:
            _reset_fatal_signals()
            with os.fdopen(write_fd, "w", encoding="utf-8") as stream:
                procedure(ChildChannel(stream))
        except BaseException:
            traceback.print_exc()
            status = CHILD_INTERNAL_ERROR
        finally:
            try:
                sys.stdout.flush()
                sys.stderr.flush()
            finally:
                os._exit(status)

    os.close(write_fd)
    with os.fdopen(read_fd, "r", encoding="utf-8") as stream:
        for line in stream:
            line = line.strip()
            if not line:
                continue
            try:
                event = json.loads(line)
            except json.JSONDecodeError:
                # the child died halfway through writing this line
                break
            on_event(event)

    _, status = os.waitpid(pid, 0)
    if os.WIFSIGNALED(status):
        return ChildExit(signum=os.WTERMSIG(status))
    return ChildExit(exit_code=os.WEXITSTATUS(status))
