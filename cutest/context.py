"""Run-scoped state and the query API available to running tests."""

import contextlib
import enum
from dataclasses import dataclass, field
from typing import List, Optional

from . import porting
from .registry import TestDescriptor


class Phase(enum.Enum):
    SETUP = "setup"
    BODY = "body"
    TEARDOWN = "teardown"


class CaseState(enum.Enum):
    PENDING = "pending"
    SETUP = "setup"
    BODY = "body"
    TEARDOWN = "teardown"
    PASSED = "passed"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(eq=False)
class RunResult:
    descriptor: TestDescriptor
    state: CaseState = CaseState.PENDING
    failure_count: int = 0
    fault: Optional[object] = None
    fault_phase: Optional[Phase] = None
    skip_reason: Optional[str] = None
    duration: float = 0.0
    diagnostics: List[str] = field(default_factory=list)

    __test__ = False

    @property
    def name(self):
        return self.descriptor.full_name

    @property
    def passed(self):
        return self.state is CaseState.PASSED

    @property
    def failed(self):
        return self.state is CaseState.FAILED

    @property
    def skipped(self):
        return self.state is CaseState.SKIPPED

    @property
    def faulted(self):
        return self.fault is not None


class RunContext:
    """Everything a single invocation of ``run_tests`` owns.

    Exactly one context is active at a time; it is installed for the length
    of the run and cleared afterwards.
    """

    def __init__(self, registry, reporter, break_on_failure=False):
        self.registry = registry
        self.reporter = reporter
        self.break_on_failure = break_on_failure
        self.thread_id = porting.thread_id()
        self.descriptor: Optional[TestDescriptor] = None
        self.phase: Optional[Phase] = None
        self.result: Optional[RunResult] = None
        self.skip_requested = False
        self.pending_fatal = None

    @property
    def types(self):
        return self.registry.types

    def note_fatal(self, exc):
        """Keep a fatal error raised off the harness thread; the first one wins."""
        if self.pending_fatal is None:
            self.pending_fatal = exc

    def raise_pending(self):
        exc = self.pending_fatal
        if exc is not None:
            self.pending_fatal = None
            raise exc

    def record_failure(self, text):
        """Count an assertion failure against the running instance."""
        self.result.failure_count += 1
        self.result.diagnostics.append(text)
        self.reporter.diagnostic(text)

    def begin_instance(self, descriptor, result):
        self.descriptor = descriptor
        self.result = result
        self.phase = None
        self.skip_requested = False

    def end_instance(self):
        self.descriptor = None
        self.result = None
        self.phase = None
        self.skip_requested = False


_active: Optional[RunContext] = None


def active_context() -> Optional[RunContext]:
    return _active


@contextlib.contextmanager
def activated(ctx: RunContext):
    global _active
    if _active is not None:
        porting.abort("run_tests() called while another run is in progress")
    _active = ctx
    try:
        yield ctx
    finally:
        _active = None


def current_fixture():
    """Fixture name of the running test, or None outside a test."""
    if _active is None or _active.descriptor is None:
        return None
    return _active.descriptor.fixture_name


def current_test():
    if _active is None or _active.descriptor is None:
        return None
    return _active.descriptor.case_name


def skip_current_test():
    """Request that the running test be skipped.

    Only honoured while the fixture setup is running; returns whether the
    request took effect.
    """
    if _active is None or _active.phase is not Phase.SETUP:
        return False
    _active.skip_requested = True
    return True


def get_param():
    """The parameter value of the running parameterized instance."""
    ctx = _active
    if ctx is None or ctx.descriptor is None or not ctx.descriptor.is_parameterized:
        porting.abort("get_param() called outside a parameterized test")
    descriptor = ctx.descriptor
    return descriptor.param_block[descriptor.param_index]
