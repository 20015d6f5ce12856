"""Execution harness: resolves the run order and drives each test instance
through setup, body and teardown under the fault guard."""

import random
import sys
import time
from typing import List, Optional

from . import porting
from .config import NameFilter, RunOptions, parse_options, build_parser
from .context import CaseState, Phase, RunContext, RunResult, activated
from .errors import CutestAbort, FatalError, HookError, IsolationUnavailableError
from .fault import Fault, FaultGuard, ChannelSink, fork_available, run_forked
from .registry import CaseMask, Registry, TestDescriptor, default_registry
from .report import ConsoleReporter, TAPReporter

EXIT_SUCCESS = 0
EXIT_FAILURE = 1
EXIT_FATAL = 2

DISABLED_PREFIX = "DISABLED_"

HOOK_NAMES = (
    "before_all_test",
    "after_all_test",
    "before_setup",
    "after_setup",
    "before_teardown",
    "after_teardown",
    "before_test",
    "after_test",
)


class Hooks:
    """Optional callbacks around the test lifecycle.

    Any object exposing some of these attribute names works as a hook set;
    this class only supplies keyword construction and no-op defaults.

    The setup and teardown hooks fire for every instance, whether or not its
    fixture declares the procedure; the ok flag is then true unless a
    preceding hook failed. Per-instance hooks run under the fault guard and a
    crash in one fails that instance. A crash in ``before_all_test`` or
    ``after_all_test`` ends the run with status 2.
    """

    def __init__(self, **callbacks):
        unknown = set(callbacks) - set(HOOK_NAMES)
        if unknown:
            raise TypeError(f"unknown hook(s): {', '.join(sorted(unknown))}")
        for name in HOOK_NAMES:
            setattr(self, name, callbacks.get(name))


def _hook_callback(hooks, name):
    return getattr(hooks, name, None) if hooks is not None else None


def _is_disabled(descriptor):
    return (descriptor.fixture_name.startswith(DISABLED_PREFIX)
            or descriptor.case_name.startswith(DISABLED_PREFIX))


def make_reporter(options: RunOptions, out):
    if options.protocol == "tap":
        return TAPReporter(out)
    if options.color == "yes":
        use_color = True
    elif options.color == "no":
        use_color = False
    else:
        use_color = porting.stream_supports_color(out)
    return ConsoleReporter(out, use_color=use_color, print_time=options.print_time)


class Runner:
    def __init__(self, registry: Registry, out=None, hooks=None,
                 options: Optional[RunOptions] = None, reporter=None):
        self.registry = registry
        self.out = out or sys.stdout
        self.hooks = hooks
        self.options = options or RunOptions()
        self.reporter = reporter or make_reporter(self.options, self.out)
        self.context = RunContext(registry, self.reporter, self.options.break_on_failure)
        self.guard = FaultGuard()
        self.results: List[RunResult] = []
        self._phase_listener = None

    # -- order resolution ----------------------------------------------

    def resolve(self, iteration=0) -> List[TestDescriptor]:
        """Filtered instances in run order for one iteration."""
        name_filter = NameFilter(self.options.filter)
        instances = []
        for descriptor in self.registry.cases:
            descriptor.mask = CaseMask.NONE
            if not name_filter.matches(descriptor):
                continue
            if _is_disabled(descriptor) and not self.options.also_run_disabled_tests:
                descriptor.mask |= CaseMask.SKIPPED
            instances.append(descriptor)

        if self.options.shuffle:
            rng = random.Random(self.options.random_seed + iteration)
            for descriptor in instances:
                descriptor.sort_key = rng.getrandbits(32)
            instances.sort(key=lambda item: item.sort_key)
        elif self.options.reverse:
            instances.reverse()
        return instances

    # -- running -------------------------------------------------------

    def run(self, argv=()):
        """Run everything and return the process exit status."""
        try:
            return self._run(list(argv))
        except FatalError as exc:
            print(f"--- cutest: {exc} ---", file=sys.stderr)
            self.reporter.fatal(str(exc))
            return EXIT_FATAL

    def _run(self, argv):
        if self.options.show_help:
            self.reporter.help(build_parser().format_help())
            return EXIT_SUCCESS
        if self.options.isolation == "fork" and not fork_available():
            raise IsolationUnavailableError("--test_isolation=fork requires os.fork()")

        self.registry.initialize()
        if self.options.list_tests:
            self.reporter.list_tests(self.resolve())
            return EXIT_SUCCESS

        if self.options.shuffle and self.options.random_seed is None:
            self.options.random_seed = int(time.time()) % 100000
        if self.options.shuffle:
            self.reporter.shuffle_seed(self.options.random_seed)

        self.results = []
        self.context.pending_fatal = None
        self._run_global_hook("before_all_test", argv)
        self.reporter.run_started(len(self.registry.cases))
        with activated(self.context):
            for iteration in range(self.options.repeat):
                instances = self.resolve(iteration)
                self.reporter.iteration_started(iteration, self.options.repeat, instances)
                start = porting.clock()
                iteration_results = [self.run_instance(d) for d in instances]
                self.reporter.iteration_finished(iteration_results, porting.clock() - start)
                self.results.extend(iteration_results)
            self.context.raise_pending()
        self._run_global_hook("after_all_test")

        if any(result.failed for result in self.results):
            return EXIT_FAILURE
        return EXIT_SUCCESS

    def run_instance(self, descriptor: TestDescriptor) -> RunResult:
        result = RunResult(descriptor)
        if descriptor.mask & CaseMask.SKIPPED:
            result.state = CaseState.SKIPPED
            result.skip_reason = "disabled"
            self.reporter.test_finished(result)
            return result

        self.reporter.test_started(descriptor)
        start = porting.clock()
        if self.options.isolation == "fork":
            self._run_forked(descriptor, result)
        else:
            self._run_inline(descriptor, result)
        result.duration = porting.clock() - start
        self.reporter.test_finished(result)
        return result

    def _run_inline(self, descriptor, result):
        self.context.begin_instance(descriptor, result)
        try:
            self._execute(descriptor, result)
        finally:
            self.context.end_instance()
        self.context.raise_pending()

    def _run_phase(self, phase, procedure, *args):
        self.context.phase = phase
        if self._phase_listener is not None:
            self._phase_listener(phase)
        try:
            outcome = self.guard.run_guarded(procedure, *args)
        finally:
            self.context.phase = None
        self.context.raise_pending()
        return outcome

    def _run_step(self, result, phase, procedure, *args, where=None):
        """Run one guarded step and return whether it finished without failures."""
        failures_before = result.failure_count
        outcome = self._run_phase(phase, procedure, *args)
        if outcome.faulted:
            self._record_fault(result, phase, outcome.fault, where)
        return outcome.completed and result.failure_count == failures_before

    def _run_hook(self, result, phase, name, *args):
        callback = _hook_callback(self.hooks, name)
        if callback is None:
            return True
        return self._run_step(result, phase, callback, *args, where=f"{name} hook")

    def _run_global_hook(self, name, *args):
        callback = _hook_callback(self.hooks, name)
        if callback is None:
            return
        outcome = self.guard.run_guarded(callback, *args)
        if outcome.faulted:
            fault = outcome.fault
            if fault.traceback_text:
                print(fault.traceback_text, file=sys.stderr)
            raise HookError(f"{name} hook crashed: {fault.description}")

    def _record_fault(self, result, phase, fault, where=None):
        place = phase.value if where is None else f"{phase.value} ({where})"
        text = f"{result.name} crashed during {place}: {fault.description}"
        if fault.traceback_text:
            text += "\n" + fault.traceback_text
        result.diagnostics.append(text)
        if result.fault is None:
            result.fault = fault
            result.fault_phase = phase
        self.reporter.diagnostic(text)

    def _execute(self, descriptor, result):
        fixture = descriptor.fixture_name
        case = descriptor.case_name

        result.state = CaseState.SETUP
        setup_ok = self._run_hook(result, Phase.SETUP, "before_setup", fixture)
        if setup_ok and descriptor.setup is not None:
            setup_ok = self._run_step(result, Phase.SETUP, descriptor.setup)
        self._run_hook(result, Phase.SETUP, "after_setup", fixture, setup_ok)
        if result.fault is not None:
            # no teardown after a crashed setup
            result.state = CaseState.FAILED
            return
        if self.context.skip_requested and setup_ok:
            result.state = CaseState.SKIPPED
            result.skip_reason = "skipped in setup"
            return

        if setup_ok:
            result.state = CaseState.BODY
            body_ok = self._run_hook(result, Phase.BODY, "before_test", fixture, case)
            if body_ok:
                body_ok = self._run_step(
                    result, Phase.BODY, descriptor.body,
                    descriptor.param_block, descriptor.param_index,
                )
            self._run_hook(result, Phase.BODY, "after_test", fixture, case, body_ok)

        result.state = CaseState.TEARDOWN
        teardown_ok = self._run_hook(result, Phase.TEARDOWN, "before_teardown", fixture)
        if teardown_ok and descriptor.teardown is not None:
            teardown_ok = self._run_step(result, Phase.TEARDOWN, descriptor.teardown)
        self._run_hook(result, Phase.TEARDOWN, "after_teardown", fixture, teardown_ok)

        if result.failure_count == 0 and result.fault is None:
            result.state = CaseState.PASSED
        else:
            result.state = CaseState.FAILED

    # -- process isolation ---------------------------------------------

    def _run_forked(self, descriptor, result):
        progress = {"phase": None, "reported": False, "fatal": None}

        def child(channel):
            self.reporter.stream = ChannelSink(channel)
            self.guard = FaultGuard(trap_signals=False)
            self._phase_listener = lambda phase: channel.send("phase", phase=phase.value)
            try:
                self._run_inline(descriptor, result)
            except FatalError as exc:
                channel.send("fatal", message=str(exc))
                return
            channel.send(
                "result",
                state=result.state.value,
                failure_count=result.failure_count,
                fault=result.fault.to_dict() if result.fault else None,
                fault_phase=result.fault_phase.value if result.fault_phase else None,
                skip_reason=result.skip_reason,
                diagnostics=result.diagnostics,
            )

        def on_event(event):
            kind = event.get("event")
            if kind == "phase":
                progress["phase"] = event["phase"]
            elif kind == "output":
                self.out.write(event["text"])
                self.out.flush()
            elif kind == "fatal":
                progress["fatal"] = event["message"]
            elif kind == "result":
                progress["reported"] = True
                result.state = CaseState(event["state"])
                result.failure_count = event["failure_count"]
                if event["fault"] is not None:
                    result.fault = Fault.from_dict(event["fault"])
                    result.fault_phase = Phase(event["fault_phase"])
                result.skip_reason = event["skip_reason"]
                result.diagnostics = list(event["diagnostics"])

        exit_info = run_forked(child, on_event)
        if progress["fatal"] is not None:
            raise CutestAbort(progress["fatal"])
        if progress["reported"]:
            return

        phase = Phase(progress["phase"]) if progress["phase"] else Phase.BODY
        if exit_info.signaled:
            fault = Fault.from_signal(exit_info.signum)
        else:
            fault = Fault("ChildExit", message=f"test process exited with status {exit_info.exit_code}")
        self._record_fault(result, phase, fault)
        result.state = CaseState.FAILED


def run_tests(argv=None, out=None, hooks=None, registry: Optional[Registry] = None):
    """Parse ``argv``, run every registered test and return the exit status."""
    if argv is None:
        argv = sys.argv[1:]
    if out is None:
        out = sys.stdout
    if registry is None:
        registry = default_registry()
    options, _ = parse_options(argv)
    runner = Runner(registry, out, hooks, options)
    return runner.run(argv)
