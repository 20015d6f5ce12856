import sys

from . import porting


def _plural(count, word):
    return f"{count} {word}" if count == 1 else f"{count} {word}s"


def _fault_summary(result):
    fault = result.fault
    phase = result.fault_phase.value if result.fault_phase else "test"
    return f"{result.name} crashed during {phase}: {fault.description}"


class ConsoleReporter:
    """gtest flavoured progress output."""

    def __init__(self, stream=None, use_color=False, print_time=False):
        self.stream = stream or sys.stdout
        self.use_color = use_color
        self.print_time = print_time

    def _write(self, text):
        self.stream.write(text)
        self.stream.flush()

    def _tag(self, color, tag, text):
        porting.color_print(self.stream, color, tag, self.use_color)
        self._write(f" {text}\n")

    def run_started(self, registered):
        self._tag(porting.COLOR_GREEN, "[==========]", f"total {_plural(registered, 'test')} registered.")

    def shuffle_seed(self, seed):
        self._write(f"Note: Randomizing tests' orders with a seed of {seed} .\n")

    def iteration_started(self, iteration, repeat, instances):
        if repeat > 1:
            self._write(f"\nRepeating all tests (iteration {iteration + 1}) . . .\n\n")

    def test_started(self, descriptor):
        self._tag(porting.COLOR_GREEN, "[ RUN      ]", descriptor.full_name)

    def diagnostic(self, text):
        if not text.endswith("\n"):
            text += "\n"
        self._write(text)

    def test_finished(self, result):
        suffix = f" ({result.duration * 1000:.0f} ms)" if self.print_time else ""
        if result.passed:
            self._tag(porting.COLOR_GREEN, "[       OK ]", result.name + suffix)
        elif result.skipped:
            self._tag(porting.COLOR_YELLOW, "[  SKIP    ]", result.name + suffix)
        else:
            self._tag(porting.COLOR_RED, "[  FAILED  ]", result.name + suffix)

    def iteration_finished(self, results, duration):
        ran = [r for r in results if not r.skipped]
        passed = [r for r in results if r.passed]
        skipped = [r for r in results if r.skipped]
        failed = [r for r in results if r.failed]

        line = f"{_plural(len(ran), 'test')} ran."
        if self.print_time:
            line += f" ({duration * 1000:.0f} ms total)"
        self._tag(porting.COLOR_GREEN, "[==========]", line)
        self._tag(porting.COLOR_GREEN, "[  PASSED  ]", f"{_plural(len(passed), 'test')}.")
        if skipped:
            self._tag(porting.COLOR_YELLOW, "[  SKIPPED ]", f"{_plural(len(skipped), 'test')}, listed below:")
            for result in skipped:
                self._tag(porting.COLOR_YELLOW, "[  SKIPPED ]", result.name)
        if failed:
            self._tag(porting.COLOR_RED, "[  FAILED  ]", f"{_plural(len(failed), 'test')}, listed below:")
            for result in failed:
                self._tag(porting.COLOR_RED, "[  FAILED  ]", result.name)
        if self.print_time and ran:
            self._write("Slowest tests:\n")
            for result in sorted(ran, key=lambda item: item.duration, reverse=True)[:5]:
                self._write(f"  {result.duration:.3f}s | {result.name}\n")

    def list_tests(self, instances):
        fixture = None
        for descriptor in instances:
            if descriptor.fixture_name != fixture:
                fixture = descriptor.fixture_name
                self._write(f"{fixture}.\n")
            name = descriptor.case_name
            if descriptor.is_parameterized:
                name += f"/{descriptor.param_index}"
            self._write(f"  {name}\n")

    def fatal(self, message):
        self._tag(porting.COLOR_RED, "[  ERROR   ]", message)

    def help(self, text):
        self._write(text)


class TAPReporter:
    """Test Anything Protocol output; anything that is not a result line is a comment."""

    def __init__(self, stream=None):
        self.stream = stream or sys.stdout
        self._test_index = 0

    def _emit(self, line):
        self.stream.write(f"{line}\n")
        self.stream.flush()

    def _emit_diagnostic(self, text):
        for raw_line in text.rstrip().splitlines():
            self._emit(f"# {raw_line}")

    def run_started(self, registered):
        pass

    def shuffle_seed(self, seed):
        self._emit_diagnostic(f"random seed {seed}")

    def iteration_started(self, iteration, repeat, instances):
        if iteration == 0:
            self._emit(f"1..{len(instances) * repeat}")

    def test_started(self, descriptor):
        pass

    def diagnostic(self, text):
        self._emit_diagnostic(text)

    def test_finished(self, result):
        self._test_index += 1
        if result.passed:
            self._emit(f"ok {self._test_index} - {result.name}")
        elif result.skipped:
            reason = result.skip_reason or "skipped"
            self._emit(f"ok {self._test_index} - {result.name} # SKIP {reason}")
        else:
            self._emit(f"not ok {self._test_index} - {result.name}")
            if result.fault is not None:
                self._emit_diagnostic(_fault_summary(result))
            if result.failure_count:
                self._emit_diagnostic(f"{_plural(result.failure_count, 'assertion')} failed")

    def iteration_finished(self, results, duration):
        pass

    def list_tests(self, instances):
        for descriptor in instances:
            self._emit(descriptor.full_name)

    def fatal(self, message):
        self._emit(f"Bail out! {message}")

    def help(self, text):
        self._emit_diagnostic(text)
