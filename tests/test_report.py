import io
import unittest

from cutest.context import CaseState, Phase, RunResult
from cutest.fault import Fault
from cutest.registry import TestDescriptor
from cutest.report import ConsoleReporter, TAPReporter


def make_result(fixture, case, state, index=None, **fields):
    descriptor = TestDescriptor(fixture, case, body=None)
    if index is not None:
        descriptor.param_block = (0,) * (index + 1)
        descriptor.param_index = index
    result = RunResult(descriptor, state=state)
    for name, value in fields.items():
        setattr(result, name, value)
    return result


class TestConsoleReporter(unittest.TestCase):
    def setUp(self):
        self.out = io.StringIO()

    def test_progress_lines(self):
        reporter = ConsoleReporter(self.out)
        passed = make_result("math", "add", CaseState.PASSED)
        reporter.test_started(passed.descriptor)
        reporter.test_finished(passed)
        reporter.test_finished(make_result("math", "div0", CaseState.FAILED))
        reporter.test_finished(make_result("math", "slow", CaseState.SKIPPED))
        self.assertEqual(self.out.getvalue().splitlines(), [
            "[ RUN      ] math.add",
            "[       OK ] math.add",
            "[  FAILED  ] math.div0",
            "[  SKIP    ] math.slow",
        ])

    def test_summary(self):
        reporter = ConsoleReporter(self.out)
        results = [
            make_result("a", "ok", CaseState.PASSED),
            make_result("a", "bad", CaseState.FAILED),
            make_result("a", "later", CaseState.SKIPPED),
        ]
        reporter.iteration_finished(results, 0.0)
        output = self.out.getvalue()
        self.assertIn("[==========] 2 tests ran.", output)
        self.assertIn("[  PASSED  ] 1 test.", output)
        self.assertIn("[  SKIPPED ] 1 test, listed below:", output)
        self.assertIn("[  FAILED  ] 1 test, listed below:\n[  FAILED  ] a.bad\n", output)
        self.assertNotIn("Slowest", output)

    def test_print_time(self):
        reporter = ConsoleReporter(self.out, print_time=True)
        fast = make_result("t", "fast", CaseState.PASSED, duration=0.001)
        slow = make_result("t", "slow", CaseState.PASSED, duration=0.25)
        reporter.test_finished(slow)
        reporter.iteration_finished([fast, slow], 0.251)
        output = self.out.getvalue()
        self.assertIn("[       OK ] t.slow (250 ms)", output)
        self.assertIn("(251 ms total)", output)
        slowest = output.split("Slowest tests:\n", 1)[1].splitlines()
        self.assertEqual(slowest[0], "  0.250s | t.slow")

    def test_colors(self):
        reporter = ConsoleReporter(self.out, use_color=True)
        reporter.test_finished(make_result("f", "c", CaseState.FAILED))
        self.assertEqual(self.out.getvalue(), "\033[31m[  FAILED  ]\033[0m f.c\n")

    def test_list_tests_groups_by_fixture(self):
        reporter = ConsoleReporter(self.out)
        descriptors = [
            make_result("a", "x", CaseState.PENDING).descriptor,
            make_result("a", "p", CaseState.PENDING, index=1).descriptor,
            make_result("b", "y", CaseState.PENDING).descriptor,
        ]
        reporter.list_tests(descriptors)
        self.assertEqual(self.out.getvalue(), "a.\n  x\n  p/1\nb.\n  y\n")


class TestTAPReporter(unittest.TestCase):
    def setUp(self):
        self.out = io.StringIO()
        self.reporter = TAPReporter(self.out)

    def lines(self):
        return self.out.getvalue().splitlines()

    def test_plan_covers_every_iteration(self):
        self.reporter.iteration_started(0, 3, [object(), object()])
        self.reporter.iteration_started(1, 3, [object(), object()])
        self.assertEqual(self.lines(), ["1..6"])

    def test_result_lines(self):
        self.reporter.test_finished(make_result("f", "a", CaseState.PASSED))
        self.reporter.test_finished(
            make_result("f", "b", CaseState.SKIPPED, skip_reason="disabled")
        )
        self.reporter.test_finished(make_result("f", "c", CaseState.FAILED, failure_count=2))
        self.assertEqual(self.lines(), [
            "ok 1 - f.a",
            "ok 2 - f.b # SKIP disabled",
            "not ok 3 - f.c",
            "# 2 assertions failed",
        ])

    def test_fault_diagnostic(self):
        result = make_result(
            "f", "p", CaseState.FAILED, index=0,
            fault=Fault.from_signal(11), fault_phase=Phase.BODY,
        )
        self.reporter.test_finished(result)
        self.assertEqual(self.lines(), [
            "not ok 1 - f.p/0",
            "# f.p/0 crashed during body: SIGSEGV",
        ])

    def test_diagnostics_are_comments(self):
        self.reporter.diagnostic("file.py:3:failure:\n    actual: 1 vs 2\n")
        self.assertEqual(self.lines(), ["# file.py:3:failure:", "#     actual: 1 vs 2"])

    def test_bail_out(self):
        self.reporter.fatal("duplicate test case f.c (index 0)")
        self.assertEqual(self.lines(), ["Bail out! duplicate test case f.c (index 0)"])


if __name__ == "__main__":
    unittest.main()
