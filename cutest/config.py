"""Run options: environment defaults overridden by command line flags."""

import argparse
import fnmatch
import os
from dataclasses import dataclass
from typing import Optional

PROTOCOLS = ("console", "tap")
ISOLATION_MODES = ("inline", "fork")
COLOR_MODES = ("auto", "yes", "no")

TRUTHY = ("1", "true", "yes")


def env_flag(environ, name, default=False):
    value = environ.get(name)
    if value is None:
        return default
    return value.lower() in TRUTHY


@dataclass
class RunOptions:
    filter: Optional[str] = None
    list_tests: bool = False
    also_run_disabled_tests: bool = False
    repeat: int = 1
    shuffle: bool = False
    random_seed: Optional[int] = None
    reverse: bool = False
    print_time: bool = False
    break_on_failure: bool = False
    protocol: str = "console"
    isolation: str = "inline"
    color: str = "auto"
    show_help: bool = False

    @classmethod
    def from_env(cls, environ=None):
        if environ is None:
            environ = os.environ
        options = cls()
        if environ.get("CUTEST_TEST_PROTOCOL", "").lower() == "tap":
            options.protocol = "tap"
        options.break_on_failure = env_flag(environ, "CUTEST_BREAK_ON_FAILURE")
        isolation = environ.get("CUTEST_ISOLATION", "").lower()
        if isolation in ISOLATION_MODES:
            options.isolation = isolation
        seed = environ.get("CUTEST_RANDOM_SEED")
        if seed:
            try:
                options.random_seed = int(seed)
            except ValueError:
                pass
        return options


def build_parser():
    parser = argparse.ArgumentParser(
        prog="cutest",
        add_help=False,
        description="Run the registered test cases.",
    )
    parser.add_argument("-h", "--help", dest="show_help", action="store_true",
                        help="Show this help and exit.")
    parser.add_argument("--test_filter", metavar="POS[:POS][-NEG[:NEG]]",
                        help="Only run tests whose `fixture.case` name matches a positive "
                             "glob and none of the negative ones.")
    parser.add_argument("--test_list_tests", action="store_true",
                        help="List the tests that would run, then exit.")
    parser.add_argument("--test_also_run_disabled_tests", action="store_true",
                        help="Run tests whose fixture or case starts with DISABLED_.")
    parser.add_argument("--test_repeat", type=int, metavar="N",
                        help="Run every test N times.")
    parser.add_argument("--test_shuffle", action="store_true",
                        help="Randomize the order of tests.")
    parser.add_argument("--test_random_seed", type=int, metavar="SEED",
                        help="Seed used by --test_shuffle.")
    parser.add_argument("--test_reverse", action="store_true",
                        help="Run tests in reverse registration order.")
    parser.add_argument("--test_print_time", action="store_true",
                        help="Print the elapsed time of each test.")
    parser.add_argument("--test_break_on_failure", action="store_true",
                        help="Enter the debugger when an assertion fails.")
    parser.add_argument("--tap", action="store_true",
                        help="Emit TAP instead of the console report.")
    parser.add_argument("--test_isolation", choices=ISOLATION_MODES,
                        help="Run each test inline (default) or in a forked child.")
    parser.add_argument("--test_color", choices=COLOR_MODES,
                        help="Colorize console output.")
    return parser


def parse_options(argv, environ=None):
    """Return ``(RunOptions, unrecognized_args)``."""
    options = RunOptions.from_env(environ)
    args, remaining = build_parser().parse_known_args(list(argv))

    options.show_help = args.show_help
    if args.test_filter is not None:
        options.filter = args.test_filter
    options.list_tests = args.test_list_tests
    options.also_run_disabled_tests = args.test_also_run_disabled_tests
    if args.test_repeat is not None:
        options.repeat = max(1, args.test_repeat)
    options.shuffle = args.test_shuffle
    if args.test_random_seed is not None:
        options.random_seed = args.test_random_seed
    options.reverse = args.test_reverse
    options.print_time = args.test_print_time
    if args.test_break_on_failure:
        options.break_on_failure = True
    if args.tap:
        options.protocol = "tap"
    if args.test_isolation is not None:
        options.isolation = args.test_isolation
    if args.test_color is not None:
        options.color = args.test_color
    return options, remaining


class NameFilter:
    """gtest style filter: ``pos1:pos2-neg1:neg2``.

    An empty positive part means "everything". Patterns are shell globs
    matched against ``fixture.case`` and against the full instance name.
    """

    def __init__(self, expression=None):
        self.expression = expression
        positive, _, negative = (expression or "").partition("-")
        self.positive = [p for p in positive.split(":") if p] or ["*"]
        self.negative = [p for p in negative.split(":") if p]

    def matches(self, descriptor):
        names = (f"{descriptor.fixture_name}.{descriptor.case_name}", descriptor.full_name)
        if not any(fnmatch.fnmatchcase(name, p) for name in names for p in self.positive):
            return False
        return not any(fnmatch.fnmatchcase(name, p) for name in names for p in self.negative)
