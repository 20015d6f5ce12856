"""``python -m cutest MODULE... [--test_* options]``"""

import sys

from .discover import load_targets
from .errors import FatalError
from .harness import EXIT_FATAL, run_tests


VALUE_OPTIONS = (
    "--test_filter",
    "--test_repeat",
    "--test_random_seed",
    "--test_isolation",
    "--test_color",
)


def split_argv(argv):
    """Separate positional module targets from option arguments."""
    targets = []
    options = []
    args = iter(argv)
    for arg in args:
        if not arg.startswith("-"):
            targets.append(arg)
            continue
        options.append(arg)
        if arg in VALUE_OPTIONS:
            value = next(args, None)
            if value is not None:
                options.append(value)
    return targets, options


def main(argv=None):
    if argv is None:
        argv = sys.argv[1:]
    targets, options = split_argv(argv)
    try:
        load_targets(targets)
    except FatalError as e:
        print(f"--- cutest: {e} ---", file=sys.stderr)
        return EXIT_FATAL
    return run_tests(options)
