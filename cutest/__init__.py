"""cutest: an xUnit style framework with fault isolation.

Declare cases with the decorators below, then call :func:`run_tests` (or run
``python -m cutest your_tests.py``)::

    import cutest

    @cutest.test_f("math", "add")
    def add():
        cutest.EXPECT.eq("int", 2 + 2, 4)

    raise SystemExit(cutest.run_tests())
"""

from .assertion import ASSERT, EXPECT, check
from .cli import main
from .config import RunOptions
from .context import (
    CaseState,
    Phase,
    RunResult,
    current_fixture,
    current_test,
    get_param,
    skip_current_test,
)
from .errors import (
    CutestAbort,
    CutestError,
    DeclarationError,
    DuplicateCaseError,
    FatalError,
    IsolationUnavailableError,
    MissingComparatorError,
    RegistrationError,
)
from .harness import Hooks, Runner, run_tests
from .registry import Registry, TestDescriptor, TypeDescriptor, default_registry

__version__ = "1.0.7"

_registry = default_registry()

test = _registry.test
test_f = _registry.test_f
test_p = _registry.test_p
fixture_setup = _registry.fixture_setup
fixture_teardown = _registry.fixture_teardown
parameterized = _registry.parameterized
register_case = _registry.register_case
register_type = _registry.register_type
