"""Exception taxonomy shared by the registry, the comparison engine and the harness."""


class CutestError(Exception):
    """Base class for every error raised by cutest itself."""


class FatalError(CutestError):
    """An error that terminates the whole run.

    The fault guard never converts these into a failed test; they always
    propagate up to ``run_tests``, which reports them and exits with status 2.
    """


class CutestAbort(FatalError):
    """Raised by :func:`cutest.porting.abort`."""


class RegistrationError(FatalError):
    pass


class DuplicateCaseError(RegistrationError):
    def __init__(self, key):
        self.key = key
        fixture_name, case_name, param_index = key
        super().__init__(
            f"duplicate test case {fixture_name}.{case_name} (index {param_index})"
        )


class DeclarationError(RegistrationError):
    pass


class MissingComparatorError(CutestAbort):
    def __init__(self, type_name):
        self.type_name = type_name
        super().__init__(
            f"no comparator registered for type `{type_name}'; "
            "register it with register_type() before running tests"
        )


class IsolationUnavailableError(FatalError):
    pass


class DiscoveryError(FatalError):
    pass


class HookError(FatalError):
    """A ``before_all_test`` or ``after_all_test`` hook crashed."""
