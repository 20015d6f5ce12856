"""Case and type registries, plus the declaration layer that feeds them.

Declarations (``test``, ``test_f``, ``test_p``, ``fixture_setup``, ...) do not
touch the registries directly. Each one queues a registration closure tagged
with a sequence number; :meth:`Registry.initialize` replays the queue once,
fixture level declarations first, then cases in declaration order. This keeps
the result independent of the order in which test modules happen to define
setups relative to the cases that use them.
"""

import enum
import functools
import itertools
from dataclasses import dataclass
from typing import Any, Callable, Iterator, Optional, Tuple

from .errors import DeclarationError, DuplicateCaseError
from .rbtree import RBTree, bytewise_compare

# Fixture setups/teardowns and parameter arrays must be known before any case
# that refers to them is registered.
_STAGE_FIXTURE = 0
_STAGE_CASE = 1


class CaseMask(enum.IntFlag):
    NONE = 0
    SKIPPED = 1


@dataclass(eq=False)
class TestDescriptor:
    fixture_name: str
    case_name: str
    body: Callable[[Any, int], None]
    setup: Optional[Callable[[], None]] = None
    teardown: Optional[Callable[[], None]] = None
    param_block: Optional[Tuple[Any, ...]] = None
    param_index: int = 0
    type_name: Optional[str] = None
    mask: CaseMask = CaseMask.NONE
    sort_key: int = 0

    # keep pytest from collecting this class from test modules that import it
    __test__ = False

    @property
    def key(self):
        return (self.fixture_name, self.case_name, self.param_index)

    @property
    def is_parameterized(self):
        return self.param_block is not None

    @property
    def param_count(self):
        return 0 if self.param_block is None else len(self.param_block)

    @property
    def full_name(self):
        name = f"{self.fixture_name}.{self.case_name}"
        if self.is_parameterized:
            name += f"/{self.param_index}"
        return name


@dataclass(eq=False)
class TypeDescriptor:
    type_name: str
    compare: Callable[[Any, Any], int]
    dump: Callable[[Any, Any], int]


def _compare_case_keys(a, b):
    ret = bytewise_compare(a[0].encode("utf-8"), b[0].encode("utf-8"))
    if ret != 0:
        return ret
    ret = bytewise_compare(a[1].encode("utf-8"), b[1].encode("utf-8"))
    if ret != 0:
        return ret
    if a[2] == b[2]:
        return 0
    return -1 if a[2] < b[2] else 1


def _compare_type_keys(a, b):
    return bytewise_compare(a.encode("utf-8"), b.encode("utf-8"))


class CaseRegistry:
    def __init__(self):
        self._tree = RBTree(_compare_case_keys)

    def __len__(self):
        return len(self._tree)

    def __iter__(self) -> Iterator[TestDescriptor]:
        return iter(self._tree)

    def register(self, descriptor: TestDescriptor):
        if not self._tree.insert(descriptor.key, descriptor):
            raise DuplicateCaseError(descriptor.key)

    def register_all(self, descriptors):
        """Register every descriptor or, on any conflict, none of them."""
        seen = set()
        for descriptor in descriptors:
            if descriptor.key in seen or descriptor.key in self._tree:
                raise DuplicateCaseError(descriptor.key)
            seen.add(descriptor.key)
        for descriptor in descriptors:
            self._tree.insert(descriptor.key, descriptor)

    def find(self, key) -> Optional[TestDescriptor]:
        return self._tree.find(key)

    def in_order(self):
        return list(self._tree)


class TypeRegistry:
    def __init__(self):
        self._tree = RBTree(_compare_type_keys)

    def __len__(self):
        return len(self._tree)

    def __iter__(self) -> Iterator[TypeDescriptor]:
        return iter(self._tree)

    def register(self, descriptor: TypeDescriptor) -> bool:
        """Returns False (and keeps the first comparator) on re-registration."""
        return self._tree.insert(descriptor.type_name, descriptor)

    def find(self, type_name) -> Optional[TypeDescriptor]:
        return self._tree.find(type_name)


def _ignore_param(func):
    @functools.wraps(func)
    def body(param_block, param_index):
        return func()

    return body


class Registry:
    def __init__(self):
        self.cases = CaseRegistry()
        self.types = TypeRegistry()
        self._sequence = itertools.count()
        self._pending = []
        self._setups = {}
        self._teardowns = {}
        self._parameters = {}

    @property
    def pending(self):
        return len(self._pending)

    def _declare(self, stage, closure):
        self._pending.append((stage, next(self._sequence), closure))

    def initialize(self):
        """Run every queued registration closure exactly once.

        A closure leaves the queue only once it has succeeded, so a failed
        declaration fails every later call too instead of vanishing.
        """
        self._pending.sort(key=lambda item: (item[0], item[1]))
        while self._pending:
            _, _, closure = self._pending[0]
            closure()
            self._pending.pop(0)
        return len(self.cases)

    # -- fixture level declarations -------------------------------------

    def fixture_setup(self, fixture):
        def decorator(func):
            self._declare(
                _STAGE_FIXTURE,
                lambda: self._store_fixture_proc(self._setups, "setup", fixture, func),
            )
            return func

        return decorator

    def fixture_teardown(self, fixture):
        def decorator(func):
            self._declare(
                _STAGE_FIXTURE,
                lambda: self._store_fixture_proc(self._teardowns, "teardown", fixture, func),
            )
            return func

        return decorator

    @staticmethod
    def _store_fixture_proc(table, what, fixture, func):
        if fixture in table:
            raise DeclarationError(f"fixture {fixture} declares {what} twice")
        table[fixture] = func

    def parameterized(self, fixture, case, type_name, *values):
        values = tuple(values)

        def register():
            if not values:
                raise DeclarationError(f"{fixture}.{case} declares an empty parameter array")
            if (fixture, case) in self._parameters:
                raise DeclarationError(f"{fixture}.{case} declares parameters twice")
            self._parameters[(fixture, case)] = (type_name, values)

        self._declare(_STAGE_FIXTURE, register)
        return values

    # -- case declarations ----------------------------------------------

    def test(self, fixture, case):
        """Standalone case: no setup or teardown, body takes no arguments."""

        def decorator(func):
            self._declare(
                _STAGE_CASE,
                lambda: self.cases.register(
                    TestDescriptor(fixture, case, body=_ignore_param(func))
                ),
            )
            return func

        return decorator

    def test_f(self, fixture, case):
        """Fixture case sharing the fixture's setup and teardown."""

        def decorator(func):
            def register():
                self.cases.register(
                    TestDescriptor(
                        fixture,
                        case,
                        body=_ignore_param(func),
                        setup=self._setups.get(fixture),
                        teardown=self._teardowns.get(fixture),
                    )
                )

            self._declare(_STAGE_CASE, register)
            return func

        return decorator

    def test_p(self, fixture, case):
        """Parameterized case; the body is called as ``body(param_block, param_index)``."""

        def decorator(func):
            def register():
                entry = self._parameters.get((fixture, case))
                if entry is None:
                    raise DeclarationError(
                        f"{fixture}.{case} has no parameterized() declaration"
                    )
                type_name, values = entry
                self.cases.register_all([
                    TestDescriptor(
                        fixture,
                        case,
                        body=func,
                        setup=self._setups.get(fixture),
                        teardown=self._teardowns.get(fixture),
                        param_block=values,
                        param_index=index,
                        type_name=type_name,
                    )
                    for index in range(len(values))
                ])

            self._declare(_STAGE_CASE, register)
            return func

        return decorator

    def register_case(self, descriptor: TestDescriptor):
        self.cases.register(descriptor)

    def register_type(self, type_name, compare=None, dump=None):
        """Register a custom comparator, given as its parts or as a TypeDescriptor."""
        if isinstance(type_name, TypeDescriptor):
            return self.types.register(type_name)
        return self.types.register(TypeDescriptor(type_name, compare, dump))


_DEFAULT_REGISTRY = Registry()


def default_registry() -> Registry:
    return _DEFAULT_REGISTRY
