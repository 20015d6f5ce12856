import importlib
import importlib.util
import os
import sys

from .errors import DiscoveryError

TEST_MODULE_PREFIX = "test_"


def _import_path(path):
    path = os.path.abspath(path)
    directory = os.path.dirname(path)
    module_name = os.path.splitext(os.path.basename(path))[0]
    # sibling helpers of the test module must be importable
    if directory not in sys.path:
        sys.path.insert(0, directory)
    spec = importlib.util.spec_from_file_location(module_name, path)
    if spec is None or spec.loader is None:
        raise ImportError(f"cannot load {path}")
    module = importlib.util.module_from_spec(spec)
    sys.modules[module_name] = module
    try:
        spec.loader.exec_module(module)
    except BaseException:
        sys.modules.pop(module_name, None)
        raise
    return module


def import_target(target):
    """Import a test module given as a dotted name or a ``.py`` path.

    Importing is all that is needed: the module's declarations queue their
    registrations on the default registry.
    """
    try:
        if target.endswith(".py") or os.sep in target:
            return _import_path(target)
        return importlib.import_module(target)
    except (ImportError, SyntaxError, OSError) as e:
        print(f"--- Error importing test module {target}: {e} ---", file=sys.stderr)
        raise DiscoveryError(f"cannot import {target}: {e}") from e


def find_test_modules(directory):
    """Sorted paths of the ``test_*.py`` files directly inside ``directory``."""
    return [
        os.path.join(directory, name)
        for name in sorted(os.listdir(directory))
        if name.startswith(TEST_MODULE_PREFIX) and name.endswith(".py")
    ]


def load_targets(targets):
    modules = []
    for target in targets:
        if os.path.isdir(target):
            for path in find_test_modules(target):
                modules.append(import_target(path))
        else:
            modules.append(import_target(target))
    return modules
