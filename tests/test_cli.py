import contextlib
import io
import os
import shutil
import tempfile
import textwrap
import unittest

from cutest.cli import main, split_argv
from cutest.discover import find_test_modules, import_target, load_targets
from cutest.errors import DiscoveryError
from cutest.harness import EXIT_FAILURE, EXIT_FATAL, EXIT_SUCCESS

SAMPLE_MODULE = textwrap.dedent("""\
    import cutest

    @cutest.fixture_setup("{fixture}")
    def setup():
        pass

    @cutest.test_f("{fixture}", "add")
    def add():
        cutest.EXPECT.eq("int", 2 + 2, 4)

    @cutest.test_f("{fixture}", "compare")
    def compare():
        cutest.EXPECT.eq("int", 1, {expected})
""")


class TempModulesMixin:
    def setUp(self):
        self.directory = tempfile.mkdtemp(prefix="cutest_cli_")

    def tearDown(self):
        shutil.rmtree(self.directory, ignore_errors=True)

    def write_module(self, name, text):
        path = os.path.join(self.directory, name)
        with open(path, "w") as f:
            f.write(text)
        return path


class TestSplitArgv(unittest.TestCase):
    def test_targets_and_options(self):
        targets, options = split_argv(
            ["tests/test_a.py", "--test_filter", "a.*", "pkg.mod", "--tap"]
        )
        self.assertEqual(targets, ["tests/test_a.py", "pkg.mod"])
        self.assertEqual(options, ["--test_filter", "a.*", "--tap"])

    def test_inline_values(self):
        targets, options = split_argv(["--test_repeat=2", "mod"])
        self.assertEqual(targets, ["mod"])
        self.assertEqual(options, ["--test_repeat=2"])


class TestMain(TempModulesMixin, unittest.TestCase):
    def run_main(self, argv):
        out = io.StringIO()
        with contextlib.redirect_stdout(out):
            status = main(argv)
        return status, out.getvalue()

    def test_passing_module(self):
        path = self.write_module(
            "cli_pass_sample.py", SAMPLE_MODULE.format(fixture="cli_pass", expected=1)
        )
        status, output = self.run_main([path, "--test_filter=cli_pass.*"])
        self.assertEqual(status, EXIT_SUCCESS)
        self.assertIn("[       OK ] cli_pass.add", output)
        self.assertIn("[       OK ] cli_pass.compare", output)

    def test_failing_module(self):
        path = self.write_module(
            "cli_fail_sample.py", SAMPLE_MODULE.format(fixture="cli_fail", expected=2)
        )
        status, output = self.run_main([path, "--test_filter", "cli_fail.*"])
        self.assertEqual(status, EXIT_FAILURE)
        self.assertIn("[  FAILED  ] cli_fail.compare", output)
        self.assertIn("expected: `1' == `2'", output)

    def test_unimportable_module(self):
        status, _ = self.run_main([os.path.join(self.directory, "missing_sample.py")])
        self.assertEqual(status, EXIT_FATAL)


class TestDiscovery(TempModulesMixin, unittest.TestCase):
    def test_find_test_modules(self):
        for name in ("test_b.py", "helper.py", "test_a.py", "test_c.txt"):
            self.write_module(name, "")
        found = [os.path.basename(p) for p in find_test_modules(self.directory)]
        self.assertEqual(found, ["test_a.py", "test_b.py"])

    def test_import_by_path_makes_siblings_importable(self):
        self.write_module("disc_helper_sample.py", "VALUE = 42\n")
        path = self.write_module(
            "disc_user_sample.py", "from disc_helper_sample import VALUE\n"
        )
        module = import_target(path)
        self.assertEqual(module.VALUE, 42)

    def test_import_by_name(self):
        self.assertEqual(import_target("cutest.rbtree").__name__, "cutest.rbtree")

    def test_syntax_error(self):
        path = self.write_module("disc_broken_sample.py", "def broken(:\n")
        with self.assertRaises(DiscoveryError):
            import_target(path)

    def test_missing_module(self):
        with self.assertRaises(DiscoveryError):
            import_target("cutest_no_such_module")

    def test_load_directory(self):
        self.write_module("test_disc_one.py", "NAME = 'one'\n")
        self.write_module("test_disc_two.py", "NAME = 'two'\n")
        modules = load_targets([self.directory])
        self.assertEqual([m.NAME for m in modules], ["one", "two"])


if __name__ == "__main__":
    unittest.main()
