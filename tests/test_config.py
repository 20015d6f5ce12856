import unittest

from cutest.config import NameFilter, RunOptions, env_flag, parse_options
from cutest.registry import TestDescriptor


def descriptor(fixture, case, index=None):
    d = TestDescriptor(fixture, case, body=None)
    if index is not None:
        d.param_block = (None,) * (index + 1)
        d.param_index = index
    return d


class TestEnvironment(unittest.TestCase):
    def test_env_flag(self):
        self.assertTrue(env_flag({"X": "Yes"}, "X"))
        self.assertTrue(env_flag({"X": "1"}, "X"))
        self.assertFalse(env_flag({"X": "off"}, "X", default=True))
        self.assertTrue(env_flag({}, "X", default=True))

    def test_defaults(self):
        options = RunOptions.from_env({})
        self.assertEqual(options.protocol, "console")
        self.assertEqual(options.isolation, "inline")
        self.assertEqual(options.repeat, 1)
        self.assertIsNone(options.random_seed)
        self.assertFalse(options.break_on_failure)

    def test_environment_fallbacks(self):
        options = RunOptions.from_env({
            "CUTEST_TEST_PROTOCOL": "TAP",
            "CUTEST_BREAK_ON_FAILURE": "true",
            "CUTEST_ISOLATION": "fork",
            "CUTEST_RANDOM_SEED": "99",
        })
        self.assertEqual(options.protocol, "tap")
        self.assertTrue(options.break_on_failure)
        self.assertEqual(options.isolation, "fork")
        self.assertEqual(options.random_seed, 99)

    def test_invalid_environment_values_are_ignored(self):
        options = RunOptions.from_env({"CUTEST_ISOLATION": "thread", "CUTEST_RANDOM_SEED": "x"})
        self.assertEqual(options.isolation, "inline")
        self.assertIsNone(options.random_seed)


class TestParseOptions(unittest.TestCase):
    def test_flags(self):
        options, remaining = parse_options([
            "--test_filter=math.*",
            "--test_repeat=3",
            "--test_shuffle",
            "--test_random_seed=5",
            "--test_print_time",
            "--tap",
            "--test_color=no",
            "--gtest_unknown",
        ], environ={})
        self.assertEqual(options.filter, "math.*")
        self.assertEqual(options.repeat, 3)
        self.assertTrue(options.shuffle)
        self.assertEqual(options.random_seed, 5)
        self.assertTrue(options.print_time)
        self.assertEqual(options.protocol, "tap")
        self.assertEqual(options.color, "no")
        self.assertEqual(remaining, ["--gtest_unknown"])

    def test_command_line_overrides_environment(self):
        options, _ = parse_options(
            ["--test_isolation=inline", "--test_random_seed=1"],
            environ={"CUTEST_ISOLATION": "fork", "CUTEST_RANDOM_SEED": "2"},
        )
        self.assertEqual(options.isolation, "inline")
        self.assertEqual(options.random_seed, 1)

    def test_repeat_is_at_least_one(self):
        options, _ = parse_options(["--test_repeat=0"], environ={})
        self.assertEqual(options.repeat, 1)


class TestNameFilter(unittest.TestCase):
    def test_empty_filter_matches_everything(self):
        self.assertTrue(NameFilter(None).matches(descriptor("a", "b")))
        self.assertTrue(NameFilter("").matches(descriptor("a", "b")))

    def test_positive_patterns(self):
        name_filter = NameFilter("math.*:io.read")
        self.assertTrue(name_filter.matches(descriptor("math", "add")))
        self.assertTrue(name_filter.matches(descriptor("io", "read")))
        self.assertFalse(name_filter.matches(descriptor("io", "write")))

    def test_negative_patterns(self):
        name_filter = NameFilter("-*.slow*:db.*")
        self.assertTrue(name_filter.matches(descriptor("math", "add")))
        self.assertFalse(name_filter.matches(descriptor("math", "slow_add")))
        self.assertFalse(name_filter.matches(descriptor("db", "query")))

    def test_parameterized_instances(self):
        name_filter = NameFilter("p.c/1")
        self.assertTrue(name_filter.matches(descriptor("p", "c", index=1)))
        self.assertFalse(name_filter.matches(descriptor("p", "c", index=0)))
        self.assertTrue(NameFilter("p.c").matches(descriptor("p", "c", index=0)))


if __name__ == "__main__":
    unittest.main()
