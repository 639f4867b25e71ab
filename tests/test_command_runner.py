import subprocess
import sys
import unittest

import command_runner


class RunCommandTests(unittest.TestCase):
    def test_captured_output_is_returned(self) -> None:
        result = command_runner.run_command(
            [sys.executable, "-c", "print('hello'); print('world')"],
            capture_output=True,
        )

        self.assertTrue(result.ok)
        self.assertEqual(0, result.returncode)
        self.assertEqual("hello\nworld\n", result.output)
        self.assertEqual(sys.executable, result.args[0])

    def test_streamed_output_merges_stderr(self) -> None:
        result = command_runner.run_command(
            [sys.executable, "-c", "import sys; print('out'); print('err', file=sys.stderr)"],
        )

        self.assertIn("out\n", result.output)
        self.assertIn("err\n", result.output)

    def test_nonzero_exit_raises_with_output(self) -> None:
        with self.assertRaises(subprocess.CalledProcessError) as ctx:
            command_runner.run_command(
                [sys.executable, "-c", "import sys; print('configure: error: no compiler'); sys.exit(3)"],
                capture_output=True,
            )

        self.assertEqual(3, ctx.exception.returncode)
        self.assertIn("configure: error: no compiler", ctx.exception.output)

    def test_check_false_returns_structured_result(self) -> None:
        result = command_runner.run_command(
            [sys.executable, "-c", "import sys; sys.exit(2)"],
            check=False,
            capture_output=True,
        )

        self.assertFalse(result.ok)
        self.assertEqual(2, result.returncode)

    def test_command_is_logged(self) -> None:
        with self.assertLogs(command_runner.LOG, level="INFO") as logs:
            command_runner.run_command([sys.executable, "-c", "pass"], capture_output=True)

        self.assertIn("$ ", "\n".join(logs.output))

    def test_carriage_returns_split_segments(self) -> None:
        self.assertEqual(["a", "b"], command_runner._iter_output_segments("a\rb\n"))
        self.assertEqual([], command_runner._iter_output_segments(""))


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
