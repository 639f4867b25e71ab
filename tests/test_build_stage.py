import os
import subprocess
import tempfile
import unittest
from pathlib import Path
from unittest import mock

import build_stage
from command_runner import CommandResult
from pipeline_errors import BuildError
from toolchain import BuildConfiguration, ToolchainSpec, configure_arguments


class BuildStageTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tempdir = tempfile.TemporaryDirectory()
        self.source = Path(self._tempdir.name)
        spec = ToolchainSpec()
        self.configuration = BuildConfiguration(spec, self.source, configure_arguments(spec))

    def tearDown(self) -> None:
        self._tempdir.cleanup()

    def _write_configuration(self, configure_mtime: float, status_mtime: float) -> None:
        for name, mtime in (("configure", configure_mtime), ("config.status", status_mtime)):
            path = self.source / name
            path.touch()
            os.utime(path, (mtime, mtime))

    def test_refuses_unconfigured_tree(self) -> None:
        with mock.patch("build_stage.run_command") as run_mock:
            with self.assertRaises(BuildError):
                build_stage.build_tree(self.configuration)

        run_mock.assert_not_called()

    def test_refuses_stale_configuration(self) -> None:
        self._write_configuration(configure_mtime=2_000, status_mtime=1_000)

        with mock.patch("build_stage.run_command") as run_mock:
            with self.assertRaises(BuildError) as ctx:
                build_stage.build_tree(self.configuration)

        self.assertIn("Re-run the configure step", str(ctx.exception))
        run_mock.assert_not_called()

    def test_parallelism_matches_cpu_count(self) -> None:
        self._write_configuration(configure_mtime=1_000, status_mtime=2_000)

        with mock.patch("build_stage.os.cpu_count", return_value=8), mock.patch(
            "build_stage.run_command", return_value=CommandResult(["make"], 0)
        ) as run_mock:
            build_stage.build_tree(self.configuration)

        self.assertEqual(["make", "-j8"], run_mock.call_args.args[0])
        self.assertEqual(self.source, run_mock.call_args.kwargs["cwd"])
        self.assertIn("TARGET_CC", run_mock.call_args.kwargs["env"])

    def test_unknown_cpu_count_falls_back_to_one_job(self) -> None:
        with mock.patch("build_stage.os.cpu_count", return_value=None):
            self.assertEqual(1, build_stage.default_jobs())

    def test_compiler_failure_raises_build_error(self) -> None:
        self._write_configuration(configure_mtime=1_000, status_mtime=2_000)
        error = subprocess.CalledProcessError(2, ["make", "-j4"], output="ld: undefined reference\n")

        with mock.patch("build_stage.run_command", side_effect=error):
            with self.assertRaises(BuildError) as ctx:
                build_stage.build_tree(self.configuration, jobs=4)

        self.assertIn("exit code 2", str(ctx.exception))
        self.assertEqual("ld: undefined reference\n", ctx.exception.output)

    def test_install_uses_absolute_destdir(self) -> None:
        with mock.patch("build_stage.run_command", return_value=CommandResult(["make"], 0)) as run_mock:
            install_dir = build_stage.install_tree(self.configuration, self.source / "install")

        self.assertTrue(install_dir.is_absolute())
        self.assertTrue(install_dir.is_dir())
        self.assertEqual(["make", f"DESTDIR={install_dir}", "install"], run_mock.call_args.args[0])

    def test_install_failure_raises_build_error(self) -> None:
        error = subprocess.CalledProcessError(2, ["make", "install"])
        with mock.patch("build_stage.run_command", side_effect=error):
            with self.assertRaises(BuildError):
                build_stage.install_tree(self.configuration, self.source / "install")

    def test_clean_tolerates_make_failure_and_removes_cache(self) -> None:
        cache = self.source / "autom4te.cache"
        cache.mkdir()
        (cache / "requests").touch()

        with mock.patch("build_stage.run_command", return_value=CommandResult(["make", "clean"], 2)):
            build_stage.clean_tree(self.source)

        self.assertFalse(cache.exists())

    def test_clean_tolerates_missing_make(self) -> None:
        with mock.patch("build_stage.run_command", side_effect=FileNotFoundError("make")):
            build_stage.clean_tree(self.source)


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
