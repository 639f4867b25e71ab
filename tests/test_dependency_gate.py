import unittest
from unittest import mock

import dependency_gate
import host_bootstrap
from pipeline_errors import MissingDependency
from toolchain import ToolchainSpec


class CheckDependenciesTests(unittest.TestCase):
    def setUp(self) -> None:
        self.spec = ToolchainSpec()

    def test_nothing_installed_reports_autoconf_first(self) -> None:
        with mock.patch("dependency_gate.shutil.which", return_value=None):
            with self.assertLogs(dependency_gate.LOG, level="ERROR") as logs:
                with self.assertRaises(MissingDependency) as ctx:
                    dependency_gate.check_dependencies(self.spec)

        self.assertEqual("autoconf", ctx.exception.tool)
        self.assertIn("autoconf", str(ctx.exception))
        log_text = "\n".join(logs.output)
        self.assertIn("'bison'", log_text)
        self.assertIn(self.spec.compiler, log_text)

    def test_missing_cross_compiler_only(self) -> None:
        def which(command: str, path: str | None = None) -> str | None:
            return None if command == self.spec.compiler else f"/usr/bin/{command}"

        with mock.patch("dependency_gate.shutil.which", side_effect=which):
            with self.assertRaises(MissingDependency) as ctx:
                dependency_gate.check_dependencies(self.spec)

        self.assertEqual("loongarch64-unknown-linux-gnu-gcc", ctx.exception.tool)

    def test_all_tools_present_passes(self) -> None:
        with mock.patch("dependency_gate.shutil.which", side_effect=lambda cmd, path=None: f"/usr/bin/{cmd}"):
            dependency_gate.check_dependencies(self.spec)

    def test_custom_compiler_is_checked(self) -> None:
        spec = ToolchainSpec(target_cc="/opt/cross/bin/la64-gcc")
        requirements = dependency_gate.build_requirements(spec)

        self.assertEqual("/opt/cross/bin/la64-gcc", requirements[-1])
        self.assertEqual(list(dependency_gate.REQUIRED_HOST_TOOLS), requirements[:-1])

    def test_sbin_is_searched(self) -> None:
        with mock.patch("dependency_gate.shutil.which", return_value="/sbin/mkfs.fat") as which_mock:
            self.assertEqual("/sbin/mkfs.fat", dependency_gate.resolve_tool("mkfs.fat"))

        search_path = which_mock.call_args.kwargs["path"]
        self.assertIn("/sbin", search_path.split(":"))
        self.assertIn("/usr/sbin", search_path.split(":"))


def test_every_build_requirement_has_an_install_hint() -> None:
    for tool in dependency_gate.build_requirements(ToolchainSpec()):
        assert tool in dependency_gate.DEPENDENCY_HINTS
        assert tool in host_bootstrap.APT_PACKAGE_MAP
        assert tool in host_bootstrap.DNF_PACKAGE_MAP


def test_boot_tools_have_install_hints() -> None:
    for tool in (*dependency_gate.BOOT_TOOLS, dependency_gate.EMULATOR_BINARY):
        assert tool in dependency_gate.DEPENDENCY_HINTS


class HostBootstrapTests(unittest.TestCase):
    def tearDown(self) -> None:
        host_bootstrap.set_bootstrap_enabled(False)

    def test_disabled_bootstrap_never_installs(self) -> None:
        host_bootstrap.set_bootstrap_enabled(False)
        with mock.patch("dependency_gate.resolve_tool", return_value=None), mock.patch(
            "host_bootstrap.install_packages"
        ) as install_mock:
            remaining = host_bootstrap.ensure_commands(["flex", "bison"])

        self.assertEqual(["flex", "bison"], remaining)
        install_mock.assert_not_called()

    def test_enabled_bootstrap_installs_mapped_packages(self) -> None:
        host_bootstrap.set_bootstrap_enabled(True)
        installed: set[str] = set()

        def resolve(command: str) -> str | None:
            return f"/usr/bin/{command}" if command in installed else None

        def install(manager: host_bootstrap.PackageManager, packages: list[str], logger: object) -> None:
            installed.update(["flex", "bison"])

        with mock.patch("dependency_gate.resolve_tool", side_effect=resolve), mock.patch(
            "host_bootstrap.shutil.which", side_effect=lambda command: "/usr/bin/apt-get" if command == "apt-get" else None
        ), mock.patch("host_bootstrap.install_packages", side_effect=install) as install_mock:
            remaining = host_bootstrap.ensure_commands(["flex", "bison"])

        self.assertEqual([], remaining)
        install_mock.assert_called_once()
        manager, packages = install_mock.call_args.args[:2]
        self.assertEqual("apt-get", manager.command)
        self.assertEqual(["bison", "flex"], packages)

    def test_missing_tools_agree_with_gate(self) -> None:
        host_bootstrap.set_bootstrap_enabled(True)

        def resolve(command: str) -> str | None:
            return "/sbin/make" if command == "make" else None

        with mock.patch("dependency_gate.resolve_tool", side_effect=resolve), mock.patch(
            "host_bootstrap.detect_package_manager", return_value=None
        ):
            remaining = host_bootstrap.ensure_commands(["make", "bison"])

        self.assertEqual(["bison"], remaining)

    def test_cross_compiler_maps_to_distribution_package(self) -> None:
        compiler = ToolchainSpec().compiler
        manager = host_bootstrap.PackageManager("dnf", host_bootstrap.DNF_PACKAGE_MAP)

        self.assertEqual(
            ["gcc-loongarch64-linux-gnu", "pkgconf-pkg-config"], manager.packages_for([compiler, "pkg-config"])
        )
        self.assertNotIn("autoreconf", host_bootstrap.APT_PACKAGE_MAP)

    def test_apt_index_refreshed_once_with_sudo(self) -> None:
        manager = host_bootstrap.PackageManager("apt-get", host_bootstrap.APT_PACKAGE_MAP, refresh=("update",))

        with mock.patch("host_bootstrap.os.geteuid", return_value=1000), mock.patch(
            "host_bootstrap.shutil.which", return_value="/usr/bin/sudo"
        ), mock.patch("host_bootstrap.run_command") as run_mock, mock.patch.object(
            host_bootstrap, "_refreshed", set()
        ):
            host_bootstrap.install_packages(manager, ["flex"], host_bootstrap.LOG)
            host_bootstrap.install_packages(manager, ["bison"], host_bootstrap.LOG)

        self.assertEqual(
            [
                ["/usr/bin/sudo", "apt-get", "update"],
                ["/usr/bin/sudo", "apt-get", "install", "-y", "flex"],
                ["/usr/bin/sudo", "apt-get", "install", "-y", "bison"],
            ],
            [call.args[0] for call in run_mock.call_args_list],
        )

    def test_no_sudo_skips_installation(self) -> None:
        host_bootstrap.set_bootstrap_enabled(True)
        manager = host_bootstrap.PackageManager("apt-get", host_bootstrap.APT_PACKAGE_MAP)

        with mock.patch("dependency_gate.resolve_tool", return_value=None), mock.patch(
            "host_bootstrap.detect_package_manager", return_value=manager
        ), mock.patch("host_bootstrap.os.geteuid", return_value=1000), mock.patch(
            "host_bootstrap.shutil.which", return_value=None
        ), mock.patch("host_bootstrap.run_command") as run_mock:
            with self.assertLogs(host_bootstrap.LOG, level="WARNING"):
                remaining = host_bootstrap.ensure_commands(["flex"])

        self.assertEqual(["flex"], remaining)
        run_mock.assert_not_called()

if __name__ == "__main__":  # pragma: no cover
    unittest.main()
