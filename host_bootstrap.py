"""Opt-in installation of missing build tools.

``build_grub.py --bootstrap`` asks the host package manager for whatever the
dependency gate would reject, then lets the gate decide.  Nothing is
installed unless bootstrapping was enabled explicitly.
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
from dataclasses import dataclass
from typing import Iterable, Mapping

from command_runner import run_command
from dependency_gate import REQUIRED_HOST_TOOLS, find_missing_commands
from toolchain import TARGET_TRIPLE

LOG = logging.getLogger("la64grub.bootstrap")

CROSS_COMPILER = f"{TARGET_TRIPLE}-gcc"
CROSS_COMPILER_PACKAGE = "gcc-loongarch64-linux-gnu"


def _package_map(**overrides: str) -> dict[str, str]:
    packages = {tool: tool for tool in REQUIRED_HOST_TOOLS}
    packages[CROSS_COMPILER] = CROSS_COMPILER_PACKAGE
    packages.update(overrides)
    return packages


APT_PACKAGE_MAP = _package_map()
DNF_PACKAGE_MAP = _package_map(**{"pkg-config": "pkgconf-pkg-config"})


@dataclass(frozen=True)
class PackageManager:
    """How to drive one package manager non-interactively."""

    command: str
    packages: Mapping[str, str]
    refresh: tuple[str, ...] = ()

    def packages_for(self, tools: Iterable[str]) -> list[str]:
        return sorted({self.packages[tool] for tool in tools if tool in self.packages})


PACKAGE_MANAGERS: tuple[PackageManager, ...] = (
    PackageManager("apt-get", APT_PACKAGE_MAP, refresh=("update",)),
    PackageManager("dnf", DNF_PACKAGE_MAP),
)

_bootstrap_enabled = False
_refreshed: set[str] = set()


def set_bootstrap_enabled(enabled: bool) -> None:
    global _bootstrap_enabled
    _bootstrap_enabled = enabled


def detect_package_manager() -> PackageManager | None:
    for manager in PACKAGE_MANAGERS:
        if shutil.which(manager.command):
            return manager
    return None


def ensure_commands(commands: Iterable[str], *, logger: logging.Logger | None = None) -> list[str]:
    """Try to install the packages providing any missing *commands*.

    Missing tools are determined exactly as the dependency gate does it.
    Returns the tools that are still missing afterwards; the gate reports
    those.
    """

    logger = logger or LOG
    commands = list(dict.fromkeys(commands))
    missing = find_missing_commands(commands)
    if not missing or not _bootstrap_enabled:
        return missing

    manager = detect_package_manager()
    if manager is None:
        logger.warning("No supported package manager (apt-get, dnf) found; cannot install %s", ", ".join(missing))
        return missing

    packages = manager.packages_for(missing)
    if not packages:
        logger.warning("No %s package known for: %s", manager.command, ", ".join(missing))
        return missing

    try:
        install_packages(manager, packages, logger)
    except PermissionError as exc:
        logger.warning("Automatic installation skipped: %s", exc)
        return missing
    except subprocess.CalledProcessError as exc:
        logger.warning("Automatic installation via %s failed with exit code %s.", manager.command, exc.returncode)

    return find_missing_commands(commands)


def install_packages(manager: PackageManager, packages: list[str], logger: logging.Logger) -> None:
    prefix: list[str] = []
    if os.geteuid() != 0:
        sudo = shutil.which("sudo")
        if not sudo:
            raise PermissionError("installing packages requires root privileges and sudo is unavailable")
        prefix = [sudo]

    logger.info("Installing missing packages via %s: %s", manager.command, ", ".join(packages))
    if manager.refresh and manager.command not in _refreshed:
        run_command([*prefix, manager.command, *manager.refresh])
        _refreshed.add(manager.command)
    run_command([*prefix, manager.command, "install", "-y", *packages])
