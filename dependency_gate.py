"""Pre-flight verification of host tooling.

The gate runs before any stage touches the source tree or the media files.
It only inspects ``PATH``; missing tools are reported, never installed (see
:mod:`host_bootstrap` for the opt-in installer).
"""

from __future__ import annotations

import logging
import os
import shutil
from typing import Iterable

from pipeline_errors import MissingDependency
from toolchain import ToolchainSpec

LOG = logging.getLogger("la64grub.deps")

REQUIRED_HOST_TOOLS: tuple[str, ...] = ("autoconf", "automake", "make", "pkg-config", "flex", "bison")

BOOT_TOOLS: tuple[str, ...] = ("qemu-img", "truncate", "mkfs.fat", "mount", "umount")
EMULATOR_BINARY = "qemu-system-loongarch64"

DEPENDENCY_HINTS: dict[str, str] = {
    "autoconf": "sudo apt-get install autoconf",
    "automake": "sudo apt-get install automake",
    "make": "sudo apt-get install build-essential",
    "pkg-config": "sudo apt-get install pkg-config",
    "flex": "sudo apt-get install flex",
    "bison": "sudo apt-get install bison",
    "loongarch64-unknown-linux-gnu-gcc": "install a LoongArch64 cross toolchain (e.g. gcc-loongarch64-linux-gnu)",
    "qemu-img": "sudo apt-get install qemu-utils",
    "qemu-system-loongarch64": "sudo apt-get install qemu-system-misc",
    "mkfs.fat": "sudo apt-get install dosfstools",
    "truncate": "sudo apt-get install coreutils",
    "mount": "sudo apt-get install mount",
    "umount": "sudo apt-get install mount",
}


SYSTEM_BIN_DIRS = ("/sbin", "/usr/sbin")


def resolve_tool(command: str) -> str | None:
    """Locate *command* on ``PATH`` plus the sbin directories.

    Unprivileged shells often omit ``/sbin``, which is where ``mkfs.fat``
    and friends live.
    """

    search = os.pathsep.join([os.environ.get("PATH", os.defpath), *SYSTEM_BIN_DIRS])
    return shutil.which(command, path=search)


def find_missing_commands(commands: Iterable[str]) -> list[str]:
    return [cmd for cmd in commands if resolve_tool(cmd) is None]


def require_tools(tools: Iterable[str]) -> None:
    """Raise :class:`MissingDependency` for the first unresolvable tool.

    Every missing tool is logged so the operator can install them in one go.
    """

    missing = find_missing_commands(tools)
    if not missing:
        return
    for command in missing:
        hint = DEPENDENCY_HINTS.get(command)
        if hint:
            LOG.error("Missing dependency '%s'. Install via: %s", command, hint)
        else:
            LOG.error("Missing dependency '%s'", command)
    first = missing[0]
    raise MissingDependency(first, DEPENDENCY_HINTS.get(first))


def build_requirements(spec: ToolchainSpec) -> list[str]:
    """Return the tools the build pipeline needs, in checking order."""

    return [*REQUIRED_HOST_TOOLS, spec.compiler]


def check_dependencies(spec: ToolchainSpec) -> None:
    LOG.info("Checking build dependencies...")
    require_tools(build_requirements(spec))
    LOG.info("Dependency check passed")
