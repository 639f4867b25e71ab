"""Cross-compilation toolchain and build configuration values.

A :class:`ToolchainSpec` is created once per run and threaded explicitly
through every stage; the compiler and flag selection reach child processes
only through :meth:`ToolchainSpec.environment`.
"""

from __future__ import annotations

import os
import platform
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping

TARGET_TRIPLE = "loongarch64-unknown-linux-gnu"
GRUB_PLATFORM = "efi"

DISABLED_FEATURES: tuple[str, ...] = (
    "werror",
    "nls",
    "grub-emu-usb",
    "grub-emu-sdl",
    "grub-emu-pci",
    "grub-mkfont",  # freetype2
    "device-mapper",
    "libzfs",
    "grub-mount",  # fuse3
)


def native_triple() -> str:
    machine = platform.machine() or "x86_64"
    if machine == "amd64":
        machine = "x86_64"
    return f"{machine}-linux-gnu"


@dataclass(frozen=True)
class ToolchainSpec:
    """Compiler selection for building GRUB for a non-native target."""

    target: str = TARGET_TRIPLE
    host: str = field(default_factory=native_triple)
    build: str = field(default_factory=native_triple)
    platform: str = GRUB_PLATFORM
    target_cflags: str = "-Os -fno-common"
    target_ldflags: str = ""
    host_cc: str = "gcc"
    host_cflags: str = "-g -O2"
    target_cc: str | None = None

    @property
    def compiler(self) -> str:
        return self.target_cc or f"{self.target}-gcc"

    def environment(self, base: Mapping[str, str] | None = None) -> dict[str, str]:
        """Return the child-process environment for configure and make."""

        env = dict(os.environ if base is None else base)
        env.update(
            {
                "TARGET_CC": self.compiler,
                "TARGET_CFLAGS": self.target_cflags,
                "TARGET_LDFLAGS": self.target_ldflags,
                "HOST_CC": self.host_cc,
                "HOST_CFLAGS": self.host_cflags,
            }
        )
        return env


@dataclass(frozen=True)
class BuildConfiguration:
    """Result of a successful configure step for one source tree."""

    toolchain: ToolchainSpec
    source_dir: Path
    arguments: tuple[str, ...]

    @property
    def status_file(self) -> Path:
        return self.source_dir / "config.status"

    @property
    def configure_script(self) -> Path:
        return self.source_dir / "configure"

    def is_current(self) -> bool:
        """Return ``True`` when ``config.status`` exists and is not stale."""

        if not self.status_file.exists():
            return False
        if not self.configure_script.exists():
            return True
        return self.status_file.stat().st_mtime >= self.configure_script.stat().st_mtime

    def environment(self) -> dict[str, str]:
        return self.toolchain.environment()


def configure_arguments(spec: ToolchainSpec, disabled: tuple[str, ...] = DISABLED_FEATURES) -> tuple[str, ...]:
    """Return the ordered ``./configure`` arguments for *spec*."""

    arguments = [
        f"--target={spec.target}",
        f"--host={spec.host}",
        f"--build={spec.build}",
        f"--with-platform={spec.platform}",
    ]
    arguments.extend(f"--disable-{feature}" for feature in disabled)
    return tuple(arguments)
