"""Launch the LoongArch64 virtual machine under QEMU."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import NoReturn

from dependency_gate import DEPENDENCY_HINTS, EMULATOR_BINARY, resolve_tool
from media_stager import DEFAULT_BOOT_IMAGE, DEFAULT_DISK, VirtualMedia
from pipeline_errors import MissingArtifact, MissingDependency, MissingMedia
from settings import BOOT_COMMAND, BUILD_COMMAND, EFI_IMAGE_PATH, FIRMWARE_PATH, LOGGER_NAME

LOG = logging.getLogger("la64grub.qemu")


@dataclass(frozen=True)
class MachineProfile:
    """Fixed description of the emulated machine."""

    firmware: Path = FIRMWARE_PATH
    binary: str = EMULATOR_BINARY
    machine: str = "virt"
    cpu: str = "la464"
    cores: int = 4
    memory: str = "2G"
    block_interface: str = "virtio"
    nic: str = "virtio-net-pci"
    host_forward: str = "tcp::2222-:22"

    def arguments(self, media: VirtualMedia) -> list[str]:
        return [
            "-machine",
            self.machine,
            "-cpu",
            self.cpu,
            "-smp",
            str(self.cores),
            "-m",
            self.memory,
            "-bios",
            str(self.firmware),
            "-drive",
            f"file={media.path},format={media.image_format},if={self.block_interface}",
            "-netdev",
            f"user,id=net0,hostfwd={self.host_forward}",
            "-device",
            f"{self.nic},netdev=net0",
            "-nographic",
            "-serial",
            "mon:stdio",
        ]


def select_media(
    boot_image: VirtualMedia = DEFAULT_BOOT_IMAGE,
    disk: VirtualMedia = DEFAULT_DISK,
) -> VirtualMedia:
    """Prefer the flat EFI boot image, fall back to the growable disk."""

    if boot_image.exists():
        LOG.info("Using EFI boot image: %s", boot_image.path)
        return boot_image
    if disk.exists():
        LOG.info("Using main disk image: %s", disk.path)
        return disk
    raise MissingMedia(f"No virtual disk found, please run first: {BOOT_COMMAND} --setup")


def build_command(profile: MachineProfile, media: VirtualMedia) -> list[str]:
    return [profile.binary, *profile.arguments(media)]


def check_boot_files(profile: MachineProfile, firmware_blob: Path = EFI_IMAGE_PATH) -> None:
    """Refuse to continue without the platform firmware or the GRUB blob."""

    LOG.info("Checking required files...")
    if not profile.firmware.is_file():
        raise MissingArtifact(profile.firmware, "Provide the QEMU LoongArch64 EFI firmware")
    if not firmware_blob.is_file():
        raise MissingArtifact(firmware_blob, f"Please run first: {BUILD_COMMAND} --efi")
    LOG.info("All required files check passed")


def launch(
    profile: MachineProfile | None = None,
    media: VirtualMedia | None = None,
    *,
    firmware_blob: Path = EFI_IMAGE_PATH,
    verify_files: bool = True,
) -> NoReturn:
    """Replace the current process with QEMU.

    The session runs until the guest halts or the operator leaves the QEMU
    monitor; there is no timeout on our side.  Pass *verify_files* as
    ``False`` when the caller has just run :func:`check_boot_files` itself.
    """

    profile = profile or MachineProfile()
    if verify_files:
        check_boot_files(profile, firmware_blob)
    media = media or select_media()

    executable = resolve_tool(profile.binary)
    if executable is None:
        raise MissingDependency(profile.binary, DEPENDENCY_HINTS.get(profile.binary))

    command = build_command(profile, media)
    LOG.info("QEMU startup parameters:")
    for argument in command[1:]:
        LOG.info("  %s", argument)
    LOG.info("Starting QEMU virtual machine (Press Ctrl+A then X to exit)")
    for handler in logging.getLogger(LOGGER_NAME).handlers:
        handler.flush()
    os.execv(executable, command)
