"""Virtual media lifecycle for the emulated LoongArch64 machine.

Two kinds of media exist: a growable qcow2 disk and a flat FAT32 image that
carries the EFI system partition contents.  The flat image goes through

    ABSENT -> CREATED -> FORMATTED -> MOUNTED -> POPULATED -> UNMOUNTED

and is only ever formatted when it does not exist yet.  The loop mount is the
one privileged, exclusive step; :func:`mounted` releases it on every exit
path and removes the scratch mountpoint afterwards.
"""

from __future__ import annotations

import contextlib
import enum
import json
import logging
import os
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Sequence

from command_runner import run_command
from dependency_gate import resolve_tool
from pipeline_errors import MediaError, MissingArtifact, MountError
from settings import (
    BOOT_IMAGE_PATH,
    BOOT_IMAGE_SIZE_MB,
    DISK_IMAGE_PATH,
    DISK_IMAGE_SIZE,
    EFI_IMAGE_PATH,
    GRUB_CFG_PATH,
    SCRATCH_MOUNTPOINT,
)

LOG = logging.getLogger("la64grub.media")

BOOT_APPLICATION = Path("EFI") / "BOOT" / "BOOTLOONGARCH64.EFI"
BOOT_CONFIG = Path("boot") / "grub" / "grub.cfg"
PARTIAL_SUFFIX = ".partial"


class MediaKind(enum.Enum):
    DISK = "disk"
    BOOT_IMAGE = "boot-image"


class MediaState(enum.Enum):
    ABSENT = "absent"
    CREATED = "created"
    FORMATTED = "formatted"
    MOUNTED = "mounted"
    POPULATED = "populated"
    UNMOUNTED = "unmounted"


@dataclass(frozen=True)
class VirtualMedia:
    """A block-device backing file together with its QEMU format."""

    path: Path
    image_format: str
    kind: MediaKind

    def exists(self) -> bool:
        return self.path.is_file()


DEFAULT_DISK = VirtualMedia(DISK_IMAGE_PATH, "qcow2", MediaKind.DISK)
DEFAULT_BOOT_IMAGE = VirtualMedia(BOOT_IMAGE_PATH, "raw", MediaKind.BOOT_IMAGE)


@dataclass(frozen=True)
class PrivilegeBoundary:
    """Prefix applied to the commands that need root: ``mount`` and ``umount``.

    Everything else, including populating the mounted filesystem, runs as
    the invoking user because the image is mounted with its uid/gid.
    """

    prefix: tuple[str, ...] = ()

    @classmethod
    def detect(cls) -> "PrivilegeBoundary":
        if os.geteuid() == 0:
            return cls()
        sudo = shutil.which("sudo")
        if not sudo:
            raise MountError("Mounting the EFI boot image requires root privileges and sudo is unavailable.")
        return cls((sudo,))

    def wrap(self, command: Sequence[str]) -> list[str]:
        return [*self.prefix, *command]


def create_disk(media: VirtualMedia = DEFAULT_DISK, size: str = DISK_IMAGE_SIZE) -> MediaState:
    """Allocate the growable disk unless it already exists."""

    if media.exists():
        LOG.info("Virtual disk already exists: %s", media.path)
        inspect_existing(media)
        return MediaState.CREATED

    LOG.info("Creating virtual disk...")
    try:
        run_command(["qemu-img", "create", "-f", media.image_format, str(media.path), size])
    except subprocess.CalledProcessError as exc:
        raise MediaError(f"qemu-img could not create {media.path} (exit code {exc.returncode})") from exc
    LOG.info("Virtual disk created: %s", media.path)
    return MediaState.CREATED


def inspect_existing(media: VirtualMedia, expected_size: int | None = None) -> bool:
    """Warn when a reused media file does not look like what we would create.

    Reused files are never rewritten; a mismatch only produces a warning so
    the operator can decide whether to run ``--clean``.
    """

    if media.kind is MediaKind.BOOT_IMAGE:
        expected = expected_size if expected_size is not None else BOOT_IMAGE_SIZE_MB * 1024 * 1024
        actual = media.path.stat().st_size
        if actual != expected:
            LOG.warning("Reusing %s although its size is %d bytes (expected %d)", media.path, actual, expected)
            return False
        return True

    try:
        result = run_command(
            ["qemu-img", "info", "--output=json", str(media.path)], check=False, capture_output=True
        )
    except OSError:
        LOG.warning("qemu-img unavailable; cannot inspect %s", media.path)
        return False
    if not result.ok:
        LOG.warning("qemu-img could not read %s; reusing it unverified", media.path)
        return False
    try:
        detected = json.loads(result.output).get("format")
    except ValueError:
        LOG.warning("Unexpected qemu-img info output for %s; reusing it unverified", media.path)
        return False
    if detected != media.image_format:
        LOG.warning("Reusing %s although it is %s, not %s", media.path, detected, media.image_format)
        return False
    return True


def format_boot_image(path: Path, size_mb: int = BOOT_IMAGE_SIZE_MB) -> bool:
    """Create and FAT32-format a raw image at *path* if it does not exist.

    Returns ``True`` when a new filesystem was written.
    """

    if path.exists():
        LOG.info("Boot image already exists, not formatting: %s", path)
        return False

    mkfs = resolve_tool("mkfs.fat") or "mkfs.fat"
    try:
        run_command(["truncate", "--size", f"{size_mb}M", str(path)])
        run_command([mkfs, "-F", "32", str(path)], capture_output=True)
    except subprocess.CalledProcessError as exc:
        path.unlink(missing_ok=True)
        raise MediaError(f"Failed to build FAT32 image {path}: {exc.output or exc}".rstrip()) from exc
    LOG.info("Formatted %s as FAT32 (%d MiB)", path, size_mb)
    return True


def _remove_scratch(mountpoint: Path) -> None:
    if mountpoint.exists():
        shutil.rmtree(mountpoint)


def _release(mountpoint: Path, privilege: PrivilegeBoundary, pending: BaseException | None = None) -> None:
    result = run_command(privilege.wrap(["umount", str(mountpoint)]), check=False, capture_output=True)
    if not result.ok and os.path.ismount(mountpoint):
        message = (
            f"Failed to unmount {mountpoint} (exit code {result.returncode}). "
            f"Run 'sudo umount {mountpoint}' before the next run."
        )
        if pending is not None:
            message = f"{message} The mount was being released after: {type(pending).__name__}: {pending}"
        LOG.error(message)
        raise MountError(message)
    _remove_scratch(mountpoint)
    LOG.info("Unmounted and removed %s", mountpoint)


@contextlib.contextmanager
def mounted(image: Path, mountpoint: Path, privilege: PrivilegeBoundary) -> Iterator[Path]:
    """Loop-mount *image* at *mountpoint* for the duration of the block."""

    if os.path.ismount(mountpoint):
        raise MountError(f"{mountpoint} is already mounted; unmount it before retrying")
    mountpoint.mkdir(parents=True, exist_ok=True)

    options = f"loop,uid={os.getuid()},gid={os.getgid()}"
    LOG.info("Mounting %s at %s", image, mountpoint)
    try:
        run_command(privilege.wrap(["mount", "-o", options, str(image), str(mountpoint)]), capture_output=True)
    except (subprocess.CalledProcessError, OSError) as exc:
        _remove_scratch(mountpoint)
        LOG.error("Cannot mount %s", image)
        raise MountError(f"Cannot mount {image} at {mountpoint}") from exc
    except BaseException as exc:
        # Interrupted while mount was running; it may or may not have completed.
        if os.path.ismount(mountpoint):
            _release(mountpoint, privilege, exc)
        else:
            _remove_scratch(mountpoint)
        raise

    try:
        yield mountpoint
    except BaseException as exc:
        _release(mountpoint, privilege, exc)
        raise
    _release(mountpoint, privilege)


def populate(mountpoint: Path, firmware: Path, grub_cfg: Path) -> None:
    """Lay out the EFI system partition inside the mounted image."""

    application = mountpoint / BOOT_APPLICATION
    application.parent.mkdir(parents=True, exist_ok=True)
    shutil.copyfile(firmware, application)
    LOG.info("Copied %s -> %s", firmware, BOOT_APPLICATION)

    config = mountpoint / BOOT_CONFIG
    config.parent.mkdir(parents=True, exist_ok=True)
    shutil.copyfile(grub_cfg, config)
    LOG.info("Copied %s -> %s", grub_cfg, BOOT_CONFIG)


def stage_boot_image(
    image: Path = BOOT_IMAGE_PATH,
    *,
    firmware: Path = EFI_IMAGE_PATH,
    grub_cfg: Path = GRUB_CFG_PATH,
    mountpoint: Path = SCRATCH_MOUNTPOINT,
    size_mb: int = BOOT_IMAGE_SIZE_MB,
    privilege: PrivilegeBoundary | None = None,
) -> list[MediaState]:
    """Build the EFI boot image unless one already exists.

    The image is assembled under a ``.partial`` name and only renamed into
    place once it has been populated and unmounted, so an interrupted run
    never leaves an image that later runs would trust.  Returns the states
    the image passed through.
    """

    LOG.info("Setting up EFI boot partition...")
    if image.exists():
        LOG.info("EFI boot image already exists: %s", image)
        inspect_existing(VirtualMedia(image, "raw", MediaKind.BOOT_IMAGE), size_mb * 1024 * 1024)
        return []

    for required in (firmware, grub_cfg):
        if not required.is_file():
            raise MissingArtifact(required)

    privilege = privilege or PrivilegeBoundary.detect()
    partial = image.with_name(image.name + PARTIAL_SUFFIX)
    partial.unlink(missing_ok=True)

    history = [MediaState.ABSENT]
    try:
        format_boot_image(partial, size_mb)
        history.extend([MediaState.CREATED, MediaState.FORMATTED])
        with mounted(partial, mountpoint, privilege):
            history.append(MediaState.MOUNTED)
            populate(mountpoint, firmware, grub_cfg)
            history.append(MediaState.POPULATED)
        history.append(MediaState.UNMOUNTED)
    except BaseException:
        if not os.path.ismount(mountpoint):
            partial.unlink(missing_ok=True)
        raise

    os.replace(partial, image)
    LOG.info("EFI boot image created with GRUB files: %s", image)
    return history


def clean_media(
    media: Sequence[VirtualMedia] = (DEFAULT_DISK, DEFAULT_BOOT_IMAGE),
    mountpoint: Path = SCRATCH_MOUNTPOINT,
) -> None:
    """Delete the media files and the scratch mountpoint."""

    if os.path.ismount(mountpoint):
        raise MountError(f"{mountpoint} is still mounted; unmount it before cleaning")
    for item in media:
        for path in (item.path, item.path.with_name(item.path.name + PARTIAL_SUFFIX)):
            if path.exists():
                path.unlink()
                LOG.info("Removed %s", path)
    _remove_scratch(mountpoint)
