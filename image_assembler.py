"""Assemble the GRUB EFI firmware blob with ``grub-mkimage``.

``grub-mkimage`` takes the complete module list on every call, so the
manifest is always passed whole.  The tool stamps PE headers with a fixed
timestamp and xz output is deterministic, which makes two runs over the same
module objects, manifest and prefix byte-identical.
"""

from __future__ import annotations

import hashlib
import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Iterator

from command_runner import run_command
from pipeline_errors import BuildError

LOG = logging.getLogger("la64grub.image")

IMAGE_FORMAT = "loongarch64-efi"
DEFAULT_PREFIX = "(hd0,gpt1)/boot/grub"
DEFAULT_COMPRESSION = "xz"
MKIMAGE_RELPATH = Path("grub-core") / "grub-mkimage"
MODULE_DIR_RELPATH = Path("grub-core")


@dataclass(frozen=True)
class ModuleManifest:
    """Ordered, duplicate-free list of GRUB modules to embed."""

    modules: tuple[str, ...]

    def __post_init__(self) -> None:
        seen: set[str] = set()
        for name in self.modules:
            if not name or not name.strip():
                raise ValueError("module names must be non-empty")
            if name in seen:
                raise ValueError(f"module '{name}' listed more than once")
            seen.add(name)

    @classmethod
    def of(cls, names: Iterable[str]) -> "ModuleManifest":
        return cls(tuple(names))

    def __iter__(self) -> Iterator[str]:
        return iter(self.modules)

    def __len__(self) -> int:
        return len(self.modules)


DEFAULT_MANIFEST = ModuleManifest.of(
    """
    part_gpt part_msdos
    fat exfat ext2
    hfsplus ntfs
    linux
    configfile
    boot
    btrfs
    zfs
    lvm
    luks
    search search_label search_fs_uuid search_fs_file
    normal
    echo
    all_video
    test
    sleep
    font
    gfxterm gfxmenu gfxpayload
    terminal
    serial
    usb
    keyboard
    acpi
    halt
    reboot
    memdisk
    tar
    ls
    cat
    cpuid
    rdrand
    relocator
    """.split()
)


def mkimage_command(
    mkimage: Path,
    module_dir: Path,
    output: Path,
    manifest: ModuleManifest,
    *,
    prefix: str = DEFAULT_PREFIX,
    compression: str = DEFAULT_COMPRESSION,
    image_format: str = IMAGE_FORMAT,
) -> list[str]:
    return [
        str(mkimage),
        f"--directory={module_dir}",
        f"--format={image_format}",
        f"--output={output}",
        f"--prefix={prefix}",
        f"--compression={compression}",
        *manifest,
    ]


def sha256sum(path: Path) -> str:
    digest = hashlib.sha256()
    with path.open("rb") as handle:
        for chunk in iter(lambda: handle.read(64 * 1024), b""):
            digest.update(chunk)
    return digest.hexdigest()


def assemble_image(
    source_dir: Path,
    output: Path,
    manifest: ModuleManifest = DEFAULT_MANIFEST,
    *,
    prefix: str = DEFAULT_PREFIX,
    compression: str = DEFAULT_COMPRESSION,
    image_format: str = IMAGE_FORMAT,
) -> Path | None:
    """Write the firmware blob to *output*.

    Returns ``None`` (after a warning) when the tree has no ``grub-mkimage``;
    plain compilation remains a valid outcome without an image.
    """

    mkimage = source_dir / MKIMAGE_RELPATH
    if not mkimage.is_file():
        LOG.warning("grub-mkimage not found at %s, skipping EFI image generation", mkimage)
        return None

    LOG.info("Generating LoongArch64 EFI image with %d modules...", len(manifest))
    output.parent.mkdir(parents=True, exist_ok=True)
    command = mkimage_command(
        mkimage,
        source_dir / MODULE_DIR_RELPATH,
        output,
        manifest,
        prefix=prefix,
        compression=compression,
        image_format=image_format,
    )
    try:
        run_command(command, cwd=source_dir)
    except subprocess.CalledProcessError as exc:
        raise BuildError(f"grub-mkimage failed with exit code {exc.returncode}", output=exc.output or "") from exc

    if not output.exists():
        raise BuildError(f"grub-mkimage did not produce {output}")

    LOG.info("EFI image generation completed: %s (sha256 %s)", output, sha256sum(output))
    return output
