"""Fixed locations and logging setup for the LoongArch64 GRUB tooling.

All persisted state lives at fixed paths relative to the repository root so
the build helper (``build_grub.py``) and the boot helper (``boot_qemu.py``)
agree on where artefacts are produced and consumed.
"""

from __future__ import annotations

import logging
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parent
OUTPUT_DIR = REPO_ROOT / "output"
BUILD_LOG_PATH = OUTPUT_DIR / "build.log"
BOOT_LOG_PATH = OUTPUT_DIR / "boot.log"

GRUB_SOURCE_DIR = REPO_ROOT / "grub2"
INSTALL_DIRNAME = "install"
EFI_OUTPUT_DIRNAME = "efi_output"
EFI_IMAGE_NAME = "grub.efi"

FIRMWARE_PATH = REPO_ROOT / "firmware" / "QEMU_EFI_LOONGARCH64.fd"
GRUB_CFG_PATH = REPO_ROOT / "grub.cfg"
EFI_IMAGE_PATH = GRUB_SOURCE_DIR / EFI_OUTPUT_DIRNAME / EFI_IMAGE_NAME

DISK_IMAGE_PATH = REPO_ROOT / "disk.img"
DISK_IMAGE_SIZE = "1G"
BOOT_IMAGE_PATH = REPO_ROOT / "efi_boot.img"
BOOT_IMAGE_SIZE_MB = 100
SCRATCH_MOUNTPOINT = REPO_ROOT / "temp_esp"

BUILD_COMMAND = "la64grub-build"
BOOT_COMMAND = "la64grub-boot"

LOGGER_NAME = "la64grub"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"


def setup_logging(log_path: Path = BUILD_LOG_PATH) -> None:
    """Send pipeline diagnostics to the console and to *log_path*.

    Raw child-process output is routed through ``la64grub.output`` which only
    writes to the log file; :func:`command_runner.run_command` echoes those
    lines to the console itself.
    """

    log_path.parent.mkdir(parents=True, exist_ok=True)

    root = logging.getLogger(LOGGER_NAME)
    root.setLevel(logging.INFO)
    root.handlers.clear()

    formatter = logging.Formatter(LOG_FORMAT)

    file_handler = logging.FileHandler(log_path, mode="w")
    file_handler.setFormatter(formatter)
    file_handler.setLevel(logging.INFO)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    console_handler.setLevel(logging.INFO)

    root.addHandler(file_handler)
    root.addHandler(console_handler)

    output_log = logging.getLogger(f"{LOGGER_NAME}.output")
    output_log.handlers.clear()
    output_log.propagate = False
    output_log.setLevel(logging.INFO)
    output_log.addHandler(file_handler)
