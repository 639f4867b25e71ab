#!/usr/bin/env python3
"""Boot the LoongArch64 GRUB EFI image under QEMU.

With no option the full sequence runs: check the firmware files, create the
qcow2 disk, build the FAT32 EFI boot image, then hand the terminal over to
QEMU.  ``--setup`` stops before QEMU, ``--qemu`` skips the media setup and
``--clean`` removes the media files.
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Callable

from dependency_gate import BOOT_TOOLS, require_tools
from emulator_launcher import MachineProfile, check_boot_files, launch
from media_stager import clean_media, create_disk, stage_boot_image
from settings import BOOT_LOG_PATH, setup_logging

LOG = logging.getLogger("la64grub.cli")


def check_files() -> None:
    check_boot_files(MachineProfile())


def run_clean() -> None:
    LOG.info("Cleaning virtual disk...")
    clean_media()
    LOG.info("Virtual media cleaned")


def run_setup() -> None:
    check_files()
    require_tools(BOOT_TOOLS)
    create_disk()
    stage_boot_image()
    LOG.info("EFI partition setup completed")


def run_qemu() -> None:
    launch()


def run_full() -> None:
    run_setup()
    launch(verify_files=False)


ACTION_EXECUTORS: dict[str, Callable[[], None]] = {
    "clean": run_clean,
    "setup": run_setup,
    "qemu": run_qemu,
    "full": run_full,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="LoongArch64 GRUB EFI QEMU boot helper")
    group = parser.add_mutually_exclusive_group()
    group.add_argument(
        "-c", "--clean", dest="action", action="store_const", const="clean", help="Clean virtual disk"
    )
    group.add_argument(
        "-s", "--setup", dest="action", action="store_const", const="setup", help="Setup EFI partition only"
    )
    group.add_argument(
        "-q",
        "--qemu",
        dest="action",
        action="store_const",
        const="qemu",
        help="Start QEMU only (skip partition setup)",
    )
    parser.set_defaults(action="full")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(BOOT_LOG_PATH)
    try:
        ACTION_EXECUTORS[args.action]()
    except RuntimeError as exc:
        LOG.error("%s", exc)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
