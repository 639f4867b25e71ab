#!/usr/bin/env python3
"""Cross-build GRUB2 for LoongArch64 and optionally assemble its EFI image.

The pipeline runs strictly in order, and each step only starts after the
previous one succeeded:

* dependency gate – verify autotools, make, flex, bison and the cross compiler.
* regeneration – rerun ``autogen.sh``/``autoreconf`` only when stale.
* configure – ``./configure`` for ``loongarch64-unknown-linux-gnu`` (EFI).
* build – ``make -jN``.
* install (``--install``) – ``make install`` into ``grub2/install``.
* EFI image (``--efi``) – ``grub-mkimage`` into ``grub2/efi_output/grub.efi``.

Console output is mirrored to ``output/build.log``.
"""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from textwrap import dedent

from build_stage import build_tree, clean_tree, install_tree
from configure_stage import configure_build
from dependency_gate import build_requirements, check_dependencies
from host_bootstrap import ensure_commands, set_bootstrap_enabled
from image_assembler import assemble_image
from pipeline_errors import MissingArtifact
from regeneration import clean_generated_files, ensure_build_scripts
from settings import EFI_IMAGE_NAME, EFI_OUTPUT_DIRNAME, GRUB_SOURCE_DIR, INSTALL_DIRNAME, setup_logging
from toolchain import ToolchainSpec

LOG = logging.getLogger("la64grub.cli")


@dataclass(frozen=True)
class BuildOutput:
    """An output location reported at the end of a run."""

    description: str
    path: Path


def collect_outputs(source_dir: Path, *, install: bool, efi: bool) -> list[BuildOutput]:
    outputs = [BuildOutput("Executables", source_dir / "grub-core")]
    if install:
        outputs.append(BuildOutput("Install directory", source_dir / INSTALL_DIRNAME))
    if efi:
        outputs.append(BuildOutput("EFI image", source_dir / EFI_OUTPUT_DIRNAME / EFI_IMAGE_NAME))
    return outputs


def log_build_summary(outputs: list[BuildOutput]) -> None:
    LOG.info("Build output:")
    for output in outputs:
        LOG.info("  - %s: %s", output.description, output.path)


def require_source_tree(source_dir: Path) -> None:
    if not (source_dir / "configure.ac").is_file():
        raise MissingArtifact(
            source_dir / "configure.ac",
            "GRUB2 source code not found; check out GRUB2 there or pass --source-dir",
        )


def run_clean(source_dir: Path) -> None:
    require_source_tree(source_dir)
    clean_tree(source_dir)


def run_build(args: argparse.Namespace, spec: ToolchainSpec | None = None) -> None:
    spec = spec or ToolchainSpec()
    source_dir = args.source_dir.resolve()
    require_source_tree(source_dir)

    LOG.info("Starting LoongArch64 GRUB2 build process...")
    LOG.info("Source directory: %s", source_dir)

    if args.bootstrap:
        ensure_commands(build_requirements(spec), logger=LOG)
    check_dependencies(spec)

    if args.clean_build:
        clean_tree(source_dir)
        clean_generated_files(source_dir)

    ensure_build_scripts(source_dir)
    configuration = configure_build(source_dir, spec)
    build_tree(configuration)

    if args.install:
        install_tree(configuration, source_dir / INSTALL_DIRNAME)
    if args.efi:
        assemble_image(source_dir, source_dir / EFI_OUTPUT_DIRNAME / EFI_IMAGE_NAME)

    LOG.info("LoongArch64 GRUB2 build completed!")
    log_build_summary(collect_outputs(source_dir, install=args.install, efi=args.efi))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="LoongArch64 GRUB2 build helper",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=dedent(
            """
            examples:
              %(prog)s                # Build only
              %(prog)s --install      # Build and install
              %(prog)s --efi          # Build and generate EFI image
              %(prog)s --clean-build  # Clean and rebuild
            """
        ),
    )
    parser.add_argument("-c", "--clean", action="store_true", help="Clean build files and exit")
    parser.add_argument("-i", "--install", action="store_true", help="Build and install")
    parser.add_argument("-e", "--efi", action="store_true", help="Generate EFI image")
    parser.add_argument("--clean-build", action="store_true", help="Clean and rebuild")
    parser.add_argument(
        "--source-dir",
        type=Path,
        default=GRUB_SOURCE_DIR,
        help="GRUB2 source checkout (default: %(default)s)",
    )
    parser.add_argument(
        "--bootstrap",
        action="store_true",
        help="Try to install missing host packages before checking dependencies.",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging()
    set_bootstrap_enabled(args.bootstrap)

    try:
        if args.clean and not args.clean_build:
            run_clean(args.source_dir.resolve())
            return 0
        run_build(args)
    except RuntimeError as exc:
        LOG.error("%s", exc)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
