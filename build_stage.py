"""Compile, install and clean a configured GRUB tree."""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
from pathlib import Path

from command_runner import run_command
from pipeline_errors import BuildError
from toolchain import BuildConfiguration

LOG = logging.getLogger("la64grub.build")


def default_jobs() -> int:
    return os.cpu_count() or 1


def build_tree(configuration: BuildConfiguration, jobs: int | None = None) -> None:
    """Run ``make -jN`` inside the configured source tree."""

    if not configuration.is_current():
        raise BuildError(
            f"Refusing to build {configuration.source_dir}: configuration is missing or older than "
            "the configure script. Re-run the configure step."
        )

    jobs = jobs or default_jobs()
    LOG.info("Starting GRUB2 compilation...")
    LOG.info("Using %s threads for compilation", jobs)
    try:
        run_command(["make", f"-j{jobs}"], cwd=configuration.source_dir, env=configuration.environment())
    except subprocess.CalledProcessError as exc:
        raise BuildError(f"make failed with exit code {exc.returncode}", output=exc.output or "") from exc
    LOG.info("Build completed")


def install_tree(configuration: BuildConfiguration, install_dir: Path) -> Path:
    """Stage ``make install`` output under *install_dir* via ``DESTDIR``."""

    install_dir = install_dir.resolve()
    install_dir.mkdir(parents=True, exist_ok=True)
    LOG.info("Installing GRUB2...")
    try:
        run_command(
            ["make", f"DESTDIR={install_dir}", "install"],
            cwd=configuration.source_dir,
            env=configuration.environment(),
        )
    except subprocess.CalledProcessError as exc:
        raise BuildError(f"make install failed with exit code {exc.returncode}", output=exc.output or "") from exc
    LOG.info("Installation completed, install directory: %s", install_dir)
    return install_dir


def clean_tree(source_dir: Path) -> None:
    """Best-effort ``make clean``; a tree that was never configured is fine."""

    LOG.info("Cleaning build files...")
    try:
        result = run_command(["make", "clean"], cwd=source_dir, check=False, capture_output=True)
    except FileNotFoundError:
        LOG.warning("make not found; skipping make clean")
    else:
        if not result.ok:
            LOG.info("make clean exited with %s; continuing", result.returncode)
    cache = source_dir / "autom4te.cache"
    if cache.exists():
        shutil.rmtree(cache)
    LOG.info("Cleanup completed")
