"""Run GRUB's ``./configure`` for the cross target."""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path

from command_runner import run_command
from pipeline_errors import ConfigurationError
from toolchain import DISABLED_FEATURES, BuildConfiguration, ToolchainSpec, configure_arguments

LOG = logging.getLogger("la64grub.configure")


def configure_build(
    source_dir: Path,
    spec: ToolchainSpec,
    disabled: tuple[str, ...] = DISABLED_FEATURES,
) -> BuildConfiguration:
    """Configure *source_dir* for *spec* and return the persisted configuration.

    Configure failures are deterministic for fixed inputs, so nothing is
    retried; the tool's own diagnostic is attached to the raised error.
    """

    LOG.info("Configuring build parameters...")
    arguments = configure_arguments(spec, disabled)
    LOG.info("Configure options: %s", " ".join(arguments))

    try:
        run_command(["./configure", *arguments], cwd=source_dir, env=spec.environment())
    except subprocess.CalledProcessError as exc:
        raise ConfigurationError(
            f"configure failed with exit code {exc.returncode}:\n{exc.output or ''}".rstrip(),
            output=exc.output or "",
        ) from exc

    configuration = BuildConfiguration(toolchain=spec, source_dir=source_dir, arguments=arguments)
    if not configuration.status_file.exists():
        raise ConfigurationError(f"configure did not produce {configuration.status_file}")

    LOG.info("Configuration completed")
    return configuration
