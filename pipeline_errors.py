"""Failure taxonomy shared by the build and boot pipelines.

Every error derives from :class:`PipelineError`, itself a ``RuntimeError`` so
the command-line entry points can report any stage failure uniformly.
"""

from __future__ import annotations

from pathlib import Path


class PipelineError(RuntimeError):
    """Base class for fatal pipeline failures."""


class MissingDependency(PipelineError):
    """A required tool does not resolve on ``PATH``."""

    def __init__(self, tool: str, hint: str | None = None) -> None:
        self.tool = tool
        self.hint = hint
        message = f"Required command '{tool}' not found in PATH."
        if hint:
            message = f"{message} Try: {hint}"
        super().__init__(message)


class ConfigurationError(PipelineError):
    """The configure (or build-script generation) step exited nonzero."""

    def __init__(self, message: str, output: str = "") -> None:
        self.output = output
        super().__init__(message)


class BuildError(PipelineError):
    """Compilation, installation or image assembly exited nonzero."""

    def __init__(self, message: str, output: str = "") -> None:
        self.output = output
        super().__init__(message)


class MediaError(PipelineError):
    """A virtual media file could not be created or formatted."""


class MountError(MediaError):
    """The scratch loop mount could not be acquired or released."""


class MissingMedia(PipelineError):
    """Neither virtual disk nor flat boot image exists."""


class MissingArtifact(PipelineError):
    """An input file produced by an earlier step is absent."""

    def __init__(self, path: Path, hint: str | None = None) -> None:
        self.path = path
        self.hint = hint
        message = f"Required file not found: {path}"
        if hint:
            message = f"{message}. {hint}"
        super().__init__(message)
