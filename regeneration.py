"""Decide whether the autotools-generated build scripts need regenerating."""

from __future__ import annotations

import enum
import logging
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path

from command_runner import run_command
from pipeline_errors import ConfigurationError

LOG = logging.getLogger("la64grub.regen")

AUXILIARY_FILE = Path("build-aux") / "compile"
OPTIONAL_DEPS_LIST = Path("grub-core") / "extra_deps.lst"

GENERATED_LEFTOVERS = ("config.status", "config.log", "autom4te.cache", "aclocal.m4", "configure")


class ArtifactState(enum.Enum):
    ABSENT = "absent"
    STALE = "stale"
    FRESH = "fresh"


@dataclass(frozen=True)
class RegenerationRule:
    """A generated file, the source it derives from, and how to rebuild it."""

    generated: Path
    source: Path
    command: tuple[str, ...]


DEFAULT_RULES: tuple[RegenerationRule, ...] = (
    RegenerationRule(Path("configure"), Path("configure.ac"), ("./autogen.sh",)),
)


def artifact_state(generated: Path, source: Path) -> ArtifactState:
    """Compare *generated* against *source* by modification time."""

    if not generated.exists():
        return ArtifactState.ABSENT
    if source.exists() and source.stat().st_mtime > generated.stat().st_mtime:
        return ArtifactState.STALE
    return ArtifactState.FRESH


def _regenerate(command: tuple[str, ...] | list[str], source_dir: Path) -> None:
    try:
        run_command(list(command), cwd=source_dir)
    except subprocess.CalledProcessError as exc:
        raise ConfigurationError(
            f"'{' '.join(command)}' failed with exit code {exc.returncode}:\n{exc.output or ''}".rstrip(),
            output=exc.output or "",
        ) from exc


def ensure_build_scripts(
    source_dir: Path,
    rules: tuple[RegenerationRule, ...] = DEFAULT_RULES,
) -> list[str]:
    """Bring generated build scripts up to date; return the actions taken.

    A second call with unchanged sources returns an empty list.
    """

    actions: list[str] = []
    for rule in rules:
        generated = source_dir / rule.generated
        state = artifact_state(generated, source_dir / rule.source)
        if state is ArtifactState.FRESH:
            LOG.debug("%s is up to date", rule.generated)
            continue
        LOG.info("%s is %s; running %s", rule.generated, state.value, " ".join(rule.command))
        _regenerate(rule.command, source_dir)
        actions.append(" ".join(rule.command))

    if not (source_dir / AUXILIARY_FILE).exists():
        LOG.info("Running autoreconf to generate missing auxiliary files...")
        _regenerate(["autoreconf", "-fiv"], source_dir)
        actions.append("autoreconf -fiv")

    deps_list = source_dir / OPTIONAL_DEPS_LIST
    if not deps_list.exists():
        LOG.info("Creating missing %s", OPTIONAL_DEPS_LIST)
        deps_list.parent.mkdir(parents=True, exist_ok=True)
        deps_list.touch()
        actions.append(f"touch {OPTIONAL_DEPS_LIST}")

    return actions


def clean_generated_files(source_dir: Path) -> None:
    """Remove configure output so the next run regenerates it from scratch."""

    LOG.info("Cleaning auxiliary files for fresh build...")
    for name in GENERATED_LEFTOVERS:
        path = source_dir / name
        if path.is_dir():
            shutil.rmtree(path)
        elif path.exists():
            path.unlink()
