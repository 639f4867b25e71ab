"""Typed wrapper around external process invocation."""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Sequence

LOG = logging.getLogger("la64grub.run")
OUTPUT_LOG = logging.getLogger("la64grub.output")


@dataclass
class CommandResult:
    """Light-weight wrapper representing the output of ``run_command``."""

    args: list[str]
    returncode: int
    output: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0


def run_command(
    command: Sequence[str | Path],
    *,
    check: bool = True,
    cwd: Path | None = None,
    env: Mapping[str, str] | None = None,
    capture_output: bool = False,
    input_text: str | None = None,
) -> CommandResult:
    """Run *command* while mirroring its output to the log and console.

    stdout and stderr are merged.  With ``capture_output`` the process runs to
    completion before its output is replayed; otherwise lines are streamed as
    they arrive.  A nonzero exit raises :class:`subprocess.CalledProcessError`
    (carrying the combined output) when *check* is true.
    """

    args = [str(part) for part in command]
    LOG.info("$ %s", " ".join(args))
    process_env = dict(env) if env is not None else None

    output_lines: list[str] = []

    def emit_line(segment: str) -> None:
        message = segment.rstrip()
        OUTPUT_LOG.info(message)
        if not capture_output:
            print(message, flush=True)
        output_lines.append(message + "\n")

    if capture_output or input_text is not None:
        completed = subprocess.run(
            args,
            cwd=cwd,
            env=process_env,
            check=False,
            text=True,
            input=input_text,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
        )
        for segment in _iter_output_segments(completed.stdout or ""):
            emit_line(segment)
        returncode = completed.returncode
    else:
        process = subprocess.Popen(
            args,
            cwd=cwd,
            env=process_env,
            text=True,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
        )
        assert process.stdout is not None  # For type-checkers.
        for raw_line in process.stdout:
            for segment in _iter_output_segments(raw_line):
                emit_line(segment)
        process.stdout.close()
        returncode = process.wait()

    output = "".join(output_lines)
    if check and returncode != 0:
        raise subprocess.CalledProcessError(returncode, args, output=output)
    return CommandResult(args, returncode, output)


def _iter_output_segments(text: str) -> list[str]:
    """Return sanitized output *text* split into logical display segments."""

    if not text:
        return []
    return text.replace("\r", "\n").splitlines()
