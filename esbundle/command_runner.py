"""Process execution for the bundler driver, with a recording dry-run variant."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Mapping, Sequence
import logging
import shlex
import subprocess


logger = logging.getLogger(__name__)


@dataclass
class CommandResult:
    """Represents the outcome of an executed command."""

    command: Sequence[str]
    returncode: int
    interrupted: bool = False


class CommandError(RuntimeError):
    """Raised when a command exits with a non-zero status."""

    def __init__(self, result: CommandResult):
        super().__init__(f"Command failed with exit code {result.returncode}: {format_command(result.command, limit=80)}")
        self.result = result


def format_command(
    command: Sequence[str],
    *,
    limit: int | None = None,
    substitutions: Mapping[str, str] | None = None,
) -> str:
    """Quote ``command`` for display.

    Arguments found in ``substitutions`` are shown as their replacement text
    and arguments longer than ``limit`` are elided.
    """
    parts = []
    for part in command:
        if substitutions and part in substitutions:
            parts.append(substitutions[part])
            continue
        if limit is not None and len(part) > limit:
            part = f"<{len(part)} chars>"
        parts.append(shlex.quote(part))
    return " ".join(parts)


class CommandRunner:
    """Abstract command runner interface."""

    def run(
        self,
        command: Sequence[str],
        *,
        cwd: Path | None = None,
        input: str | None = None,
        note: str | None = None,
    ) -> CommandResult:
        raise NotImplementedError


class SubprocessCommandRunner(CommandRunner):
    """Runs commands via :mod:`subprocess` attached to the terminal.

    ``input`` is written to the child's stdin, which is then closed. Ctrl+C
    stops the child and is reported as an interrupted result rather than an
    error.
    """

    def run(
        self,
        command: Sequence[str],
        *,
        cwd: Path | None = None,
        input: str | None = None,
        note: str | None = None,
    ) -> CommandResult:
        logger.debug("running %s%s", f"[{note}] " if note else "", format_command(command, limit=80))
        process = subprocess.Popen(
            command,
            cwd=str(cwd) if cwd else None,
            stdin=subprocess.PIPE if input is not None else None,
            text=True,
        )
        try:
            process.communicate(input)
        except KeyboardInterrupt:
            logger.debug("interrupted, stopping %s", command[0])
            process.terminate()
            try:
                process.wait(timeout=5)
            except subprocess.TimeoutExpired:
                process.kill()
                process.wait()
            return CommandResult(command=command, returncode=process.returncode, interrupted=True)

        result = CommandResult(command=command, returncode=process.returncode)
        if result.returncode != 0:
            raise CommandError(result)
        return result


@dataclass(slots=True)
class RecordedCommand:
    command: List[str]
    cwd: str | None
    note: str | None
    input: str | None = None


class RecordingCommandRunner(CommandRunner):
    """Command runner that records commands instead of executing them."""

    def __init__(self) -> None:
        self.commands: List[RecordedCommand] = []

    def run(
        self,
        command: Sequence[str],
        *,
        cwd: Path | None = None,
        input: str | None = None,
        note: str | None = None,
    ) -> CommandResult:
        self.commands.append(
            RecordedCommand(command=list(command), cwd=str(cwd) if cwd else None, note=note, input=input)
        )
        return CommandResult(command=command, returncode=0)

    def iter_formatted(
        self,
        *,
        workspace: Path | None = None,
        substitutions: Mapping[str, str] | None = None,
    ) -> Iterable[str]:
        """Yield one shell-style line per command; stdin is shown as a here-string."""

        default_cwd = str(workspace) if workspace else None
        for record in self.commands:
            cwd = record.cwd or default_cwd
            parts: List[str] = ["[dry-run]"]
            if record.note:
                parts.append(record.note)
            if cwd:
                parts.append(f"(cwd={cwd})")
            parts.append(format_command(record.command, substitutions=substitutions))
            if record.input is not None:
                parts.append(f"<<< {shlex.quote(record.input)}")
            yield " ".join(parts)
