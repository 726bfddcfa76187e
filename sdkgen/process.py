"""Process execution adapters used by every workflow stage."""

from __future__ import annotations

import os
import shlex
import subprocess
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Mapping, Protocol, Sequence, Tuple, Union

Command = Union[str, Sequence[str]]


@dataclass(frozen=True)
class ProcessResult:
    """Captured outcome of an external command."""

    exit_code: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


class ProcessRunner(Protocol):
    def run(
        self,
        command: Command,
        *,
        cwd: Path,
        env: Mapping[str, str] | None = None,
    ) -> ProcessResult:
        ...


def command_text(command: Command) -> str:
    """Return the canonical text form of a command."""
    if isinstance(command, str):
        return command
    return shlex.join(list(command))


class SubprocessRunner:
    """Runs commands with :mod:`subprocess`, capturing output.

    String commands are shell scripts (``after_scripts`` entries); sequences
    are executed directly.
    """

    def __init__(self, timeout: float | None = None) -> None:
        self.timeout = timeout

    def run(
        self,
        command: Command,
        *,
        cwd: Path,
        env: Mapping[str, str] | None = None,
    ) -> ProcessResult:
        merged_env = None
        if env:
            merged_env = os.environ.copy()
            merged_env.update(env)
        shell = isinstance(command, str)
        args = command if shell else list(command)
        try:
            completed = subprocess.run(
                args,
                cwd=str(cwd),
                env=merged_env,
                shell=shell,
                check=False,
                text=True,
                encoding="utf-8",
                errors="replace",
                capture_output=True,
                timeout=self.timeout,
            )
        except FileNotFoundError as exc:
            return ProcessResult(exit_code=127, stderr=str(exc))
        except subprocess.TimeoutExpired as exc:
            return ProcessResult(
                exit_code=124,
                stdout=_decode(exc.stdout),
                stderr=f"Command timed out after {exc.timeout} seconds",
            )
        return ProcessResult(
            exit_code=completed.returncode,
            stdout=completed.stdout or "",
            stderr=completed.stderr or "",
        )


FakeOutcome = Union[ProcessResult, Callable[[Path], ProcessResult]]


class FakeProcessRunner:
    """Deterministic runner keyed by exact command text.

    An outcome is either a fixed :class:`ProcessResult` or a callable taking
    the working directory, for commands whose side effects matter (a clone
    creating its folder, a generator writing files). Unknown commands succeed
    with empty output unless ``strict`` is set. Every call is recorded as
    ``(command_text, cwd)``.
    """

    def __init__(
        self,
        results: Mapping[str, FakeOutcome] | None = None,
        *,
        strict: bool = False,
    ) -> None:
        self.results: Dict[str, FakeOutcome] = dict(results or {})
        self.strict = strict
        self.calls: List[Tuple[str, Path]] = []
        self._lock = threading.Lock()

    def add(self, command: Command, outcome: FakeOutcome) -> None:
        self.results[command_text(command)] = outcome

    def run(
        self,
        command: Command,
        *,
        cwd: Path,
        env: Mapping[str, str] | None = None,
    ) -> ProcessResult:
        text = command_text(command)
        with self._lock:
            self.calls.append((text, Path(cwd)))
        outcome = self.results.get(text)
        if outcome is not None:
            if callable(outcome):
                return outcome(Path(cwd))
            return outcome
        if self.strict:
            return ProcessResult(exit_code=127, stderr=f"unexpected command: {text}")
        return ProcessResult(exit_code=0)

    def commands(self) -> List[str]:
        with self._lock:
            return [text for text, _ in self.calls]


def _decode(value: object) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value if isinstance(value, str) else ""


__all__ = [
    "Command",
    "FakeProcessRunner",
    "ProcessResult",
    "ProcessRunner",
    "SubprocessRunner",
    "command_text",
]
