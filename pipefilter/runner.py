# -*- coding: utf-8 -*-
# pipefilter is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

# pipefilter/runner.py
"""Spawning of filter commands and collection of their output."""

import logging
import subprocess
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Sequence

from .command import DEFAULT_SHELL, describe, shell_argv
from .errors import RunnerFault, SpawnError
from .scheduler import Scheduler

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProcessResult:
    """
    Outcome of one filter process.

    For the synchronous strategy `stdout` holds stdout and stderr combined and
    `stderr` is empty. `fault` is set when collecting the output failed after
    the process had been started; `exit_code` is then -1.
    """

    exit_code: int
    stdout: List[str] = field(default_factory=list)
    stderr: List[str] = field(default_factory=list)
    fault: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.fault is None and self.exit_code == 0


@dataclass
class ProcessHandle:
    process: subprocess.Popen
    command: str
    thread: Optional[threading.Thread] = None

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def running(self) -> bool:
        return self.process.poll() is None


ExitCallback = Callable[[ProcessResult], None]


def split_output(text: str) -> List[str]:
    """
    Splits process output into lines.

    One trailing newline terminates the last line and does not start a new
    one; an empty output therefore yields a single empty line, which
    `normalize_output` turns into no lines at all.

    Example:
        >>> split_output("b\\na\\n")
        ['b', 'a']
        >>> split_output("")
        ['']
    """
    if text.endswith("\n"):
        text = text[:-1]
    return text.split("\n")


def normalize_output(lines: Sequence[str]) -> List[str]:
    """Maps exactly one empty line to no lines; anything else is kept as is."""
    if len(lines) == 1 and lines[0] == "":
        return []
    return list(lines)


def join_input(lines: Sequence[str]) -> str:
    return "\n".join(lines) + "\n"


class ProcessRunner:
    """
    Runs resolved filter commands under a shell.

    Args:
        scheduler (Scheduler): Queue onto which asynchronous completions are
            posted; completion callbacks run wherever the host drains it.
        shell (Sequence[str]): Shell argv prefix, ``("/bin/sh", "-c")`` by default.
        encoding (str): Encoding for stdin and for decoding the output.
        popen_factory: Replacement for `subprocess.Popen` (tests).
    """

    def __init__(
            self,
            scheduler: Scheduler,
            shell: Sequence[str] = DEFAULT_SHELL,
            encoding: str = "utf-8",
            popen_factory: Optional[Callable[..., subprocess.Popen]] = None,
    ) -> None:
        self.scheduler = scheduler
        self.shell = tuple(shell)
        self.encoding = encoding
        self._popen_factory = popen_factory or subprocess.Popen

    def _popen(self, command: str, cwd: Optional[str], stderr: Any) -> subprocess.Popen:
        argv = shell_argv(command, self.shell)
        try:
            return self._popen_factory(
                argv,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=stderr,
                text=True,
                encoding=self.encoding,
                errors="replace",
                cwd=cwd,
            )
        except OSError as exc:
            logger.error(f"Failed to start filter process '{describe(command)}': {exc}")
            raise SpawnError(f"Failed to start job: {exc}", command=command) from exc
        except Exception as exc:
            logger.exception(f"Unexpected error while starting '{describe(command)}'")
            raise RunnerFault(f"Failed to start job: {exc}", command=command) from exc

    # ───────────────────── Asynchronous strategy ─────────────────────
    def spawn(
            self,
            command: str,
            input_lines: Sequence[str],
            on_exit: ExitCallback,
            cwd: Optional[str] = None,
    ) -> ProcessHandle:
        """
        Starts `command` and returns without waiting for it.

        The captured lines are written to the child's stdin from a daemon
        thread, which also collects stdout and stderr separately. Once the
        process has exited, `on_exit(result)` is queued on the scheduler; it
        is never called from the worker thread.

        Raises:
            SpawnError: The process could not be created.
            RunnerFault: The spawn primitive failed for another reason.
        """
        process = self._popen(command, cwd, subprocess.PIPE)
        handle = ProcessHandle(process=process, command=command)
        logger.info(f"Filter process {process.pid} started: {describe(command)}")

        handle.thread = threading.Thread(
            target=self._collect,
            args=(handle, join_input(input_lines), on_exit),
            daemon=True,
            name=f"FilterJob-{process.pid}",
        )
        handle.thread.start()
        return handle

    def _collect(self, handle: ProcessHandle, payload: str, on_exit: ExitCallback) -> None:
        try:
            captured_stdout, captured_stderr = handle.process.communicate(payload)
            result = ProcessResult(
                exit_code=handle.process.returncode,
                stdout=split_output(captured_stdout or ""),
                stderr=split_output(captured_stderr or ""),
            )
            logger.debug(
                f"Filter process {handle.pid} finished. Exit code: {result.exit_code}. "
                f"Stdout lines: {len(result.stdout)}. Stderr lines: {len(result.stderr)}."
            )
        except Exception as exc:
            logger.error(f"Collecting output of filter process {handle.pid} failed: {exc}", exc_info=True)
            result = ProcessResult(exit_code=-1, fault=exc)
        self.scheduler.call_soon(on_exit, result)

    # ───────────────────── Synchronous strategy ─────────────────────
    def run_sync(
            self,
            command: str,
            input_lines: Sequence[str],
            cwd: Optional[str] = None,
    ) -> ProcessResult:
        """
        Runs `command` to completion on the calling thread.

        stderr is merged into stdout, so the result has a single combined
        sequence of lines in `stdout`.

        Raises:
            SpawnError: The process could not be created.
            RunnerFault: Running the process failed for another reason.
        """
        process = self._popen(command, cwd, subprocess.STDOUT)
        logger.info(f"Filter process {process.pid} started (sync): {describe(command)}")
        try:
            captured, _ = process.communicate(join_input(input_lines))
        except Exception as exc:
            logger.exception(f"Synchronous filter process {process.pid} failed")
            process.kill()
            process.wait()
            raise RunnerFault(f"Filter execution failed: {exc}", command=command) from exc

        result = ProcessResult(exit_code=process.returncode, stdout=split_output(captured or ""))
        logger.debug(f"Filter process {process.pid} finished. Exit code: {result.exit_code}. "
                     f"Output lines: {len(result.stdout)}.")
        return result
