# -*- coding: utf-8 -*-
# pipefilter is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

# pipefilter/controller.py
"""
Filter operations: one document region piped through one external command.

A `FilterOperation` walks the states

    IDLE -> CAPTURING -> (LOCK_WAIT) -> RUNNING -> RECONCILING -> DONE

and can end in ABORTED before anything was changed (unreadable region, busy
document). Three modes share the same machine and differ only in locking and
in how the process is awaited:

* ``ASYNC``: the process runs in the background, the document stays
  editable; editability flags are only toggled around the replacement.
* ``ASYNC_LOCKED``: as ``ASYNC``, but a per-document lock rejects concurrent
  locked filters and the document is non-modifiable and read-only for the
  whole run.
* ``SYNC``: the process runs on the calling thread with stderr merged into
  stdout; ``FILE_LINE`` is exported to the child.

Whatever happens, the marker is removed, the editability flags end up as they
were before the operation, and a held lock is released.
"""

import enum
import logging
import os
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from .command import build_command, describe
from .config import FilterSettings, load_config
from .document import Document
from .errors import (
    BusyError,
    CaptureError,
    ExitError,
    FilterError,
    ReplaceError,
    RunnerFault,
    SpawnError,
)
from .lock import LockManager
from .runner import ProcessHandle, ProcessResult, ProcessRunner, normalize_output
from .scheduler import Scheduler
from .status import Severity

logger = logging.getLogger(__name__)


class FilterMode(enum.Enum):
    ASYNC = "async"
    ASYNC_LOCKED = "async_locked"
    SYNC = "sync"


class FilterState(enum.Enum):
    IDLE = "idle"
    CAPTURING = "capturing"
    LOCK_WAIT = "lock_wait"
    RUNNING = "running"
    RECONCILING = "reconciling"
    DONE = "done"
    ABORTED = "aborted"


_TRANSITIONS: Dict[FilterState, Set[FilterState]] = {
    FilterState.IDLE: {FilterState.CAPTURING, FilterState.ABORTED},
    FilterState.CAPTURING: {FilterState.LOCK_WAIT, FilterState.RUNNING, FilterState.ABORTED},
    FilterState.LOCK_WAIT: {FilterState.RUNNING, FilterState.ABORTED},
    FilterState.RUNNING: {FilterState.RECONCILING, FilterState.ABORTED},
    FilterState.RECONCILING: {FilterState.DONE, FilterState.ABORTED},
    FilterState.DONE: set(),
    FilterState.ABORTED: set(),
}


@dataclass(frozen=True)
class FilterRequest:
    """A command template applied to the 1-based inclusive lines `region_start`..`region_end`."""

    command_template: str
    region_start: int
    region_end: int
    mode: FilterMode = FilterMode.ASYNC


@dataclass
class DocumentSnapshot:
    captured_lines: List[str]
    prior_modifiable: bool
    prior_readonly: bool
    document_path: str


class FilterOperation:
    """
    Runs one `FilterRequest` against one document.

    Create it and call `start()`. For ``SYNC`` requests `start()` returns
    when the operation is finished; otherwise it returns once the process
    has been spawned and the rest happens in a callback run by the
    scheduler.

    Attributes:
        state (FilterState): Current state of the machine.
        error (Optional[FilterError]): Why the operation failed, if it did.
        result (Optional[ProcessResult]): Process outcome, once known.
        snapshot (Optional[DocumentSnapshot]): Region and flags captured at start.
        handle (Optional[ProcessHandle]): Spawned process (asynchronous modes).
    """

    def __init__(
            self,
            document: Document,
            request: FilterRequest,
            runner: ProcessRunner,
            locks: LockManager,
            settings: Optional[FilterSettings] = None,
    ) -> None:
        self.document = document
        self.request = request
        self.runner = runner
        self.locks = locks
        self.settings = settings or FilterSettings()

        self.state = FilterState.IDLE
        self.error: Optional[FilterError] = None
        self.result: Optional[ProcessResult] = None
        self.snapshot: Optional[DocumentSnapshot] = None
        self.handle: Optional[ProcessHandle] = None

        self._marker_id: Optional[int] = None
        self._restore_flags: Optional[Tuple[bool, bool]] = None
        self._lock_held = False
        self._done_callbacks: List[Callable[["FilterOperation"], Any]] = []

    def __repr__(self) -> str:
        req = self.request
        return (f"<FilterOperation {req.mode.value} lines {req.region_start}-{req.region_end} "
                f"'{describe(req.command_template, 30)}' state={self.state.value}>")

    @property
    def done(self) -> bool:
        return self.state in (FilterState.DONE, FilterState.ABORTED)

    @property
    def succeeded(self) -> bool:
        return self.state is FilterState.DONE and self.error is None

    @property
    def locking(self) -> bool:
        return self.request.mode is FilterMode.ASYNC_LOCKED

    def add_done_callback(self, callback: Callable[["FilterOperation"], Any]) -> None:
        """Calls `callback(operation)` once the operation is DONE or ABORTED."""
        if self.done:
            callback(self)
        else:
            self._done_callbacks.append(callback)

    def _transition(self, new_state: FilterState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"Illegal filter state transition {self.state.value} -> {new_state.value}")
        logger.debug(f"{self!r}: {self.state.value} -> {new_state.value}")
        self.state = new_state

    # ───────────────────── IDLE -> CAPTURING -> LOCK_WAIT ─────────────────────
    def start(self) -> "FilterOperation":
        req = self.request
        self._transition(FilterState.CAPTURING)
        try:
            if req.region_start < 1 or req.region_end < req.region_start:
                raise CaptureError(f"Failed to get buffer lines: invalid region {req.region_start}-{req.region_end}")
            captured = self.document.get_lines(req.region_start - 1, req.region_end)
        except CaptureError as exc:
            self._abort(exc)
            return self
        except Exception as exc:
            self._abort(CaptureError(f"Failed to get buffer lines: {exc}"))
            return self

        if self.locking:
            self._transition(FilterState.LOCK_WAIT)
            if not self.locks.try_acquire(self.document):
                self._abort(BusyError())
                return self
            self._lock_held = True

        self._transition(FilterState.RUNNING)
        try:
            sync_result = self._run(captured)
        except SpawnError as exc:
            self._reconcile_failure(exc)
            return self
        except Exception as exc:
            logger.exception(f"{self!r}: unexpected error while starting the filter")
            self._reconcile_failure(RunnerFault(f"Filter execution failed: {exc}"))
            return self

        if sync_result is not None:
            self._complete(sync_result)
        return self

    # ───────────────────── RUNNING ─────────────────────
    def _run(self, captured: List[str]) -> Optional[ProcessResult]:
        """Spawns the process; returns its result for SYNC requests, None otherwise."""
        req = self.request
        document = self.document
        self.snapshot = DocumentSnapshot(
            captured_lines=captured,
            prior_modifiable=document.modifiable,
            prior_readonly=document.readonly,
            document_path=document.path or "",
        )

        marker_text = self.settings.markers.get(req.mode.value, "")
        self._marker_id = document.add_marker(max(0, req.region_start - 1), marker_text)

        if self.locking:
            self._restore_flags = (self.snapshot.prior_modifiable, self.snapshot.prior_readonly)
            document.modifiable = False
            document.readonly = True

        command = build_command(
            req.command_template,
            self.snapshot.document_path,
            req.region_start if req.mode is FilterMode.SYNC else None,
            path_variable=self.settings.path_variable,
            line_variable=self.settings.line_variable,
        )
        cwd = self._working_directory()

        if req.mode is FilterMode.SYNC:
            return self.runner.run_sync(command, captured, cwd=cwd)
        self.handle = self.runner.spawn(command, captured, self._complete, cwd=cwd)
        return None

    def _working_directory(self) -> Optional[str]:
        path = self.snapshot.document_path if self.snapshot else ""
        if path and os.path.isfile(path):
            return os.path.dirname(os.path.abspath(path))
        return None

    # ───────────────────── RECONCILING -> DONE ─────────────────────
    def _complete(self, result: ProcessResult) -> None:
        """Process exit continuation; runs on the scheduler's consumer thread."""
        self.result = result
        self._transition(FilterState.RECONCILING)
        try:
            self._remove_marker()
            if result.fault is not None:
                raise RunnerFault(f"Filter execution failed: {result.fault}")
            if result.exit_code != 0:
                output = result.stdout if self.request.mode is FilterMode.SYNC else result.stderr
                raise ExitError(result.exit_code, normalize_output(output))
            self._replace(normalize_output(result.stdout))
        except FilterError as exc:
            self.error = exc
        except Exception as exc:
            logger.exception(f"{self!r}: unexpected error while applying the filter output")
            self.error = ReplaceError(f"Failed to apply filter output: {exc}")
        finally:
            self._restore()
            self._finish()

    def _reconcile_failure(self, error: FilterError) -> None:
        if self.done:
            logger.error(f"{self!r}: late failure after completion ignored: {error.notice}")
            return
        self._transition(FilterState.RECONCILING)
        self.error = error
        self._restore()
        self._finish()

    def _replace(self, lines: List[str]) -> None:
        req = self.request
        document = self.document
        if self._restore_flags is None:
            # Current flags; a locked operation may have changed them since this one was spawned.
            self._restore_flags = (document.modifiable, document.readonly)
        document.modifiable = True
        document.readonly = False
        try:
            document.set_lines(req.region_start - 1, req.region_end, lines)
        except Exception as exc:
            raise ReplaceError(f"Failed to replace lines {req.region_start}-{req.region_end}: {exc}") from exc

    def _remove_marker(self) -> None:
        if self._marker_id is not None:
            marker_id, self._marker_id = self._marker_id, None
            self.document.remove_marker(marker_id)

    def _restore(self) -> None:
        """Removes the marker and puts the editability flags back; safe to call repeatedly."""
        self._remove_marker()
        if self._restore_flags is not None:
            modifiable, readonly = self._restore_flags
            self._restore_flags = None
            self.document.modifiable = modifiable
            self.document.readonly = readonly

    def _release_lock(self) -> None:
        if self._lock_held:
            self._lock_held = False
            self.locks.release(self.document)

    def _finish(self) -> None:
        self._release_lock()
        self._transition(FilterState.DONE)
        if self.error is not None:
            self._report(self.error)
        else:
            req = self.request
            count = len(normalize_output(self.result.stdout)) if self.result else 0
            logger.info(f"{self!r}: replaced lines {req.region_start}-{req.region_end} with {count} line(s)")
            self._notify(
                f"Filtered lines {req.region_start}-{req.region_end} through "
                f"'{describe(req.command_template, 40)}' ({count} line(s))",
                Severity.INFO,
            )
        self._fire_done_callbacks()

    def _abort(self, error: FilterError) -> None:
        self.error = error
        self._restore()
        self._release_lock()
        self._transition(FilterState.ABORTED)
        self._report(error)
        self._fire_done_callbacks()

    def _report(self, error: FilterError) -> None:
        logger.log(int(error.severity), f"{self!r}: {error.notice}")
        self._notify(error.notice, error.severity)

    def _notify(self, message: str, severity: Severity) -> None:
        try:
            self.document.notify(message, severity)
        except Exception:
            logger.exception(f"{self!r}: notifying the document failed")

    def _fire_done_callbacks(self) -> None:
        callbacks, self._done_callbacks = self._done_callbacks, []
        for callback in callbacks:
            try:
                callback(self)
            except Exception:
                logger.exception(f"{self!r}: done callback failed")


class FilterEngine:
    """
    Entry points for filtering document regions through shell commands.

    Args:
        runner (Optional[ProcessRunner]): Process runner; built from
            `settings` on top of `scheduler` when omitted.
        scheduler (Optional[Scheduler]): Queue the host drains from its main
            loop. Defaults to the runner's scheduler, or a new one.
        locks (Optional[LockManager]): Lock manager for locked filters.
        settings (Optional[FilterSettings]): Filter configuration.

    Example:
        >>> engine = FilterEngine()
        >>> doc = BufferDocument(["b", "a", "b"])
        >>> op = engine.run_async_locked(doc, "sort -u", 1, 3)
        >>> engine.wait(op, timeout=5)
        True
        >>> doc.lines
        ['a', 'b']
    """

    def __init__(
            self,
            runner: Optional[ProcessRunner] = None,
            scheduler: Optional[Scheduler] = None,
            locks: Optional[LockManager] = None,
            settings: Optional[FilterSettings] = None,
    ) -> None:
        self.settings = settings or FilterSettings()
        if scheduler is None:
            scheduler = runner.scheduler if runner is not None else Scheduler()
        self.scheduler = scheduler
        self.runner = runner or ProcessRunner(
            scheduler, shell=self.settings.shell, encoding=self.settings.encoding
        )
        self.locks = locks or LockManager(self.settings.lock_variable)
        self._active: List[FilterOperation] = []

    @classmethod
    def from_config(cls, config: Optional[Dict[str, Any]] = None) -> "FilterEngine":
        """Builds an engine from a configuration dict (default: `load_config()`)."""
        if config is None:
            config = load_config()
        return cls(settings=FilterSettings.from_config(config))

    @property
    def active_operations(self) -> List[FilterOperation]:
        return [op for op in self._active if not op.done]

    def run(self, document: Document, request: FilterRequest) -> FilterOperation:
        operation = FilterOperation(document, request, self.runner, self.locks, self.settings)
        self._active.append(operation)
        operation.add_done_callback(self._forget)
        logger.info(f"Starting {operation!r} on document #{document.handle}")
        return operation.start()

    def _forget(self, operation: FilterOperation) -> None:
        if operation in self._active:
            self._active.remove(operation)

    def run_async(self, document: Document, template: str, start: int, end: int) -> FilterOperation:
        """Filters in the background without locking the document."""
        return self.run(document, FilterRequest(template, start, end, FilterMode.ASYNC))

    def run_async_locked(self, document: Document, template: str, start: int, end: int) -> FilterOperation:
        """Filters in the background; the document is locked until the result is applied."""
        return self.run(document, FilterRequest(template, start, end, FilterMode.ASYNC_LOCKED))

    def run_sync(self, document: Document, template: str, start: int, end: int) -> FilterOperation:
        """Filters on the calling thread; returns once the document was updated or the error reported."""
        return self.run(document, FilterRequest(template, start, end, FilterMode.SYNC))

    def wait(self, operation: Optional[FilterOperation] = None, timeout: Optional[float] = None) -> bool:
        """
        Drains the scheduler until `operation` (or every active operation) is done.

        Returns:
            bool: False if `timeout` expired first.
        """
        if operation is not None:
            return self.scheduler.run_until(lambda: operation.done, timeout=timeout)
        return self.scheduler.run_until(lambda: not self.active_operations, timeout=timeout)
