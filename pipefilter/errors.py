# -*- coding: utf-8 -*-
# pipefilter is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

# pipefilter/errors.py
"""Exceptions raised by documents and filter operations."""

from typing import List, Optional

from .status import Severity


class DocumentError(Exception):
    """Base error for document port operations."""


class InvalidRangeError(DocumentError, IndexError):
    def __init__(self, start: int, end: int, line_count: int):
        super().__init__(
            f"Invalid line range [{start}, {end}) for a document of {line_count} line(s)"
        )
        self.start = start
        self.end = end
        self.line_count = line_count


class DocumentReadOnlyError(DocumentError):
    pass


class FilterError(Exception):
    """
    Base error for one filter operation.

    Every filter error is handled at the controller boundary and turned into
    a notice; `severity` chooses how that notice is shown.
    """

    severity: Severity = Severity.ERROR

    @property
    def notice(self) -> str:
        return str(self)


class CaptureError(FilterError):
    def __init__(self, message: str = "Failed to get buffer lines"):
        super().__init__(message)


class BusyError(FilterError):
    severity = Severity.WARNING

    def __init__(self, message: str = "Another filter is already running on this document"):
        super().__init__(message)


class SpawnError(FilterError):
    def __init__(self, message: str = "Failed to start job", command: Optional[str] = None):
        super().__init__(message)
        self.command = command


class RunnerFault(SpawnError):
    """The execution primitive itself failed, independently of the child process."""


class ExitError(FilterError):
    def __init__(self, exit_code: int, output: Optional[List[str]] = None):
        self.exit_code = exit_code
        self.output = list(output or [])
        detail = "\n".join(self.output).strip()
        if not detail:
            detail = f"filter exited with code {exit_code}"
        super().__init__(f"Filter failed: {detail}")


class ReplaceError(FilterError):
    pass
