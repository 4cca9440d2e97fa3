# -*- coding: utf-8 -*-
# pipefilter is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

# pipefilter/status.py
"""User-facing notices: severities and the status line that displays them."""

import enum
import logging
import threading
from collections import deque
from dataclasses import dataclass
from typing import Any, Deque, Dict, List, Optional

from wcwidth import wcswidth, wcwidth

logger = logging.getLogger(__name__)


class Severity(enum.IntEnum):
    """Notice severity. Values match the `logging` levels they are logged at."""

    INFO = logging.INFO
    WARNING = logging.WARNING
    ERROR = logging.ERROR


@dataclass(frozen=True)
class Notice:
    message: str
    severity: Severity = Severity.INFO


def truncate_display(text: str, max_width: int, ellipsis: str = "...") -> str:
    """
    Cuts `text` so that it occupies at most `max_width` terminal cells.

    Wide characters (CJK, emoji) count as two cells and non-printable ones as
    zero, the same way the status bar of the editor measures them.

    Example:
        >>> truncate_display("hello world", 8)
        'hello...'
    """
    if max_width <= 0:
        return ""
    full_width = wcswidth(text)
    if full_width >= 0 and full_width <= max_width:
        return text

    ellipsis_width = max(wcswidth(ellipsis), 0)
    if ellipsis_width >= max_width:
        ellipsis, ellipsis_width = "", 0
    budget = max_width - ellipsis_width

    result: List[str] = []
    used = 0
    for char in text:
        char_width = wcwidth(char)
        if char_width < 0:
            char_width = 0
        if used + char_width > budget:
            break
        result.append(char)
        used += char_width
    return "".join(result) + ellipsis


class StatusLine:
    """
    Collects notices reported by documents and filter operations.

    Each notice is logged at the level matching its severity and kept in a
    bounded history. `message` returns the latest notice cut to the width of
    the status bar.
    """

    def __init__(self, width: int = 80, history: int = 100) -> None:
        self.width = width
        self._history: Deque[Notice] = deque(maxlen=max(1, history))
        self._lock = threading.Lock()
        self._last_logged: Optional[Notice] = None

    @classmethod
    def from_config(cls, config: Optional[Dict[str, Any]] = None) -> "StatusLine":
        """Builds a status line from the `[status]` section of the configuration."""
        section = (config or {}).get("status", {})
        try:
            return cls(width=int(section.get("width", 80)), history=int(section.get("history", 100)))
        except (TypeError, ValueError) as exc:
            logger.warning(f"Invalid [status] configuration {section!r}: {exc} – using defaults.")
            return cls()

    def __call__(self, message: str, severity: Severity = Severity.INFO) -> None:
        self.notify(message, severity)

    def notify(self, message: str, severity: Severity = Severity.INFO) -> None:
        notice = Notice(str(message), Severity(severity))
        with self._lock:
            self._history.append(notice)
            duplicate = notice == self._last_logged
            self._last_logged = notice
        if duplicate:
            logger.debug(f"Skipping duplicate status message: '{notice.message}'")
            return
        logger.log(int(notice.severity), notice.message)

    @property
    def notices(self) -> List[Notice]:
        with self._lock:
            return list(self._history)

    @property
    def last(self) -> Optional[Notice]:
        with self._lock:
            return self._history[-1] if self._history else None

    @property
    def message(self) -> str:
        """The current status bar text, truncated to `width` cells."""
        last = self.last
        if last is None:
            return ""
        return truncate_display(last.message, self.width)

    def clear(self) -> None:
        with self._lock:
            self._history.clear()
            self._last_logged = None
