# -*- coding: utf-8 -*-
# pipefilter is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

# pipefilter/document.py
"""
Document port consumed by the filter engine, and the in-memory buffers that
implement it.

Line ranges passed to `get_lines` / `set_lines` are 0-based and
end-exclusive, like Python slices. Filter requests use 1-based inclusive
regions; the controller does the conversion.
"""

import abc
import itertools
import logging
import threading
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import chardet

from .errors import DocumentReadOnlyError, InvalidRangeError
from .status import Severity, StatusLine

logger = logging.getLogger(__name__)

Notifier = Callable[[str, Severity], None]

_handle_counter = itertools.count(1)


class Document(abc.ABC):
    """Capabilities a host editor must provide to have its buffers filtered."""

    @property
    @abc.abstractmethod
    def handle(self) -> int:
        """Stable identity of the document."""

    @property
    @abc.abstractmethod
    def path(self) -> str:
        """File path of the document, or an empty string for unsaved buffers."""

    @property
    @abc.abstractmethod
    def line_count(self) -> int: ...

    @abc.abstractmethod
    def get_lines(self, start: int, end: int) -> List[str]: ...

    @abc.abstractmethod
    def set_lines(self, start: int, end: int, lines: Sequence[str]) -> None: ...

    @property
    @abc.abstractmethod
    def modifiable(self) -> bool: ...

    @modifiable.setter
    @abc.abstractmethod
    def modifiable(self, value: bool) -> None: ...

    @property
    @abc.abstractmethod
    def readonly(self) -> bool: ...

    @readonly.setter
    @abc.abstractmethod
    def readonly(self, value: bool) -> None: ...

    @abc.abstractmethod
    def get_var(self, name: str, default: Any = None) -> Any: ...

    @abc.abstractmethod
    def set_var(self, name: str, value: Any) -> None: ...

    @abc.abstractmethod
    def del_var(self, name: str) -> None: ...

    @abc.abstractmethod
    def add_marker(self, line: int, text: str) -> int: ...

    @abc.abstractmethod
    def remove_marker(self, marker_id: int) -> None: ...

    @abc.abstractmethod
    def notify(self, message: str, severity: Severity = Severity.INFO) -> None: ...


class BufferDocument(Document):
    """
    In-memory text buffer implementing the document port.

    The buffer always holds at least one line, like an editor buffer: removing
    every line leaves a single empty one. All state is guarded by a re-entrant
    lock so a host may read it from other threads, although the filter engine
    itself only touches it from the scheduler's consumer thread.

    Attributes:
        modified (bool): True once `set_lines` changed the content.
        markers (Dict[int, Tuple[int, str]]): Live markers by id, as
            `(line, text)` with a 0-based line.
    """

    def __init__(
            self,
            lines: Optional[Sequence[str]] = None,
            path: str = "",
            notifier: Optional[Notifier] = None,
    ) -> None:
        self._handle = next(_handle_counter)
        self._path = path or ""
        self._lines: List[str] = list(lines) if lines else [""]
        self._modifiable = True
        self._readonly = False
        self._vars: Dict[str, Any] = {}
        self._markers: Dict[int, Tuple[int, str]] = {}
        self._marker_ids = itertools.count(1)
        self._state_lock = threading.RLock()
        self.status = notifier if notifier is not None else StatusLine()
        self.modified = False

    def __repr__(self) -> str:
        return f"<{type(self).__name__} #{self._handle} path={self._path!r} lines={len(self._lines)}>"

    # ───────────────────── Identity ─────────────────────
    @property
    def handle(self) -> int:
        return self._handle

    @property
    def path(self) -> str:
        return self._path

    @path.setter
    def path(self, value: str) -> None:
        self._path = value or ""

    # ───────────────────── Content ─────────────────────
    @property
    def line_count(self) -> int:
        with self._state_lock:
            return len(self._lines)

    @property
    def lines(self) -> List[str]:
        with self._state_lock:
            return list(self._lines)

    def get_lines(self, start: int, end: int) -> List[str]:
        with self._state_lock:
            count = len(self._lines)
            if start < 0 or end < start or end > count:
                raise InvalidRangeError(start, end, count)
            return self._lines[start:end]

    def set_lines(self, start: int, end: int, lines: Sequence[str]) -> None:
        """
        Replaces lines `[start, end)` with `lines`.

        `end` is clamped to the current line count, so a region that shrank
        since it was captured is still replaced up to the end of the buffer.

        Raises:
            DocumentReadOnlyError: The buffer is not modifiable.
            InvalidRangeError: `start` lies outside the buffer or `end < start`.
        """
        with self._state_lock:
            if not self._modifiable:
                raise DocumentReadOnlyError("Buffer is not 'modifiable'")
            count = len(self._lines)
            if start < 0 or start > count or end < start:
                raise InvalidRangeError(start, end, count)
            end = min(end, count)
            self._lines[start:end] = [str(line) for line in lines]
            if not self._lines:
                self._lines = [""]
            self.modified = True
            self._shift_markers(start, end, len(lines))
        logger.debug(f"{self!r}: replaced lines [{start}, {end}) with {len(lines)} line(s)")

    def _shift_markers(self, start: int, end: int, new_count: int) -> None:
        delta = new_count - (end - start)
        if not delta:
            return
        last_line = len(self._lines) - 1
        for marker_id, (line, text) in list(self._markers.items()):
            if line >= end:
                line += delta
            elif line >= start + new_count:
                line = start + max(new_count - 1, 0)
            self._markers[marker_id] = (min(max(line, 0), last_line), text)

    # ───────────────────── Options ─────────────────────
    @property
    def modifiable(self) -> bool:
        return self._modifiable

    @modifiable.setter
    def modifiable(self, value: bool) -> None:
        with self._state_lock:
            self._modifiable = bool(value)

    @property
    def readonly(self) -> bool:
        return self._readonly

    @readonly.setter
    def readonly(self, value: bool) -> None:
        with self._state_lock:
            self._readonly = bool(value)

    # ───────────────────── Variables ─────────────────────
    def get_var(self, name: str, default: Any = None) -> Any:
        with self._state_lock:
            return self._vars.get(name, default)

    def set_var(self, name: str, value: Any) -> None:
        with self._state_lock:
            self._vars[name] = value

    def del_var(self, name: str) -> None:
        with self._state_lock:
            self._vars.pop(name, None)

    # ───────────────────── Markers ─────────────────────
    @property
    def markers(self) -> Dict[int, Tuple[int, str]]:
        with self._state_lock:
            return dict(self._markers)

    def add_marker(self, line: int, text: str) -> int:
        with self._state_lock:
            line = min(max(0, line), len(self._lines) - 1)
            marker_id = next(self._marker_ids)
            self._markers[marker_id] = (line, text)
        logger.debug(f"{self!r}: marker {marker_id} placed on line {line}: '{text}'")
        return marker_id

    def remove_marker(self, marker_id: int) -> None:
        with self._state_lock:
            removed = self._markers.pop(marker_id, None)
        if removed is not None:
            logger.debug(f"{self!r}: marker {marker_id} removed")

    # ───────────────────── Notices ─────────────────────
    def notify(self, message: str, severity: Severity = Severity.INFO) -> None:
        self.status(message, severity)


class FileDocument(BufferDocument):
    """A buffer loaded from disk, remembering the encoding it was decoded with."""

    #: How many bytes are handed to chardet for detection.
    DETECTION_SAMPLE_SIZE = 1024 * 20
    #: Minimum chardet confidence for trusting the guess in strict mode.
    CONFIDENCE_THRESHOLD = 0.75

    def __init__(
            self,
            lines: Optional[Sequence[str]] = None,
            path: str = "",
            notifier: Optional[Notifier] = None,
            encoding: str = "utf-8",
    ) -> None:
        super().__init__(lines, path, notifier)
        self.encoding = encoding

    @classmethod
    def open(cls, path: str, notifier: Optional[Notifier] = None) -> "FileDocument":
        """
        Reads `path` into a new document.

        The encoding is guessed with chardet from the first bytes of the file;
        a confident guess is tried strictly first, then UTF-8 and Latin-1, and
        finally UTF-8 with replacement characters.

        Raises:
            OSError: The file cannot be read.
        """
        with open(path, "rb") as fh:
            raw = fh.read()

        if not raw:
            logger.info(f"File '{path}' is empty.")
            return cls([""], path=path, notifier=notifier)

        text, encoding = cls._decode(raw, path)
        document = cls(text.splitlines() or [""], path=path, notifier=notifier, encoding=encoding)
        logger.info(f"File opened: '{path}', Encoding: {encoding}, Lines: {document.line_count}")
        return document

    @classmethod
    def _decode(cls, raw: bytes, path: str) -> Tuple[str, str]:
        detected = chardet.detect(raw[:cls.DETECTION_SAMPLE_SIZE])
        guess = detected.get("encoding")
        confidence = detected.get("confidence") or 0.0
        logger.debug(f"Chardet detected encoding '{guess}' with confidence {confidence:.2f} for '{path}'.")

        attempts: List[Tuple[str, str]] = []
        if guess and confidence >= cls.CONFIDENCE_THRESHOLD:
            attempts.append((guess, "strict"))
        attempts += [("utf-8", "strict"), ("latin-1", "strict")]
        if guess and confidence < cls.CONFIDENCE_THRESHOLD:
            attempts.append((guess, "replace"))

        seen = set()
        for encoding, errors in attempts:
            key = (encoding.lower(), errors)
            if key in seen:
                continue
            seen.add(key)
            try:
                return raw.decode(encoding, errors=errors), encoding
            except (UnicodeDecodeError, LookupError) as exc:
                logger.warning(f"Failed to decode '{path}' with encoding '{encoding}' (errors='{errors}'): {exc}")
        return raw.decode("utf-8", errors="replace"), "utf-8"

    def save(self, path: Optional[str] = None) -> None:
        """
        Writes the buffer to `path` (default: the document path).

        Raises:
            ValueError: The document has no path and none was given.
            OSError: The file cannot be written.
        """
        target = path or self.path
        if not target:
            raise ValueError("Document has no file path")
        content = "\n".join(self.lines) + "\n"
        with open(target, "w", encoding=self.encoding, errors="replace") as fh:
            fh.write(content)
        self.path = target
        self.modified = False
        logger.info(f"Saved '{target}' ({self.line_count} lines, enc: {self.encoding})")
