# -*- coding: utf-8 -*-
# pipefilter is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

# pipefilter/scheduler.py
"""
Single-consumer callback queue.

Worker threads never touch a document. They post their continuation here and
the host's main loop runs it by calling `process_pending()`, so every document
mutation happens on one thread, in submission order.
"""

import logging
import queue
import threading
import time
from typing import Any, Callable, Optional, Tuple

logger = logging.getLogger(__name__)

Callback = Callable[..., Any]


class Scheduler:
    def __init__(self) -> None:
        self._queue: "queue.Queue[Tuple[Callback, Tuple[Any, ...]]]" = queue.Queue()

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def call_soon(self, callback: Callback, *args: Any) -> None:
        """Thread-safe: queues `callback(*args)` for the consumer thread."""
        self._queue.put((callback, args))
        logger.debug(
            f"Callback {getattr(callback, '__qualname__', callback)!s} queued "
            f"from thread '{threading.current_thread().name}'"
        )

    def process_pending(self) -> int:
        """
        Runs every queued callback on the calling thread without blocking.

        A callback that raises is logged with its traceback and the drain goes
        on with the next one, so one failing continuation cannot stall the
        others.

        Returns:
            int: Number of callbacks run.
        """
        processed = 0
        try:
            while True:
                self._run(*self._queue.get_nowait())
                processed += 1
        except queue.Empty:
            pass
        return processed

    def run_until(
            self,
            predicate: Callable[[], bool],
            timeout: Optional[float] = None,
            poll_interval: float = 0.01,
    ) -> bool:
        """
        Drains the queue until `predicate()` holds or `timeout` seconds pass.

        Blocks between callbacks for at most `poll_interval` seconds, so it
        can stand in for the host's main loop in scripts and tests.

        Returns:
            bool: The final value of `predicate()`.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            self.process_pending()
            if predicate():
                return True
            if deadline is not None and time.monotonic() >= deadline:
                return bool(predicate())
            try:
                self._run(*self._queue.get(timeout=poll_interval))
            except queue.Empty:
                continue

    @staticmethod
    def _run(callback: Callback, args: Tuple[Any, ...]) -> None:
        try:
            callback(*args)
        except Exception:
            logger.exception(f"Scheduled callback {getattr(callback, '__qualname__', callback)!s} failed")
