# -*- coding: utf-8 -*-
# pipefilter is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

# pipefilter/lock.py
"""Per-document flag serializing locked filter operations."""

import logging

from .document import Document

logger = logging.getLogger(__name__)

DEFAULT_LOCK_VARIABLE = "filter_lock"


class LockManager:
    """
    Keeps the lock flag in the document's own variable store, so it is seen by
    every operation on that document and by nothing else.

    Acquisition and release happen on the scheduler's consumer thread only,
    which makes the check-then-set in `try_acquire` atomic without a mutex.
    """

    def __init__(self, variable: str = DEFAULT_LOCK_VARIABLE) -> None:
        self.variable = variable

    def is_locked(self, document: Document) -> bool:
        return bool(document.get_var(self.variable, False))

    def try_acquire(self, document: Document) -> bool:
        if self.is_locked(document):
            logger.debug(f"Lock '{self.variable}' on document #{document.handle} is already held")
            return False
        document.set_var(self.variable, True)
        logger.debug(f"Lock '{self.variable}' on document #{document.handle} acquired")
        return True

    def release(self, document: Document) -> None:
        """Clears the flag. Releasing a lock that is not held does nothing."""
        if not self.is_locked(document):
            return
        document.set_var(self.variable, False)
        logger.debug(f"Lock '{self.variable}' on document #{document.handle} released")
