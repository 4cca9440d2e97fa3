# -*- coding: utf-8 -*-
# pipefilter is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

# pipefilter/__init__.py

__version__ = "0.1.0"

from .command import build_command
from .config import FilterSettings, load_config, setup_logging
from .controller import (
    DocumentSnapshot,
    FilterEngine,
    FilterMode,
    FilterOperation,
    FilterRequest,
    FilterState,
)
from .document import BufferDocument, Document, FileDocument
from .errors import (
    BusyError,
    CaptureError,
    DocumentError,
    DocumentReadOnlyError,
    ExitError,
    FilterError,
    InvalidRangeError,
    ReplaceError,
    RunnerFault,
    SpawnError,
)
from .lock import LockManager
from .runner import ProcessResult, ProcessRunner, normalize_output, split_output
from .scheduler import Scheduler
from .status import Notice, Severity, StatusLine

__all__ = [
    'BufferDocument',
    'BusyError',
    'CaptureError',
    'Document',
    'DocumentError',
    'DocumentReadOnlyError',
    'DocumentSnapshot',
    'ExitError',
    'FileDocument',
    'FilterEngine',
    'FilterError',
    'FilterMode',
    'FilterOperation',
    'FilterRequest',
    'FilterSettings',
    'FilterState',
    'InvalidRangeError',
    'LockManager',
    'Notice',
    'ProcessResult',
    'ProcessRunner',
    'ReplaceError',
    'RunnerFault',
    'Scheduler',
    'Severity',
    'SpawnError',
    'StatusLine',
    'build_command',
    'load_config',
    'normalize_output',
    'setup_logging',
    'split_output',
]
