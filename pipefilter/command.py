# -*- coding: utf-8 -*-
# pipefilter is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

# pipefilter/command.py
"""Resolution of filter command templates into shell command strings."""

import logging
import shlex
from typing import List, Optional, Sequence

logger = logging.getLogger(__name__)

PLACEHOLDER = "{}"
DEFAULT_PATH_VARIABLE = "FILE_PATH"
DEFAULT_LINE_VARIABLE = "FILE_LINE"
DEFAULT_SHELL = ("/bin/sh", "-c")


def build_command(
        template: str,
        document_path: str,
        start_line: Optional[int] = None,
        *,
        path_variable: str = DEFAULT_PATH_VARIABLE,
        line_variable: str = DEFAULT_LINE_VARIABLE,
) -> str:
    """
    Resolves a command template against the document it will filter.

    Rules, applied in order:

    1. With a document path and a ``{}`` placeholder in the template, every
       ``{}`` is replaced by the shell-escaped path.
    2. With a document path and no placeholder, the escaped path is exported
       to the child as ``FILE_PATH=<path>``.
    3. When `start_line` is given (synchronous filters), ``FILE_LINE=<path>:<line>``
       is exported as well, whether or not the placeholder was used.

    Without a document path the template is returned unchanged. Building never
    fails; a malformed template shows up later as a non-zero exit status.

    Args:
        template (str): Shell command, possibly containing ``{}``.
        document_path (str): Path of the filtered document, may be empty.
        start_line (Optional[int]): 1-based first line of the region, only for
            synchronous filters.
        path_variable (str): Name of the exported path variable.
        line_variable (str): Name of the exported ``path:line`` variable.

    Returns:
        str: The command line to hand to the shell.

    Example:
        >>> build_command("sort -u", "/tmp/a.txt")
        'FILE_PATH=/tmp/a.txt sort -u'
        >>> build_command("wc -l {}", "/tmp/my file.txt")
        "wc -l '/tmp/my file.txt'"
        >>> build_command("make", "/tmp/a.c", 12)
        'FILE_LINE=/tmp/a.c:12 FILE_PATH=/tmp/a.c make'
    """
    command = template or ""
    if not document_path:
        return command

    escaped_path = shlex.quote(document_path)
    if PLACEHOLDER in command:
        command = command.replace(PLACEHOLDER, escaped_path)
    else:
        command = f"{path_variable}={escaped_path} {command}"

    if start_line is not None:
        location = shlex.quote(f"{document_path}:{start_line}")
        command = f"{line_variable}={location} {command}"

    logger.debug(f"Resolved filter command: {command}")
    return command


def shell_argv(command: str, shell: Sequence[str] = DEFAULT_SHELL) -> List[str]:
    """Returns the argv that runs `command` under `shell` (e.g. ``["/bin/sh", "-c", command]``)."""
    return [*shell, command]


def describe(command: str, max_len: int = 60) -> str:
    """Shortens a command line for status messages."""
    if len(command) > max_len:
        return command[:max_len - 3] + "..."
    return command
