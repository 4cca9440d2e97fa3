# -*- coding: utf-8 -*-
# pipefilter is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

# pipefilter/config.py
"""Configuration loading and logging setup."""

import logging
import logging.handlers
import os
import sys
import tempfile
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

import toml

from .command import DEFAULT_LINE_VARIABLE, DEFAULT_PATH_VARIABLE, DEFAULT_SHELL
from .lock import DEFAULT_LOCK_VARIABLE

PACKAGE_CONFIG_PATH = os.path.join(os.path.dirname(os.path.abspath(__file__)), "config.toml")
USER_CONFIG_PATH = "config.toml"


# --- Dictionary Deep Merge Utility ---
def deep_merge(base: Dict[Any, Any], override: Dict[Any, Any]) -> Dict[Any, Any]:
    """
    Recursively merges the `override` dictionary into the `base` dictionary.

    Nested dictionaries are merged key by key; any other value from `override`
    replaces the one in `base`. Neither argument is modified.

    Example:
        >>> deep_merge({'a': 1, 'b': {'x': 10, 'y': 20}}, {'b': {'y': 99}, 'c': 3})
        {'a': 1, 'b': {'x': 10, 'y': 99}, 'c': 3}
    """
    result = dict(base)
    for key, override_value in override.items():
        base_value = result.get(key)
        if isinstance(base_value, dict) and isinstance(override_value, dict):
            result[key] = deep_merge(base_value, override_value)
        else:
            result[key] = override_value
    return result


def _read_toml(path: str) -> Dict[str, Any]:
    if not os.path.exists(path):
        logging.debug("Config file %s not found.", path)
        return {}
    try:
        with open(path, "r", encoding="utf-8") as fh:
            data = toml.loads(fh.read())
        logging.debug("Loaded config from %s", path)
        return data
    except toml.TomlDecodeError as exc:
        logging.error("TOML parse error in %s: %s – using defaults.", path, exc)
    except OSError as exc:
        logging.error("Error reading %s: %s – using defaults.", path, exc)
    return {}


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Loads the configuration, applying safe defaults.

    Three layers are merged, later ones winning key by key:

    1. Hard-coded minimal defaults, so the engine starts in any environment.
    2. The `config.toml` shipped inside the package.
    3. The user file: `config_path` if given, else *config.toml* in the
       current working directory.

    Missing files and TOML syntax errors are logged and skipped, so the
    function never raises.

    Returns:
        dict: The merged configuration.

    Example:
        >>> config = load_config()
        >>> config["filter"]["path_variable"]
        'FILE_PATH'
    """
    minimal_default: Dict[str, Any] = {
        "filter": {
            "shell": list(DEFAULT_SHELL),
            "encoding": "utf-8",
            "path_variable": DEFAULT_PATH_VARIABLE,
            "line_variable": DEFAULT_LINE_VARIABLE,
            "lock_variable": DEFAULT_LOCK_VARIABLE,
            "markers": {
                "async": " Filtering (async) ",
                "async_locked": " Filtering (async), buffer locked ",
                "sync": " Filtering ",
            },
        },
        "status": {"width": 80, "history": 100},
        "logging": {
            "log_file": "pipefilter.log",
            "file_level": "DEBUG",
            "console_level": "WARNING",
            "log_to_console": True,
            "separate_error_log": False,
        },
    }

    final_config = deep_merge(minimal_default, _read_toml(PACKAGE_CONFIG_PATH))

    user_path = config_path or USER_CONFIG_PATH
    if config_path and not os.path.exists(config_path):
        logging.warning("Config file %s not found – using defaults.", config_path)
    final_config = deep_merge(final_config, _read_toml(user_path))

    logging.debug("Final configuration loaded successfully.")
    return final_config


@dataclass(frozen=True)
class FilterSettings:
    """The `[filter]` section of the configuration, validated."""

    shell: Tuple[str, ...] = DEFAULT_SHELL
    encoding: str = "utf-8"
    path_variable: str = DEFAULT_PATH_VARIABLE
    line_variable: str = DEFAULT_LINE_VARIABLE
    lock_variable: str = DEFAULT_LOCK_VARIABLE
    markers: Dict[str, str] = field(default_factory=lambda: {
        "async": " Filtering (async) ",
        "async_locked": " Filtering (async), buffer locked ",
        "sync": " Filtering ",
    })

    @classmethod
    def from_config(cls, config: Optional[Dict[str, Any]] = None) -> "FilterSettings":
        section = (config or {}).get("filter", {})
        defaults = cls()

        shell = section.get("shell", defaults.shell)
        if isinstance(shell, str):
            shell = (shell, "-c")
        if not shell or not all(isinstance(part, str) for part in shell):
            logging.warning("Invalid filter.shell %r – defaulting to %s.", shell, DEFAULT_SHELL)
            shell = DEFAULT_SHELL

        return cls(
            shell=tuple(shell),
            encoding=str(section.get("encoding", defaults.encoding)),
            path_variable=str(section.get("path_variable", defaults.path_variable)),
            line_variable=str(section.get("line_variable", defaults.line_variable)),
            lock_variable=str(section.get("lock_variable", defaults.lock_variable)),
            markers=deep_merge(defaults.markers, section.get("markers", {})),
        )


# --- Logging Setup Function ---
def setup_logging(config: Optional[Dict[str, Any]] = None) -> None:
    """
    Configures application-wide logging handlers and log levels.

    Up to three handlers are attached to the *root logger*:

    1. **File handler** – rotating log file (``log_file``, default
       *pipefilter.log*) from ``file_level`` (default **DEBUG**) upward.
    2. **Console handler** – optional `stderr` output whose threshold is
       ``console_level`` (default **WARNING**).
    3. **Error-file handler** – optional rotating *error.log* with only
       **ERROR** and **CRITICAL** records.

    Existing root handlers are replaced, so calling this twice (e.g. in
    tests) does not duplicate records.

    Args:
        config (dict | None): Application configuration; only the
            ``["logging"]`` section is consulted.

    Notes:
        The function never raises; I/O and permission problems are reported
        on *stderr* and logging continues with what could be set up.
    """
    if config is None:
        config = {}
    logging_config = config.get("logging", {})

    log_filename = logging_config.get("log_file", "pipefilter.log")
    log_file_level_str = str(logging_config.get("file_level", "DEBUG")).upper()
    log_file_level = getattr(logging, log_file_level_str, logging.DEBUG)

    log_dir = os.path.dirname(log_filename)
    if log_dir and not os.path.exists(log_dir):
        try:
            os.makedirs(log_dir)
        except OSError as e_mkdir:
            print(f"Error creating log directory '{log_dir}': {e_mkdir}", file=sys.stderr)
            log_filename = os.path.join(tempfile.gettempdir(), "pipefilter.log")
            print(f"Logging to temporary file: '{log_filename}'", file=sys.stderr)

    file_formatter = logging.Formatter(
        "%(asctime)s - %(levelname)-8s - %(name)-20s - %(message)s (%(filename)s:%(lineno)d)"
    )
    file_handler = None
    try:
        file_handler = logging.handlers.RotatingFileHandler(
            log_filename, maxBytes=2 * 1024 * 1024, backupCount=5, encoding="utf-8"
        )
        file_handler.setFormatter(file_formatter)
        file_handler.setLevel(log_file_level)
    except OSError as e_fh:
        print(f"Error setting up file logger for '{log_filename}': {e_fh}. File logging may be impaired.",
              file=sys.stderr)

    console_handler = None
    if logging_config.get("log_to_console", True):
        console_level_str = str(logging_config.get("console_level", "WARNING")).upper()
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setFormatter(logging.Formatter("%(levelname)-8s - %(name)-12s - %(message)s"))
        console_handler.setLevel(getattr(logging, console_level_str, logging.WARNING))

    error_file_handler = None
    if logging_config.get("separate_error_log", False):
        error_log_filename = os.path.join(log_dir, "error.log") if log_dir else "error.log"
        try:
            error_file_handler = logging.handlers.RotatingFileHandler(
                error_log_filename, maxBytes=1 * 1024 * 1024, backupCount=3, encoding="utf-8"
            )
            error_file_handler.setFormatter(file_formatter)
            error_file_handler.setLevel(logging.ERROR)
        except OSError as e_efh:
            print(f"Error setting up separate error log '{error_log_filename}': {e_efh}.", file=sys.stderr)

    root_logger = logging.getLogger()
    for handler in root_logger.handlers:
        handler.close()
    root_logger.handlers = []

    for handler in (file_handler, console_handler, error_file_handler):
        if handler:
            root_logger.addHandler(handler)

    root_logger.setLevel(log_file_level)

    logging.info("Logging setup complete. Root logger level: %s.", logging.getLevelName(root_logger.level))
    if file_handler:
        logging.info(f"File logging to '{log_filename}' at level: {logging.getLevelName(file_handler.level)}.")
    if console_handler:
        logging.info(f"Console logging to stderr at level: {logging.getLevelName(console_handler.level)}.")
    if error_file_handler:
        logging.info("Error logging to 'error.log' at level: ERROR.")
