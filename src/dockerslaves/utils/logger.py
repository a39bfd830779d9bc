"""
Logging setup for the command line.

Console records go to stderr, coloured through colorlog when stderr is a
terminal and NO_COLOR is unset. With --debug the console also shows the
thread name: builds waiting on the capacity gate and the remoting drain
threads log side by side. An optional log file receives every record with a
timestamp and is appended to across runs.

Per-module levels are read from DOCKERSLAVES_LOG_LEVELS first, then from the
mapping given to `setup_logger`, so the command line wins over the
environment.
"""

import logging
import os
import sys
from typing import Dict, Optional, TextIO

import colorlog

from .. import constants

LevelMap = Dict[str, str]

FILE_FORMAT = "%(asctime)s [%(levelname).4s] %(threadName)s %(name)s: %(message)s"
FILE_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# marks the handlers installed here, so a later setup swaps them out
_OWNED_ATTR = "_dockerslaves_owned"


def setup_logger(debug: bool = False, module_levels: Optional[LevelMap] = None, log_file: Optional[str] = None):
    """
    Configure the root logger.

    Calling it again replaces the handlers it installed before and leaves
    any other handler alone.

    Args:
        debug: Log at DEBUG instead of INFO, with thread names on the console.
        module_levels: Per-module levels, keyed by logger name or alias.
        log_file: Also append every record to this file.
    """
    root = logging.getLogger()
    root.setLevel(logging.DEBUG if debug else logging.INFO)
    for handler in [h for h in root.handlers if getattr(h, _OWNED_ATTR, False)]:
        root.removeHandler(handler)
        handler.close()

    _install(root, _console_handler(sys.stderr, debug))
    if log_file:
        try:
            _install(root, _file_handler(log_file))
        except OSError as e:
            logging.error(f"Failed to create log file handler for '{log_file}': {e}")
        else:
            logging.info(f"Logging to file: {log_file}")

    _apply_module_levels(module_levels)


def parse_module_levels(text: Optional[str]) -> Optional[LevelMap]:
    """Parse 'name=LEVEL,name=LEVEL' into a mapping, skipping malformed pairs."""
    if not text:
        return None
    levels = {}
    for pair in text.split(','):
        name, sep, level = pair.partition('=')
        if sep and name.strip():
            levels[name.strip()] = level.strip().upper()
    return levels


def _install(root: logging.Logger, handler: logging.Handler):
    setattr(handler, _OWNED_ATTR, True)
    root.addHandler(handler)


def _console_handler(stream: TextIO, debug: bool) -> logging.Handler:
    handler = logging.StreamHandler(stream)
    thread = " %(threadName)s" if debug else ""
    if _use_colors(stream):
        handler.setFormatter(colorlog.ColoredFormatter(
            f"%(log_color)s[%(levelname).4s]%(reset)s{thread} %(cyan)s%(name)s%(reset)s: %(message)s",
            log_colors=constants.LOG_COLORS,
            reset=True,
        ))
    else:
        handler.setFormatter(logging.Formatter(f"[%(levelname).4s]{thread} %(name)s: %(message)s"))
    return handler


def _file_handler(path: str) -> logging.Handler:
    handler = logging.FileHandler(path, mode='a', encoding='utf-8')
    handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt=FILE_DATE_FORMAT))
    return handler


def _use_colors(stream: TextIO) -> bool:
    # https://no-color.org/
    if os.environ.get("NO_COLOR"):
        return False
    isatty = getattr(stream, "isatty", None)
    return bool(isatty and isatty())


def _apply_module_levels(module_levels: Optional[LevelMap]):
    levels = parse_module_levels(os.environ.get(constants.LOG_LEVELS_ENV)) or {}
    levels.update(module_levels or {})
    for name, level_name in levels.items():
        level = logging.getLevelName(level_name.upper())
        if not isinstance(level, int):
            logging.debug(f"Ignoring unknown log level '{level_name}' for '{name}'")
            continue
        logging.getLogger(_logger_name(name)).setLevel(level)


def _logger_name(name: str) -> str:
    """
    Expand what the user typed into a logger name. An alias such as `cap`
    maps to its module; `driver.docker` or `driver.*` get the package prefix.
    """
    name = constants.LOG_ALIAS_MAP.get(name, name)
    if name.endswith('.*'):
        name = name[:-2]
    if name.split('.', 1)[0] in constants.KNOWN_TOP_MODULES:
        return f"dockerslaves.{name}"
    return name
