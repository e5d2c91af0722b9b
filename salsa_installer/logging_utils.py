from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Tuple

from .lib.env import PATHS

DEFAULT_LOG_PATH = PATHS.log_default
FALLBACK_LOG_NAME = "salsa-installer.log"

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
LOG_DATEFMT = "%Y-%m-%dT%H:%M:%S%z"

_MARK = "_salsa_log_path"
_HANDLERS = "_salsa_handlers"


def _open_log_file(log_path: str) -> Tuple[logging.FileHandler, str]:
    # The live ISO may refuse /var/log; fall back to the working directory.
    try:
        Path(log_path).parent.mkdir(parents=True, exist_ok=True)
        return logging.FileHandler(log_path), log_path
    except OSError:
        fallback = str(Path.cwd() / FALLBACK_LOG_NAME)
        return logging.FileHandler(fallback), fallback


def configure_logging(
    log_path: str = DEFAULT_LOG_PATH,
    level: int = logging.INFO,
    also_console: bool = True,
) -> str:
    """Install the installer's log handlers on the root logger.

    The file receives everything down to DEBUG (each command line and its
    captured output) so a failed installation can be repaired by hand; the
    console shows ``level`` and above. Calling this again is a no-op.

    Returns the path of the log file actually opened.
    """

    root = logging.getLogger()
    existing = getattr(root, _MARK, None)
    if existing is not None:
        return existing

    fmt = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATEFMT)

    file_handler, chosen_path = _open_log_file(log_path)
    file_handler.setLevel(logging.DEBUG)
    handlers: List[logging.Handler] = [file_handler]

    if also_console:
        console = logging.StreamHandler()
        console.setLevel(level)
        handlers.append(console)

    for h in handlers:
        h.setFormatter(fmt)
        root.addHandler(h)
    root.setLevel(logging.DEBUG)
    setattr(root, _MARK, chosen_path)
    setattr(root, _HANDLERS, handlers)

    logging.getLogger(__name__).info(
        "Logging initialized (requested=%s, actual=%s)", log_path, chosen_path
    )
    return chosen_path


def reset_logging() -> None:
    """Remove handlers installed by configure_logging (tests, re-exec)."""

    root = logging.getLogger()
    if getattr(root, _MARK, None) is None:
        return
    for h in getattr(root, _HANDLERS, []):
        root.removeHandler(h)
        h.close()
    delattr(root, _MARK)
    delattr(root, _HANDLERS)
