"""Logging setup shared by the CLI and the Lambda runtime.

Log lines carry a ``[LEVEL]`` tag, coloured with *colorama* on a terminal
and plain in Lambda (CloudWatch shows ANSI escapes verbatim). Once the
handler knows which pipeline job it serves, every line is also tagged
with a short job id so interleaved invocations can be told apart.

Usage::

    from sitepublish.utils.logger import get_logger

    log = get_logger(__name__)
    log.info("Publishing %s", site)
    log.debug("Plan: %s", plan)  # only shown with --verbose
"""
import logging
import sys
from typing import Optional

from colorama import Fore, Style

__all__ = ["get_logger", "setup_logging", "set_job_context"]

_ROOT_LOGGER_NAME = "sitepublish"
_JOB_TAG_LENGTH = 8

_LEVEL_COLOURS = {
    logging.DEBUG: Fore.WHITE,
    logging.INFO: Fore.CYAN,
    logging.WARNING: Fore.YELLOW,
    logging.ERROR: Fore.RED,
    logging.CRITICAL: Fore.RED + Style.BRIGHT,
}

_configured = False
_job_tag = ""


class LevelTagFormatter(logging.Formatter):
    """Prefix each message with its level tag and the current job tag."""

    def __init__(self, colour: bool = True):
        super().__init__("%(message)s")
        self.colour = colour

    def format(self, record: logging.LogRecord) -> str:
        tag = f"[{record.levelname}]"
        if self.colour:
            tag = f"{_LEVEL_COLOURS.get(record.levelno, '')}{tag}{Style.RESET_ALL}"
        if _job_tag:
            tag = f"{tag} [{_job_tag}]"
        return f"{tag} {super().format(record)}"


def set_job_context(job_id: Optional[str]) -> None:
    """Tag subsequent log lines with the first characters of ``job_id``.

    Pass ``None`` to clear the tag (warm Lambda containers serve many jobs).
    """
    global _job_tag  # noqa: PLW0603
    _job_tag = (job_id or "")[:_JOB_TAG_LENGTH]


def _resolve_level(verbose: bool, quiet: bool, level: Optional[str]) -> int:
    if quiet:
        return logging.WARNING
    if verbose:
        return logging.DEBUG
    if level:
        resolved = logging.getLevelName(str(level).upper())
        if isinstance(resolved, int):
            return resolved
    return logging.INFO


def setup_logging(verbose: bool = False, quiet: bool = False,
                  colour: bool = True, level: Optional[str] = None) -> None:
    """Configure the *sitepublish* root logger.

    Safe to call more than once; the existing handler is reconfigured
    instead of a second one being added.

    Args:
        verbose: If *True*, set level to ``DEBUG``.
        quiet: If *True*, set level to ``WARNING`` (overrides *verbose*).
        colour: Coloured level tags; disable for CloudWatch.
        level: Level name from configuration, used when neither
            *verbose* nor *quiet* is set.
    """
    global _configured  # noqa: PLW0603

    resolved = _resolve_level(verbose, quiet, level)
    root = logging.getLogger(_ROOT_LOGGER_NAME)
    root.setLevel(resolved)

    if not root.handlers:
        root.addHandler(logging.StreamHandler(sys.stderr))
    for handler in root.handlers:
        handler.setLevel(resolved)
        handler.setFormatter(LevelTagFormatter(colour=colour))

    _configured = True


def get_logger(name: str) -> logging.Logger:
    """Return a logger under the *sitepublish* namespace.

    Applies the default ``INFO`` configuration on first use if
    :func:`setup_logging` has not run yet.
    """
    if not _configured:
        setup_logging()

    if not name.startswith(_ROOT_LOGGER_NAME):
        name = f"{_ROOT_LOGGER_NAME}.{name}"

    return logging.getLogger(name)
