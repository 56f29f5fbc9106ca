"""
Loguru setup for mdpp

LOG() writes a debug record when the ProgramState bound to the current
context asks for enough verbosity. Library code calls it freely; outside
a CLI run (no state bound) it is silent, so embedding applications only
see the warnings and errors emitted directly through ``logger``.

    from mdpp.lib.log import LOG, state_connectToLogger

    state_connectToLogger(state)
    LOG("Rendering notes.mdpp")             # -v and above
    LOG("Plugin order: katex, mermaid", 2)  # -vv
    LOG("Stripped 1 hidden block", 3)       # -vvv

Plugins get a logger of their own from plugin_logger(); its records carry
the plugin id, which the sink format prints when present.
"""

from loguru import logger
from typing import Any, Optional
from contextvars import ContextVar
import sys

_program_state: ContextVar[Optional[Any]] = ContextVar("mdpp_state", default=None)


def record_format(record: dict) -> str:
    """Sink format; plugin records are prefixed with their plugin id"""
    origin = "{extra[plugin]}" if "plugin" in record["extra"] else "{name}:{function}"
    return (
        "<green>{time:HH:mm:ss}</green> │ "
        "<level>{level: <7}</level> │ "
        f"<cyan>{origin}</cyan> ║ "
        "<level>{message}</level>\n{exception}"
    )


logger.remove()
logger.add(sys.stderr, format=record_format, level="DEBUG")


def state_connectToLogger(state: Any) -> None:
    """Bind a ProgramState so LOG() can read its verbosity"""
    _program_state.set(state)


def LOG(message: str, level: int = 1, **kwargs: Any) -> None:
    """
    Verbosity-gated debug record.

    Args:
        message: Text to log
        level: Verbosity needed for the record to appear (1-3)
        **kwargs: Passed through to loguru
    """
    state = _program_state.get()
    verbosity = getattr(state, "verbosity", 0) if state is not None else 0
    if verbosity >= level:
        logger.opt(depth=1).debug(message, **kwargs)


def plugin_logger(plugin_id: str) -> Any:
    """loguru logger bound with ``plugin=<plugin_id>``"""
    return logger.bind(plugin=plugin_id)
