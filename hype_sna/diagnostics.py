"""Per-call diagnostics and the best-effort decode helper.

Decoders never let a malformed structure abort the whole level. A failure
inside one material, mesh, SuperObject or animation frame is turned into a
Diagnostic plus an absent value by guarded(), and the walk continues.
"""

import enum
import logging
import os
import struct
from dataclasses import dataclass
from typing import Callable, List, Optional, TypeVar

T = TypeVar("T")

# Exceptions that mean "this structure is malformed" rather than a bug.
DECODE_ERRORS = (ValueError, struct.error, IndexError, KeyError,
                 ArithmeticError, OSError)


class Severity(enum.Enum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


@dataclass(frozen=True)
class Diagnostic:
    severity: Severity
    phase: str
    message: str

    def __str__(self):
        return self.message

    def format(self):
        if self.phase:
            return f"{self.severity.value.upper()} [{self.phase}] {self.message}"
        return f"{self.severity.value.upper()} {self.message}"


class Diagnostics:
    """Ordered collector of diagnostics for one parse call."""

    def __init__(self, phase=""):
        self.phase = phase
        self._items: List[Diagnostic] = []
        self._reported = set()

    def __iter__(self):
        return iter(self._items)

    def __len__(self):
        return len(self._items)

    def __bool__(self):
        return bool(self._items)

    def add(self, severity, message, phase=None):
        item = Diagnostic(severity, self.phase if phase is None else phase, message)
        self._items.append(item)
        return item

    def error(self, message, phase=None):
        return self.add(Severity.ERROR, message, phase)

    def warning(self, message, phase=None):
        return self.add(Severity.WARNING, message, phase)

    def info(self, message, phase=None):
        return self.add(Severity.INFO, message, phase)

    def add_once(self, category, severity, message, phase=None):
        """Report message only the first time category is seen."""
        if category in self._reported:
            return None
        self._reported.add(category)
        return self.add(severity, message, phase)

    def extend(self, other):
        for item in other:
            self._items.append(item)

    @property
    def items(self):
        return list(self._items)

    @property
    def has_errors(self):
        return any(d.severity is Severity.ERROR for d in self._items)

    def errors(self):
        return [d for d in self._items if d.severity is Severity.ERROR]

    def warnings(self):
        return [d for d in self._items if d.severity is Severity.WARNING]

    def lines(self):
        return [d.message for d in self._items]

    def emit(self, logger, context):
        """Write every diagnostic to logger, prefixed with context."""
        for item in self._items:
            if item.severity is Severity.ERROR:
                logger.error("[%s] %s", context, item.message)
            elif item.severity is Severity.WARNING:
                logger.warning("[%s] %s", context, item.message)
            else:
                logger.info("[%s] %s", context, item.message)


def guarded(diagnostics, description, fn: Callable[..., T], *args,
            default=None, severity=Severity.ERROR, **kwargs) -> Optional[T]:
    """Run fn; on a decode failure record "Failed to parse <description>: <error>".

    Returns fn's result, or default when it failed.
    """
    try:
        return fn(*args, **kwargs)
    except DECODE_ERRORS as exc:
        diagnostics.add(severity, f"Failed to parse {description}: {exc}")
        return default


def quietly(fn: Callable[..., T], *args, default=None, **kwargs) -> Optional[T]:
    """Run fn and return default on a decode failure, without reporting it."""
    try:
        return fn(*args, **kwargs)
    except DECODE_ERRORS:
        return default


def debug_enabled():
    """True when HYPE_SNA_DEBUG=1 is set in the environment."""
    return os.environ.get("HYPE_SNA_DEBUG", "") == "1"


def configure_debug_logging():
    """Turn on debug output for the hype_sna loggers when HYPE_SNA_DEBUG=1."""
    if debug_enabled():
        logging.getLogger("hype_sna").setLevel(logging.DEBUG)
