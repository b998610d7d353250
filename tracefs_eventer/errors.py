# tracefs_eventer/errors.py - Exception hierarchy
"""
Exceptions raised by the tracefs eventer.

Every exception derives from TraceFSEventerError. Higher layers add context
by raising their own exception ``from`` the lower-level one, so the full
chain of causes is available through ``__cause__``.
"""

from typing import Optional


class TraceFSEventerError(Exception):
    """Base class for all tracefs eventer errors"""


class ParseError(TraceFSEventerError):
    """Raw trace text could not be turned into fields or an event"""


class UnexpectedEndOfInput(ParseError):
    """The input ended before a required separator or field was found"""

    def __init__(self, message: str = "unexpected end of input"):
        super().__init__(message)


class UnexpectedEndOfStream(UnexpectedEndOfInput):
    """
    The trace pipe returned end-of-file.

    A ring buffer should block until data is written, so EOF is an anomaly.
    """

    def __init__(self, message: str = "event trace pipe returned unexpected EOF"):
        super().__init__(message)


class EmptyField(ParseError):
    """A field delimited by a separator was zero bytes long"""

    def __init__(self, message: str = "empty field"):
        super().__init__(message)


class MissingFieldError(ParseError):
    """A mandatory tagged field is not present in the event"""

    def __init__(self, field: str, description: str):
        self.field = field
        super().__init__(f"{description} not present in event")


class FieldConversionError(ParseError):
    """A field is present but its value could not be converted"""

    def __init__(self, field: str, description: str, value: Optional[str] = None):
        self.field = field
        self.value = value
        super().__init__(f"converting {description}: invalid value {value!r}")


class StateCanonicalisationError(ParseError):
    """A kernel TCP state mnemonic does not map to a canonical state"""

    def __init__(self, which: str, state: str):
        self.which = which
        self.state = state
        super().__init__(f"could not canonicalise {which} state {state!r}")


class IrrelevantEvent(TraceFSEventerError):
    """
    The event is not a TCP over IPv4 state change.

    This is a classification rather than a fault: the line should be
    discarded and the next one read.
    """

    def __init__(self, message: str = "irrelevant event"):
        super().__init__(message)


class TracepointUnavailable(TraceFSEventerError):
    """Neither of the supported TCP state-change tracepoints exists"""

    def __init__(self, message: str = "required tracepoint not available"):
        super().__init__(message)


class MountpointNotFound(TraceFSEventerError):
    """The tracefs mountpoint could not be located"""


class TracingInstanceError(TraceFSEventerError):
    """A tracefs instance lifecycle step failed"""

    def __init__(self, step: str, message: str):
        self.step = step
        super().__init__(f"{step}: {message}")


class InvalidStateTransition(TracingInstanceError):
    """A lifecycle method was called from a state that does not allow it"""

    def __init__(self, step: str, state):
        self.state = state
        super().__init__(step, f"not permitted from state {state.name}")


class EventerClosed(TraceFSEventerError):
    """The eventer was closed, either before or during a read"""

    def __init__(self, message: str = "attempted read from closed eventer"):
        super().__init__(message)


class ConfigError(TraceFSEventerError):
    """Configuration contains an invalid value"""


def caused_by(exc: BaseException, exc_type) -> bool:
    """
    Check whether an exception, or anything in its chain of causes,
    is an instance of exc_type.

    Args:
        exc: Exception to inspect
        exc_type: Exception class (or tuple of classes) to look for

    Returns:
        True if found in the chain
    """
    seen = set()
    current: Optional[BaseException] = exc
    while current is not None and id(current) not in seen:
        if isinstance(current, exc_type):
            return True
        seen.add(id(current))
        current = current.__cause__
    return False
