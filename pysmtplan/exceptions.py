"""
Errors raised while building or solving a planning encoding.

Structural errors (``EncodingError`` and its subclasses) mean the grounded
task or the encoder itself is inconsistent; they abort the current encode
call. Resource errors are a separate branch so callers can retry with other
settings instead of concluding that no plan exists.
"""


class PlanningError(Exception):
    """Base class for every error raised by pysmtplan."""


class EncodingError(PlanningError):
    """The formula could not be built."""


class IndexSpaceError(EncodingError):
    """A literal, fluent, action or layer index lies outside its index space."""


class TranslationError(EncodingError):
    """A syntax tree node could not be translated."""


class ModeError(TranslationError):
    """A node kind was visited under a mode that does not accept it."""


class DurationBoundsError(EncodingError):
    """An action's minimum duration exceeds its maximum duration."""


class UnsupportedConstructError(EncodingError):
    """The task uses a construct the encoder does not handle."""


class ResourceLimitError(PlanningError):
    """A configured resource ceiling was hit."""


class HorizonLimitError(ResourceLimitError):
    def __init__(self, horizon, ceiling):
        super().__init__(f"Horizon {horizon} exceeds the configured ceiling of {ceiling}")
        self.horizon = horizon
        self.ceiling = ceiling


class SessionError(PlanningError):
    """The solver session was used out of order."""


class UnknownReferenceError(TranslationError, IndexSpaceError):
    """A syntax tree references a literal or fluent outside its index space."""
