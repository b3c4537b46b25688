"""Exception hierarchy for the catchforest package."""


class CatchForestError(Exception):
    """Base class for all errors raised by catchforest."""


class MalformedInputError(CatchForestError, ValueError):
    """Input matrix or feature naming violates a caller precondition."""


class ConfigError(CatchForestError, ValueError):
    """Invalid forest hyperparameters."""


class ModelFormatError(CatchForestError, ValueError):
    """A serialized model cannot be decoded into an IsolationForestModel."""
