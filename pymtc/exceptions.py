class MultiTransportError(Exception):
    """Base class for errors raised by pymtc."""


class ConfigError(MultiTransportError):
    """Host or port missing or invalid. No connection is attempted."""


class NotConnectedError(MultiTransportError):
    """Raised when data is sent while the connection is not up."""


class ValidationError(MultiTransportError):
    """A command could not be encoded. The message holds the reason."""
