"""Domain-specific errors for pardalote."""


class PardaloteError(Exception):
    """Base error for pardalote."""


class ConfigError(PardaloteError):
    """Base configuration error."""


class ConfigLoadError(ConfigError):
    """Raised when reading a configuration source fails."""


class ConfigValidationError(ConfigError):
    """Raised when a configuration document does not conform to schema or semantics."""


class TransportError(PardaloteError):
    """Base transport error."""


class TransportConnectError(TransportError):
    """Raised when a connection attempt cannot be started."""


class TransportSendError(TransportError):
    """Raised when a frame cannot be handed to the connection."""


class FrameDecodeError(PardaloteError):
    """Raised when an inbound frame is malformed."""


class UsageError(PardaloteError, ValueError):
    """Raised when an API call receives invalid or ambiguous arguments."""
