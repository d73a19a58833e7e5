class HammockError(Exception):
    pass


# --- Collection tree ---

class TreeError(HammockError):
    """Structural misuse of the collection tree."""


class NotAGroupError(TreeError):
    pass


class ChildNotFoundError(TreeError):
    pass


# --- Exchanges ---

class InvalidRequestError(HammockError):
    """Raised before an exchange is attempted when the request cannot be built."""


class AuthError(HammockError):
    pass


class TransportError(HammockError):
    pass


class RequestCancelledError(HammockError):
    """The exchange was aborted by cancel_current(); not a failure."""


class ExecutionError(HammockError):
    pass


class RequestInProgressError(ExecutionError):
    pass


# --- Persistence / formatting ---

class SerializationError(HammockError):
    pass


class StateSaveError(HammockError):
    pass


class BodyParseError(HammockError):
    pass


# --- Configuration ---

class ConfigError(HammockError):
    """An environment setting could not be understood."""
