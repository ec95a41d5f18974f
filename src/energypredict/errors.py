class EnergyPredictError(Exception):
    """Base class for every error raised by energypredict."""


class InvalidTimestampFormat(EnergyPredictError, ValueError):
    """A timestamp does not start with a YYYY-MM-DD date prefix."""

    def __init__(self, timestamp):
        self.timestamp = timestamp
        super().__init__(f"Invalid timestamp format: {timestamp!r} (expected 'YYYY-MM-DD HH:MM[:SS]')")


class TransportError(EnergyPredictError):
    """Network or HTTP failure talking to the remote service."""

    def __init__(self, message: str, status: int | None = None, server_message: str | None = None):
        self.message = message
        self.status = status
        # 'message' field of the server's JSON error body, when there was one
        self.server_message = server_message
        super().__init__(message)


class SubmitError(EnergyPredictError):
    """The prediction job could not be started."""

    def __init__(self, message: str = "Failed to start prediction. Check server connection."):
        self.message = message
        super().__init__(message)


class MissingToken(SubmitError):
    def __init__(self):
        super().__init__("No prediction token received")


class PollTimedOut(EnergyPredictError):
    def __init__(self, attempts: int):
        self.attempts = attempts
        super().__init__(f"Prediction timed out after {attempts} attempts")


class PollCancelled(EnergyPredictError):
    pass


class ValidationError(EnergyPredictError):
    """
    One or more form fields failed validation.

    field_errors maps the wire field name (e.g. 'fromDate', 'email') to a
    human-readable message, so the view can attach each one to its widget.
    """

    def __init__(self, field_errors: dict[str, str]):
        self.field_errors = dict(field_errors)
        super().__init__("; ".join(f"{k}: {v}" for k, v in self.field_errors.items()))


class DuplicateFieldError(ValidationError):
    """Email or phone number already belongs to another user."""


class ProfileNotLoaded(EnergyPredictError, RuntimeError):
    """Save was attempted before the user's profile was loaded."""

    def __init__(self):
        self.message = "Profile could not be loaded. Reload the page and try again."
        super().__init__(self.message)
