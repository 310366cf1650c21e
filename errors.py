# === errors.py ===
# Error taxonomy for the observability layer. These are raised inside samplers
# and stores and caught at the component boundary; none of them reaches the UI.


class ObservabilityError(Exception):
    """Base class for all observability errors."""


class SourceUnavailable(ObservabilityError):
    """A sampler's upstream (systemctl, index, dashboard API, /proc) can't be read."""

    def __init__(self, source: str, reason: str = ""):
        self.source = source
        self.reason = reason
        super().__init__(f"{source} unavailable" + (f": {reason}" if reason else ""))


class MalformedPayload(ObservabilityError):
    """Generated status JSON failed structural validation."""


class BackgroundRefreshFailure(ObservabilityError):
    """A detached status refresh failed; carried through the error marker."""

    def __init__(self, message: str, exit_code: int = 1):
        self.message = message
        self.exit_code = exit_code
        super().__init__(message)


class WriteFailure(ObservabilityError):
    """Temp-file write or rename failed; the commit cycle is aborted."""
