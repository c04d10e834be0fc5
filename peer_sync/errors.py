class PeerSyncError(Exception):
    pass


class ConnectivityError(PeerSyncError):
    """Raised when a request could not reach the backend, or a read came back with a bad status."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class DataDecodingError(PeerSyncError):
    """Raised when a response body can't be turned into models."""
    pass


class MalformedDataError(PeerSyncError):
    """Raised for a FILE_PROGRESS record that can't be parsed."""
    pass


class ValidationError(PeerSyncError):
    """
    Local rejection of a user action, before any request is made.
    Returned rather than raised by the guard, so callers check has_error().
    """

    def __init__(self, reason: str | None = None):
        super().__init__(reason)
        self.reason: str | None = reason

    def has_error(self) -> bool:
        return self.reason is not None

    def __str__(self):
        if self.has_error():
            return self.reason
        else:
            return "No error."

    @classmethod
    def no_error(cls):
        return cls()


class ActionError(PeerSyncError):
    """
    A user-initiated action (connect, broadcast, send-file) failed,
    either on the server or on the way there.
    """

    def __init__(self,
                 action: str,
                 message: str,
                 status_code: int | None = None,
                 body: str | None = None):
        super().__init__(message)
        self.action = action
        self.message = message
        self.status_code = status_code
        self.body = body

    def __str__(self):
        return self.message
