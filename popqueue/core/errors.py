from typing import Optional


class QueueError(Exception):
    pass


class ConfigurationError(QueueError):
    """A required setting, queue URL or argument is missing or invalid."""


class ServiceError(QueueError):
    """The queue service answered with a non-success status."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        code: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code

    def __str__(self):
        if self.code:
            return f"{self.code}: {self.message} (status {self.status_code})"
        return f"{self.message} (status {self.status_code})"


class ProtocolViolation(QueueError):
    """The service broke its response contract."""


class LeaseCallbackFailure(QueueError):
    """A commit or release call failed after the consumer's task settled."""

    def __init__(self, action: str, receipt_handle: str, cause: BaseException):
        super().__init__(f"{action} failed for {receipt_handle}: {cause!r}")
        self.action = action
        self.receipt_handle = receipt_handle
        self.cause = cause


class NoMessageAvailable(QueueError):
    pass
