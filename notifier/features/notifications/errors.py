"""
Exception hierarchy for the notification engine.

- UpstreamFetchError: a feed could not be read; isolated to one detector.
- ChannelDeliveryError: a provider rejected or could not be reached; recorded per attempt.
- ConfigurationError: required credentials or URLs are missing.
- StateStoreError: durable state is unavailable; fails the whole run.
"""


class NotificationError(Exception):
    """Base class for notification engine errors."""

    def __init__(self, message: str, operation: str | None = None):
        super().__init__(message)
        self.operation = operation


class UpstreamFetchError(NotificationError):
    def __init__(
        self,
        message: str,
        operation: str | None = None,
        status_code: int | None = None,
        url: str | None = None,
    ):
        super().__init__(message, operation=operation)
        self.status_code = status_code
        self.url = url


class ChannelDeliveryError(NotificationError):
    def __init__(
        self,
        message: str,
        channel: str | None = None,
        status_code: int | None = None,
        response_data: dict | None = None,
    ):
        super().__init__(message, operation="send")
        self.channel = channel
        self.status_code = status_code
        self.response_data = response_data or {}


class ConfigurationError(NotificationError):
    pass


class StateStoreError(NotificationError):
    pass
