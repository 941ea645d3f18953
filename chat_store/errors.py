from typing import Optional


class ChatStoreError(Exception):
    """Base class for chat store failures."""


class StoreUnavailable(ChatStoreError):
    """The chat table could not be reached or rejected the request.

    The botocore exception that caused it is kept as ``__cause__``.
    """

    def __init__(self, message: str, error_code: Optional[str] = None):
        super().__init__(message)
        self.error_code: Optional[str] = error_code


class MalformedUpstreamItem(ChatStoreError):
    """A stored item that cannot be turned into a message record."""
