from __future__ import annotations


class ChatError(Exception):
    """Base for every failure a service reports to the transport layer."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidInput(ChatError): ...
class Conflict(ChatError): ...
class NotFound(ChatError): ...
class Expired(ChatError): ...
class Mismatch(ChatError): ...
class DependencyFailure(ChatError): ...
