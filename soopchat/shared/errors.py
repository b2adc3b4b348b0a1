from __future__ import annotations


class SoopChatError(Exception):
    """Base class for every error the chat client reports."""
    pass


class ConfigurationError(SoopChatError):
    """Raised when the client is constructed from an unusable token."""
    pass


class DirectoryError(SoopChatError):
    """Raised when the channel directory lookup fails or requires a login."""
    pass


class AuthenticationError(SoopChatError):
    """Raised when the identity exchange is rejected or a ticket is missing."""
    pass


class ParseError(SoopChatError):
    """Raised when a frame or a frame body cannot be read."""
    pass


class HandshakeError(SoopChatError):
    """Raised when a handshake phase is requested out of order."""
    pass


class InvalidMessageError(SoopChatError, ValueError):
    """Raised when outgoing chat text cannot be put in a frame."""
    pass


class TransportError(SoopChatError):
    """
    Socket read/write failure.

    `fatal` marks errors that end the session (handshake writes, exhausted
    read retries, abnormal close). Non-fatal ones are only reported.
    """

    def __init__(self, message: str, *, fatal: bool = False) -> None:
        super().__init__(message)
        self.fatal = fatal
