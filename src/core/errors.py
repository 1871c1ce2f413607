"""Exception hierarchy shared by the core and adapters."""

from __future__ import annotations


class ShareFileError(Exception):
    """Base class for all bot errors."""


class DecodeError(ShareFileError):
    """Inbound payload is not a valid update."""


class AuthError(ShareFileError):
    """The sender of an update could not be resolved to a user."""


class NotFoundError(ShareFileError):
    """A referenced entity is absent. Rendered to the user, never reported."""


class FileNotFoundInStorage(NotFoundError):
    pass


class ChatNotFound(NotFoundError):
    pass


class MalformedCallbackParameter(ShareFileError):
    """A callback capture group matched but is not an integer."""

    def __init__(self, pattern_name: str, value: str) -> None:
        super().__init__(f"callback pattern {pattern_name!r} captured non-integer {value!r}")
        self.pattern_name = pattern_name
        self.value = value


class ChatConnectError(ShareFileError):
    """User-facing failure of the connect-chat flow."""


class NotAChannelForward(ChatConnectError):
    pass


class ChatAlreadyConnected(ChatConnectError):
    pass


class BotIsNotAdmin(ChatConnectError):
    pass


class ConfigError(ShareFileError):
    """Process configuration is missing or invalid."""
