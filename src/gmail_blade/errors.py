from __future__ import annotations

from typing import Optional


class GmailBladeError(Exception):
    """Base class for errors raised by gmail-blade."""


class ConfigError(GmailBladeError):
    """Configuration is unusable. Raised before any IMAP session is opened."""


class ConditionError(GmailBladeError):
    """A filter condition failed to compile."""


class ActionError(GmailBladeError):
    """A mutating action failed. Aborts the remaining actions of the message."""


class MessageProcessingError(GmailBladeError):
    def __init__(self, uid: int, message: str) -> None:
        super().__init__(f"uid {uid}: {message}")
        self.uid = uid


class GitHubError(GmailBladeError):
    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code
