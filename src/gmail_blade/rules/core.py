from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Optional, Protocol, Sequence, Tuple

if TYPE_CHECKING:
    from gmail_blade.rules.expression import Condition

TRASH_MAILBOX = "[Gmail]/Trash"


class ActionType(str, Enum):
    DELETE = "delete"
    MOVE = "move"
    LABEL = "label"
    REVIEW = "review"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class Action:
    type: ActionType
    # Mailbox for MOVE/DELETE, label for LABEL, provider for REVIEW.
    target: Optional[str] = None
    # Action as written in the config file.
    source: str = ""

    def __str__(self) -> str:
        return self.source or self.type.value


@dataclass(frozen=True)
class FilterRule:
    name: str
    condition: "Condition"
    actions: Tuple[Action, ...] = ()
    prefetches: Tuple[str, ...] = ()
    halt_on_match: bool = False

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r}, halt_on_match={self.halt_on_match})"


class MailSession(Protocol):
    """Mail store operations used by the cycle runner and the action handlers."""

    def authenticate(self, username: str, password: str) -> None: ...
    def select(self, mailbox: str, readonly: bool = True) -> None: ...
    def fetch_page(self, start: int, size: int) -> Sequence: ...
    def move(self, uid: int, destination: str) -> None: ...
    def copy(self, uid: int, destination: str) -> None: ...
    def list_mailboxes(self) -> list[str]: ...
    def close(self) -> None: ...
