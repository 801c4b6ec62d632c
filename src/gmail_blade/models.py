from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Tuple

# Bump when a key of the "message" namespace is added, renamed or removed.
MESSAGE_ENV_VERSION = 1
MESSAGE_ENV_FIELDS = ("from", "fromName", "subject", "cc", "to", "replyTo", "body")


@dataclass(frozen=True)
class Address:
    name: str
    mailbox: str
    host: str

    @property
    def addr(self) -> str:
        if not self.host:
            return self.mailbox
        return f"{self.mailbox}@{self.host}"


@dataclass(frozen=True)
class Envelope:
    subject: str = ""
    from_: Tuple[Address, ...] = ()
    cc: Tuple[Address, ...] = ()
    to: Tuple[Address, ...] = ()
    reply_to: Tuple[Address, ...] = ()


@dataclass(frozen=True)
class FetchedMessage:
    """Raw record of one message as returned by a page fetch."""

    uid: int
    flags: Tuple[str, ...] = ()
    envelope: Envelope = field(default_factory=Envelope)
    body_parts: Tuple[str, ...] = ()


@dataclass(frozen=True)
class NormalizedEmail:
    uid: int
    seen: bool
    subject: str
    body: str
    from_: Tuple[str, ...] = ()
    from_name: Tuple[str, ...] = ()
    cc: Tuple[str, ...] = ()
    to: Tuple[str, ...] = ()
    reply_to: Tuple[str, ...] = ()

    def env(self) -> Dict[str, Any]:
        """The ``message`` namespace bound into filter conditions."""
        return {
            "from": tuple(self.from_),
            "fromName": tuple(self.from_name),
            "subject": self.subject,
            "cc": tuple(self.cc),
            "to": tuple(self.to),
            "replyTo": tuple(self.reply_to),
            "body": self.body,
        }
