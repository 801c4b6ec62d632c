from __future__ import annotations

import imaplib
import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

from imap_tools import A, MailBox
from imap_tools.message import MailMessage

from gmail_blade.models import Address, Envelope, FetchedMessage

logger = logging.getLogger(__name__)

GMAIL_IMAP_HOST = "imap.gmail.com"
GMAIL_IMAP_PORT = 993


@dataclass(frozen=True)
class GmailClientConfig:
    host: str = GMAIL_IMAP_HOST
    port: int = GMAIL_IMAP_PORT
    # Socket timeout in seconds; None leaves it to the OS.
    timeout: Optional[float] = None


def _address(value) -> Address:
    mailbox, _, host = (value.email or "").rpartition("@")
    if not mailbox:
        mailbox, host = host, ""
    return Address(name=value.name or "", mailbox=mailbox, host=host)


def _addresses(values: Iterable) -> Tuple[Address, ...]:
    return tuple(_address(v) for v in values or () if v is not None)


def to_fetched_message(msg: MailMessage) -> FetchedMessage:
    """Convert an imap_tools message into the raw record the normalizer consumes."""
    from_value = msg.from_values
    return FetchedMessage(
        uid=int(msg.uid),
        flags=tuple(msg.flags),
        envelope=Envelope(
            subject=msg.subject or "",
            from_=_addresses([from_value] if from_value else ()),
            cc=_addresses(msg.cc_values),
            to=_addresses(msg.to_values),
            reply_to=_addresses(msg.reply_to_values),
        ),
        body_parts=tuple(part for part in (msg.text, msg.html) if part),
    )


class GmailClient:
    """One authenticated IMAP session against Gmail. Use as a context manager."""

    def __init__(self, cfg: GmailClientConfig) -> None:
        self._cfg = cfg
        self._mailbox: Optional[MailBox] = None

    @property
    def mailbox(self) -> MailBox:
        if self._mailbox is None:
            raise RuntimeError("GmailClient is not authenticated. Call authenticate() first.")
        return self._mailbox

    def authenticate(self, username: str, password: str) -> None:
        mailbox = MailBox(self._cfg.host, self._cfg.port, timeout=self._cfg.timeout)
        try:
            mailbox.login(username, password, initial_folder=None)
        except Exception:
            mailbox.client.shutdown()
            raise
        self._mailbox = mailbox

    def select(self, mailbox: str, readonly: bool = True) -> None:
        self.mailbox.folder.set(mailbox, readonly=readonly)

    def fetch_page(self, start: int, size: int) -> List[FetchedMessage]:
        """Fetch messages ``start`` .. ``start + size - 1`` (0-based, mailbox order)."""
        messages = self.mailbox.fetch(
            A(all=True),
            limit=slice(start, start + size),
            mark_seen=False,
            bulk=True,
        )
        return [to_fetched_message(m) for m in messages]

    def move(self, uid: int, destination: str) -> None:
        self.mailbox.move(str(uid), destination)

    def copy(self, uid: int, destination: str) -> None:
        self.mailbox.copy(str(uid), destination)

    def list_mailboxes(self) -> List[str]:
        return [folder.name for folder in self.mailbox.folder.list()]

    def close(self) -> None:
        if self._mailbox is None:
            return
        mailbox, self._mailbox = self._mailbox, None
        try:
            mailbox.logout()
        except (imaplib.IMAP4.error, OSError) as exc:
            logger.debug("IMAP logout failed error=%s", exc)

    def __enter__(self) -> "GmailClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
