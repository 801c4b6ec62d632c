from __future__ import annotations

from typing import Iterable, Tuple

from gmail_blade.models import Address, FetchedMessage, NormalizedEmail

SEEN_FLAG = "\\seen"


def _addrs(addresses: Iterable[Address]) -> Tuple[str, ...]:
    return tuple(a.addr for a in addresses)


def is_seen(flags: Iterable[str]) -> bool:
    return any(f.lower() == SEEN_FLAG for f in flags)


def normalize_message(fetched: FetchedMessage) -> NormalizedEmail:
    """
    Turn a fetched envelope + flags + body sections into the attribute bag
    that conditions are evaluated against.
    Address lists keep wire order and duplicates.
    """
    envelope = fetched.envelope
    return NormalizedEmail(
        uid=fetched.uid,
        seen=is_seen(fetched.flags),
        subject=envelope.subject or "",
        body="".join(fetched.body_parts),
        from_=_addrs(envelope.from_),
        from_name=tuple(a.name for a in envelope.from_),
        cc=_addrs(envelope.cc),
        to=_addrs(envelope.to),
        reply_to=_addrs(envelope.reply_to),
    )
