from __future__ import annotations

import re
from typing import Iterable, Tuple

from gmail_blade.errors import ConfigError
from gmail_blade.rules.core import TRASH_MAILBOX, Action, ActionType

SUPPORTED_REVIEW_PROVIDERS = ("github",)

_MOVE_TO = re.compile(r'^move\s+to\s+"([^"]*)"$', re.IGNORECASE)
_LABEL = re.compile(r'^label\s+"([^"]*)"$', re.IGNORECASE)
_REVIEW = re.compile(r"^(\w+)\s+review$", re.IGNORECASE)


def _keyword(text: str) -> str:
    """Lowercase and collapse whitespace so keyword forms compare exactly."""
    return " ".join(text.lower().split())


def parse_action(text: str) -> Action:
    """
    Parse one action string from a filter definition.

    Grammar (keywords are case-insensitive, quoted names are kept verbatim):
        delete
        move to "<mailbox>"
        label "<name>"
        <provider> review

    Malformed variants of the known forms raise ConfigError. Anything else
    becomes an UNKNOWN action that the executor warns about and skips.
    """
    source = text.strip()
    keyword = _keyword(source)

    if keyword == "delete":
        return Action(type=ActionType.DELETE, target=TRASH_MAILBOX, source=source)

    if keyword == "move to" or keyword.startswith("move to "):
        match = _MOVE_TO.match(source)
        if not match or not match.group(1):
            raise ConfigError(f"invalid move to action format {source!r}")
        return Action(type=ActionType.MOVE, target=match.group(1), source=source)

    if keyword == "label" or keyword.startswith("label "):
        match = _LABEL.match(source)
        if not match or not match.group(1):
            raise ConfigError(f"invalid label action format {source!r}")
        return Action(type=ActionType.LABEL, target=match.group(1), source=source)

    match = _REVIEW.match(" ".join(source.split()))
    if match and match.group(1).lower() in SUPPORTED_REVIEW_PROVIDERS:
        return Action(type=ActionType.REVIEW, target=match.group(1).lower(), source=source)

    return Action(type=ActionType.UNKNOWN, source=source)


def parse_actions(texts: Iterable[str]) -> Tuple[Action, ...]:
    return tuple(parse_action(t) for t in texts)
