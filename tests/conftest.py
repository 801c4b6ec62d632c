from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import pytest

from gmail_blade.errors import GitHubError
from gmail_blade.github.client import PullRequestRef
from gmail_blade.models import Address, Envelope, FetchedMessage
from gmail_blade.rules.actions import parse_actions
from gmail_blade.rules.core import FilterRule
from gmail_blade.rules.expression import Condition


class FakeSession:
    """In-memory mail store: messages in mailbox order, mutations recorded."""

    def __init__(self, messages: Sequence[FetchedMessage] = (), *, fail_on: Optional[str] = None) -> None:
        self.messages = list(messages)
        self.fail_on = fail_on
        self.calls: List[Tuple[Any, ...]] = []
        self.pages: List[Tuple[int, int]] = []
        self.mailboxes = ["INBOX", "[Gmail]/Trash", "Work"]
        self.closed = False

    def authenticate(self, username: str, password: str) -> None:
        self.calls.append(("authenticate", username))

    def select(self, mailbox: str, readonly: bool = True) -> None:
        self.calls.append(("select", mailbox, readonly))

    def fetch_page(self, start: int, size: int) -> List[FetchedMessage]:
        self.pages.append((start, size))
        return self.messages[start : start + size]

    def move(self, uid: int, destination: str) -> None:
        if self.fail_on == "move":
            raise OSError("move failed")
        self.calls.append(("move", uid, destination))

    def copy(self, uid: int, destination: str) -> None:
        if self.fail_on == "copy":
            raise OSError("copy failed")
        self.calls.append(("copy", uid, destination))

    def list_mailboxes(self) -> List[str]:
        return list(self.mailboxes)

    def close(self) -> None:
        self.closed = True

    @property
    def mutations(self) -> List[Tuple[Any, ...]]:
        return [c for c in self.calls if c[0] in ("move", "copy")]

    def __enter__(self) -> "FakeSession":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class FakeGitHub:
    """Pull requests keyed by ``owner/repo#n``; counts every call."""

    def __init__(self, pulls: Optional[Dict[str, Dict[str, Any]]] = None, *, login: str = "blade-bot") -> None:
        self.pulls = pulls or {}
        self.reviews: Dict[str, List[Dict[str, Any]]] = {}
        self.login = login
        self.fetches: List[str] = []
        self.approved: List[str] = []
        self.fail_fetch = False
        self.fail_approve = False

    def get_pull_request(self, ref: PullRequestRef) -> Dict[str, Any]:
        self.fetches.append(ref.key)
        if self.fail_fetch:
            raise GitHubError("GET pull: HTTP 502", status_code=502)
        return self.pulls[ref.key]

    def list_reviews(self, ref: PullRequestRef) -> List[Dict[str, Any]]:
        return self.reviews.get(ref.key, [])

    def get_current_login(self) -> str:
        return self.login

    def approve(self, ref: PullRequestRef) -> Dict[str, Any]:
        if self.fail_approve:
            raise GitHubError("POST review: HTTP 422", status_code=422)
        self.approved.append(ref.key)
        return {"state": "APPROVED"}


def _address(text: str, name: str = "") -> Address:
    mailbox, _, host = text.partition("@")
    return Address(name=name, mailbox=mailbox, host=host)


@pytest.fixture
def make_message() -> Callable[..., FetchedMessage]:
    def _make(
        uid: int,
        *,
        subject: str = "",
        sender: str = "someone@example.com",
        sender_name: str = "",
        to: Sequence[str] = ("me@gmail.com",),
        cc: Sequence[str] = (),
        body: str = "",
        seen: bool = False,
    ) -> FetchedMessage:
        return FetchedMessage(
            uid=uid,
            flags=("\\Seen",) if seen else (),
            envelope=Envelope(
                subject=subject,
                from_=(_address(sender, sender_name),),
                to=tuple(_address(a) for a in to),
                cc=tuple(_address(a) for a in cc),
            ),
            body_parts=(body,) if body else (),
        )

    return _make


@pytest.fixture
def make_rule() -> Callable[..., FilterRule]:
    def _make(
        name: str,
        condition: str,
        actions: Sequence[str] = (),
        *,
        prefetches: Sequence[str] = (),
        halt: bool = False,
    ) -> FilterRule:
        return FilterRule(
            name=name,
            condition=Condition.compile(condition),
            actions=parse_actions(actions),
            prefetches=tuple(prefetches),
            halt_on_match=halt,
        )

    return _make


@pytest.fixture
def make_session() -> Callable[..., FakeSession]:
    return FakeSession


@pytest.fixture
def fake_session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def fake_github() -> FakeGitHub:
    return FakeGitHub(
        {
            "acme/api#7": {"number": 7, "user": {"login": "dependabot[bot]"}},
            "acme/web#3": {"number": 3, "user": {"login": "alice"}},
        }
    )
