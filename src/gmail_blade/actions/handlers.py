from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, List, Mapping, Protocol

from gmail_blade.github.client import PullRequestRef
from gmail_blade.prefetch.resolver import GITHUB_PULL_REQUEST_NAMESPACE, GitHubPullRequest
from gmail_blade.rules.core import Action, MailSession

logger = logging.getLogger(__name__)


class ActionHandler(ABC):
    @abstractmethod
    def handle(self, session: MailSession, uid: int, action: Action, prefetched: Mapping[str, Any]) -> None:
        """Execute one action against one message."""
        ...


class MoveHandler(ActionHandler):
    """Handles ``move to`` and ``delete`` (a move to the trash mailbox)."""

    def handle(self, session: MailSession, uid: int, action: Action, prefetched: Mapping[str, Any]) -> None:
        session.move(uid, action.target)
        logger.info("Moved message uid=%s mailbox=%s action=%r", uid, action.target, str(action))


class LabelHandler(ActionHandler):
    def handle(self, session: MailSession, uid: int, action: Action, prefetched: Mapping[str, Any]) -> None:
        # Gmail exposes labels as mailboxes: copying into one applies the label.
        session.copy(uid, action.target)
        logger.info("Labeled message uid=%s label=%s", uid, action.target)


@dataclass(frozen=True)
class ApprovalPolicy:
    enabled: bool = False
    allowed_repositories: FrozenSet[str] = field(default_factory=frozenset)
    allowed_usernames: FrozenSet[str] = field(default_factory=frozenset)


class Reviewer(Protocol):
    def list_reviews(self, ref: PullRequestRef) -> List[Dict[str, Any]]: ...
    def get_current_login(self) -> str: ...
    def approve(self, ref: PullRequestRef) -> Dict[str, Any]: ...


class GitHubReviewHandler(ActionHandler):
    """
    Approve the pull request referenced by the message.

    Gated by the repository allow-list, then the author allow-list; a failed
    check skips the approval without error. Skips as well when the
    authenticated user already approved.
    """

    def __init__(self, github: Reviewer, policy: ApprovalPolicy) -> None:
        self._github = github
        self._policy = policy

    def handle(self, session: MailSession, uid: int, action: Action, prefetched: Mapping[str, Any]) -> None:
        pr = prefetched.get(GITHUB_PULL_REQUEST_NAMESPACE)
        if not isinstance(pr, GitHubPullRequest):
            logger.warning("No GitHub pull request data for review uid=%s", uid)
            return

        ref = pr.ref
        if ref.full_name not in self._policy.allowed_repositories:
            logger.debug(
                "Repository not in allowed list uid=%s repo=%s allowed=%s",
                uid,
                ref.full_name,
                sorted(self._policy.allowed_repositories),
            )
            return

        if pr.author not in self._policy.allowed_usernames:
            logger.debug(
                "Author not in allowed list uid=%s author=%s allowed=%s",
                uid,
                pr.author,
                sorted(self._policy.allowed_usernames),
            )
            return

        reviews = self._github.list_reviews(ref)
        login = self._github.get_current_login()
        for review in reviews:
            reviewer = (review.get("user") or {}).get("login")
            if reviewer == login and review.get("state") == "APPROVED":
                logger.debug("Already approved GitHub pull request uid=%s repo=%s pr=%s", uid, ref.full_name, ref.number)
                return

        self._github.approve(ref)
        logger.info("Successfully approved GitHub pull request uid=%s repo=%s pr=%s", uid, ref.full_name, ref.number)
