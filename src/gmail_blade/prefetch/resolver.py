from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol, Tuple

from gmail_blade.errors import GitHubError
from gmail_blade.github.client import PullRequestRef, find_pull_request_ref

logger = logging.getLogger(__name__)

PREFETCH_GITHUB_PULL_REQUEST = "github pull request"
GITHUB_PULL_REQUEST_NAMESPACE = "githubPullRequest"
GITHUB_PULL_REQUEST_FIELDS = ("owner", "repo", "number", "author")

# Prefetch request name -> namespace bound into conditions.
KNOWN_PREFETCHES = {
    PREFETCH_GITHUB_PULL_REQUEST: GITHUB_PULL_REQUEST_NAMESPACE,
}


class PullRequestSource(Protocol):
    def get_pull_request(self, ref: PullRequestRef) -> Dict[str, Any]: ...


@dataclass(frozen=True)
class GitHubPullRequest:
    owner: str
    repo: str
    number: int
    author: str

    @property
    def ref(self) -> PullRequestRef:
        return PullRequestRef(owner=self.owner, repo=self.repo, number=self.number)

    def env(self) -> Dict[str, Any]:
        return {
            "owner": self.owner,
            "repo": self.repo,
            "number": self.number,
            "author": self.author,
        }


def normalize_prefetch_name(name: str) -> str:
    return " ".join((name or "").lower().split())


def namespace_for(request_name: str) -> Optional[str]:
    """Namespace a prefetch request binds, or None for unknown requests."""
    return KNOWN_PREFETCHES.get(normalize_prefetch_name(request_name))


class PrefetchCache:
    """
    Run-lifetime memo of prefetched resources, keyed by resource identity
    (e.g. ``owner/repo#123``) rather than by message. Only successful fetches
    are stored. Not thread-safe.
    """

    def __init__(self) -> None:
        self._entries: Dict[str, Any] = {}

    def get(self, key: str) -> Optional[Any]:
        return self._entries.get(key)

    def put(self, key: str, value: Any) -> None:
        self._entries[key] = value

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)


class PrefetchResolver:
    def __init__(self, github: Optional[PullRequestSource], cache: Optional[PrefetchCache] = None) -> None:
        self._github = github
        self.cache = cache if cache is not None else PrefetchCache()

    def resolve(self, request_name: str, body: str) -> Optional[Tuple[str, GitHubPullRequest]]:
        """
        Return ``(namespace, data)`` for a prefetch request, or None when the
        request is unknown, the body references no resource, or the fetch
        failed. Never raises.
        """
        namespace = namespace_for(request_name)
        if namespace != GITHUB_PULL_REQUEST_NAMESPACE:
            return None

        ref = find_pull_request_ref(body)
        if ref is None:
            return None

        cached = self.cache.get(ref.key)
        if cached is not None:
            return namespace, cached

        if self._github is None:
            logger.debug("No GitHub client configured, skipping prefetch pr=%s", ref.key)
            return None

        try:
            data = self._github.get_pull_request(ref)
            if not isinstance(data, dict):
                raise GitHubError(f"unexpected pull request payload type {type(data).__name__}")
            user = data.get("user") or {}
            pull_request = GitHubPullRequest(
                owner=ref.owner,
                repo=ref.repo,
                number=ref.number,
                author=user.get("login", "") if isinstance(user, dict) else "",
            )
        except Exception as exc:
            # A failed prefetch leaves the namespace absent; it never fails the message.
            logger.error("Failed to execute GitHub pull request prefetch pr=%s error=%s", ref.key, exc)
            return None

        logger.debug(
            "Prefetched GitHub pull request data repo=%s pr=%s author=%s",
            ref.full_name,
            ref.number,
            pull_request.author,
        )
        self.cache.put(ref.key, pull_request)
        return namespace, pull_request
