from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx

from gmail_blade.errors import GitHubError

logger = logging.getLogger(__name__)

GITHUB_API_BASE = "https://api.github.com"
RATE_LIMIT_WARN_THRESHOLD = 500

# https://github.com/owner/repo/pull/123
PULL_REQUEST_URL = re.compile(r"https://github\.com/([^/\s]+)/([^/\s]+)/pull/(\d+)")


@dataclass(frozen=True)
class PullRequestRef:
    owner: str
    repo: str
    number: int

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"

    @property
    def key(self) -> str:
        return f"{self.owner}/{self.repo}#{self.number}"


def find_pull_request_ref(text: str) -> Optional[PullRequestRef]:
    """Return the first GitHub pull request URL found in a notification body."""
    match = PULL_REQUEST_URL.search(text or "")
    if not match:
        return None
    return PullRequestRef(owner=match.group(1), repo=match.group(2), number=int(match.group(3)))


class GitHubClient:
    """Small wrapper around the GitHub REST endpoints needed for PR prefetch and approval."""

    def __init__(
        self,
        token: str,
        *,
        base_url: str = GITHUB_API_BASE,
        timeout: float = 30.0,
        http_client: Optional[httpx.Client] = None,
    ) -> None:
        self._http = http_client or httpx.Client(base_url=base_url, timeout=timeout)
        self._token = token
        self._login: Optional[str] = None

    @property
    def _headers(self) -> Dict[str, str]:
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            response = self._http.request(method, path, headers=self._headers, **kwargs)
        except httpx.HTTPError as exc:
            raise GitHubError(f"{method} {path}: {exc}") from exc
        if response.status_code >= 400:
            try:
                message = response.json().get("message", response.text)
            except ValueError:
                message = response.text
            raise GitHubError(
                f"{method} {path}: HTTP {response.status_code}: {message}",
                status_code=response.status_code,
            )
        return response

    def get_pull_request(self, ref: PullRequestRef) -> Dict[str, Any]:
        response = self._request("GET", f"/repos/{ref.owner}/{ref.repo}/pulls/{ref.number}")
        remaining = response.headers.get("X-RateLimit-Remaining")
        if remaining is not None and remaining.isdigit() and int(remaining) < RATE_LIMIT_WARN_THRESHOLD:
            logger.warning("GitHub API rate limit quota is low remaining=%s", remaining)
        return response.json()

    def list_reviews(self, ref: PullRequestRef) -> List[Dict[str, Any]]:
        response = self._request(
            "GET",
            f"/repos/{ref.owner}/{ref.repo}/pulls/{ref.number}/reviews",
            params={"per_page": 100},
        )
        return response.json()

    def get_current_login(self) -> str:
        """Login of the token owner. Cached for the lifetime of the client."""
        if self._login is None:
            self._login = self._request("GET", "/user").json().get("login", "")
        return self._login

    def approve(self, ref: PullRequestRef) -> Dict[str, Any]:
        response = self._request(
            "POST",
            f"/repos/{ref.owner}/{ref.repo}/pulls/{ref.number}/reviews",
            json={"event": "APPROVE"},
        )
        return response.json()

    def close(self) -> None:
        self._http.close()
