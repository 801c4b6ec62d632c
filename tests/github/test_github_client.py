from __future__ import annotations

import json
import logging
from typing import List

import httpx
import pytest

from gmail_blade.errors import GitHubError
from gmail_blade.github.client import GitHubClient, PullRequestRef, find_pull_request_ref

REF = PullRequestRef(owner="acme", repo="api", number=7)


def _client(handler, token: str = "ghp_test") -> GitHubClient:
    http = httpx.Client(base_url="https://api.github.test", transport=httpx.MockTransport(handler))
    return GitHubClient(token, http_client=http)


def test_find_pull_request_ref() -> None:
    ref = find_pull_request_ref("merged: https://github.com/acme/api/pull/7#issuecomment-1 and more")

    assert ref == REF
    assert ref.key == "acme/api#7"
    assert ref.full_name == "acme/api"
    assert find_pull_request_ref("https://github.com/acme/api/issues/7") is None
    assert find_pull_request_ref("") is None


def test_get_pull_request_sends_token_and_warns_on_low_quota(caplog: pytest.LogCaptureFixture) -> None:
    seen: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json={"number": 7, "user": {"login": "alice"}},
            headers={"X-RateLimit-Remaining": "42"},
        )

    with caplog.at_level(logging.WARNING):
        data = _client(handler).get_pull_request(REF)

    assert data["user"]["login"] == "alice"
    assert seen[0].url.path == "/repos/acme/api/pulls/7"
    assert seen[0].headers["Authorization"] == "Bearer ghp_test"
    assert "rate limit" in caplog.text


def test_anonymous_client_sends_no_authorization() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert "Authorization" not in request.headers
        return httpx.Response(200, json={"user": {"login": "alice"}})

    _client(handler, token="").get_pull_request(REF)


def test_error_status_raises_github_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, json={"message": "Not Found"})

    with pytest.raises(GitHubError) as excinfo:
        _client(handler).get_pull_request(REF)

    assert excinfo.value.status_code == 404
    assert "Not Found" in str(excinfo.value)


def test_transport_error_raises_github_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(GitHubError) as excinfo:
        _client(handler).list_reviews(REF)

    assert isinstance(excinfo.value.__cause__, httpx.ConnectError)


def test_approve_posts_review_and_login_is_cached() -> None:
    calls: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        if request.url.path == "/user":
            return httpx.Response(200, json={"login": "blade-bot"})
        return httpx.Response(200, json={"state": "APPROVED"})

    client = _client(handler)
    assert client.get_current_login() == "blade-bot"
    assert client.get_current_login() == "blade-bot"
    client.approve(REF)

    assert [r.url.path for r in calls] == ["/user", "/repos/acme/api/pulls/7/reviews"]
    assert calls[1].method == "POST"
    assert json.loads(calls[1].content) == {"event": "APPROVE"}
