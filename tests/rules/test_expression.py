from __future__ import annotations

import logging

import pytest

from gmail_blade.errors import ConditionError
from gmail_blade.rules.expression import AbsentNamespace, Condition, bind_namespaces

MESSAGE = {
    "from": ["notifications@github.com"],
    "fromName": ["GitHub"],
    "subject": "[acme/api] Bump httpx (#7)",
    "cc": [],
    "to": ["me@gmail.com", "team@example.com"],
    "replyTo": [],
    "body": "Review https://github.com/acme/api/pull/7 please",
}


def _env(**prefetched):
    return bind_namespaces(MESSAGE, prefetched)


def test_keyword_field_is_addressable_with_dot() -> None:
    cond = Condition.compile('"notifications@github.com" in message.from')

    assert cond.matches(_env())


def test_helper_functions() -> None:
    assert Condition.compile(r'matches(message.subject, "(?i)bump\s+httpx")').matches(_env())
    assert Condition.compile('contains(message.to, "EXAMPLE.com")').matches(_env())
    assert Condition.compile('lower(message.fromName[0]) == "github"').matches(_env())
    assert Condition.compile('any([contains(a, "example.com") for a in message.to])').matches(_env())
    assert Condition.compile("len(message.cc) == 0 and true").matches(_env())


def test_non_boolean_result_is_not_a_match() -> None:
    cond = Condition.compile("message.subject")

    assert cond.evaluate(_env()) == MESSAGE["subject"]
    assert cond.matches(_env()) is False


def test_runtime_failure_is_logged_and_treated_as_non_match(caplog: pytest.LogCaptureFixture) -> None:
    cond = Condition.compile("message.nonexistent.deeper == 1")

    with caplog.at_level(logging.ERROR):
        assert cond.matches(_env()) is False

    assert "Failed to run expression" in caplog.text


def test_absent_prefetch_namespace_reads_as_nil() -> None:
    cond = Condition.compile('githubPullRequest.author == "alice"')
    env = bind_namespaces(MESSAGE, {}, ["githubPullRequest"])

    assert isinstance(env["githubPullRequest"], AbsentNamespace)
    assert Condition.compile("githubPullRequest.author == nil").matches(env)
    assert cond.matches(env) is False


def test_prefetched_namespace_overrides_absent_placeholder() -> None:
    env = bind_namespaces(
        MESSAGE,
        {"githubPullRequest": {"owner": "acme", "repo": "api", "number": 7, "author": "alice"}},
        ["githubPullRequest"],
    )

    assert Condition.compile('githubPullRequest.author == "alice" and githubPullRequest.number == 7').matches(env)


def test_multiline_condition_compiles() -> None:
    cond = Condition.compile('contains(message.from, "github.com")\nand contains(message.subject, "bump")\n')

    assert cond.matches(_env())


@pytest.mark.parametrize(
    "source",
    ["message.subject ==", "(", "", "   ", 'message.subject = "hi"', "true; false", "import os"],
)
def test_invalid_condition_raises_at_compile(source: str) -> None:
    with pytest.raises(ConditionError):
        Condition.compile(source)
