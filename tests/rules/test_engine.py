from __future__ import annotations

import pytest

from gmail_blade.actions.executor import default_executor
from gmail_blade.actions.handlers import ApprovalPolicy
from gmail_blade.parsing.parser import normalize_message
from gmail_blade.pipeline.orchestrator import MessageProcessor
from gmail_blade.prefetch.resolver import GITHUB_PULL_REQUEST_NAMESPACE, PrefetchCache, PrefetchResolver
from gmail_blade.rules.core import ActionType
from gmail_blade.rules.engine import evaluate_rules

PR_BODY = "dependabot opened https://github.com/acme/api/pull/7 for you"


def test_actions_accumulate_up_to_first_halting_match(make_message, make_rule, fake_github) -> None:
    rules = [
        make_rule("first", "true", ['label "A"']),
        make_rule("skipped", "false", ['label "X"']),
        make_rule("halting", 'message.subject == "hi"', ['label "B"', 'label "C"'], halt=True),
        make_rule("after-halt", "true", ["delete"]),
    ]
    mail = normalize_message(make_message(1, subject="hi"))

    result = evaluate_rules(mail, rules, PrefetchResolver(fake_github))

    assert [a.target for a in result.actions] == ["A", "B", "C"]
    assert result.matched_rules == ["first", "halting"]


def test_seen_message_yields_no_actions_and_no_prefetch(make_message, make_rule, fake_github) -> None:
    rules = [make_rule("pr", "true", ["delete"], prefetches=["github pull request"])]
    mail = normalize_message(make_message(1, body=PR_BODY, seen=True))

    result = evaluate_rules(mail, rules, PrefetchResolver(fake_github))

    assert result.actions == []
    assert fake_github.fetches == []


def test_shared_prefetch_is_fetched_once(make_message, make_rule, fake_github) -> None:
    rules = [
        make_rule("a", 'githubPullRequest.repo == "api"', ['label "A"'], prefetches=["github pull request"]),
        make_rule("b", "githubPullRequest.number == 7", ['label "B"'], prefetches=["GitHub  Pull Request"]),
    ]
    resolver = PrefetchResolver(fake_github, PrefetchCache())

    first = evaluate_rules(normalize_message(make_message(1, body=PR_BODY)), rules, resolver)
    second = evaluate_rules(normalize_message(make_message(2, body=PR_BODY)), rules, resolver)

    assert fake_github.fetches == ["acme/api#7"]
    assert [a.target for a in first.actions] == ["A", "B"]
    assert [a.target for a in second.actions] == ["A", "B"]
    assert first.prefetched[GITHUB_PULL_REQUEST_NAMESPACE].author == "dependabot[bot]"


def test_failed_prefetch_is_not_retried_within_a_message(make_message, make_rule, fake_github) -> None:
    fake_github.fail_fetch = True
    rules = [
        make_rule("a", "githubPullRequest.author == nil", ['label "A"'], prefetches=["github pull request"]),
        make_rule("b", "true", ['label "B"'], prefetches=["github pull request"]),
    ]

    result = evaluate_rules(normalize_message(make_message(1, body=PR_BODY)), rules, PrefetchResolver(fake_github))

    assert fake_github.fetches == ["acme/api#7"]
    assert [a.target for a in result.actions] == ["A", "B"]


def test_single_halting_rule_labels_once(make_message, make_rule, make_session, fake_github) -> None:
    rules = [make_rule("a", '"a@x.com" in message.from', ['label "L"'], halt=True)]
    processor = MessageProcessor(rules, PrefetchResolver(fake_github), default_executor())
    session = make_session()

    actions = processor.evaluate_and_act(session, normalize_message(make_message(9, sender="a@x.com")))

    assert [str(a) for a in actions] == ['label "L"']
    assert session.mutations == [("copy", 9, "L")]


def test_two_matching_rules_execute_in_rule_order(make_message, make_rule, make_session, fake_github) -> None:
    rules = [make_rule("a", "true", ['label "A"']), make_rule("b", "true", ['label "B"'])]
    processor = MessageProcessor(rules, PrefetchResolver(fake_github), default_executor())
    session = make_session()

    processor.evaluate_and_act(session, normalize_message(make_message(4)))

    assert session.mutations == [("copy", 4, "A"), ("copy", 4, "B")]


def test_review_rule_without_pull_request_link_does_nothing(make_message, make_rule, make_session, fake_github) -> None:
    rules = [
        make_rule(
            "approve",
            'githubPullRequest.author == "dependabot[bot]"',
            ["github review"],
            prefetches=["github pull request"],
        )
    ]
    policy = ApprovalPolicy(True, frozenset({"acme/api"}), frozenset({"dependabot[bot]"}))
    processor = MessageProcessor(
        rules,
        PrefetchResolver(fake_github),
        default_executor(github=fake_github, approval=policy),
    )

    actions = processor.evaluate_and_act(make_session(), normalize_message(make_message(5, body="no links here")))

    assert actions == []
    assert fake_github.fetches == []
    assert fake_github.approved == []


def test_unknown_prefetch_is_ignored(make_message, make_rule, fake_github) -> None:
    rules = [make_rule("a", "true", ["delete"], prefetches=["jira ticket"])]

    result = evaluate_rules(normalize_message(make_message(1)), rules, PrefetchResolver(fake_github))

    assert [a.type for a in result.actions] == [ActionType.DELETE]
    assert result.prefetched == {}


@pytest.mark.parametrize(
    ("tampering", "check"),
    [
        ('message.from.append("evil@x.com") == nil', '"evil@x.com" in message.from'),
        ('message.update({"subject": "changed"}) == nil', 'message.subject == "changed"'),
    ],
)
def test_condition_cannot_change_what_later_rules_see(make_message, make_rule, fake_github, tampering, check) -> None:
    rules = [
        make_rule("first", tampering, ['label "A"']),
        make_rule("second", check, ['label "B"']),
    ]
    mail = normalize_message(make_message(1, subject="hi", sender="a@x.com"))

    result = evaluate_rules(mail, rules, PrefetchResolver(fake_github))

    assert "second" not in result.matched_rules
    assert "B" not in [a.target for a in result.actions]
    assert mail.from_ == ("a@x.com",)
    assert mail.subject == "hi"
