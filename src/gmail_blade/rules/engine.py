from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence

from gmail_blade.models import NormalizedEmail
from gmail_blade.prefetch.resolver import PrefetchResolver, namespace_for
from gmail_blade.rules.core import Action, FilterRule
from gmail_blade.rules.expression import bind_namespaces

logger = logging.getLogger(__name__)


@dataclass
class RuleEvaluation:
    actions: List[Action] = field(default_factory=list)
    # Namespace -> prefetched object, shared with the action handlers.
    prefetched: Dict[str, Any] = field(default_factory=dict)
    matched_rules: List[str] = field(default_factory=list)


def evaluate_rules(
    mail: NormalizedEmail,
    rules: Sequence[FilterRule],
    resolver: PrefetchResolver,
) -> RuleEvaluation:
    """
    Walk the rules in declared order and collect the actions of every match.

    A halting match stops the walk but keeps what earlier matches collected.
    Seen messages are never evaluated.
    """
    result = RuleEvaluation()
    if mail.seen:
        return result

    attempted: set[str] = set()

    for rule in rules:
        declared: List[str] = []
        for request in rule.prefetches:
            namespace = namespace_for(request)
            if namespace is None:
                logger.warning("Unknown prefetch rule=%s prefetch=%r", rule.name, request)
                continue
            declared.append(namespace)
            if namespace in attempted:
                continue
            attempted.add(namespace)
            resolved = resolver.resolve(request, mail.body)
            if resolved is not None:
                result.prefetched[resolved[0]] = resolved[1]

        # Fresh per rule so a condition cannot change what later rules see.
        env = bind_namespaces(
            mail.env(),
            {name: data.env() for name, data in result.prefetched.items()},
            declared,
        )
        if not rule.condition.matches(env):
            continue

        result.matched_rules.append(rule.name)
        result.actions.extend(rule.actions)
        if rule.halt_on_match:
            logger.debug("Halt on match uid=%s filter=%s", mail.uid, rule.name)
            break

    return result
