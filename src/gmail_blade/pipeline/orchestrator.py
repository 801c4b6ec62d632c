from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Sequence

from gmail_blade.actions.executor import ActionExecutor
from gmail_blade.models import NormalizedEmail
from gmail_blade.prefetch.resolver import PrefetchResolver
from gmail_blade.rules.core import Action, FilterRule, MailSession
from gmail_blade.rules.engine import evaluate_rules

logger = logging.getLogger(__name__)


@dataclass
class MessageProcessor:
    rules: Sequence[FilterRule]
    resolver: PrefetchResolver
    executor: ActionExecutor

    def evaluate_and_act(self, session: MailSession, mail: NormalizedEmail) -> List[Action]:
        """Evaluate the rules for one message and dispatch the matched actions.

        Returns the matched actions (also in dry-run, where nothing is executed).
        Action failures propagate.
        """
        if mail.seen:
            return []

        logger.debug(
            "Unread message uid=%s from=%s fromName=%s subject=%r cc=%s to=%s replyTo=%s",
            mail.uid,
            list(mail.from_),
            list(mail.from_name),
            mail.subject,
            list(mail.cc),
            list(mail.to),
            list(mail.reply_to),
        )

        evaluation = evaluate_rules(mail, self.rules, self.resolver)
        if not evaluation.actions:
            logger.debug("No actions matched uid=%s subject=%r", mail.uid, mail.subject)
            return []

        logger.info(
            "Actions matched uid=%s subject=%r actions=%s dry_run=%s",
            mail.uid,
            mail.subject,
            ", ".join(str(a) for a in evaluation.actions),
            self.executor.dry_run,
        )
        self.executor.run(session, mail.uid, evaluation.actions, evaluation.prefetched)
        return list(evaluation.actions)
