from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence

from gmail_blade.actions.handlers import (
    ActionHandler,
    ApprovalPolicy,
    GitHubReviewHandler,
    LabelHandler,
    MoveHandler,
    Reviewer,
)
from gmail_blade.errors import ActionError
from gmail_blade.rules.core import Action, ActionType, MailSession

logger = logging.getLogger(__name__)


@dataclass
class ActionExecutor:
    handlers: Dict[ActionType, ActionHandler]
    dry_run: bool = False

    def run(
        self,
        session: MailSession,
        uid: int,
        actions: Sequence[Action],
        prefetched: Optional[Mapping[str, Any]] = None,
    ) -> List[Action]:
        """
        Execute actions in order against one message.
        The first failure aborts the rest and is raised as ActionError.
        """
        executed: List[Action] = []
        for action in actions:
            handler = self.handlers.get(action.type)
            if action.type is ActionType.UNKNOWN or handler is None:
                logger.warning("Unknown action uid=%s action=%r", uid, str(action))
                continue

            if self.dry_run:
                logger.debug("[dry-run] would run uid=%s action=%r", uid, str(action))
                continue

            try:
                handler.handle(session, uid, action, prefetched or {})
            except Exception as exc:
                raise ActionError(f"{action}: {exc}") from exc
            executed.append(action)
        return executed


def default_executor(
    *,
    github: Optional[Reviewer] = None,
    approval: Optional[ApprovalPolicy] = None,
    dry_run: bool = False,
) -> ActionExecutor:
    move = MoveHandler()
    handlers: Dict[ActionType, ActionHandler] = {
        ActionType.DELETE: move,
        ActionType.MOVE: move,
        ActionType.LABEL: LabelHandler(),
    }
    if github is not None and approval is not None and approval.enabled:
        handlers[ActionType.REVIEW] = GitHubReviewHandler(github, approval)
    return ActionExecutor(handlers=handlers, dry_run=dry_run)
