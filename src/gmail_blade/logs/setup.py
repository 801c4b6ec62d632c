from __future__ import annotations

import logging
import sys
from typing import Optional

from gmail_blade.logs.slack import SlackHandler, SlackNotifier

LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


def resolve_level(*, debug: bool = False, errors_only: bool = False) -> int:
    if debug and errors_only:
        raise ValueError("cannot use both --errors-only and --debug flags")
    if debug:
        return logging.DEBUG
    if errors_only:
        return logging.ERROR
    return logging.INFO


def configure_logging(level: int, *, stream=None) -> logging.Logger:
    root = logging.getLogger()
    root.setLevel(level)
    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.handlers = [handler]
    # httpx logs every request at INFO.
    logging.getLogger("httpx").setLevel(logging.WARNING)
    return root


def attach_slack(webhook_url: str, level: int, *, notifier: Optional[SlackNotifier] = None) -> SlackHandler:
    """Send records at or above ``level`` to Slack, on top of stderr.

    Records below the root logger level are dropped before they reach this
    handler, so ``--errors-only`` also limits what Slack receives.
    """
    handler = SlackHandler(notifier or SlackNotifier(webhook_url), level=level)
    logging.getLogger().addHandler(handler)
    return handler
