# src/gmail_blade/app/run.py
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Collection, Dict, List, Optional

from gmail_blade.actions.executor import default_executor
from gmail_blade.actions.handlers import ApprovalPolicy
from gmail_blade.config.settings import AppConfig
from gmail_blade.errors import MessageProcessingError
from gmail_blade.github.client import GitHubClient
from gmail_blade.gmail.client import GmailClient, GmailClientConfig
from gmail_blade.parsing.parser import normalize_message
from gmail_blade.pipeline.orchestrator import MessageProcessor
from gmail_blade.prefetch.resolver import PrefetchCache, PrefetchResolver
from gmail_blade.rules.core import MailSession
from gmail_blade.storage.ledger import ProcessedLedger

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 100

SessionFactory = Callable[[], Any]


@dataclass
class RunSummary:
    processed: int = 0
    skipped_processed: int = 0
    skipped_filtered: int = 0
    actions: int = 0
    cancelled: bool = False


def build_processor(
    config: AppConfig,
    *,
    dry_run: bool = False,
    cache: Optional[PrefetchCache] = None,
    github: Optional[GitHubClient] = None,
) -> MessageProcessor:
    gh = config.settings.github
    github = github or GitHubClient(gh.personal_access_token)
    approval = ApprovalPolicy(
        enabled=gh.approval.enabled,
        allowed_repositories=frozenset(gh.approval.allowed_repositories),
        allowed_usernames=frozenset(gh.approval.allowed_usernames),
    )
    return MessageProcessor(
        rules=config.rules,
        resolver=PrefetchResolver(github, cache),
        executor=default_executor(github=github, approval=approval, dry_run=dry_run),
    )


def _session_factory(config: AppConfig) -> SessionFactory:
    imap = config.settings.imap
    return lambda: GmailClient(GmailClientConfig(host=imap.host, port=imap.port, timeout=imap.timeout))


def run_cycle(
    session: MailSession,
    processor: MessageProcessor,
    ledger: ProcessedLedger,
    *,
    mailbox: str = "INBOX",
    read_only: bool = True,
    page_size: int = DEFAULT_PAGE_SIZE,
    target_uids: Optional[Collection[int]] = None,
    stop_event: Optional[threading.Event] = None,
    report_cb: Optional[Callable[[Dict[str, Any]], None]] = None,
) -> RunSummary:
    """
    Scan the mailbox once, page by page, until an empty page.

    Messages already in the ledger (and, when ``target_uids`` is given, messages
    outside it) are skipped. The first message that fails aborts the cycle with
    MessageProcessingError; the caller decides when to retry. Cancellation is
    checked between pages and ends the cycle without error.
    """
    session.select(mailbox, readonly=read_only)
    summary = RunSummary()

    start = 0
    while True:
        if stop_event is not None and stop_event.is_set():
            logger.debug("Cycle cancelled start=%s", start)
            summary.cancelled = True
            return summary

        page = session.fetch_page(start, page_size)
        if not page:
            logger.debug("No more messages found")
            break

        for fetched in page:
            if fetched.uid in ledger:
                logger.debug("Skipped processed message uid=%s", fetched.uid)
                summary.skipped_processed += 1
                continue

            if target_uids and fetched.uid not in target_uids:
                logger.debug("Skipped message not in target UIDs uid=%s", fetched.uid)
                summary.skipped_filtered += 1
                continue

            mail = normalize_message(fetched)
            try:
                actions = processor.evaluate_and_act(session, mail)
            except Exception as exc:
                raise MessageProcessingError(fetched.uid, str(exc)) from exc

            ledger.add(fetched.uid)
            summary.processed += 1
            summary.actions += len(actions)
            if report_cb and actions:
                report_cb(
                    {
                        "uid": mail.uid,
                        "subject": mail.subject,
                        "actions": [str(a) for a in actions],
                        "dry_run": processor.executor.dry_run,
                    }
                )

        start += page_size

    return summary


def run_once(
    config: AppConfig,
    *,
    processor: MessageProcessor,
    ledger: ProcessedLedger,
    target_uids: Optional[Collection[int]] = None,
    stop_event: Optional[threading.Event] = None,
    session_factory: Optional[SessionFactory] = None,
    report_cb: Optional[Callable[[Dict[str, Any]], None]] = None,
) -> RunSummary:
    """Open one authenticated session, run one cycle over the configured mailbox, close."""
    settings = config.settings
    factory = session_factory or _session_factory(config)
    with factory() as session:
        session.authenticate(settings.credentials.username, settings.credentials.password)
        return run_cycle(
            session,
            processor,
            ledger,
            mailbox=settings.imap.mailbox,
            read_only=settings.imap.read_only,
            page_size=settings.imap.page_size,
            target_uids=target_uids,
            stop_event=stop_event,
            report_cb=report_cb,
        )


def list_mailboxes(config: AppConfig, *, session_factory: Optional[SessionFactory] = None) -> List[str]:
    settings = config.settings
    factory = session_factory or _session_factory(config)
    with factory() as session:
        session.authenticate(settings.credentials.username, settings.credentials.password)
        mailboxes = session.list_mailboxes()
    logger.info("Found mailboxes mailboxes=\n%s", "\n".join(mailboxes))
    return mailboxes
