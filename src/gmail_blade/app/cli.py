# src/gmail_blade/app/cli.py
from __future__ import annotations

import argparse
import getpass
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence, Set

from gmail_blade.app.run import build_processor, list_mailboxes, run_once
from gmail_blade.app.server import run_server
from gmail_blade.backend.main import serve_in_background
from gmail_blade.backend.status import run_status_store
from gmail_blade.config.settings import DEFAULT_CONFIG_PATH, AppConfig, load_config
from gmail_blade.errors import GmailBladeError
from gmail_blade.logs.setup import attach_slack, configure_logging, resolve_level
from gmail_blade.storage.ledger import ProcessedLedger

logger = logging.getLogger("gmail_blade")


def parse_uids(text: str) -> Set[int]:
    """``"12, 15,20"`` -> ``{12, 15, 20}``. Empty input means no filter."""
    uids: Set[int] = set()
    for part in text.split(","):
        part = part.strip()
        if not part:
            continue
        try:
            uid = int(part)
        except ValueError:
            raise argparse.ArgumentTypeError(f"invalid UID {part!r}") from None
        if uid <= 0:
            raise argparse.ArgumentTypeError(f"invalid UID {part!r}")
        uids.add(uid)
    return uids


def _prompt_password() -> str:
    return getpass.getpass("Password: ")


def build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "-c",
        "--config",
        dest="config",
        type=Path,
        default=Path(DEFAULT_CONFIG_PATH),
        help=f"Path to the YAML config file (default: {DEFAULT_CONFIG_PATH}).",
    )
    common.add_argument(
        "--dry-run",
        dest="dry_run",
        action="store_true",
        help="Evaluate filters and log matches without touching the mailbox or GitHub.",
    )
    common.add_argument("--debug", dest="debug", action="store_true", help="Enable debug logging.")
    common.add_argument(
        "--errors-only", dest="errors_only", action="store_true", help="Only log errors."
    )

    parser = argparse.ArgumentParser(
        prog="gmail-blade",
        description="Rule-driven triage for a Gmail inbox over IMAP.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    once = sub.add_parser("once", parents=[common], help="Process the inbox once and exit.")
    once.add_argument(
        "--uids",
        dest="uids",
        type=parse_uids,
        default=set(),
        help="Comma-separated message UIDs to restrict processing to.",
    )

    server = sub.add_parser("server", parents=[common], help="Process the inbox until interrupted.")
    server.add_argument(
        "--status-port",
        dest="status_port",
        type=int,
        default=None,
        help="Serve the status API on this port (overrides server.statusPort).",
    )

    sub.add_parser("list-mailboxes", parents=[common], help="Print the account's mailboxes.")
    return parser


def _setup_logging(args: argparse.Namespace, config: Optional[AppConfig] = None) -> None:
    level = resolve_level(debug=args.debug, errors_only=args.errors_only)
    configure_logging(level)
    if config is not None:
        slack = config.settings.slack
        if slack.webhook_url and slack.level is not None:
            attach_slack(slack.webhook_url, slack.level)


def _cmd_once(args: argparse.Namespace, config: AppConfig) -> int:
    processor = build_processor(config, dry_run=args.dry_run)
    summary = run_once(config, processor=processor, ledger=ProcessedLedger(), target_uids=args.uids)
    logger.info(
        "Run finished processed=%s actions=%s skipped=%s",
        summary.processed,
        summary.actions,
        summary.skipped_processed + summary.skipped_filtered,
    )
    return 0


def _cmd_server(args: argparse.Namespace, config: AppConfig) -> int:
    port = args.status_port or config.settings.server.status_port
    if port:
        serve_in_background(port)
    run_server(config, dry_run=args.dry_run, status=run_status_store)
    return 0


def _cmd_list_mailboxes(args: argparse.Namespace, config: AppConfig) -> int:
    for name in list_mailboxes(config):
        print(name)
    return 0


COMMANDS = {
    "once": _cmd_once,
    "server": _cmd_server,
    "list-mailboxes": _cmd_list_mailboxes,
}


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        resolve_level(debug=args.debug, errors_only=args.errors_only)
    except ValueError as exc:
        parser.error(str(exc))

    _setup_logging(args)
    try:
        config = load_config(args.config, password_prompt=_prompt_password if sys.stdin.isatty() else None)
    except GmailBladeError as exc:
        logger.error("Failed to load config error=%s", exc)
        return 1

    if not config.settings.credentials.password:
        logger.error("Failed to load config error=credentials.password is empty")
        return 1

    # Re-run with Slack now that its settings are known.
    _setup_logging(args, config)
    if args.dry_run:
        logger.info("Dry run: no message or pull request will be changed")

    try:
        return COMMANDS[args.command](args, config)
    except Exception as exc:
        logger.error("Command failed command=%s error=%s", args.command, exc, exc_info=args.debug)
        return 1


if __name__ == "__main__":
    sys.exit(main())
