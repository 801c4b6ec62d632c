# src/gmail_blade/app/server.py
from __future__ import annotations

import imaplib
import logging
import signal
import ssl
import threading
from dataclasses import asdict, dataclass
from time import time
from typing import Callable, Optional

import httpx

from gmail_blade.app.run import RunSummary, build_processor, run_once
from gmail_blade.backend.status import RunStatusStore
from gmail_blade.config.settings import AppConfig
from gmail_blade.prefetch.resolver import PrefetchCache
from gmail_blade.storage.ledger import ProcessedLedger

logger = logging.getLogger(__name__)

MAX_SLEEP_INTERVAL = 60.0
# Every Nth consecutive transient failure is logged as an error.
ESCALATE_EVERY = 5

TRANSIENT_ERROR_TYPES = (
    ConnectionError,
    TimeoutError,
    EOFError,
    ssl.SSLEOFError,
    imaplib.IMAP4.abort,
    httpx.TransportError,
)

TRANSIENT_ERROR_SIGNATURES = (
    "unexpected eof",
    "eof occurred",
    "socket error: eof",
    "connection reset by peer",
    "broken pipe",
    "use of closed network connection",
    "timed out",
    "i/o timeout",
    "lookup failed",
    "temporary failure in name resolution",
    "system error (failure)",
)

Cycle = Callable[[threading.Event], RunSummary]


def is_transient_error(exc: BaseException) -> bool:
    """Connectivity hiccups anywhere in the exception chain count as transient."""
    seen = set()
    current: Optional[BaseException] = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        if isinstance(current, TRANSIENT_ERROR_TYPES):
            return True
        text = str(current).lower()
        if any(sig in text for sig in TRANSIENT_ERROR_SIGNATURES):
            return True
        current = current.__cause__ or current.__context__
    return False


@dataclass
class BackoffState:
    base_interval: float
    ceiling: float = MAX_SLEEP_INTERVAL
    failures: int = 0

    def record_success(self) -> None:
        self.failures = 0

    def record_failure(self) -> int:
        self.failures += 1
        return self.failures

    @property
    def sleep_interval(self) -> float:
        # Linear growth: base after a success, base * (n + 1) after n failures.
        return min(self.base_interval * (self.failures + 1), self.ceiling)


class ServerLoop:
    """
    Runs cycles until stopped, sleeping between them.

    Failed cycles lengthen the sleep (see BackoffState) and never end the loop.
    ``stop()`` ends the current sleep at once and lets a running cycle finish
    its current page. ``trigger()`` cuts the current sleep short.
    """

    def __init__(
        self,
        cycle: Cycle,
        base_interval: float,
        *,
        ceiling: float = MAX_SLEEP_INTERVAL,
        status: Optional[RunStatusStore] = None,
    ) -> None:
        self._cycle = cycle
        self.backoff = BackoffState(base_interval=base_interval, ceiling=ceiling)
        self.status = status
        self._stop = threading.Event()
        self._wake = threading.Event()

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    def stop(self) -> None:
        self._stop.set()
        self._wake.set()

    def trigger(self) -> None:
        self._wake.set()

    def _update_status(self, **fields) -> None:
        if self.status is not None:
            self.status.update(**fields)

    def run_one(self) -> float:
        """Run one cycle and return how long to sleep before the next."""
        self._wake.clear()
        self._update_status(state="running", detail=None)
        try:
            summary = self._cycle(self._stop)
        except Exception as exc:
            failures = self.backoff.record_failure()
            transient = is_transient_error(exc)
            if transient and failures % ESCALATE_EVERY != 0:
                level = logging.WARNING
            else:
                level = logging.ERROR
            logger.log(level, "Failed to process messages error=%s backoff_times=%s", exc, failures)
            if self.status is not None:
                self.status.record_error({"error": str(exc), "transient": transient, "at": time()})
            self._update_status(state="error", detail=str(exc))
        else:
            self.backoff.record_success()
            logger.debug(
                "Cycle finished processed=%s actions=%s cancelled=%s",
                summary.processed,
                summary.actions,
                summary.cancelled,
            )
            self._update_status(state="sleeping", detail=None, summary=asdict(summary))

        interval = self.backoff.sleep_interval
        if interval > self.backoff.base_interval:
            logger.warning(
                "Backing off interval=%.1fs backoff_times=%s", interval, self.backoff.failures
            )

        if self.status is not None:
            snapshot = self.status.snapshot()
            self._update_status(
                cycles=snapshot["cycles"] + 1,
                consecutive_failures=self.backoff.failures,
                sleep_interval=interval,
            )
        return interval

    def run(self) -> None:
        logger.info("Server started (press Ctrl+C to stop) sleep_interval=%.1fs", self.backoff.base_interval)
        if self.status is not None:
            self.status.bind_trigger(self.trigger)
        try:
            while not self._stop.is_set():
                interval = self.run_one()
                if self._stop.is_set():
                    break
                self._wake.wait(interval)
        finally:
            if self.status is not None:
                self.status.bind_trigger(None)
                self.status.update(state="stopped", detail=None)
            logger.info("Server stopped")


def build_server_loop(
    config: AppConfig,
    *,
    dry_run: bool = False,
    status: Optional[RunStatusStore] = None,
    session_factory=None,
) -> ServerLoop:
    """One ledger and one prefetch cache live for the whole loop."""
    ledger = ProcessedLedger()
    processor = build_processor(config, dry_run=dry_run, cache=PrefetchCache())

    def cycle(stop_event: threading.Event) -> RunSummary:
        return run_once(
            config,
            processor=processor,
            ledger=ledger,
            stop_event=stop_event,
            session_factory=session_factory,
            report_cb=status.record_action if status is not None else None,
        )

    return ServerLoop(cycle, config.settings.server.sleep_interval, status=status)


def run_server(config: AppConfig, *, dry_run: bool = False, status: Optional[RunStatusStore] = None) -> None:
    """Block until SIGINT/SIGTERM, processing the mailbox every sleep interval."""
    loop = build_server_loop(config, dry_run=dry_run, status=status)

    def _handle_signal(signum, _frame) -> None:
        logger.info("Received %s, shutting down", signal.Signals(signum).name)
        loop.stop()

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)
    loop.run()
