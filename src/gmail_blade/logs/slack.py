from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional

import httpx

SLACK_COLORS = {
    "DEBUG": "#808080",
    "INFO": "#36a64f",
    "WARNING": "#ff9500",
    "ERROR": "#ff0000",
    "CRITICAL": "#ff0000",
}
DEFAULT_COLOR = "#808080"


class SlackNotifier:
    """Posts one colour-coded attachment per notification to an incoming webhook."""

    def __init__(self, webhook_url: str, *, timeout: float = 10.0, http_client: Optional[httpx.Client] = None) -> None:
        self._webhook_url = webhook_url
        self._http = http_client or httpx.Client(timeout=timeout)

    @staticmethod
    def build_payload(severity: str, message: str, fields: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        severity = severity.upper()
        details = "".join(f"{key}: {value}\n" for key, value in (fields or {}).items())
        return {
            "attachments": [
                {
                    "color": SLACK_COLORS.get(severity, DEFAULT_COLOR),
                    "text": f"```\ngmail-blade {severity}: {message}\n{details}```",
                }
            ]
        }

    def post(self, severity: str, message: str, fields: Optional[Mapping[str, Any]] = None) -> None:
        """Raise httpx.HTTPError when the webhook is unreachable or answers non-2xx."""
        response = self._http.post(self._webhook_url, json=self.build_payload(severity, message, fields))
        response.raise_for_status()


class SlackHandler(logging.Handler):
    """
    Forwards log records at or above the handler level to Slack.
    Delivery failures are reported through ``handleError`` and never reach the
    code that logged.
    """

    def __init__(self, notifier: SlackNotifier, level: int = logging.WARNING) -> None:
        super().__init__(level=level)
        self._notifier = notifier

    def emit(self, record: logging.LogRecord) -> None:
        # Posting logs through httpx itself.
        if record.name.startswith(("httpx", "httpcore")):
            return
        try:
            fields: Dict[str, Any] = {"logger": record.name}
            if record.exc_info and record.exc_info[1] is not None:
                fields["error"] = record.exc_info[1]
            self._notifier.post(record.levelname, record.getMessage(), fields)
        except Exception:
            self.handleError(record)
