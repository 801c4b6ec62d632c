from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, List, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from gmail_blade.errors import ConditionError, ConfigError
from gmail_blade.gmail.client import GMAIL_IMAP_HOST, GMAIL_IMAP_PORT
from gmail_blade.prefetch.resolver import GITHUB_PULL_REQUEST_NAMESPACE, namespace_for
from gmail_blade.rules.actions import parse_actions
from gmail_blade.rules.core import ActionType, FilterRule
from gmail_blade.rules.expression import Condition

DEFAULT_CONFIG_PATH = "gmail-blade.yml"
DEFAULT_SLEEP_INTERVAL = "15s"

LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}

_ENV_REF = re.compile(r"\$\{(\w+)\}|\$(\w+)")
_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ns|us|µs|ms|s|m|h)")
_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}


def expand_env(value: Any) -> Any:
    """Replace ``$VAR`` / ``${VAR}`` with the environment value (empty if unset)."""
    if value is None:
        return ""
    if not isinstance(value, str):
        return value
    return _ENV_REF.sub(lambda m: os.environ.get(m.group(1) or m.group(2), ""), value)


def parse_duration(value: Any) -> float:
    """Parse ``15s``, ``1m30s``, ``500ms`` or a plain number of seconds."""
    if isinstance(value, bool):
        raise ValueError(f"invalid duration {value!r}")
    if isinstance(value, (int, float)):
        seconds = float(value)
    else:
        text = str(value).strip()
        try:
            seconds = float(text)
        except ValueError:
            seconds = 0.0
            pos = 0
            for match in _DURATION_PART.finditer(text):
                if match.start() != pos:
                    break
                seconds += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
                pos = match.end()
            if not text or pos != len(text):
                raise ValueError(f"invalid duration {value!r}") from None
    if seconds <= 0:
        raise ValueError(f"duration must be positive, got {value!r}")
    return seconds


class CredentialsConfig(BaseModel):
    username: str = ""
    password: str = ""

    @field_validator("username", "password", mode="before")
    @classmethod
    def expand_env_refs(cls, value: Any) -> Any:
        return expand_env(value)


class ImapConfig(BaseModel):
    host: str = GMAIL_IMAP_HOST
    port: int = GMAIL_IMAP_PORT
    mailbox: str = "INBOX"
    read_only: bool = True
    page_size: int = Field(100, gt=0)
    timeout: Optional[float] = None


class ServerConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    sleep_interval: float = Field(parse_duration(DEFAULT_SLEEP_INTERVAL), alias="sleepInterval")
    status_port: Optional[int] = Field(None, alias="statusPort")

    @field_validator("sleep_interval", mode="before")
    @classmethod
    def parse_sleep_interval(cls, value: Any) -> float:
        return parse_duration(value)


class ApprovalConfig(BaseModel):
    enabled: bool = False
    allowed_repositories: List[str] = Field(default_factory=list)
    allowed_usernames: List[str] = Field(default_factory=list)


class GitHubConfig(BaseModel):
    personal_access_token: str = ""
    approval: ApprovalConfig = Field(default_factory=ApprovalConfig)

    @field_validator("personal_access_token", mode="before")
    @classmethod
    def expand_env_refs(cls, value: Any) -> Any:
        return expand_env(value)


class SlackConfig(BaseModel):
    webhook_url: str = ""
    send_log_level: str = ""

    @field_validator("webhook_url", mode="before")
    @classmethod
    def expand_env_refs(cls, value: Any) -> Any:
        return expand_env(value)

    @field_validator("send_log_level")
    @classmethod
    def known_level(cls, value: str) -> str:
        value = value.strip().lower()
        if value and value not in LOG_LEVELS:
            raise ValueError(f"invalid slack.send_log_level {value!r}")
        return value

    @property
    def level(self) -> Optional[int]:
        return LOG_LEVELS.get(self.send_log_level)


class FilterConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str
    condition: str
    prefetches: List[str] = Field(default_factory=list)
    actions: List[str] = Field(default_factory=list)
    halt_on_match: bool = Field(False, alias="halt-on-match")


class Settings(BaseModel):
    credentials: CredentialsConfig = Field(default_factory=CredentialsConfig)
    imap: ImapConfig = Field(default_factory=ImapConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    github: GitHubConfig = Field(default_factory=GitHubConfig)
    slack: SlackConfig = Field(default_factory=SlackConfig)
    filters: List[FilterConfig] = Field(default_factory=list)


@dataclass
class AppConfig:
    settings: Settings
    rules: List[FilterRule]


def _check_approval(settings: Settings) -> None:
    approval = settings.github.approval
    if not approval.enabled:
        return
    if not settings.github.personal_access_token:
        raise ConfigError("github.approval.enabled requires github.personal_access_token")
    if not approval.allowed_repositories:
        raise ConfigError("github.approval.allowed_repositories must not be empty")
    if not approval.allowed_usernames:
        raise ConfigError("github.approval.allowed_usernames must not be empty")


def build_rules(settings: Settings) -> List[FilterRule]:
    """Compile conditions and parse actions. Any problem is fatal."""
    rules: List[FilterRule] = []
    for f in settings.filters:
        try:
            condition = Condition.compile(f.condition)
        except ConditionError as exc:
            raise ConfigError(f"compile condition for filter {f.name!r}: {exc}") from exc

        try:
            actions = parse_actions(f.actions)
        except ConfigError as exc:
            raise ConfigError(f"filter {f.name!r}: {exc}") from exc

        namespaces = set()
        for prefetch in f.prefetches:
            namespace = namespace_for(prefetch)
            if namespace is None:
                raise ConfigError(f"filter {f.name!r}: unknown prefetch {prefetch!r}")
            namespaces.add(namespace)

        for action in actions:
            if action.type is not ActionType.REVIEW:
                continue
            if not settings.github.approval.enabled:
                raise ConfigError(
                    f"filter {f.name!r}: action {action.source!r} requires github.approval.enabled"
                )
            if GITHUB_PULL_REQUEST_NAMESPACE not in namespaces:
                raise ConfigError(
                    f"filter {f.name!r}: action {action.source!r} requires the 'github pull request' prefetch"
                )

        rules.append(
            FilterRule(
                name=f.name,
                condition=condition,
                actions=actions,
                prefetches=tuple(f.prefetches),
                halt_on_match=f.halt_on_match,
            )
        )
    return rules


def load_config(path: Path, *, password_prompt: Optional[Callable[[], str]] = None) -> AppConfig:
    """
    Read and validate the YAML config file.

    Secrets may reference environment variables (``${GITHUB_TOKEN}``); a ``.env``
    file in the working directory is loaded first. An empty password is asked
    for through ``password_prompt`` when given.
    """
    load_dotenv()

    try:
        raw = yaml.safe_load(Path(path).read_text(encoding="utf-8")) or {}
    except OSError as exc:
        raise ConfigError(f"read config file {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"parse config file {path}: {exc}") from exc

    try:
        settings = Settings.model_validate(raw)
    except ValidationError as exc:
        raise ConfigError(f"invalid config file {path}: {exc}") from exc

    if settings.slack.send_log_level and not settings.slack.webhook_url:
        raise ConfigError("slack.send_log_level requires slack.webhook_url")
    _check_approval(settings)
    rules = build_rules(settings)

    if not settings.credentials.password and password_prompt is not None:
        settings.credentials.password = password_prompt()

    return AppConfig(settings=settings, rules=rules)
