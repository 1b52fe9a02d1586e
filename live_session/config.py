"""
Configuration for the live session core.

Values come from a YAML settings file, then environment overrides:

```yaml
live_session:
  base_url: "https://quiz.example.com/api/v1"
  request_timeout: 30
  credentials_path: "~/.live_session/credentials.json"
  module_poll_interval: 3
  roster_poll_interval: 10
  heartbeat_visible_interval: 15
  heartbeat_hidden_interval: 60
  max_queue_size: 3
```

Environment Variables:
    LIVE_SESSION_BASE_URL: Backend base URL
    LIVE_SESSION_REQUEST_TIMEOUT: Per-request timeout in seconds
    LIVE_SESSION_CREDENTIALS_PATH: Where participant/guest tokens are kept
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any

import yaml

from .exceptions import ConfigurationError

DEFAULT_BASE_URL = "http://localhost:8000/api/v1"
DEFAULT_CREDENTIALS_PATH = Path.home() / ".live_session" / "credentials.json"

_INTERVAL_FIELDS = (
    "request_timeout",
    "module_poll_interval",
    "participant_poll_interval",
    "roster_poll_interval",
    "questions_poll_interval",
    "presenter_questions_poll_interval",
    "timer_poll_interval",
    "heartbeat_visible_interval",
    "heartbeat_hidden_interval",
)


@dataclass
class LiveSessionConfig:
    """Configuration for the live session core.

    Attributes:
        base_url: Backend REST base URL
        request_timeout: Per-request timeout (seconds)
        credentials_path: File holding persisted participant/guest tokens

        module_poll_interval: Session module list refresh (seconds)
        participant_poll_interval: Roster refresh inside the joined participant view
        roster_poll_interval: Roster refresh on the presenter side
        questions_poll_interval: Question thread refresh for participants
        presenter_questions_poll_interval: Question thread refresh for presenters
        timer_poll_interval: Timer state refresh
        heartbeat_visible_interval: Heartbeat period while the view is visible
        heartbeat_hidden_interval: Heartbeat period while the view is hidden

        max_queue_size: Maximum number of non-active modules in a session queue
        supported_module_types: Module types wired to live views
        questions_page_limit: Page size for question thread fetches
        login_path: Where registered-mode visitors are sent without a user token
        join_path_template: Return path template carried to the login page
    """

    base_url: str = DEFAULT_BASE_URL
    request_timeout: float = 30.0
    credentials_path: Path = field(default_factory=lambda: DEFAULT_CREDENTIALS_PATH)

    module_poll_interval: float = 3.0
    participant_poll_interval: float = 3.0
    roster_poll_interval: float = 10.0
    questions_poll_interval: float = 3.0
    presenter_questions_poll_interval: float = 2.5
    timer_poll_interval: float = 2.5
    heartbeat_visible_interval: float = 15.0
    heartbeat_hidden_interval: float = 60.0

    max_queue_size: int = 3
    supported_module_types: tuple[str, ...] = ("questions", "timer")
    questions_page_limit: int = 200
    login_path: str = "/login"
    join_path_template: str = "/s/{code}"

    def __post_init__(self) -> None:
        self.credentials_path = Path(self.credentials_path).expanduser()
        self.supported_module_types = tuple(self.supported_module_types)
        self.validate()

    def validate(self) -> None:
        """Check value ranges.

        Raises:
            ConfigurationError: If any value is out of range
        """
        for name in _INTERVAL_FIELDS:
            value = getattr(self, name)
            if not isinstance(value, (int, float)) or value <= 0:
                raise ConfigurationError(name, "must be a positive number")
        if self.max_queue_size < 1:
            raise ConfigurationError("max_queue_size", "must be at least 1")
        if self.questions_page_limit < 1:
            raise ConfigurationError("questions_page_limit", "must be at least 1")
        if not self.base_url:
            raise ConfigurationError("base_url", "must not be empty")

    def join_path(self, code: str) -> str:
        """Return path for the participant join page of a session."""
        return self.join_path_template.format(code=code)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LiveSessionConfig:
        """Build a config from a mapping, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        values = {key: value for key, value in data.items() if key in known}
        if "supported_module_types" in values:
            values["supported_module_types"] = tuple(values["supported_module_types"])
        return cls(**values)

    @classmethod
    def from_file(cls, path: Path | str) -> LiveSessionConfig:
        """Load configuration from a YAML file.

        A missing file or an empty document yields defaults. Settings may sit
        at the top level or under a ``live_session:`` section.
        """
        config_path = Path(path).expanduser()
        if not config_path.exists():
            return cls()

        try:
            content = yaml.safe_load(config_path.read_text()) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(str(config_path), f"invalid YAML: {e}") from e

        if not isinstance(content, dict):
            raise ConfigurationError(str(config_path), "expected a mapping")

        section = content.get("live_session", content)
        if not isinstance(section, dict):
            raise ConfigurationError("live_session", "expected a mapping")
        return cls.from_dict(section)

    @classmethod
    def from_env(cls, base: LiveSessionConfig | None = None) -> LiveSessionConfig:
        """Apply environment overrides on top of ``base`` (or defaults)."""
        config = base or cls()
        overrides: dict[str, Any] = {}

        base_url = os.environ.get("LIVE_SESSION_BASE_URL")
        if base_url:
            overrides["base_url"] = base_url

        timeout = os.environ.get("LIVE_SESSION_REQUEST_TIMEOUT")
        if timeout:
            try:
                overrides["request_timeout"] = float(timeout)
            except ValueError as e:
                raise ConfigurationError("request_timeout", f"not a number: {timeout}") from e

        credentials_path = os.environ.get("LIVE_SESSION_CREDENTIALS_PATH")
        if credentials_path:
            overrides["credentials_path"] = Path(credentials_path)

        if not overrides:
            return config
        return replace(config, **overrides)

    @classmethod
    def load(cls, path: Path | str | None = None) -> LiveSessionConfig:
        """Load from the YAML file (if given), then apply environment overrides."""
        config = cls.from_file(path) if path is not None else cls()
        return cls.from_env(config)
