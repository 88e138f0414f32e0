"""Configuration management for the Ralph loop."""

import os
import shutil
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from dotenv import dotenv_values, load_dotenv

DEFAULT_CONFIG_FILE = Path("~/.config/ralph/config")
DEFAULT_RALPH_DIR = Path("~/.ralph-v2")


class ConfigurationError(Exception):
    """Raised for problems that must stop the loop before it starts."""

    pass


@dataclass(frozen=True)
class RalphConfig:
    """Runtime settings from environment, .env and the user config file."""

    ralph_dir: Path
    claude_path: str
    claude_model: str
    circuit_breaker_enabled: bool
    no_progress_threshold: int
    error_threshold: int
    rate_warning_threshold: int
    notify_per_iteration: bool
    desktop_notification: bool
    slack_webhook_url: str
    telegram_bot_token: str
    telegram_chat_id: str
    iteration_delay: float
    invocation_timeout: int
    push_enabled: bool
    log_file: Path
    status_file: Path

    @classmethod
    def from_env(cls, working_dir: Path | None = None) -> "RalphConfig":
        """Load configuration.

        Precedence: process environment, then ``.env`` in working_dir, then the
        user config file (``CONFIG_FILE`` or ~/.config/ralph/config), then
        built-in defaults.
        """
        working_dir = working_dir or Path.cwd()
        load_dotenv(working_dir / ".env")

        config_file = Path(os.getenv("CONFIG_FILE", str(DEFAULT_CONFIG_FILE))).expanduser()
        values = load_config_file(config_file)

        def get(key: str, default: str) -> str:
            value = os.getenv(key)
            if value is None:
                value = values.get(key)
            return default if value is None else value

        return cls(
            ralph_dir=Path(get("RALPH_DIR", str(DEFAULT_RALPH_DIR))).expanduser(),
            claude_path=get("CLAUDE_PATH", "claude"),
            claude_model=get("CLAUDE_MODEL", "opus"),
            circuit_breaker_enabled=_parse_bool(get("CIRCUIT_BREAKER_ENABLED", "true")),
            no_progress_threshold=_parse_int(
                "CIRCUIT_BREAKER_THRESHOLD", get("CIRCUIT_BREAKER_THRESHOLD", "3")
            ),
            error_threshold=_parse_int(
                "CIRCUIT_BREAKER_ERROR_THRESHOLD", get("CIRCUIT_BREAKER_ERROR_THRESHOLD", "5")
            ),
            rate_warning_threshold=_parse_int(
                "RATE_WARNING_THRESHOLD", get("RATE_WARNING_THRESHOLD", "50")
            ),
            notify_per_iteration=_parse_bool(get("NOTIFY_PER_ITERATION", "false")),
            desktop_notification=_parse_bool(get("DESKTOP_NOTIFICATION", "true")),
            slack_webhook_url=get("SLACK_WEBHOOK_URL", ""),
            telegram_bot_token=get("TELEGRAM_BOT_TOKEN", ""),
            telegram_chat_id=get("TELEGRAM_CHAT_ID", ""),
            iteration_delay=_parse_float(
                "RALPH_ITERATION_DELAY", get("RALPH_ITERATION_DELAY", "2")
            ),
            invocation_timeout=_parse_int(
                "RALPH_INVOCATION_TIMEOUT", get("RALPH_INVOCATION_TIMEOUT", "0")
            ),
            push_enabled=_parse_bool(get("RALPH_PUSH", "true")),
            log_file=Path(get("RALPH_LOG_FILE", "ralph.log")),
            status_file=Path(get("RALPH_STATUS_FILE", ".ralph-status.json")),
        )

    def validate(self) -> list[str]:
        """Validate runtime configuration. Returns all problems found."""
        errors: list[str] = []

        if shutil.which(self.claude_path) is None:
            errors.append(f"Worker CLI not found: {self.claude_path}")

        if self.no_progress_threshold < 1:
            errors.append(f"Invalid circuit breaker threshold: {self.no_progress_threshold}")

        if self.error_threshold < 1:
            errors.append(f"Invalid circuit breaker error threshold: {self.error_threshold}")

        if self.rate_warning_threshold < 1:
            errors.append(f"Invalid rate warning threshold: {self.rate_warning_threshold}")

        if self.iteration_delay < 0:
            errors.append(f"Invalid iteration delay: {self.iteration_delay}")

        if self.invocation_timeout < 0:
            errors.append(f"Invalid invocation timeout: {self.invocation_timeout}")

        return errors

    def to_log_string(self) -> str:
        """Return loggable config string (excludes secrets)."""
        slack_status = "configured" if self.slack_webhook_url else "none"
        telegram_status = "configured" if self.telegram_bot_token else "none"
        timeout = f"{self.invocation_timeout}s" if self.invocation_timeout else "none"
        if self.circuit_breaker_enabled:
            breaker = f"on ({self.no_progress_threshold}/{self.error_threshold})"
        else:
            breaker = "off"
        return (
            f"worker={self.claude_path}, model={self.claude_model}, "
            f"prompts={self.ralph_dir}, breaker={breaker}, "
            f"rate_warning={self.rate_warning_threshold}/h, delay={self.iteration_delay}s, "
            f"timeout={timeout}, push={self.push_enabled}, slack={slack_status}, "
            f"telegram={telegram_status}, desktop={self.desktop_notification}"
        )


def load_config_file(path: Path) -> Mapping[str, str | None]:
    """Parse the KEY=VALUE user config file. Missing file yields no values."""
    if not path.exists():
        return {}
    if not path.is_file():
        raise ConfigurationError(f"Config path is not a file: {path}")
    return dotenv_values(path)


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _parse_int(name: str, value: str) -> int:
    try:
        return int(value)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {value!r}") from None


def _parse_float(name: str, value: str) -> float:
    try:
        return float(value)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {value!r}") from None
