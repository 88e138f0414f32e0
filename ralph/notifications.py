"""Notifications for the Ralph loop.

Lifecycle events go to every configured channel: a Slack-style webhook, the
Telegram Bot API and local desktop notifications. Each channel is
best-effort: failures are logged but never stop the loop.
"""

import logging
import shutil
import subprocess
import sys
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

import requests

logger = logging.getLogger("ralph.notifications")

REQUEST_TIMEOUT = 5


class Event(Enum):
    """Lifecycle events the loop reports."""

    SESSION_STARTED = "session_started"
    ITERATION_STARTED = "iteration_started"
    ITERATION_COMPLETED = "iteration_completed"
    MAX_ITERATIONS_REACHED = "max_iterations_reached"
    CIRCUIT_BREAKER_TRIPPED = "circuit_breaker_tripped"
    INTERRUPTED = "interrupted"
    SESSION_COMPLETED = "session_completed"


# Opt-in via NOTIFY_PER_ITERATION; everything else is always attempted
PER_ITERATION_EVENTS = frozenset({Event.ITERATION_STARTED, Event.ITERATION_COMPLETED})

TERMINAL_EVENTS = frozenset(
    {
        Event.MAX_ITERATIONS_REACHED,
        Event.CIRCUIT_BREAKER_TRIPPED,
        Event.INTERRUPTED,
        Event.SESSION_COMPLETED,
    }
)

# emoji, title, Slack attachment color
EVENT_STYLES: dict[Event, tuple[str, str, str]] = {
    Event.SESSION_STARTED: ("🚀", "Ralph started session", "#2196f3"),
    Event.ITERATION_STARTED: ("🔄", "Iteration started", "#2196f3"),
    Event.ITERATION_COMPLETED: ("✓", "Iteration completed", "#36a64f"),
    Event.MAX_ITERATIONS_REACHED: ("⏹️", "Ralph reached max iterations", "#ff9800"),
    Event.CIRCUIT_BREAKER_TRIPPED: ("❌", "Ralph circuit breaker tripped", "#f44336"),
    Event.INTERRUPTED: ("❌", "Ralph was interrupted", "#f44336"),
    Event.SESSION_COMPLETED: ("✅", "Ralph completed session", "#36a64f"),
}


@dataclass(frozen=True)
class NotificationContext:
    """Outbound payload shared by every channel."""

    project: str
    branch: str
    mode: str
    duration: str
    iterations: int
    commits: int
    last_revision: str
    detail: str | None = None

    def title(self, event: Event) -> str:
        emoji, title, _ = EVENT_STYLES[event]
        if event in PER_ITERATION_EVENTS:
            return f"{emoji} {title}: iteration {self.iterations}"
        return f"{emoji} {title}"


Channel = Callable[[Event, NotificationContext], bool]


# =============================================================================
# Transports
# =============================================================================


def send_slack_message(
    webhook_url: str,
    payload: dict[str, Any],
    timeout: int = REQUEST_TIMEOUT,
) -> bool:
    """POST payload to a Slack incoming webhook. Single retry on timeout/connection error."""
    if not webhook_url:
        logger.debug("Slack not configured, skipping notification")
        return False

    for attempt in range(2):
        try:
            response = requests.post(webhook_url, json=payload, timeout=timeout)
            response.raise_for_status()
            logger.debug("Slack notification sent successfully")
            return True
        except requests.Timeout:
            if attempt == 0:
                logger.warning("Slack notification timed out, retrying...")
                continue
            logger.warning("Slack notification timed out after retry")
            return False
        except requests.ConnectionError:
            if attempt == 0:
                logger.warning("Slack connection error, retrying...")
                continue
            logger.warning("Slack connection error after retry")
            return False
        except requests.RequestException as e:
            logger.warning(f"Slack notification failed: {e}")
            return False

    return False


def send_telegram_message(
    message: str,
    bot_token: str,
    chat_id: str,
    timeout: int = REQUEST_TIMEOUT,
) -> bool:
    """Send message via Telegram Bot API. Single retry on timeout/connection error."""
    if not bot_token or not chat_id:
        logger.debug("Telegram not configured, skipping notification")
        return False

    url = f"https://api.telegram.org/bot{bot_token}/sendMessage"
    payload = {
        "chat_id": chat_id,
        "text": message,
        "parse_mode": "Markdown",
    }

    for attempt in range(2):
        try:
            response = requests.post(url, json=payload, timeout=timeout)
            response.raise_for_status()
            logger.debug("Telegram notification sent successfully")
            return True
        except requests.Timeout:
            if attempt == 0:
                logger.warning("Telegram notification timed out, retrying...")
                continue
            logger.warning("Telegram notification timed out after retry")
            return False
        except requests.ConnectionError:
            if attempt == 0:
                logger.warning("Telegram connection error, retrying...")
                continue
            logger.warning("Telegram connection error after retry")
            return False
        except requests.RequestException as e:
            logger.warning(f"Telegram notification failed: {e}")
            return False

    return False


def send_desktop_notification(title: str, message: str, timeout: int = REQUEST_TIMEOUT) -> bool:
    """Show a local notification via osascript (macOS) or notify-send (Linux)."""
    if sys.platform == "darwin" and shutil.which("osascript"):
        script = (
            f'display notification "{_escape(message)}" '
            f'with title "{_escape(title)}" sound name "Glass"'
        )
        cmd = ["osascript", "-e", script]
    elif shutil.which("notify-send"):
        cmd = ["notify-send", title, message]
    else:
        logger.debug("No desktop notifier available, skipping notification")
        return False

    try:
        result = subprocess.run(cmd, capture_output=True, timeout=timeout)
    except (subprocess.TimeoutExpired, OSError) as e:
        logger.warning(f"Desktop notification failed: {e}")
        return False
    return result.returncode == 0


# =============================================================================
# Message formatting
# =============================================================================


def build_slack_payload(event: Event, ctx: NotificationContext) -> dict[str, Any]:
    """Slack Block Kit payload: compact line per iteration, field grid otherwise."""
    emoji, _, color = EVENT_STYLES[event]

    if event in PER_ITERATION_EVENTS:
        status = "started" if event == Event.ITERATION_STARTED else "completed"
        text = (
            f"{emoji} *Iteration {ctx.iterations} {status}* | `{ctx.project}` "
            f"on `{ctx.branch}` | Mode: `{ctx.mode}`"
        )
        return {
            "username": "Ralph",
            "attachments": [
                {
                    "color": color,
                    "blocks": [{"type": "section", "text": {"type": "mrkdwn", "text": text}}],
                }
            ],
        }

    fields = [
        ("Project", f"`{ctx.project}`"),
        ("Branch", f"`{ctx.branch}`"),
        ("Mode", f"`{ctx.mode}`"),
        ("Duration", ctx.duration),
        ("Iterations", str(ctx.iterations)),
        ("Commits", str(ctx.commits)),
        ("Commit", f"`{ctx.last_revision}`"),
    ]
    blocks: list[dict[str, Any]] = [
        {
            "type": "header",
            "text": {"type": "plain_text", "text": ctx.title(event), "emoji": True},
        },
        {
            "type": "section",
            "fields": [{"type": "mrkdwn", "text": f"*{name}:*\n{value}"} for name, value in fields],
        },
    ]
    if ctx.detail:
        blocks.append({"type": "section", "text": {"type": "mrkdwn", "text": ctx.detail}})

    return {"username": "Ralph", "blocks": blocks, "attachments": [{"color": color}]}


def format_telegram_message(event: Event, ctx: NotificationContext) -> str:
    """Markdown message for Telegram."""
    lines = [
        f"*{ctx.title(event)}*",
        "",
        f"*Project:* `{ctx.project}`",
        f"*Branch:* `{ctx.branch}`",
        f"*Mode:* `{ctx.mode}`",
        f"*Iterations:* {ctx.iterations}",
        f"*Commits:* {ctx.commits}",
        f"*Duration:* {ctx.duration}",
        f"*Commit:* `{ctx.last_revision}`",
    ]
    if ctx.detail:
        detail = ctx.detail[:500] + "..." if len(ctx.detail) > 500 else ctx.detail
        lines.extend(["", detail])
    return "\n".join(lines)


def format_desktop_message(event: Event, ctx: NotificationContext) -> str:
    """One-line summary for desktop notifications."""
    reason = event.value.replace("_", " ")
    return f"{ctx.project}: {reason} after {ctx.iterations} iterations ({ctx.commits} commits)"


# =============================================================================
# Channels and dispatch
# =============================================================================


def slack_channel(webhook_url: str) -> Channel:
    def send(event: Event, ctx: NotificationContext) -> bool:
        return send_slack_message(webhook_url, build_slack_payload(event, ctx))

    return send


def telegram_channel(bot_token: str, chat_id: str) -> Channel:
    def send(event: Event, ctx: NotificationContext) -> bool:
        return send_telegram_message(format_telegram_message(event, ctx), bot_token, chat_id)

    return send


def desktop_channel() -> Channel:
    """Desktop popups only for the end of a session."""

    def send(event: Event, ctx: NotificationContext) -> bool:
        if event not in TERMINAL_EVENTS:
            return False
        return send_desktop_notification("Ralph", format_desktop_message(event, ctx))

    return send


class NotificationDispatcher:
    """Fans events out to independent, best-effort channels."""

    def __init__(
        self,
        channels: dict[str, Channel] | None = None,
        notify_per_iteration: bool = False,
    ) -> None:
        self.channels = dict(channels or {})
        self.notify_per_iteration = notify_per_iteration

    @classmethod
    def from_settings(
        cls,
        slack_webhook_url: str = "",
        telegram_bot_token: str = "",
        telegram_chat_id: str = "",
        desktop: bool = False,
        notify_per_iteration: bool = False,
    ) -> "NotificationDispatcher":
        channels: dict[str, Channel] = {}
        if slack_webhook_url:
            channels["slack"] = slack_channel(slack_webhook_url)
        if telegram_bot_token and telegram_chat_id:
            channels["telegram"] = telegram_channel(telegram_bot_token, telegram_chat_id)
        if desktop:
            channels["desktop"] = desktop_channel()
        return cls(channels, notify_per_iteration=notify_per_iteration)

    def should_send(self, event: Event) -> bool:
        return event not in PER_ITERATION_EVENTS or self.notify_per_iteration

    def notify(self, event: Event, ctx: NotificationContext) -> dict[str, bool]:
        """Deliver event to every channel. Returns per-channel delivery results."""
        if not self.should_send(event):
            return {}

        results: dict[str, bool] = {}
        for name, channel in self.channels.items():
            try:
                results[name] = channel(event, ctx)
            except Exception as e:
                logger.warning(f"Notification channel '{name}' failed for {event.value}: {e}")
                results[name] = False
        return results


def _escape(text: str) -> str:
    return text.replace("\\", "\\\\").replace('"', '\\"')
