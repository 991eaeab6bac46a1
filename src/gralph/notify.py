"""Webhook notifications for finished loops.

The payload shape follows the destination, detected from the URL:
Discord embeds, Slack attachments with blocks, or a flat generic JSON
object for anything else.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

import httpx

from gralph.common.logging import log_success, log_warning
from gralph.common.time_utils import format_duration, now_utc
from gralph.errors import WebhookError

DEFAULT_TIMEOUT = 30.0

DISCORD = "discord"
SLACK = "slack"
GENERIC = "generic"

_FOOTER = "Gralph CLI"
_COLOR_SUCCESS_DISCORD = 5763719
_COLOR_FAILURE_DISCORD = 15548997
_COLOR_SUCCESS_SLACK = "#57F287"
_COLOR_FAILURE_SLACK = "#ED4245"


def detect_webhook_type(url: str) -> str:
    lower = url.lower()
    if "discord.com/api/webhooks" in lower or "discordapp.com/api/webhooks" in lower:
        return DISCORD
    if "hooks.slack.com" in lower:
        return SLACK
    return GENERIC


def _number(value: int) -> str:
    return str(value) if value > 0 else "unknown"


def _or_unknown(value: str) -> str:
    return value.strip() or "unknown"


def _failed_description(reason: str, session: str, slack: bool) -> str:
    mark = "*" if slack else "**"
    label = f"{mark}{session}{mark}"
    if reason == "max_iterations":
        return f"Session {label} hit maximum iterations limit."
    if reason == "error":
        return f"Session {label} encountered an error."
    if reason == "manual_stop":
        return f"Session {label} was manually stopped."
    return f"Session {label} failed: {reason}"


def _failed_message(reason: str, session: str, iterations: str, max_iterations: str, remaining: str) -> str:
    if reason == "max_iterations":
        return (
            f"Gralph loop '{session}' failed: hit max iterations "
            f"({iterations}/{max_iterations}) with {remaining} tasks remaining"
        )
    if reason == "error":
        return f"Gralph loop '{session}' failed due to an error after {iterations} iterations"
    if reason == "manual_stop":
        return (
            f"Gralph loop '{session}' was manually stopped after {iterations} "
            f"iterations with {remaining} tasks remaining"
        )
    return f"Gralph loop '{session}' failed: {reason} after {iterations} iterations"


def _discord(title: str, description: str, color: int, fields: list[tuple[str, str, bool]], timestamp: str) -> dict[str, Any]:
    return {
        "embeds": [
            {
                "title": title,
                "description": description,
                "color": color,
                "fields": [
                    {"name": name, "value": value, "inline": inline}
                    for name, value, inline in fields
                ],
                "footer": {"text": _FOOTER},
                "timestamp": timestamp,
            }
        ]
    }


def _slack(title: str, description: str, color: str, fields: list[tuple[str, str]], timestamp: str) -> dict[str, Any]:
    return {
        "attachments": [
            {
                "color": color,
                "blocks": [
                    {
                        "type": "header",
                        "text": {"type": "plain_text", "text": title, "emoji": True},
                    },
                    {"type": "section", "text": {"type": "mrkdwn", "text": description}},
                    {
                        "type": "section",
                        "fields": [
                            {"type": "mrkdwn", "text": f"*{name}:*\n{value}"}
                            for name, value in fields
                        ],
                    },
                    {
                        "type": "context",
                        "elements": [
                            {"type": "mrkdwn", "text": f"{_FOOTER} • {timestamp}"}
                        ],
                    },
                ],
            }
        ]
    }


def build_complete_payload(
    webhook_url: str,
    session: str,
    project_dir: str,
    iterations: int,
    duration: float,
    now: datetime | None = None,
) -> dict[str, Any]:
    project = _or_unknown(project_dir)
    iters = _number(iterations)
    took = format_duration(duration)
    timestamp = (now or now_utc()).isoformat(timespec="seconds")
    title = "✅ Gralph Complete"

    kind = detect_webhook_type(webhook_url)
    if kind == DISCORD:
        return _discord(
            title,
            f"Session **{session}** has finished all tasks successfully.",
            _COLOR_SUCCESS_DISCORD,
            [("Project", f"`{project}`", False), ("Iterations", iters, True), ("Duration", took, True)],
            timestamp,
        )
    if kind == SLACK:
        return _slack(
            title,
            f"Session *{session}* has finished all tasks successfully.",
            _COLOR_SUCCESS_SLACK,
            [("Project", f"`{project}`"), ("Iterations", iters), ("Duration", took)],
            timestamp,
        )
    return {
        "event": "complete",
        "status": "success",
        "session": session,
        "project": project,
        "iterations": iters,
        "duration": took,
        "timestamp": timestamp,
        "message": f"Gralph loop '{session}' completed successfully after {iters} iterations ({took})",
    }


def build_failed_payload(
    webhook_url: str,
    session: str,
    reason: str,
    project_dir: str,
    iterations: int,
    max_iterations: int,
    remaining: int,
    duration: float,
    now: datetime | None = None,
) -> dict[str, Any]:
    project = _or_unknown(project_dir)
    reason = _or_unknown(reason)
    iters = _number(iterations)
    max_iters = _number(max_iterations)
    left = _number(remaining)
    took = format_duration(duration)
    timestamp = (now or now_utc()).isoformat(timespec="seconds")
    title = "❌ Gralph Failed"

    kind = detect_webhook_type(webhook_url)
    if kind == DISCORD:
        return _discord(
            title,
            _failed_description(reason, session, slack=False),
            _COLOR_FAILURE_DISCORD,
            [
                ("Project", f"`{project}`", False),
                ("Reason", reason, True),
                ("Iterations", f"{iters}/{max_iters}", True),
                ("Remaining Tasks", left, True),
                ("Duration", took, True),
            ],
            timestamp,
        )
    if kind == SLACK:
        return _slack(
            title,
            _failed_description(reason, session, slack=True),
            _COLOR_FAILURE_SLACK,
            [
                ("Project", f"`{project}`"),
                ("Reason", reason),
                ("Iterations", f"{iters}/{max_iters}"),
                ("Remaining Tasks", left),
                ("Duration", took),
            ],
            timestamp,
        )
    return {
        "event": "failed",
        "status": "failure",
        "session": session,
        "project": project,
        "reason": reason,
        "iterations": iters,
        "max_iterations": max_iters,
        "remaining_tasks": left,
        "duration": took,
        "timestamp": timestamp,
        "message": _failed_message(reason, session, iters, max_iters, left),
    }


def send_webhook(url: str, payload: dict[str, Any], timeout: float = DEFAULT_TIMEOUT) -> None:
    """POST *payload* as JSON.

    Raises:
        WebhookError: Transport failure or a non-2xx response.
    """
    if not url.strip():
        raise WebhookError("webhook URL is required")
    try:
        with httpx.Client(timeout=timeout) as client:
            response = client.post(url, json=payload)
    except httpx.HTTPError as exc:
        raise WebhookError(f"send webhook: {exc}") from exc
    if not response.is_success:
        raise WebhookError(f"webhook returned HTTP {response.status_code}")


def notify_complete(webhook_url: str, session: str, project_dir: str, iterations: int, duration: float) -> bool:
    """Send a completion notification. Failures are logged, not raised."""
    if not webhook_url.strip():
        return False
    payload = build_complete_payload(webhook_url, session, project_dir, iterations, duration)
    try:
        send_webhook(webhook_url, payload)
    except WebhookError as exc:
        log_warning(f"Completion notification for '{session}' failed: {exc}")
        return False
    log_success(f"Sent completion notification for '{session}'")
    return True


def notify_failed(
    webhook_url: str,
    session: str,
    reason: str,
    project_dir: str,
    iterations: int,
    max_iterations: int,
    remaining: int,
    duration: float,
) -> bool:
    """Send a failure notification. Failures are logged, not raised."""
    if not webhook_url.strip():
        return False
    payload = build_failed_payload(
        webhook_url, session, reason, project_dir, iterations, max_iterations, remaining, duration
    )
    try:
        send_webhook(webhook_url, payload)
    except WebhookError as exc:
        log_warning(f"Failure notification for '{session}' failed: {exc}")
        return False
    log_success(f"Sent failure notification for '{session}' ({reason})")
    return True
