"""Slack Web API integration: notifications for finished top-level tasks."""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass

from workforce.core.models import ROOT_TASK_ID, TaskEvent, TaskEventType

logger = logging.getLogger(__name__)

TERMINAL_EVENTS = {
    TaskEventType.SUCCEEDED: "succeeded",
    TaskEventType.FAILED: "failed",
    TaskEventType.CANCELLED: "cancelled",
}


class SlackError(Exception):
    """Raised when a Slack operation fails."""


@dataclass
class SlackMessage:
    channel: str
    ts: str
    text: str


def get_client(token: str | None):
    """Get a Slack WebClient. Returns None if no token provided."""
    if not token:
        return None
    from slack_sdk import WebClient
    return WebClient(token=token)


def send_message(
    token: str | None,
    channel: str,
    text: str,
    blocks: list[dict] | None = None,
) -> SlackMessage:
    """Send a message to a Slack channel."""
    client = get_client(token)
    if not client:
        raise SlackError("Slack not configured: SLACK_BOT_TOKEN not set")

    response = client.chat_postMessage(
        channel=channel,
        text=text,
        blocks=blocks,
    )

    return SlackMessage(
        channel=response["channel"],
        ts=response["ts"],
        text=text,
    )


def format_task_notification(task_id: str, title: str, status: str, detail: str | None = None) -> list[dict]:
    """Format a task outcome as Slack blocks."""
    status_emoji = {
        "succeeded": ":white_check_mark:",
        "failed": ":x:",
        "cancelled": ":no_entry_sign:",
    }
    emoji = status_emoji.get(status, ":grey_question:")
    text = f"{emoji} *Task {status}*\n*{title}* (`{task_id}`)"
    if detail:
        text += f"\n{detail[:200]}"

    return [
        {
            "type": "section",
            "text": {"type": "mrkdwn", "text": text},
        }
    ]


class SlackNotifier:
    """Posts the outcome of every top-level task to a Slack channel.

    Messages are sent from a background thread so the scheduler never waits
    on Slack. Failures are logged and otherwise ignored.
    """

    def __init__(self, token: str | None, channel: str):
        self.token = token
        self.channel = channel
        # Titles of open top-level tasks, dropped once their outcome is posted.
        self._titles: dict[str, str] = {}
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="wf-slack")

    def attach(self, workforce):
        """Subscribe to a workforce's task events. Returns the unsubscribe callable."""
        return workforce.subscribe_task_event(self.on_task_event)

    def on_task_event(self, event: TaskEvent):
        if event.event_type is TaskEventType.CREATED:
            if event.payload.get("parent_id") == ROOT_TASK_ID:
                self._titles[event.task_id] = event.payload.get("title", event.task_id)
            return

        status = TERMINAL_EVENTS.get(event.event_type)
        if status is None or event.task_id not in self._titles:
            return
        title = self._titles.pop(event.task_id)
        detail = (
            event.payload.get("conclusion")
            or event.payload.get("error")
            or event.payload.get("reason")
        )
        self._executor.submit(self._send, event.task_id, title, status, detail)

    def _send(self, task_id: str, title: str, status: str, detail: str | None):
        try:
            send_message(
                self.token,
                self.channel,
                f"Task {status}: {title} ({task_id})",
                blocks=format_task_notification(task_id, title, status, detail),
            )
        except Exception:
            logger.exception("Failed to send Slack notification for task %s", task_id)

    def close(self, wait: bool = True):
        self._executor.shutdown(wait=wait)
