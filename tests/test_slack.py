"""Tests for Slack notifications."""

from unittest.mock import MagicMock, patch

import pytest

from workforce.core.models import ROOT_TASK_ID, TaskEvent, TaskEventType, TaskSpec
from workforce.integrations import slack as slack_mod


@pytest.fixture
def client():
    mock_client = MagicMock()
    mock_client.chat_postMessage.return_value = {"channel": "C123", "ts": "1700000000.0001"}
    with patch("workforce.integrations.slack.get_client", return_value=mock_client):
        yield mock_client


class TestSendMessage:
    def test_no_token(self):
        assert slack_mod.get_client(None) is None
        with pytest.raises(slack_mod.SlackError, match="SLACK_BOT_TOKEN"):
            slack_mod.send_message(None, "#general", "hi")

    def test_send(self, client):
        result = slack_mod.send_message("xoxb-test", "#general", "hi")
        assert result == slack_mod.SlackMessage(channel="C123", ts="1700000000.0001", text="hi")
        client.chat_postMessage.assert_called_once_with(channel="#general", text="hi", blocks=None)

    def test_real_client_is_created_lazily(self):
        with patch("slack_sdk.WebClient") as web_client:
            slack_mod.get_client("xoxb-test")
        web_client.assert_called_once_with(token="xoxb-test")


class TestFormatting:
    def test_succeeded(self):
        [block] = slack_mod.format_task_notification("ship", "Ship it", "succeeded", "Released 2.0")
        text = block["text"]["text"]
        assert ":white_check_mark:" in text
        assert "*Ship it* (`ship`)" in text
        assert "Released 2.0" in text

    def test_detail_is_truncated(self):
        [block] = slack_mod.format_task_notification("a", "A", "failed", "x" * 500)
        assert block["text"]["text"].count("x") == 200


class TestSlackNotifier:
    def test_notifies_top_level_outcomes_only(self, client, wf, factory):
        notifier = slack_mod.SlackNotifier("xoxb-test", "#builds")
        notifier.attach(wf)

        wf.create_tasks([TaskSpec(title="Release")])
        factory.live("release").breakdown("Build")
        factory.live("build").succeed("built")
        factory.live("release").succeed("shipped")
        notifier.close()

        client.chat_postMessage.assert_called_once()
        kwargs = client.chat_postMessage.call_args.kwargs
        assert kwargs["channel"] == "#builds"
        assert kwargs["text"] == "Task succeeded: Release (release)"
        assert "shipped" in kwargs["blocks"][0]["text"]["text"]

    def test_cancellation_reason(self, client, wf):
        notifier = slack_mod.SlackNotifier("xoxb-test", "#builds")
        notifier.attach(wf)
        wf.create_tasks([TaskSpec(title="Release")])
        wf.cancel_tasks(["release"])
        notifier.close()

        text = client.chat_postMessage.call_args.kwargs["blocks"][0]["text"]["text"]
        assert ":no_entry_sign:" in text
        assert "cancelled" in text

    def test_send_failure_is_logged(self, client, wf, factory, caplog):
        client.chat_postMessage.side_effect = RuntimeError("slack down")
        notifier = slack_mod.SlackNotifier("xoxb-test", "#builds")
        notifier.attach(wf)
        wf.create_tasks([TaskSpec(title="Release")])
        factory.live("release").fail("nope")
        notifier.close()

        assert wf.get_task("release").error == "nope"
        assert "Failed to send Slack notification for task release" in caplog.text

    def test_forgets_tasks_once_reported(self, client):
        notifier = slack_mod.SlackNotifier("xoxb-test", "#builds")
        created = {"title": "Release", "parent_id": ROOT_TASK_ID}
        notifier.on_task_event(TaskEvent(TaskEventType.CREATED, "release", created))
        notifier.on_task_event(TaskEvent(TaskEventType.CREATED, "build", {"title": "Build", "parent_id": "release"}))
        assert notifier._titles == {"release": "Release"}

        done = TaskEvent(TaskEventType.SUCCEEDED, "release", {"conclusion": "shipped"})
        notifier.on_task_event(done)
        notifier.on_task_event(done)
        notifier.close()

        assert notifier._titles == {}
        client.chat_postMessage.assert_called_once()
