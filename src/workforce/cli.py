"""CLI entry point for the workforce."""

import json
import logging
import sys

import click

from workforce.config import get_config
from workforce.core.models import TaskEvent, TaskSpec, TaskStatus
from workforce.core.pseudo_tools import PSEUDO_TOOL_INFOS
from workforce.core.workforce import Workforce, build_workforce, task_tree
from workforce.integrations import slack as slack_mod
from workforce.sessions.factory import SESSION_TYPES

STATUS_ICONS = {
    "ready": "○",
    "pending": "◐",
    "processing": "●",
    "succeeded": "✓",
    "failed": "✗",
    "cancelled": "⊘",
}


@click.group()
def main():
    """wf - Workforce CLI"""
    config = get_config()
    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


# ── Run Command ───────────────────────────────────────────────────────────────


@main.command("run")
@click.argument("title")
@click.option("--goal", "-g", default="", help="What the task should accomplish")
@click.option("--max-agents", default=None, type=int, help="Agent slots (default: WF_MAX_AGENTS)")
@click.option("--session", default=None, type=click.Choice(SESSION_TYPES),
              help="Session type (default: WF_SESSION)")
@click.option("--timeout", default=None, type=float, help="Give up after this many seconds")
@click.option("--json-output", "--json", is_flag=True, help="Output the final tree as JSON")
def run_command(title, goal, max_agents, session, timeout, json_output):
    """Run a task to completion and print the resulting task tree."""
    config = get_config()
    try:
        wf = build_workforce(config, max_agents=max_agents, session=session)
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    notifier = None
    if config.slack_bot_token and config.slack_channel:
        notifier = slack_mod.SlackNotifier(config.slack_bot_token, config.slack_channel)
        notifier.attach(wf)
    if not json_output:
        wf.subscribe_task_event(_echo_event)

    try:
        task_id = wf.create_tasks([TaskSpec(title=title, goal=goal)])[0]
        finished = wf.wait_until_idle(timeout)
        if not finished:
            click.echo(f"Timed out after {timeout}s; cancelling open tasks", err=True)
            wf.destroy()

        if json_output:
            click.echo(json.dumps(task_tree(wf, task_id), indent=2))
        else:
            click.echo("")
            _echo_tree(wf, task_id)
        status = wf.get_task_status(task_id)
    finally:
        wf.destroy()
        if notifier:
            notifier.close()

    if not finished or status is not TaskStatus.SUCCEEDED:
        sys.exit(1)


@main.command("tools")
@click.option("--json-output", "--json", is_flag=True, help="Output as JSON")
def tools_command(json_output):
    """List the reserved tools every worker agent gets."""
    if json_output:
        click.echo(json.dumps([
            {"name": t.name, "description": t.description, "parameters": t.parameter_schema}
            for t in PSEUDO_TOOL_INFOS
        ], indent=2))
        return

    for tool in PSEUDO_TOOL_INFOS:
        click.echo(f"{tool.name}")
        click.echo(f"  {tool.description}")
        required = tool.parameter_schema.get("required", [])
        click.echo(f"  Parameters: {', '.join(required)}")


# ── Slack Commands ────────────────────────────────────────────────────────────


@main.group("slack")
def slack_group():
    """Slack integration commands."""
    pass


@slack_group.command("send")
@click.argument("channel")
@click.argument("message")
def slack_send(channel, message):
    """Send a message to a Slack channel."""
    config = get_config()
    try:
        result = slack_mod.send_message(config.slack_bot_token, channel, message)
        click.echo(f"Message sent to {result.channel} (ts: {result.ts})")
    except slack_mod.SlackError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


# ── Dashboard Command ────────────────────────────────────────────────────────


@main.command("ui")
@click.option("--host", default=None, help="Host to bind to (default: WF_HOST)")
@click.option("--port", default=None, type=int, help="Port to listen on (default: WF_PORT)")
@click.option("--open/--no-open", default=True, help="Open browser automatically")
def ui_command(host, port, open):
    """Launch the web dashboard with a fresh workforce."""
    import webbrowser

    from workforce.web.app import run_server

    config = get_config()
    host = host or config.host
    port = port or config.port
    url = f"http://{host}:{port}"
    click.echo(f"Starting dashboard at {url}")
    if open:
        webbrowser.open(url)
    run_server(host=host, port=port)


# ── MCP Server Command ───────────────────────────────────────────────────────


@main.group("mcp")
def mcp_group():
    """MCP server commands."""
    pass


@mcp_group.command("serve")
def mcp_serve():
    """Start the MCP server (stdio transport)."""
    from workforce.mcp.server import mcp

    mcp.run(transport="stdio")


# ── Helpers ───────────────────────────────────────────────────────────────────


def _echo_event(event: TaskEvent):
    payload = event.payload
    extra = payload.get("conclusion") or payload.get("error") or payload.get("reason") or ""
    if not extra and "title" in payload:
        extra = payload["title"]
    click.echo(f"[{event.seq}] {event.event_type.value} {event.task_id}" + (f": {extra}" if extra else ""))


def _echo_tree(wf: Workforce, task_id: str, depth: int = 0):
    task = wf.get_task(task_id)
    icon = STATUS_ICONS.get(task.status.value, "?")
    outcome = task.result or task.error
    line = f"{'  ' * (depth + 1)}{icon} {task.id}: {task.title} ({task.status.value})"
    if outcome:
        line += f" - {outcome}"
    click.echo(line)
    for child_id in wf.get_child_task_ids(task_id):
        _echo_tree(wf, child_id, depth + 1)


if __name__ == "__main__":
    main()
