"""MCP server exposing a workforce to an orchestrating client."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

from mcp.server.fastmcp import Context, FastMCP

from workforce.config import Config, get_config
from workforce.core.errors import WorkforceError
from workforce.core.models import ROOT_TASK_ID, TaskSpec, event_to_dict, task_to_dict
from workforce.core.workforce import Workforce, build_workforce
from workforce.integrations.slack import SlackNotifier

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    workforce: Workforce
    config: Config
    notifier: SlackNotifier | None = None


@asynccontextmanager
async def app_lifespan(server: FastMCP) -> AsyncIterator[AppContext]:
    """Start a workforce on startup, destroy it on shutdown."""
    config = get_config()
    workforce = build_workforce(config)

    notifier = None
    if config.slack_bot_token and config.slack_channel:
        notifier = SlackNotifier(config.slack_bot_token, config.slack_channel)
        notifier.attach(workforce)
    logger.info("Workforce started (max_agents=%d, session=%s)", config.max_agents, config.session)

    try:
        yield AppContext(workforce=workforce, config=config, notifier=notifier)
    finally:
        workforce.destroy()
        if notifier:
            notifier.close()


mcp = FastMCP("workforce", lifespan=app_lifespan)


def _ctx(ctx: Context) -> AppContext:
    """Extract AppContext from MCP Context."""
    return ctx.request_context.lifespan_context


def _wf(ctx: Context) -> Workforce:
    return _ctx(ctx).workforce


# ── Task Tools ────────────────────────────────────────────────────────────────


@mcp.tool()
def create_tasks(ctx: Context, tasks: list[dict]) -> dict:
    """Create tasks. Each dict needs a 'title' and may have 'goal', 'id' and 'parent_id'.

    Tasks without 'parent_id' are top-level. A parent may be created earlier in the same list.
    """
    try:
        specs = [
            TaskSpec(
                title=item.get("title", ""),
                goal=item.get("goal", ""),
                id=item.get("id"),
                parent_id=item.get("parent_id") or ROOT_TASK_ID,
            )
            for item in tasks
        ]
        return {"task_ids": _wf(ctx).create_tasks(specs)}
    except (WorkforceError, ValueError) as e:
        return {"error": str(e)}


@mcp.tool()
def cancel_tasks(ctx: Context, task_ids: list[str]) -> dict:
    """Cancel tasks together with all their unfinished subtasks."""
    try:
        return {"cancelled": _wf(ctx).cancel_tasks(task_ids)}
    except WorkforceError as e:
        return {"error": str(e)}


@mcp.tool()
def append_message(ctx: Context, task_id: str, content: str) -> dict:
    """Send supplementary information to a task's agent (queued until it starts)."""
    try:
        return {"message_id": _wf(ctx).append_message(task_id, content)}
    except WorkforceError as e:
        return {"error": str(e)}


@mcp.tool()
def get_task(ctx: Context, task_id: str) -> dict:
    """Get full details of a task, including messages and tool calls of its agent."""
    wf = _wf(ctx)
    try:
        td = task_to_dict(wf.get_task(task_id), detail=True)
        td["children"] = wf.get_child_task_ids(task_id)
    except WorkforceError as e:
        return {"error": str(e)}
    return td


@mcp.tool()
def list_tasks(ctx: Context, status: str | None = None) -> list[dict]:
    """List all tasks in creation order, optionally filtered by status."""
    wf = _wf(ctx)
    tasks = [wf.get_task(task_id) for task_id in wf.get_all_task_ids()]
    return [task_to_dict(t) for t in tasks if status is None or t.status.value == status]


@mcp.tool()
def get_child_task_ids(ctx: Context, task_id: str = ROOT_TASK_ID) -> dict:
    """List the direct subtasks of a task. Defaults to the top-level tasks."""
    try:
        return {"task_id": task_id, "children": _wf(ctx).get_child_task_ids(task_id)}
    except WorkforceError as e:
        return {"error": str(e)}


@mcp.tool()
def workforce_summary(ctx: Context) -> dict:
    """Task counts by status and agent slot usage."""
    return _wf(ctx).summary()


@mcp.tool()
def recent_events(ctx: Context, after: int = 0, limit: int = 100, detail: bool = False) -> list[dict]:
    """Task events with a sequence number greater than 'after'.

    Set 'detail' for agent-level events (messages, stream chunks, tool calls).
    """
    wf = _wf(ctx)
    if detail:
        events = wf.recent_task_detail_events(after, limit)
    else:
        events = wf.recent_task_events(after, limit)
    return [event_to_dict(e) for e in events]

