"""Web dashboard API for a running workforce."""

import json
from contextlib import asynccontextmanager

import uvicorn
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import HTMLResponse, JSONResponse
from starlette.routing import Route

from workforce.core.errors import (
    DestroyedError,
    InvalidParentError,
    InvalidStateError,
    NotFoundError,
    WorkforceError,
)
from workforce.core.models import ROOT_TASK_ID, TaskSpec, event_to_dict, task_to_dict
from workforce.core.pseudo_tools import PSEUDO_TOOL_INFOS
from workforce.core.workforce import Workforce, build_workforce, task_tree
from workforce.web.dashboard import get_dashboard_html

ERROR_STATUS = {
    NotFoundError: 404,
    InvalidParentError: 400,
    InvalidStateError: 409,
    DestroyedError: 410,
}


def _wf(request: Request) -> Workforce:
    return request.app.state.workforce


def _error(e: Exception) -> JSONResponse:
    status = ERROR_STATUS.get(type(e), 400)
    return JSONResponse({"error": str(e)}, status_code=status)


async def _body(request: Request) -> dict:
    try:
        body = await request.json()
    except json.JSONDecodeError as e:
        raise ValueError(f"Request body is not valid JSON: {e}") from e
    if not isinstance(body, dict):
        raise ValueError("Request body must be a JSON object")
    return body


# ── Handlers ──────────────────────────────────────────────────────────────────


async def index(request: Request):
    return HTMLResponse(get_dashboard_html())


async def api_list_tasks(request: Request):
    wf = _wf(request)
    return JSONResponse([task_tree(wf, task_id) for task_id in wf.get_child_task_ids()])


async def api_create_tasks(request: Request):
    try:
        body = await _body(request)
        specs = [_spec_from_dict(item) for item in body.get("tasks") or []]
        if not specs:
            raise ValueError("'tasks' must be a non-empty list")
        task_ids = _wf(request).create_tasks(specs)
    except (WorkforceError, ValueError) as e:
        return _error(e)
    return JSONResponse({"task_ids": task_ids}, status_code=201)


async def api_get_task(request: Request):
    task_id = request.path_params["task_id"]
    wf = _wf(request)
    try:
        td = task_to_dict(wf.get_task(task_id), detail=True)
        td["children"] = wf.get_child_task_ids(task_id)
    except NotFoundError as e:
        return _error(e)
    return JSONResponse(td)


async def api_task_children(request: Request):
    task_id = request.path_params["task_id"]
    try:
        return JSONResponse(_wf(request).get_child_task_ids(task_id))
    except NotFoundError as e:
        return _error(e)


async def api_append_message(request: Request):
    task_id = request.path_params["task_id"]
    try:
        body = await _body(request)
        content = body.get("content")
        if not isinstance(content, str) or not content:
            raise ValueError("'content' is required")
        message_id = _wf(request).append_message(task_id, content)
    except (WorkforceError, ValueError) as e:
        return _error(e)
    return JSONResponse({"message_id": message_id}, status_code=201)


async def api_cancel(request: Request):
    try:
        body = await _body(request)
        task_ids = body.get("task_ids")
        if not isinstance(task_ids, list):
            raise ValueError("'task_ids' must be a list")
        cancelled = _wf(request).cancel_tasks(task_ids)
    except (WorkforceError, ValueError) as e:
        return _error(e)
    return JSONResponse({"cancelled": cancelled})


async def api_summary(request: Request):
    return JSONResponse(_wf(request).summary())


async def api_events(request: Request):
    try:
        after = int(request.query_params.get("after", 0))
        limit = request.query_params.get("limit")
        limit = int(limit) if limit else None
    except ValueError:
        return JSONResponse({"error": "'after' and 'limit' must be integers"}, status_code=400)

    wf = _wf(request)
    if request.query_params.get("detail"):
        events = wf.recent_task_detail_events(after, limit)
    else:
        events = wf.recent_task_events(after, limit)
    return JSONResponse([event_to_dict(e) for e in events])


async def api_tools(request: Request):
    infos = [*_wf(request).config.tool_executor.tool_infos(), *PSEUDO_TOOL_INFOS]
    return JSONResponse([
        {"name": info.name, "description": info.description, "parameters": info.parameter_schema}
        for info in infos
    ])


# ── Serialization ─────────────────────────────────────────────────────────────


def _spec_from_dict(data) -> TaskSpec:
    if not isinstance(data, dict):
        raise ValueError("Each task must be a JSON object")
    return TaskSpec(
        title=str(data.get("title") or ""),
        goal=str(data.get("goal") or ""),
        id=data.get("id"),
        parent_id=data.get("parent_id") or ROOT_TASK_ID,
    )


# ── App ───────────────────────────────────────────────────────────────────────


def create_app(workforce: Workforce | None = None) -> Starlette:
    """Build the app around a workforce.

    Without one, a workforce is built from the environment on startup and
    destroyed on shutdown.
    """

    @asynccontextmanager
    async def lifespan(app: Starlette):
        owned = app.state.workforce is None
        if owned:
            app.state.workforce = build_workforce()
        try:
            yield
        finally:
            if owned:
                app.state.workforce.destroy()

    routes = [
        Route("/", index),
        Route("/api/tasks", api_list_tasks, methods=["GET"]),
        Route("/api/tasks", api_create_tasks, methods=["POST"]),
        Route("/api/tasks/{task_id}", api_get_task),
        Route("/api/tasks/{task_id}/children", api_task_children),
        Route("/api/tasks/{task_id}/messages", api_append_message, methods=["POST"]),
        Route("/api/cancel", api_cancel, methods=["POST"]),
        Route("/api/summary", api_summary),
        Route("/api/events", api_events),
        Route("/api/tools", api_tools),
    ]
    app = Starlette(routes=routes, lifespan=lifespan)
    app.state.workforce = workforce
    return app


def run_server(host: str = "127.0.0.1", port: int = 8787, workforce: Workforce | None = None):
    app = create_app(workforce)
    uvicorn.run(app, host=host, port=port)
