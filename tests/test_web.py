"""Tests for the web dashboard API."""

import pytest
from starlette.testclient import TestClient

from workforce.core.models import TaskSpec
from workforce.core.toolkit import ToolDefinition, Toolkit
from workforce.web.app import create_app


@pytest.fixture
def web_env(make_workforce, factory):
    """A client over a workforce with one broken-down task and one waiting task."""
    toolkit = Toolkit([ToolDefinition("search", "Search the docs", lambda a: "[]")])
    wf = make_workforce(max_agents=2, toolkit=toolkit)
    wf.create_tasks([
        TaskSpec(title="Build API", goal="REST endpoints"),
        TaskSpec(title="Write docs"),
    ])
    factory.live("build-api").breakdown("Auth endpoint")
    client = TestClient(create_app(wf))
    return client, wf


class TestDashboardPage:
    def test_index_returns_html(self, web_env):
        client, _ = web_env
        resp = client.get("/")
        assert resp.status_code == 200
        assert "text/html" in resp.headers["content-type"]
        assert "Workforce" in resp.text


class TestTasksAPI:
    def test_list_is_a_tree(self, web_env):
        client, _ = web_env
        resp = client.get("/api/tasks")
        assert resp.status_code == 200
        tasks = resp.json()
        assert [t["id"] for t in tasks] == ["build-api", "write-docs"]
        build_api = tasks[0]
        assert build_api["status"] == "pending"
        assert [c["id"] for c in build_api["children"]] == ["auth-endpoint"]

    def test_get_single_task(self, web_env):
        client, _ = web_env
        resp = client.get("/api/tasks/build-api")
        assert resp.status_code == 200
        data = resp.json()
        assert data["title"] == "Build API"
        assert data["goal"] == "REST endpoints"
        assert data["children"] == ["auth-endpoint"]
        [call] = data["tool_calls"]
        assert call["name"] == "wf-task-breakdown"
        assert call["result"] == '{"status": "acknowledged"}'
        assert data["user_messages"][0]["origin"] == "scheduler"

    def test_get_nonexistent_task(self, web_env):
        client, _ = web_env
        resp = client.get("/api/tasks/nope")
        assert resp.status_code == 404
        assert "nope" in resp.json()["error"]

    def test_children(self, web_env):
        client, _ = web_env
        assert client.get("/api/tasks/build-api/children").json() == ["auth-endpoint"]
        assert client.get("/api/tasks/nope/children").status_code == 404

    def test_create_tasks(self, web_env):
        client, wf = web_env
        resp = client.post("/api/tasks", json={"tasks": [
            {"title": "Deploy"},
            {"title": "Smoke test", "parent_id": "deploy", "goal": "Hit /health"},
        ]})
        assert resp.status_code == 201
        assert resp.json() == {"task_ids": ["deploy", "smoke-test"]}
        assert wf.get_task("smoke-test").parent_id == "deploy"

    def test_create_under_unknown_parent(self, web_env):
        client, _ = web_env
        resp = client.post("/api/tasks", json={"tasks": [{"title": "X", "parent_id": "nope"}]})
        assert resp.status_code == 400

    @pytest.mark.parametrize("body", [{}, {"tasks": []}, {"tasks": ["x"]}, [1, 2]])
    def test_create_bad_body(self, web_env, body):
        client, _ = web_env
        assert client.post("/api/tasks", json=body).status_code == 400

    def test_create_invalid_json(self, web_env):
        client, _ = web_env
        resp = client.post("/api/tasks", content=b"{nope", headers={"content-type": "application/json"})
        assert resp.status_code == 400


class TestMessagesAndCancel:
    def test_append_message(self, web_env, factory):
        client, _ = web_env
        resp = client.post("/api/tasks/write-docs/messages", json={"content": "Use Markdown"})
        assert resp.status_code == 201
        assert resp.json()["message_id"].startswith("msg-write-docs-")
        assert factory.live("write-docs").user_messages[-1].content == "Use Markdown"

    def test_append_requires_content(self, web_env):
        client, _ = web_env
        assert client.post("/api/tasks/write-docs/messages", json={}).status_code == 400

    def test_append_to_finished_task(self, web_env, factory):
        client, _ = web_env
        factory.live("write-docs").succeed()
        resp = client.post("/api/tasks/write-docs/messages", json={"content": "late"})
        assert resp.status_code == 409

    def test_cancel_cascades(self, web_env):
        client, wf = web_env
        resp = client.post("/api/cancel", json={"task_ids": ["build-api"]})
        assert resp.status_code == 200
        assert resp.json() == {"cancelled": ["build-api", "auth-endpoint"]}

    def test_cancel_unknown(self, web_env):
        client, wf = web_env
        resp = client.post("/api/cancel", json={"task_ids": ["nope"]})
        assert resp.status_code == 404

    def test_destroyed_workforce(self, web_env):
        client, wf = web_env
        wf.destroy()
        resp = client.post("/api/tasks", json={"tasks": [{"title": "Late"}]})
        assert resp.status_code == 410
        # reads still work
        assert client.get("/api/tasks/build-api").json()["status"] == "cancelled"


class TestSummaryEventsTools:
    def test_summary(self, web_env):
        client, _ = web_env
        data = client.get("/api/summary").json()
        assert data["total"] == 3
        assert data["counts"]["pending"] == 1
        assert data["counts"]["processing"] == 2
        assert data["agents_busy"] == 2
        assert data["max_agents"] == 2

    def test_events(self, web_env):
        client, _ = web_env
        events = client.get("/api/events").json()
        assert events[0]["type"] == "task-created"
        assert [e["seq"] for e in events] == sorted(e["seq"] for e in events)

        last = events[-1]["seq"]
        assert client.get(f"/api/events?after={last}").json() == []
        assert len(client.get("/api/events?after=0&limit=2").json()) == 2

    def test_detail_events(self, web_env):
        client, _ = web_env
        events = client.get("/api/events?detail=1").json()
        assert events[0]["type"] == "task-detail-user-message"

    def test_events_bad_cursor(self, web_env):
        client, _ = web_env
        assert client.get("/api/events?after=abc").status_code == 400

    def test_tools(self, web_env):
        client, _ = web_env
        tools = client.get("/api/tools").json()
        assert [t["name"] for t in tools] == [
            "search", "wf-task-succeed", "wf-task-fail", "wf-task-breakdown",
        ]
        assert tools[1]["parameters"]["required"] == ["conclusion"]
