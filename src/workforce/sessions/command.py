"""Subprocess-backed session: one agent CLI run (``claude -p`` by default) per task."""

import json
import logging
import re
import shlex
import subprocess
import threading
from collections.abc import Callable
from datetime import datetime
from pathlib import Path

from workforce.config import DEFAULT_AGENT_COMMAND
from workforce.core.models import (
    MessageComplete,
    MessageOrigin,
    SessionContext,
    ToolCallRequest,
    ToolCallResponse,
    UserMessage,
)
from workforce.core.pseudo_tools import PseudoTool

logger = logging.getLogger(__name__)

PLACEHOLDER = re.compile(r"\{(prompt|model)\}")


def read_agent_output(output_file: Path | None, exit_code: int | None) -> tuple[str, int]:
    """Summarize a finished agent run. Returns (summary, exit_code)."""
    if output_file is None or not output_file.exists():
        return "(no output)", 1 if exit_code is None else exit_code

    try:
        content = output_file.read_text()
    except OSError as e:
        return f"Error reading output: {e}", 1 if exit_code is None else exit_code

    if not content.strip():
        return "(empty output)", 1 if exit_code is None else exit_code

    try:
        data = json.loads(content)
    except json.JSONDecodeError:
        if exit_code is None:
            exit_code = 1 if "error" in content.lower() else 0
        return content[:500], exit_code

    if not isinstance(data, dict):
        return content[:500], 0 if exit_code is None else exit_code
    summary = str(data.get("result") or content[:500])
    if exit_code is None:
        exit_code = 0
    if data.get("is_error") and exit_code == 0:
        exit_code = 1
    return summary, exit_code


class CommandSession:
    """Runs one command for a task and reports its exit through the reserved tools.

    Messages are collected until the scheduler's prompt arrives; the command is
    then started with all of them as its prompt. Exit code 0 calls
    ``wf-task-succeed`` with the run's result, anything else ``wf-task-fail``.
    Messages arriving after launch cannot reach the process and are dropped.
    """

    def __init__(
        self,
        context: SessionContext,
        command_template: str = DEFAULT_AGENT_COMMAND,
        model: str = "sonnet",
        output_dir: Path = Path(".agent_outputs"),
        cwd: Path | None = None,
    ):
        self.context = context
        self.command_template = command_template
        self.model = model
        self.output_dir = Path(output_dir)
        self.cwd = cwd
        self.proc: subprocess.Popen | None = None
        self.output_file: Path | None = None
        self._messages: list[str] = []
        self._handlers: list[Callable] = []
        self._lock = threading.Lock()
        self._watcher: threading.Thread | None = None
        self._destroyed = False

    def build_command(self, prompt: str) -> list[str]:
        """Split the template and fill in ``{prompt}`` and ``{model}``. Other braces are kept."""
        values = {"prompt": prompt, "model": self.model}
        return [
            PLACEHOLDER.sub(lambda m: values[m.group(1)], part)
            for part in shlex.split(self.command_template)
        ]

    def subscribe(self, handler: Callable) -> Callable[[], None]:
        self._handlers.append(handler)

        def unsubscribe():
            if handler in self._handlers:
                self._handlers.remove(handler)

        return unsubscribe

    def dispatch(self, message: UserMessage | ToolCallResponse):
        if isinstance(message, ToolCallResponse):
            return
        with self._lock:
            if self._destroyed:
                return
            if self.proc is not None:
                logger.warning(
                    "Agent for task %s is already running (PID %s); message %s not delivered",
                    self.context.task_id, self.proc.pid, message.id,
                )
                return
            self._messages.append(message.content)
            if message.origin is MessageOrigin.SCHEDULER:
                self._launch("\n\n".join(self._messages))

    def _launch(self, prompt: str):
        self.output_dir.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
        self.output_file = self.output_dir / f"agent-{self.context.task_id}-{timestamp}.json"

        cmd = self.build_command(prompt)
        with open(self.output_file, "w") as f:
            self.proc = subprocess.Popen(
                cmd,
                cwd=self.cwd,
                stdout=f,
                stderr=subprocess.STDOUT,
            )
        logger.info("Agent launched for task %s (PID %s)", self.context.task_id, self.proc.pid)

        self._watcher = threading.Thread(
            target=self._watch, name=f"agent-{self.context.task_id}", daemon=True
        )
        self._watcher.start()

    def _watch(self):
        exit_code = self.proc.wait()
        if self._destroyed:
            return
        summary, exit_code = read_agent_output(self.output_file, exit_code)
        logger.info("Agent PID %s for task %s exited (exit_code=%s)",
                    self.proc.pid, self.context.task_id, exit_code)

        message_id = f"{self.context.task_id}-agent-output"
        self._emit(MessageComplete(message_id, summary))
        if exit_code == 0:
            name, arguments = PseudoTool.SUCCEED.value, {"conclusion": summary}
        else:
            name, arguments = PseudoTool.FAIL.value, {"error": f"exit code {exit_code}: {summary}"}
        self._emit(ToolCallRequest(f"{message_id}-call", name, json.dumps(arguments)))

    def wait(self, timeout: float | None = None) -> bool:
        """Wait for the watcher thread. Returns False if it is still running."""
        if self._watcher is None:
            return True
        self._watcher.join(timeout)
        return not self._watcher.is_alive()

    def destroy(self):
        with self._lock:
            if self._destroyed:
                return
            self._destroyed = True
            self._handlers.clear()
            proc = self.proc
        if proc is not None and proc.poll() is None:
            try:
                proc.terminate()
            except ProcessLookupError:
                pass  # Already exited
            logger.info("Agent PID %s for task %s terminated", proc.pid, self.context.task_id)

    def _emit(self, signal):
        for handler in list(self._handlers):
            handler(signal)
