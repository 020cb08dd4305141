"""Configuration loading from environment variables."""

import os
from dataclasses import dataclass
from pathlib import Path

DEFAULT_AGENT_COMMAND = "claude -p {prompt} --output-format json --model {model}"


@dataclass
class Config:
    max_agents: int = 4
    tool_threads: int = 4
    event_history: int = 1000
    session: str = "echo"
    agent_command: str = DEFAULT_AGENT_COMMAND
    agent_model: str = "sonnet"
    agent_output_dir: Path = Path(".agent_outputs")
    agent_cwd: Path | None = None
    host: str = "127.0.0.1"
    port: int = 8787
    log_level: str = "INFO"
    slack_bot_token: str | None = None
    slack_channel: str | None = None

    @classmethod
    def from_env(cls) -> "Config":
        config = cls()

        if max_agents := os.environ.get("WF_MAX_AGENTS"):
            config.max_agents = int(max_agents)

        if threads := os.environ.get("WF_TOOL_THREADS"):
            config.tool_threads = int(threads)

        if history := os.environ.get("WF_EVENT_HISTORY"):
            config.event_history = int(history)

        if session := os.environ.get("WF_SESSION"):
            config.session = session

        if command := os.environ.get("WF_AGENT_COMMAND"):
            config.agent_command = command

        if model := os.environ.get("WF_AGENT_MODEL"):
            config.agent_model = model

        if out_dir := os.environ.get("WF_AGENT_OUTPUT_DIR"):
            config.agent_output_dir = Path(out_dir)

        if cwd := os.environ.get("WF_AGENT_CWD"):
            config.agent_cwd = Path(cwd)

        if host := os.environ.get("WF_HOST"):
            config.host = host

        if port := os.environ.get("WF_PORT"):
            config.port = int(port)

        if level := os.environ.get("WF_LOG_LEVEL"):
            config.log_level = level.upper()

        config.slack_bot_token = os.environ.get("SLACK_BOT_TOKEN")
        config.slack_channel = os.environ.get("WF_SLACK_CHANNEL")

        return config


def get_config() -> Config:
    return Config.from_env()
