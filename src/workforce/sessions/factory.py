"""Pick the session implementation named in the configuration."""

from functools import partial

from workforce.config import Config
from workforce.core.agents import SessionFactory
from workforce.sessions.command import CommandSession
from workforce.sessions.echo import EchoSession

SESSION_TYPES = ("echo", "command")


def session_factory_from_config(config: Config) -> SessionFactory:
    if config.session == "echo":
        return EchoSession
    if config.session == "command":
        return partial(
            CommandSession,
            command_template=config.agent_command,
            model=config.agent_model,
            output_dir=config.agent_output_dir,
            cwd=config.agent_cwd,
        )
    raise ValueError(
        f"Unknown session type: {config.session!r} (expected one of {', '.join(SESSION_TYPES)})"
    )
