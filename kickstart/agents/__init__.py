"""Coding agent backends.

Every backend exposes the same call:

    agent.run(phase, prompt_path, workspace_root, restricted, log_file=None) -> AgentResult
"""

from kickstart.agents.blocking import detect_blocking_error
from kickstart.agents.cursor import CursorAgent
from kickstart.agents.opencode import OpencodeAgent
from kickstart.agents.profiles import ProfileError, swapped_profile
from kickstart.agents.runner import AgentNotInstalled, AgentResult, AgentTimeout
from kickstart.lib.agents_config import load_agents_config


def get_agent(settings, use_cursor: bool = False):
    """Backend for this run: Cursor when requested or enabled in settings, else opencode."""
    config = load_agents_config(settings.workspace_root)
    if use_cursor or settings.cursor_enabled:
        return CursorAgent(config, timeout_ms=settings.cursor_timeout_ms)
    return OpencodeAgent(config, timeout_ms=settings.opencode_timeout_ms)


__all__ = [
    "AgentNotInstalled",
    "AgentResult",
    "AgentTimeout",
    "CursorAgent",
    "OpencodeAgent",
    "ProfileError",
    "detect_blocking_error",
    "get_agent",
    "swapped_profile",
]
