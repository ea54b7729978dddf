"""
Agent command configuration.

Loads agents.yaml from the workspace root to decide how each coding agent is
invoked. Without the file, the defaults below are used.

COMMAND TEMPLATES
=================

Each agent maps to a command template with {variable} placeholders. The
template is split with shlex first and placeholders are substituted per
token, so a prompt path with spaces stays a single argument.

Variables:
- {phase}:       "plan" or "implement" (opencode agent name)
- {prompt_file}: Path of the assembled prompt file
- {instruction}: One-line instruction telling the agent to read the prompt file

Example agents.yaml:

    agents:
      opencode: opencode run {phase} -f {prompt_file}
"""

import logging
import re
import shlex
import shutil
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from kickstart.lib.validate import validate

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "agents.yaml"

DEFAULT_AGENT_COMMANDS = {
    "opencode": "opencode run {phase} -f {prompt_file} --log-level=DEBUG",
    # Cursor's headless CLI has no prompt-file flag; it is told to read the file
    "cursor": "agent -p --force {instruction}",
}

INSTALL_HINTS = {
    "opencode": "opencode command not found. Please ensure opencode is installed.",
    "agent": (
        "Cursor CLI (agent) not found. Install it from https://cursor.com/docs/cli/headless "
        "and ensure CURSOR_API_KEY is set for headless use."
    ),
}

VARIABLE_RE = re.compile(r'\{(\w+)\}')


@dataclass
class AgentsConfig:
    """Agent configuration from agents.yaml."""
    agents: dict[str, str] = field(default_factory=lambda: DEFAULT_AGENT_COMMANDS.copy())


def load_agents_config(workspace_root: Path | None) -> AgentsConfig:
    """Load agents.yaml and return AgentsConfig.

    A missing or unparseable file yields defaults. A file that parses but does
    not match the ``agents`` schema raises ValidationError.
    """
    if workspace_root is None:
        return AgentsConfig()

    config_path = Path(workspace_root) / CONFIG_FILENAME
    if not config_path.exists():
        return AgentsConfig()

    try:
        data = yaml.safe_load(config_path.read_text())
    except yaml.YAMLError as e:
        logger.warning(f"Failed to parse {config_path}: {e}")
        return AgentsConfig()

    if not data:
        return AgentsConfig()

    validate(data, "agents")
    agents = DEFAULT_AGENT_COMMANDS.copy()
    agents.update(data.get("agents", {}))
    return AgentsConfig(agents=agents)


def get_agent_command(config: AgentsConfig, agent: str, context: dict[str, str]) -> list[str]:
    """Build the command list for an agent.

    Raises:
        ValueError: unknown agent, or a placeholder with no value in context

    Example:
        >>> get_agent_command(AgentsConfig(), "opencode", {"phase": "plan", "prompt_file": "/tmp/a b.txt"})
        ['opencode', 'run', 'plan', '-f', '/tmp/a b.txt', '--log-level=DEBUG']
    """
    if agent not in config.agents:
        raise ValueError(f"Unknown agent: {agent}")

    cmd = []
    for token in shlex.split(config.agents[agent]):
        for key, value in context.items():
            token = token.replace(f"{{{key}}}", str(value))
        remaining = VARIABLE_RE.findall(token)
        if remaining:
            raise ValueError(
                f"Agent '{agent}' template has unsubstituted variables: {remaining}"
            )
        cmd.append(token)
    return cmd


def get_agent_binary(config: AgentsConfig, agent: str) -> str:
    if agent not in config.agents:
        raise ValueError(f"Unknown agent: {agent}")
    parts = shlex.split(config.agents[agent])
    return parts[0] if parts else ""


@dataclass
class BinaryCheckResult:
    """Result of checking an agent binary."""
    ok: bool
    binary: str
    error_message: str | None = None


def check_agent_binary(config: AgentsConfig, agent: str) -> BinaryCheckResult:
    """Check the agent's binary is on PATH, with an install hint if not."""
    binary = get_agent_binary(config, agent)
    if shutil.which(binary) is not None:
        return BinaryCheckResult(ok=True, binary=binary)
    hint = INSTALL_HINTS.get(binary, f"Required tool '{binary}' is not installed.")
    if config.agents[agent] != DEFAULT_AGENT_COMMANDS.get(agent):
        hint += f"\nCommand template comes from {CONFIG_FILENAME}: {config.agents[agent]}"
    return BinaryCheckResult(ok=False, binary=binary, error_message=hint)
