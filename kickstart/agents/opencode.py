"""
opencode agent integration.

Both phases run through ``opencode run <phase>``; what differs is the
permission profile swapped into ``opencode.json`` for the run.
"""

import logging
from pathlib import Path

from kickstart.agents.profiles import swapped_profile
from kickstart.agents.runner import AgentResult, require_agent, run_agent_process
from kickstart.lib.agents_config import AgentsConfig, get_agent_command

logger = logging.getLogger(__name__)

TIMEOUT_HINT = "You can increase timeout with OPENCODE_TIMEOUT_MS environment variable."


class OpencodeAgent:
    name = "opencode"

    def __init__(self, config: AgentsConfig | None = None, timeout_ms: int = 600_000):
        self.config = config or AgentsConfig()
        self.timeout_ms = timeout_ms

    def run(
        self,
        phase: str,
        prompt_path: Path,
        workspace_root: Path,
        restricted: bool,
        log_file: Path | None = None,
    ) -> AgentResult:
        """
        Run one opencode phase.

        Raises:
            AgentNotInstalled: opencode is not on PATH
            ProfileError: the phase profile could not be activated
            AgentTimeout: the run exceeded the timeout
        """
        require_agent(self.config, self.name)

        cmd = get_agent_command(self.config, self.name, {
            "phase": phase,
            "prompt_file": str(prompt_path),
        })

        with swapped_profile(workspace_root, restricted=restricted):
            return run_agent_process(
                cmd,
                cwd=workspace_root,
                timeout_seconds=self.timeout_ms / 1000,
                label=f"opencode {phase} phase",
                timeout_hint=TIMEOUT_HINT,
                log_file=log_file,
            )
