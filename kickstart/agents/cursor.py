"""
Cursor headless agent integration.

The Cursor CLI has no permission profiles, so ``restricted`` is only enforced
through the prompt text.
"""

import logging
from pathlib import Path

from kickstart.agents.runner import AgentResult, require_agent, run_agent_process
from kickstart.lib.agents_config import AgentsConfig, get_agent_command

logger = logging.getLogger(__name__)

TIMEOUT_HINT = "Increase timeout with CURSOR_TIMEOUT_MS or OPENCODE_TIMEOUT_MS."


class CursorAgent:
    name = "cursor"

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
        require_agent(self.config, self.name)

        prompt_path = Path(prompt_path)
        if not prompt_path.is_absolute():
            prompt_path = Path(workspace_root) / prompt_path
        prompt_path = prompt_path.resolve()
        if not prompt_path.is_file():
            raise FileNotFoundError(f"Prompt file not found: {prompt_path}")

        cmd = get_agent_command(self.config, self.name, {
            "phase": phase,
            "prompt_file": str(prompt_path),
            "instruction": f"Read and execute the instructions in this file: {prompt_path}",
        })

        return run_agent_process(
            cmd,
            cwd=workspace_root,
            timeout_seconds=self.timeout_ms / 1000,
            label=f"Cursor agent {phase} phase",
            timeout_hint=TIMEOUT_HINT,
            log_file=log_file,
        )
