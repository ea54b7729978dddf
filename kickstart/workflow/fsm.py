"""Phase state machine for one orchestrator run.

Full workflow:

    idle -> resolving_work_item -> [preparing_vcs] -> resolving_plan_path
         -> [offering_continuation] -> planning -> validating_plan
         -> implementing -> detecting_blocking_error -> checking_completion
         -> linting -> generating_artifacts -> validating_changes
         -> [publishing] -> done

``prep`` stops at validating_plan. ``loop`` and ``fixup`` enter at
validating_plan via ``resume`` with an existing plan file. Any state can
``fail``. Triggers that are not valid from the current state raise
``transitions.MachineError``, so steps cannot run out of order.

Usage:
    from kickstart.workflow.fsm import PhaseMachine

    fsm = PhaseMachine("20260101-120000_full")
    fsm.start()
    fsm.resolve_plan_path()
"""

import logging
from typing import Callable

from transitions import Machine, MachineError

logger = logging.getLogger(__name__)

__all__ = ["PhaseMachine", "MachineError", "STATES", "TRANSITIONS", "TERMINAL_STATES"]

STATES = [
    "idle",
    "resolving_work_item",
    "preparing_vcs",
    "resolving_plan_path",
    "offering_continuation",
    "planning",
    "validating_plan",
    "implementing",
    "detecting_blocking_error",
    "checking_completion",
    "linting",
    "generating_artifacts",
    "validating_changes",
    "publishing",
    "done",
    "failed",
]

TERMINAL_STATES = ("done", "failed")

TRANSITIONS = [
    {"trigger": "start", "source": "idle", "dest": "resolving_work_item"},

    # Full-automation mode only
    {"trigger": "prepare_vcs", "source": "resolving_work_item", "dest": "preparing_vcs"},

    {"trigger": "resolve_plan_path", "source": ["resolving_work_item", "preparing_vcs"],
     "dest": "resolving_plan_path"},

    # Local-apply mode only, when the plan file already exists
    {"trigger": "offer_continuation", "source": "resolving_plan_path", "dest": "offering_continuation"},

    {"trigger": "plan", "source": ["resolving_plan_path", "offering_continuation"], "dest": "planning"},
    {"trigger": "validate_plan", "source": "planning", "dest": "validating_plan"},

    # loop / fixup: start from an existing plan file
    {"trigger": "resume", "source": "idle", "dest": "validating_plan"},

    {"trigger": "implement", "source": "validating_plan", "dest": "implementing"},
    {"trigger": "check_blocking", "source": "implementing", "dest": "detecting_blocking_error"},
    {"trigger": "check_completion", "source": "detecting_blocking_error", "dest": "checking_completion"},

    {"trigger": "lint", "source": "checking_completion", "dest": "linting"},
    {"trigger": "generate_artifacts", "source": "linting", "dest": "generating_artifacts"},
    {"trigger": "validate_changes", "source": "generating_artifacts", "dest": "validating_changes"},
    {"trigger": "publish", "source": "validating_changes", "dest": "publishing"},

    # prep ends after validation, fixup after completion, start after validate/publish
    {"trigger": "finish", "source": ["validating_plan", "checking_completion", "validating_changes", "publishing"],
     "dest": "done"},

    {"trigger": "fail", "source": [s for s in STATES if s not in TERMINAL_STATES], "dest": "failed"},
]


class PhaseMachine:
    """State machine for one run.

    Logs every transition and forwards it to ``on_transition`` (the
    orchestrator writes it to run.log).
    """

    def __init__(self, run_id: str, on_transition: Callable[[str, str, str], None] | None = None):
        self.run_id = run_id
        self.on_transition = on_transition
        self.history: list[tuple[str, str, str]] = []

        self.machine = Machine(
            model=self,
            states=STATES,
            transitions=TRANSITIONS,
            initial="idle",
            auto_transitions=False,
            send_event=True,
            after_state_change="on_state_change",
        )

    def on_state_change(self, event) -> None:
        from_state = event.transition.source
        to_state = event.transition.dest
        trigger = event.event.name

        logger.debug(f"[FSM] {self.run_id}: {from_state} -> {to_state} ({trigger})")
        self.history.append((from_state, to_state, trigger))

        if self.on_transition:
            self.on_transition(from_state, to_state, trigger)

    def can(self, trigger: str) -> bool:
        """Check if a trigger can be executed in current state."""
        return trigger in self.machine.get_triggers(self.state)

    @property
    def finished(self) -> bool:
        return self.state in TERMINAL_STATES

    def visited(self, state: str) -> bool:
        return any(dest == state for _, dest, _ in self.history)
