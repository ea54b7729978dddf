"""Decision providers for the interactive choices in a run.

The orchestrator never calls ``input()`` itself. It asks a provider:

    decisions.confirm("continue_plan", "Continue existing plan?", default=False)
    decisions.ask("plan_name", "Enter plan name ...", suggested="feature-x")

ConsoleDecisions prompts on the terminal; ScriptedDecisions answers from a
dict so the same workflow runs headless and in tests.
"""

import logging

logger = logging.getLogger(__name__)

# Decision keys used by the workflow
USE_CURRENT_BRANCH = "use_current_branch"
BRANCH_NAME = "branch_name"
PLAN_NAME = "plan_name"
CONTINUE_PLAN = "continue_plan"

YES_ANSWERS = ("y", "yes")
NO_ANSWERS = ("n", "no")


class DecisionRequired(Exception):
    """A headless run needed an answer it was not given."""

    def __init__(self, key: str, prompt: str):
        self.key = key
        self.prompt = prompt
        super().__init__(f"No answer provided for '{key}': {prompt}")


class DecisionProvider:
    def confirm(self, key: str, prompt: str, default: bool = False) -> bool:
        raise NotImplementedError

    def ask(self, key: str, prompt: str, suggested: str | None = None) -> str:
        """Free-text answer. Returns ``suggested`` (or "") when the answer is empty."""
        raise NotImplementedError


class ConsoleDecisions(DecisionProvider):
    """Prompts on stdin/stdout."""

    def __init__(self, input_fn=input):
        self.input_fn = input_fn

    def _read(self, key: str, prompt: str) -> str:
        try:
            return self.input_fn(prompt)
        except EOFError:
            # stdin closed; nobody is there to answer
            raise DecisionRequired(key, prompt.strip()) from None

    def confirm(self, key: str, prompt: str, default: bool = False) -> bool:
        hint = "Y/n" if default else "y/N"
        while True:
            answer = self._read(key, f"{prompt} ({hint}) ").strip().lower()
            if not answer:
                return default
            if answer in YES_ANSWERS:
                return True
            if answer in NO_ANSWERS:
                return False
            print("Please answer y or n.")

    def ask(self, key: str, prompt: str, suggested: str | None = None) -> str:
        answer = self._read(key, f"{prompt}: ").strip()
        return answer or (suggested or "")


class ScriptedDecisions(DecisionProvider):
    """Answers from a dict keyed by decision name.

    A missing key falls back to the default/suggested value. With neither,
    DecisionRequired is raised instead of blocking on a prompt.
    """

    def __init__(self, answers: dict | None = None):
        self.answers = dict(answers or {})
        self.asked: list[str] = []

    def confirm(self, key: str, prompt: str, default: bool | None = False) -> bool:
        self.asked.append(key)
        if key in self.answers:
            value = self.answers[key]
            if isinstance(value, str):
                return value.strip().lower() in YES_ANSWERS
            return bool(value)
        if default is None:
            raise DecisionRequired(key, prompt)
        logger.debug(f"Decision '{key}' defaulted to {default}")
        return default

    def ask(self, key: str, prompt: str, suggested: str | None = None) -> str:
        self.asked.append(key)
        answer = str(self.answers.get(key) or "").strip()
        if answer:
            return answer
        if suggested:
            logger.debug(f"Decision '{key}' defaulted to {suggested}")
            return suggested
        raise DecisionRequired(key, prompt)
