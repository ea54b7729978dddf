"""
Phase orchestrator.

Sequences one run through the phase state machine:

    resolve work item -> [prepare VCS] -> resolve plan path
    -> [offer continuation] -> plan phase -> validate plan file
    -> implement phase -> blocking-error check -> completion check
    -> lint (best effort) -> artifacts (best effort) -> validate changes
    -> [commit, push, open PR]

The plan file is the only state that survives a run. An incomplete plan is
not retried here; the run prints the ``kickstart loop`` command to continue.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from kickstart.agents.blocking import detect_blocking_error
from kickstart.agents.runner import AgentResult, AgentTimeout
from kickstart.lib import artifacts, github, lint
from kickstart.lib import output as out
from kickstart.lib.config import RunOptions, Settings
from kickstart.lib.issues import WorkItem, format_issue_context, resolve_issue, resolve_work_item
from kickstart.lib.notifications import notify_run_finished
from kickstart.lib.prompts import assemble_combined_prompt, load_prompt, with_plan_path
from kickstart.plan import document as plan_doc
from kickstart.plan import files as plan_files
from kickstart.runner.context import RunContext
from kickstart.runner.stages import StageBlocked, StageError, run_best_effort, run_stage, skip_stage
from kickstart.vcs import VcsContext, cleanup, commit_and_push, detect, prepare_branch, require_backend
from kickstart.workflow.decisions import CONTINUE_PLAN, PLAN_NAME, DecisionProvider, DecisionRequired
from kickstart.workflow.fsm import PhaseMachine

logger = logging.getLogger(__name__)

CLI_NAME = "kickstart"

EXIT_FAILED = 1
EXIT_USAGE = 2

BLOCKED_MESSAGE = "Implementation blocked: Agent reported a blocking error. See output above for details."


def default_phase_runner(agent, phase: str, prompt_path: Path, workspace_root: Path,
                         restricted: bool, log_file: Path | None = None) -> AgentResult:
    return agent.run(phase, prompt_path, workspace_root, restricted, log_file=log_file)


@dataclass
class RunOutcome:
    """What a run produced; the CLI maps ``status`` to an exit code."""
    status: str  # complete, incomplete, failed, blocked
    plan_path: Path | None = None
    completion: plan_doc.CompletionStatus | None = None
    pr_url: str | None = None
    error: str | None = None
    failed_stage: str | None = None
    tmp_dir: Path | None = None
    failure_code: int = EXIT_FAILED

    @property
    def success(self) -> bool:
        return self.status in ("complete", "incomplete")

    @property
    def exit_code(self) -> int:
        return 0 if self.success else self.failure_code


class Orchestrator:
    """Runs the phase state machine for one invocation.

    Args:
        settings: Resolved Settings
        options: Per-run options
        decisions: Answers the interactive choices (branch, plan name, continuation)
        agent: Agent backend with ``run(phase, prompt_path, workspace_root, restricted, log_file)``
        phase_runner: Calls the agent; the Prefect flows pass a task wrapper here
        lint_runner: Runs the project linter
        artifact_runner: Writes AGENTS.md and editor rules
    """

    def __init__(
        self,
        settings: Settings,
        options: RunOptions,
        decisions: DecisionProvider,
        agent,
        phase_runner: Callable[..., AgentResult] = default_phase_runner,
        lint_runner: Callable[[Path], lint.LintResult] = lint.run_lint,
        artifact_runner: Callable[..., list[str]] = artifacts.generate_artifacts,
    ):
        self.settings = settings
        self.options = options
        self.decisions = decisions
        self.agent = agent
        self.phase_runner = phase_runner
        self.lint_runner = lint_runner
        self.artifact_runner = artifact_runner

        self.workspace_root = Path(options.workspace_root or settings.workspace_root)
        self.full_automation = options.full_automation
        self.item: WorkItem | None = None
        self.issue_context: str | None = None
        self.vcs: VcsContext | None = None
        self.plan_summary: plan_doc.PlanSummary | None = None
        self._step = 0

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def run_full(self) -> RunOutcome:
        """Plan and implement a work item; in full-automation mode also commit, push and open a PR."""
        mode = "full"
        ctx, fsm = self._begin(mode)

        def steps():
            fsm.start()
            run_stage(ctx, "resolve_work_item", self._resolve_work_item)

            if self.full_automation:
                fsm.prepare_vcs()
                run_stage(ctx, "prepare_vcs", self._prepare_vcs)
            else:
                skip_stage(ctx, "prepare_vcs", "local-apply mode")

            plan_path = self._plan_and_validate(ctx, fsm)
            self._implement_and_check(ctx, fsm, plan_path, prompt_name="implement")

            fsm.lint()
            self._next_step("Running lint")
            run_best_effort(ctx, "lint", self._lint)

            fsm.generate_artifacts()
            self._next_step("Generating workspace artifacts")
            run_best_effort(ctx, "generate_artifacts", self._generate_artifacts)

            fsm.validate_changes()
            self._next_step("Validating changes")
            if run_stage(ctx, "validate_changes", self._validate_changes):
                fsm.publish()
                ctx.pr_url = run_stage(ctx, "publish", self._publish)
            fsm.finish()

        return self._execute(ctx, fsm, steps)

    def run_plan_only(self) -> RunOutcome:
        """Resolve the work item and write a validated plan file; nothing is implemented."""
        ctx, fsm = self._begin("plan_only")

        def steps():
            fsm.start()
            run_stage(ctx, "resolve_work_item", self._resolve_work_item)
            plan_path = self._plan_and_validate(ctx, fsm)
            fsm.finish()
            out.success(f"Plan written to {plan_files.relative_to_workspace(plan_path, self.workspace_root)}")
            out.info(f"To implement it, run: {CLI_NAME} loop --plan-file "
                     f"{plan_files.relative_to_workspace(plan_path, self.workspace_root)}")

        return self._execute(ctx, fsm, steps)

    def run_loop(self, plan_file: Path) -> RunOutcome:
        """Resume an existing plan: implement phase only, changes left in the workspace."""
        self.full_automation = False
        ctx, fsm = self._begin("loop")
        plan_path = self._absolute(plan_file)
        ctx.plan_path = plan_path

        def steps():
            fsm.resume()
            self._next_step("Validating plan file")
            doc = run_stage(ctx, "validate_plan", lambda: self._load_existing_plan(ctx, plan_path))
            run_best_effort(ctx, "resolve_work_item", lambda: self._work_item_from_plan(ctx, doc, plan_path))

            self._implement_and_check(ctx, fsm, plan_path, prompt_name="implement")

            fsm.lint()
            self._next_step("Running lint")
            run_best_effort(ctx, "lint", self._lint)
            fsm.generate_artifacts()
            self._next_step("Generating workspace artifacts")
            run_best_effort(ctx, "generate_artifacts", self._generate_artifacts)
            fsm.validate_changes()
            self._next_step("Validating changes")
            run_stage(ctx, "validate_changes", self._validate_changes)
            fsm.finish()

        return self._execute(ctx, fsm, steps)

    def run_from_plan(self, plan_path: Path, prompt_name: str, context: str, mode: str) -> RunOutcome:
        """Implement an already-written plan with ``context`` in place of issue context.

        Used by fixup: no lint, artifacts, or VCS steps.
        """
        self.full_automation = False
        ctx, fsm = self._begin(mode)
        plan_path = self._absolute(plan_path)
        ctx.plan_path = plan_path
        self.issue_context = context

        def steps():
            fsm.resume()
            self._next_step("Validating plan file")
            run_stage(ctx, "validate_plan", lambda: self._load_existing_plan(ctx, plan_path))
            ctx.issue_context_path.write_text(context)
            self._implement_and_check(ctx, fsm, plan_path, prompt_name=prompt_name)
            fsm.finish()

        return self._execute(ctx, fsm, steps)

    # ------------------------------------------------------------------
    # Run lifecycle
    # ------------------------------------------------------------------

    def _begin(self, mode: str) -> tuple[RunContext, PhaseMachine]:
        ctx = RunContext.create(
            self.workspace_root,
            mode=mode,
            full_automation=self.full_automation,
            preserve=self.options.preserve or self.settings.save_ctx,
        )
        fsm = PhaseMachine(
            ctx.run_id,
            on_transition=lambda src, dest, trigger: ctx.log(f"[FSM] {src} -> {dest} ({trigger})"),
        )
        ctx.log(f"Starting run {ctx.run_id} in {self.workspace_root}")
        self._step = 0
        return ctx, fsm

    def _execute(self, ctx: RunContext, fsm: PhaseMachine, steps: Callable[[], None]) -> RunOutcome:
        try:
            steps()
        except StageBlocked as e:
            fsm.fail()
            return self._failed(ctx, "blocked", e.stage, e.reason)
        except StageError as e:
            fsm.fail()
            usage = e.exit_code == EXIT_USAGE or isinstance(e.__cause__, DecisionRequired)
            return self._failed(ctx, "failed", e.stage, e.message,
                                failure_code=EXIT_USAGE if usage else EXIT_FAILED)
        except Exception as e:
            # raised between stages: an FSM trigger or a scratch-file write
            stage = fsm.state
            ctx.log(f"Unexpected error in {stage}: {e!r}")
            if not fsm.finished:
                fsm.fail()
            return self._failed(ctx, "failed", stage, f"{type(e).__name__}: {e}")

        completion = ctx.completion
        status = "incomplete" if completion is not None and not completion.complete else "complete"
        ctx.write_result(status)
        if ctx.preserve:
            out.info(f"Debug files preserved in: {ctx.tmp_dir}")
        ctx.finish(success=True)
        self._notify(ctx, status)
        return RunOutcome(
            status=status,
            plan_path=ctx.plan_path,
            completion=completion,
            pr_url=ctx.pr_url,
            tmp_dir=ctx.tmp_dir,
        )

    def _failed(self, ctx: RunContext, status: str, stage: str, message: str,
                failure_code: int = EXIT_FAILED) -> RunOutcome:
        ctx.write_result(status, failed_stage=stage, error=message)
        self._report_failure(ctx, message)
        ctx.finish(success=False)
        self._notify(ctx, status, message)
        return RunOutcome(
            status=status,
            plan_path=ctx.plan_path,
            completion=ctx.completion,
            error=message,
            failed_stage=stage,
            tmp_dir=ctx.tmp_dir,
            failure_code=failure_code,
        )

    def _report_failure(self, ctx: RunContext, message: str) -> None:
        out.error(message)
        out.info("\nDebug info:")
        out.info(f"  Temp directory: {ctx.tmp_dir}")
        for label, path in ctx.debug_paths().items():
            if path.exists():
                out.info(f"  {label}: {path}")
        out.info(f"\nDebug files preserved in: {ctx.tmp_dir}")
        out.info("Set SAVE_CTX=1 to preserve files on success as well.")
        if self.full_automation:
            out.info("Note: If a branch was created, you may need to manually clean it up.")

    def _notify(self, ctx: RunContext, status: str, detail: str = "") -> None:
        if self.settings.notify:
            label = self.item.title if self.item else ctx.mode
            notify_run_finished(label, status, detail)

    def _next_step(self, message: str) -> None:
        self._step += 1
        out.step(self._step, message)

    def _absolute(self, path: Path) -> Path:
        path = Path(path)
        return path if path.is_absolute() else self.workspace_root / path

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def _resolve_work_item(self) -> WorkItem:
        self._next_step("Resolving work item")
        reference = self.options.reference or self.settings.issue
        if not reference:
            raise StageError("resolve_work_item", "An issue URL, issue number, or markdown file path is required", 2)
        self.item = resolve_work_item(reference, self.workspace_root)
        self.issue_context = format_issue_context(self.item)
        out.info(f"Work item: #{self.item.number} {self.item.title}" if self.item.number
                 else f"Work item: {self.item.title}")
        return self.item

    def _prepare_vcs(self) -> VcsContext:
        self._next_step("Preparing branch")
        backend = require_backend(self.workspace_root)
        self.vcs = prepare_branch(backend, self.item.number, self.item.title, self.decisions)
        out.info(f"Working on {backend.branch_term} {self.vcs.branch_name}")
        return self.vcs

    def _suggested_plan_name(self) -> str | None:
        if self.vcs is not None:
            branch = self.vcs.branch_name
        else:
            backend = detect(self.workspace_root)
            if backend is None:
                return None
            branch = backend.current_branch()
        return branch.replace("/", "-") if branch else None

    def _resolve_plan_path(self) -> Path:
        self._next_step("Resolving plan file")
        if self.options.plan_name:
            return plan_files.plan_path(self.workspace_root, self.options.plan_name)

        suggested = self._suggested_plan_name()
        if suggested:
            prompt = f"Suggested plan name: {suggested}\nEnter plan name (or press Enter to use suggested)"
        else:
            prompt = "Enter plan name"
        name = self.decisions.ask(PLAN_NAME, prompt, suggested=suggested)
        if not name.strip():
            raise StageError("resolve_plan_path", "Plan name is required", 2)
        return plan_files.plan_path(self.workspace_root, name)

    def _plan_and_validate(self, ctx: RunContext, fsm: PhaseMachine) -> Path:
        fsm.resolve_plan_path()
        plan_path = run_stage(ctx, "resolve_plan_path", self._resolve_plan_path)
        ctx.plan_path = plan_path
        ctx.issue_context_path.write_text(self.issue_context or "")

        previous_plan = None
        existing = plan_files.read_existing_plan(plan_path)
        if existing is not None and not self.full_automation:
            fsm.offer_continuation()
            if run_stage(ctx, "offer_continuation", lambda: self._offer_continuation(plan_path)):
                previous_plan = existing
                ctx.log("Continuing existing plan")

        fsm.plan()
        self._next_step("Running plan phase")
        run_stage(ctx, "plan", lambda: self._run_plan_phase(ctx, plan_path, previous_plan))

        fsm.validate_plan()
        self._next_step("Validating plan file")
        run_stage(ctx, "validate_plan", lambda: self._validate_plan(ctx, plan_path))
        return plan_path

    def _offer_continuation(self, plan_path: Path) -> bool:
        rel = plan_files.relative_to_workspace(plan_path, self.workspace_root)
        return self.decisions.confirm(CONTINUE_PLAN, f"Plan file {rel} exists. Continue existing plan?",
                                      default=False)

    def _run_plan_phase(self, ctx: RunContext, plan_path: Path, previous_plan: str | None) -> AgentResult:
        system_prompt = with_plan_path(load_prompt("plan"), "plan", plan_path,
                                       continuing=previous_plan is not None)
        ctx.system_prompt_path("plan").write_text(system_prompt)
        ctx.plan_prompt_path.write_text(assemble_combined_prompt(
            system_prompt,
            self.workspace_root,
            issue_context=self.issue_context,
            previous_plan=previous_plan,
        ))
        plan_files.ensure_plans_dir(self.workspace_root)

        result = self._run_agent(ctx, "plan", ctx.plan_prompt_path, restricted=True)
        if not result.success:
            self._show_failed_output(result)
            raise StageError("plan", f"Plan phase failed with exit code {result.exit_code}",
                             details={"agent_exit_code": result.exit_code})
        return result

    def _validate_plan(self, ctx: RunContext, plan_path: Path) -> plan_doc.PlanDocument:
        try:
            doc = plan_doc.check_plan_file(plan_path)
        except plan_doc.PlanValidationError as e:
            raise StageError("validate_plan", str(e), 1, {"missing": e.missing}) from None
        ctx.plan_output_path.write_text(doc.to_text())
        out.success(f"Plan file is valid: {plan_files.relative_to_workspace(plan_path, self.workspace_root)}")
        return doc

    def _load_existing_plan(self, ctx: RunContext, plan_path: Path) -> plan_doc.PlanDocument:
        if not plan_path.exists():
            raise StageError("validate_plan", f"Plan file not found: {plan_path}", 2)
        return self._validate_plan(ctx, plan_path)

    def _work_item_from_plan(self, ctx: RunContext, doc: plan_doc.PlanDocument, plan_path: Path) -> None:
        """Re-fetch the issue a plan links to; falls back to the plan title."""
        self.item = WorkItem(number=0, title=doc.title or plan_path.stem, body="")
        link = plan_files.extract_issue_url(doc.to_text())
        if link is None:
            return
        owner, repo, number = link
        self.item = resolve_issue(f"https://github.com/{owner}/{repo}/issues/{number}", self.workspace_root)
        self.issue_context = format_issue_context(self.item)
        ctx.issue_context_path.write_text(self.issue_context)

    def _implement_and_check(self, ctx: RunContext, fsm: PhaseMachine, plan_path: Path,
                             prompt_name: str) -> None:
        plan_text = ctx.plan_output_path.read_text()
        before = plan_doc.parse(plan_text)

        fsm.implement()
        self._next_step("Running implement phase")
        result = run_stage(ctx, "implement",
                           lambda: self._run_implement_phase(ctx, plan_path, plan_text, prompt_name))

        fsm.check_blocking()
        run_stage(ctx, "detect_blocking_error", lambda: self._raise_if_blocked(result))

        fsm.check_completion()
        self._next_step("Checking completion")
        run_stage(ctx, "check_completion", lambda: self._check_completion(ctx, plan_path, before))

    def _run_implement_phase(self, ctx: RunContext, plan_path: Path, plan_text: str,
                             prompt_name: str) -> AgentResult:
        system_prompt = with_plan_path(load_prompt(prompt_name), prompt_name, plan_path)
        ctx.system_prompt_path(prompt_name).write_text(system_prompt)
        ctx.implement_prompt_path.write_text(assemble_combined_prompt(
            system_prompt,
            self.workspace_root,
            issue_context=self.issue_context,
            plan_output=plan_text,
        ))

        result = self._run_agent(ctx, "implement", ctx.implement_prompt_path, restricted=False)
        if not result.success:
            self._raise_if_blocked(result)
            self._show_failed_output(result)
            raise StageError("implement", f"Implement phase failed with exit code {result.exit_code}",
                             details={"agent_exit_code": result.exit_code})
        return result

    def _raise_if_blocked(self, result: AgentResult) -> None:
        blocking = detect_blocking_error(result.stdout, result.stderr)
        if blocking is None:
            return
        out.error("Blocking error detected in implement phase output")
        out.rule()
        out.info(blocking)
        out.rule()
        raise StageBlocked("implement", BLOCKED_MESSAGE)

    def _check_completion(self, ctx: RunContext, plan_path: Path,
                          before: plan_doc.PlanDocument) -> plan_doc.CompletionStatus:
        if not plan_path.exists():
            raise StageError("check_completion", f"Plan file not found after implement phase: {plan_path}")
        doc = plan_doc.load(plan_path)

        for violation in plan_doc.verify_preserved(before, doc):
            out.warning(f"Plan file changed outside the checklist: {violation}")

        completion = plan_doc.compute_completion(doc)
        ctx.completion = completion
        self.plan_summary = plan_doc.summarize(doc)
        rel = plan_files.relative_to_workspace(plan_path, self.workspace_root)

        if completion.total == 0:
            out.warning("No acceptance criteria found in plan file. Unable to determine completion status.")
        elif completion.complete:
            out.success(f"All {completion.total} acceptance criteria complete.")
            if self.full_automation:
                if plan_files.delete_plan(plan_path):
                    out.info(f"Removed completed plan file {rel}")
                else:
                    out.warning(f"Could not remove completed plan file {rel}")
        else:
            out.info(f"Plan is incomplete. {completion.remaining} item(s) remaining.")
            for label in completion.incomplete:
                out.info(f"  - [ ] {label}")
            out.info(f"To continue this work, run: {CLI_NAME} loop --plan-file {rel}")
        return completion

    def _lint(self) -> None:
        result = self.lint_runner(self.workspace_root)
        if not result.ran:
            out.info("No lint configuration found, skipping.")
            return
        if not result.success:
            raise RuntimeError(f"Lint failed: {result.output.strip()[-2000:]}")
        out.success("Lint passed.")

    def _generate_artifacts(self) -> None:
        use_cursor = self.options.use_cursor or self.settings.cursor_enabled
        for line in self.artifact_runner(self.workspace_root, use_cursor=use_cursor):
            out.info(line)

    def _validate_changes(self) -> bool:
        """True when there is something to publish."""
        backend = self.vcs.backend if self.vcs else detect(self.workspace_root)
        if backend is None:
            out.info("No VCS detected. Changes have been applied to the workspace.")
            return False

        if not backend.has_changes():
            out.info("No changes were made by the agent.")
            if self.full_automation:
                cleanup(self.vcs)
            return False

        if self.full_automation:
            return True

        out.success("Changes applied to workspace.")
        changed = backend.changed_files()
        for path in changed:
            out.info(f"  {path}")
        out.info(f"Review them with `{backend.binary} diff` and commit when ready.")
        return False

    def _publish(self) -> str | None:
        self._next_step("Committing and opening pull request")
        subject = commit_and_push(self.vcs, self.item.number, self.item.title)
        out.success(f"Committed and pushed: {subject}")

        if not self.item.is_issue:
            out.info("Work item is a local document; no pull request created.")
            return None

        body = plan_doc.render_pr_body(self.plan_summary, self.item.number)
        url = github.create_pull_request(
            self.workspace_root,
            head=self.vcs.branch_name,
            title=f"#{self.item.number} {self.item.title}",
            body=body,
        )
        out.success(f"Pull request: {url}")
        return url

    # ------------------------------------------------------------------
    # Agent calls
    # ------------------------------------------------------------------

    def _run_agent(self, ctx: RunContext, phase: str, prompt_path: Path, restricted: bool) -> AgentResult:
        ctx.log(f"Running agent {getattr(self.agent, 'name', type(self.agent).__name__)} ({phase})")
        try:
            result = self.phase_runner(
                self.agent, phase, prompt_path, self.workspace_root, restricted,
                log_file=ctx.agent_log_path(phase),
            )
        except AgentTimeout as e:
            ctx.output_path(phase, "stdout").write_text(e.stdout)
            ctx.output_path(phase, "stderr").write_text(e.stderr)
            ctx.log(f"Agent {phase} timed out after {e.timeout_seconds:.0f}s")
            raise
        ctx.output_path(phase, "stdout").write_text(result.stdout)
        ctx.output_path(phase, "stderr").write_text(result.stderr)
        ctx.log(f"Agent {phase} exited with {result.exit_code} after {result.duration:.1f}s")
        if result.success:
            out.block(f"{phase} output", result.stdout)
        return result

    def _show_failed_output(self, result: AgentResult) -> None:
        out.block("STDERR", result.stderr)
        out.block("STDOUT", result.stdout)
