"""Plan file model and locations.

The plan file is both the agent-facing output format and the checkpoint a
later run resumes from. Parsing is lossless: ``parse(text).to_text() == text``.
"""

from kickstart.plan.document import (
    ACCEPTANCE_CRITERIA,
    ChecklistItem,
    CompletionStatus,
    PlanDocument,
    PlanSummary,
    PlanValidationError,
    Section,
    check_plan_file,
    compute_completion,
    extract_acceptance_criteria,
    is_empty_section,
    load,
    parse,
    render_pr_body,
    summarize,
    validate_structure,
    verify_preserved,
)
from kickstart.plan.files import (
    PLAN_SUFFIX,
    PLANS_DIRNAME,
    delete_plan,
    ensure_plans_dir,
    extract_issue_url,
    plan_path,
    read_existing_plan,
    relative_to_workspace,
)

__all__ = [
    # document
    "ACCEPTANCE_CRITERIA",
    "ChecklistItem",
    "CompletionStatus",
    "PlanDocument",
    "PlanSummary",
    "PlanValidationError",
    "Section",
    "check_plan_file",
    "compute_completion",
    "extract_acceptance_criteria",
    "is_empty_section",
    "load",
    "parse",
    "render_pr_body",
    "summarize",
    "validate_structure",
    "verify_preserved",
    # files
    "PLAN_SUFFIX",
    "PLANS_DIRNAME",
    "delete_plan",
    "ensure_plans_dir",
    "extract_issue_url",
    "plan_path",
    "read_existing_plan",
    "relative_to_workspace",
]
