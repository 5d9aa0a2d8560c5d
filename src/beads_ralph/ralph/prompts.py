# src/beads_ralph/ralph/prompts.py

from __future__ import annotations

from ..tasks.task_models import TaskContext

MAX_PROMPT_GUIDELINES = 15

SYSTEM_PROMPT = """
You are Ralph, an autonomous task executor for a software project.
You follow the project's rules and use the project's skills.
Your goal is to analyze tasks and provide clear execution plans.

When analyzing a task:
1. Break it down into concrete steps
2. Identify files that need to be modified
3. Consider project guidelines and constraints
4. Provide verification criteria

Respond in a structured format with:
- PLAN: numbered steps
- FILES: list of files to modify
- RISKS: potential issues
- VERIFICATION: how to verify success
""".strip()


def build_execution_prompt(context: TaskContext) -> str:
    """Render the user message for one task: task, criteria, files, guidelines, skill, rules."""
    task = context.task
    parts: list[str] = ["# Task Execution", ""]

    parts += ["## Task", f"**{task.title}**", "", task.description, ""]

    if task.criteria:
        parts.append("## Acceptance Criteria")
        parts += [f"{i}. {c}" for i, c in enumerate(task.criteria, start=1)]
        parts.append("")

    if task.target_files:
        parts.append("## Target Files")
        parts += [f"- {f}" for f in task.target_files]
        parts.append("")

    if context.guidelines:
        parts.append("## Guidelines (from project rules)")
        parts += [f"- {g}" for g in context.guidelines[:MAX_PROMPT_GUIDELINES]]
        parts.append("")

    if context.skill is not None:
        parts += [f"## Relevant Skill: {context.skill.name}", context.skill.description, ""]

    if context.rules:
        parts.append("## Applied Rules")
        for rule in context.rules:
            summary = rule.description or (rule.key_points[0] if rule.key_points else "Project rule")
            parts.append(f"- **{rule.name}**: {summary}")
        parts.append("")

    parts += [
        "## Instructions",
        "Analyze this task and provide:",
        "1. A step-by-step execution plan",
        "2. Expected changes/outputs",
        "3. Any potential issues or blockers",
        "4. Verification steps",
    ]
    return "\n".join(parts) + "\n"
