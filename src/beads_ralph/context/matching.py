# src/beads_ralph/context/matching.py

"""
Relevance heuristics used to tag new tasks with rules and a skill.

Inputs are the task's "title description" text and the loaded contexts;
outputs are plain selections. Keeping them here (rather than inline in the
task store) means a better classifier can replace them without touching the
task store's control flow.
"""

from __future__ import annotations

from collections.abc import Iterable

from .models import RuleContext, SkillContext

TEXT_PREFIX_CHARS = 20


def rule_keywords(rule: RuleContext) -> list[str]:
    """Lower-cased, non-empty match keywords of a rule: name, key points, description."""
    raw = [rule.name, *rule.key_points, rule.description or ""]
    return [k.lower() for k in raw if k and k.strip()]


def rule_matches(rule: RuleContext, text: str) -> bool:
    """
    True when the rule is always-apply, or when any keyword overlaps the text:
    the keyword occurs in the text, or the keyword contains the text's prefix.
    """
    if rule.always_apply:
        return True

    lowered = (text or "").lower()
    if not lowered.strip():
        return False
    prefix = lowered[:TEXT_PREFIX_CHARS]

    return any(kw in lowered or prefix in kw for kw in rule_keywords(rule))


def find_relevant_rules(rules: Iterable[RuleContext], text: str) -> list[RuleContext]:
    return [rule for rule in rules if rule_matches(rule, text)]


def find_relevant_skill(skills: Iterable[SkillContext], text: str) -> SkillContext | None:
    """First skill (in load order) with a trigger contained in the text."""
    lowered = (text or "").lower()
    for skill in skills:
        for trigger in skill.triggers:
            t = trigger.strip().lower()
            if t and t in lowered:
                return skill
    return None
