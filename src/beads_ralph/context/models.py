# src/beads_ralph/context/models.py

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(slots=True)
class RuleContext:
    """One parsed rule document (rules/<name>.mdc)."""

    name: str
    path: str
    content: str
    key_points: list[str]
    always_apply: bool = False
    description: str | None = None
    globs: list[str] | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "path": self.path,
            "description": self.description,
            "globs": self.globs,
            "alwaysApply": self.always_apply,
            "content": self.content,
            "keyPoints": list(self.key_points),
        }


@dataclass(slots=True)
class SkillContext:
    """One parsed skill directory (skills/<name>/SKILL.md + optional reference.md)."""

    name: str
    path: str
    description: str
    triggers: list[str]
    skill_content: str
    related_rules: list[str]
    reference_content: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "path": self.path,
            "description": self.description,
            "triggers": list(self.triggers),
            "skillContent": self.skill_content,
            "referenceContent": self.reference_content,
            "relatedRules": list(self.related_rules),
        }


@dataclass(slots=True)
class ProjectConfig:
    name: str
    description: str
    modules: list[str] = field(default_factory=list)
    stack: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "modules": list(self.modules),
            "stack": list(self.stack),
        }


@dataclass(slots=True)
class ProjectContext:
    rules: list[RuleContext] = field(default_factory=list)
    skills: list[SkillContext] = field(default_factory=list)
    project_config: ProjectConfig | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "rules": [r.to_dict() for r in self.rules],
            "skills": [s.to_dict() for s in self.skills],
            "projectConfig": self.project_config.to_dict() if self.project_config else None,
        }
