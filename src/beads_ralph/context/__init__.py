"""
Project context subsystem.

Components:
- models.py: RuleContext, SkillContext, ProjectConfig, ProjectContext
- loader.py: RuleSkillLoader (filesystem parsing + mtime cache)
- matching.py: rule/skill relevance heuristics
"""
