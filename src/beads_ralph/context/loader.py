# src/beads_ralph/context/loader.py

"""
Rule / skill document loader.

Reads a directory tree shaped like:

    <root>/rules/<name>.mdc            flat rule documents
    <root>/skills/<name>/SKILL.md      required skill document
    <root>/skills/<name>/reference.md  optional reference document

and turns it into RuleContext / SkillContext objects.

Everything here is advisory context: unreadable or malformed documents are
logged and skipped, a missing directory yields an empty list. Nothing raises
for expected failures.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from pathlib import Path
from typing import Any

from ..config import DEFAULT_TRIGGER_KEYWORDS
from .models import ProjectConfig, ProjectContext, RuleContext, SkillContext

logger = logging.getLogger(__name__)

RULE_SUFFIXES = (".mdc", ".md")
SKILL_FILE = "SKILL.md"
REFERENCE_FILE = "reference.md"

EMPHASIS_MARKERS = ("MUST", "ALWAYS", "NEVER", "обязательно", "запрещено")
SHORT_ITEM_LIMIT = 100
MAX_LIST_KEY_POINTS = 10

_FRONTMATTER_RE = re.compile(r"\A---\n(.*?)\n---", re.DOTALL)
_FRONTMATTER_BLOCK_RE = re.compile(r"\A---\n.*?\n---\n*", re.DOTALL)
_HEADING_RE = re.compile(r"^#{1,3}[ \t]+(.+)$", re.MULTILINE)
_LIST_ITEM_RE = re.compile(r"^[-*][ \t]+(.+)$", re.MULTILINE)
_USE_WHEN_RE = re.compile(r"Use when[^.]*\.", re.IGNORECASE)
_RULE_REF_RE = re.compile(
    r"\.cursor/rules/[\w-]+\.mdc|rules/[\w-]+\.mdc|rule\s+\*\*[\w-]+\.mdc\*\*",
    re.IGNORECASE,
)
_RULE_NAME_RE = re.compile(r"([\w-]+)\.mdc", re.IGNORECASE)
_BOLD_CELL_RE = re.compile(r"\|\s*\*\*([^|]+)\*\*\s*\|")
_TABLE_PAIR_RE = re.compile(r"\|\s*([^|]+)\s*\|\s*([^|]+)\s*\|")


def _normalize_newlines(text: str) -> str:
    return text.replace("\r\n", "\n").replace("\r", "\n")


def _unquote(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
        return value[1:-1]
    return value


def parse_frontmatter(text: str) -> dict[str, Any]:
    """
    Parse a leading `---` delimited block of `key: value` lines.

    Deliberately minimal (not YAML):
    - "quoted" / 'quoted' strings are unwrapped
    - [a, b, "c"] becomes a list of stripped, unquoted, non-empty items
    - true / false become booleans
    - empty values (multi-line YAML constructs) are skipped
    - anything else is kept as the raw string
    """
    match = _FRONTMATTER_RE.match(_normalize_newlines(text or ""))
    if not match:
        return {}

    result: dict[str, Any] = {}
    for line in match.group(1).split("\n"):
        key, sep, raw = line.partition(":")
        if not sep:
            continue
        key = key.strip()
        value = raw.strip()
        if not key or value == "":
            continue

        parsed: Any
        if value.startswith("[") and value.endswith("]"):
            items = (_unquote(part.strip()) for part in value[1:-1].split(","))
            parsed = [item.strip() for item in items if item.strip()]
        elif value in ("true", "false"):
            parsed = value == "true"
        else:
            parsed = _unquote(value)

        result[key] = parsed
    return result


def extract_body(text: str) -> str:
    """Document content without the frontmatter block."""
    return _FRONTMATTER_BLOCK_RE.sub("", _normalize_newlines(text or ""), count=1).strip()


def extract_key_points(body: str) -> list[str]:
    """
    Headings (levels 1-3) followed by the important list items.

    A list item is important when it carries an emphasis marker or is short.
    List items are capped at MAX_LIST_KEY_POINTS; the result is de-duplicated
    keeping first occurrence order.
    """
    body = _normalize_newlines(body or "")
    points = [h.strip() for h in _HEADING_RE.findall(body) if h.strip()]

    important: list[str] = []
    for item in _LIST_ITEM_RE.findall(body):
        item = item.strip()
        if not item:
            continue
        if any(marker in item for marker in EMPHASIS_MARKERS) or len(item) < SHORT_ITEM_LIMIT:
            important.append(item)
        if len(important) >= MAX_LIST_KEY_POINTS:
            break

    points.extend(important)
    return list(dict.fromkeys(points))


def extract_triggers(text: str, keywords: Iterable[str] = DEFAULT_TRIGGER_KEYWORDS) -> list[str]:
    """`Use when ....` phrases plus every keyword mentioned in the text."""
    text = text or ""
    triggers = [m.strip() for m in _USE_WHEN_RE.findall(text)]

    lowered = text.lower()
    for keyword in keywords:
        if keyword and keyword.lower() in lowered:
            triggers.append(keyword)

    return list(dict.fromkeys(triggers))


def find_related_rules(body: str) -> list[str]:
    """Base names of rule files referenced in prose (e.g. `.cursor/rules/api-style.mdc`)."""
    names: list[str] = []
    for ref in _RULE_REF_RE.findall(body or ""):
        m = _RULE_NAME_RE.search(ref)
        names.append(m.group(1) if m else ref)
    return list(dict.fromkeys(names))


def _as_str(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, list):
        return ", ".join(str(v) for v in value) or None
    s = str(value).strip()
    return s or None


def _as_list(value: Any) -> list[str] | None:
    if value is None:
        return None
    if isinstance(value, list):
        return [str(v) for v in value]
    parts = [p.strip() for p in str(value).split(",") if p.strip()]
    return parts or None


class RuleSkillLoader:
    """
    Filesystem-backed source of rule and skill context.

    The only mutable state is a parse cache keyed by document path and
    modification time, so repeated lookups (one per task context fetch) do not
    re-parse unchanged files.
    """

    def __init__(
        self,
        root: str | Path = ".cursor",
        *,
        rules_dirname: str = "rules",
        skills_dirname: str = "skills",
        trigger_keywords: Iterable[str] = DEFAULT_TRIGGER_KEYWORDS,
        project_skill_hints: Iterable[str] = ("project",),
    ) -> None:
        self._root = Path(root)
        self._rules_dir = self._root / rules_dirname
        self._skills_dir = self._root / skills_dirname
        self._trigger_keywords = [k for k in trigger_keywords if k and k.strip()]
        self._project_skill_hints = [h.lower() for h in project_skill_hints if h and h.strip()]
        self._cache: dict[Path, tuple[tuple[int, ...], RuleContext | SkillContext]] = {}

    @property
    def rules_dir(self) -> Path:
        return self._rules_dir

    @property
    def skills_dir(self) -> Path:
        return self._skills_dir

    def clear_cache(self) -> None:
        self._cache.clear()

    # ---- bulk loading ----

    def load_project_context(self) -> ProjectContext:
        rules = self.load_all_rules()
        skills = self.load_all_skills()

        project_skill = next(
            (s for s in skills if any(h in s.name.lower() for h in self._project_skill_hints)),
            None,
        )
        project_config = self.extract_project_config(project_skill) if project_skill else None

        logger.info(
            "Loaded project context root=%s rules=%d skills=%d project=%s",
            self._root,
            len(rules),
            len(skills),
            project_config.name if project_config else None,
        )
        return ProjectContext(rules=rules, skills=skills, project_config=project_config)

    def load_all_rules(self) -> list[RuleContext]:
        try:
            files = self._list_rule_files()
        except FileNotFoundError:
            logger.info("Rules directory %s does not exist", self._rules_dir)
            return []
        except OSError:
            logger.exception("Failed to read rules directory %s", self._rules_dir)
            return []

        rules: list[RuleContext] = []
        for path in files:
            rule = self.parse_rule_file(path)
            if rule is not None:
                rules.append(rule)
        return rules

    def load_all_skills(self) -> list[SkillContext]:
        try:
            dirs = self._list_skill_dirs()
        except FileNotFoundError:
            logger.info("Skills directory %s does not exist", self._skills_dir)
            return []
        except OSError:
            logger.exception("Failed to read skills directory %s", self._skills_dir)
            return []

        skills: list[SkillContext] = []
        for path in dirs:
            skill = self.parse_skill_dir(path)
            if skill is not None:
                skills.append(skill)
        return skills

    # ---- single documents ----

    def parse_rule_file(self, path: str | Path) -> RuleContext | None:
        path = Path(path)
        try:
            stamp = (path.stat().st_mtime_ns,)
            cached = self._cached(path, stamp)
            if isinstance(cached, RuleContext):
                return cached
            text = path.read_text("utf-8")
        except (OSError, UnicodeDecodeError):
            logger.exception("Failed to read rule file %s", path)
            return None

        try:
            frontmatter = parse_frontmatter(text)
            body = extract_body(text)
            rule = RuleContext(
                name=path.stem,
                path=str(path),
                content=body,
                key_points=extract_key_points(body),
                always_apply=frontmatter.get("alwaysApply") in (True, "true"),
                description=_as_str(frontmatter.get("description")),
                globs=_as_list(frontmatter.get("globs")),
            )
        except Exception:
            logger.exception("Failed to parse rule file %s", path)
            return None

        self._cache[path] = (stamp, rule)
        return rule

    def parse_skill_dir(self, path: str | Path) -> SkillContext | None:
        path = Path(path)
        skill_file = path / SKILL_FILE
        ref_file = path / REFERENCE_FILE

        try:
            ref_mtime = ref_file.stat().st_mtime_ns if ref_file.is_file() else -1
            stamp = (skill_file.stat().st_mtime_ns, ref_mtime)
        except FileNotFoundError:
            logger.info("Skipping skill %s: no %s", path, SKILL_FILE)
            return None
        except OSError:
            logger.exception("Failed to stat skill %s", path)
            return None

        cached = self._cached(path, stamp)
        if isinstance(cached, SkillContext):
            return cached

        try:
            text = skill_file.read_text("utf-8")
        except (OSError, UnicodeDecodeError):
            logger.exception("Failed to read %s", skill_file)
            return None

        reference: str | None = None
        if ref_mtime >= 0:
            try:
                reference = ref_file.read_text("utf-8")
            except (OSError, UnicodeDecodeError):
                logger.warning("Ignoring unreadable %s", ref_file, exc_info=True)

        try:
            frontmatter = parse_frontmatter(text)
            body = extract_body(text)
            description = _as_str(frontmatter.get("description"))
            skill = SkillContext(
                name=path.name,
                path=str(path),
                description=description or _as_str(frontmatter.get("name")) or path.name,
                triggers=self.extract_triggers(description or body),
                skill_content=body,
                related_rules=find_related_rules(body),
                reference_content=reference,
            )
        except Exception:
            logger.exception("Failed to parse skill %s", path)
            return None

        self._cache[path] = (stamp, skill)
        return skill

    def extract_triggers(self, text: str) -> list[str]:
        return extract_triggers(text, self._trigger_keywords)

    def extract_project_config(self, skill: SkillContext) -> ProjectConfig:
        """Module names (bold table cells) and stack entries (table cells) of a project skill."""
        content = skill.skill_content + (skill.reference_content or "")

        modules = [m.strip() for m in _BOLD_CELL_RE.findall(content) if m.strip()]

        stack: list[str] = []
        # The first two matches are the table header and its separator row.
        for m in list(_TABLE_PAIR_RE.finditer(content))[2:]:
            for cell in m.group(0).split("|"):
                cell = cell.strip()
                if cell and "---" not in cell:
                    stack.append(cell)

        return ProjectConfig(
            name=skill.name,
            description=skill.description,
            modules=modules[:10],
            stack=stack[:20],
        )

    # ---- lookups by name ----

    def get_rule_by_name(self, name: str) -> RuleContext | None:
        name = (name or "").strip()
        if not name:
            return None

        for suffix in RULE_SUFFIXES:
            candidate = self._rules_dir / f"{name}{suffix}"
            if candidate.is_file():
                return self.parse_rule_file(candidate)

        try:
            files = self._list_rule_files()
        except OSError:
            return None
        for path in files:
            if path.name.startswith(name):
                return self.parse_rule_file(path)
        return None

    def get_skill_by_name(self, name: str) -> SkillContext | None:
        name = (name or "").strip()
        if not name:
            return None

        candidate = self._skills_dir / name
        if candidate.is_dir():
            return self.parse_skill_dir(candidate)

        try:
            dirs = self._list_skill_dirs()
        except OSError:
            return None
        for path in dirs:
            if path.name.startswith(name):
                return self.parse_skill_dir(path)
        return None

    # ---- helpers ----

    def _list_rule_files(self) -> list[Path]:
        return sorted(
            p for p in self._rules_dir.iterdir() if p.is_file() and p.suffix in RULE_SUFFIXES
        )

    def _list_skill_dirs(self) -> list[Path]:
        return sorted(p for p in self._skills_dir.iterdir() if p.is_dir())

    def _cached(
        self, path: Path, stamp: tuple[int, ...]
    ) -> RuleContext | SkillContext | None:
        hit = self._cache.get(path)
        if hit is None or hit[0] != stamp:
            return None
        return hit[1]
