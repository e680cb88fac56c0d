"""Skills — SKILL.md metadata discovery and the system prompt section."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import yaml
from loguru import logger


@dataclass
class SkillMetadata:
    """Parsed skill metadata from YAML frontmatter."""

    name: str
    description: str
    path: str  # location inside the exec env, e.g. "skills/data_analysis"


def parse_frontmatter(markdown: str) -> tuple[dict, str]:
    """Split a SKILL.md document into (frontmatter_dict, body).

    Documents without a leading ``---`` block return ``({}, markdown)``.
    """
    if not markdown.startswith("---"):
        return {}, markdown

    parts = markdown.split("---", 2)
    if len(parts) < 3:
        return {}, markdown

    fm = yaml.safe_load(parts[1]) or {}
    if not isinstance(fm, dict):
        return {}, markdown
    return fm, parts[2]


def load_skills_metadata(skills_dir: str | Path) -> list[SkillMetadata]:
    """Scan ``skills_dir/<folder>/SKILL.md`` for skills.

    Folders without a SKILL.md, or whose frontmatter lacks a name or a
    description, are skipped. A missing directory yields an empty list.
    """
    base = Path(skills_dir)
    if not base.is_dir():
        return []

    skills: list[SkillMetadata] = []
    for child in sorted(base.iterdir()):
        skill_file = child / "SKILL.md"
        if not child.is_dir() or not skill_file.is_file():
            continue
        try:
            fm, _ = parse_frontmatter(skill_file.read_text(encoding="utf-8"))
        except (OSError, yaml.YAMLError) as e:
            logger.warning(f"Failed to parse skill {skill_file}: {e}")
            continue

        name = fm.get("name")
        description = fm.get("description")
        if not name or not description:
            logger.debug(f"Skipping skill without name/description: {skill_file}")
            continue
        skills.append(SkillMetadata(
            name=str(name),
            description=str(description),
            path=f"skills/{child.name}",
        ))
    return skills


def format_skills_section(skills: list[SkillMetadata]) -> str:
    """Markdown section listing skills for the system prompt ("" when none)."""
    if not skills:
        return ""

    lines = [
        "## Available Skills",
        "",
        "You have access to the following skills located in the `skills/` directory. "
        "Each skill contains a SKILL.md file with detailed instructions and potentially "
        "bundled scripts.",
        "",
        "To use a skill:",
        "1. Read the full instructions: `cat <skill_path>/SKILL.md`",
        "2. Follow the instructions and use any bundled resources as described",
        "",
    ]
    for skill in skills:
        lines.append(f"- **{skill.name}**: {skill.description} (`{skill.path}/SKILL.md`)")
    return "\n".join(lines)
