"""Skills — modular instruction packages uploaded into the exec env."""

from agentloop.agent.skills.loader import (
    SkillMetadata,
    format_skills_section,
    load_skills_metadata,
)

__all__ = ["SkillMetadata", "format_skills_section", "load_skills_metadata"]
