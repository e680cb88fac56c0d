"""Prompts and the system prompt builder."""

from __future__ import annotations

from collections.abc import Container

from agentloop.agent.skills.loader import SkillMetadata, format_skills_section
from agentloop.agent.tools.user_input import USER_INPUT_TOOL_NAME

BASE_SYSTEM_PROMPT = """You are an AI agent with access to tools to help complete tasks.

You should:
- Use tools when they would help accomplish the task
- Think step by step and explain your reasoning
- Call the finish tool when the task is complete

Available tools will be provided to you. Use them wisely to accomplish your goals."""

MESSAGE_SUMMARIZER_PROMPT = """You are summarizing a conversation between a user and an AI assistant.

Your task is to create a concise summary that preserves the key information:
- The original task or goal
- Important findings or results
- Current progress and state
- Any critical context needed to continue

Keep the summary focused and relevant. Omit unnecessary details."""

MESSAGE_SUMMARIZER_BRIDGE_TEMPLATE = (
    "[Previous conversation summarized below]\n\n{summary}\n\n[Resuming conversation]"
)

SUMMARY_REQUEST = "Please provide a concise summary."


class ContextBuilder:
    """
    Builds the layered system prompt for a session.

    Layers:
      1. Base instructions
      2. User interaction note (depends on a ``user_input`` tool)
      3. Uploaded files
      4. Skills index
      5. Custom system prompt (agent-level)
    """

    def __init__(self, system_prompt: str | None = None):
        self.system_prompt = system_prompt

    def build(
        self,
        tool_names: Container[str],
        uploaded_file_paths: list[str] | None = None,
        skills: list[SkillMetadata] | None = None,
    ) -> str:
        """Build the full system prompt.

        Parameters
        ----------
        tool_names : Container[str]
            Names of the tools active in the session.
        uploaded_file_paths : list[str], optional
            Paths of input files inside the exec env.
        skills : list[SkillMetadata], optional
            Skills uploaded into the exec env.
        """
        parts = [BASE_SYSTEM_PROMPT]

        if USER_INPUT_TOOL_NAME in tool_names:
            parts.append(
                "You have access to the user_input tool which allows you to ask the user "
                "questions when you need clarification or are uncertain about something."
            )
        else:
            parts.append("You are not able to interact with the user during the task.")

        if uploaded_file_paths:
            files = "\n".join(f"- {p}" for p in uploaded_file_paths)
            parts.append(f"Uploaded files:\n{files}")

        section = format_skills_section(skills or [])
        if section:
            parts.append(section)

        if self.system_prompt:
            parts.append(self.system_prompt)

        return "\n\n".join(parts)
