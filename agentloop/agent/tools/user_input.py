"""User input tool — let the agent ask the person running the session a question."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any, Literal

from prompt_toolkit import PromptSession
from pydantic import BaseModel, Field, model_validator
from rich.console import Console
from rich.markup import escape

from agentloop.agent.tools.base import Tool, ToolResult
from agentloop.core.metadata import ToolUseCountMetadata

USER_INPUT_TOOL_NAME = "user_input"

AskFn = Callable[[str], Awaitable[str]]

_YES = {"y", "yes", "true", "1"}
_NO = {"n", "no", "false", "0"}


class UserInputParams(BaseModel):
    question: str = Field(
        min_length=1,
        description="A single question to ask the user (*not* multiple questions)",
    )
    question_type: Literal["text", "choice", "confirm"] = Field(
        default="text",
        description="'text' for free-form, 'choice' for multiple choice, 'confirm' for yes/no",
    )
    choices: list[str] | None = Field(
        default=None,
        description="List of valid choices (required when question_type is 'choice')",
    )
    default: str = Field(default="", description="Value used when the user just presses Enter")

    @model_validator(mode="after")
    def _choices_required(self) -> UserInputParams:
        if self.question_type == "choice" and not self.choices:
            raise ValueError("choices is required when question_type is 'choice'")
        return self


def normalize_yes_no(text: str) -> str | None:
    """Map y/yes/true/1 and n/no/false/0 to "yes" / "no"; anything else to None."""
    s = text.strip().lower()
    if s in _YES:
        return "yes"
    if s in _NO:
        return "no"
    return None


async def prompt_line(message: str) -> str:
    """Read one line from the terminal."""
    return await PromptSession().prompt_async(message)


def make_user_input_tool(ask: AskFn | None = None, console: Console | None = None) -> Tool:
    """
    Build the ``user_input`` tool.

    Confirm and choice questions re-ask until the answer is valid. An empty
    answer falls back to ``default``.

    Parameters
    ----------
    ask : callable, optional
        Coroutine taking the prompt text and returning the typed line.
        Defaults to a prompt_toolkit prompt.
    console : rich.console.Console, optional
        Where hints and choice lists are printed.
    """
    ask = ask or prompt_line
    console = console or Console()

    def _suffix(default: str) -> str:
        return f" [default: {default}]" if default else ""

    async def _confirm(params: UserInputParams, question: str) -> str:
        default = normalize_yes_no(params.default) if params.default else None
        while True:
            raw = await ask(f"{question}{_suffix(default or '')} (y/n): ")
            answer = default if raw.strip() == "" and default else normalize_yes_no(raw)
            if answer:
                return answer
            console.print("Please answer 'y'/'n' (or 'yes'/'no').")

    async def _choice(params: UserInputParams, question: str) -> str:
        choices = params.choices or []
        console.print(f"Choices: {escape(', '.join(choices))}")
        while True:
            raw = await ask(f"{question}{_suffix(params.default)}: ")
            candidate = raw.strip() or params.default
            if candidate in choices:
                return candidate
            console.print(f"Please choose one of: {escape(', '.join(choices))}")

    async def handler(params: UserInputParams, context: Any) -> ToolResult:
        console.print()
        question = params.question.strip()
        if params.question_type == "confirm":
            answer = await _confirm(params, question)
        elif params.question_type == "choice":
            answer = await _choice(params, question)
        else:
            raw = await ask(f"{question}{_suffix(params.default)}: ")
            answer = params.default if raw.strip() == "" else raw
        return ToolResult(content=answer, metadata=ToolUseCountMetadata(1))

    return Tool(
        name=USER_INPUT_TOOL_NAME,
        description=(
            "Ask the user a single question when you need clarification or are uncertain. "
            "Supports 'text' (free-form), 'choice' (pick from a list of choices), and "
            "'confirm' (yes/no). Returns the user's response. There should only EVER be one "
            "question per call to this tool. If you need multiple questions, call this tool "
            "multiple times."
        ),
        handler=handler,
        parameters=UserInputParams,
    )
