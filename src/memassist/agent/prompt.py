"""Prompt builder for the agent."""

from typing import Any

SYSTEM_PROMPT_BASE = """You are a personal knowledge assistant. You remember facts about the user, keep a knowledge base of documents they share, and track the people, projects and technologies those documents mention.

You have access to the following tools:
{tools_description}

Guidelines:
- Save short, durable facts about the user (preferences, decisions, personal details) with memory_save.
- Save longer texts, articles and notes with knowledge_save.
- Search memory or the knowledge base before answering questions that could relate to saved data.
- Use get_datetime when the answer depends on the current date or time.
- Only delete a fact when the user asks or it is clearly outdated.

Answer concisely. If you cannot complete a task with the available tools, say so."""


def build_system_prompt(tools_schema: list[dict[str, Any]], memory_block: str = "") -> str:
    """Build the system prompt with available tools and memory.

    Args:
        tools_schema: List of tool schemas for the LLM.
        memory_block: Optional block with user facts from memory.

    Returns:
        Complete system prompt string.
    """
    if not tools_schema:
        tools_desc = "No tools available."
    else:
        tools_desc = "\n".join(
            f"- {t['function']['name']}: {t['function']['description']}"
            for t in tools_schema
        )

    prompt = SYSTEM_PROMPT_BASE.format(tools_description=tools_desc)

    if memory_block.strip():
        prompt += "\n\n" + memory_block

    return prompt


def format_tool_result(tool_name: str, success: bool, output: str, error: str | None) -> str:
    """Format a tool result for the conversation."""
    if success:
        return f"[{tool_name}] Success:\n{output}"
    return f"[{tool_name}] Error: {error}"
