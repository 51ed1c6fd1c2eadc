"""Formatting helpers for Telegram replies."""

from ..memory.models import MemoryFact

MAX_MESSAGE_LENGTH = 4096


def split_message(text: str, max_length: int = MAX_MESSAGE_LENGTH) -> list[str]:
    """Split text into chunks that fit Telegram's message limit.

    Splits on line boundaries where possible; a single line longer than
    the limit is cut into fixed-size pieces.
    """
    if len(text) <= max_length:
        return [text]

    chunks: list[str] = []
    current = ""
    for line in text.split("\n"):
        while len(line) > max_length:
            if current:
                chunks.append(current)
                current = ""
            chunks.append(line[:max_length])
            line = line[max_length:]

        candidate = f"{current}\n{line}" if current else line
        if len(candidate) > max_length:
            chunks.append(current)
            current = line
        else:
            current = candidate

    if current:
        chunks.append(current)
    return chunks


def format_facts(facts: list[MemoryFact]) -> str:
    """Render a /memory listing."""
    if not facts:
        return "No facts saved yet."
    lines = [f"[{f.id}] [{f.category.value}] {f.content}" for f in facts]
    return "What I remember:\n" + "\n".join(lines)


MAX_FILE_CHARS = 15000

TEXT_MIME_MARKERS = (
    "json",
    "xml",
    "javascript",
    "typescript",
    "yaml",
    "toml",
    "markdown",
    "csv",
)
TEXT_EXTENSIONS = (
    ".rs",
    ".go",
    ".py",
    ".ts",
    ".js",
    ".md",
    ".txt",
    ".json",
    ".yaml",
    ".yml",
    ".toml",
    ".csv",
    ".log",
    ".sql",
    ".sh",
    ".env.example",
)


def is_text_file(file_name: str, mime_type: str) -> bool:
    """Whether an uploaded file can be read as text, by MIME type or extension."""
    if mime_type.startswith("text/") or any(m in mime_type for m in TEXT_MIME_MARKERS):
        return True
    return file_name.lower().endswith(TEXT_EXTENSIONS)


def build_file_prompt(
    file_name: str, content: str, caption: str = "", max_chars: int = MAX_FILE_CHARS
) -> str:
    """Wrap uploaded file content for the agent, truncating long files."""
    if len(content) > max_chars:
        content = content[:max_chars] + f"...\n\n(truncated, {len(content)} characters total)"
    return f"File: {file_name}\n\n```\n{content}\n```\n\n{caption}".rstrip()


def file_history_text(file_name: str, caption: str = "") -> str:
    """Short form of an upload kept in conversation history."""
    return f"[File: {file_name}] {caption}".rstrip()
