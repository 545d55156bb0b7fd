"""Discord markdown for each kind of mirrored event."""

from __future__ import annotations

import json
import os
import re
from typing import Any

ANSI_RE = re.compile(r"\x1b\[[0-9;?]*[A-Za-z]")

THREAD_NAME_MAX = 100
TOOL_INPUT_MAX = 500
TOOL_OUTPUT_MAX = 1000
PREVIEW_MAX = 60

STARTUP_NOTICE = "🟢 **Claude Code mirror online**\nNew sessions will appear as threads here."
SHUTDOWN_NOTICE = "🔴 **Claude Code mirror shutting down**"
COMPACTION_COMPLETE = "✅ **Compaction complete**\nContext was summarized; the session continues."


def strip_ansi(text: str) -> str:
    return ANSI_RE.sub("", text)


def strip_markdown(text: str) -> str:
    """Remove Discord formatting so the body is accepted as plain text."""
    text = text.replace("```", "")
    for marker in ("**", "__", "~~", "||"):
        text = text.replace(marker, "")
    text = re.sub(r"(?<!\w)\*(?!\s)|(?<!\s)\*(?!\w)", "", text)
    return text.replace("`", "'")


def truncate(text: str, limit: int, suffix: str = "...") -> str:
    if len(text) <= limit:
        return text
    return text[: max(0, limit - len(suffix))] + suffix


def short_id(session_id: str) -> str:
    return session_id[:8]


def thread_name(hostname: str | None, project_dir: str | None, session_id: str) -> str:
    """``host • project • shortid``, within Discord's thread name limit."""
    parts = []
    if hostname:
        parts.append(hostname)
    if project_dir:
        parts.append(os.path.basename(project_dir.rstrip("/")) or project_dir)
    parts.append(short_id(session_id))
    return truncate(" • ".join(parts), THREAD_NAME_MAX)


def _stringify(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return json.dumps(value, indent=2, ensure_ascii=False)


def _code_block(text: str) -> str:
    # A literal fence inside the body would end the block early
    return "```\n" + text.replace("```", "'''") + "\n```"


def tool_preview(tool: str, tool_input: Any) -> str:
    """One-line description of what a tool call is about to do."""
    if not isinstance(tool_input, dict):
        return truncate(_stringify(tool_input).replace("\n", " "), PREVIEW_MAX)
    for key in ("file_path", "path", "command", "pattern", "url", "query", "description"):
        value = tool_input.get(key)
        if isinstance(value, str) and value:
            return truncate(value.replace("\n", " "), PREVIEW_MAX)
    return ""


# ---------------------------------------------------------------------------
# Session lifecycle
# ---------------------------------------------------------------------------


def format_session_start(
    session_id: str,
    hostname: str | None = None,
    project_dir: str | None = None,
    terminal_target: str | None = None,
) -> str:
    lines = ["🚀 **Session started**", f"Session: `{session_id}`"]
    if hostname:
        lines.append(f"Host: `{hostname}`")
    if project_dir:
        lines.append(f"Project: `{project_dir}`")
    if terminal_target:
        lines.append(f"tmux: `{terminal_target}`")
        lines.append("Reply in this thread to type into the session.")
    return "\n".join(lines)


def format_session_resumed(session_id: str) -> str:
    return f"🔄 **Session resumed**\nSession: `{session_id}`"


def format_session_end(session_id: str, duration_seconds: float | None = None) -> str:
    message = f"👋 **Session ended**\nSession: `{session_id}`"
    if duration_seconds is not None and duration_seconds > 0:
        minutes, seconds = divmod(int(duration_seconds), 60)
        hours, minutes = divmod(minutes, 60)
        if hours:
            message += f"\nDuration: {hours}h {minutes}m {seconds}s"
        else:
            message += f"\nDuration: {minutes}m {seconds}s"
    return message


def format_stale_session_end(reason: str) -> str:
    return f"🔌 **Session ended (terminal closed)**\n{reason}"


def format_session_aborted(session_id: str) -> str:
    return f"🛑 **Session aborted from Discord**\nSession: `{session_id}`"


# ---------------------------------------------------------------------------
# Conversation
# ---------------------------------------------------------------------------


def format_user_input(content: str) -> str:
    return f"👤 **User (cli):**\n{strip_ansi(content)}"


def format_agent_response(content: str) -> str:
    return f"🤖 **Claude:**\n{strip_ansi(content)}"


def format_tool_start(tool: str, tool_input: Any) -> str:
    preview = tool_preview(tool, tool_input).replace("`", "'")
    if preview:
        return f"🔧 **{tool}** `{preview}`"
    return f"🔧 **{tool}**"


def format_tool_result(tool: str, tool_input: Any, output: Any) -> str:
    message = f"🔧 **Tool: {tool}**"
    input_text = _stringify(tool_input)
    if input_text:
        message += "\n📥 Input:\n" + _code_block(truncate(input_text, TOOL_INPUT_MAX))
    output_text = strip_ansi(_stringify(output))
    if output_text:
        message += "\n📤 Output:\n" + _code_block(
            truncate(output_text, TOOL_OUTPUT_MAX, "\n... (truncated)")
        )
    return message


def format_error(message: str) -> str:
    return "❌ **Error:**\n" + _code_block(strip_ansi(message))


# ---------------------------------------------------------------------------
# Approvals
# ---------------------------------------------------------------------------


def format_approval_request(description: str) -> str:
    return f"⚠️ **Approval required**\n{strip_ansi(description)}"


def format_approval_timeout() -> str:
    return "⏰ **Approval timed out**\nAnswer the prompt in the terminal instead."


DECISION_LABELS = {
    "approve": "✅ Approved",
    "reject": "❌ Rejected",
    "abort": "🛑 Aborted",
}


# ---------------------------------------------------------------------------
# Compaction
# ---------------------------------------------------------------------------


def format_compaction_started(trigger: str | None) -> str:
    if trigger == "manual":
        return "🗜️ **Compacting context** (requested with /compact)"
    return "🗜️ **Compacting context** (context window nearly full)"


# ---------------------------------------------------------------------------
# Terminal injection
# ---------------------------------------------------------------------------


def format_injection_failure(terminal_target: str | None, error: str) -> str:
    if not terminal_target:
        return (
            "⚠️ **Could not deliver your message**\n"
            "This session has no tmux pane recorded. Start Claude Code inside tmux "
            "to reply from Discord."
        )
    return (
        "⚠️ **Could not deliver your message**\n"
        f"tmux pane `{terminal_target}` did not accept input: {error}\n"
        "Check that the session is still running."
    )


def format_key_sent(label: str) -> str:
    return f"⌨️ Sent **{label}** to the terminal"
