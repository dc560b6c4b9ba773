# jurisly/chats/exports.py
"""
Plain-text and printable HTML renderings of chat history.

The HTML form stands in for PDF: it is laid out to be printed to PDF
from a browser.
"""

import html
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Iterable, List, Optional

from ..error_handlers import ErrorCode, ValidationException
from .schemas import ChatMessage, Conversation, MessageRole

HEADER = "Jurisly - Legal AI Assistant"
SEPARATOR_WIDTH = 60

DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
TIME_FORMAT = "%H:%M:%S"


class ExportFormat(str, Enum):
    TXT = "txt"
    HTML = "html"


@dataclass
class ExportFile:
    filename: str
    media_type: str
    content: str


def sender_label(message: ChatMessage) -> str:
    return "You" if message.role == MessageRole.USER else "Jurisly AI"


def _fmt(value: datetime, pattern: str) -> str:
    return value.strftime(pattern)


def _render_messages(messages: Iterable[ChatMessage]) -> str:
    content = ""
    for message in messages:
        content += f"[{_fmt(message.created_at, TIME_FORMAT)}] {sender_label(message)}:\n{message.message}\n\n"
        content += f"{'-' * SEPARATOR_WIDTH}\n\n"
    return content


def conversation_text(conversation: Conversation) -> str:
    content = f"{HEADER}\n"
    content += f"Conversation: {conversation.title}\n"
    content += f"Date: {_fmt(conversation.created_at, DATE_FORMAT)}\n"
    content += f"{'=' * SEPARATOR_WIDTH}\n\n"
    return content + _render_messages(conversation.messages)


def all_conversations_text(
    conversations: List[Conversation],
    email: str,
    exported_at: Optional[datetime] = None,
) -> str:
    exported_at = exported_at or datetime.now(timezone.utc)
    content = f"{HEADER}\n"
    content += "All Conversations Export\n"
    content += f"User: {email}\n"
    content += f"Export Date: {_fmt(exported_at, DATE_FORMAT)}\n"
    content += f"{'=' * SEPARATOR_WIDTH}\n\n"

    for conversation in conversations:
        content += f"\n{'#' * SEPARATOR_WIDTH}\n"
        content += f"CONVERSATION: {conversation.title}\n"
        content += f"Created: {_fmt(conversation.created_at, DATE_FORMAT)}\n"
        content += f"{'#' * SEPARATOR_WIDTH}\n\n"
        content += _render_messages(conversation.messages)
    return content


_HTML_STYLE = """
    body { font-family: Arial, sans-serif; line-height: 1.6; color: #333; margin: 20px; background-color: #fff; }
    .message-block { margin: 15px 0; padding: 10px; border-left: 3px solid #ccc; background-color: #f9f9f9; }
    .timestamp { font-size: 0.85em; color: #666; margin-bottom: 5px; }
    .divider { border-top: 1px solid #ddd; margin: 20px 0; }
    .conversation-header { background-color: #1a4d7d; color: white; padding: 15px; margin: 20px 0 15px 0; border-radius: 5px; }
"""


def text_to_html(text_content: str) -> str:
    """Lay a text export out as a printable page"""
    blocks = []
    for line in text_content.split("\n"):
        if line.startswith("#") and not line.startswith("####"):
            blocks.append(f'<div class="conversation-header">{html.escape(line.replace("#", "").strip())}</div>')
        elif line.startswith("[") and "]" in line:
            blocks.append(f'<div class="message-block"><div class="timestamp">{html.escape(line)}</div></div>')
        elif line == "":
            blocks.append('<div class="divider"></div>')
        else:
            blocks.append(f"<p>{html.escape(line)}</p>")

    return (
        "<!DOCTYPE html>\n<html>\n<head>\n"
        '<meta charset="UTF-8">\n'
        "<title>Jurisly Chat Export</title>\n"
        f"<style>{_HTML_STYLE}</style>\n"
        "</head>\n<body>\n"
        + "".join(blocks)
        + "\n</body>\n</html>\n"
    )


def render(text_content: str, fmt: ExportFormat, basename: str) -> ExportFile:
    if fmt == ExportFormat.HTML:
        return ExportFile(f"{basename}.html", "text/html; charset=utf-8", text_to_html(text_content))
    return ExportFile(f"{basename}.txt", "text/plain; charset=utf-8", text_content)


def parse_export_format(value: str) -> ExportFormat:
    """txt or html; "pdf" is accepted as the printable HTML form"""
    normalized = (value or "").strip().lower()
    if normalized == "pdf":
        return ExportFormat.HTML
    try:
        return ExportFormat(normalized)
    except ValueError:
        raise ValidationException(
            f"Unsupported export format: {value}",
            error_code=ErrorCode.UNSUPPORTED_EXPORT_FORMAT,
            details={"supported": [f.value for f in ExportFormat] + ["pdf"]}
        )
