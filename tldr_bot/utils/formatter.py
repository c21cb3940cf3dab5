"""Render model markdown as Telegram HTML."""

import html
import re
from typing import Optional

_BOLD_RE = re.compile(r'\*\*(.+?)\*\*', re.DOTALL)
_ITALIC_RE = re.compile(r'(?<![\w*])[*_](?![\s*_])(.+?)(?<![\s*_])[*_](?![\w*])')
_CODE_RE = re.compile(r'`([^`\n]+)`')
_HEADER_RE = re.compile(r'^#{1,6}\s+(.+)$')
_BULLET_RE = re.compile(r'^(\s*)[*\-+]\s+')


def markdown_to_telegram_html(text: str) -> str:
    """Convert the lightweight markdown the model produces into Telegram HTML.

    Handles headers, bullets, **bold**, *italic*/_italic_ and `code`.
    Everything else is HTML-escaped so Telegram accepts the message.
    """
    lines = []
    for line in html.escape(text, quote=False).splitlines():
        header = _HEADER_RE.match(line)
        if header:
            line = f"**{header.group(1).strip()}**"
        line = _BULLET_RE.sub(lambda m: f"{m.group(1)}• ", line)
        lines.append(line)

    rendered = '\n'.join(lines)
    rendered = _CODE_RE.sub(r'<code>\1</code>', rendered)
    rendered = _BOLD_RE.sub(r'<b>\1</b>', rendered)
    rendered = _ITALIC_RE.sub(r'<i>\1</i>', rendered)
    return rendered


def format_summary_message(summary_text: str, label: str, message_count: Optional[int] = None) -> str:
    """Build the final Telegram HTML message for a summary.

    Args:
        summary_text: Markdown summary from the model
        label: Human-readable window description (e.g. "6h", "from message")
        message_count: Number of messages that were summarized

    Returns:
        HTML string ready to send with parse_mode=HTML
    """
    header = f"📝 <b>TLDR Summary</b> ({html.escape(label, quote=False)})"
    if message_count:
        header += f" · {message_count} messages"
    return f"{header}\n\n{markdown_to_telegram_html(summary_text)}"
