"""Shared notification formatting helpers.

Keeping formatting here prevents drift between adapters and keeps messages
consistent regardless of delivery channel.
"""

from __future__ import annotations

import html

from core.models import CodeEntry, Notification, NotificationRequest

DIVIDER = "──────────────"


def _escape_md(value: str) -> str:
    for ch in r"*[`_":
        value = value.replace(ch, f"\\{ch}")
    return value


def _format_markdown(request: NotificationRequest) -> str:
    """Create the Markdown body used by the Telethon client notifier."""

    info = request.game.info
    lines = [
        f"**New {_escape_md(info.display_name)} redeem codes**",
        DIVIDER,
    ]
    for entry in request.codes:
        lines.append(_markdown_line(entry))
        if entry.rewards_text:
            lines.append(f"  ↳ {_escape_md(entry.rewards_text)}")
        lines.append("")
    lines.append(DIVIDER)
    return "\n".join(lines)


def _markdown_line(entry: CodeEntry) -> str:
    line = f"`{_escape_md(entry.code)}`"
    if entry.redeem_url:
        line += f" → [Redeem]({entry.redeem_url})"
    return line


def _format_html(request: NotificationRequest) -> str:
    """Create the HTML body used by the Bot API adapter."""

    info = request.game.info
    parts = [
        f"<b>New {html.escape(info.display_name)} redeem codes</b>",
        DIVIDER,
    ]
    for entry in request.codes:
        line = f"<code>{html.escape(entry.code)}</code>"
        if entry.redeem_url:
            safe_link = html.escape(entry.redeem_url)
            line += f" → <a href=\"{safe_link}\">Redeem</a>"
        parts.append(line)
        if entry.rewards_text:
            parts.append(f"  ↳ {html.escape(entry.rewards_text)}")
        parts.append("")
    parts.append(DIVIDER)
    return "\n".join(parts)


def format_notification(request: NotificationRequest, mode: str) -> str:
    """Return the notification body formatted for the requested mode."""

    if mode == "markdown":
        return _format_markdown(request)
    if mode == "html":
        return _format_html(request)
    raise ValueError(f"Unsupported notification format: {mode}")


class NotificationRenderer:
    """RendererPort implementation producing a body plus plain code lines.

    Codes are also sent one per message so users can copy them with a tap.
    """

    def __init__(self, mode: str) -> None:
        if mode not in {"markdown", "html"}:
            raise ValueError(f"Unsupported notification format: {mode}")
        self.mode = mode

    def render(self, request: NotificationRequest) -> Notification:
        return Notification(
            body=format_notification(request, self.mode),
            code_lines=tuple(entry.code for entry in request.codes),
        )
