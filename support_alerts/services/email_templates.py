"""HTML renderers for escalation, report and notification emails.

Each renderer is a pure function from a content schema to an HTML document.
All interpolated values are escaped.
"""

from __future__ import annotations

import html

from support_alerts.core.config import settings
from support_alerts.schemas.notifications import (
    DailyReportContent,
    KnowledgeBankSuggestionContent,
    OverdueAlertContent,
    VipMessageEmailContent,
    WeeklyReportContent,
)

FONT_STACK = (
    "-apple-system, BlinkMacSystemFont, 'Segoe UI', 'Roboto', 'Oxygen', 'Ubuntu', "
    "'Cantarell', 'Fira Sans', 'Droid Sans', 'Helvetica Neue', sans-serif"
)


def _e(value: object) -> str:
    return html.escape(str(value), quote=True)


def conversation_url(slug: str) -> str:
    return f"{settings.base_url}/conversations?id={slug}"


def _document(*, preview: str, title: str, body: str, utm_source: str) -> str:
    base_url = settings.base_url
    return f"""<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>{_e(title)}</title></head>
<body style="font-family: {FONT_STACK}; background-color: #ffffff; padding: 20px;">
  <div style="display: none; max-height: 0; overflow: hidden;">{_e(preview)}</div>
  <div style="max-width: 600px; margin: 0 auto; background-color: #ffffff;">
    <p style="font-size: 1.5rem; font-weight: bold; margin-bottom: 0.5rem; color: #1a1a1a;">
      {_e(title)}
    </p>
    {body}
    <hr style="margin: 1.5rem 0; border-color: #e5e7eb;">
    <p style="font-size: 0.75rem; line-height: 22px; color: #6b7280;">
      <a href="{_e(base_url)}?utm_source={_e(utm_source)}&amp;utm_medium=email"
         style="color: #6b7280; text-decoration: none;">Sent by Helper</a>
    </p>
  </div>
</body>
</html>"""


def render_overdue_alert(content: OverdueAlertContent, *, utm_source: str) -> str:
    """Assigned-ticket and VIP response-time alerts share one layout."""
    items = []
    for ticket in content.overdue_tickets:
        if content.counterpart_label:
            who = f"{_e(content.counterpart_label)} {_e(ticket.counterpart_name)}"
        else:
            who = _e(ticket.counterpart_name)
        items.append(
            f"""<div style="margin-bottom: 12px;">
        <a href="{_e(conversation_url(ticket.slug))}"
           style="font-size: 0.9375rem; font-weight: 600; color: #1a1a1a; text-decoration: none;">
          &bull; {_e(ticket.subject)}
        </a>
        <p style="margin: 4px 0 0 12px; font-size: 0.875rem; color: #4b5563;">
          {who}, {_e(ticket.time_since_last_reply)} since last reply
        </p>
      </div>"""
        )
    if content.remaining_count:
        items.append(
            f"""<p style="margin: 12px 0 0 0; font-size: 0.875rem; color: #6b7280; font-style: italic;">
        (and {content.remaining_count} more)
      </p>"""
        )

    body = f"""<p style="font-size: 1rem; color: #dc2626; font-weight: bold; margin-bottom: 1.5rem;">
      {_e(content.headline)}
    </p>
    <div style="background: #fef2f2; padding: 20px; border-radius: 8px; border: 1px solid #fee2e2;">
      {"".join(items)}
    </div>"""
    return _document(
        preview=content.headline, title=content.title, body=body, utm_source=utm_source
    )


def render_daily_report(content: DailyReportContent) -> str:
    title = f"Daily summary for {content.mailbox_name}"
    stats = "".join(
        f'<p style="margin: 8px 0; font-size: 0.9375rem; color: #374151;">{_e(line)}</p>'
        for line in content.lines()
    )
    body = f"""<p style="font-size: 0.875rem; color: #6b7280; margin-bottom: 1.5rem;">
      Here's your daily support metrics overview
    </p>
    <div style="background: #f8f9fa; padding: 20px; border-radius: 8px; border: 1px solid #e5e7eb;">
      {stats}
    </div>"""
    return _document(preview=title, title=title, body=body, utm_source="daily-report")


def render_weekly_report(content: WeeklyReportContent) -> str:
    title = f"Weekly summary for {content.mailbox_name}"
    week = f"{content.start_date.date().isoformat()} to {content.end_date.date().isoformat()}"
    sections = [
        f'<p style="font-size: 0.875rem; color: #6b7280;">Week of {_e(week)}</p>',
    ]
    if content.active_members:
        rows = "".join(
            f'<p style="margin: 4px 0; color: #374151;">&bull; {_e(member.name)}: {member.count:,}</p>'
            for member in content.active_members
        )
        sections.append(f'<p style="font-weight: 600;">Team members:</p>{rows}')
    if content.inactive_members:
        sections.append(
            f'<p><strong>No tickets answered:</strong> {_e(", ".join(content.inactive_members))}</p>'
        )
    if content.total_tickets_resolved > 0:
        people = "person" if content.active_user_count == 1 else "people"
        sections.append(
            f"<p><strong>Total replies:</strong> {content.total_tickets_resolved:,} "
            f"from {content.active_user_count} {people}</p>"
        )
    body = f"""<div style="background: #f8f9fa; padding: 20px; border-radius: 8px; border: 1px solid #e5e7eb;">
      {"".join(sections)}
    </div>"""
    return _document(preview=title, title=title, body=body, utm_source="weekly-report")


def render_vip_message(content: VipMessageEmailContent) -> str:
    heading = content.title or f"New VIP Message for {content.mailbox_name}"
    author = content.sender_name or content.customer_name
    link = conversation_url(content.conversation_slug)
    preview = _e(content.message_preview).replace("\n", "<br>")
    body = f"""<p style="font-size: 0.9375rem; color: #374151;">
      <strong>{_e(author)}</strong> sent a new message:
    </p>
    <div style="background: #f8f9fa; padding: 20px; border-radius: 8px; border: 1px solid #e5e7eb;">
      <a href="{_e(link)}" style="font-weight: 600; color: #1a1a1a; text-decoration: none;">
        {_e(content.subject or "No subject")}
      </a>
      <p style="margin-top: 8px; color: #374151; line-height: 1.6;">{preview}</p>
    </div>
    <p style="margin-top: 1.5rem;">
      <a href="{_e(link)}" style="background: #1a1a1a; color: #ffffff; padding: 10px 18px;
         border-radius: 6px; text-decoration: none;">View conversation</a>
    </p>"""
    return _document(
        preview=f"{heading} - {content.subject}",
        title=heading,
        body=body,
        utm_source="vip-message-notification",
    )


def render_knowledge_bank_suggestion(content: KnowledgeBankSuggestionContent) -> str:
    title = f"Knowledge Bank Suggestion for {content.mailbox_name}"
    suggested = _e(content.suggested_content).replace("\n", "<br>")
    sections = [
        f"""<p style="font-size: 1rem; color: #2563eb; font-weight: bold;">{_e(content.title)}</p>
    <div style="background: #f0f9ff; padding: 20px; border-radius: 8px; border: 1px solid #bae6fd;">
      <p style="font-size: 0.875rem; font-weight: 600; color: #0369a1;">Suggested content:</p>
      <p style="color: #1a1a1a; line-height: 1.6;">{suggested}</p>
    </div>"""
    ]
    if content.is_edit and content.original_content:
        original = _e(content.original_content).replace("\n", "<br>")
        sections.append(
            f"""<div style="background: #fef3c7; padding: 20px; border-radius: 8px;
                border: 1px solid #fcd34d; margin-top: 1rem;">
      <p style="font-size: 0.875rem; font-weight: 600; color: #92400e;">Original content:</p>
      <p style="color: #1a1a1a; line-height: 1.6;">{original}</p>
    </div>"""
        )
    return _document(
        preview=content.title,
        title=title,
        body="".join(sections),
        utm_source="knowledge-bank-suggestion",
    )
