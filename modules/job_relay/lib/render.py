from __future__ import annotations

from typing import Any

from .models import BudgetCategory, JobRecord, Priority

_CATEGORY_EMOJI = {
    BudgetCategory.QUICK_WINS: "⚡",
    BudgetCategory.MEDIUM_PROJECTS: "📊",
    BudgetCategory.HIGH_VALUE: "💎",
}

_PRIORITY_EMOJI = {
    Priority.HIGH: "🔴",
    Priority.MEDIUM: "🟡",
    Priority.LOW: "🟢",
}


def _amount(value: float) -> str:
    # 1200.0 -> "1200", 12.5 -> "12.50"
    return str(int(value)) if value == int(value) else f"{value:.2f}"


def budget_display(record: JobRecord) -> str:
    return f"${_amount(record.budget)}" if record.budget > 0 else "Not specified"


def card_payload(record: JobRecord, category: BudgetCategory, priority: Priority) -> dict[str, Any]:
    """Trello card body (list id is added by the sink)."""
    verified_line = (
        "✅ Client Status: Payment Verified" if record.client_verified else "⚠️ Client Status: Not Verified"
    )
    desc_lines = [
        record.summary.strip(),
        "",
        verified_line,
        f"💰 Budget: {budget_display(record)}",
        f"💵 Client Spent: ${_amount(record.client_spent)}",
    ]
    if record.url:
        desc_lines.append(f"🔗 [Apply Here]({record.url})")
    return {
        "name": f"[{priority.value}] {record.title}",
        "desc": "\n".join(desc_lines).strip(),
        "pos": "top",
    }


def chat_message(record: JobRecord, category: BudgetCategory, priority: Priority) -> dict[str, Any]:
    """Slack Block Kit payload with a plain-text fallback."""
    header = f"{_CATEGORY_EMOJI[category]} {_PRIORITY_EMOJI[priority]} New Job Opportunity!"
    status = "✅ Verified" if record.client_verified else "⚠️ Not Verified"

    blocks: list[dict[str, Any]] = [
        {"type": "header", "text": {"type": "plain_text", "text": header, "emoji": True}},
        {"type": "section", "text": {"type": "mrkdwn", "text": f"*{record.title}*"}},
        {
            "type": "section",
            "fields": [
                {"type": "mrkdwn", "text": f"*Budget:*\n{budget_display(record)}"},
                {"type": "mrkdwn", "text": f"*Client Status:*\n{status}"},
                {"type": "mrkdwn", "text": f"*Client Spent:*\n${_amount(record.client_spent)}"},
                {"type": "mrkdwn", "text": f"*Category:*\n{category.label}"},
            ],
        },
    ]
    if record.url:
        blocks.append({
            "type": "actions",
            "elements": [
                {
                    "type": "button",
                    "text": {"type": "plain_text", "text": "Apply Now", "emoji": True},
                    "url": record.url,
                }
            ],
        })

    return {
        "text": f"New job ({category.label}, {priority.value}): {record.title} {record.url}".strip(),
        "blocks": blocks,
    }
