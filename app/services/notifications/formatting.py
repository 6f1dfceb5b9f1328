"""Render lead alerts for email, SMS and chat."""

from __future__ import annotations

import html

from app.models.lead import Lead, Urgency

DEFAULT_NEXT_ACTION = "Contact and qualify the lead"

URGENCY_COLORS = {
    Urgency.LOW: "#4caf50",
    Urgency.MEDIUM: "#ff9800",
    Urgency.HIGH: "#f44336",
    Urgency.CRITICAL: "#d32f2f",
}


def _priority(lead: Lead) -> str:
    return lead.urgency.value.upper()


def _score(lead: Lead) -> int:
    return round(lead.lead_score.total)


def _percent(confidence: float) -> int:
    return round(confidence * 100)


def _next_action(lead: Lead) -> str:
    return lead.next_action.action if lead.next_action else DEFAULT_NEXT_ACTION


def dossier_url(lead: Lead, frontend_url: str) -> str:
    return f"{frontend_url.rstrip('/')}/leads/{lead.id}"


def email_subject(lead: Lead) -> str:
    return f"New Lead: {lead.company_name} - {_priority(lead)} Priority"


def email_text(lead: Lead, *, frontend_url: str) -> str:
    details = lead.company_details
    lines = [
        "New Lead Discovered",
        "",
        f"Company: {lead.company_name}",
        f"Industry: {details.industry or 'N/A'}",
        f"Priority: {_priority(lead)}",
        f"Lead Score: {_score(lead)}/100",
        "",
        "Product Recommendations:",
    ]
    for rec in lead.product_recommendations:
        lines.append(f"- {rec.product} ({rec.product_name}): {_percent(rec.confidence)}% confidence")
        lines.append(f"  Reason: {', '.join(rec.reason_codes)}")
    lines.extend(["", "Signals:"])
    for signal in lead.signals:
        lines.append(
            f"- {signal.source_type.value}: {signal.source} ({signal.timestamp.date().isoformat()})"
        )
    lines.extend(
        [
            "",
            f"Next Action: {_next_action(lead)}",
            "",
            f"Location: {details.address or 'N/A'}",
            "",
            f"View full lead dossier: {dossier_url(lead, frontend_url)}",
        ]
    )
    return "\n".join(lines) + "\n"


def email_html(lead: Lead, *, frontend_url: str) -> str:
    details = lead.company_details
    rows = []
    for rec in lead.product_recommendations:
        rows.append(
            "<tr>"
            f"<td>{html.escape(rec.product)} - {html.escape(rec.product_name)}</td>"
            f"<td>{_percent(rec.confidence)}%</td>"
            f"<td>{html.escape(', '.join(rec.reason_codes))}</td>"
            "</tr>"
        )
    color = URGENCY_COLORS.get(lead.urgency, "#667eea")
    parts = [
        "<!DOCTYPE html>",
        "<html>",
        '<head><meta charset="UTF-8"></head>',
        '<body style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">',
        "<h1>New Lead Alert</h1>",
        f"<h2>{html.escape(lead.company_name)}</h2>",
        f"<p><strong>Industry:</strong> {html.escape(details.industry or 'N/A')}</p>",
        f"<p><strong>Location:</strong> {html.escape(details.address or 'N/A')}</p>",
        f'<p style="background: {color}; color: white; padding: 8px;">'
        f"Priority: <strong>{_priority(lead)}</strong> | Lead Score: <strong>{_score(lead)}/100</strong></p>",
        "<h3>Recommended Products</h3>",
        "<table>",
        "<thead><tr><th>Product</th><th>Confidence</th><th>Reason</th></tr></thead>",
        "<tbody>",
        *rows,
        "</tbody>",
        "</table>",
        "<h3>Next Action</h3>",
        f"<p>{html.escape(_next_action(lead))}</p>",
        f'<p><a href="{html.escape(dossier_url(lead, frontend_url))}">View Full Dossier</a></p>',
        "</body>",
        "</html>",
    ]
    return "\n".join(parts) + "\n"


def sms_text(lead: Lead) -> str:
    top = lead.product_recommendations[0].product if lead.product_recommendations else "N/A"
    return (
        f"New Lead: {lead.company_name} ({_priority(lead)}). Score: {_score(lead)}. "
        f"Products: {top}. Check app for details."
    )


def chat_text(lead: Lead) -> str:
    products = ", ".join(
        f"{rec.product} ({_percent(rec.confidence)}%)" for rec in lead.product_recommendations[:3]
    )
    return "\n".join(
        [
            "*New Lead Alert*",
            "",
            f"*Company:* {lead.company_name}",
            f"*Priority:* {_priority(lead)}",
            f"*Score:* {_score(lead)}/100",
            "",
            "*Recommended Products:*",
            products or "N/A",
            "",
            f"*Action:* {_next_action(lead)}",
        ]
    )
