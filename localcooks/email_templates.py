"""
MJML Email Templates
Every notification the platform sends, rendered as MJML and compiled at send time
"""

from html import escape
from typing import Optional

from .config import FRONTEND_URL

THEME = {
    "primary": "#f51042",
    "primary_dark": "#c20d35",
    "background": "#f8fafc",
    "text_primary": "#0f172a",
    "text_secondary": "#334155",
    "text_muted": "#64748b",
    "border": "#e2e8f0",
    "success": "#16a34a",
    "warning": "#f59e0b",
    "danger": "#ef4444",
}

LOGO_URL = "https://localcooks.ca/logo-lc.png"


def format_money(cents: Optional[int]) -> str:
    return f"${(cents or 0) / 100:,.2f}"


def get_base_template(
    title: str,
    preview_text: str,
    content_sections: str,
    cta_url: Optional[str] = None,
    cta_label: Optional[str] = None,
) -> str:
    """Base MJML template wrapper for all emails"""
    cta_section = ""
    if cta_url and cta_label:
        cta_section = f"""
        <mj-section padding="20px 0">
          <mj-column>
            <mj-button href="{cta_url}" background-color="{THEME['primary']}" color="#ffffff"
              font-weight="600" border-radius="8px" padding="18px 40px" font-size="16px">
              {cta_label}
            </mj-button>
          </mj-column>
        </mj-section>
        """

    return f"""
    <mjml>
      <mj-head>
        <mj-title>{title}</mj-title>
        <mj-preview>{preview_text}</mj-preview>
        <mj-attributes>
          <mj-all font-family="-apple-system, BlinkMacSystemFont, 'Segoe UI', Arial, sans-serif" />
          <mj-text font-size="16px" line-height="1.6" color="{THEME['text_secondary']}" />
        </mj-attributes>
      </mj-head>
      <mj-body background-color="{THEME['background']}">
        <mj-section background-color="#ffffff" padding="32px 20px">
          <mj-column>
            <mj-image src="{LOGO_URL}" alt="Local Cooks" width="140px" href="https://localcooks.ca" padding="0" />
          </mj-column>
        </mj-section>
        <mj-section background-color="#ffffff" padding="0 40px 48px 40px">
          <mj-column>
            <mj-text font-size="24px" font-weight="600" color="{THEME['text_primary']}" padding="0 0 16px 0">
              {title}
            </mj-text>
            {content_sections}
          </mj-column>
        </mj-section>
        {cta_section}
        <mj-section padding="32px 20px">
          <mj-column>
            <mj-text align="center" font-size="13px" color="#94a3b8" padding="0">
              © Local Cooks Community. Questions? Reply to this email.
            </mj-text>
          </mj-column>
        </mj-section>
      </mj-body>
    </mjml>
    """


def _detail_rows(rows: list[tuple[str, str]]) -> str:
    body = "".join(
        f"<tr><td style=\"padding:6px 0;color:{THEME['text_muted']}\">{label}</td>"
        f"<td style=\"padding:6px 0;text-align:right;font-weight:600\">{value}</td></tr>"
        for label, value in rows
    )
    return f"""
    <mj-table padding="8px 0 16px 0" font-size="15px" color="{THEME['text_secondary']}">
      {body}
    </mj-table>
    """


# ============================================
# Bookings
# ============================================


def booking_request_manager_template(
    manager_name: str, chef_name: str, kitchen_name: str, booking_date: str, time_range: str, total_cents: int
) -> str:
    content = f"""
    <mj-text>Hi {escape(manager_name)},</mj-text>
    <mj-text>{escape(chef_name)} has requested a kitchen session. The payment is authorised and held
      until you confirm or reject the booking.</mj-text>
    {_detail_rows([("Kitchen", escape(kitchen_name)), ("Date", booking_date), ("Time", time_range),
                   ("Authorised", format_money(total_cents))])}
    """
    return get_base_template(
        title="New booking request",
        preview_text=f"{chef_name} requested {kitchen_name}",
        content_sections=content,
        cta_url=f"{FRONTEND_URL}/manager/bookings",
        cta_label="Review Booking",
    )


def booking_status_chef_template(
    chef_name: str,
    kitchen_name: str,
    booking_date: str,
    time_range: str,
    status: str,
    captured_cents: Optional[int] = None,
    released_cents: Optional[int] = None,
    refund_cents: Optional[int] = None,
    rejected_items: Optional[list[str]] = None,
) -> str:
    if status == "confirmed":
        title = "Your kitchen booking is confirmed"
        intro = "Good news! The kitchen manager confirmed your booking."
    else:
        title = "Your kitchen booking was not approved"
        intro = "The kitchen manager was unable to accept your booking."

    rows = [("Kitchen", escape(kitchen_name)), ("Date", booking_date), ("Time", time_range)]
    if captured_cents is not None:
        rows.append(("Charged", format_money(captured_cents)))
    if released_cents:
        rows.append(("Released to your card", format_money(released_cents)))
    if refund_cents:
        rows.append(("Refunded", format_money(refund_cents)))

    rejected_section = ""
    if rejected_items:
        listed = "<br/>".join(f"• {escape(name)}" for name in rejected_items)
        rejected_section = f"""
        <mj-text>These add-ons were not approved and were not charged:</mj-text>
        <mj-text padding="0 0 0 20px">{listed}</mj-text>
        """

    content = f"""
    <mj-text>Hi {escape(chef_name)},</mj-text>
    <mj-text>{intro}</mj-text>
    {_detail_rows(rows)}
    {rejected_section}
    """
    return get_base_template(
        title=title,
        preview_text=f"{kitchen_name} on {booking_date}",
        content_sections=content,
        cta_url=f"{FRONTEND_URL}/dashboard/bookings",
        cta_label="View Booking",
    )


# ============================================
# Damage claims
# ============================================


def damage_claim_filed_template(
    chef_name: str, location_name: str, claim_title: str, amount_cents: int, deadline: str
) -> str:
    content = f"""
    <mj-text>Hi {escape(chef_name)},</mj-text>
    <mj-text>The manager of <strong>{escape(location_name)}</strong> has filed a damage claim
      related to your recent booking.</mj-text>
    {_detail_rows([("Claim", escape(claim_title)), ("Amount", format_money(amount_cents)),
                   ("Respond by", deadline)])}
    <mj-text color="{THEME['danger']}">If you do not respond before the deadline the claim is
      approved automatically and charged to your saved payment method.</mj-text>
    """
    return get_base_template(
        title="A damage claim needs your response",
        preview_text=f"Respond by {deadline}",
        content_sections=content,
        cta_url=f"{FRONTEND_URL}/dashboard/damage-claims",
        cta_label="Review Claim",
    )


def damage_claim_response_template(
    manager_name: str, chef_name: str, claim_title: str, amount_cents: int, accepted: bool, response: str
) -> str:
    outcome = "accepted" if accepted else "disputed"
    follow_up = (
        "The claim has been approved and the chef's saved payment method will be charged."
        if accepted
        else "The claim has been escalated to the Local Cooks team for review."
    )
    content = f"""
    <mj-text>Hi {escape(manager_name)},</mj-text>
    <mj-text>{escape(chef_name)} has <strong>{outcome}</strong> your damage claim.</mj-text>
    {_detail_rows([("Claim", escape(claim_title)), ("Amount", format_money(amount_cents))])}
    <mj-text color="{THEME['text_muted']}">Chef's response: "{escape(response)}"</mj-text>
    <mj-text>{follow_up}</mj-text>
    """
    return get_base_template(
        title=f"Damage claim {outcome}",
        preview_text=f"{chef_name} {outcome} your claim",
        content_sections=content,
        cta_url=f"{FRONTEND_URL}/manager/damage-claims",
        cta_label="View Claim",
    )


def damage_claim_disputed_admin_template(
    claim_id: int, claim_title: str, location_name: str, chef_name: str, amount_cents: int, response: str
) -> str:
    content = f"""
    <mj-text>A damage claim was disputed and is waiting for review.</mj-text>
    {_detail_rows([("Claim #", str(claim_id)), ("Title", escape(claim_title)),
                   ("Location", escape(location_name)), ("Chef", escape(chef_name)),
                   ("Claimed", format_money(amount_cents))])}
    <mj-text color="{THEME['text_muted']}">Chef's response: "{escape(response)}"</mj-text>
    """
    return get_base_template(
        title="Disputed damage claim",
        preview_text=f"Claim #{claim_id} needs review",
        content_sections=content,
        cta_url=f"{FRONTEND_URL}/admin/damage-claims",
        cta_label="Open Review Queue",
    )


def damage_claim_decision_template(
    recipient_name: str, claim_title: str, decision: str, claimed_cents: int, final_cents: int, reason: str
) -> str:
    labels = {
        "approved": "approved in full",
        "partially_approved": "partially approved",
        "rejected": "rejected",
    }
    content = f"""
    <mj-text>Hi {escape(recipient_name)},</mj-text>
    <mj-text>The Local Cooks team has reviewed the damage claim and it was
      <strong>{labels.get(decision, decision)}</strong>.</mj-text>
    {_detail_rows([("Claim", escape(claim_title)), ("Claimed", format_money(claimed_cents)),
                   ("Final amount", format_money(final_cents))])}
    <mj-text color="{THEME['text_muted']}">Reason: {escape(reason)}</mj-text>
    """
    return get_base_template(
        title="Damage claim decision",
        preview_text=f"Claim {labels.get(decision, decision)}",
        content_sections=content,
    )


def damage_claim_charged_template(chef_name: str, claim_title: str, amount_cents: int) -> str:
    content = f"""
    <mj-text>Hi {escape(chef_name)},</mj-text>
    <mj-text>Your saved payment method was charged for the damage claim below.</mj-text>
    {_detail_rows([("Claim", escape(claim_title)), ("Charged", format_money(amount_cents))])}
    """
    return get_base_template(
        title="Damage claim payment processed",
        preview_text=f"{format_money(amount_cents)} charged",
        content_sections=content,
        cta_url=f"{FRONTEND_URL}/dashboard/damage-claims",
        cta_label="View Claim",
    )


def damage_claim_refunded_template(chef_name: str, claim_title: str, amount_cents: int) -> str:
    content = f"""
    <mj-text>Hi {escape(chef_name)},</mj-text>
    <mj-text>A refund has been issued for the damage claim below. It can take 5 to 10 business
      days to appear on your statement.</mj-text>
    {_detail_rows([("Claim", escape(claim_title)), ("Refunded", format_money(amount_cents))])}
    """
    return get_base_template(
        title="Damage claim refunded",
        preview_text=f"{format_money(amount_cents)} refunded",
        content_sections=content,
    )


# ============================================
# Locations and applications
# ============================================


def kitchen_license_status_template(
    manager_name: str, location_name: str, status: str, feedback: Optional[str]
) -> str:
    approved = status == "approved"
    feedback_section = (
        f'<mj-text color="{THEME["text_muted"]}">Feedback: {escape(feedback)}</mj-text>' if feedback else ""
    )
    content = f"""
    <mj-text>Hi {escape(manager_name)},</mj-text>
    <mj-text>The kitchen license for <strong>{escape(location_name)}</strong> was
      <strong>{"approved" if approved else "not approved"}</strong>.</mj-text>
    {feedback_section}
    """
    return get_base_template(
        title="Kitchen license reviewed",
        preview_text=f"{location_name}: license {status}",
        content_sections=content,
        cta_url=f"{FRONTEND_URL}/manager/locations",
        cta_label="View Location",
    )


def application_submitted_manager_template(manager_name: str, chef_name: str, location_name: str) -> str:
    content = f"""
    <mj-text>Hi {escape(manager_name)},</mj-text>
    <mj-text>{escape(chef_name)} applied to use the kitchens at <strong>{escape(location_name)}</strong>.</mj-text>
    """
    return get_base_template(
        title="New kitchen application",
        preview_text=f"{chef_name} applied to {location_name}",
        content_sections=content,
        cta_url=f"{FRONTEND_URL}/manager/applications",
        cta_label="Review Application",
    )


def application_status_chef_template(
    chef_name: str, location_name: str, status: str, feedback: Optional[str]
) -> str:
    messages = {
        "approved": "Your application was approved. You can continue with the next onboarding step.",
        "rejected": "Your application was not approved at this time.",
        "inReview": "Your application is being reviewed.",
        "cancelled": "Your application was cancelled.",
    }
    feedback_section = (
        f'<mj-text color="{THEME["text_muted"]}">Feedback: {escape(feedback)}</mj-text>' if feedback else ""
    )
    content = f"""
    <mj-text>Hi {escape(chef_name)},</mj-text>
    <mj-text>{messages.get(status, status)}</mj-text>
    {_detail_rows([("Location", escape(location_name))])}
    {feedback_section}
    """
    return get_base_template(
        title="Kitchen application update",
        preview_text=f"{location_name}: {status}",
        content_sections=content,
        cta_url=f"{FRONTEND_URL}/dashboard/applications",
        cta_label="View Application",
    )
