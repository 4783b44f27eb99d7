"""
Email Service using Resend
Templates are MJML and compiled to responsive HTML before sending
"""

import logging
from typing import Optional, Union

import resend
from mjml import mjml_to_html

from .config import EMAIL_FROM_ADDRESS, RESEND_API_KEY
from .email_templates import (
    application_status_chef_template,
    application_submitted_manager_template,
    booking_request_manager_template,
    booking_status_chef_template,
    damage_claim_charged_template,
    damage_claim_decision_template,
    damage_claim_disputed_admin_template,
    damage_claim_filed_template,
    damage_claim_refunded_template,
    damage_claim_response_template,
    kitchen_license_status_template,
)

logger = logging.getLogger(__name__)

resend.api_key = RESEND_API_KEY


def compile_mjml_to_html(mjml_content: str) -> str:
    """Compile MJML template to production-ready HTML"""
    try:
        result = mjml_to_html(mjml_content)
        if result.errors:
            logger.warning(f"MJML compilation warnings: {result.errors}")
        return result.html
    except Exception as e:
        logger.error(f"MJML compilation error: {e}")
        raise Exception(f"Failed to compile MJML template: {str(e)}") from e


async def send_email(
    to: Union[str, list[str]],
    subject: str,
    mjml_content: str,
    from_address: Optional[str] = None,
) -> dict:
    """
    Send an email through Resend

    Args:
        to: Recipient email(s)
        subject: Email subject line
        mjml_content: MJML template content (compiled to HTML here)
        from_address: Optional custom from address

    Returns:
        Resend response dict
    """
    if not RESEND_API_KEY:
        logger.error("❌ No email service configured - RESEND_API_KEY missing")
        raise Exception("Email service not configured")

    html_content = compile_mjml_to_html(mjml_content)
    recipients = [to] if isinstance(to, str) else to

    try:
        logger.info(f"📧 Sending email via Resend to: {recipients}")
        response = resend.Emails.send(
            {
                "from": from_address or EMAIL_FROM_ADDRESS,
                "to": recipients,
                "subject": subject,
                "html": html_content,
            }
        )
        logger.info(f"✅ Email sent successfully via Resend: {response}")
        return response
    except Exception as e:
        logger.error(f"❌ Email send error to {recipients}: {e}")
        raise Exception(f"Failed to send email: {str(e)}") from e


async def notify(notification_type: str, email_func, **kwargs) -> bool:
    """Send a notification email without letting a delivery failure escape"""
    if not kwargs.get("to"):
        logger.debug(f"⚠️ No recipient for {notification_type} notification")
        return False
    try:
        await email_func(**kwargs)
        return True
    except Exception as e:
        logger.error(f"❌ Failed to send {notification_type} email to {kwargs.get('to')}: {e}")
        return False


# ============================================
# Pre-built senders
# ============================================


async def send_booking_request_email(
    to: str, manager_name: str, chef_name: str, kitchen_name: str, booking_date: str, time_range: str, total_cents: int
) -> dict:
    return await send_email(
        to=to,
        subject=f"New booking request for {kitchen_name}",
        mjml_content=booking_request_manager_template(
            manager_name, chef_name, kitchen_name, booking_date, time_range, total_cents
        ),
    )


async def send_booking_status_email(
    to: str,
    chef_name: str,
    kitchen_name: str,
    booking_date: str,
    time_range: str,
    status: str,
    captured_cents: Optional[int] = None,
    released_cents: Optional[int] = None,
    refund_cents: Optional[int] = None,
    rejected_items: Optional[list[str]] = None,
) -> dict:
    subject = "Booking confirmed" if status == "confirmed" else "Booking update"
    return await send_email(
        to=to,
        subject=f"{subject}: {kitchen_name} on {booking_date}",
        mjml_content=booking_status_chef_template(
            chef_name,
            kitchen_name,
            booking_date,
            time_range,
            status,
            captured_cents=captured_cents,
            released_cents=released_cents,
            refund_cents=refund_cents,
            rejected_items=rejected_items,
        ),
    )


async def send_damage_claim_filed_email(
    to: str, chef_name: str, location_name: str, claim_title: str, amount_cents: int, deadline: str
) -> dict:
    return await send_email(
        to=to,
        subject=f"Action required: damage claim from {location_name}",
        mjml_content=damage_claim_filed_template(chef_name, location_name, claim_title, amount_cents, deadline),
    )


async def send_damage_claim_response_email(
    to: str, manager_name: str, chef_name: str, claim_title: str, amount_cents: int, accepted: bool, response: str
) -> dict:
    return await send_email(
        to=to,
        subject=f"Damage claim {'accepted' if accepted else 'disputed'}: {claim_title}",
        mjml_content=damage_claim_response_template(
            manager_name, chef_name, claim_title, amount_cents, accepted, response
        ),
    )


async def send_damage_claim_disputed_admin_email(
    to: str, claim_id: int, claim_title: str, location_name: str, chef_name: str, amount_cents: int, response: str
) -> dict:
    return await send_email(
        to=to,
        subject=f"Disputed damage claim #{claim_id} needs review",
        mjml_content=damage_claim_disputed_admin_template(
            claim_id, claim_title, location_name, chef_name, amount_cents, response
        ),
    )


async def send_damage_claim_decision_email(
    to: str, recipient_name: str, claim_title: str, decision: str, claimed_cents: int, final_cents: int, reason: str
) -> dict:
    return await send_email(
        to=to,
        subject=f"Damage claim decision: {claim_title}",
        mjml_content=damage_claim_decision_template(
            recipient_name, claim_title, decision, claimed_cents, final_cents, reason
        ),
    )


async def send_damage_claim_charged_email(to: str, chef_name: str, claim_title: str, amount_cents: int) -> dict:
    return await send_email(
        to=to,
        subject=f"Damage claim charged: {claim_title}",
        mjml_content=damage_claim_charged_template(chef_name, claim_title, amount_cents),
    )


async def send_damage_claim_refunded_email(to: str, chef_name: str, claim_title: str, amount_cents: int) -> dict:
    return await send_email(
        to=to,
        subject=f"Damage claim refunded: {claim_title}",
        mjml_content=damage_claim_refunded_template(chef_name, claim_title, amount_cents),
    )


async def send_kitchen_license_status_email(
    to: str, manager_name: str, location_name: str, status: str, feedback: Optional[str]
) -> dict:
    return await send_email(
        to=to,
        subject=f"Kitchen license {status}: {location_name}",
        mjml_content=kitchen_license_status_template(manager_name, location_name, status, feedback),
    )


async def send_application_submitted_email(to: str, manager_name: str, chef_name: str, location_name: str) -> dict:
    return await send_email(
        to=to,
        subject=f"New kitchen application for {location_name}",
        mjml_content=application_submitted_manager_template(manager_name, chef_name, location_name),
    )


async def send_application_status_email(
    to: str, chef_name: str, location_name: str, status: str, feedback: Optional[str]
) -> dict:
    return await send_email(
        to=to,
        subject=f"Your application to {location_name}",
        mjml_content=application_status_chef_template(chef_name, location_name, status, feedback),
    )
