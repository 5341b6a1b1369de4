from html import escape
from typing import Iterable, Optional

from fastapi import BackgroundTasks

from shared.core.config import settings
from shared.helpers.email_helper import EmailHelper


def signing_url(token: str, addendum: bool = False) -> str:
    base = settings.PORTAL_URL.rstrip("/")
    return f"{base}/sign/addendum/{token}" if addendum else f"{base}/sign/{token}"


def _wrap(title: str, body: str) -> str:
    return f"""<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
  <h2 style="color: #1a1a1a;">{escape(title)}</h2>
  {body}
  <p style="color: #888; font-size: 12px; margin-top: 32px;">{escape(settings.ORGANIZATION_BRAND)}</p>
</div>"""


def build_signature_request_email(
    tenant_name: str,
    property_address: str,
    unit_number: str,
    url: str,
    document_label: str = "lease agreement",
    expires_in_days: int = None,
):
    expires_in_days = expires_in_days or settings.SIGNING_TOKEN_TTL_DAYS
    subject = f"Your {document_label} is ready for signature - {property_address}"
    body = f"""
  <p>Hi {escape(tenant_name)},</p>
  <p>Your {escape(document_label)} for <strong>{escape(property_address)}, Unit {escape(unit_number)}</strong> is ready to be signed.</p>
  <p><a href="{escape(url)}" style="background:#2563eb;color:#fff;padding:12px 20px;border-radius:6px;text-decoration:none;">Review &amp; Sign</a></p>
  <p>This link is personal to you and expires in {expires_in_days} days.</p>"""
    return subject, _wrap("Signature requested", body)


def build_signed_confirmation_email(
    recipient_name: str,
    property_address: str,
    unit_number: str,
    all_signed: bool,
    document_label: str = "lease agreement",
):
    subject = f"Signature confirmation - {property_address}"
    if all_signed:
        status_line = f"All tenants have signed the {escape(document_label)}."
    else:
        status_line = "A signature was recorded. We are still waiting on other signers."
    body = f"""
  <p>Hi {escape(recipient_name)},</p>
  <p>{status_line}</p>
  <p>Property: <strong>{escape(property_address)}, Unit {escape(unit_number)}</strong></p>
  <p>You can view the document any time from the <a href="{escape(settings.PORTAL_URL)}">tenant portal</a>.</p>"""
    return subject, _wrap("Signature received", body)


def build_fully_executed_email(recipient_name: str, property_address: str, document_label: str = "lease agreement"):
    subject = f"Fully executed {document_label} - {property_address}"
    body = f"""
  <p>Hi {escape(recipient_name)},</p>
  <p>The landlord has countersigned. Your {escape(document_label)} is now fully executed and a Certificate of Completion is attached to the document in the portal.</p>"""
    return subject, _wrap("Document fully executed", body)


def queue_email(
    background_tasks: Optional[BackgroundTasks],
    recipients: Iterable[str],
    subject: str,
    html_body: str,
) -> None:
    """Fire and forget. Delivery problems are logged by EmailHelper."""
    recipients = [r for r in recipients if r]
    if not recipients or background_tasks is None:
        return
    email_helper = EmailHelper()
    background_tasks.add_task(
        email_helper.send_email,
        recipients=recipients,
        subject=subject,
        html_body=html_body,
    )
