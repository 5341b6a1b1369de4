"""HTML rendering of leases, addenda and the Certificate of Completion.

Every function here is pure: the same input always yields the same markup.
The only moving part is ``CertificateData.generated_at``, which callers set
to the time of regeneration.
"""
from datetime import date, datetime
from decimal import Decimal
from html import escape
from typing import List, Optional

from pydantic import BaseModel

from ...core.time_utils import ensure_utc

CERTIFICATE_MARKER = '<div class="certificate-page"'

LEGAL_STATEMENT = (
    "This document was signed electronically. All parties consented to the use of electronic "
    "signatures. Electronic signatures are legally binding under the Electronic Signatures in "
    "Global and National Commerce Act (ESIGN Act, 15 U.S.C. &sect; 7001) and the Uniform "
    "Electronic Transactions Act (UETA). Each signer's identity was verified through a unique "
    "signing link delivered to their email address, and their signing session was recorded "
    "including IP address, device information, document viewing time and explicit consent."
)

DEFAULT_LEASE_CLAUSES = [
    {"title": "Use of Premises",
     "body": "The premises shall be used exclusively as a private residence by the Tenant(s) named in this agreement."},
    {"title": "Maintenance and Repairs",
     "body": "Tenant(s) shall keep the premises clean and sanitary and promptly report any damage or needed repairs to the Landlord."},
    {"title": "Alterations",
     "body": "Tenant(s) shall not make alterations to the premises without the prior written consent of the Landlord."},
    {"title": "Entry by Landlord",
     "body": "Landlord may enter the premises with reasonable advance notice to inspect, make repairs or show the unit, except in emergencies."},
    {"title": "Subletting",
     "body": "Tenant(s) shall not assign this agreement or sublet any part of the premises without the Landlord's written consent."},
    {"title": "Return of Deposit",
     "body": "The security deposit, less lawful deductions, will be returned within the period required by applicable law after Tenant(s) vacate."},
]

BASE_STYLE = """
    body { font-family: Georgia, 'Times New Roman', serif; font-size: 11pt; line-height: 1.5; color: #222; max-width: 800px; margin: 0 auto; padding: 40px; }
    .header { text-align: center; margin-bottom: 32px; }
    .header h1 { font-size: 18pt; letter-spacing: 2px; text-transform: uppercase; margin: 8px 0; }
    .section { margin-bottom: 24px; }
    .section h2 { font-size: 13pt; text-transform: uppercase; border-bottom: 1px solid #ccc; padding-bottom: 4px; }
    .label { font-weight: bold; padding-right: 12px; }
    .signature-block { margin: 24px 0; }
    .sig-badge { font-size: 8pt; font-weight: bold; color: #1a7f37; letter-spacing: 1px; }
    .e-signature { font-family: 'Brush Script MT', cursive; font-size: 22pt; }
    .sig-line { border-bottom: 1px solid #222; width: 60%; height: 32px; }
    .certificate-page { page-break-before: always; margin-top: 48px; border-top: 3px double #222; padding-top: 24px; }
    .cert-table { width: 100%; border-collapse: collapse; font-size: 9pt; }
    .cert-table th, .cert-table td { border: 1px solid #ccc; padding: 4px 6px; text-align: left; }
    .cert-hash { font-family: monospace; font-size: 9pt; word-break: break-all; background: #f5f5f5; padding: 6px; }
    .footer { margin-top: 40px; font-size: 8pt; color: #777; text-align: center; }
"""


class SignatureBlock(BaseModel):
    label: str
    signed: bool = False
    full_name: Optional[str] = None
    signed_at: Optional[datetime] = None
    ip_address: Optional[str] = None
    signature_id: Optional[str] = None
    signature_image: Optional[str] = None


class Clause(BaseModel):
    title: str
    body: str


class LeaseDocumentData(BaseModel):
    lease_id: str
    organization_name: str
    tenant_names: List[str]
    property_name: str
    property_address: str
    unit_number: str
    bedrooms: Optional[int] = None
    bathrooms: Optional[Decimal] = None
    sq_ft: Optional[int] = None
    start_date: date
    end_date: date
    monthly_rent: Decimal
    security_deposit: Optional[Decimal] = None
    rent_due_day: int = 1
    late_fee_amount: Optional[Decimal] = None
    late_fee_grace_days: Optional[int] = None
    clauses: List[Clause] = []
    source_document_url: Optional[str] = None
    source_document_hash: Optional[str] = None
    tenant_blocks: List[SignatureBlock]
    landlord_block: SignatureBlock


class AddendumDocumentData(BaseModel):
    addendum_id: str
    lease_id: str
    organization_name: str
    title: str
    content: str
    effective_date: Optional[date] = None
    property_address: str
    unit_number: str
    lease_start_date: date
    tenant_names: List[str]
    source_document_url: Optional[str] = None
    source_document_hash: Optional[str] = None
    tenant_blocks: List[SignatureBlock]
    landlord_block: SignatureBlock


class CertificateSigner(BaseModel):
    role: str
    name: str
    email: str
    signed_at: Optional[datetime] = None
    ip_address: Optional[str] = None
    location: Optional[str] = None
    view_time_seconds: Optional[int] = None


class CertificateData(BaseModel):
    document_title: str
    document_id: str
    property_address: str
    created_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    document_hash: str
    signers: List[CertificateSigner]
    generated_at: datetime


def format_date(value: Optional[date]) -> str:
    if value is None:
        return "N/A"
    return f"{value:%B} {value.day}, {value.year}"


def format_datetime(value: Optional[datetime]) -> str:
    value = ensure_utc(value)
    if value is None:
        return "N/A"
    return f"{value:%B} {value.day}, {value.year} at {value:%I:%M %p} UTC"


def format_currency(amount: Optional[Decimal]) -> str:
    if amount is None:
        return "N/A"
    return f"${Decimal(amount):,.2f}"


def ordinal(n: int) -> str:
    if 10 <= n % 100 <= 20:
        suffix = "th"
    else:
        suffix = {1: "st", 2: "nd", 3: "rd"}.get(n % 10, "th")
    return f"{n}{suffix}"


def format_view_time(seconds: Optional[int]) -> str:
    if seconds is None:
        return "N/A"
    if seconds < 60:
        return f"{seconds}s"
    return f"{seconds // 60}m {seconds % 60}s"


def _text(value) -> str:
    return escape(str(value)) if value is not None else ""


def render_signature_block(block: SignatureBlock) -> str:
    if not block.signed:
        return f"""
  <div class="signature-block sig-unsigned">
    <div class="sig-line"></div>
    <p>{_text(block.label)}</p>
    <p>Date: ________________</p>
  </div>"""

    if block.signature_image:
        visual = f'<img src="{_text(block.signature_image)}" alt="Signature" class="sig-image" />'
    else:
        visual = f'<span class="e-signature">{_text(block.full_name)}</span>'

    rows = [
        f"<tr><td class=\"label\">Name:</td><td>{_text(block.full_name)}</td></tr>",
        f"<tr><td class=\"label\">Role:</td><td>{_text(block.label)}</td></tr>",
        f"<tr><td class=\"label\">Date:</td><td>{format_datetime(block.signed_at)}</td></tr>",
    ]
    if block.ip_address:
        rows.append(f"<tr><td class=\"label\">IP Address:</td><td>{_text(block.ip_address)}</td></tr>")
    if block.signature_id:
        rows.append(f"<tr><td class=\"label\">Signature ID:</td><td>{_text(block.signature_id)}</td></tr>")

    return f"""
  <div class="signature-block sig-signed">
    <div class="sig-badge">ELECTRONICALLY SIGNED</div>
    <div class="sig-visual">{visual}</div>
    <table class="sig-meta">{"".join(rows)}</table>
  </div>"""


def _source_document_section(url: Optional[str], doc_hash: Optional[str]) -> str:
    if not url:
        return ""
    hash_line = f'<p>Source document hash (SHA-256): <span class="cert-hash">{_text(doc_hash)}</span></p>' if doc_hash else ""
    return f"""
  <div class="section">
    <h2>Incorporated Document</h2>
    <p>The document at {_text(url)} is incorporated into this agreement by reference.</p>
    {hash_line}
  </div>"""


def _page(title: str, body: str) -> str:
    return f"""<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="utf-8" />
  <title>{_text(title)}</title>
  <style>{BASE_STYLE}</style>
</head>
<body>
{body}
</body>
</html>
"""


def render_lease_html(data: LeaseDocumentData) -> str:
    clauses = data.clauses or [Clause(**c) for c in DEFAULT_LEASE_CLAUSES]
    clause_html = "".join(
        f"""
    <div class="clause"><h3>{idx}. {_text(c.title)}</h3><p>{_text(c.body)}</p></div>"""
        for idx, c in enumerate(clauses, start=1)
    )

    unit_facts = []
    if data.bedrooms is not None:
        unit_facts.append(f"{data.bedrooms} bedroom(s)")
    if data.bathrooms is not None:
        unit_facts.append(f"{Decimal(data.bathrooms).normalize():f} bathroom(s)")
    if data.sq_ft is not None:
        unit_facts.append(f"{data.sq_ft:,} sq ft")

    late_fee = format_currency(data.late_fee_amount) if data.late_fee_amount is not None else "N/A"
    grace = f"{data.late_fee_grace_days} day(s)" if data.late_fee_grace_days is not None else "N/A"
    signatures = "".join(render_signature_block(b) for b in data.tenant_blocks)

    body = f"""
  <div class="header">
    <div class="org-name">{_text(data.organization_name)}</div>
    <h1>Residential Lease Agreement</h1>
    <div>Effective Date: {format_date(data.start_date)}</div>
  </div>

  <div class="section">
    <h2>I. Parties</h2>
    <table>
      <tr><td class="label">Landlord:</td><td>{_text(data.organization_name)}</td></tr>
      <tr><td class="label">Tenant(s):</td><td>{_text(", ".join(data.tenant_names))}</td></tr>
    </table>
  </div>

  <div class="section">
    <h2>II. Premises</h2>
    <p>{_text(data.property_name)}, Unit {_text(data.unit_number)}</p>
    <p>{_text(data.property_address)}</p>
    <p>{_text(", ".join(unit_facts))}</p>
  </div>

  <div class="section">
    <h2>III. Lease Term</h2>
    <table>
      <tr><td class="label">Start Date</td><td>{format_date(data.start_date)}</td></tr>
      <tr><td class="label">End Date</td><td>{format_date(data.end_date)}</td></tr>
    </table>
  </div>

  <div class="section">
    <h2>IV. Rent</h2>
    <table>
      <tr><td class="label">Monthly Rent</td><td>{format_currency(data.monthly_rent)}</td></tr>
      <tr><td class="label">Due Date</td><td>{ordinal(data.rent_due_day)} of each month</td></tr>
    </table>
  </div>

  <div class="section">
    <h2>V. Security Deposit</h2>
    <p>{format_currency(data.security_deposit)}</p>
  </div>

  <div class="section">
    <h2>VI. Late Fees</h2>
    <table>
      <tr><td class="label">Grace Period</td><td>{grace}</td></tr>
      <tr><td class="label">Late Fee</td><td>{late_fee}</td></tr>
    </table>
  </div>

  <div class="section">
    <h2>VII. Additional Terms &amp; Conditions</h2>{clause_html}
  </div>
{_source_document_section(data.source_document_url, data.source_document_hash)}
  <div class="signatures">
    <h2>Signatures</h2>
    <p>By signing below, all parties agree to the terms and conditions set forth in this Residential Lease Agreement.</p>{signatures}{render_signature_block(data.landlord_block)}
  </div>

  <div class="footer">
    <p>Lease ID: {_text(data.lease_id)}</p>
  </div>"""
    return _page("Residential Lease Agreement", body)


def render_addendum_html(data: AddendumDocumentData) -> str:
    content = "<br />".join(_text(line) for line in data.content.splitlines())
    signatures = "".join(render_signature_block(b) for b in data.tenant_blocks)

    body = f"""
  <div class="header">
    <div class="org-name">{_text(data.organization_name)}</div>
    <h1>Addendum to Residential Lease Agreement</h1>
    <div>{_text(data.title)}</div>
  </div>

  <div class="section">
    <h2>Reference</h2>
    <table>
      <tr><td class="label">Original Lease:</td><td>{_text(data.lease_id)}, commencing {format_date(data.lease_start_date)}</td></tr>
      <tr><td class="label">Premises:</td><td>{_text(data.property_address)}, Unit {_text(data.unit_number)}</td></tr>
      <tr><td class="label">Tenant(s):</td><td>{_text(", ".join(data.tenant_names))}</td></tr>
      <tr><td class="label">Effective Date:</td><td>{format_date(data.effective_date)}</td></tr>
    </table>
  </div>

  <div class="section">
    <h2>Addendum Terms</h2>
    <p>{content}</p>
    <p>All other terms of the original lease remain in full force and effect.</p>
  </div>
{_source_document_section(data.source_document_url, data.source_document_hash)}
  <div class="signatures">
    <h2>Signatures</h2>{signatures}{render_signature_block(data.landlord_block)}
  </div>

  <div class="footer">
    <p>Addendum ID: {_text(data.addendum_id)}</p>
  </div>"""
    return _page("Addendum to Residential Lease Agreement", body)


def render_certificate_html(data: CertificateData) -> str:
    rows = "".join(
        f"""
        <tr><td>{_text(s.role)}</td><td>{_text(s.name)}</td><td>{_text(s.email)}</td><td>{format_datetime(s.signed_at)}</td><td>{_text(s.ip_address or "N/A")}</td><td>{_text(s.location or "N/A")}</td><td>{format_view_time(s.view_time_seconds)}</td></tr>"""
        for s in data.signers
    )
    return f"""
<div class="certificate-page">
  <div class="header"><h1>Certificate of Completion</h1></div>

  <div class="section">
    <h2>Document Information</h2>
    <table>
      <tr><td class="label">Document Title:</td><td>{_text(data.document_title)}</td></tr>
      <tr><td class="label">Document ID:</td><td>{_text(data.document_id)}</td></tr>
      <tr><td class="label">Property:</td><td>{_text(data.property_address)}</td></tr>
      <tr><td class="label">Created:</td><td>{format_datetime(data.created_at)}</td></tr>
      <tr><td class="label">Completed:</td><td>{format_datetime(data.completed_at)}</td></tr>
    </table>
  </div>

  <div class="section">
    <h2>Signing Summary</h2>
    <table class="cert-table">
      <thead>
        <tr><th>Role</th><th>Name</th><th>Email</th><th>Signed At</th><th>IP Address</th><th>Location</th><th>Time Viewing</th></tr>
      </thead>
      <tbody>{rows}
      </tbody>
    </table>
  </div>

  <div class="section">
    <h2>Document Integrity</h2>
    <p><strong>Document Hash (SHA-256):</strong></p>
    <div class="cert-hash">{_text(data.document_hash)}</div>
    <p>This is the hash of the signed agreement above, before this certificate was attached.</p>
  </div>

  <div class="section">
    <h2>Legal Statement</h2>
    <p>{LEGAL_STATEMENT}</p>
  </div>

  <div class="footer">
    <p>Certificate generated on {format_datetime(data.generated_at)}</p>
  </div>
</div>
"""


def attach_certificate(document_html: str, certificate_html: str) -> str:
    marker = "</body>"
    idx = document_html.rfind(marker)
    if idx == -1:
        return document_html + certificate_html
    return document_html[:idx] + certificate_html + document_html[idx:]
