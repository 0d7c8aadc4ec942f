"""
PDF generation for barangay certificates.

Certificates are rendered on demand with ReportLab and streamed to the
browser; nothing is written to disk.  The body text depends on the
certificate type, and the header uses the barangay's own details from the
settings page when they exist.
"""
from __future__ import annotations

from datetime import date
from io import BytesIO
from xml.sax.saxutils import escape as xml_escape

from reportlab.lib.enums import TA_JUSTIFY
from reportlab.lib.pagesizes import LETTER
from reportlab.lib.styles import ParagraphStyle
from reportlab.lib.units import inch
from reportlab.pdfgen import canvas
from reportlab.platypus import Paragraph

from .models import BarangayInfo, Certificate


CERTIFICATE_BODIES = {
    "barangay_clearance": (
        "This is to certify that <b>{name}</b>, a resident of {address}, has no derogatory record "
        "in this barangay as of the date of issuance."
    ),
    "certificate_of_residency": (
        "This is to certify that <b>{name}</b> is a bona fide resident of {address}."
    ),
    "certificate_of_indigency": (
        "This is to certify that <b>{name}</b>, a resident of {address}, belongs to an indigent family "
        "of this barangay."
    ),
    "business_permit": (
        "This is to certify that <b>{name}</b> is hereby granted clearance to operate a business within "
        "the jurisdiction of this barangay, subject to existing rules and regulations."
    ),
    "good_moral": (
        "This is to certify that <b>{name}</b>, a resident of {address}, is known to be of good moral "
        "character and is a law-abiding citizen of this community."
    ),
    "first_time_job_seeker": (
        "This is to certify that <b>{name}</b>, a resident of {address}, is a qualified availee of "
        "Republic Act 11261, the First Time Jobseekers Assistance Act."
    ),
}

BODY_STYLE = ParagraphStyle(
    "CertificateBody",
    fontName="Times-Roman",
    fontSize=12,
    leading=18,
    alignment=TA_JUSTIFY,
    firstLineIndent=0.5 * inch,
)


def _format_date_long(value: date) -> str:
    return value.strftime("%B %d, %Y")


def _resident_address(resident) -> str:
    if resident is None:
        return "this barangay"
    parts = [resident.house_number, resident.street_address, resident.purok]
    text = ", ".join(p for p in parts if p)
    return text or "this barangay"


def _draw_header(c: canvas.Canvas, info: BarangayInfo | None, certificate: Certificate) -> None:
    c.setFont("Times-Bold", 14)
    c.drawCentredString(4.25 * inch, 10.4 * inch, "REPUBLIC OF THE PHILIPPINES")

    c.setFont("Times-Roman", 11)
    y = 10.15 * inch
    if info is not None:
        for line in (info.province and f"Province of {info.province}", info.municipality):
            if line:
                c.drawCentredString(4.25 * inch, y, line)
                y -= 0.2 * inch
    c.setFont("Times-Bold", 12)
    office = f"BARANGAY {info.barangay_name.upper()}" if info is not None else "BARANGAY OFFICE"
    c.drawCentredString(4.25 * inch, y, office)

    c.setFont("Times-Bold", 18)
    c.drawCentredString(4.25 * inch, 9.2 * inch, certificate.type_label.upper())
    c.setFont("Times-Roman", 10)
    c.drawCentredString(4.25 * inch, 8.95 * inch, f"Certificate No: {certificate.certificate_number}")
    c.line(0.9 * inch, 8.8 * inch, 7.6 * inch, 8.8 * inch)


def _draw_paragraph(c: canvas.Canvas, text: str, *, x: float, top_y: float, max_width: float) -> float:
    para = Paragraph(text, BODY_STYLE)
    _, height = para.wrap(max_width, 6 * inch)
    para.drawOn(c, x, top_y - height)
    return height


def _draw_signature_block(c: canvas.Canvas, y: float, issued_by: str | None) -> None:
    c.setFont("Times-Bold", 12)
    name = (issued_by or "").upper()
    c.line(4.6 * inch, y, 7.6 * inch, y)
    if name:
        c.drawCentredString(6.1 * inch, y + 0.08 * inch, name)
    c.setFont("Times-Roman", 11)
    c.drawCentredString(6.1 * inch, y - 0.2 * inch, "Punong Barangay")


def build_certificate_pdf(certificate: Certificate, info: BarangayInfo | None = None) -> BytesIO:
    """Render `certificate` to a one-page PDF and return it as a rewound buffer."""
    buffer = BytesIO()
    c = canvas.Canvas(buffer, pagesize=LETTER)
    c.setTitle(f"{certificate.type_label} {certificate.certificate_number}")

    _draw_header(c, info, certificate)

    resident = certificate.resident
    name = xml_escape(resident.full_name) if resident is not None else "the bearer"
    address = xml_escape(_resident_address(resident))

    y = 8.3 * inch
    c.setFont("Times-Bold", 12)
    c.drawString(0.9 * inch, y, "TO WHOM IT MAY CONCERN:")
    y -= 0.4 * inch

    template = CERTIFICATE_BODIES.get(certificate.certificate_type, CERTIFICATE_BODIES["barangay_clearance"])
    y -= _draw_paragraph(c, template.format(name=name, address=address), x=0.9 * inch, top_y=y, max_width=6.7 * inch)
    y -= 0.25 * inch

    if certificate.purpose:
        purpose = f"This certification is issued upon request for the purpose of <b>{xml_escape(certificate.purpose)}</b>."
        y -= _draw_paragraph(c, purpose, x=0.9 * inch, top_y=y, max_width=6.7 * inch)
        y -= 0.25 * inch

    issued = f"Issued this {_format_date_long(certificate.issued_date)}."
    y -= _draw_paragraph(c, issued, x=0.9 * inch, top_y=y, max_width=6.7 * inch)

    if certificate.valid_until:
        c.setFont("Times-Italic", 10)
        c.drawString(0.9 * inch, 2.6 * inch, f"Valid until {_format_date_long(certificate.valid_until)}")
    if certificate.notes:
        c.setFont("Times-Italic", 9)
        c.drawString(0.9 * inch, 2.4 * inch, f"Notes: {certificate.notes[:120]}")

    _draw_signature_block(c, 1.8 * inch, certificate.issued_by)

    if certificate.status != "Active":
        c.saveState()
        c.setFont("Helvetica-Bold", 60)
        c.setFillGray(0.85)
        c.translate(4.25 * inch, 5.5 * inch)
        c.rotate(35)
        c.drawCentredString(0, 0, certificate.status.upper())
        c.restoreState()

    c.showPage()
    c.save()
    buffer.seek(0)
    return buffer
