from datetime import date

from barangay_system.extensions import db
from barangay_system.models import BarangayInfo, Certificate
from barangay_system.pdf_utils import build_certificate_pdf


def _certificate(resident, **kwargs):
    values = dict(
        certificate_number="CERT-2024-0001",
        certificate_type="certificate_of_indigency",
        resident_id=resident.id,
        purpose="Medical assistance & <referral>",
        issued_by="Kapitan Santos",
        issued_date=date(2024, 3, 1),
    )
    values.update(kwargs)
    certificate = Certificate(**values)
    db.session.add(certificate)
    db.session.commit()
    return certificate


def test_build_certificate_pdf(app, make_resident):
    resident = make_resident(first_name="Alex", last_name="Smith")
    info = BarangayInfo(barangay_name="San Isidro", municipality="Bangued", province="Abra")
    db.session.add(info)
    db.session.commit()

    pdf = build_certificate_pdf(_certificate(resident), info)

    data = pdf.read()
    assert data.startswith(b"%PDF")
    assert len(data) > 1000


def test_revoked_certificate_pdf_without_barangay_info(app, make_resident):
    resident = make_resident()
    certificate = _certificate(resident, status="Revoked", valid_until=date(2024, 12, 31), notes="Reissued")

    pdf = build_certificate_pdf(certificate)

    assert pdf.getvalue().startswith(b"%PDF")
