import io
import os
from datetime import date
from unittest import mock

from barangay_system.extensions import db
from barangay_system.membership import MembershipError, plan_membership
from barangay_system.models import (
    Certificate,
    Document,
    Household,
    Official,
    Ordinance,
    Report,
    Resident,
    TransactionLog,
)
from barangay_system.routes import population_by_age
from barangay_system.store import StoreError


def test_healthz(client):
    resp = client.get("/healthz", headers={"X-Request-ID": "req-123"})
    assert resp.status_code == 200
    assert resp.headers["X-Request-ID"] == "req-123"
    data = resp.get_json()
    assert data["status"] == "ok"
    assert data["db"] is True


def test_index_requires_login(client):
    resp = client.get("/", follow_redirects=False)
    assert resp.status_code == 302
    assert "/login" in resp.headers.get("Location", "")


def test_dashboard_counts(client, make_user, make_resident, make_household, login):
    make_user("viewer", "Viewer123!", role="viewer")
    make_household()
    make_resident(date_of_birth=date(2015, 6, 1))
    make_resident(first_name="Old", date_of_birth=date(1940, 6, 1))
    login("viewer", "Viewer123!")

    resp = client.get("/")

    assert resp.status_code == 200
    assert b'id="stat-residents">2<' in resp.data
    assert b'id="stat-households">1<' in resp.data


def test_viewer_cannot_write(client, make_user, login):
    make_user("viewer", "Viewer123!", role="viewer")
    login("viewer", "Viewer123!")

    assert client.get("/residents").status_code == 200
    assert client.get("/residents/add").status_code == 403
    assert client.post("/households/add", data={"house_number": "1"}).status_code == 403


def test_add_household_assigns_members(client, make_user, make_resident, login):
    make_user("staff", "Staff123!")
    a = make_resident(first_name="Ana")
    b = make_resident(first_name="Ben")
    a_id, b_id = a.id, b.id
    login("staff", "Staff123!")

    resp = client.post(
        "/households/add",
        data={"house_number": "42", "purok": "Purok 1", "has_water": "y", "members": [a_id, b_id]},
        follow_redirects=False,
    )

    assert resp.status_code == 302
    household = Household.query.one()
    assert household.has_water is True
    assert (household.latitude, household.longitude) == (17.65, 120.85)
    for rid in (a_id, b_id):
        resident = db.session.get(Resident, rid)
        assert resident.household_id == household.id
        assert resident.house_number == "42"
    log = TransactionLog.query.filter_by(action="Added household").one()
    assert log.meta["added"] == 2


def test_add_household_requires_house_number(client, make_user, login):
    make_user("staff", "Staff123!")
    login("staff", "Staff123!")

    resp = client.post("/households/add", data={"house_number": "  "})

    assert resp.status_code == 200
    assert b"House number is required." in resp.data
    assert Household.query.count() == 0


def test_edit_household_swaps_members(client, make_user, make_household, make_resident, login):
    make_user("staff", "Staff123!")
    household = make_household(house_number="7")
    keep = make_resident(first_name="Keep", household=household)
    drop = make_resident(first_name="Drop", household=household)
    new = make_resident(first_name="New")
    hid, keep_id, drop_id, new_id = household.id, keep.id, drop.id, new.id
    login("staff", "Staff123!")

    resp = client.post(
        f"/households/{hid}/edit",
        data={"house_number": "7", "members": [keep_id, new_id]},
        follow_redirects=False,
    )

    assert resp.status_code == 302
    assert db.session.get(Resident, drop_id).household_id is None
    assert db.session.get(Resident, drop_id).house_number is None
    assert db.session.get(Resident, keep_id).household_id == hid
    assert db.session.get(Resident, new_id).household_id == hid
    assert db.session.get(Resident, new_id).house_number == "7"


def test_edit_household_membership_failure_keeps_form(client, make_user, make_household, make_resident, login):
    make_user("staff", "Staff123!")
    household = make_household(house_number="7")
    resident = make_resident(first_name="Picked")
    hid, rid = household.id, resident.id
    login("staff", "Staff123!")

    plan = plan_membership(hid, "7", set(), {rid})
    failure = MembershipError("add", plan, StoreError("residents", "update", "boom"))
    with mock.patch("barangay_system.households.reconcile_membership", side_effect=failure):
        resp = client.post(f"/households/{hid}/edit", data={"house_number": "7", "members": [rid]})

    assert resp.status_code == 200
    assert b"Failed to update household members" in resp.data
    assert f'value="{rid}"'.encode() in resp.data
    assert b"checked" in resp.data
    assert db.session.get(Resident, rid).household_id is None


def test_delete_household(client, make_user, make_household, make_resident, login):
    make_user("staff", "Staff123!")
    household = make_household()
    member = make_resident(household=household)
    hid, mid = household.id, member.id
    login("staff", "Staff123!")

    resp = client.post(f"/households/{hid}/delete", follow_redirects=False)

    assert resp.status_code == 302
    assert db.session.get(Household, hid) is None
    assert db.session.get(Resident, mid).household_id is None


def test_household_location_page(client, make_user, make_household, login):
    make_user("viewer", "Viewer123!", role="viewer")
    household = make_household(latitude=17.7, longitude=120.9)
    login("viewer", "Viewer123!")

    resp = client.get(f"/households/{household.id}/location")

    assert resp.status_code == 200
    assert b"17.700000" in resp.data


def test_resident_who_is_official_cannot_be_deleted(client, make_user, make_resident, login):
    make_user("staff", "Staff123!")
    resident = make_resident()
    db.session.add(Official(resident_id=resident.id, position="Kagawad", term_start=date(2023, 1, 1)))
    db.session.commit()
    rid = resident.id
    login("staff", "Staff123!")

    resp = client.post(f"/residents/{rid}/delete", follow_redirects=True)

    assert b"holds an official post" in resp.data
    assert db.session.get(Resident, rid) is not None


def test_resident_export_csv(client, make_user, make_resident, login):
    make_user("viewer", "Viewer123!", role="viewer")
    make_resident(first_name="Maria", last_name="Clara", gender="Female")
    make_resident(first_name="Jose", last_name="Rizal")
    login("viewer", "Viewer123!")

    resp = client.get("/residents/export/csv?gender=Female")

    assert resp.status_code == 200
    assert resp.mimetype == "text/csv"
    body = resp.data.decode()
    assert "Clara,Maria" in body
    assert "Rizal" not in body


def test_ordinance_status_cycles(client, make_user, login):
    make_user("staff", "Staff123!")
    ordinance = Ordinance(ordinance_number="2024-01", title="Curfew", date_enacted=date(2024, 1, 5))
    db.session.add(ordinance)
    db.session.commit()
    oid = ordinance.id
    login("staff", "Staff123!")

    seen = []
    for _ in range(3):
        client.post(f"/ordinances/{oid}/cycle-status")
        seen.append(db.session.get(Ordinance, oid).status)

    assert seen == ["Amended", "Repealed", "Active"]


def test_duplicate_ordinance_number_rejected(client, make_user, login):
    make_user("staff", "Staff123!")
    db.session.add(Ordinance(ordinance_number="2024-01", title="Curfew", date_enacted=date(2024, 1, 5)))
    db.session.commit()
    login("staff", "Staff123!")

    resp = client.post(
        "/ordinances/add",
        data={"ordinance_number": "2024-01", "title": "Again", "date_enacted": "2024-02-01", "status": "Active"},
    )

    assert resp.status_code == 200
    assert b"already exists" in resp.data
    assert Ordinance.query.count() == 1


def test_report_status_cycles(client, make_user, login):
    make_user("staff", "Staff123!")
    report = Report(title="Broken streetlight", report_type="Concern")
    db.session.add(report)
    db.session.commit()
    report_id = report.id
    login("staff", "Staff123!")

    seen = []
    for _ in range(4):
        client.post(f"/reports/{report_id}/cycle-status")
        seen.append(db.session.get(Report, report_id).status)

    assert seen == ["In Progress", "Resolved", "Closed", "Pending"]


def test_certificate_generate_pdf_and_revoke(client, make_user, make_resident, login):
    make_user("staff", "Staff123!")
    resident = make_resident(first_name="Juan", last_name="Cruz")
    rid = resident.id
    login("staff", "Staff123!")

    resp = client.post(
        "/certificates/generate",
        data={
            "certificate_type": "certificate_of_residency",
            "resident_id": rid,
            "purpose": "Employment",
            "issued_by": "Kapitan Santos",
        },
        follow_redirects=False,
    )
    assert resp.status_code == 302

    certificate = Certificate.query.one()
    year = date.today().year
    assert certificate.certificate_number.startswith(f"CERT-{year}-")
    assert len(certificate.certificate_number) == len(f"CERT-{year}-0000")
    assert certificate.status == "Active"

    resp = client.get(f"/certificates/{certificate.id}/pdf")
    assert resp.status_code == 200
    assert resp.mimetype == "application/pdf"
    assert resp.data.startswith(b"%PDF")

    client.post(f"/certificates/{certificate.id}/revoke")
    assert db.session.get(Certificate, certificate.id).status == "Revoked"


def test_certificate_number_collision_rerenders_form(client, db_session, make_user, make_resident, login):
    make_user("staff", "Staff123!")
    resident = make_resident()
    rid = resident.id
    taken = f"CERT-{date.today().year}-0042"
    db_session.add(
        Certificate(
            certificate_number=taken,
            certificate_type="barangay_clearance",
            resident_id=rid,
            issued_date=date.today(),
        )
    )
    db_session.commit()
    login("staff", "Staff123!")

    with mock.patch("barangay_system.routes.generate_certificate_number", return_value=taken):
        resp = client.post(
            "/certificates/generate",
            data={
                "certificate_type": "certificate_of_residency",
                "resident_id": rid,
                "purpose": "Employment",
                "issued_by": "Kapitan Santos",
            },
        )

    assert resp.status_code == 200
    assert b"unique certificate number" in resp.data
    assert Certificate.query.count() == 1


def test_certificate_only_for_active_residents(client, make_user, make_resident, login):
    make_user("staff", "Staff123!")
    moved = make_resident(status="Moved Out")
    login("staff", "Staff123!")

    resp = client.post(
        "/certificates/generate",
        data={
            "certificate_type": "barangay_clearance",
            "resident_id": moved.id,
            "purpose": "Travel",
            "issued_by": "Kapitan Santos",
        },
    )

    assert resp.status_code == 200
    assert Certificate.query.count() == 0


def test_document_upload_version_and_delete(client, app, make_user, login):
    make_user("staff", "Staff123!")
    login("staff", "Staff123!")

    resp = client.post(
        "/documents/upload",
        data={
            "title": "Budget Memo",
            "category": "memorandum",
            "file": (io.BytesIO(b"first draft"), "memo.txt"),
        },
        content_type="multipart/form-data",
        follow_redirects=False,
    )
    assert resp.status_code == 302

    original = Document.query.one()
    assert original.version == 1
    assert original.file_path.startswith("documents/")
    abs_path = os.path.join(app.config["UPLOAD_FOLDER"], original.file_path)
    assert os.path.exists(abs_path)

    resp = client.get(f"/documents/{original.id}/download")
    assert resp.status_code == 200
    assert resp.data == b"first draft"

    resp = client.post(
        f"/documents/{original.id}/versions/new",
        data={"file": (io.BytesIO(b"second draft"), "memo.txt")},
        content_type="multipart/form-data",
    )
    assert resp.status_code == 302
    latest = Document.query.filter_by(version=2).one()
    assert latest.parent_document_id == original.id
    assert latest.title == "Budget Memo"

    client.post(f"/documents/{original.id}/archive")
    assert db.session.get(Document, original.id).is_archived is True

    client.post(f"/documents/{original.id}/delete")
    assert db.session.get(Document, original.id) is None
    assert not os.path.exists(abs_path)
    assert db.session.get(Document, latest.id).parent_document_id is None


def test_document_upload_rejects_extension(client, make_user, login):
    make_user("staff", "Staff123!")
    login("staff", "Staff123!")

    resp = client.post(
        "/documents/upload",
        data={"title": "Script", "category": "other", "file": (io.BytesIO(b"#!"), "run.sh")},
        content_type="multipart/form-data",
    )

    assert resp.status_code == 200
    assert b"not allowed" in resp.data
    assert Document.query.count() == 0


def test_profile_settings(client, make_user, login):
    user = make_user("viewer", "Viewer123!", role="viewer")
    login("viewer", "Viewer123!")

    resp = client.post("/settings/profile", data={"full_name": "Vera Viewer", "position": "Secretary"})

    assert resp.status_code == 302
    db.session.refresh(user)
    assert user.full_name == "Vera Viewer"
    assert user.position == "Secretary"


def test_population_by_age_brackets():
    today = date(2024, 6, 15)
    births = [
        date(2010, 1, 1),
        date(2006, 6, 16),
        date(2006, 6, 15),
        date(1990, 6, 15),
        date(1964, 6, 16),
        date(1950, 1, 1),
        None,
    ]

    counts = population_by_age(births, today)

    assert list(counts.items()) == [("0-17", 2), ("18-35", 2), ("36-59", 1), ("60+", 1)]


def test_add_official_and_activity(client, make_user, make_resident, login):
    make_user("staff", "Staff123!")
    resident = make_resident(first_name="Pedro")
    rid = resident.id
    login("staff", "Staff123!")

    resp = client.post(
        "/officials/add",
        data={"resident_id": rid, "position": "Punong Barangay", "term_start": "2023-11-30", "status": "Active"},
    )
    assert resp.status_code == 302
    assert Official.query.one().resident_id == rid

    resp = client.post(
        "/officials/add",
        data={"resident_id": rid, "position": "Kagawad", "term_start": "2023-11-30", "term_end": "2022-01-01"},
    )
    assert resp.status_code == 200
    assert b"Term end cannot be before term start." in resp.data

    resp = client.post(
        "/activities/add",
        data={
            "title": "Clean-up Drive",
            "activity_type": "Community Service",
            "activity_date": "2024-07-01",
            "status": "Ongoing",
        },
    )
    assert resp.status_code == 302
    assert b"Clean-up Drive" in client.get("/activities?status=Ongoing").data


def test_list_pages_render(client, make_user, make_household, make_resident, login):
    household = make_household(house_number="H-7")
    make_resident(household=household)
    make_user("boss", "Boss123!x", role="admin")
    login("boss", "Boss123!x")

    pages = [
        "/residents",
        "/residents?q=Doe&gender=Male",
        "/households",
        "/households?q=H-7",
        "/officials",
        "/ordinances",
        "/activities",
        "/reports",
        "/certificates",
        "/documents",
        "/documents?archived=1",
        "/admin/users",
        "/admin/users?q=boss",
        "/admin/audit",
        "/admin/audit?q=Logged&from=2000-01-01&to=2999-12-31",
    ]
    for url in pages:
        resp = client.get(url)
        assert resp.status_code == 200, url

    assert b"H-7" in client.get("/households").data
