"""Main (non-admin) routes.

This blueprint covers the day-to-day records work:

- Dashboard
- Residents: list, add, edit, delete, export
- Households: list, add, edit, location, delete
- Officials, ordinances, activities, reports: list, add, edit, delete
- Certificates: list, generate, revoke, PDF
- Documents: list, upload, new version, download, archive, delete
- Settings: the signed-in user's profile

Every view requires login.  Views that change data additionally require the
admin or staff role; viewers get a read-only dashboard.

For admin-only features (users, barangay info, security audit), see
`admin.py`.
"""

from __future__ import annotations

import csv
import io
import secrets
from collections import OrderedDict
from datetime import date as dt_date

from flask import Blueprint, abort, current_app, flash, redirect, render_template, request, send_file, url_for
from flask_login import current_user, login_required
from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError

from .extensions import db
from .forms import (
    ActivityForm,
    CertificateForm,
    DeleteForm,
    DocumentUploadForm,
    DocumentVersionForm,
    HouseholdForm,
    OfficialForm,
    OrdinanceForm,
    ProfileForm,
    ReportForm,
    ResidentForm,
)
from .helpers import (
    UploadRejected,
    default_location,
    editors_only,
    get_store,
    log_action,
    remove_stored_file,
    save_uploaded_document,
    stored_file_path,
)
from .households import (
    HouseholdNotFound,
    assignable_residents,
    create_household,
    delete_household as delete_household_record,
    members_by_household,
    update_household,
)
from .membership import MembershipError
from .models import (
    ACTIVITY_STATUSES,
    CERTIFICATE_TYPES,
    DOCUMENT_CATEGORIES,
    GENDERS,
    Activity,
    BarangayInfo,
    Certificate,
    Document,
    Household,
    Official,
    Ordinance,
    Report,
    Resident,
    TransactionLog,
)
from .pdf_utils import build_certificate_pdf
from .records import HouseholdInput, RecordValidationError
from .store import StoreError
from .time_utils import age_on


ORDINANCE_STATUS_CYCLE = {
    "Active": "Amended",
    "Amended": "Repealed",
    "Repealed": "Active",
}
REPORT_STATUS_CYCLE = {
    "Pending": "In Progress",
    "In Progress": "Resolved",
    "Resolved": "Closed",
    "Closed": "Pending",
}
AGE_BRACKETS = (
    ("0-17", 0, 17),
    ("18-35", 18, 35),
    ("36-59", 36, 59),
    ("60+", 60, None),
)


def _page_args() -> tuple[int, int]:
    page = request.args.get("page", 1, type=int)
    per_page = int(current_app.config.get("DEFAULT_PAGE_SIZE", 20))
    return page, per_page


def _resident_choices(active_only: bool = False) -> list[tuple[str, str]]:
    query = Resident.query
    if active_only:
        query = query.filter(Resident.status == "Active")
    residents = query.order_by(Resident.last_name.asc(), Resident.first_name.asc()).all()
    return [(r.id, f"{r.last_name}, {r.first_name}") for r in residents]


def population_by_age(birth_dates, today: dt_date) -> OrderedDict:
    """Count residents per age bracket for the dashboard chart."""
    counts = OrderedDict((label, 0) for label, _, _ in AGE_BRACKETS)
    for birth_date in birth_dates:
        if birth_date is None:
            continue
        age = age_on(birth_date, today)
        for label, low, high in AGE_BRACKETS:
            if age >= low and (high is None or age <= high):
                counts[label] += 1
                break
    return counts


main_bp = Blueprint("main", __name__)


@main_bp.route("/")
@login_required
def index():
    """Dashboard with quick stats, the population chart and recent updates."""
    resident_count = Resident.query.count()
    household_count = Household.query.count()
    ongoing_activities = Activity.query.filter(Activity.status == "Ongoing").count()
    report_count = Report.query.count()
    pending_reports = Report.query.filter(Report.status == "Pending").count()

    birth_dates = [row[0] for row in db.session.query(Resident.date_of_birth).all()]
    age_counts = population_by_age(birth_dates, dt_date.today())

    gender_rows = (
        db.session.query(Resident.gender, func.count(Resident.id))
        .group_by(Resident.gender)
        .all()
    )

    recent_logs = TransactionLog.query.order_by(TransactionLog.timestamp.desc()).limit(8).all()

    return render_template(
        "index.html",
        resident_count=resident_count,
        household_count=household_count,
        ongoing_activities=ongoing_activities,
        report_count=report_count,
        pending_reports=pending_reports,
        age_labels=list(age_counts.keys()),
        age_values=list(age_counts.values()),
        gender_labels=[g or "Unspecified" for g, _ in gender_rows],
        gender_values=[int(c) for _, c in gender_rows],
        recent_logs=recent_logs,
    )


# ---------------------------------------------------------------------------
# Residents
# ---------------------------------------------------------------------------


def _filtered_residents():
    q = (request.args.get("q") or "").strip()
    gender = (request.args.get("gender") or "").strip()

    query = Resident.query
    if q:
        like = f"%{q}%"
        query = query.filter(
            or_(
                Resident.first_name.ilike(like),
                Resident.last_name.ilike(like),
                Resident.house_number.ilike(like),
                Resident.purok.ilike(like),
            )
        )
    if gender in GENDERS:
        query = query.filter(Resident.gender == gender)
    return query.order_by(Resident.last_name.asc(), Resident.first_name.asc()), q, gender


@main_bp.route("/residents")
@login_required
def list_residents():
    query, q, gender = _filtered_residents()
    page, per_page = _page_args()
    pagination = query.paginate(page=page, per_page=per_page, error_out=False)
    return render_template(
        "residents.html",
        residents=pagination.items,
        pagination=pagination,
        q=q,
        gender=gender,
        delete_form=DeleteForm(),
    )


@main_bp.route("/residents/add", methods=["GET", "POST"])
@login_required
@editors_only
def add_resident():
    form = ResidentForm()
    if form.validate_on_submit():
        if form.date_of_birth.data > dt_date.today():
            form.date_of_birth.errors.append("Date of birth cannot be in the future.")
            return render_template("form.html", form=form, title="Add Resident")

        resident = Resident()
        form.populate_obj(resident)
        resident.middle_name = resident.middle_name or None
        resident.email = resident.email or None
        db.session.add(resident)
        db.session.commit()
        log_action(
            "Added resident",
            entity_type="resident",
            entity_id=resident.id,
            meta={"name": resident.full_name},
        )
        flash("Resident added successfully.", "success")
        return redirect(url_for("main.list_residents"))
    return render_template("form.html", form=form, title="Add Resident")


@main_bp.route("/residents/<string:resident_id>/edit", methods=["GET", "POST"])
@login_required
@editors_only
def edit_resident(resident_id: str):
    resident = db.get_or_404(Resident, resident_id)
    form = ResidentForm(obj=resident)
    if form.validate_on_submit():
        if form.date_of_birth.data > dt_date.today():
            form.date_of_birth.errors.append("Date of birth cannot be in the future.")
            return render_template("form.html", form=form, title="Edit Resident")

        form.populate_obj(resident)
        resident.middle_name = resident.middle_name or None
        resident.email = resident.email or None
        db.session.commit()
        log_action("Updated resident", entity_type="resident", entity_id=resident.id, meta={"name": resident.full_name})
        flash("Resident updated successfully.", "success")
        return redirect(url_for("main.list_residents"))
    return render_template("form.html", form=form, title="Edit Resident")


@main_bp.route("/residents/<string:resident_id>/delete", methods=["POST"])
@login_required
@editors_only
def delete_resident(resident_id: str):
    form = DeleteForm()
    if not form.validate_on_submit():
        abort(400)
    resident = db.get_or_404(Resident, resident_id)
    if resident.official_terms:
        flash("This resident holds an official post. Remove the official record first.", "warning")
        return redirect(url_for("main.list_residents"))

    name = resident.full_name
    db.session.delete(resident)
    db.session.commit()
    log_action("Deleted resident", entity_type="resident", entity_id=resident_id, meta={"name": name})
    flash("Resident deleted.", "success")
    return redirect(url_for("main.list_residents"))


@main_bp.route("/residents/export/<string:fmt>")
@login_required
def export_residents(fmt: str):
    """Export the (filtered) resident list to CSV or XLSX."""
    fmt = (fmt or "").lower()
    query, _, _ = _filtered_residents()
    headers = ["Last Name", "First Name", "Middle Name", "Gender", "Date of Birth", "House Number", "Purok", "Status"]
    rows = [
        [
            r.last_name,
            r.first_name,
            r.middle_name or "",
            r.gender,
            r.date_of_birth.isoformat() if r.date_of_birth else "",
            r.house_number or "",
            r.purok or "",
            r.status,
        ]
        for r in query.all()
    ]
    filename_base = f"residents_{dt_date.today().isoformat()}"

    if fmt == "csv":
        output = io.StringIO()
        writer = csv.writer(output)
        writer.writerow(headers)
        writer.writerows(rows)
        data = io.BytesIO(output.getvalue().encode("utf-8"))
        log_action("Exported residents (CSV)", entity_type="resident", meta={"rows": len(rows)})
        return send_file(data, mimetype="text/csv", as_attachment=True, download_name=f"{filename_base}.csv")

    if fmt == "xlsx":
        from openpyxl import Workbook

        wb = Workbook()
        ws = wb.active
        ws.title = "Residents"
        ws.append(headers)
        for row in rows:
            ws.append(row)
        bio = io.BytesIO()
        wb.save(bio)
        bio.seek(0)
        log_action("Exported residents (XLSX)", entity_type="resident", meta={"rows": len(rows)})
        return send_file(
            bio,
            mimetype="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
            as_attachment=True,
            download_name=f"{filename_base}.xlsx",
        )

    flash("Unsupported export format.", "danger")
    return redirect(url_for("main.list_residents"))


# ---------------------------------------------------------------------------
# Households
# ---------------------------------------------------------------------------


def _member_choices(household_id: str | None = None) -> list[tuple[str, str]]:
    choices = []
    for resident in assignable_residents(get_store()):
        label = resident.display_name
        if resident.household_id and resident.household_id != household_id:
            label += " (assigned to another household)"
        choices.append((resident.id, label))
    return choices


def _household_input(form: HouseholdForm) -> HouseholdInput:
    return HouseholdInput.from_form(
        house_number=form.house_number.data,
        purok=form.purok.data,
        street_address=form.street_address.data,
        has_electricity=form.has_electricity.data,
        has_water=form.has_water.data,
        latitude=form.latitude.data,
        longitude=form.longitude.data,
        default_location=default_location(),
    )


def _map_settings(form: HouseholdForm) -> dict:
    lat, lng = default_location()
    return {
        "lat": form.latitude.data if form.latitude.data is not None else lat,
        "lng": form.longitude.data if form.longitude.data is not None else lng,
        "zoom": int(current_app.config.get("MAP_DEFAULT_ZOOM", 15)),
        "tile_url": current_app.config.get("MAP_TILE_URL"),
    }


@main_bp.route("/households")
@login_required
def list_households():
    q = (request.args.get("q") or "").strip()
    query = Household.query
    if q:
        like = f"%{q}%"
        query = query.filter(or_(Household.house_number.ilike(like), Household.purok.ilike(like)))
    query = query.order_by(Household.house_number.asc())

    page, per_page = _page_args()
    pagination = query.paginate(page=page, per_page=per_page, error_out=False)
    households = pagination.items
    members = members_by_household(get_store(), [h.id for h in households])
    return render_template(
        "households.html",
        households=households,
        members=members,
        pagination=pagination,
        q=q,
        delete_form=DeleteForm(),
    )


@main_bp.route("/households/add", methods=["GET", "POST"])
@login_required
@editors_only
def add_household():
    form = HouseholdForm()
    form.members.choices = _member_choices()
    if request.method == "GET":
        form.latitude.data, form.longitude.data = default_location()

    if form.validate_on_submit():
        try:
            data = _household_input(form)
            household, plan = create_household(
                get_store(),
                data,
                form.members.data or [],
                default_location=default_location(),
            )
        except RecordValidationError as exc:
            form.house_number.errors.append(exc.message)
        except (StoreError, MembershipError) as exc:
            current_app.logger.error("Failed to create household: %s", exc)
            flash("Failed to create household. Please try again.", "danger")
        else:
            log_action(
                "Added household",
                entity_type="household",
                entity_id=household.id,
                meta={"house_number": household.house_number, **plan.summary},
            )
            flash("Household added successfully.", "success")
            return redirect(url_for("main.list_households"))

    return render_template("household_form.html", form=form, title="Add Household", map_settings=_map_settings(form))


@main_bp.route("/households/<string:household_id>/edit", methods=["GET", "POST"])
@login_required
@editors_only
def edit_household(household_id: str):
    household = db.get_or_404(Household, household_id)
    form = HouseholdForm(obj=household)
    form.members.choices = _member_choices(household.id)
    if request.method == "GET":
        form.members.data = [r.id for r in household.residents]
        lat, lng = default_location()
        if household.latitude is None or household.longitude is None:
            form.latitude.data, form.longitude.data = lat, lng

    if form.validate_on_submit():
        try:
            data = _household_input(form)
            updated, plan = update_household(
                get_store(),
                household.id,
                data,
                form.members.data or [],
                default_location=default_location(),
            )
        except RecordValidationError as exc:
            form.house_number.errors.append(exc.message)
        except HouseholdNotFound:
            abort(404)
        except MembershipError as exc:
            current_app.logger.error(
                "Household %s membership %s step failed: %s", household_id, exc.stage, exc
            )
            flash("Failed to update household members. Please try again.", "danger")
        except StoreError as exc:
            current_app.logger.error("Failed to update household %s: %s", household_id, exc)
            flash("Failed to update household. Please try again.", "danger")
        else:
            log_action(
                "Updated household",
                entity_type="household",
                entity_id=updated.id,
                meta={"house_number": updated.house_number, **plan.summary},
            )
            flash("Household updated successfully.", "success")
            return redirect(url_for("main.list_households"))

    return render_template(
        "household_form.html",
        form=form,
        title="Edit Household",
        household=household,
        map_settings=_map_settings(form),
    )


@main_bp.route("/households/<string:household_id>/location")
@login_required
def household_location(household_id: str):
    household = db.get_or_404(Household, household_id)
    lat, lng = default_location()
    return render_template(
        "household_location.html",
        household=household,
        lat=household.latitude if household.latitude is not None else lat,
        lng=household.longitude if household.longitude is not None else lng,
        tile_url=current_app.config.get("MAP_TILE_URL"),
    )


@main_bp.route("/households/<string:household_id>/delete", methods=["POST"])
@login_required
@editors_only
def delete_household(household_id: str):
    form = DeleteForm()
    if not form.validate_on_submit():
        abort(400)
    try:
        detached = delete_household_record(get_store(), household_id)
    except HouseholdNotFound:
        abort(404)
    except StoreError as exc:
        current_app.logger.error("Failed to delete household %s: %s", household_id, exc)
        flash("Failed to delete household.", "danger")
        return redirect(url_for("main.list_households"))

    log_action("Deleted household", entity_type="household", entity_id=household_id, meta={"detached": detached})
    flash("Household deleted.", "success")
    return redirect(url_for("main.list_households"))


# ---------------------------------------------------------------------------
# Officials
# ---------------------------------------------------------------------------


@main_bp.route("/officials")
@login_required
def list_officials():
    q = (request.args.get("q") or "").strip()
    query = Official.query.join(Resident)
    if q:
        like = f"%{q}%"
        query = query.filter(
            or_(Official.position.ilike(like), Resident.first_name.ilike(like), Resident.last_name.ilike(like))
        )
    officials = query.order_by(Official.status.asc(), Official.term_start.desc()).all()
    return render_template("officials.html", officials=officials, q=q, delete_form=DeleteForm())


@main_bp.route("/officials/add", methods=["GET", "POST"])
@login_required
@editors_only
def add_official():
    form = OfficialForm()
    form.resident_id.choices = _resident_choices()
    if form.validate_on_submit():
        official = Official()
        form.populate_obj(official)
        db.session.add(official)
        db.session.commit()
        log_action("Added official", entity_type="official", entity_id=official.id, meta={"position": official.position})
        flash("Official added successfully.", "success")
        return redirect(url_for("main.list_officials"))
    return render_template("form.html", form=form, title="Add Official")


@main_bp.route("/officials/<string:official_id>/edit", methods=["GET", "POST"])
@login_required
@editors_only
def edit_official(official_id: str):
    official = db.get_or_404(Official, official_id)
    form = OfficialForm(obj=official)
    form.resident_id.choices = _resident_choices()
    if form.validate_on_submit():
        form.populate_obj(official)
        db.session.commit()
        log_action("Updated official", entity_type="official", entity_id=official.id, meta={"position": official.position})
        flash("Official updated successfully.", "success")
        return redirect(url_for("main.list_officials"))
    return render_template("form.html", form=form, title="Edit Official")


@main_bp.route("/officials/<string:official_id>/delete", methods=["POST"])
@login_required
@editors_only
def delete_official(official_id: str):
    form = DeleteForm()
    if not form.validate_on_submit():
        abort(400)
    official = db.get_or_404(Official, official_id)
    position = official.position
    db.session.delete(official)
    db.session.commit()
    log_action("Deleted official", entity_type="official", entity_id=official_id, meta={"position": position})
    flash("Official deleted.", "success")
    return redirect(url_for("main.list_officials"))


# ---------------------------------------------------------------------------
# Ordinances
# ---------------------------------------------------------------------------


@main_bp.route("/ordinances")
@login_required
def list_ordinances():
    q = (request.args.get("q") or "").strip()
    query = Ordinance.query
    if q:
        like = f"%{q}%"
        query = query.filter(
            or_(
                Ordinance.title.ilike(like),
                Ordinance.ordinance_number.ilike(like),
                Ordinance.description.ilike(like),
            )
        )
    ordinances = query.order_by(Ordinance.date_enacted.desc()).all()
    return render_template("ordinances.html", ordinances=ordinances, q=q, delete_form=DeleteForm())


@main_bp.route("/ordinances/add", methods=["GET", "POST"])
@login_required
@editors_only
def add_ordinance():
    form = OrdinanceForm()
    if form.validate_on_submit():
        number = form.ordinance_number.data.strip()
        if Ordinance.query.filter_by(ordinance_number=number).first():
            form.ordinance_number.errors.append("An ordinance with this number already exists.")
            return render_template("form.html", form=form, title="Add Ordinance")
        ordinance = Ordinance()
        form.populate_obj(ordinance)
        ordinance.ordinance_number = number
        db.session.add(ordinance)
        db.session.commit()
        log_action("Added ordinance", entity_type="ordinance", entity_id=ordinance.id, meta={"number": number})
        flash("Ordinance added successfully.", "success")
        return redirect(url_for("main.list_ordinances"))
    return render_template("form.html", form=form, title="Add Ordinance")


@main_bp.route("/ordinances/<string:ordinance_id>/edit", methods=["GET", "POST"])
@login_required
@editors_only
def edit_ordinance(ordinance_id: str):
    ordinance = db.get_or_404(Ordinance, ordinance_id)
    form = OrdinanceForm(obj=ordinance)
    if form.validate_on_submit():
        number = form.ordinance_number.data.strip()
        clash = Ordinance.query.filter(Ordinance.ordinance_number == number, Ordinance.id != ordinance.id).first()
        if clash:
            form.ordinance_number.errors.append("An ordinance with this number already exists.")
            return render_template("form.html", form=form, title="Edit Ordinance")
        form.populate_obj(ordinance)
        ordinance.ordinance_number = number
        db.session.commit()
        log_action("Updated ordinance", entity_type="ordinance", entity_id=ordinance.id, meta={"number": number})
        flash("Ordinance updated successfully.", "success")
        return redirect(url_for("main.list_ordinances"))
    return render_template("form.html", form=form, title="Edit Ordinance")


@main_bp.route("/ordinances/<string:ordinance_id>/cycle-status", methods=["POST"])
@login_required
@editors_only
def cycle_ordinance_status(ordinance_id: str):
    form = DeleteForm()
    if not form.validate_on_submit():
        abort(400)
    ordinance = db.get_or_404(Ordinance, ordinance_id)
    previous = ordinance.status
    ordinance.status = ORDINANCE_STATUS_CYCLE.get(previous, "Active")
    db.session.commit()
    log_action(
        "Changed ordinance status",
        entity_type="ordinance",
        entity_id=ordinance.id,
        meta={"from": previous, "to": ordinance.status},
    )
    flash(f"Ordinance status changed to {ordinance.status}.", "success")
    return redirect(url_for("main.list_ordinances"))


@main_bp.route("/ordinances/<string:ordinance_id>/delete", methods=["POST"])
@login_required
@editors_only
def delete_ordinance(ordinance_id: str):
    form = DeleteForm()
    if not form.validate_on_submit():
        abort(400)
    ordinance = db.get_or_404(Ordinance, ordinance_id)
    number = ordinance.ordinance_number
    db.session.delete(ordinance)
    db.session.commit()
    log_action("Deleted ordinance", entity_type="ordinance", entity_id=ordinance_id, meta={"number": number})
    flash("Ordinance deleted.", "success")
    return redirect(url_for("main.list_ordinances"))


# ---------------------------------------------------------------------------
# Activities
# ---------------------------------------------------------------------------


@main_bp.route("/activities")
@login_required
def list_activities():
    q = (request.args.get("q") or "").strip()
    status = (request.args.get("status") or "").strip()
    query = Activity.query
    if q:
        like = f"%{q}%"
        query = query.filter(or_(Activity.title.ilike(like), Activity.location.ilike(like), Activity.organizer.ilike(like)))
    if status in ACTIVITY_STATUSES:
        query = query.filter(Activity.status == status)
    activities = query.order_by(Activity.activity_date.desc()).all()
    return render_template(
        "activities.html",
        activities=activities,
        q=q,
        status=status,
        statuses=ACTIVITY_STATUSES,
        delete_form=DeleteForm(),
    )


@main_bp.route("/activities/add", methods=["GET", "POST"])
@login_required
@editors_only
def add_activity():
    form = ActivityForm()
    if form.validate_on_submit():
        activity = Activity()
        form.populate_obj(activity)
        db.session.add(activity)
        db.session.commit()
        log_action("Added activity", entity_type="activity", entity_id=activity.id, meta={"title": activity.title})
        flash("Activity added successfully.", "success")
        return redirect(url_for("main.list_activities"))
    return render_template("form.html", form=form, title="Add Activity")


@main_bp.route("/activities/<string:activity_id>/edit", methods=["GET", "POST"])
@login_required
@editors_only
def edit_activity(activity_id: str):
    activity = db.get_or_404(Activity, activity_id)
    form = ActivityForm(obj=activity)
    if form.validate_on_submit():
        form.populate_obj(activity)
        db.session.commit()
        log_action("Updated activity", entity_type="activity", entity_id=activity.id, meta={"title": activity.title})
        flash("Activity updated successfully.", "success")
        return redirect(url_for("main.list_activities"))
    return render_template("form.html", form=form, title="Edit Activity")


@main_bp.route("/activities/<string:activity_id>/delete", methods=["POST"])
@login_required
@editors_only
def delete_activity(activity_id: str):
    form = DeleteForm()
    if not form.validate_on_submit():
        abort(400)
    activity = db.get_or_404(Activity, activity_id)
    title = activity.title
    db.session.delete(activity)
    db.session.commit()
    log_action("Deleted activity", entity_type="activity", entity_id=activity_id, meta={"title": title})
    flash("Activity deleted.", "success")
    return redirect(url_for("main.list_activities"))


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------


@main_bp.route("/reports")
@login_required
def list_reports():
    q = (request.args.get("q") or "").strip()
    query = Report.query
    if q:
        like = f"%{q}%"
        query = query.filter(
            or_(Report.title.ilike(like), Report.reported_by.ilike(like), Report.location.ilike(like))
        )
    reports = query.order_by(Report.reported_date.desc()).all()
    return render_template("reports.html", reports=reports, q=q, delete_form=DeleteForm())


@main_bp.route("/reports/add", methods=["GET", "POST"])
@login_required
@editors_only
def add_report():
    form = ReportForm()
    if form.validate_on_submit():
        report = Report()
        form.populate_obj(report)
        db.session.add(report)
        db.session.commit()
        log_action("Added report", entity_type="report", entity_id=report.id, meta={"title": report.title})
        flash("Report created successfully.", "success")
        return redirect(url_for("main.list_reports"))
    return render_template("form.html", form=form, title="Add Report")


@main_bp.route("/reports/<string:report_id>/edit", methods=["GET", "POST"])
@login_required
@editors_only
def edit_report(report_id: str):
    report = db.get_or_404(Report, report_id)
    form = ReportForm(obj=report)
    if form.validate_on_submit():
        form.populate_obj(report)
        db.session.commit()
        log_action("Updated report", entity_type="report", entity_id=report.id, meta={"title": report.title})
        flash("Report updated successfully.", "success")
        return redirect(url_for("main.list_reports"))
    return render_template("form.html", form=form, title="Edit Report")


@main_bp.route("/reports/<string:report_id>/cycle-status", methods=["POST"])
@login_required
@editors_only
def cycle_report_status(report_id: str):
    form = DeleteForm()
    if not form.validate_on_submit():
        abort(400)
    report = db.get_or_404(Report, report_id)
    previous = report.status
    report.status = REPORT_STATUS_CYCLE.get(previous, "Pending")
    db.session.commit()
    log_action(
        "Changed report status",
        entity_type="report",
        entity_id=report.id,
        meta={"from": previous, "to": report.status},
    )
    flash(f"Report status changed to {report.status}.", "success")
    return redirect(url_for("main.list_reports"))


@main_bp.route("/reports/<string:report_id>/delete", methods=["POST"])
@login_required
@editors_only
def delete_report(report_id: str):
    form = DeleteForm()
    if not form.validate_on_submit():
        abort(400)
    report = db.get_or_404(Report, report_id)
    title = report.title
    db.session.delete(report)
    db.session.commit()
    log_action("Deleted report", entity_type="report", entity_id=report_id, meta={"title": title})
    flash("Report deleted.", "success")
    return redirect(url_for("main.list_reports"))


# ---------------------------------------------------------------------------
# Certificates
# ---------------------------------------------------------------------------


def generate_certificate_number(year: int, attempts: int = 20) -> str:
    """Return an unused `CERT-<year>-<NNNN>` number."""
    for _ in range(attempts):
        candidate = f"CERT-{year}-{secrets.randbelow(10000):04d}"
        if not Certificate.query.filter_by(certificate_number=candidate).first():
            return candidate
    raise RuntimeError(f"No free certificate number found for {year} after {attempts} attempts")


@main_bp.route("/certificates")
@login_required
def list_certificates():
    q = (request.args.get("q") or "").strip()
    cert_type = (request.args.get("type") or "").strip()
    query = Certificate.query.outerjoin(Resident)
    if q:
        like = f"%{q}%"
        query = query.filter(
            or_(
                Certificate.certificate_number.ilike(like),
                Resident.first_name.ilike(like),
                Resident.last_name.ilike(like),
            )
        )
    if cert_type in CERTIFICATE_TYPES:
        query = query.filter(Certificate.certificate_type == cert_type)
    certificates = query.order_by(Certificate.issued_date.desc(), Certificate.created_at.desc()).all()
    return render_template(
        "certificates.html",
        certificates=certificates,
        q=q,
        cert_type=cert_type,
        certificate_types=CERTIFICATE_TYPES,
        today=dt_date.today(),
        delete_form=DeleteForm(),
    )


@main_bp.route("/certificates/generate", methods=["GET", "POST"])
@login_required
@editors_only
def generate_certificate():
    form = CertificateForm()
    form.resident_id.choices = _resident_choices(active_only=True)
    if request.method == "GET" and not form.issued_by.data:
        form.issued_by.data = current_user.full_name or ""

    if form.validate_on_submit():
        today = dt_date.today()
        if form.valid_until.data and form.valid_until.data < today:
            form.valid_until.errors.append("Validity date cannot be in the past.")
            return render_template("form.html", form=form, title="Generate Certificate")

        number = generate_certificate_number(today.year)
        certificate = Certificate(
            certificate_number=number,
            certificate_type=form.certificate_type.data,
            resident_id=form.resident_id.data,
            purpose=form.purpose.data.strip(),
            issued_by=form.issued_by.data.strip(),
            issued_date=today,
            valid_until=form.valid_until.data,
            notes=(form.notes.data or "").strip() or None,
            status="Active",
        )
        db.session.add(certificate)
        try:
            db.session.commit()
        except IntegrityError:
            # another certificate took the same number first
            db.session.rollback()
            current_app.logger.warning("Certificate number collision on %s", number)
            flash("Could not assign a unique certificate number. Please try again.", "danger")
            return render_template("form.html", form=form, title="Generate Certificate")
        log_action(
            "Generated certificate",
            entity_type="certificate",
            entity_id=certificate.id,
            meta={"number": certificate.certificate_number, "type": certificate.certificate_type},
        )
        flash(f"Certificate {certificate.certificate_number} generated successfully.", "success")
        return redirect(url_for("main.list_certificates"))
    return render_template("form.html", form=form, title="Generate Certificate")


@main_bp.route("/certificates/<string:certificate_id>/revoke", methods=["POST"])
@login_required
@editors_only
def revoke_certificate(certificate_id: str):
    form = DeleteForm()
    if not form.validate_on_submit():
        abort(400)
    certificate = db.get_or_404(Certificate, certificate_id)
    if certificate.status == "Revoked":
        flash("Certificate is already revoked.", "info")
        return redirect(url_for("main.list_certificates"))
    certificate.status = "Revoked"
    db.session.commit()
    log_action(
        "Revoked certificate",
        entity_type="certificate",
        entity_id=certificate.id,
        meta={"number": certificate.certificate_number},
    )
    flash("Certificate revoked.", "success")
    return redirect(url_for("main.list_certificates"))


@main_bp.route("/certificates/<string:certificate_id>/pdf")
@login_required
def certificate_pdf(certificate_id: str):
    certificate = db.get_or_404(Certificate, certificate_id)
    info = BarangayInfo.query.first()
    pdf = build_certificate_pdf(certificate, info)
    log_action(
        "Viewed certificate PDF",
        entity_type="certificate",
        entity_id=certificate.id,
        meta={"number": certificate.certificate_number},
    )
    return send_file(
        pdf,
        mimetype="application/pdf",
        as_attachment=request.args.get("download") == "1",
        download_name=f"{certificate.certificate_number}.pdf",
    )


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------


@main_bp.route("/documents")
@login_required
def list_documents():
    q = (request.args.get("q") or "").strip()
    category = (request.args.get("category") or "").strip()
    show_archived = (request.args.get("archived") or "").strip() == "1"

    query = Document.query.filter(Document.is_archived.is_(show_archived))
    if q:
        like = f"%{q}%"
        query = query.filter(
            or_(Document.title.ilike(like), Document.description.ilike(like), Document.document_number.ilike(like))
        )
    if category in DOCUMENT_CATEGORIES:
        query = query.filter(Document.category == category)

    page, per_page = _page_args()
    pagination = query.order_by(Document.created_at.desc()).paginate(page=page, per_page=per_page, error_out=False)
    return render_template(
        "documents.html",
        documents=pagination.items,
        pagination=pagination,
        q=q,
        category=category,
        categories=DOCUMENT_CATEGORIES,
        show_archived=show_archived,
        delete_form=DeleteForm(),
    )


@main_bp.route("/documents/upload", methods=["GET", "POST"])
@login_required
@editors_only
def upload_document():
    form = DocumentUploadForm()
    if form.validate_on_submit():
        try:
            stored = save_uploaded_document(form.file.data)
        except UploadRejected as exc:
            form.file.errors.append(str(exc))
            return render_template("form.html", form=form, title="Upload Document", multipart=True)

        document = Document(
            title=form.title.data.strip(),
            description=(form.description.data or "").strip() or None,
            category=form.category.data,
            document_number=(form.document_number.data or "").strip() or None,
            uploaded_by_id=current_user.id,
            version=1,
            **stored,
        )
        db.session.add(document)
        db.session.commit()
        log_action("Uploaded document", entity_type="document", entity_id=document.id, meta={"title": document.title})
        flash("Document uploaded successfully.", "success")
        return redirect(url_for("main.list_documents"))
    return render_template("form.html", form=form, title="Upload Document", multipart=True)


@main_bp.route("/documents/<string:document_id>/versions/new", methods=["GET", "POST"])
@login_required
@editors_only
def upload_document_version(document_id: str):
    parent = db.get_or_404(Document, document_id)
    form = DocumentVersionForm()
    title = f"New Version of {parent.title}"
    if form.validate_on_submit():
        try:
            stored = save_uploaded_document(form.file.data)
        except UploadRejected as exc:
            form.file.errors.append(str(exc))
            return render_template("form.html", form=form, title=title, multipart=True)

        document = Document(
            title=parent.title,
            description=(form.description.data or "").strip() or parent.description,
            category=parent.category,
            document_number=parent.document_number,
            uploaded_by_id=current_user.id,
            version=(parent.version or 1) + 1,
            parent_document_id=parent.id,
            **stored,
        )
        db.session.add(document)
        db.session.commit()
        log_action(
            "Uploaded document version",
            entity_type="document",
            entity_id=document.id,
            meta={"title": document.title, "version": document.version, "parent": parent.id},
        )
        flash(f"Version {document.version} uploaded.", "success")
        return redirect(url_for("main.list_documents"))
    return render_template("form.html", form=form, title=title, multipart=True)


@main_bp.route("/documents/<string:document_id>/download")
@login_required
def download_document(document_id: str):
    document = db.get_or_404(Document, document_id)
    abs_path = stored_file_path(document.file_path)
    try:
        response = send_file(
            abs_path,
            mimetype=document.file_type or None,
            as_attachment=True,
            download_name=document.file_name,
        )
    except FileNotFoundError:
        flash("The stored file for this document is missing.", "danger")
        return redirect(url_for("main.list_documents"))
    log_action("Downloaded document", entity_type="document", entity_id=document.id, meta={"title": document.title})
    return response


@main_bp.route("/documents/<string:document_id>/archive", methods=["POST"])
@login_required
@editors_only
def toggle_document_archive(document_id: str):
    form = DeleteForm()
    if not form.validate_on_submit():
        abort(400)
    document = db.get_or_404(Document, document_id)
    document.is_archived = not document.is_archived
    db.session.commit()
    action = "Archived document" if document.is_archived else "Unarchived document"
    log_action(action, entity_type="document", entity_id=document.id, meta={"title": document.title})
    flash(f"{action}.", "success")
    return redirect(url_for("main.list_documents", archived="1" if not document.is_archived else None))


@main_bp.route("/documents/<string:document_id>/delete", methods=["POST"])
@login_required
@editors_only
def delete_document(document_id: str):
    form = DeleteForm()
    if not form.validate_on_submit():
        abort(400)
    document = db.get_or_404(Document, document_id)
    try:
        remove_stored_file(document.file_path)
    except OSError as exc:
        current_app.logger.error("Failed to delete stored file %s: %s", document.file_path, exc)
        flash("Failed to delete file from storage.", "danger")
        return redirect(url_for("main.list_documents"))

    Document.query.filter(Document.parent_document_id == document.id).update(
        {"parent_document_id": None}, synchronize_session=False
    )
    title = document.title
    db.session.delete(document)
    db.session.commit()
    log_action("Deleted document", entity_type="document", entity_id=document_id, meta={"title": title})
    flash("Document deleted successfully.", "success")
    return redirect(url_for("main.list_documents"))


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


@main_bp.route("/settings/profile", methods=["GET", "POST"])
@login_required
def settings():
    """Profile settings for the signed-in user."""
    form = ProfileForm(obj=current_user)
    if form.validate_on_submit():
        current_user.full_name = (form.full_name.data or "").strip() or None
        current_user.position = (form.position.data or "").strip() or None
        current_user.phone_number = (form.phone_number.data or "").strip() or None
        db.session.commit()
        log_action("Updated profile", entity_type="user", entity_id=current_user.id)
        flash("Profile updated successfully.", "success")
        return redirect(url_for("main.settings"))
    return render_template("settings.html", form=form)
