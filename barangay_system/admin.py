"""
Administrative blueprint for the Barangay Management System.

Everything under `/admin` is limited to signed-in administrators: user
accounts and roles, the barangay's own details (printed on certificate
headers), and the security audit of the transaction log and recent login
attempts.
"""
from datetime import datetime, timedelta

from flask import Blueprint, render_template, redirect, url_for, flash, request, current_app
from flask_login import login_required, current_user

from sqlalchemy import or_

from .extensions import db
from .helpers import log_action, roles_required
from .models import BarangayInfo, LoginAttempt, TransactionLog, User
from .forms import BarangayInfoForm, DeleteForm, EditUserForm, UserForm

admin_bp = Blueprint("admin", __name__, url_prefix="/admin")

RECENT_LOGIN_ATTEMPTS = 50


@admin_bp.before_request
@login_required
@roles_required("admin")
def require_admin():
    return None


def _page_size() -> int:
    return int(current_app.config.get("DEFAULT_PAGE_SIZE", 20))


def _day_arg(name: str):
    raw = (request.args.get(name) or "").strip()
    try:
        return datetime.strptime(raw, "%Y-%m-%d").date() if raw else None
    except ValueError:
        return None


def _blank_to_none(value: str | None) -> str | None:
    return (value or "").strip() or None


def _audit_query(q: str, day_from, day_to):
    query = TransactionLog.query.outerjoin(User)
    if q:
        pattern = f"%{q}%"
        query = query.filter(
            or_(
                TransactionLog.action.ilike(pattern),
                TransactionLog.entity_type.ilike(pattern),
                User.username.ilike(pattern),
            )
        )
    if day_from:
        query = query.filter(TransactionLog.timestamp >= datetime.combine(day_from, datetime.min.time()))
    if day_to:
        # inclusive of the whole end day
        end = datetime.combine(day_to + timedelta(days=1), datetime.min.time())
        query = query.filter(TransactionLog.timestamp < end)
    return query.order_by(TransactionLog.timestamp.desc())


@admin_bp.route("/audit")
def security_audit():
    """Transaction log and recent login attempts, filterable by text and date."""
    q = (request.args.get("q") or "").strip()
    day_from, day_to = _day_arg("from"), _day_arg("to")
    pagination = _audit_query(q, day_from, day_to).paginate(
        page=request.args.get("page", 1, type=int),
        per_page=_page_size(),
        error_out=False,
    )

    attempts = (
        LoginAttempt.query.order_by(LoginAttempt.created_at.desc()).limit(RECENT_LOGIN_ATTEMPTS).all()
    )
    return render_template(
        "security_audit.html",
        logs=pagination.items,
        pagination=pagination,
        attempts=attempts,
        failed_count=len([a for a in attempts if not a.success]),
        q=q,
        date_from=day_from,
        date_to=day_to,
    )


@admin_bp.route("/users")
def list_users():
    q = (request.args.get("q") or "").strip()
    query = User.query
    if q:
        pattern = f"%{q}%"
        query = query.filter(
            or_(*(column.ilike(pattern) for column in (User.username, User.email, User.full_name, User.role)))
        )
    pagination = query.order_by(User.username.asc()).paginate(
        page=request.args.get("page", 1, type=int),
        per_page=_page_size(),
        error_out=False,
    )
    return render_template(
        "users.html", users=pagination.items, pagination=pagination, delete_form=DeleteForm(), q=q
    )


@admin_bp.route("/users/add", methods=["GET", "POST"])
def add_user():
    form = UserForm()
    if form.validate_on_submit():
        username = form.username.data.strip()
        email = form.email.data.strip().lower()
        taken = User.query.filter(or_(User.username == username, User.email == email)).first()
        if taken is None:
            user = User(username=username, email=email, full_name=_blank_to_none(form.full_name.data), role=form.role.data)
            user.set_password(form.password.data)
            db.session.add(user)
            db.session.commit()
            log_action("Created user", entity_type="user", entity_id=user.id, meta={"role": user.role})
            flash(f"User {user.username} created.", "success")
            return redirect(url_for("admin.list_users"))
        flash("A user with that username or email already exists.", "danger")
    return render_template("form.html", form=form, title="Add User")


@admin_bp.route("/users/<int:user_id>/edit", methods=["GET", "POST"])
def edit_user(user_id: int):
    """Change a user's role, name and position.

    An administrator cannot take the admin role away from their own account.
    """
    user = db.get_or_404(User, user_id)
    form = EditUserForm(obj=user)
    if form.validate_on_submit():
        if user.id == current_user.id and form.role.data != "admin":
            flash("You cannot change your own role from admin.", "danger")
            return redirect(url_for("admin.edit_user", user_id=user.id))

        changes = {"from_role": user.role, "role": form.role.data}
        user.full_name = _blank_to_none(form.full_name.data)
        user.position = _blank_to_none(form.position.data)
        user.role = form.role.data
        db.session.commit()
        log_action("Updated user", entity_type="user", entity_id=user.id, meta=changes)
        flash(f"User {user.username} updated.", "success")
        return redirect(url_for("admin.list_users"))
    return render_template("form.html", form=form, title=f"Edit User: {user.username}")


@admin_bp.route("/users/<int:user_id>/delete", methods=["POST"])
def delete_user(user_id: int):
    user = db.get_or_404(User, user_id)
    if user.id == current_user.id:
        flash("You cannot delete your own account.", "danger")
        return redirect(url_for("admin.list_users"))

    username = user.username
    # Audit rows outlive the account.
    TransactionLog.query.filter_by(user_id=user.id).update({"user_id": None}, synchronize_session=False)
    db.session.delete(user)
    db.session.commit()
    log_action("Deleted user", entity_type="user", meta={"username": username})
    flash(f"User {username} deleted.", "success")
    return redirect(url_for("admin.list_users"))


@admin_bp.route("/barangay-info", methods=["GET", "POST"])
def barangay_info():
    """Edit the single barangay information row, creating it on first save."""
    info = BarangayInfo.query.first()
    form = BarangayInfoForm(obj=info)
    if form.validate_on_submit():
        if info is None:
            info = BarangayInfo(barangay_name=form.barangay_name.data.strip())
            db.session.add(info)
        form.populate_obj(info)
        db.session.commit()
        log_action("Updated barangay information", entity_type="barangay_info", entity_id=info.id)
        flash("Barangay information saved.", "success")
        return redirect(url_for("admin.barangay_info"))
    return render_template("form.html", form=form, title="Barangay Information")
