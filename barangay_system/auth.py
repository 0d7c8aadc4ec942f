"""
Authentication blueprint for the Barangay Management System.

Covers sign in, sign out and changing one's own password.  Every sign-in
attempt is stored as a `LoginAttempt`; too many failures from one IP
address or against one username inside the configured window lock further
attempts out until the window passes.
"""
from datetime import timedelta
import time

from flask import Blueprint, render_template, redirect, url_for, flash, request, session, current_app
from flask_login import login_user, logout_user, login_required, current_user

from .extensions import db
from .models import User, LoginAttempt
from .forms import LoginForm, PasswordChangeForm
from .helpers import log_action, get_client_ip
from .time_utils import utcnow

auth_bp = Blueprint("auth", __name__)

DEFAULT_ADMIN_USERNAME = "admin"
DEFAULT_ADMIN_PASSWORD = "admin"

# Session keys owned by this blueprint and the idle-timeout hook.
SESSION_KEYS = ("force_password_change", "last_activity")


def _failed_attempts_since(cutoff, **match) -> int:
    return LoginAttempt.query.filter(
        LoginAttempt.success.is_(False),
        LoginAttempt.created_at >= cutoff,
    ).filter_by(**match).count()


def _locked_out(username: str, ip: str | None) -> bool:
    limit = int(current_app.config.get("LOGIN_RATE_LIMIT_MAX", 5))
    window = int(current_app.config.get("LOGIN_RATE_LIMIT_WINDOW_SECONDS", 600))
    if limit <= 0 or window <= 0:
        return False

    cutoff = utcnow() - timedelta(seconds=window)
    if ip and _failed_attempts_since(cutoff, ip_address=ip) >= limit:
        return True
    return bool(username) and _failed_attempts_since(cutoff, username=username) >= limit


def _authenticate(username: str, password: str, ip: str | None) -> User | None:
    """Check the credentials and record the attempt either way."""
    user = User.query.filter_by(username=username).first()
    ok = user is not None and user.check_password(password)
    db.session.add(LoginAttempt(username=username or None, ip_address=ip or None, success=ok))
    db.session.commit()
    return user if ok else None


def _uses_default_password(user: User) -> bool:
    return user.username == DEFAULT_ADMIN_USERNAME and user.check_password(DEFAULT_ADMIN_PASSWORD)


def clear_auth_session() -> None:
    for key in SESSION_KEYS:
        session.pop(key, None)


def _redirect_target() -> str:
    target = request.args.get("next") or ""
    if target.startswith("/") and not target.startswith("//"):
        return target
    return url_for("main.index")


@auth_bp.route("/login", methods=["GET", "POST"])
def login():
    if current_user.is_authenticated:
        return redirect(url_for("main.index"))

    form = LoginForm()
    if not form.validate_on_submit():
        return render_template("login.html", form=form)

    username = (form.username.data or "").strip()
    ip = get_client_ip()
    if _locked_out(username, ip):
        flash("Too many failed login attempts. Please try again later.", "danger")
        return render_template("login.html", form=form)

    user = _authenticate(username, form.password.data, ip)
    if user is None:
        flash("Invalid username or password.", "danger")
        return render_template("login.html", form=form)

    login_user(user, remember=form.remember.data)
    session.permanent = True
    session["last_activity"] = int(time.time())
    log_action("Logged in", entity_type="user", entity_id=user.id, meta={"role": user.role})

    if _uses_default_password(user):
        session["force_password_change"] = True
        flash("Please change the default admin password before continuing.", "warning")
        return redirect(url_for("auth.change_password"))

    session.pop("force_password_change", None)
    flash(f"Welcome, {user.full_name or user.username}.", "success")
    return redirect(_redirect_target())


@auth_bp.route("/logout")
@login_required
def logout():
    log_action("Logged out", entity_type="user", entity_id=current_user.id)
    logout_user()
    clear_auth_session()
    flash("You have been signed out.", "success")
    return redirect(url_for("auth.login"))


@auth_bp.route("/change-password", methods=["GET", "POST"])
@login_required
def change_password():
    """Change the signed-in user's password.

    Also clears the forced-change flag set for the seeded admin account.
    """
    form = PasswordChangeForm()
    if form.validate_on_submit():
        if current_user.check_password(form.current_password.data):
            current_user.set_password(form.new_password.data)
            db.session.commit()
            session.pop("force_password_change", None)
            log_action("Changed own password", entity_type="user", entity_id=current_user.id)
            flash("Your password has been updated.", "success")
            return redirect(url_for("main.index"))
        form.current_password.errors.append("Incorrect current password.")
    return render_template("form.html", form=form, title="Change Password")
