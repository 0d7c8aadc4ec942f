"""
Application factory for the Barangay Management System.

`create_app()` loads `.env`, applies a config class, wires the Flask
extensions and registers the `main`, `auth` and `admin` blueprints.  Run
the development server with `flask --app wsgi run`.
"""
import logging
import os
import time
from datetime import datetime, timezone

import click
from dotenv import load_dotenv
from flask import Flask, flash, jsonify, redirect, request, session, url_for
from flask_login import current_user, logout_user
from flask_migrate import Migrate
from flask_wtf.csrf import CSRFError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from .config import DevelopmentConfig
from .extensions import csrf, db, login_manager, mail
from .observability import init_request_logging, init_security_headers
from .routes import main_bp
from .auth import auth_bp, clear_auth_session, DEFAULT_ADMIN_PASSWORD, DEFAULT_ADMIN_USERNAME
from .admin import admin_bp


# Endpoints a user with a pending forced password change may still reach.
PASSWORD_CHANGE_ENDPOINTS = frozenset({"auth.change_password", "auth.logout", "static"})


def seed_default_admin() -> bool:
    """Create the `admin`/`admin` account when the users table is empty.

    The account is forced to change its password on first login.
    Returns True if the account was created.
    """
    from .models import User

    if User.query.count():
        return False
    admin = User(
        username=DEFAULT_ADMIN_USERNAME,
        email="admin@example.com",
        role="admin",
        full_name="Administrator",
    )
    admin.set_password(DEFAULT_ADMIN_PASSWORD)
    db.session.add(admin)
    db.session.commit()
    return True


def _init_auth(app: Flask) -> None:
    login_manager.init_app(app)
    login_manager.login_view = "auth.login"
    login_manager.login_message_category = "warning"
    login_manager.session_protection = "strong"

    @login_manager.user_loader
    def load_user(user_id: str):
        from .models import User

        try:
            return db.session.get(User, int(user_id))
        except (TypeError, ValueError):
            return None

    idle_timeout = int(app.config.get("SESSION_IDLE_TIMEOUT_SECONDS", 0) or 0)

    @app.before_request
    def enforce_session_rules():
        """Log out idle sessions and hold users with a pending password change."""
        if not current_user.is_authenticated or (request.endpoint or "").startswith("static"):
            return None

        now_ts = int(time.time())
        last_seen = session.get("last_activity")
        if idle_timeout > 0 and last_seen and now_ts - int(last_seen) > idle_timeout:
            logout_user()
            clear_auth_session()
            flash("Your session expired due to inactivity. Please log in again.", "warning")
            return redirect(url_for("auth.login"))
        session["last_activity"] = now_ts

        if session.get("force_password_change") and request.endpoint not in PASSWORD_CHANGE_ENDPOINTS:
            return redirect(url_for("auth.change_password"))
        return None


def _init_database(app: Flask) -> None:
    """Create missing tables and seed the first admin when AUTO_CREATE_DB is on.

    `flask db upgrade` is the way to manage long-lived databases.
    """
    if not app.config.get("AUTO_CREATE_DB", True):
        return
    with app.app_context():
        from . import models  # noqa: F401  (register tables on the metadata)

        try:
            db.create_all()
        except SQLAlchemyError as exc:
            app.logger.error("Database initialization failed. Check DATABASE_URL / .env. Error: %s", exc)
            raise
        if seed_default_admin():
            app.logger.warning("Seeded default admin account; its password must be changed on first login.")


def _register_cli(app: Flask) -> None:
    @app.cli.command("init-db")
    def init_db_command():
        """Create all tables and seed the default admin account."""
        from . import models  # noqa: F401

        db.create_all()
        created = seed_default_admin()
        click.echo("Database initialized." + (" Default admin account created." if created else ""))

    @app.cli.command("create-admin")
    @click.option("--username", required=True)
    @click.option("--email", required=True)
    @click.option("--password", required=True, prompt=True, hide_input=True, confirmation_prompt=True)
    @click.option("--full-name", default=None)
    def create_admin_command(username: str, email: str, password: str, full_name: str | None):
        """Create an administrator account."""
        from .models import User

        email = email.strip().lower()
        if User.query.filter((User.username == username) | (User.email == email)).first():
            raise click.ClickException("A user with that username or email already exists.")
        user = User(username=username, email=email, role="admin", full_name=full_name)
        user.set_password(password)
        db.session.add(user)
        db.session.commit()
        click.echo(f"Admin user '{username}' created.")


def create_app(config_class=DevelopmentConfig):
    """
    Build and configure the Flask application.

    Args:
        config_class: configuration class, e.g. `DevelopmentConfig` or `ProductionConfig`.
    """
    load_dotenv(os.path.join(os.getcwd(), ".env"), override=False)
    load_dotenv(os.path.join(os.path.dirname(__file__), ".env"), override=False)

    app = Flask(__name__)
    app.config.from_object(config_class)

    log_level = getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO)
    app.logger.setLevel(log_level)
    logging.getLogger(__package__).setLevel(log_level)

    db.init_app(app)
    Migrate(app, db)
    mail.init_app(app)
    csrf.init_app(app)
    _init_auth(app)
    init_request_logging(app)
    init_security_headers(app)

    @app.errorhandler(CSRFError)
    def handle_csrf_error(e: CSRFError):
        flash("Security token missing/expired. Please retry the action.", "danger")
        return redirect(request.referrer or url_for("main.index"))

    @app.context_processor
    def inject_template_helpers():
        def pagination_url(page: int):
            args = {**(request.view_args or {}), **request.args.to_dict(flat=True), "page": page}
            return url_for(request.endpoint, **args)

        return {
            "pagination_url": pagination_url,
            "can_edit": bool(current_user.is_authenticated and current_user.can_edit),
        }

    app.register_blueprint(main_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(admin_bp)

    @app.get("/healthz")
    def healthz():
        """Liveness plus a `SELECT 1` against the database."""
        try:
            db.session.execute(text("SELECT 1"))
            db_ok = True
        except SQLAlchemyError:
            db.session.rollback()
            db_ok = False
        body = {
            "status": "ok" if db_ok else "degraded",
            "db": db_ok,
            "time": datetime.now(timezone.utc).isoformat(),
        }
        return jsonify(body), 200 if db_ok else 503

    _init_database(app)
    _register_cli(app)
    return app
