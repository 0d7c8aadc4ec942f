"""
Utility functions shared by the blueprints.

Role checks, audit logging, document file storage and access to the
request's record store live here so that route modules stay focused on
view logic.
"""
from __future__ import annotations

import os
import secrets
import time
from functools import wraps

from flask import abort, current_app, has_request_context, request
from flask_login import current_user
from werkzeug.utils import secure_filename

from .extensions import db
from .models import TransactionLog
from .store import RecordStore


EDITOR_ROLES = ("admin", "staff")


def roles_required(*roles: str):
    """Require the current user to have one of the given roles.

    Usage:
        @login_required
        @roles_required("admin")
        def view(...):
            ...
    """

    def decorator(view_func):
        @wraps(view_func)
        def wrapper(*args, **kwargs):
            if not current_user.is_authenticated:
                abort(401)
            if roles and getattr(current_user, "role", None) not in roles:
                abort(403)
            return view_func(*args, **kwargs)

        return wrapper

    return decorator


def editors_only(view_func):
    """Shorthand for `roles_required("admin", "staff")`; viewers are read-only."""
    return roles_required(*EDITOR_ROLES)(view_func)


def get_store() -> RecordStore:
    """Record store bound to the current Flask-SQLAlchemy session."""
    return RecordStore(db.session)


def default_location() -> tuple[float, float]:
    return (
        float(current_app.config.get("DEFAULT_LATITUDE", 17.65)),
        float(current_app.config.get("DEFAULT_LONGITUDE", 120.85)),
    )


def get_client_ip() -> str | None:
    """Best-effort client IP for rate limiting and audit logs."""
    if not has_request_context():
        return None
    forwarded = request.headers.get("X-Forwarded-For", "")
    if forwarded:
        return forwarded.split(",")[0].strip() or None
    return request.remote_addr


def log_action(
    action: str,
    *,
    entity_type: str | None = None,
    entity_id: str | int | None = None,
    meta: dict | None = None,
) -> None:
    """Record an action in the transaction log.

    Only actions of authenticated users are logged.
    """
    if not current_user.is_authenticated:
        return

    ua = None
    if has_request_context() and request.user_agent:
        ua = (request.user_agent.string or "")[:255]

    log = TransactionLog(
        user_id=current_user.id,
        action=action,
        entity_type=entity_type,
        entity_id=str(entity_id) if entity_id is not None else None,
        ip_address=get_client_ip(),
        user_agent=ua,
        meta=meta,
    )
    db.session.add(log)
    db.session.commit()


# ---------------------------------------------------------------------------
# Document storage
# ---------------------------------------------------------------------------

DOCUMENTS_SUBFOLDER = "documents"


class UploadRejected(ValueError):
    pass


def _storage_root() -> str:
    return current_app.config.get(
        "UPLOAD_FOLDER", os.path.join(current_app.root_path, "static", "uploads")
    )


def stored_file_path(relative_path: str) -> str:
    """Absolute path of a stored file, refusing paths that escape the storage root."""
    root = os.path.realpath(_storage_root())
    abs_path = os.path.realpath(os.path.join(root, relative_path))
    if os.path.commonpath([root, abs_path]) != root:
        abort(404)
    return abs_path


def save_uploaded_document(file_storage) -> dict:
    """Save an uploaded document under UPLOAD_FOLDER/documents.

    The stored name is `<millis>-<random>.<ext>` so uploads never collide.

    Returns:
        A dict with `file_name`, `file_path` (relative to UPLOAD_FOLDER),
        `file_size` and `file_type`.
    """
    if not file_storage or not getattr(file_storage, "filename", ""):
        raise UploadRejected("No file selected.")

    original = secure_filename(file_storage.filename)
    if "." not in original:
        raise UploadRejected("File has no extension.")
    ext = original.rsplit(".", 1)[1].lower()
    allowed = current_app.config.get("ALLOWED_DOCUMENT_EXTENSIONS") or ()
    if allowed and ext not in allowed:
        raise UploadRejected(f"Files of type .{ext} are not allowed.")

    target_dir = os.path.join(_storage_root(), DOCUMENTS_SUBFOLDER)
    os.makedirs(target_dir, exist_ok=True)

    stored_name = f"{int(time.time() * 1000)}-{secrets.token_hex(4)}.{ext}"
    abs_path = os.path.join(target_dir, stored_name)
    file_storage.save(abs_path)

    return {
        "file_name": stored_name,
        "file_path": f"{DOCUMENTS_SUBFOLDER}/{stored_name}",
        "file_size": os.path.getsize(abs_path),
        "file_type": file_storage.mimetype or None,
    }


def remove_stored_file(relative_path: str | None) -> bool:
    """Delete a stored file.  Returns False if it was already gone."""
    if not relative_path:
        return False
    abs_path = stored_file_path(relative_path)
    if not os.path.exists(abs_path):
        return False
    os.remove(abs_path)
    return True
