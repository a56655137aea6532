import logging
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeout
from functools import wraps

from flask import current_app, flash, g, jsonify, redirect, request, session, url_for
from werkzeug.security import generate_password_hash, check_password_hash

from errors import AuthTimeoutError

logger = logging.getLogger(__name__)

NORMAL = "normal"
ADMIN = "admin"
KITCHEN = "kitchen"
ROLES = (NORMAL, ADMIN, KITCHEN)

_role_checks = ThreadPoolExecutor(max_workers=4, thread_name_prefix="role-check")


def hash_password(pw: str) -> str:
    return generate_password_hash(pw)

def verify_password(pw: str, pw_hash: str) -> bool:
    return check_password_hash(pw_hash, pw)


def authorize(role: str | None, required_roles=()) -> bool:
    """
    Single access policy for every guarded view.
    No required roles means any signed-in user; admin also passes kitchen checks.
    """
    if role not in ROLES:
        return False
    if not required_roles:
        return True
    if role in required_roles:
        return True
    return role == ADMIN and KITCHEN in required_roles


def resolve_role(lookup, user_id: int, timeout: float) -> str | None:
    """Run ``lookup(user_id)`` but give up after ``timeout`` seconds."""
    future = _role_checks.submit(lookup, user_id)
    try:
        return future.result(timeout=timeout)
    except FuturesTimeout:
        future.cancel()
        logger.warning("Role check for user %s timed out after %.1fs", user_id, timeout)
        raise AuthTimeoutError("Authorization check timed out, please log in again")


def _wants_json() -> bool:
    return request.blueprint == "api"


def _to_login(message: str, status: int):
    if _wants_json():
        return jsonify({"error": message}), status
    flash(message)
    return redirect(url_for("web.login"))


def login_required(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        if not session.get("user_id"):
            return _to_login("Please login first.", 401)
        return fn(*args, **kwargs)
    return wrapper


def role_required(*roles):
    """Allow the view only for users whose stored role passes ``authorize``."""

    def decorator(fn):
        @wraps(fn)
        @login_required
        def wrapper(*args, **kwargs):
            accounts = current_app.extensions["pos"].accounts
            timeout = current_app.config["AUTH_TIMEOUT_SECONDS"]
            try:
                role = resolve_role(accounts.role_of, session["user_id"], timeout)
            except AuthTimeoutError as e:
                session.clear()
                return _to_login(e.message, e.status_code)

            if role is None:
                session.clear()
                return _to_login("Your account has no role assigned.", 401)

            if not authorize(role, roles):
                if _wants_json():
                    return jsonify({"error": "Access denied"}), 403
                flash("Access denied.")
                return redirect(url_for("web.kitchen" if role == KITCHEN else "web.index"))

            g.role = role
            return fn(*args, **kwargs)
        return wrapper
    return decorator


def admin_required(fn):
    return role_required(ADMIN)(fn)


def kitchen_required(fn):
    return role_required(KITCHEN)(fn)
