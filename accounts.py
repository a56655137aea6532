import logging
import re

from auth import ROLES, hash_password, verify_password
from errors import ConflictError, NotFoundError, ValidationError
from models import User, UserRole

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
MIN_PASSWORD_LENGTH = 6


def _check_role(role: str) -> str:
    if role not in ROLES:
        raise ValidationError(f"role must be one of {', '.join(ROLES)}")
    return role


def _check_password(pw: str) -> str:
    if not pw or len(pw) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    return pw


class AccountService:
    """Login identities and the role attached to each of them."""

    def __init__(self, store):
        self.store = store

    def create_account(self, email: str, password: str, role: str) -> dict:
        """Returns ``{"success": True}`` or ``{"error": message}``."""
        email = (email or "").strip().lower()
        try:
            if not EMAIL_RE.match(email):
                raise ValidationError("A valid email is required")
            _check_password(password)
            _check_role(role)

            with self.store.transaction() as tx:
                if tx.single(User, email=email):
                    raise ConflictError("Email already exists.")
                user = tx.insert(
                    User, {"email": email, "password_hash": hash_password(password)}
                )
                tx.insert(UserRole, {"user_id": user["id"], "role": role})
        except (ValidationError, ConflictError) as e:
            return {"error": e.message}

        logger.info("Account created for %s with role %s", email, role)
        return {"success": True}

    def authenticate(self, email: str, password: str) -> dict | None:
        user = self.store.single(User, email=(email or "").strip().lower())
        if not user or not verify_password(password or "", user["password_hash"]):
            return None
        return user

    def role_of(self, user_id: int) -> str | None:
        row = self.store.single(UserRole, user_id=user_id)
        return row["role"] if row else None

    def list_users(self) -> list[dict]:
        roles = {r["user_id"]: r["role"] for r in self.store.select(UserRole)}
        return [
            {"id": u["id"], "email": u["email"], "role": roles.get(u["id"])}
            for u in self.store.select(User, order_by="email")
        ]

    def set_role(self, user_id: int, role: str) -> dict:
        _check_role(role)
        with self.store.transaction() as tx:
            if tx.get(User, user_id) is None:
                raise NotFoundError("User", user_id)
            row = tx.upsert(UserRole, "user_id", {"user_id": user_id, "role": role})
        logger.info("User %s is now %s", user_id, role)
        return row

    def change_password(self, user_id: int, current: str, new: str) -> None:
        _check_password(new)
        with self.store.transaction() as tx:
            user = tx.get(User, user_id)
            if user is None:
                raise NotFoundError("User", user_id)
            if not verify_password(current or "", user["password_hash"]):
                raise ValidationError("Current password is incorrect")
            tx.update(User, user_id, {"password_hash": hash_password(new)})
