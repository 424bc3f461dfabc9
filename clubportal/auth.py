"""
Password hashing, the email-domain policy and principal resolution.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional

import bcrypt

from clubportal.config import Settings, get_settings
from clubportal.db import DbClient, UserRecord
from clubportal.errors import DuplicateEntryError, ValidationFailed
from clubportal.types import Principal

logger = logging.getLogger(__name__)

DUPLICATE_USER = "A user with this email already exists"


def hash_password(password: str, rounds: Optional[int] = None) -> str:
    if rounds is None:
        rounds = get_settings().bcrypt_rounds
    salt = bcrypt.gensalt(rounds=rounds)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Malformed hash or oversized password.
        return False


def is_allowed_email(email: str, domains: Iterable[str]) -> bool:
    email = (email or "").strip().lower()
    return any(email.endswith("@" + domain.lower()) for domain in domains)


def principal_for(user: UserRecord) -> Principal:
    return Principal(
        user_id=user.id,
        email=user.email,
        name=user.name,
        capabilities=frozenset(user.permissions),
    )


def authenticate(
    db: DbClient, email: str, password: str, settings: Optional[Settings] = None
) -> Optional[Principal]:
    """Return the principal for valid credentials, otherwise ``None``."""
    settings = settings or get_settings()
    email = (email or "").strip().lower()
    if not is_allowed_email(email, settings.allowed_email_domains):
        logger.info("Rejected login from disallowed domain")
        return None
    user = db.get_user_by_email(email)
    if not user or not verify_password(password, user.password_hash):
        return None
    return principal_for(user)


def load_principal(db: DbClient, user_id: Optional[int]) -> Optional[Principal]:
    """Resolve a principal from a session's user id, if the user still exists."""
    if user_id is None:
        return None
    user = db.get_user(int(user_id))
    return principal_for(user) if user else None


def create_user(
    db: DbClient,
    *,
    name: str,
    email: str,
    password: str,
    student_id: Optional[str] = None,
    image: Optional[str] = None,
    permissions: Iterable[str] = (),
    settings: Optional[Settings] = None,
) -> UserRecord:
    """Create a user after checking the domain policy and email uniqueness."""
    settings = settings or get_settings()
    email = (email or "").strip().lower()
    if not is_allowed_email(email, settings.allowed_email_domains):
        domains = " or ".join("@" + d for d in settings.allowed_email_domains)
        raise ValidationFailed(f"Email must end with {domains}")
    if db.get_user_by_email(email):
        raise DuplicateEntryError(DUPLICATE_USER)
    return db.insert_user(
        name=name.strip(),
        email=email,
        password_hash=hash_password(password, settings.bcrypt_rounds),
        student_id=student_id,
        image=image,
        permissions=permissions,
    )
