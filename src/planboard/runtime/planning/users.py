"""User registration and placeholder handling."""

from __future__ import annotations

import hashlib
import logging
import secrets
from typing import Optional

from ..domain.models import PLACEHOLDER_PASSWORD_HASH, User, normalize_email
from ..errors import ConflictError, NotFoundError, ValidationError
from ..events.bus import EventBus
from ..storage.container import Container

logger = logging.getLogger(__name__)

_PBKDF2_ITERATIONS = 200_000


def hash_password(password: str) -> str:
    salt = secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), bytes.fromhex(salt), _PBKDF2_ITERATIONS)
    return f"pbkdf2_sha256${_PBKDF2_ITERATIONS}${salt}${digest.hex()}"


def _random_avatar() -> str:
    return f"#{secrets.randbelow(0xFFFFFF + 1):06x}"


class UserService:
    """Create users and resolve collaborators by email."""

    def __init__(self, container: Container, bus: EventBus) -> None:
        self.container = container
        self.bus = bus

    def register(self, email: str, name: str, password: str) -> User:
        """Register a user, claiming a placeholder created by an earlier plan import.

        Raises:
            ValidationError: On a malformed email, empty name or short password.
            ConflictError: If a registered user already owns the email.
        """
        email = normalize_email(email)
        name = str(name or "").strip()
        if "@" not in email or email.startswith("@") or email.endswith("@"):
            raise ValidationError("Invalid email address", field="email")
        if not name or len(name) > 100:
            raise ValidationError("Name must be 1-100 characters", field="name")
        if len(password or "") < 8:
            raise ValidationError("Password must be at least 8 characters", field="password")

        existing = self.container.users.find_by_email(email)
        if existing is not None:
            if not existing.is_placeholder:
                raise ConflictError("User already exists", field="email")
            existing.name = name
            existing.password_hash = hash_password(password)
            existing.is_placeholder = False
            existing.avatar = existing.avatar or _random_avatar()
            self.container.users.update(existing)
            logger.info("Claimed placeholder user %s", email)
            self.bus.emit(channel="users", event_type="user.claimed", entity_id=existing.id, payload={"email": email})
            return existing

        user = User(email=email, name=name, password_hash=hash_password(password), avatar=_random_avatar())
        self.container.users.insert(user)
        logger.info("Created user %s", email)
        self.bus.emit(channel="users", event_type="user.created", entity_id=user.id, payload={"email": email})
        return user

    def get_user(self, user_id: str) -> User:
        user = self.container.users.get(user_id)
        if user is None:
            raise NotFoundError("User not found", field="user_id")
        return user

    def find_by_email(self, email: str) -> Optional[User]:
        return self.container.users.find_by_email(email)

    def ensure_by_email(self, email: str, name: str) -> User:
        """Return the user registered under ``email``, creating a placeholder if none."""
        existing = self.container.users.find_by_email(email)
        if existing is not None:
            return existing
        placeholder = User(
            email=normalize_email(email),
            name=str(name or "").strip() or normalize_email(email).split("@")[0],
            password_hash=PLACEHOLDER_PASSWORD_HASH,
            is_placeholder=True,
        )
        self.container.users.insert(placeholder)
        logger.info("Created placeholder user %s", placeholder.email)
        return placeholder
