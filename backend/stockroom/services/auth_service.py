# Overview: Service-layer operations for auth; user roster, login and tier progression.

"""
User roster: the collaborator that turns credentials into an Actor.

The checkout core never checks credentials; it only consumes the Actor
(identity, level, admin flag) produced here.

NOTES:
- Passwords hashed with bcrypt (cost factor from config, 12 by default)
- Roster rules: username non-empty, password at
  least 4 characters, neither may contain the '|' field separator
- Level only ever goes up, driven by cumulative spend
- Admin access requests are kept (password already hashed) until an admin
  approves or rejects them
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Optional

import bcrypt

from ..models import Actor, UserRecord
from ..validation import (
    PersistenceError,
    StockroomError,
    ValidationError,
    coerce_int,
    format_cents,
    parse_money_cents,
)
from .persistence_service import atomic_write_lines, read_lines, refuse_overwrite

logger = logging.getLogger(__name__)

DEFAULT_ADMIN_USERNAME = "admin"
DEFAULT_ADMIN_PASSWORD = "admin"
MIN_PASSWORD_LENGTH = 4

# (minimum cumulative spend in cents, level), highest first
DEFAULT_LEVEL_THRESHOLDS = ((2000_00, 3), (500_00, 2))


class AuthenticationError(StockroomError):
    """Bad credentials or a roster rule violation."""


def validate_username(username: str) -> str:
    if not isinstance(username, str) or not username.strip():
        raise AuthenticationError("Invalid username: must not be empty")
    username = username.strip()
    if "|" in username or "\n" in username:
        raise AuthenticationError("Invalid username: must not contain '|'")
    return username


def validate_password(password: str) -> None:
    if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
        raise AuthenticationError(f"Invalid password (min length {MIN_PASSWORD_LENGTH})")
    if "|" in password or "\n" in password:
        raise AuthenticationError("Invalid password: must not contain '|'")


def hash_password(password: str, rounds: int = 12) -> str:
    """Validate and hash a password with bcrypt."""
    validate_password(password)
    salt = bcrypt.gensalt(rounds=rounds)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # not a bcrypt hash
        return False


def level_for_spent(total_spent_cents: int, thresholds=DEFAULT_LEVEL_THRESHOLDS) -> int:
    for minimum, level in thresholds:
        if total_spent_cents >= minimum:
            return level
    return 1


class Roster:
    def __init__(
        self,
        path=None,
        *,
        next_id: int = 1,
        users: Iterable[UserRecord] = (),
        rounds: int = 12,
        level_thresholds=DEFAULT_LEVEL_THRESHOLDS,
    ):
        self.path = Path(path) if path is not None else None
        self.rounds = rounds
        self.level_thresholds = tuple(level_thresholds)
        self._next_id = max(1, next_id)
        self._users: dict[int, UserRecord] = {}
        self._pending: list[tuple[str, str]] = []
        self.requests_path: Optional[Path] = None
        self.load_error: Optional[str] = None
        self.requests_load_error: Optional[str] = None
        for user in users:
            self._users[user.user_id] = user
            self._next_id = max(self._next_id, user.user_id + 1)

    # ------------------------------------------------------------------
    # persistence
    # ------------------------------------------------------------------

    @staticmethod
    def encode_user(user: UserRecord) -> str:
        return "|".join([
            str(user.user_id),
            user.username,
            user.password_hash,
            str(user.level),
            "1" if user.is_admin else "0",
            format_cents(user.total_spent_cents),
        ])

    @staticmethod
    def decode_user(line: str) -> UserRecord:
        parts = line.split("|")
        if len(parts) != 6:
            raise ValidationError(f"Expected 6 fields, got {len(parts)}")
        user_id = coerce_int(parts[0], "userID")
        if user_id <= 0:
            raise ValidationError("userID must be positive")
        return UserRecord(
            user_id=user_id,
            username=validate_username(parts[1]),
            password_hash=parts[2],
            level=max(1, coerce_int(parts[3], "level")),
            is_admin=coerce_int(parts[4], "isAdmin") != 0,
            total_spent_cents=max(0, parse_money_cents(parts[5], "totalSpent")),
        )

    @classmethod
    def load(cls, path, **kwargs) -> "Roster":
        try:
            lines = read_lines(path)
        except PersistenceError as exc:
            logger.warning("%s; starting with an empty, read-only roster", exc)
            roster = cls(path, **kwargs)
            roster.load_error = str(exc)
            return roster
        if not lines:
            return cls(path, **kwargs)

        next_id = 1
        try:
            next_id = coerce_int(lines[0], "next user id")
        except StockroomError:
            logger.warning("Invalid header in %s; counter recomputed from users", path)

        users = []
        for lineno, line in enumerate(lines[1:], start=2):
            if not line.strip():
                continue
            try:
                users.append(cls.decode_user(line))
            except StockroomError as exc:
                logger.warning("Skipping user line %s in %s: %s", lineno, path, exc)
        return cls(path, next_id=next_id, users=users, **kwargs)

    def save(self) -> None:
        if self.path is None:
            return
        refuse_overwrite(self.load_error, self.path)
        lines = [str(self._next_id)]
        lines.extend(self.encode_user(u) for u in sorted(self._users.values(), key=lambda u: u.user_id))
        atomic_write_lines(self.path, lines)

    # ------------------------------------------------------------------
    # queries
    # ------------------------------------------------------------------

    def users(self) -> list[UserRecord]:
        return sorted(self._users.values(), key=lambda u: u.user_id)

    def get(self, user_id: int) -> Optional[UserRecord]:
        return self._users.get(user_id)

    def by_username(self, username: str) -> Optional[UserRecord]:
        for user in self._users.values():
            if user.username == username:
                return user
        return None

    # ------------------------------------------------------------------
    # registration / login
    # ------------------------------------------------------------------

    def register(self, username: str, password: str, is_admin: bool = False) -> UserRecord:
        username = validate_username(username)
        if self.by_username(username) is not None:
            raise AuthenticationError("Register failed: username already exists")
        user = UserRecord(
            user_id=self._next_id,
            username=username,
            password_hash=hash_password(password, self.rounds),
            is_admin=is_admin,
        )
        self._users[user.user_id] = user
        self._next_id += 1
        logger.info("Registered user %s (ID %s, admin=%s)", username, user.user_id, is_admin)
        return user

    def authenticate(self, username: str, password: str) -> Actor:
        user = self.by_username(username)
        if user is None or not verify_password(password, user.password_hash):
            raise AuthenticationError("Login failed: wrong username or password")
        return user.to_actor()

    def reset_password(self, username: str, new_password: str) -> None:
        user = self.by_username(username)
        if user is None:
            raise AuthenticationError(f"No user named {username}")
        user.password_hash = hash_password(new_password, self.rounds)

    def ensure_default_admin(self) -> Optional[UserRecord]:
        """Create admin/admin when the roster has no administrator."""
        if any(u.is_admin for u in self._users.values()):
            return None
        return self.register(DEFAULT_ADMIN_USERNAME, DEFAULT_ADMIN_PASSWORD, is_admin=True)

    # ------------------------------------------------------------------
    # tiers
    # ------------------------------------------------------------------

    def record_purchase(self, user_id: int, amount_cents: int) -> UserRecord:
        """Add a purchase to the user's spend and raise the level if a threshold was crossed."""
        user = self._users.get(user_id)
        if user is None:
            raise AuthenticationError(f"Unknown user ID {user_id}")
        user.total_spent_cents += amount_cents
        new_level = max(user.level, level_for_spent(user.total_spent_cents, self.level_thresholds))
        if new_level != user.level:
            logger.info("User %s promoted from level %s to %s", user_id, user.level, new_level)
            user.level = new_level
        return user

    # ------------------------------------------------------------------
    # admin access requests (username|password_hash lines)
    # ------------------------------------------------------------------

    def load_requests(self, path) -> None:
        self.requests_path = Path(path)
        self.requests_load_error = None
        try:
            lines = read_lines(path) or []
        except PersistenceError as exc:
            logger.warning("%s; no pending admin requests loaded", exc)
            self.requests_load_error = str(exc)
            lines = []
        self._pending = []
        for line in lines:
            name, sep, password_hash = line.partition("|")
            if sep and name and password_hash:
                self._pending.append((name, password_hash))

    def save_requests(self) -> None:
        if self.requests_path is None:
            return
        refuse_overwrite(self.requests_load_error, self.requests_path)
        atomic_write_lines(self.requests_path, [f"{name}|{pw}" for name, pw in self._pending])

    def request_admin(self, username: str, password: str) -> int:
        """Queue an admin account request; returns its index."""
        username = validate_username(username)
        if self.by_username(username) is not None:
            raise AuthenticationError("Request failed: username already exists")
        if any(name == username for name, _ in self._pending):
            raise AuthenticationError("Request failed: a request for this username is already pending")
        self._pending.append((username, hash_password(password, self.rounds)))
        return len(self._pending) - 1

    def pending_requests(self) -> list[str]:
        return [name for name, _ in self._pending]

    def _request_at(self, index: int) -> tuple[str, str]:
        if not 0 <= index < len(self._pending):
            raise AuthenticationError(f"No pending request #{index}")
        return self._pending[index]

    def approve_request(self, index: int) -> UserRecord:
        """A request whose username was taken meanwhile stays pending."""
        username, password_hash = self._request_at(index)
        if self.by_username(username) is not None:
            raise AuthenticationError("Approve failed: username already exists")
        del self._pending[index]
        user = UserRecord(
            user_id=self._next_id,
            username=username,
            password_hash=password_hash,
            is_admin=True,
        )
        self._users[user.user_id] = user
        self._next_id += 1
        logger.info("Approved admin request for %s (ID %s)", username, user.user_id)
        return user

    def reject_request(self, index: int) -> str:
        username, _ = self._request_at(index)
        del self._pending[index]
        return username
