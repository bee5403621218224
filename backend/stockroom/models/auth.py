from __future__ import annotations

from dataclasses import dataclass

LEVEL_NAMES = {1: "Silver", 2: "Gold", 3: "Diamond"}


def level_name(level: int) -> str:
    if level <= 1:
        return LEVEL_NAMES[1]
    if level == 2:
        return LEVEL_NAMES[2]
    return LEVEL_NAMES[3]


@dataclass(frozen=True)
class Actor:
    """Authenticated identity handed to the core: who, which tier, admin or not."""
    user_id: int
    username: str
    level: int = 1
    is_admin: bool = False

    @property
    def level_name(self) -> str:
        return level_name(self.level)


@dataclass
class UserRecord:
    """One roster line. password_hash holds a bcrypt hash."""
    user_id: int
    username: str
    password_hash: str
    level: int = 1
    is_admin: bool = False
    total_spent_cents: int = 0

    def to_actor(self) -> Actor:
        return Actor(
            user_id=self.user_id,
            username=self.username,
            level=self.level,
            is_admin=self.is_admin,
        )

    def __repr__(self) -> str:
        return f"<UserRecord id={self.user_id} username={self.username!r} admin={self.is_admin}>"
