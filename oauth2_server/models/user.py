from __future__ import annotations

from dataclasses import dataclass
from uuid import uuid4


@dataclass(frozen=True, slots=True)
class User:
    identifier: str
    username: str
    password_hash: str
    is_active: bool = True

    @staticmethod
    def new(*, username: str, password_hash: str) -> User:
        # Keep creation centralized so usernames can be normalized later
        return User(
            identifier=str(uuid4()),
            username=username,
            password_hash=password_hash,
            is_active=True,
        )
