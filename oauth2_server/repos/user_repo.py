from __future__ import annotations

import logging
from dataclasses import replace
from typing import Protocol

from oauth2_server.models.client import Client
from oauth2_server.models.user import User
from oauth2_server.services import password_service

logger = logging.getLogger(__name__)


class UserRepo(Protocol):
    def get_user_entity_by_user_credentials(
        self, username: str, password: str, grant_type: str, client: Client
    ) -> User | None: ...


class InMemoryUserRepo:
    def __init__(self) -> None:
        self._by_username: dict[str, User] = {}

    def add(self, user: User) -> None:
        if user.username in self._by_username:
            raise ValueError("username already exists")
        self._by_username[user.username] = user

    def get_user_entity_by_user_credentials(
        self, username: str, password: str, grant_type: str, client: Client
    ) -> User | None:
        user = self._by_username.get(username)
        if user is None or not user.is_active:
            return None
        if not password_service.verify_password(password, user.password_hash):
            return None

        # Upgrade the stored hash if the hasher's parameters changed over time.
        if password_service.needs_rehash(user.password_hash):
            user = replace(user, password_hash=password_service.hash_password(password))
            self._by_username[username] = user
            logger.info("Rehashed password for user=%s", user.identifier)
        return user
