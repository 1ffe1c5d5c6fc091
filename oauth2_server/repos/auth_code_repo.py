from __future__ import annotations

from typing import Protocol

from oauth2_server.core.errors import UniqueTokenIdentifierConstraintViolation
from oauth2_server.models.auth_code import AuthCode


class AuthCodeRepo(Protocol):
    def get_new_auth_code(self) -> AuthCode: ...
    def persist_new_auth_code(self, code: AuthCode) -> None: ...

    def revoke_auth_code(self, code_id: str) -> None:
        """Mark a code consumed.  Must be visible to the very next
        is_auth_code_revoked() call (single-use enforcement)."""
        ...

    def is_auth_code_revoked(self, code_id: str) -> bool: ...


class InMemoryAuthCodeRepo:
    def __init__(self) -> None:
        self._by_id: dict[str, AuthCode] = {}
        self._revoked: set[str] = set()

    def get_new_auth_code(self) -> AuthCode:
        return AuthCode.new()

    def persist_new_auth_code(self, code: AuthCode) -> None:
        if code.identifier in self._by_id:
            raise UniqueTokenIdentifierConstraintViolation(code.identifier)
        self._by_id[code.identifier] = code

    def revoke_auth_code(self, code_id: str) -> None:
        self._revoked.add(code_id)

    def is_auth_code_revoked(self, code_id: str) -> bool:
        return code_id in self._revoked

    def get(self, code_id: str) -> AuthCode | None:
        return self._by_id.get(code_id)
