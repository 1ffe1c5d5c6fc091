from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Scope:
    identifier: str
    description: str = ""

    def __str__(self) -> str:
        return self.identifier
