from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Principal:
    """Authenticated identity extracted from a validated JWT.

    user_id is the identity provider's `sub`.  Name and email come from the
    token claims and are only needed for CRM sync, so they may be empty.
    """

    user_id: str
    email: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    roles: frozenset[str] = frozenset()

    def has_role(self, role: str) -> bool:
        return role in self.roles
