# Overview: The acting user as supplied by the external identity provider.

from __future__ import annotations

from dataclasses import dataclass

ROLE_ADMIN = "admin"
ROLE_STAFF = "staff"


@dataclass(frozen=True)
class Actor:
    """
    Authenticated caller.

    Authentication and role assignment happen outside this engine; the
    engine only reads the admin capability.
    """
    name: str
    role: str = ROLE_STAFF
    id: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    @classmethod
    def from_headers(cls, headers) -> "Actor | None":
        """
        Build an Actor from the headers set by the upstream auth gateway.

        Returns None when no identity was forwarded.
        """
        name = (headers.get("X-Actor-Name") or "").strip()
        if not name:
            return None
        role = (headers.get("X-Actor-Role") or ROLE_STAFF).strip().lower()
        actor_id = (headers.get("X-Actor-Id") or "").strip() or None
        return cls(name=name, role=role, id=actor_id)
