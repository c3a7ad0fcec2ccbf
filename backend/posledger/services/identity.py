"""
Identity collaborator boundary.

The core never defines roles; it only asks an actor whether it holds an
opaque capability string. Login/credential handling happens outside and
hands the signed-in actor to a SessionIdentity.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Optional, Protocol

from ..validation import ConflictError


# Capability strings checked by the core
CAP_SALE_CREATE = "pos:sale.create"
CAP_SHIFT_OPEN = "pos:shift.open"
CAP_SHIFT_CLOSE = "pos:shift.close"
CAP_SHIFT_XREPORT = "pos:shift.xreport"
CAP_SHIFT_ZREPORT = "pos:shift.zreport"
CAP_INVENTORY_ADJUST = "pos:inventory.adjust"
CAP_CASH_MOVEMENT = "pos:cash.movement"
CAP_APPROVAL_GRANT = "pos:approval.grant"
CAP_REPORTS_VIEW = "pos:reports.view"

ADMIN_ROLE = "admin"


class PermissionDeniedError(Exception):
    """Actor lacks the capability required for an operation."""

    def __init__(self, permission: str, message: str | None = None):
        super().__init__(message or f"Missing permission: {permission}")
        self.permission = permission


class AuthenticationRequired(ConflictError):
    """Operation needs a signed-in actor and there is none."""


@dataclass(frozen=True)
class Actor:
    id: str
    name: str
    location_id: str
    permissions: frozenset = field(default_factory=frozenset)
    role: Optional[str] = None

    def has_permission(self, permission: str) -> bool:
        if self.role == ADMIN_ROLE:
            return True
        return permission in self.permissions

    @classmethod
    def from_dict(cls, data: dict) -> "Actor":
        return cls(
            id=str(data["id"]),
            name=data.get("name") or str(data["id"]),
            location_id=str(data["location_id"]),
            permissions=frozenset(data.get("permissions") or ()),
            role=data.get("role"),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "location_id": self.location_id,
            "permissions": sorted(self.permissions),
            "role": self.role,
        }


class IdentityProvider(Protocol):
    def current_actor(self) -> Optional[Actor]: ...


class SessionIdentity:
    """The terminal's signed-in actor (one at a time)."""

    def __init__(self, actor: Optional[Actor] = None):
        self._lock = threading.Lock()
        self._actor = actor

    def sign_in(self, actor: Actor) -> Actor:
        with self._lock:
            self._actor = actor
        return actor

    def sign_out(self) -> None:
        with self._lock:
            self._actor = None

    def current_actor(self) -> Optional[Actor]:
        with self._lock:
            return self._actor


def require_actor(identity: IdentityProvider) -> Actor:
    actor = identity.current_actor()
    if actor is None:
        raise AuthenticationRequired("No authenticated user")
    return actor


def require_capability(identity: IdentityProvider, permission: str) -> Actor:
    actor = require_actor(identity)
    if not actor.has_permission(permission):
        raise PermissionDeniedError(permission)
    return actor
