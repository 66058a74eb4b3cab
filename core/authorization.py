"""
Capability checks for workflow transitions.

Services ask an Authorizer whether an actor may perform a capability. How roles
are stored is not their concern; RoleAuthorizer is the default implementation
backed by the staff_roles table.
"""

import logging
from enum import Enum
from typing import Protocol
from uuid import UUID

from clients.postgres_client import PostgresClient
from core.errors import AuthorizationError

logger = logging.getLogger(__name__)


class Capability(str, Enum):
    CREATE_REQUESTS = "create_requests"
    HOLD_CASE_NOTES = "hold_case_notes"
    APPROVE_REQUESTS = "approve_requests"
    VERIFY_RETURNS = "verify_returns"
    PROCESS_BATCHES = "process_batches"
    COMPLETE_REQUESTS = "complete_requests"
    CORRECT_TIMELINE = "correct_timeline"


class Role(str, Enum):
    CA = "CA"
    MR_STAFF = "MR_STAFF"
    ADMIN = "ADMIN"


ROLE_CAPABILITIES: dict[Role, frozenset[Capability]] = {
    Role.CA: frozenset({
        Capability.CREATE_REQUESTS,
        Capability.HOLD_CASE_NOTES,
    }),
    Role.MR_STAFF: frozenset({
        Capability.APPROVE_REQUESTS,
        Capability.VERIFY_RETURNS,
        Capability.PROCESS_BATCHES,
        Capability.COMPLETE_REQUESTS,
    }),
    Role.ADMIN: frozenset(Capability),
}


class Authorizer(Protocol):
    def authorize(self, actor_id: UUID, capability: Capability) -> bool:
        ...


class RoleAuthorizer:
    """Authorizer that maps staff_roles rows to capabilities."""

    def __init__(self, postgres: PostgresClient):
        self.postgres = postgres

    def roles_for(self, actor_id: UUID) -> set[Role]:
        rows = self.postgres.execute(
            "SELECT role FROM staff_roles WHERE actor_id = %s",
            (actor_id,)
        )
        roles = set()
        for row in rows:
            try:
                roles.add(Role(row["role"]))
            except ValueError:
                logger.warning("Ignoring unknown role %r for actor %s", row["role"], actor_id)
        return roles

    def authorize(self, actor_id: UUID, capability: Capability) -> bool:
        return any(capability in ROLE_CAPABILITIES[role] for role in self.roles_for(actor_id))


def require(authorizer: Authorizer, actor_id: UUID, capability: Capability) -> None:
    """
    Raise unless the actor holds the capability.

    Raises:
        AuthorizationError: Capability missing.
    """
    if not authorizer.authorize(actor_id, capability):
        raise AuthorizationError(
            f"Actor {actor_id} lacks capability '{capability.value}'",
            capability=capability.value,
        )
