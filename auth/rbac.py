"""
auth/rbac.py -- Role-based access control decisions.

Pure functions over Identity and Role. The FastAPI glue that pulls the
identity out of a request lives in auth/dependencies.py.

Rules:
  - No identity                                   -> UnauthenticatedError (401)
  - ADMIN                                         -> allowed everywhere
  - role in the operation's declared allow-list   -> allowed
  - otherwise                                     -> ForbiddenError (403)

Ownership: non-admins may only mutate resources whose owner id equals their
own user id.

Every denial is written to the audit trail when one is supplied. The audit
call cannot change the outcome (AuditTrail never raises).
"""

from __future__ import annotations

from collections.abc import Iterable

from auth.audit import AuditTrail
from auth.errors import ForbiddenError, UnauthenticatedError
from auth.models import Identity, Role

WILDCARD = "*"

# Static permission catalogue for the marketplace services.
ROLE_PERMISSIONS: dict[Role, frozenset[str]] = {
    Role.ADMIN: frozenset({WILDCARD}),
    Role.SELLER: frozenset(
        {
            "product:create",
            "product:read",
            "product:update",
            "product:delete",
            "order:read",
        }
    ),
    Role.BUYER: frozenset(
        {
            "product:read",
            "order:create",
            "order:read",
            "payment:create",
        }
    ),
}


def has_permission(role: Role, permission: str) -> bool:
    granted = ROLE_PERMISSIONS[role]
    return WILDCARD in granted or permission in granted


def authorize(
    identity: Identity | None,
    allowed_roles: Iterable[Role],
    *,
    audit: AuditTrail | None = None,
    resource: str | None = None,
    action: str | None = None,
    origin: str | None = None,
) -> Identity:
    """Return identity if it may perform the operation, else raise."""
    if identity is None:
        _deny(audit, None, resource, action, origin, reason="No authenticated user")
        raise UnauthenticatedError("Authentication required.")
    allowed = frozenset(allowed_roles)
    if identity.role is Role.ADMIN or identity.role in allowed:
        return identity
    _deny(
        audit,
        identity,
        resource,
        action,
        origin,
        reason="Insufficient permissions",
        user_role=identity.role.value,
        required_roles=sorted(r.value for r in allowed),
    )
    raise ForbiddenError()


def require_permission(
    identity: Identity | None,
    permission: str,
    *,
    audit: AuditTrail | None = None,
    resource: str | None = None,
    action: str | None = None,
    origin: str | None = None,
) -> Identity:
    if identity is None:
        _deny(audit, None, resource, action, origin, reason="No authenticated user")
        raise UnauthenticatedError("Authentication required.")
    if has_permission(identity.role, permission):
        return identity
    _deny(audit, identity, resource, action, origin, reason="Missing permission", required=permission)
    raise ForbiddenError()


def require_ownership(
    identity: Identity | None,
    owner_id: str,
    *,
    audit: AuditTrail | None = None,
    resource: str | None = None,
    action: str | None = None,
    origin: str | None = None,
) -> Identity:
    """Allow ADMIN, or the identity whose user id equals owner_id."""
    if identity is None:
        _deny(audit, None, resource, action, origin, reason="No authenticated user")
        raise UnauthenticatedError("Authentication required.")
    if identity.role is Role.ADMIN or str(identity.user_id) == str(owner_id):
        return identity
    _deny(audit, identity, resource, action, origin, reason="Ownership violation", attempted_access=owner_id)
    raise ForbiddenError("Access denied.", code="AUTHZ_OWNERSHIP_VIOLATION")


def _deny(
    audit: AuditTrail | None,
    identity: Identity | None,
    resource: str | None,
    action: str | None,
    origin: str | None,
    **detail,
) -> None:
    if audit is None:
        return
    audit.record(
        "authz_denied",
        False,
        actor_id=identity.user_id if identity else None,
        origin=origin,
        resource=resource,
        attempted_action=action,
        **detail,
    )
