"""
Route-gating predicates.

Each predicate takes the resolved caller (or None / AnonymousUser) and returns
a Decision. They do not know about DRF, so views, services and tests can call
them directly; `permissions.py` adapts them to DRF's permission hooks.
"""
from typing import NamedTuple, Optional, Type

from apps.utils.exceptions import BusinessLogicException, Forbidden, Unauthorized

from .models import Role


class Decision(NamedTuple):
    allowed: bool
    reason: str = ""
    error: Optional[Type[BusinessLogicException]] = None

    def enforce(self):
        """Raise the denial error; no-op when allowed."""
        if not self.allowed:
            raise self.error(self.reason)


ALLOW = Decision(True)


def _is_authenticated(user) -> bool:
    return bool(user is not None and user.is_authenticated and user.is_active)


def is_admin(user) -> bool:
    return _is_authenticated(user) and user.role == Role.ADMIN


def require_auth(user) -> Decision:
    if not _is_authenticated(user):
        return Decision(False, "Authentication credentials were not provided or are invalid.", Unauthorized)
    return ALLOW


def require_admin(user) -> Decision:
    decision = require_auth(user)
    if not decision.allowed:
        return decision
    if user.role != Role.ADMIN:
        return Decision(False, "Admin privileges required.", Forbidden)
    return ALLOW


def require_owner_or_admin(user, resource_owner_id) -> Decision:
    decision = require_auth(user)
    if not decision.allowed:
        return decision
    if user.role == Role.ADMIN:
        return ALLOW
    if resource_owner_id is not None and str(user.pk) == str(resource_owner_id):
        return ALLOW
    return Decision(False, "You do not have access to this resource.", Forbidden)
