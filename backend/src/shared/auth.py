"""
Authentication utilities for extracting caller identity from Cognito tokens.

API Gateway's Cognito authorizer validates the bearer token; handlers only
read the resulting claims. The Caller built here is passed explicitly into
every controller call.
"""
from typing import FrozenSet, Iterable, Optional

from shared.errors import Forbidden, Unauthorized
from shared.models import Role


class Caller:
    """Identity and role set of the user making the current request."""

    def __init__(self, user_id: str, roles: Iterable[str] = ()):
        self.user_id = user_id
        self.roles: FrozenSet[str] = frozenset(roles)

    def has_role(self, *roles: str) -> bool:
        return any(role in self.roles for role in roles)

    @property
    def is_admin(self) -> bool:
        return Role.ADMIN in self.roles

    def __repr__(self):
        return f"Caller({self.user_id!r}, roles={sorted(self.roles)})"


def get_user_sub(event: dict) -> Optional[str]:
    """
    Extract user sub (unique ID) from Cognito authorizer claims.

    Args:
        event: API Gateway Lambda proxy event

    Returns:
        User sub string or None if not authenticated
    """
    try:
        return event['requestContext']['authorizer']['claims']['sub']
    except (KeyError, TypeError):
        return None


def get_user_groups(event: dict) -> list:
    """Extract user groups (admin, studio, artist) from Cognito claims."""
    try:
        groups = event['requestContext']['authorizer']['claims'].get('cognito:groups', '')
        if isinstance(groups, str):
            return [g.strip() for g in groups.split(',') if g.strip()] if groups else []
        return groups or []
    except (KeyError, TypeError, AttributeError):
        return []


def authenticate(event: dict) -> Caller:
    """
    Resolve the caller of a request.

    Raises:
        Unauthorized: no authenticated subject on the request
    """
    user_id = get_user_sub(event)
    if not user_id:
        raise Unauthorized()
    return Caller(user_id, get_user_groups(event))


def optional_caller(event: dict) -> Optional[Caller]:
    """Caller for routes that also serve anonymous requests."""
    user_id = get_user_sub(event)
    if not user_id:
        return None
    return Caller(user_id, get_user_groups(event))


def require_role(caller: Caller, *roles: str, message: str = 'Access denied') -> None:
    """Raise Forbidden unless the caller holds one of the roles."""
    if not caller.has_role(*roles):
        raise Forbidden(message)
