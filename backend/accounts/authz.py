# accounts/authz.py
"""
Authorization utilities for the ledger.

Provides:
- ActorContext: Immutable context for the current request
- resolve_actor: Extract actor context from request
- require: Check permissions and raise if not granted

Permissions are checked:
1. OWNER role (and superusers): implicit allow
2. Every other role: the codes listed in ROLE_DEFAULTS for that role
"""

from dataclasses import dataclass
from typing import FrozenSet
from django.core.exceptions import PermissionDenied
from rest_framework.exceptions import NotAuthenticated

from accounts.models import User
from accounts.permission_defaults import ROLE_DEFAULTS


@dataclass(frozen=True)
class ActorContext:
    """
    Immutable context for the current actor.

    This is passed to commands and policies to record who performs
    an action and whether they are allowed to.

    Attributes:
        user: The authenticated user
        role: The user's ledger role
        perms: Set of permission codes the role grants
    """
    user: User
    role: str
    perms: FrozenSet[str]

    def has(self, code: str) -> bool:
        if not self.user.is_active:
            return False
        if self.role == User.Role.OWNER:
            return True
        return code in self.perms

    @property
    def is_authenticated(self) -> bool:
        """Mirror Django's user.is_authenticated for compatibility."""
        return bool(getattr(self.user, "is_authenticated", False))

    @property
    def is_owner(self) -> bool:
        return self.role == User.Role.OWNER

    @classmethod
    def for_user(cls, user: User) -> "ActorContext":
        """Build a context from the user's current role."""
        role = User.Role.OWNER if user.is_superuser else user.role
        return cls(
            user=user,
            role=role,
            perms=frozenset(ROLE_DEFAULTS.get(role, set())),
        )


def resolve_actor(request) -> ActorContext:
    """
    Extract ActorContext from the current request.

    The role is read from the user row on every request, so a role
    change takes effect immediately.

    Raises:
        NotAuthenticated: If user is not authenticated
    """
    user = getattr(request, "user", None)

    if not user or not user.is_authenticated:
        raise NotAuthenticated("Authentication required.")

    return ActorContext.for_user(user)


def require(actor: ActorContext, code: str) -> None:
    """
    Require that the actor has a specific permission.

    Example:
        require(actor, "journal.post")
        # If we get here, permission is granted
    """
    if not actor.has(code):
        raise PermissionDenied(f"Permission denied: {code}")
