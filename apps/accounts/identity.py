"""
Acting-user resolution.

The HTTP boundary resolves who is acting exactly once and hands the result to
the services as an explicit argument. Services never look up a user on their
own and never fall back to a placeholder account.
"""

from typing import Optional

from .models import User


def resolve_identity(request) -> Optional[User]:
    """Return the authenticated user for a request, or None for anonymous callers."""
    user = getattr(request, 'user', None)
    if user is None or not user.is_authenticated:
        return None
    return user
