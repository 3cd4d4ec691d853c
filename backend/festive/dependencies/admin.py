"""Admin authentication dependency."""

from fastapi import Depends

from festive.dependencies.auth import get_current_user
from festive.errors import Forbidden
from festive.models.user import User


def get_admin_user(current_user: User = Depends(get_current_user)) -> User:
    """Require admin privileges.

    Raises:
        Forbidden: If the user is not an admin.
    """
    if not current_user.is_admin:
        raise Forbidden("Admin access required", reason="admin_required")
    return current_user
