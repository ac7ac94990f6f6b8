# assetdesk/utils/guards.py

from __future__ import annotations

from functools import wraps
from typing import Callable, Any

from flask_login import login_required, current_user

from ..errors import Forbidden


ADMIN_ROLES = ("admin", "super_admin")


def _has_any_role(user, roles) -> bool:
    has_role = getattr(user, "has_role", None)
    return bool(has_role and has_role(*roles))


def admin_required(view: Callable[..., Any]) -> Callable[..., Any]:
    """
    Allow only admin and super_admin.
    Anonymous callers get 401 (login_required); other roles get 403.
    """
    @wraps(view)
    @login_required
    def wrapped(*args, **kwargs):
        if not _has_any_role(current_user, ADMIN_ROLES):
            raise Forbidden()
        return view(*args, **kwargs)

    return wrapped


def role_required(*allowed_roles: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """
    Generic role gate:
        @role_required("admin", "inventory_manager")
        def view(): ...
    Admins always pass.
    """
    def decorator(view: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(view)
        @login_required
        def wrapped(*args, **kwargs):
            if not _has_any_role(current_user, (*allowed_roles, *ADMIN_ROLES)):
                raise Forbidden()
            return view(*args, **kwargs)
        return wrapped
    return decorator
