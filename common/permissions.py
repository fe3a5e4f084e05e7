import logging

from rest_framework.exceptions import PermissionDenied
from rest_framework.permissions import BasePermission

from core.models import User

logger = logging.getLogger("security.authorization")

ALL_ROLES = frozenset(User.Role)
SUPERVISORS = frozenset({User.Role.SUPERVISOR, User.Role.ADMIN})
ADMINS = frozenset({User.Role.ADMIN})

ROLE_CAPABILITY_MATRIX = {
    "inventory.view": ALL_ROLES,
    "stock.receive": ALL_ROLES,
    "stock.issue": ALL_ROLES,
    "stock.transfer.complete": ALL_ROLES,
    "stock.transfer": SUPERVISORS,
    "stock.transfer.cancel": SUPERVISORS,
    "stock.adjust": SUPERVISORS,
    "branch.manage": ADMINS,
    "admin.records.manage": ADMINS,
}

# Roles that may move stock at any branch; everyone else only at their own.
CROSS_BRANCH_ROLES = ADMINS


def get_user_role(user):
    if not user or not user.is_authenticated:
        return None
    if user.is_superuser:
        return User.Role.ADMIN
    return getattr(user, "role", None) or User.Role.CLERK


def user_has_capability(user, capability):
    role = get_user_role(user)
    return role is not None and role in ROLE_CAPABILITY_MATRIX.get(capability, ())


def user_can_operate_branch(user, branch_id):
    role = get_user_role(user)
    if role is None:
        return False
    if role in CROSS_BRANCH_ROLES:
        return True
    return user.branch_id is not None and str(user.branch_id) == str(branch_id)


def ensure_branch_access(request, branch):
    """Raise PermissionDenied unless the caller may mutate stock at ``branch``."""
    user = request.user
    if user_can_operate_branch(user, branch.id):
        return
    logger.warning(
        "branch_access_denied user=%s role=%s branch=%s method=%s path=%s",
        getattr(user, "username", "anonymous"),
        get_user_role(user),
        branch.code,
        request.method,
        request.path,
    )
    raise PermissionDenied(f"You cannot operate on stock at branch {branch.code}.")


class RoleCapabilityPermission(BasePermission):
    """Checks the capability a view maps to the current action (or HTTP method)."""

    message = "You do not have permission to perform this action."

    def has_permission(self, request, view):
        action_key = getattr(view, "action", None) or request.method.lower()
        capability = getattr(view, "permission_action_map", {}).get(action_key)
        if capability is None:
            return True
        if user_has_capability(request.user, capability):
            return True

        logger.warning(
            "permission_denied capability=%s user=%s role=%s method=%s path=%s view=%s",
            capability,
            getattr(request.user, "username", "anonymous"),
            get_user_role(request.user),
            request.method,
            request.path,
            view.__class__.__name__,
        )
        return False
