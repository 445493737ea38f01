"""
Permission classes for role and clinic based access control.

Global role gates look at ``user.role``; clinic gates look at the
``UserClinic`` membership attached by :class:`HasClinicContext`, so they
must be listed after it in ``permission_classes``.
"""
from rest_framework.permissions import BasePermission

from practice.exceptions import (
    AdminAccessRequired,
    ClinicContextRequired,
    InsufficientPermissions,
    InsufficientRole,
)
from practice.models import User
from practice.services.tenancy import attach_clinic_context

ALL_ROLES = tuple(r for r, _ in User.ROLE_CHOICES)
MEDICAL_ROLES = (User.ROLE_ADMIN, User.ROLE_DOCTOR, User.ROLE_NURSE)
STAFF_ROLES = (User.ROLE_ADMIN, User.ROLE_DOCTOR, User.ROLE_NURSE, User.ROLE_RECEPTIONIST, User.ROLE_STAFF)
FRONT_DESK_ROLES = (User.ROLE_ADMIN, User.ROLE_RECEPTIONIST, User.ROLE_STAFF)
ANALYTICS_ROLES = (User.ROLE_ADMIN, User.ROLE_ACCOUNTANT)
FINANCE_ROLES = (User.ROLE_ADMIN, User.ROLE_ACCOUNTANT, User.ROLE_RECEPTIONIST)


def ensure_role(user, roles) -> None:
    """Raise ``InsufficientRole`` unless ``user.role`` is in ``roles``."""
    if getattr(user, 'role', None) not in roles:
        raise InsufficientRole()


class HasClinicContext(BasePermission):
    """Resolve the clinic for the request; auto-provisions membership."""
    def has_permission(self, request, view) -> bool:  # type: ignore[override]
        attach_clinic_context(request, required=True)
        return True


class OptionalClinicContext(BasePermission):
    """Attach the clinic when one is supplied, otherwise continue without."""
    def has_permission(self, request, view) -> bool:  # type: ignore[override]
        attach_clinic_context(request, required=False)
        return True


def role_required(*roles):
    class RoleRequired(BasePermission):
        def has_permission(self, request, view) -> bool:  # type: ignore[override]
            ensure_role(getattr(request, 'user', None), roles)
            return True

    RoleRequired.__name__ = 'RoleRequired_' + '_'.join(roles)
    return RoleRequired


IsAdmin = role_required(User.ROLE_ADMIN)
IsAdminOrDoctor = role_required(User.ROLE_ADMIN, User.ROLE_DOCTOR)
IsMedicalStaff = role_required(*MEDICAL_ROLES)
IsStaff = role_required(*STAFF_ROLES)
IsFrontDesk = role_required(*FRONT_DESK_ROLES)
IsAnalytics = role_required(*ANALYTICS_ROLES)
IsFinance = role_required(*FINANCE_ROLES)
AnyRole = role_required(*ALL_ROLES)


def _membership(request):
    membership = getattr(request, 'user_clinic', None)
    if membership is None:
        raise ClinicContextRequired()
    return membership


def clinic_permission(permission: str):
    class HasClinicPermission(BasePermission):
        def has_permission(self, request, view) -> bool:  # type: ignore[override]
            if not _membership(request).has_permission(permission):
                raise InsufficientPermissions()
            return True

    HasClinicPermission.__name__ = f'HasClinicPermission_{permission}'
    return HasClinicPermission


def clinic_role(*roles):
    class HasClinicRole(BasePermission):
        def has_permission(self, request, view) -> bool:  # type: ignore[override]
            if _membership(request).role not in roles:
                raise InsufficientRole('Insufficient role for this clinic.')
            return True

    HasClinicRole.__name__ = 'HasClinicRole_' + '_'.join(roles)
    return HasClinicRole


class IsClinicAdmin(BasePermission):
    """Membership role must be ``admin``."""
    def has_permission(self, request, view) -> bool:  # type: ignore[override]
        if _membership(request).role != User.ROLE_ADMIN:
            raise AdminAccessRequired()
        return True


IsClinicDoctor = clinic_role(User.ROLE_ADMIN, User.ROLE_DOCTOR)
IsClinicStaff = clinic_role(*STAFF_ROLES)
