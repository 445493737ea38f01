"""
Clinic (tenant) resolution for incoming requests.

The clinic id comes from the ``X-Clinic-Id`` header (configurable through
``CLINIC_HEADER``) or, failing that, from the ``clinic_id`` claim that
clinic selection writes into the access token.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Optional

from django.conf import settings
from django.db import IntegrityError
from django.utils import timezone

from practice.exceptions import (
    ClinicAccessDenied,
    ClinicContextMissing,
    ClinicContextRequired,
    ClinicNotFound,
    InvalidClinicId,
)
from practice.models import Clinic, User, UserClinic
from rest_framework.exceptions import NotAuthenticated

logger = logging.getLogger(__name__)


@dataclass
class ClinicContext:
    clinic: Optional[Clinic]
    user_clinic: Optional[UserClinic]
    user_clinics: list = field(default_factory=list)

    @property
    def clinic_id(self):
        return self.clinic.id if self.clinic else None


def clinic_id_from_request(request) -> Optional[str]:
    header = getattr(settings, 'CLINIC_HEADER', 'X-Clinic-Id')
    value = request.headers.get(header)
    if value:
        return value.strip()
    token = getattr(request, 'auth', None)
    if token is not None and hasattr(token, 'get'):
        claim = token.get('clinic_id')
        if claim:
            return str(claim)
    return None


def _parse_clinic_id(raw: str) -> uuid.UUID:
    try:
        return uuid.UUID(str(raw))
    except (TypeError, ValueError, AttributeError):
        raise InvalidClinicId()


def _provision_membership(user: User, clinic: Clinic) -> UserClinic:
    try:
        membership, created = UserClinic.objects.get_or_create(
            user=user,
            clinic=clinic,
            defaults={
                'role': getattr(settings, 'CLINIC_DEFAULT_ROLE', User.ROLE_STAFF),
                'permissions': list(UserClinic.BASIC_PERMISSIONS),
                'is_active': True,
            },
        )
    except IntegrityError:
        logger.exception('Failed to provision clinic membership user=%s clinic=%s', user.pk, clinic.pk)
        raise ClinicAccessDenied('Failed to create clinic access.')
    if not membership.is_active:
        raise ClinicAccessDenied()
    if created:
        logger.info('Provisioned clinic membership user=%s clinic=%s role=%s', user.pk, clinic.pk, membership.role)
    return membership


def _active_memberships(user) -> list:
    return list(
        UserClinic.objects.filter(user=user, is_active=True).select_related('clinic').filter(clinic__is_active=True)
    )


def resolve_clinic_context(user, clinic_id, *, required: bool = True) -> ClinicContext:
    """Validate ``clinic_id`` for ``user`` and return the tenant context.

    In required mode a missing id is an error and a missing membership is
    auto-provisioned (when ``CLINIC_AUTO_PROVISION`` is on).  In optional
    mode a missing id yields a context with no current clinic but with the
    user's memberships, and a missing membership is refused without
    provisioning.
    """
    if user is None or not getattr(user, 'is_authenticated', False):
        raise NotAuthenticated('Authentication required.')

    if not clinic_id:
        if required:
            raise ClinicContextMissing()
        return ClinicContext(clinic=None, user_clinic=None, user_clinics=_active_memberships(user))

    pk = _parse_clinic_id(clinic_id)
    clinic = Clinic.objects.filter(pk=pk, is_active=True).first()
    if clinic is None:
        raise ClinicNotFound()

    membership = UserClinic.objects.filter(user=user, clinic=clinic, is_active=True).first()
    if membership is None:
        if not required or not getattr(settings, 'CLINIC_AUTO_PROVISION', True):
            raise ClinicAccessDenied()
        membership = _provision_membership(user, clinic)

    return ClinicContext(clinic=clinic, user_clinic=membership, user_clinics=_active_memberships(user))


def attach_clinic_context(request, *, required: bool = True) -> ClinicContext:
    if getattr(request, 'clinic_context', None) is not None:
        ctx = request.clinic_context
        if required and ctx.clinic is None:
            raise ClinicContextMissing()
        return ctx
    ctx = resolve_clinic_context(request.user, clinic_id_from_request(request), required=required)
    request.clinic_context = ctx
    request.clinic = ctx.clinic
    request.clinic_id = ctx.clinic_id
    request.user_clinic = ctx.user_clinic
    request.user_clinics = ctx.user_clinics
    return ctx


def current_clinic(request) -> Clinic:
    clinic = getattr(request, 'clinic', None)
    if clinic is None:
        raise ClinicContextRequired()
    return clinic


def clinic_scoped(queryset, request):
    """Restrict ``queryset`` to the request's clinic."""
    return queryset.filter(clinic=current_clinic(request))


def touch_membership(membership: UserClinic) -> None:
    membership.last_login = timezone.now()
    membership.save(update_fields=['last_login', 'updated_at'])


def get_clinic_object(queryset, request, pk, *, entity: Optional[str] = None):
    """Fetch ``pk`` from ``queryset`` inside the request's clinic.

    With ``entity`` the role based row rule is applied as well.
    """
    from rest_framework.exceptions import NotFound, PermissionDenied
    from practice.services.access import can_access

    obj = clinic_scoped(queryset, request).filter(pk=pk).first()
    if obj is None:
        raise NotFound(f'{queryset.model._meta.verbose_name.capitalize()} not found.')
    if entity and not can_access(request.user, obj, entity):
        raise PermissionDenied('You do not have access to this record.')
    return obj
