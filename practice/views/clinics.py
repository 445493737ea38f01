"""
Clinic (tenant) management.

Listing the caller's clinics and switching the active clinic work without
a clinic context; everything else runs inside one.
"""
from __future__ import annotations

import logging

from django.db import transaction
from django.db.models import Count, Q
from rest_framework.decorators import api_view, permission_classes
from rest_framework.exceptions import NotFound, ValidationError
from rest_framework.permissions import IsAuthenticated

from practice.auth_views import token_pair, user_memberships
from practice.exceptions import ClinicAccessDenied, Conflict
from practice.models import Appointment, Clinic, Invoice, Patient, User, UserClinic
from practice.permissions import HasClinicContext, IsClinicAdmin, IsClinicStaff, OptionalClinicContext
from practice.responses import created, ok
from practice.serializers.auth import ClinicSelectSerializer
from practice.serializers.clinic import (
    ClinicSerializer,
    ClinicUserSerializer,
    ClinicUserWriteSerializer,
    MembershipSerializer,
)
from practice.services.audit import log_action
from practice.services.tenancy import resolve_clinic_context, touch_membership

logger = logging.getLogger(__name__)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def my_clinics(request):
    memberships = user_memberships(request.user).order_by('clinic__name')
    return ok(MembershipSerializer(memberships, many=True).data)


@api_view(['GET'])
@permission_classes([IsAuthenticated, OptionalClinicContext])
def current_clinic(request):
    if request.clinic is None:
        clinics = MembershipSerializer(request.user_clinics, many=True).data
        return ok({'clinic': None, 'clinics': clinics}, message='No clinic selected')
    return ok({
        'clinic': ClinicSerializer(request.clinic).data,
        'role': request.user_clinic.role,
        'permissions': request.user_clinic.permissions,
    })


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def select_clinic(request):
    """Switch clinics; returns a token pair carrying ``clinic_id``."""
    s = ClinicSelectSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    ctx = resolve_clinic_context(request.user, str(s.validated_data['clinic_id']), required=False)
    touch_membership(ctx.user_clinic)
    log_action(user=request.user, clinic=ctx.clinic, action='select_clinic', object_type='clinic', object_id=ctx.clinic.pk)
    return ok({
        'clinic': ClinicSerializer(ctx.clinic).data,
        'role': ctx.user_clinic.role,
        'permissions': ctx.user_clinic.permissions,
        **token_pair(request.user, ctx.user_clinic),
    }, message='Clinic selected')


@api_view(['GET'])
@permission_classes([IsAuthenticated, HasClinicContext])
def clinic_permissions(request):
    membership = request.user_clinic
    return ok({'role': membership.role, 'permissions': membership.permissions, 'is_admin': membership.role == User.ROLE_ADMIN})


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def create_clinic(request):
    """Create a clinic; the creator becomes its admin."""
    s = ClinicSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    with transaction.atomic():
        clinic = s.save()
        UserClinic.objects.create(
            user=request.user,
            clinic=clinic,
            role=User.ROLE_ADMIN,
            permissions=list(UserClinic.BASIC_PERMISSIONS),
        )
    log_action(user=request.user, clinic=clinic, action='create_clinic', object_type='clinic', object_id=clinic.pk)
    logger.info('Clinic %s created by user %s', clinic.code, request.user.pk)
    return created(ClinicSerializer(clinic).data, message='Clinic created successfully')


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, HasClinicContext])
def clinic_detail(request):
    """The current clinic.  Updates and deactivation need clinic admin."""
    clinic = request.clinic
    if request.method == 'GET':
        return ok(ClinicSerializer(clinic).data)
    IsClinicAdmin().has_permission(request, None)
    if request.method == 'DELETE':
        clinic.is_active = False
        clinic.save(update_fields=['is_active', 'updated_at'])
        log_action(user=request.user, clinic=clinic, action='deactivate_clinic', object_type='clinic', object_id=clinic.pk)
        return ok(message='Clinic deactivated')
    s = ClinicSerializer(clinic, data=request.data, partial=request.method == 'PATCH')
    s.is_valid(raise_exception=True)
    s.save()
    return ok(s.data, message='Clinic updated')


@api_view(['GET'])
@permission_classes([IsAuthenticated, HasClinicContext, IsClinicStaff])
def clinic_stats(request):
    clinic = request.clinic
    members = UserClinic.objects.filter(clinic=clinic, is_active=True)
    return ok({
        'total_users': members.count(),
        'users_by_role': {r['role']: r['n'] for r in members.values('role').annotate(n=Count('id'))},
        'total_patients': Patient.objects.filter(clinic=clinic).count(),
        'total_appointments': Appointment.objects.filter(clinic=clinic).count(),
        'total_invoices': Invoice.objects.filter(clinic=clinic).count(),
    })


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, HasClinicContext, IsClinicAdmin])
def clinic_users(request):
    clinic = request.clinic
    if request.method == 'GET':
        qs = UserClinic.objects.filter(clinic=clinic).select_related('user').order_by('user__last_name')
        role = request.query_params.get('role')
        if role:
            qs = qs.filter(role=role)
        search = request.query_params.get('search')
        if search:
            qs = qs.filter(Q(user__first_name__icontains=search) | Q(user__last_name__icontains=search) | Q(user__email__icontains=search))
        return ok(ClinicUserSerializer(qs, many=True).data)

    s = ClinicUserWriteSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    user = s.validated_data.get('user_id')
    if user is None:
        raise ValidationError({'user_id': ['This field is required.']})
    if UserClinic.objects.filter(user=user, clinic=clinic).exists():
        raise Conflict('User already belongs to this clinic.')
    membership = UserClinic.objects.create(
        user=user,
        clinic=clinic,
        role=s.validated_data.get('role', user.role),
        permissions=s.validated_data.get('permissions', list(UserClinic.BASIC_PERMISSIONS)),
    )
    log_action(user=request.user, clinic=clinic, action='add_clinic_user', object_type='user', object_id=user.pk)
    return created(ClinicUserSerializer(membership).data, message='User added to clinic')


@api_view(['PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, HasClinicContext, IsClinicAdmin])
def clinic_user_detail(request, user_id: int):
    clinic = request.clinic
    membership = UserClinic.objects.filter(clinic=clinic, user_id=user_id).select_related('user').first()
    if membership is None:
        raise NotFound('User is not a member of this clinic.')
    if membership.user_id == request.user.pk and request.method == 'DELETE':
        raise ClinicAccessDenied('You cannot remove yourself from the clinic.')

    if request.method == 'DELETE':
        membership.is_active = False
        membership.save(update_fields=['is_active', 'updated_at'])
        log_action(user=request.user, clinic=clinic, action='remove_clinic_user', object_type='user', object_id=user_id)
        return ok(message='User removed from clinic')

    s = ClinicUserWriteSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    for name in ('role', 'permissions', 'is_active'):
        if name in s.validated_data:
            setattr(membership, name, s.validated_data[name])
    membership.save()
    return ok(ClinicUserSerializer(membership).data, message='Clinic user updated')
