"""
Row-level access rules derived from the user's global role.

``role_filter`` returns a ``Q`` to combine with the clinic filter;
``can_access`` applies the same rule to a single object.
"""
from __future__ import annotations

from django.db.models import Q

from practice.models import Appointment, Prescription, User

UNRESTRICTED_ROLES = {User.ROLE_ADMIN, User.ROLE_RECEPTIONIST, User.ROLE_STAFF, User.ROLE_ACCOUNTANT}
ENTITIES = ('appointment', 'prescription', 'patient', 'odontogram')


def _doctor_patient_ids(user) -> set:
    ids = set(Appointment.objects.filter(doctor=user).values_list('patient_id', flat=True))
    ids.update(Prescription.objects.filter(doctor=user).values_list('patient_id', flat=True))
    return ids


def _nurse_patient_ids(user) -> set:
    return set(Appointment.objects.filter(nurse=user).values_list('patient_id', flat=True))


def role_filter(user, entity: str) -> Q:
    if entity not in ENTITIES:
        raise ValueError(f'unknown entity {entity!r}')
    role = getattr(user, 'role', None)
    if role in UNRESTRICTED_ROLES:
        return Q()

    if role == User.ROLE_DOCTOR:
        if entity == 'patient':
            return Q(pk__in=_doctor_patient_ids(user))
        return Q(doctor=user)

    if role == User.ROLE_NURSE:
        if entity == 'appointment':
            return Q(nurse=user)
        if entity == 'patient':
            return Q(pk__in=_nurse_patient_ids(user))
        if entity == 'prescription':
            return Q(patient_id__in=_nurse_patient_ids(user))
        return Q()

    # unknown roles see nothing
    return Q(pk__in=[])


def can_access(user, obj, entity: str) -> bool:
    role = getattr(user, 'role', None)
    if role in UNRESTRICTED_ROLES:
        return True
    if role == User.ROLE_DOCTOR:
        if entity == 'patient':
            return obj.pk in _doctor_patient_ids(user)
        return obj.doctor_id == user.pk
    if role == User.ROLE_NURSE:
        if entity == 'appointment':
            return obj.nurse_id == user.pk
        if entity == 'patient':
            return obj.pk in _nurse_patient_ids(user)
        if entity == 'prescription':
            return obj.patient_id in _nurse_patient_ids(user)
        return True
    return False
