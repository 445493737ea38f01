from datetime import date

import pytest
from django.core.cache import cache
from rest_framework.test import APIClient

from practice.models import Clinic, Patient, User, UserClinic

PASSWORD = 'Str0ng-pass!'


@pytest.fixture(autouse=True)
def _isolate(settings, tmp_path):
    cache.clear()
    settings.MEDIA_ROOT = tmp_path
    settings.AI_API_KEY = ''
    yield
    cache.clear()


@pytest.fixture
def clinic(db):
    return Clinic.objects.create(name='Bright Smile Dental', code='BSD001', email='desk@brightsmile.test')


@pytest.fixture
def other_clinic(db):
    return Clinic.objects.create(name='Harbour Family Practice', code='HFP001')


@pytest.fixture
def make_user(db, clinic):
    """Create a user with an active membership in ``clinic``."""
    counter = {'n': 0}

    def _make(role, *, member_of=None, **extra):
        counter['n'] += 1
        user = User.objects.create_user(
            email=extra.pop('email', f'{role}{counter["n"]}@brightsmile.test'),
            password=PASSWORD,
            first_name=extra.pop('first_name', role.title()),
            last_name=extra.pop('last_name', f'User{counter["n"]}'),
            role=role,
            **extra,
        )
        target = member_of if member_of is not None else clinic
        if target:
            UserClinic.objects.create(
                user=user, clinic=target, role=role, permissions=list(UserClinic.BASIC_PERMISSIONS),
            )
        return user

    return _make


@pytest.fixture
def admin(make_user):
    return make_user(User.ROLE_ADMIN)


@pytest.fixture
def doctor(make_user):
    return make_user(User.ROLE_DOCTOR)


@pytest.fixture
def nurse(make_user):
    return make_user(User.ROLE_NURSE)


@pytest.fixture
def receptionist(make_user):
    return make_user(User.ROLE_RECEPTIONIST)


@pytest.fixture
def accountant(make_user):
    return make_user(User.ROLE_ACCOUNTANT)


@pytest.fixture
def api(clinic):
    """``api(user)`` returns a client authenticated as ``user`` inside ``clinic``."""
    def _client(user=None, *, clinic_id=None):
        client = APIClient()
        if user is not None:
            client.force_authenticate(user=user)
        header = clinic_id if clinic_id is not None else str(clinic.pk)
        if header:
            client.credentials(HTTP_X_CLINIC_ID=header)
        return client

    return _client


@pytest.fixture
def patient(clinic):
    return Patient.objects.create(
        clinic=clinic,
        first_name='Maria',
        last_name='Lopez',
        date_of_birth=date(1988, 4, 12),
        gender='female',
        phone='+1 555 0101',
        email='maria@example.test',
    )


@pytest.fixture
def make_patient(clinic):
    def _make(first_name='Sam', last_name='Reed', *, target=None, **extra):
        return Patient.objects.create(
            clinic=target or clinic,
            first_name=first_name,
            last_name=last_name,
            date_of_birth=extra.pop('date_of_birth', date(1990, 1, 1)),
            gender=extra.pop('gender', 'male'),
            phone=extra.pop('phone', '+1 555 0199'),
            **extra,
        )

    return _make
