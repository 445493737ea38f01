import uuid

import pytest
from rest_framework.test import APIClient

from practice.exceptions import ClinicAccessDenied, ClinicContextMissing
from practice.models import Clinic, User, UserClinic
from practice.services.tenancy import resolve_clinic_context
from practice.tests.conftest import PASSWORD

pytestmark = pytest.mark.django_db


def test_missing_clinic_header(api, admin):
    r = api(admin, clinic_id='').get('/api/patients')
    assert r.status_code == 400
    assert r.json() == {
        'success': False,
        'message': 'Clinic context is required. Please select a clinic.',
        'code': 'CLINIC_CONTEXT_MISSING',
    }


def test_malformed_clinic_id(api, admin):
    r = api(admin, clinic_id='not-a-uuid').get('/api/patients')
    assert r.status_code == 400
    assert r.json()['code'] == 'INVALID_CLINIC_ID'


def test_unknown_clinic(api, admin):
    r = api(admin, clinic_id=str(uuid.uuid4())).get('/api/patients')
    assert r.status_code == 404
    assert r.json()['code'] == 'CLINIC_NOT_FOUND'


def test_inactive_clinic_is_not_found(api, admin, clinic):
    clinic.is_active = False
    clinic.save()
    r = api(admin).get('/api/patients')
    assert r.status_code == 404
    assert r.json()['code'] == 'CLINIC_NOT_FOUND'


def test_unauthenticated(api):
    r = api().get('/api/patients')
    assert r.status_code == 401
    assert r.json()['code'] == 'AUTH_REQUIRED'


def test_membership_is_auto_provisioned(api, make_user, clinic):
    outsider = make_user(User.ROLE_STAFF, member_of=False)
    r = api(outsider).get('/api/patients')
    assert r.status_code == 200
    membership = UserClinic.objects.get(user=outsider, clinic=clinic)
    assert membership.role == 'staff'
    assert membership.permissions == UserClinic.BASIC_PERMISSIONS


def test_auto_provision_can_be_disabled(api, make_user, settings):
    settings.CLINIC_AUTO_PROVISION = False
    outsider = make_user(User.ROLE_STAFF, member_of=False)
    r = api(outsider).get('/api/patients')
    assert r.status_code == 403
    assert r.json()['code'] == 'CLINIC_ACCESS_DENIED'


def test_optional_context_does_not_provision(make_user, clinic):
    outsider = make_user(User.ROLE_STAFF, member_of=False)
    with pytest.raises(ClinicAccessDenied):
        resolve_clinic_context(outsider, str(clinic.pk), required=False)
    assert not UserClinic.objects.filter(user=outsider).exists()

    ctx = resolve_clinic_context(outsider, None, required=False)
    assert ctx.clinic is None and ctx.clinic_id is None
    assert ctx.user_clinics == []


def test_required_context_without_id(admin):
    with pytest.raises(ClinicContextMissing):
        resolve_clinic_context(admin, '')


def test_deactivated_membership_is_refused(api, admin, clinic):
    UserClinic.objects.filter(user=admin, clinic=clinic).update(is_active=False)
    r = api(admin).get('/api/patients')
    assert r.status_code == 403
    assert r.json()['code'] == 'CLINIC_ACCESS_DENIED'


def test_records_of_other_clinics_are_invisible(api, admin, other_clinic, make_patient, patient):
    foreign = make_patient('Ola', 'Berg', target=other_clinic)
    client = api(admin)
    ids = [p['id'] for p in client.get('/api/patients').json()['data']]
    assert ids == [patient.pk]
    assert client.get(f'/api/patients/{foreign.pk}').status_code == 404


def test_foreign_relation_is_rejected_on_write(api, admin, doctor, other_clinic, make_patient):
    foreign = make_patient('Ola', 'Berg', target=other_clinic)
    r = api(admin).post('/api/appointments', {
        'patient': foreign.pk,
        'doctor': doctor.pk,
        'appointment_date': '2030-01-10T09:00:00Z',
    }, format='json')
    assert r.status_code == 400
    assert 'patient' in r.json()['errors']


def test_select_clinic_issues_clinic_bound_token(admin, clinic):
    client = APIClient()
    tokens = client.post('/api/auth/login', {'email': admin.email, 'password': PASSWORD}, format='json').json()['data']
    client.credentials(HTTP_AUTHORIZATION=f"Bearer {tokens['access']}")
    r = client.post('/api/clinics/select', {'clinic_id': str(clinic.pk)}, format='json')
    assert r.status_code == 200
    data = r.json()['data']
    assert data['role'] == 'admin'

    bound = APIClient()
    bound.credentials(HTTP_AUTHORIZATION=f"Bearer {data['access']}")
    r = bound.get('/api/clinics/current')
    assert r.status_code == 200
    assert r.json()['data']['clinic']['id'] == str(clinic.pk)
    assert bound.get('/api/patients').status_code == 200


def test_current_clinic_without_selection(api, admin, clinic):
    r = api(admin, clinic_id='').get('/api/clinics/current')
    assert r.status_code == 200
    assert r.json()['message'] == 'No clinic selected'
    data = r.json()['data']
    assert data['clinic'] is None
    assert [m['clinic']['id'] for m in data['clinics']] == [str(clinic.pk)]


def test_create_clinic_makes_creator_admin(make_user):
    user = make_user(User.ROLE_DOCTOR, member_of=False)
    client = APIClient()
    client.force_authenticate(user)
    r = client.post('/api/clinics', {'name': 'Riverside Dental Care', 'email': 'hi@riverside.test'}, format='json')
    assert r.status_code == 201
    clinic = Clinic.objects.get(pk=r.json()['data']['id'])
    assert clinic.code.startswith('RDC') and len(clinic.code) == 6
    assert UserClinic.objects.get(user=user, clinic=clinic).role == 'admin'


def test_clinic_users_requires_clinic_admin(api, admin, doctor):
    r = api(doctor).get('/api/clinic/users')
    assert r.status_code == 403
    assert r.json()['code'] == 'ADMIN_ACCESS_REQUIRED'

    r = api(admin).get('/api/clinic/users')
    assert r.status_code == 200
    assert {m['role'] for m in r.json()['data']} == {'admin', 'doctor'}


def test_clinic_admin_adds_and_removes_member(api, admin, make_user, clinic):
    newcomer = make_user(User.ROLE_NURSE, member_of=False)
    client = api(admin)
    r = client.post('/api/clinic/users', {'user_id': newcomer.pk, 'role': 'nurse'}, format='json')
    assert r.status_code == 201
    assert client.post('/api/clinic/users', {'user_id': newcomer.pk}, format='json').status_code == 409

    r = client.delete(f'/api/clinic/users/{newcomer.pk}')
    assert r.status_code == 200
    assert UserClinic.objects.get(user=newcomer, clinic=clinic).is_active is False

    r = client.delete(f'/api/clinic/users/{admin.pk}')
    assert r.status_code == 403


def test_clinic_deactivation_requires_admin(api, admin, receptionist, clinic):
    assert api(receptionist).delete('/api/clinic').status_code == 403
    r = api(admin).delete('/api/clinic')
    assert r.status_code == 200
    clinic.refresh_from_db()
    assert clinic.is_active is False


def test_clinic_stats_for_clinic_staff_only(api, receptionist, accountant, patient):
    r = api(receptionist).get('/api/clinic/stats')
    assert r.status_code == 200
    assert r.json()['data']['total_patients'] == 1
    r = api(accountant).get('/api/clinic/stats')
    assert r.status_code == 403
    assert r.json()['code'] == 'INSUFFICIENT_ROLE'
