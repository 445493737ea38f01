from datetime import timedelta

import pytest
from django.db.models import Q
from django.utils import timezone

from practice.models import Appointment, Odontogram, Patient, Prescription
from practice.services.access import can_access, role_filter

pytestmark = pytest.mark.django_db


def book(clinic, patient, doctor, nurse=None, days=1):
    return Appointment.objects.create(
        clinic=clinic, patient=patient, doctor=doctor, nurse=nurse,
        appointment_date=timezone.now() + timedelta(days=days),
    )


@pytest.fixture
def roster(clinic, make_user, make_patient):
    doc_a = make_user('doctor')
    doc_b = make_user('doctor')
    nurse = make_user('nurse')
    p1, p2, p3 = make_patient('Ann'), make_patient('Ben'), make_patient('Cal')
    a1 = book(clinic, p1, doc_a, nurse)
    a2 = book(clinic, p2, doc_b)
    rx = Prescription.objects.create(
        clinic=clinic, patient=p3, doctor=doc_a, diagnosis='Gingivitis', prescription_id='RX-0001',
        medications=[{'name': 'Chlorhexidine', 'dosage': '15ml', 'frequency': 'bid', 'duration': '7d', 'quantity': 1}],
    )
    return {'doc_a': doc_a, 'doc_b': doc_b, 'nurse': nurse, 'patients': (p1, p2, p3), 'appts': (a1, a2), 'rx': rx}


@pytest.mark.parametrize('role', ['admin', 'receptionist', 'staff', 'accountant'])
def test_unrestricted_roles(make_user, role):
    user = make_user(role)
    for entity in ('appointment', 'prescription', 'patient', 'odontogram'):
        assert role_filter(user, entity) == Q()


def test_doctor_sees_own_rows(roster):
    doc_a = roster['doc_a']
    p1, p2, p3 = roster['patients']
    assert list(Appointment.objects.filter(role_filter(doc_a, 'appointment'))) == [roster['appts'][0]]
    # patients come from appointments and prescriptions
    assert set(Patient.objects.filter(role_filter(doc_a, 'patient'))) == {p1, p3}
    assert list(Prescription.objects.filter(role_filter(doc_a, 'prescription'))) == [roster['rx']]


def test_nurse_sees_assigned_rows(roster):
    nurse = roster['nurse']
    p1, p2, p3 = roster['patients']
    assert list(Appointment.objects.filter(role_filter(nurse, 'appointment'))) == [roster['appts'][0]]
    assert list(Patient.objects.filter(role_filter(nurse, 'patient'))) == [p1]
    assert not Prescription.objects.filter(role_filter(nurse, 'prescription')).exists()
    assert role_filter(nurse, 'odontogram') == Q()


def test_can_access_matches_filter(roster):
    doc_a, doc_b, nurse = roster['doc_a'], roster['doc_b'], roster['nurse']
    a1, a2 = roster['appts']
    p1, p2, p3 = roster['patients']
    assert can_access(doc_a, a1, 'appointment')
    assert not can_access(doc_a, a2, 'appointment')
    assert can_access(doc_a, p3, 'patient')
    assert not can_access(doc_b, p3, 'patient')
    assert can_access(nurse, a1, 'appointment')
    assert not can_access(nurse, p2, 'patient')
    chart = Odontogram(clinic=a1.clinic, patient=p2, doctor=doc_b)
    assert can_access(nurse, chart, 'odontogram')
    assert not can_access(doc_a, chart, 'odontogram')


def test_unknown_entity():
    with pytest.raises(ValueError):
        role_filter(None, 'invoice')


def test_doctor_patient_list_is_filtered(api, roster):
    client = api(roster['doc_b'])
    names = [p['first_name'] for p in client.get('/api/patients').json()['data']]
    assert names == ['Ben']
    p1 = roster['patients'][0]
    r = client.get(f'/api/patients/{p1.pk}')
    assert r.status_code == 403
    assert r.json()['code'] == 'PERMISSION_DENIED'


def test_nurse_appointment_list_is_filtered(api, roster):
    rows = api(roster['nurse']).get('/api/appointments').json()['data']
    assert [a['id'] for a in rows] == [roster['appts'][0].pk]
