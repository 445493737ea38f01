import pytest
from django.db import IntegrityError, transaction
from django.utils import timezone

from practice.models import Appointment, Odontogram

pytestmark = pytest.mark.django_db

TEETH = [
    {
        'tooth_number': 14,
        'overall_condition': 'caries',
        'surfaces': [{'surface': 'occlusal', 'condition': 'caries', 'severity': 'moderate'}],
        'treatment_plan': {'planned_treatment': 'Composite filling', 'estimated_cost': 120, 'status': 'planned'},
    },
    {
        'tooth_number': 30,
        'overall_condition': 'root_canal',
        'treatment_plan': {'planned_treatment': 'Crown', 'estimated_cost': 900, 'status': 'completed'},
    },
    {'tooth_number': 8, 'overall_condition': 'healthy'},
]


@pytest.fixture
def treating_doctor(doctor, patient):
    Appointment.objects.create(clinic=patient.clinic, patient=patient, doctor=doctor, appointment_date=timezone.now())
    return doctor


def chart(client, patient, **extra):
    body = {'patient': patient.pk, 'teeth_conditions': TEETH}
    body.update(extra)
    return client.post('/api/odontograms', body, format='json')


def test_create_computes_summary(api, treating_doctor, patient):
    r = chart(api(treating_doctor), patient, periodontal_assessment={'bleeding_on_probing': True, 'plaque_index': 1.5})
    assert r.status_code == 201
    data = r.json()['data']
    assert data['version'] == 1
    assert data['is_active'] is True
    assert data['doctor'] == treating_doctor.pk
    assert data['treatment_summary'] == {
        'total_planned_treatments': 2,
        'completed_treatments': 1,
        'in_progress_treatments': 0,
        'estimated_total_cost': 1020,
    }
    assert data['treatment_progress'] == 50
    assert data['pending_treatments'] == 1
    assert data['teeth_conditions'][0]['tooth_type'] == 'permanent'
    assert data['periodontal_assessment']['calculus_present'] is False


def test_new_version_deactivates_previous(api, treating_doctor, patient):
    client = api(treating_doctor)
    first = chart(client, patient).json()['data']
    second = chart(client, patient).json()['data']
    assert second['version'] == 2
    assert Odontogram.objects.get(pk=first['id']).is_active is False
    assert Odontogram.objects.filter(patient=patient, is_active=True).count() == 1

    history = client.get(f'/api/patients/{patient.pk}/odontograms').json()['data']
    assert [c['version'] for c in history] == [2, 1]
    active = client.get(f'/api/patients/{patient.pk}/odontogram').json()['data']
    assert active['id'] == second['id']

    r = client.post(f"/api/odontograms/{first['id']}/activate")
    assert r.json()['data']['is_active'] is True
    assert Odontogram.objects.get(pk=second['id']).is_active is False


def test_inactive_draft_keeps_current_chart(api, treating_doctor, patient):
    client = api(treating_doctor)
    first = chart(client, patient).json()['data']
    draft = chart(client, patient, is_active=False).json()['data']
    assert draft['version'] == 2
    assert draft['is_active'] is False
    assert Odontogram.objects.get(pk=first['id']).is_active is True


def test_duplicate_teeth_rejected(api, treating_doctor, patient):
    r = chart(api(treating_doctor), patient, teeth_conditions=[TEETH[2], TEETH[2]])
    assert r.status_code == 400
    assert r.json()['errors']['teeth_conditions'] == ['Each tooth may appear only once']


def test_invalid_tooth_number(api, treating_doctor, patient):
    r = chart(api(treating_doctor), patient, teeth_conditions=[{'tooth_number': 99, 'overall_condition': 'healthy'}])
    assert r.status_code == 400


def test_nurse_reads_but_cannot_chart(api, nurse, treating_doctor, patient):
    pk = chart(api(treating_doctor), patient).json()['data']['id']
    client = api(nurse)
    assert client.get(f'/api/odontograms/{pk}').status_code == 200
    assert chart(client, patient).status_code == 403


def test_update_tooth_merges_and_adds(api, treating_doctor, patient):
    client = api(treating_doctor)
    pk = chart(client, patient).json()['data']['id']

    r = client.patch(f'/api/odontograms/{pk}/teeth/14', {
        'treatment_plan': {'planned_treatment': 'Composite filling', 'estimated_cost': 120, 'status': 'completed'},
    }, format='json')
    assert r.status_code == 200
    data = r.json()['data']
    tooth = next(t for t in data['teeth_conditions'] if t['tooth_number'] == 14)
    assert tooth['overall_condition'] == 'caries'
    assert tooth['treatment_plan']['status'] == 'completed'
    assert data['treatment_summary']['completed_treatments'] == 2
    assert data['treatment_progress'] == 100

    r = client.put(f'/api/odontograms/{pk}/teeth/3', {'overall_condition': 'missing'}, format='json')
    assert len(r.json()['data']['teeth_conditions']) == 4

    # a new tooth needs its condition
    assert client.put(f'/api/odontograms/{pk}/teeth/5', {}, format='json').status_code == 400


def test_chart_update_keeps_patient(api, treating_doctor, patient, make_patient):
    client = api(treating_doctor)
    pk = chart(client, patient).json()['data']['id']
    other = make_patient('Lou', 'Bard')
    r = client.patch(f'/api/odontograms/{pk}', {'patient': other.pk, 'general_notes': 'Recall in 6 months'}, format='json')
    assert r.status_code == 200
    assert r.json()['data']['patient'] == patient.pk
    assert r.json()['data']['general_notes'] == 'Recall in 6 months'


def test_summaries(api, admin, treating_doctor, patient):
    client = api(treating_doctor)
    chart(client, patient)
    summary = client.get(f'/api/patients/{patient.pk}/treatment-summary').json()['data']
    assert summary['version'] == 1
    assert summary['pending_treatments'] == 1

    clinic_wide = client.get('/api/odontograms/summary').json()['data']
    assert clinic_wide['active_odontograms'] == 1
    assert clinic_wide['completion_rate'] == 50
    assert clinic_wide['estimated_total_cost'] == 1020

    assert client.post('/api/odontograms/recalculate').status_code == 403
    r = api(admin).post('/api/odontograms/recalculate')
    assert r.json()['data'] == {'updated': 1}


def test_no_active_chart(api, admin, patient):
    r = api(admin).get(f'/api/patients/{patient.pk}/odontogram')
    assert r.status_code == 404


def test_database_allows_one_active_chart(clinic, patient, doctor):
    Odontogram.objects.create(clinic=clinic, patient=patient, doctor=doctor, version=1)
    with pytest.raises(IntegrityError):
        with transaction.atomic():
            Odontogram.objects.create(clinic=clinic, patient=patient, doctor=doctor, version=2)
    Odontogram.objects.create(clinic=clinic, patient=patient, doctor=doctor, version=2, is_active=False)
