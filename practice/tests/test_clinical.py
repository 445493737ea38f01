import pytest
from django.utils import timezone

from practice.models import Appointment, MedicalRecord, UserClinic

pytestmark = pytest.mark.django_db

MEDS = [{'name': 'Amoxicillin', 'dosage': '500mg', 'frequency': 'tid', 'duration': '7 days', 'quantity': 21}]


def prescribe(client, patient, **extra):
    body = {'patient': patient.pk, 'diagnosis': 'Periapical abscess', 'medications': MEDS}
    body.update(extra)
    return client.post('/api/prescriptions', body, format='json')


def test_numbers_are_sequential_per_clinic(api, doctor, patient, make_user, make_patient, other_clinic):
    client = api(doctor)
    first = prescribe(client, patient).json()['data']
    second = prescribe(client, patient).json()['data']
    assert first['prescription_id'] == 'RX-0001'
    assert second['prescription_id'] == 'RX-0002'
    assert first['doctor'] == doctor.pk
    assert first['medications'][0]['instructions'] == ''

    other_doc = make_user('doctor', member_of=other_clinic)
    foreign = make_patient('Kai', 'Moss', target=other_clinic)
    r = prescribe(api(other_doc, clinic_id=str(other_clinic.pk)), foreign)
    assert r.json()['data']['prescription_id'] == 'RX-0001'


def test_admin_must_name_doctor(api, admin, doctor, patient):
    client = api(admin)
    r = prescribe(client, patient)
    assert r.status_code == 400
    assert 'doctor' in r.json()['errors']
    r = prescribe(client, patient, doctor=doctor.pk)
    assert r.status_code == 201


def test_medications_required(api, doctor, patient):
    r = prescribe(api(doctor), patient, medications=[])
    assert r.status_code == 400
    r = prescribe(api(doctor), patient, medications=[{'name': 'Ibuprofen'}])
    assert r.status_code == 400


def test_nurse_cannot_prescribe(api, nurse, patient):
    r = prescribe(api(nurse), patient)
    assert r.status_code == 403
    assert r.json()['code'] == 'INSUFFICIENT_ROLE'


def test_send_to_pharmacy(api, doctor, patient):
    client = api(doctor)
    rx_id = prescribe(client, patient).json()['data']['id']
    r = client.post(f'/api/prescriptions/{rx_id}/send-to-pharmacy')
    assert r.status_code == 200
    assert r.json()['data']['pharmacy_dispensed'] is True
    assert r.json()['data']['dispensed_date']

    r = client.post(f'/api/prescriptions/{rx_id}/send-to-pharmacy')
    assert r.status_code == 400
    assert r.json()['code'] == 'INVALID_TRANSITION'


def test_cancelled_prescription_not_sent(api, doctor, patient):
    client = api(doctor)
    rx_id = prescribe(client, patient).json()['data']['id']
    assert client.patch(f'/api/prescriptions/{rx_id}/status', {'status': 'cancelled'}, format='json').status_code == 200
    assert client.post(f'/api/prescriptions/{rx_id}/send-to-pharmacy').status_code == 400


def test_nurse_sees_prescriptions_of_assigned_patients(api, doctor, nurse, patient, make_patient):
    client = api(doctor)
    prescribe(client, patient)
    other = make_patient('Ted', 'Nash')
    Appointment.objects.create(clinic=other.clinic, patient=other, doctor=doctor, appointment_date=timezone.now())
    prescribe(client, other)
    Appointment.objects.create(
        clinic=patient.clinic, patient=patient, doctor=doctor, nurse=nurse, appointment_date=timezone.now(),
    )
    rows = api(nurse).get('/api/prescriptions').json()['data']
    assert [r['patient'] for r in rows] == [patient.pk]
    stats = api(doctor).get('/api/prescriptions/stats').json()['data']
    assert stats == {'total': 2, 'dispensed': 0, 'by_status': {'active': 2}}


def test_medical_records(api, doctor, receptionist, patient):
    Appointment.objects.create(clinic=patient.clinic, patient=patient, doctor=doctor, appointment_date=timezone.now())
    client = api(doctor)
    r = client.post('/api/medical-records', {
        'patient': patient.pk,
        'chief_complaint': 'Sensitivity',
        'diagnosis': 'Dentin hypersensitivity',
        'treatment': 'Fluoride varnish',
        'vital_signs': {'blood_pressure': '120/80'},
        'allergies': ['penicillin'],
    }, format='json')
    assert r.status_code == 201
    record_id = r.json()['data']['id']
    assert MedicalRecord.objects.get(pk=record_id).doctor == doctor

    assert len(client.get(f'/api/patients/{patient.pk}/records').json()['data']) == 1
    assert api(receptionist).get('/api/medical-records').status_code == 403

    r = client.patch(f'/api/medical-records/{record_id}', {'vital_signs': 'high'}, format='json')
    assert r.status_code == 400
    assert client.delete(f'/api/medical-records/{record_id}').status_code == 200
    assert not MedicalRecord.objects.filter(pk=record_id).exists()


def test_records_need_clinic_read_permission(api, admin, nurse, clinic):
    UserClinic.objects.filter(user=nurse, clinic=clinic).update(permissions=['read_patients'])
    r = api(nurse).get('/api/medical-records')
    assert r.status_code == 403
    assert r.json()['code'] == 'INSUFFICIENT_PERMISSIONS'

    UserClinic.objects.filter(user=admin, clinic=clinic).update(permissions=[])
    assert api(admin).get('/api/medical-records').status_code == 200


def test_pharmacy_dispatch_needs_clinic_doctor_role(api, doctor, patient, clinic):
    client = api(doctor)
    rx_id = prescribe(client, patient).json()['data']['id']
    UserClinic.objects.filter(user=doctor, clinic=clinic).update(role='staff')
    r = client.post(f'/api/prescriptions/{rx_id}/send-to-pharmacy')
    assert r.status_code == 403
    assert r.json()['code'] == 'INSUFFICIENT_ROLE'
    assert r.json()['message'] == 'Insufficient role for this clinic.'
