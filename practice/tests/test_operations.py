from datetime import date, timedelta

import pytest
from django.utils import timezone

from practice.models import InventoryItem, Lead, Patient

pytestmark = pytest.mark.django_db


# ---------------------------------------------------------------------
# Inventory
# ---------------------------------------------------------------------
def stock_item(clinic, sku, **extra):
    fields = {'name': f'Item {sku}', 'category': 'consumables', 'unit_price': 2, 'current_stock': 10, 'minimum_stock': 5}
    fields.update(extra)
    return InventoryItem.objects.create(clinic=clinic, sku=sku, **fields)


def test_create_item_normalises_sku(api, nurse, clinic):
    client = api(nurse)
    body = {'name': 'Nitrile gloves', 'category': 'consumables', 'sku': ' glv-01 ', 'unit_price': '4.50'}
    r = client.post('/api/inventory', body, format='json')
    assert r.status_code == 201
    assert r.json()['data']['sku'] == 'GLV-01'
    r = client.post('/api/inventory', {**body, 'sku': 'GLV-01'}, format='json')
    assert r.json()['errors']['sku'] == ['SKU already exists in this clinic']


def test_doctor_reads_but_cannot_write(api, doctor, clinic):
    item = stock_item(clinic, 'A1')
    client = api(doctor)
    assert client.get(f'/api/inventory/{item.pk}').status_code == 200
    assert client.post(f'/api/inventory/{item.pk}/stock', {'quantity': 1, 'operation': 'add'}, format='json').status_code == 403


def test_adjust_stock(api, receptionist, clinic):
    item = stock_item(clinic, 'A1', current_stock=3)
    client = api(receptionist)
    r = client.post(f'/api/inventory/{item.pk}/stock', {'quantity': 7, 'operation': 'add'}, format='json')
    assert r.json()['data']['current_stock'] == 10
    r = client.post(f'/api/inventory/{item.pk}/stock', {'quantity': 25, 'operation': 'subtract'}, format='json')
    assert r.json()['data']['current_stock'] == 0
    assert r.json()['data']['is_low_stock'] is True
    r = client.post(f'/api/inventory/{item.pk}/stock', {'quantity': 0, 'operation': 'add'}, format='json')
    assert r.status_code == 400


def test_stock_reports(api, receptionist, clinic):
    today = date.today()
    stock_item(clinic, 'LOW', current_stock=2)
    stock_item(clinic, 'OLD', expiry_date=today - timedelta(days=1))
    stock_item(clinic, 'SOON', expiry_date=today + timedelta(days=10))
    stock_item(clinic, 'LATER', expiry_date=today + timedelta(days=60))
    client = api(receptionist)

    assert [i['sku'] for i in client.get('/api/inventory/low-stock').json()['data']] == ['LOW']
    assert [i['sku'] for i in client.get('/api/inventory/expired').json()['data']] == ['OLD']
    body = client.get('/api/inventory/expiring').json()
    assert body['days'] == 30
    assert [i['sku'] for i in body['data']] == ['SOON']
    body = client.get('/api/inventory/expiring', {'days': 90}).json()
    assert [i['sku'] for i in body['data']] == ['SOON', 'LATER']

    stats = client.get('/api/inventory/stats').json()['data']
    assert stats['total_items'] == 4
    assert stats['total_value'] == 2 * 2 + 10 * 2 * 3
    assert stats['low_stock_count'] == 1
    assert stats['expired_count'] == 1
    assert stats['expiring_count'] == 1


# ---------------------------------------------------------------------
# Lab reports
# ---------------------------------------------------------------------
def report_body(patient, **overrides):
    body = {
        'patient': patient.pk,
        'test_name': 'Complete blood count',
        'test_code': 'cbc',
        'category': 'Hematology',
        'external_vendor': 'Northside Labs',
        'test_date': timezone.now().isoformat(),
    }
    body.update(overrides)
    return body


def test_create_report_fills_patient_snapshot(api, nurse, patient):
    client = api(nurse)
    r = client.post('/api/test-reports', report_body(patient), format='json')
    assert r.status_code == 201
    data = r.json()['data']
    year = timezone.now().year
    assert data['report_number'] == f'RPT{year}000001'
    assert data['test_code'] == 'CBC'
    assert data['patient_name'] == 'Maria Lopez'
    assert data['patient_gender'] == 'female'
    assert data['recorded_by'] == nurse.full_name
    assert data['status'] == 'pending'

    second = client.post('/api/test-reports', report_body(patient), format='json').json()['data']
    assert second['report_number'] == f'RPT{year}000002'


def test_report_transitions(api, nurse, patient):
    client = api(nurse)
    pk = client.post('/api/test-reports', report_body(patient), format='json').json()['data']['id']
    r = client.patch(f'/api/test-reports/{pk}/status', {'status': 'verified'}, format='json')
    assert r.status_code == 400
    assert r.json()['code'] == 'INVALID_TRANSITION'

    assert client.patch(f'/api/test-reports/{pk}/status', {'status': 'recorded'}, format='json').status_code == 200
    r = client.patch(f'/api/test-reports/{pk}/status', {'status': 'verified', 'verified_by': 'Dr. Ames'}, format='json')
    data = r.json()['data']
    assert data['status'] == 'verified'
    assert data['verified_by'] == 'Dr. Ames'
    assert data['verified_date']
    assert client.patch(f'/api/test-reports/{pk}/status', {'status': 'delivered'}, format='json').status_code == 200
    assert client.patch(f'/api/test-reports/{pk}/status', {'status': 'pending'}, format='json').status_code == 400


def test_report_attachments(api, nurse, patient):
    client = api(nurse)
    pk = client.post('/api/test-reports', report_body(patient), format='json').json()['data']['id']
    r = client.post(f'/api/test-reports/{pk}/attachments', {'file_name': 'cbc.pdf', 'file_url': '/media/cbc.pdf'}, format='json')
    assert r.status_code == 201
    attachments = r.json()['data']['attachments']
    assert attachments[0]['file_type'] == 'document'
    assert attachments[0]['uploaded_date']

    assert client.delete(f'/api/test-reports/{pk}/attachments/3').status_code == 404
    r = client.delete(f'/api/test-reports/{pk}/attachments/0')
    assert r.json()['data']['attachments'] == []


def test_report_search_and_stats(api, receptionist, patient):
    client = api(receptionist)
    client.post('/api/test-reports', report_body(patient), format='json')
    client.post('/api/test-reports', report_body(patient, test_name='Lipid panel', test_code='lip', category='Chemistry'), format='json')
    assert len(client.get('/api/test-reports', {'search': 'lipid'}).json()['data']) == 1
    assert len(client.get(f'/api/patients/{patient.pk}/test-reports').json()['data']) == 2
    stats = client.get('/api/test-reports/stats').json()['data']
    assert stats['total_reports'] == 2
    assert stats['by_category'] == {'Hematology': 1, 'Chemistry': 1}
    assert stats['by_vendor'] == {'Northside Labs': 2}


# ---------------------------------------------------------------------
# Leads
# ---------------------------------------------------------------------
LEAD = {
    'first_name': 'Rosa',
    'last_name': 'Quinn',
    'email': 'rosa@example.test',
    'phone': '+1 555 0160',
    'source': 'website',
    'service_interest': 'Teeth whitening',
}


def test_convert_lead(api, receptionist, clinic):
    client = api(receptionist)
    lead_id = client.post('/api/leads', LEAD, format='json').json()['data']['id']
    r = client.post(f'/api/leads/{lead_id}/convert', {'date_of_birth': '1992-06-01', 'gender': 'female'}, format='json')
    assert r.status_code == 201
    data = r.json()['data']
    assert data['lead']['status'] == 'converted'
    assert data['lead']['notes'].startswith(f"Converted to patient #{data['patient']['id']}")
    patient = Patient.objects.get(pk=data['patient']['id'])
    assert patient.clinic == clinic
    assert patient.email == 'rosa@example.test'

    r = client.post(f'/api/leads/{lead_id}/convert', {'date_of_birth': '1992-06-01', 'gender': 'female'}, format='json')
    assert r.status_code == 409
    assert Patient.objects.count() == 1


def test_lead_stats(api, receptionist, clinic):
    Lead.objects.create(clinic=clinic, status='converted', **LEAD)
    Lead.objects.create(clinic=clinic, **{**LEAD, 'source': 'referral'})
    Lead.objects.create(clinic=clinic, status='lost', **LEAD)
    Lead.objects.create(clinic=clinic, **LEAD)
    data = api(receptionist).get('/api/leads/stats').json()['data']
    assert data['total_leads'] == 4
    assert data['conversion_rate'] == 25.0
    assert data['by_source'] == {'website': 3, 'referral': 1}


def test_leads_are_front_desk_only(api, nurse):
    assert api(nurse).get('/api/leads').status_code == 403


# ---------------------------------------------------------------------
# Departments
# ---------------------------------------------------------------------
def test_departments(api, admin, doctor):
    client = api(admin)
    body = {'code': 'ortho', 'name': 'Orthodontics', 'staff_count': 4, 'budget': '25000.00'}
    r = client.post('/api/departments', body, format='json')
    assert r.status_code == 201
    pk = r.json()['data']['id']
    assert r.json()['data']['code'] == 'ORTHO'
    assert client.post('/api/departments', body, format='json').json()['errors']['code'] == ['Department code already exists']

    assert api(doctor).post('/api/departments', {**body, 'code': 'PERIO'}, format='json').status_code == 403
    assert api(doctor).get('/api/departments').json()['pagination']['limit'] == 50

    r = client.post(f'/api/departments/{pk}/toggle-status')
    assert r.json()['data']['status'] == 'inactive'
    stats = client.get('/api/departments/stats').json()['data']
    assert stats == {
        'total_departments': 1,
        'active_departments': 0,
        'total_staff': 4,
        'total_budget': 25000,
        'by_status': {'inactive': 1},
    }
