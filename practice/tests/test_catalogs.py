from datetime import timedelta

import pytest
from django.utils import timezone

from practice.models import LabVendor, Service, TestReport

pytestmark = pytest.mark.django_db


# ---------------------------------------------------------------------
# Service catalog
# ---------------------------------------------------------------------
def service_body(**overrides):
    body = {
        'name': 'Scale and polish',
        'category': 'Hygiene',
        'description': 'Routine cleaning',
        'duration': 45,
        'price': '80.00',
        'department': 'Dental',
        'max_bookings_per_day': 12,
    }
    body.update(overrides)
    return body


def make_service(clinic, **overrides):
    fields = service_body(**overrides)
    return Service.objects.create(clinic=clinic, **fields)


def test_admin_creates_service(api, admin):
    r = api(admin).post('/api/services', service_body(name='<b>Whitening</b>'), format='json')
    assert r.status_code == 201
    data = r.json()['data']
    assert data['name'] == 'Whitening'
    assert data['is_active'] is True


def test_service_bounds(api, admin):
    client = api(admin)
    r = client.post('/api/services', service_body(duration=0, price='-1', max_bookings_per_day=1001), format='json')
    assert r.status_code == 400
    assert set(r.json()['errors']) >= {'duration', 'price', 'max_bookings_per_day'}


def test_service_writes_need_admin(api, doctor, clinic):
    service = make_service(clinic)
    client = api(doctor)
    assert client.get(f'/api/services/{service.pk}').status_code == 200
    assert client.post('/api/services', service_body(), format='json').status_code == 403
    assert client.patch(f'/api/services/{service.pk}/toggle-status').status_code == 403


def test_service_filters(api, receptionist, clinic, other_clinic):
    make_service(clinic, name='Root canal', category='Endodontics', price='600.00', duration=90)
    make_service(clinic, name='Check-up', price='40.00', duration=20, is_active=False)
    make_service(other_clinic, name='Root canal elsewhere')
    client = api(receptionist)

    assert client.get('/api/services').json()['pagination']['total'] == 2
    r = client.get('/api/services', {'search': 'root'}).json()
    assert [s['name'] for s in r['data']] == ['Root canal']
    assert client.get('/api/services', {'is_active': 'false'}).json()['data'][0]['name'] == 'Check-up'
    assert client.get('/api/services', {'min_price': '100'}).json()['pagination']['total'] == 1
    assert client.get('/api/services', {'max_duration': '30', 'min_price': 'abc'}).json()['pagination']['total'] == 1
    assert client.get('/api/services', {'category': 'Endodontics'}).json()['pagination']['total'] == 1


def test_toggle_and_stats(api, admin, clinic):
    service = make_service(clinic, price='600.00')
    make_service(clinic, name='Check-up', price='40.00', category='Exams')
    client = api(admin)
    r = client.patch(f'/api/services/{service.pk}/toggle-status')
    assert r.json()['message'] == 'Service deactivated successfully'
    assert r.json()['data']['is_active'] is False

    stats = client.get('/api/services/stats').json()['data']
    assert stats['total_services'] == 2
    assert stats['active_services'] == 1
    assert stats['inactive_services'] == 1
    assert {row['category'] for row in stats['by_category']} == {'Hygiene', 'Exams'}
    assert [(b['min'], b['max'], b['count']) for b in stats['price_ranges']] == [(0, 50, 1), (500, 1000, 1)]


# ---------------------------------------------------------------------
# Lab vendors
# ---------------------------------------------------------------------
def vendor_body(**overrides):
    today = timezone.localdate()
    body = {
        'name': 'Northside Labs',
        'code': 'nsl01',
        'type': 'diagnostic_lab',
        'contact_person': 'Dana Park',
        'email': 'orders@northside.test',
        'phone': '+1 555 0300',
        'address': '12 Harbour Road',
        'city': 'Portland',
        'state': 'OR',
        'zip_code': '97201',
        'license': 'LAB-7781',
        'specialties': ['Hematology', 'Chemistry'],
        'accreditation': ['CAP'],
        'rating': '4.5',
        'average_turnaround': '24 hours',
        'pricing': 'moderate',
        'contract_start': (today - timedelta(days=300)).isoformat(),
        'contract_end': (today + timedelta(days=65)).isoformat(),
    }
    body.update(overrides)
    return body


def make_vendor(client, **overrides):
    r = client.post('/api/lab-vendors', vendor_body(**overrides), format='json')
    assert r.status_code == 201, r.json()
    return r.json()['data']


def test_create_vendor_normalises_code(api, admin):
    client = api(admin)
    data = make_vendor(client)
    assert data['code'] == 'NSL01'
    assert data['status'] == 'pending'
    assert data['total_tests'] == 0
    r = client.post('/api/lab-vendors', vendor_body(name='Duplicate'), format='json')
    assert r.json()['errors']['code'] == ['Vendor code already exists']


def test_vendor_validation(api, admin):
    today = timezone.localdate()
    r = api(admin).post('/api/lab-vendors', vendor_body(
        code='NS-1', rating='5.5', contract_end=today.isoformat(), contract_start=today.isoformat(),
    ), format='json')
    assert r.status_code == 400
    assert set(r.json()['errors']) >= {'code', 'rating'}

    r = api(admin).post('/api/lab-vendors', vendor_body(contract_end=(today - timedelta(days=400)).isoformat()), format='json')
    assert r.json()['errors']['contract_end'] == ['Contract end date must be after start date.']


def test_vendor_codes_are_per_clinic(api, admin, other_clinic, make_user):
    make_vendor(api(admin))
    other_admin = make_user('admin', member_of=other_clinic)
    make_vendor(api(other_admin, clinic_id=str(other_clinic.pk)))
    assert LabVendor.objects.filter(code='NSL01').count() == 2


def test_vendor_status_and_test_count(api, admin, nurse):
    pk = make_vendor(api(admin))['id']
    client = api(nurse)
    assert client.patch(f'/api/lab-vendors/{pk}/status', {'status': 'active'}, format='json').status_code == 403
    r = api(admin).patch(f'/api/lab-vendors/{pk}/status', {'status': 'active'}, format='json')
    assert r.json()['data']['status'] == 'active'

    assert client.patch(f'/api/lab-vendors/{pk}/test-count', {'increment': 0}, format='json').status_code == 400
    client.patch(f'/api/lab-vendors/{pk}/test-count', {}, format='json')
    data = client.patch(f'/api/lab-vendors/{pk}/test-count', {'increment': 4}, format='json').json()['data']
    assert data['total_tests'] == 5
    assert data['last_test_date']


def test_vendor_search(api, admin):
    client = api(admin)
    make_vendor(client)
    make_vendor(client, name='Coastal Imaging', code='CI1', type='imaging_center', specialties=['Radiology'], city='Salem')
    assert client.get('/api/lab-vendors', {'search': 'radiology'}).json()['data'][0]['code'] == 'CI1'
    assert client.get('/api/lab-vendors', {'type': 'diagnostic_lab'}).json()['pagination']['total'] == 1
    assert client.get('/api/lab-vendors', {'specialty': 'Chemistry'}).json()['data'][0]['code'] == 'NSL01'
    assert client.get('/api/lab-vendors', {'min_rating': '4.8'}).json()['pagination']['total'] == 0


def test_contract_expiring_and_stats(api, admin):
    client = api(admin)
    today = timezone.localdate()
    soon = make_vendor(client, code='SOON', contract_end=(today + timedelta(days=10)).isoformat())
    later = make_vendor(client, code='LATER', rating='3.5', specialties=['Hematology'])
    make_vendor(client, code='IDLE', contract_end=(today + timedelta(days=5)).isoformat())
    for pk in (soon['id'], later['id']):
        client.patch(f'/api/lab-vendors/{pk}/status', {'status': 'active'}, format='json')

    r = client.get('/api/lab-vendors/contract-expiring').json()
    assert [v['code'] for v in r['data']] == ['SOON']
    assert r['days'] == 30
    r = client.get('/api/lab-vendors/contract-expiring', {'days': 90}).json()
    assert [v['code'] for v in r['data']] == ['SOON', 'LATER']

    stats = client.get('/api/lab-vendors/stats').json()['data']
    assert stats['total_vendors'] == 3
    assert stats['by_status'] == {'active': 2, 'pending': 1}
    assert stats['by_type'] == {'diagnostic_lab': 3}
    assert stats['top_specialties'][0] == {'specialty': 'Hematology', 'count': 3}
    assert stats['average_rating'] == 4.2
    assert stats['expiring_contracts'] == 1


def test_vendor_test_history(api, admin, patient, clinic):
    pk = make_vendor(api(admin))['id']
    common = {
        'clinic': clinic, 'patient': patient, 'patient_name': patient.full_name, 'patient_age': 36,
        'patient_gender': 'female', 'test_name': 'CBC', 'test_code': 'CBC', 'category': 'Hematology',
        'recorded_by': 'Nurse', 'test_date': timezone.now(),
    }
    TestReport.objects.create(report_number='R1', external_vendor='Northside Labs', **common)
    TestReport.objects.create(report_number='R2', external_vendor='nsl01', **common)
    TestReport.objects.create(report_number='R3', external_vendor='Elsewhere', **common)

    r = api(admin).get(f'/api/lab-vendors/{pk}/test-history').json()
    assert r['pagination']['total'] == 2
    assert {row['report_number'] for row in r['data']} == {'R1', 'R2'}
    assert r['vendor']['code'] == 'NSL01'
