from datetime import date, timedelta

import pytest

from practice.models import Invoice, Payment, Payroll

pytestmark = pytest.mark.django_db

LINES = [
    {'description': 'Composite filling', 'quantity': 2, 'unit_price': 80},
    {'description': 'Panoramic X-ray', 'quantity': 1, 'unit_price': 60, 'type': 'test'},
]


def invoice_body(patient, **overrides):
    body = {
        'patient': patient.pk,
        'services': LINES,
        'tax_amount': '22.00',
        'discount': '10.00',
        'due_date': (date.today() + timedelta(days=14)).isoformat(),
    }
    body.update(overrides)
    return body


@pytest.fixture
def invoice(api, accountant, patient):
    r = api(accountant).post('/api/invoices', invoice_body(patient), format='json')
    assert r.status_code == 201
    return Invoice.objects.get(pk=r.json()['data']['id'])


def test_invoice_totals_and_number(invoice, api, accountant, patient):
    year = date.today().year
    assert invoice.invoice_number == f'INV-{year}-0001'
    assert invoice.subtotal == 220
    assert invoice.total_amount == 232
    assert invoice.services[0]['total'] == 160

    r = api(accountant).post('/api/invoices', invoice_body(patient), format='json')
    assert r.json()['data']['invoice_number'] == f'INV-{year}-0002'


def test_invoice_validation(api, accountant, patient):
    client = api(accountant)
    r = client.post('/api/invoices', invoice_body(patient, services=[]), format='json')
    assert 'services' in r.json()['errors']
    past = (date.today() - timedelta(days=1)).isoformat()
    r = client.post('/api/invoices', invoice_body(patient, due_date=past, issue_date=date.today().isoformat()), format='json')
    assert r.json()['errors']['due_date'] == ['Due date cannot be before the issue date.']


def test_invoice_update_recalculates(invoice, api, accountant):
    r = api(accountant).patch(f'/api/invoices/{invoice.pk}', {'discount': '0.00'}, format='json')
    assert r.status_code == 200
    assert r.json()['data']['total_amount'] == 242


def test_doctor_has_no_billing_access(api, doctor):
    assert api(doctor).get('/api/invoices').status_code == 403


def test_completed_payment_settles_invoice(invoice, api, receptionist):
    r = api(receptionist).post('/api/payments', {
        'invoice': invoice.pk,
        'amount': '232.00',
        'method': 'credit_card',
        'status': 'completed',
        'card_last4': '4242',
        'processing_fee': '7.00',
    }, format='json')
    assert r.status_code == 201
    data = r.json()['data']
    assert data['patient'] == invoice.patient_id
    assert data['net_amount'] == 225
    invoice.refresh_from_db()
    assert invoice.status == 'paid'
    assert invoice.payment_method == 'credit_card'
    assert invoice.paid_at is not None


def test_payment_validation(invoice, api, accountant, make_patient):
    client = api(accountant)
    r = client.post('/api/payments', {
        'invoice': invoice.pk, 'amount': '10.00', 'method': 'cash', 'processing_fee': '11.00',
    }, format='json')
    assert r.json()['errors']['processing_fee'] == ['Fee cannot exceed the amount.']
    other = make_patient('Jo', 'Dunn')
    r = client.post('/api/payments', {
        'invoice': invoice.pk, 'patient': other.pk, 'amount': '10.00', 'method': 'cash',
    }, format='json')
    assert r.json()['errors']['patient'] == ['Patient does not match the invoice.']


def test_pending_payment_completed_later(invoice, api, accountant):
    client = api(accountant)
    pay_id = client.post('/api/payments', {'invoice': invoice.pk, 'amount': '232.00', 'method': 'bank_transfer'}, format='json').json()['data']['id']
    invoice.refresh_from_db()
    assert invoice.status == 'pending'
    r = client.patch(f'/api/payments/{pay_id}/status', {'status': 'completed'}, format='json')
    assert r.status_code == 200
    invoice.refresh_from_db()
    assert invoice.status == 'paid'


def test_refund(invoice, api, accountant):
    client = api(accountant)
    pay_id = client.post('/api/payments', {
        'invoice': invoice.pk, 'amount': '232.00', 'method': 'cash', 'status': 'completed',
    }, format='json').json()['data']['id']
    r = client.post(f'/api/payments/{pay_id}/refund', {'reason': 'Treatment postponed'}, format='json')
    assert r.status_code == 200
    assert r.json()['data']['status'] == 'refunded'
    invoice.refresh_from_db()
    assert invoice.status == 'refunded'

    r = client.post(f'/api/payments/{pay_id}/refund', {}, format='json')
    assert r.status_code == 400
    assert r.json()['code'] == 'INVALID_TRANSITION'

    stats = client.get('/api/payments/stats').json()['data']
    assert stats['refunded_amount'] == 232
    assert stats['total_amount'] == 0


def test_cannot_pay_cancelled_invoice(invoice, api, accountant):
    invoice.status = 'cancelled'
    invoice.save()
    r = api(accountant).post(f'/api/invoices/{invoice.pk}/pay', {'payment_method': 'cash'}, format='json')
    assert r.status_code == 400


def test_overdue_sweep(api, accountant, patient, clinic):
    Invoice.objects.create(
        clinic=clinic, patient=patient, invoice_number='INV-2020-0001', services=[], due_date=date.today() - timedelta(days=3),
    )
    Invoice.objects.create(
        clinic=clinic, patient=patient, invoice_number='INV-2020-0002', services=[], due_date=date.today() - timedelta(days=3),
        status='paid',
    )
    body = api(accountant).get('/api/invoices/overdue').json()
    assert body['flagged'] == 1
    assert [i['invoice_number'] for i in body['data']] == ['INV-2020-0001']
    assert body['data'][0]['is_overdue'] is True


def test_delete_invoice_with_payments_cancels(invoice, api, admin, accountant):
    Payment.objects.create(clinic=invoice.clinic, invoice=invoice, patient=invoice.patient, amount=10, method='cash')
    assert api(accountant).delete(f'/api/invoices/{invoice.pk}').status_code == 403
    r = api(admin).delete(f'/api/invoices/{invoice.pk}')
    assert r.status_code == 200
    invoice.refresh_from_db()
    assert invoice.status == 'cancelled'


def test_invoice_stats(invoice, api, accountant):
    api(accountant).post(f'/api/invoices/{invoice.pk}/pay', {}, format='json')
    data = api(accountant).get('/api/invoices/stats').json()['data']
    assert data['total_invoices'] == 1
    assert data['total_revenue'] == 232
    assert data['monthly_revenue'] == 232
    assert data['outstanding_amount'] == 0


# ---------------------------------------------------------------------
# Payroll
# ---------------------------------------------------------------------
def test_generate_payroll(api, accountant, doctor, nurse):
    client = api(accountant)
    r = client.post('/api/payroll/generate', {'month': 'February', 'year': 2024}, format='json')
    assert r.status_code == 201
    body = r.json()
    assert body['skipped'] == 0
    rows = {row['employee']: row for row in body['data']}
    assert set(rows) == {accountant.pk, doctor.pk, nurse.pk}
    assert rows[doctor.pk]['tax'] == 2250
    assert rows[doctor.pk]['net_salary'] == 12750
    assert rows[nurse.pk]['total_days'] == 29
    assert rows[nurse.pk]['working_days'] == 27

    again = client.post('/api/payroll/generate', {'month': 'February', 'year': 2024}, format='json').json()
    assert again['data'] == []
    assert again['skipped'] == 3


def test_payroll_period_is_unique(api, accountant, doctor):
    client = api(accountant)
    body = {'employee': doctor.pk, 'month': 'March', 'year': 2024, 'base_salary': '9000.00'}
    assert client.post('/api/payroll', body, format='json').status_code == 201
    r = client.post('/api/payroll', body, format='json')
    assert r.status_code == 409
    assert r.json()['code'] == 'CONFLICT'


def test_payroll_paid_sets_pay_date(api, accountant, doctor, clinic):
    row = Payroll.objects.create(clinic=clinic, employee=doctor, month='May', year=2024, base_salary=1000, bonus=200, tax=100)
    assert row.net_salary == 1100
    r = api(accountant).patch(f'/api/payroll/{row.pk}/status', {'status': 'paid'}, format='json')
    assert r.json()['data']['pay_date'] == date.today().isoformat()


def test_receptionist_cannot_see_payroll(api, receptionist):
    assert api(receptionist).get('/api/payroll').status_code == 403


# ---------------------------------------------------------------------
# Expenses
# ---------------------------------------------------------------------
def expense(title, amount, category='supplies', **extra):
    body = {'title': title, 'amount': amount, 'category': category, 'payment_method': 'card', 'date': '2024-03-05'}
    body.update(extra)
    return body


def test_bulk_expenses(api, accountant):
    client = api(accountant)
    r = client.post('/api/expenses/bulk', {'expenses': [
        expense('Gloves', '120.00'),
        expense('Electricity', '300.00', 'utilities', status='paid', date='2024-04-02'),
    ]}, format='json')
    assert r.status_code == 201
    assert [e['created_by'] for e in r.json()['data']] == [accountant.pk, accountant.pk]

    stats = client.get('/api/expenses/stats').json()['data']
    assert stats['total_amount'] == 420
    assert stats['paid_amount'] == 300
    assert stats['by_category'][0] == {'category': 'utilities', 'total': 300, 'count': 1}
    assert [m['month'] for m in stats['by_month']] == ['2024-03', '2024-04']


def test_bulk_expenses_all_or_nothing(api, accountant):
    client = api(accountant)
    r = client.post('/api/expenses/bulk', [expense('Gloves', '120.00'), expense('Broken', '-5')], format='json')
    assert r.status_code == 400
    assert client.get('/api/expenses').json()['pagination']['total'] == 0
    r = client.post('/api/expenses/bulk', {'expenses': [expense('x', '1')] * 101}, format='json')
    assert r.status_code == 400


def test_negative_invoice_total_rejected(api, accountant, patient, invoice):
    client = api(accountant)
    r = client.post('/api/invoices', invoice_body(patient, discount='5000.00'), format='json')
    assert r.status_code == 400
    assert r.json()['errors']['discount'] == ['Total amount cannot be negative.']
    r = client.patch(f'/api/invoices/{invoice.pk}', {'discount': '243.00'}, format='json')
    assert r.status_code == 400
    invoice.refresh_from_db()
    assert invoice.total_amount == 232


def test_completed_payment_on_cancelled_invoice_is_not_stored(invoice, api, accountant):
    invoice.status = 'cancelled'
    invoice.save()
    r = api(accountant).post('/api/payments', {
        'invoice': invoice.pk, 'amount': '232.00', 'method': 'cash', 'status': 'completed',
    }, format='json')
    assert r.status_code == 400
    assert 'invoice' in r.json()['errors']
    assert not Payment.objects.filter(invoice=invoice).exists()


def test_completing_payment_on_cancelled_invoice_rolls_back(invoice, api, accountant):
    client = api(accountant)
    pay_id = client.post('/api/payments', {'invoice': invoice.pk, 'amount': '232.00', 'method': 'cash'}, format='json').json()['data']['id']
    Invoice.objects.filter(pk=invoice.pk).update(status='cancelled')
    r = client.patch(f'/api/payments/{pay_id}/status', {'status': 'completed'}, format='json')
    assert r.status_code == 400
    assert r.json()['code'] == 'INVALID_TRANSITION'
    assert Payment.objects.get(pk=pay_id).status == 'pending'


def test_payment_status_not_editable_through_update(invoice, api, accountant):
    client = api(accountant)
    pay_id = client.post('/api/payments', {
        'invoice': invoice.pk, 'amount': '232.00', 'method': 'cash', 'status': 'completed',
    }, format='json').json()['data']['id']
    r = client.patch(f'/api/payments/{pay_id}', {'status': 'refunded'}, format='json')
    assert r.status_code == 400
    assert 'status' in r.json()['errors']
    assert Payment.objects.get(pk=pay_id).status == 'completed'
    invoice.refresh_from_db()
    assert invoice.status == 'paid'

    r = client.patch(f'/api/payments/{pay_id}', {'description': 'Front desk'}, format='json')
    assert r.status_code == 200


def test_refunded_payment_status_is_final(invoice, api, accountant):
    client = api(accountant)
    pay_id = client.post('/api/payments', {
        'invoice': invoice.pk, 'amount': '232.00', 'method': 'cash', 'status': 'completed',
    }, format='json').json()['data']['id']
    assert client.patch(f'/api/payments/{pay_id}/status', {'status': 'refunded'}, format='json').status_code == 200
    invoice.refresh_from_db()
    assert invoice.status == 'refunded'
    r = client.patch(f'/api/payments/{pay_id}/status', {'status': 'completed'}, format='json')
    assert r.json()['code'] == 'INVALID_TRANSITION'
