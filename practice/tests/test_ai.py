import json

import pytest
import requests
from django.core.files.storage import default_storage
from django.core.files.uploadedfile import SimpleUploadedFile
from django.utils import timezone

from practice.exceptions import AITimeout
from practice.models import AITestAnalysis, AITestComparison, XrayAnalysis
from practice.services import ai as inference
from practice.services import comparisons

pytestmark = pytest.mark.django_db

XRAY_ANSWER = """- **Condition Summary**: Early decay on tooth 19, mild bone loss.
- **Identified Issues**: Tooth 19 occlusal cavity.
- **Suggested Medications**: Chlorhexidine rinse 0.12% twice daily.
- **Additional Notes**: Clinical exam advised."""

REPORT_ANSWER = '```json\n' + json.dumps({
    'test_identification': {'test_name': 'CBC', 'test_category': 'Hematology'},
    'test_results': [{'parameter': 'WBC', 'value': '12.1', 'reference_range': '4-11', 'status': 'High', 'unit': '10^9/L'}],
    'abnormal_findings': [{'parameter': 'WBC', 'value': '12.1', 'status': 'High'}],
    'clinical_interpretation': {'summary': 'Mild leukocytosis', 'key_concerns': [], 'condition_indicators': []},
}) + '\n```'


def png(name='scan.png'):
    return SimpleUploadedFile(name, b'\x89PNG\r\n\x1a\n' + b'0' * 64, content_type='image/png')


@pytest.fixture
def configured(settings):
    settings.AI_API_KEY = 'test-key'
    settings.AI_MAX_RETRIES = 2
    settings.AI_RETRY_BACKOFF = 0


def answer_with(monkeypatch, text):
    calls = []

    def generate(self, prompt, data, mime_type):
        calls.append({'prompt': prompt, 'bytes': len(data), 'mime_type': mime_type})
        return text

    monkeypatch.setattr(inference.InferenceClient, 'generate', generate)
    return calls


def test_not_configured(api, doctor, patient):
    r = api(doctor).post('/api/ai/xray', {'file': png(), 'patient': patient.pk}, format='multipart')
    assert r.status_code == 500
    assert r.json()['code'] == 'AI_NOT_CONFIGURED'
    assert XrayAnalysis.objects.get().status == 'failed'


def test_xray_analysis(api, doctor, patient, configured, monkeypatch):
    calls = answer_with(monkeypatch, XRAY_ANSWER)
    r = api(doctor).post('/api/ai/xray', {
        'file': png(), 'patient': patient.pk, 'custom_prompt': 'Focus on the lower molars',
    }, format='multipart')
    assert r.status_code == 201
    data = r.json()['data']
    assert data['status'] == 'completed'
    assert data['image_filename'] == 'scan.png'
    assert data['findings']['cavities'] is True
    assert data['findings']['bone_density'] == 'Mentioned in analysis'
    assert data['recommendations'] == 'Chlorhexidine rinse 0.12% twice daily.'
    assert calls[0]['mime_type'] == 'image/png'
    assert calls[0]['prompt'].endswith('Focus on the lower molars')

    stats = api(doctor).get('/api/ai/xray/stats').json()['data']
    assert stats['completed'] == 1
    assert stats['with_cavities'] == 1


def test_xray_requires_image(api, doctor, patient, configured):
    pdf = SimpleUploadedFile('scan.pdf', b'%PDF-1.4', content_type='application/pdf')
    r = api(doctor).post('/api/ai/xray', {'file': pdf, 'patient': patient.pk}, format='multipart')
    assert r.status_code == 400
    assert 'file' in r.json()['errors']


def test_xray_needs_medical_role(api, receptionist, patient, configured):
    assert api(receptionist).post('/api/ai/xray', {'file': png(), 'patient': patient.pk}, format='multipart').status_code == 403


def test_report_analysis(api, receptionist, patient, configured, monkeypatch):
    answer_with(monkeypatch, REPORT_ANSWER)
    pdf = SimpleUploadedFile('cbc.pdf', b'%PDF-1.4 test', content_type='application/pdf')
    r = api(receptionist).post('/api/ai/test-analysis', {'file': pdf, 'patient': patient.pk}, format='multipart')
    assert r.status_code == 201
    findings = r.json()['data']['findings']
    assert findings['parsed'] is True
    assert findings['test_name'] == 'CBC'
    assert findings['interpretation'] == 'Mild leukocytosis'

    history = api(receptionist).get('/api/ai/test-analysis/history').json()
    assert history['pagination']['total'] == 1


def test_report_rejects_unsupported_type(api, receptionist, configured):
    txt = SimpleUploadedFile('notes.txt', b'hello', content_type='text/plain')
    r = api(receptionist).post('/api/ai/test-analysis', {'file': txt}, format='multipart')
    assert r.status_code == 400


def test_timeout_is_recorded(api, receptionist, configured, monkeypatch):
    def slow(self, prompt, data, mime_type):
        raise AITimeout()

    monkeypatch.setattr(inference.InferenceClient, 'generate', slow)
    r = api(receptionist).post('/api/ai/test-analysis', {'file': png()}, format='multipart')
    assert r.status_code == 408
    assert r.json()['code'] == 'AI_TIMEOUT'
    row = AITestAnalysis.objects.get()
    assert row.status == 'failed'
    assert row.error_message.startswith('AI analysis timed out')


def test_malformed_answer_marks_analysis_failed(api, receptionist, configured, monkeypatch):
    monkeypatch.setattr(inference.InferenceClient, '_post', lambda self, payload: FakeResponse(200, ['unexpected']))
    r = api(receptionist).post('/api/ai/test-analysis', {'file': png()}, format='multipart')
    assert r.status_code == 500
    assert r.json()['code'] == 'server_error'
    row = AITestAnalysis.objects.get()
    assert row.status == 'failed'
    assert row.error_message == 'Analysis failed unexpectedly'


def test_analysis_delete_removes_file(api, receptionist, configured, monkeypatch):
    answer_with(monkeypatch, 'plain text answer')
    pk = api(receptionist).post('/api/ai/test-analysis', {'file': png()}, format='multipart').json()['data']['id']
    row = AITestAnalysis.objects.get(pk=pk)
    assert row.findings == {'interpretation': 'plain text answer', 'parsed': False}
    storage, name = row.file.storage, row.file.name
    assert storage.exists(name)
    assert api(receptionist).delete(f'/api/ai/test-analysis/{pk}').status_code == 200
    assert not storage.exists(name)


# ---------------------------------------------------------------------
# Inference client
# ---------------------------------------------------------------------
class FakeResponse:
    def __init__(self, status_code, body=None):
        self.status_code = status_code
        self._body = body or {}

    def json(self):
        return self._body

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(str(self.status_code), response=self)


class FakeSession:
    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls = 0

    def post(self, url, **kwargs):
        self.calls += 1
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def client_with(session, retries=3):
    return inference.InferenceClient(
        api_key='k', model='m', base_url='http://ai.test', max_retries=retries, backoff=0, session=session,
    )


def test_client_retries_then_succeeds():
    body = {'candidates': [{'content': {'parts': [{'text': 'All clear'}]}}]}
    session = FakeSession(FakeResponse(503), requests.ConnectionError('reset'), FakeResponse(200, body))
    assert client_with(session).generate('p', b'data', 'image/png') == 'All clear'
    assert session.calls == 3


def test_client_timeout_after_retries():
    session = FakeSession(requests.Timeout(), requests.Timeout())
    with pytest.raises(AITimeout):
        client_with(session, retries=2).generate('p', b'data', 'image/png')


def test_client_does_not_retry_client_errors():
    session = FakeSession(FakeResponse(400), FakeResponse(200))
    with pytest.raises(inference.AIUnavailable):
        client_with(session).generate('p', b'data', 'image/png')
    assert session.calls == 1


def test_client_gives_up_on_rate_limit():
    session = FakeSession(FakeResponse(429), FakeResponse(502), FakeResponse(429))
    with pytest.raises(inference.AIUnavailable):
        client_with(session).generate('p', b'data', 'image/png')
    assert session.calls == 3


def test_empty_answer():
    with pytest.raises(inference.AIEmptyResult):
        inference.extract_text({'candidates': [{'content': {'parts': [{'text': '  '}]}}]})


def test_answer_section():
    assert inference.answer_section(XRAY_ANSWER, 'Identified Issues') == 'Tooth 19 occlusal cavity.'
    assert inference.answer_section(XRAY_ANSWER, 'Prognosis') == ''


# ---------------------------------------------------------------------
# Report comparison
# ---------------------------------------------------------------------
def lab_answer(day, **values):
    return json.dumps({
        'report_date': day,
        'test_identification': {'test_name': 'Metabolic panel', 'test_category': 'Chemistry'},
        'test_results': [
            {'parameter': name, 'value': value, 'unit': '', 'reference_range': '', 'status': 'Normal'}
            for name, value in values.items()
        ],
        'clinical_interpretation': {'summary': 'ok'},
    })


def answers_in_turn(monkeypatch, *answers):
    queue = list(answers)

    def generate(self, prompt, data, mime_type):
        outcome = queue.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    monkeypatch.setattr(inference.InferenceClient, 'generate', generate)


def compare(client, patient, *files, **extra):
    body = {'test_reports': list(files), 'patient': patient.pk, **extra}
    return client.post('/api/ai/test-comparison/compare', body, format='multipart')


def test_compare_reports(api, doctor, patient, configured, monkeypatch):
    answers_in_turn(
        monkeypatch,
        lab_answer('2024-06-10', Glucose='130 mg/dL', Hemoglobin='13.8'),
        lab_answer('2024-01-10', Glucose='100 mg/dL', Hemoglobin='14.0', Cholesterol='190'),
    )
    r = compare(api(doctor), patient, png('june.png'), png('january.png'), comparison_name='Diabetes follow-up')
    assert r.status_code == 201
    data = r.json()['data']
    assert data['status'] == 'completed'
    assert data['report_count'] == 2
    assert (data['start_date'], data['end_date']) == ('2024-01-10', '2024-06-10')
    assert [f['file_name'] for f in data['uploaded_files']] == ['june.png', 'january.png']

    params = {p['parameter']: p for p in data['parameter_comparisons']}
    glucose = params['Glucose']
    assert [v['file_name'] for v in glucose['values']] == ['january.png', 'june.png']
    assert glucose['trend'] == 'increasing'
    assert glucose['is_concerning'] is True
    assert params['Hemoglobin']['trend'] == 'stable'
    assert params['Cholesterol']['trend'] == 'insufficient_data'

    summary = data['comparison_analysis']
    assert summary['concerning_parameters'] == ['Glucose']
    assert summary['stable_parameters'] == ['Hemoglobin']
    assert summary['key_changes'] == ['Glucose: increasing trend']
    assert summary['overall_trend'] == 'Generally stable with some variations'
    assert len(summary['recommendations']) == 2

    row = AITestComparison.objects.get()
    assert all(default_storage.exists(f['path']) for f in row.uploaded_files)


def test_compare_needs_two_reports(api, doctor, patient, configured):
    r = compare(api(doctor), patient, png())
    assert r.status_code == 400
    assert 'test_reports' in r.json()['errors']
    assert not AITestComparison.objects.exists()


def test_compare_needs_medical_role(api, receptionist, patient, configured):
    assert compare(api(receptionist), patient, png('a.png'), png('b.png')).status_code == 403


def test_compare_failure_is_recorded(api, nurse, patient, configured, monkeypatch):
    answers_in_turn(monkeypatch, lab_answer('2024-01-10', Glucose='100'), AITimeout())
    r = compare(api(nurse), patient, png('a.png'), png('b.png'))
    assert r.status_code == 408
    row = AITestComparison.objects.get()
    assert row.status == 'failed'
    assert row.error_message.startswith('AI analysis timed out')


def test_comparison_history_stats_and_delete(api, doctor, nurse, patient, configured, monkeypatch):
    answers_in_turn(monkeypatch, lab_answer('2024-01-10', Glucose='100'), lab_answer('2024-02-10', Glucose='101'))
    pk = compare(api(doctor), patient, png('a.png'), png('b.png')).json()['data']['id']

    history = api(nurse).get('/api/ai/test-comparison', {'patient': patient.pk}).json()
    assert history['pagination']['total'] == 1
    assert history['data'][0]['patient_name'] == 'Maria Lopez'
    stats = api(nurse).get('/api/ai/test-comparison/stats').json()['data']
    assert stats == {'total_comparisons': 1, 'this_month': 1, 'pending': 0, 'completed': 1, 'failed': 0}

    paths = [f['path'] for f in AITestComparison.objects.get().uploaded_files]
    assert api(nurse).delete(f'/api/ai/test-comparison/{pk}').status_code == 403
    assert api(doctor).delete(f'/api/ai/test-comparison/{pk}').status_code == 200
    assert not any(default_storage.exists(p) for p in paths)


def test_trend_rules():
    def series(*numbers):
        return [{'value': str(n)} for n in numbers]

    assert comparisons.analyze_trend('Glucose', series(100, 102, 99))['trend'] == 'stable'
    fluctuating = comparisons.analyze_trend('WBC', series(10, 14, 10))
    assert (fluctuating['trend'], fluctuating['is_concerning']) == ('fluctuating', True)
    falling = comparisons.analyze_trend('Hemoglobin', series(14, 10))
    assert (falling['trend'], falling['is_concerning']) == ('decreasing', True)
    cholesterol = comparisons.analyze_trend('LDL Cholesterol', series(200, 150))
    assert (cholesterol['trend'], cholesterol['is_concerning']) == ('decreasing', False)
    assert comparisons.analyze_trend('Culture', series('negative', 'negative'))['trend'] == 'insufficient_data'


def test_report_date_sources():
    assert comparisons.report_date('Collected 03/15/2024', 'x.pdf').isoformat() == '2024-03-15'
    assert comparisons.report_date('no date here', 'cbc-2023-11-02.pdf').isoformat() == '2023-11-02'
    assert comparisons.report_date('', 'scan.png') == timezone.localdate()
