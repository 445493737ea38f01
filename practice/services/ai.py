"""
Client for the external inference API used by report and X-ray analysis.

Requests go to the Generative Language ``generateContent`` endpoint with
the uploaded file sent as base64 inline data.  Transport failures are
retried with exponential backoff; errors surface as the ``AI_*`` API
exceptions.
"""
from __future__ import annotations

import base64
import json
import logging
import re
from dataclasses import dataclass, field
from typing import Optional

import requests
from django.conf import settings
from tenacity import RetryError, Retrying, before_sleep_log, retry_if_exception_type, stop_after_attempt, wait_exponential

from practice.exceptions import AIEmptyResult, AINotConfigured, AITimeout, AIUnavailable

logger = logging.getLogger(__name__)

REPORT_PROMPT = """You are an expert laboratory technician and medical analyst. Analyze the uploaded laboratory test report and provide a structured JSON response.

Your response must be valid JSON only, with no text before or after it, using this structure:

{
  "test_identification": {"test_name": "", "test_category": ""},
  "test_results": [{"parameter": "", "value": "", "reference_range": "", "status": "Normal|High|Low|Abnormal", "unit": ""}],
  "abnormal_findings": [{"parameter": "", "value": "", "reference_range": "", "status": "High|Low|Abnormal", "clinical_significance": ""}],
  "clinical_interpretation": {"summary": "", "key_concerns": [], "condition_indicators": []},
  "recommendations": [{"category": "immediate|follow_up|lifestyle|dietary|medication", "action": "", "priority": "high|medium|low", "timeline": ""}],
  "patient_summary": {"overall_status": "", "main_findings": "", "next_steps": ""}
}

Guidelines:
- Extract every visible test parameter with its value and reference range.
- Use exactly "Normal", "High", "Low" or "Abnormal" for status.
- If the document is unclear, return {"error": "Image not clear enough for analysis"}.
- Include units for all numerical values."""

XRAY_PROMPT = """You are an expert dental radiologist. Analyze the uploaded dental X-ray image. Based on the visual details, provide the following:

1. A short summary of the condition of the teeth shown in the X-ray (e.g., decay, infection, root condition, bone loss, fillings).
2. Identify any problematic areas (tooth number and the issue).
3. Mention whether further diagnosis is needed (e.g., CBCT, clinical exam).
4. Suggest suitable medications if needed, with dosage and purpose.
5. Keep it understandable for both dentist and patient.
6. Do not invent findings if the image is unclear; say "Image not clear enough for diagnosis" instead.
7. Start directly with the analysis content, without introductory sentences.

Respond in this format:
- **Condition Summary**:
- **Identified Issues**:
- **Suggested Medications**:
- **Additional Notes**:"""


def build_prompt(default: str, custom: Optional[str]) -> str:
    if custom and custom.strip():
        return f"{default}\n\n--- Additional Custom Instructions ---\n{custom.strip()}"
    return default


@dataclass
class InferenceClient:
    api_key: str
    model: str
    base_url: str
    timeout: int = 300
    max_retries: int = 3
    backoff: float = 1.0
    session: requests.Session = field(default_factory=requests.Session)

    @classmethod
    def from_settings(cls) -> "InferenceClient":
        if not settings.AI_API_KEY:
            raise AINotConfigured()
        return cls(
            api_key=settings.AI_API_KEY,
            model=settings.AI_MODEL,
            base_url=settings.AI_API_URL.rstrip('/'),
            timeout=settings.AI_TIMEOUT,
            max_retries=max(1, settings.AI_MAX_RETRIES),
            backoff=settings.AI_RETRY_BACKOFF,
        )

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/models/{self.model}:generateContent"

    def _post(self, payload: dict) -> requests.Response:
        r = self.session.post(self.endpoint, params={'key': self.api_key}, json=payload, timeout=self.timeout)
        if r.status_code >= 500 or r.status_code == 429:
            logger.warning('Inference API error %s', r.status_code)
            raise requests.HTTPError(f'{r.status_code} from inference API', response=r)
        if r.status_code >= 400:
            logger.warning('Inference API rejected request: %s', r.status_code)
            raise AIUnavailable(f'AI service rejected the request ({r.status_code}).')
        return r

    def generate(self, prompt: str, data: bytes, mime_type: str) -> str:
        payload = {
            'contents': [{
                'role': 'user',
                'parts': [
                    {'inline_data': {'mime_type': mime_type, 'data': base64.b64encode(data).decode('ascii')}},
                    {'text': prompt},
                ],
            }],
        }
        retrying = Retrying(
            stop=stop_after_attempt(self.max_retries),
            wait=wait_exponential(multiplier=self.backoff),
            retry=retry_if_exception_type(requests.RequestException),
            before_sleep=before_sleep_log(logger, logging.WARNING),
        )
        logger.info('Inference request model=%s bytes=%d', self.model, len(data))
        try:
            r = retrying(self._post, payload)
        except RetryError as e:
            if isinstance(e.last_attempt.exception(), requests.Timeout):
                raise AITimeout()
            raise AIUnavailable()
        return extract_text(r.json())


def extract_text(body: dict) -> str:
    parts = []
    for candidate in body.get('candidates') or []:
        for part in (candidate.get('content') or {}).get('parts') or []:
            if part.get('text'):
                parts.append(part['text'])
        if parts:
            break
    text = '\n'.join(parts).strip()
    if not text:
        raise AIEmptyResult()
    return text


def parse_xray_findings(text: str) -> dict:
    lowered = text.lower()
    return {
        'cavities': any(w in lowered for w in ('cavity', 'cavities', 'decay')),
        'wisdom_teeth': 'Present in analysis' if 'wisdom' in lowered else '',
        'bone_density': 'Mentioned in analysis' if 'bone' in lowered else '',
        'infections': 'infection' in lowered or 'inflammation' in lowered,
        'abnormalities': ['Abnormalities noted'] if 'abnormal' in lowered else [],
    }


_FENCE = re.compile(r'```(?:json)?\s*|```')


def parse_report_findings(text: str) -> dict:
    """Read the structured JSON answer; falls back to the raw text as interpretation."""
    cleaned = _FENCE.sub('', text).strip()
    try:
        data = json.loads(cleaned)
    except ValueError:
        return {'interpretation': text, 'parsed': False}
    if not isinstance(data, dict):
        return {'interpretation': text, 'parsed': False}
    if data.get('error'):
        return {'error': data['error'], 'parsed': True}
    ident = data.get('test_identification') or {}
    results = data.get('test_results') or []
    interpretation = data.get('clinical_interpretation') or {}
    return {
        'parsed': True,
        'test_name': ident.get('test_name', ''),
        'test_category': ident.get('test_category', ''),
        'test_results': results,
        'abnormal_findings': data.get('abnormal_findings') or [],
        'clinical_interpretation': interpretation,
        'recommendations': data.get('recommendations') or [],
        'patient_summary': data.get('patient_summary') or {},
        'interpretation': interpretation.get('summary', ''),
    }


def analyze_upload(upload, prompt: str, client: Optional[InferenceClient] = None) -> str:
    client = client or InferenceClient.from_settings()
    upload.seek(0)
    data = upload.read()
    upload.seek(0)
    return client.generate(prompt, data, getattr(upload, 'content_type', None) or 'application/octet-stream')


def answer_section(text: str, heading: str) -> str:
    """Body of a ``- **Heading**:`` section of a markdown answer."""
    pattern = re.compile(
        rf'\*\*{re.escape(heading)}\*\*\s*:?\s*(.*?)(?=\n\s*[-*]?\s*\*\*[^*\n]+\*\*\s*:|\Z)',
        re.IGNORECASE | re.DOTALL,
    )
    m = pattern.search(text)
    return m.group(1).strip() if m else ''
