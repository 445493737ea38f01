"""
Side-by-side comparison of several lab reports for one patient.

Each upload is analysed on its own with the report prompt; the structured
results are then grouped per parameter and each parameter gets a trend.
"""
from __future__ import annotations

import logging
import re
from datetime import date, datetime
from typing import List, Optional

from django.core.files.storage import default_storage
from django.utils import timezone

from practice.services import ai as inference
from practice.services.common import percent_change

logger = logging.getLogger(__name__)

MIN_REPORTS = 2
MAX_REPORTS = 10
SIGNIFICANT_CHANGE = 20.0
FLUCTUATION = 15.0
RISING_IS_BAD = ('cholesterol', 'glucose', 'pressure')
ANY_CHANGE_IS_BAD = ('hemoglobin', 'rbc')

_DATE_PATTERNS = (
    (re.compile(r'\d{4}-\d{2}-\d{2}'), '%Y-%m-%d'),
    (re.compile(r'\d{1,2}/\d{1,2}/\d{4}'), '%m/%d/%Y'),
    (re.compile(r'\d{1,2}-\d{1,2}-\d{4}'), '%m-%d-%Y'),
    (re.compile(r'\d{1,2}\.\d{1,2}\.\d{4}'), '%d.%m.%Y'),
)
_NUMBER = re.compile(r'\d+(?:\.\d+)?')

RECOMMENDATIONS = [
    {
        'category': 'follow_up',
        'action': 'Review these results with your healthcare provider for proper interpretation',
        'priority': 'high',
        'timeline': 'Within 1-2 weeks',
    },
    {
        'category': 'lifestyle',
        'action': 'Maintain consistent lifestyle and medication compliance between tests',
        'priority': 'medium',
        'timeline': 'Ongoing',
    },
]


def report_date(text: str, file_name: str) -> date:
    """First recognisable date in the answer, then in the file name; today otherwise."""
    for source in (text or '', file_name or ''):
        for pattern, fmt in _DATE_PATTERNS:
            for match in pattern.finditer(source):
                try:
                    return datetime.strptime(match.group(0), fmt).date()
                except ValueError:
                    continue
    return timezone.localdate()


def numeric_value(value) -> Optional[float]:
    if isinstance(value, (int, float)):
        return float(value)
    m = _NUMBER.search(str(value or ''))
    return float(m.group(0)) if m else None


def analyze_trend(parameter: str, values: List[dict]) -> dict:
    """Classify a parameter's series as increasing, decreasing, stable or fluctuating."""
    numbers = [n for n in (numeric_value(v.get('value')) for v in values) if n is not None]
    if len(values) < 2 or len(numbers) < 2:
        return {
            'trend': 'insufficient_data',
            'trend_analysis': f'{parameter} does not have enough comparable values for a trend.',
            'is_concerning': False,
            'clinical_significance': '',
        }
    change = percent_change(numbers[-1], numbers[0])
    name = parameter.lower()
    trend, concerning = 'stable', False
    if abs(change) > SIGNIFICANT_CHANGE:
        trend = 'increasing' if change > 0 else 'decreasing'
        if any(k in name for k in RISING_IS_BAD):
            concerning = change > 0
        elif any(k in name for k in ANY_CHANGE_IS_BAD):
            concerning = True
    elif len(numbers) > 2:
        steps = [abs(percent_change(b, a)) for a, b in zip(numbers, numbers[1:])]
        if sum(steps) / len(steps) > FLUCTUATION:
            trend, concerning = 'fluctuating', True
    return {
        'trend': trend,
        'trend_analysis': (
            f'{parameter} shows a {trend} pattern over time. Change from first to last: {change:.1f}%. '
            f'Values range: {min(numbers):g} to {max(numbers):g}.'
        ),
        'is_concerning': concerning,
        'clinical_significance': f'Concerning {trend} trend in {parameter} requires attention' if concerning else '',
    }


def compare_parameters(analyses: List[dict]) -> List[dict]:
    """Group test results of every report by parameter name, oldest report first."""
    grouped = {}
    for index, analysis in enumerate(analyses):
        for result in analysis.get('test_results') or []:
            name = str(result.get('parameter') or '').strip()
            if not name:
                continue
            entry = grouped.setdefault(name.lower(), {
                'parameter': name,
                'unit': result.get('unit', ''),
                'reference_range': result.get('reference_range', ''),
                'values': [],
            })
            entry['values'].append({
                'report_index': index,
                'date': analysis['analysis_date'],
                'value': result.get('value'),
                'status': result.get('status', ''),
                'file_name': analysis['file_name'],
            })
    comparisons = []
    for entry in grouped.values():
        entry['values'].sort(key=lambda v: v['date'])
        entry.update(analyze_trend(entry['parameter'], entry['values']))
        comparisons.append(entry)
    return comparisons


def comparison_summary(analyses: List[dict], comparisons: List[dict]) -> dict:
    concerning = [c['parameter'] for c in comparisons if c['is_concerning']]
    improved = [
        c['parameter'] for c in comparisons
        if c['trend'] == 'decreasing' and any(k in c['parameter'].lower() for k in ('cholesterol', 'glucose'))
    ]
    stable = [c['parameter'] for c in comparisons if c['trend'] == 'stable']
    key_changes = [
        f"{c['parameter']}: {c['trend']} trend" for c in comparisons
        if c['trend'] not in ('stable', 'insufficient_data')
    ][:5]
    return {
        'overall_trend': (
            'Some concerning changes noted' if len(concerning) > len(improved) + len(stable)
            else 'Generally stable with some variations'
        ),
        'key_changes': key_changes,
        'concerning_parameters': concerning,
        'improved_parameters': improved,
        'stable_parameters': stable[:10],
        'recommendations': RECOMMENDATIONS,
        'patient_summary': {
            'overall_status': (
                'Your test results show good consistency over time' if not concerning
                else 'Some parameters show changes that may need attention'
            ),
            'main_findings': (
                f'Compared {len(analyses)} test reports. {len(concerning)} parameters need attention, '
                f'{len(stable)} are stable.'
            ),
            'next_steps': 'Discuss these trends with your doctor to understand their clinical significance.',
        },
    }


def store_uploads(uploads, clinic_id) -> List[dict]:
    today = timezone.localdate()
    stored = []
    for order, upload in enumerate(uploads):
        path = default_storage.save(f'comparisons/{clinic_id}/{today:%Y/%m}/{upload.name}', upload)
        stored.append({
            'file_name': upload.name,
            'path': path,
            'content_type': getattr(upload, 'content_type', '') or '',
            'size': upload.size,
            'upload_order': order,
        })
    return stored


def delete_uploads(files: List[dict]) -> None:
    for f in files or []:
        if f.get('path'):
            default_storage.delete(f['path'])


def analyze_reports(uploads, custom_prompt: str = '') -> List[dict]:
    prompt = inference.build_prompt(inference.REPORT_PROMPT, custom_prompt)
    analyses = []
    for order, upload in enumerate(uploads):
        answer = inference.analyze_upload(upload, prompt)
        findings = inference.parse_report_findings(answer)
        analyses.append({
            'report_index': order,
            'file_name': upload.name,
            'analysis_date': report_date(answer, upload.name).isoformat(),
            'test_name': findings.get('test_name', ''),
            'test_category': findings.get('test_category', ''),
            'test_results': findings.get('test_results') or [],
            'abnormal_findings': findings.get('abnormal_findings') or [],
            'interpretation': findings.get('interpretation', ''),
        })
        logger.info('Comparison report %d/%d analysed: %s', order + 1, len(uploads), upload.name)
    return analyses


def run_comparison(row, uploads) -> None:
    """Analyse every upload and fill in the comparison row."""
    started = timezone.now()
    analyses = analyze_reports(uploads, row.custom_prompt)
    comparisons = compare_parameters(analyses)
    dates = sorted(a['analysis_date'] for a in analyses)
    row.individual_analyses = analyses
    row.parameter_comparisons = comparisons
    row.comparison_analysis = comparison_summary(analyses, comparisons)
    row.start_date, row.end_date = date.fromisoformat(dates[0]), date.fromisoformat(dates[-1])
    row.status = 'completed'
    row.processing_time_ms = int((timezone.now() - started).total_seconds() * 1000)
    row.save()
