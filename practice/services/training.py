from __future__ import annotations

from django.utils import timezone

from practice.exceptions import Conflict, InvalidTransition
from practice.models import Training, TrainingProgress


def start_training(user, training: Training) -> TrainingProgress:
    if TrainingProgress.objects.filter(user=user, training=training).exists():
        raise Conflict('Training already started.')
    return TrainingProgress.objects.create(
        user=user,
        training=training,
        role=training.role,
        modules_progress=[
            {'module_id': m['id'], 'completed': False, 'lessons_completed': [], 'time_spent': 0}
            for m in training.modules
        ],
    )


def update_module(progress: TrainingProgress, module_id: str, *, completed: bool,
                  lessons_completed=None, time_spent=None) -> TrainingProgress:
    modules = list(progress.modules_progress or [])
    for entry in modules:
        if entry.get('module_id') == module_id:
            break
    else:
        raise KeyError(module_id)
    entry['completed'] = completed
    if completed and not entry.get('completed_at'):
        entry['completed_at'] = timezone.now().isoformat()
    if lessons_completed is not None:
        entry['lessons_completed'] = lessons_completed
    if time_spent is not None:
        entry['time_spent'] = entry.get('time_spent', 0) + time_spent
    progress.modules_progress = modules
    progress.save()
    return progress


def issue_certificate(progress: TrainingProgress) -> TrainingProgress:
    if not progress.is_completed:
        raise InvalidTransition('Training must be completed before a certificate is issued.')
    if not progress.certificate_issued:
        progress.certificate_issued = True
        progress.certificate_issued_at = timezone.now()
        progress.save()
    return progress
