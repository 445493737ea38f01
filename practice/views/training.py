"""
Role based onboarding courses and per-user progress.

Courses are shared by every clinic; progress belongs to the user.
"""
from __future__ import annotations

from django.db.models import Avg, Count, Q
from rest_framework.decorators import api_view, permission_classes
from rest_framework.exceptions import NotFound
from rest_framework.permissions import IsAuthenticated

from practice.models import Training, TrainingProgress, User
from practice.permissions import IsAdmin, ensure_role
from practice.responses import created, ok
from practice.serializers.training import ModuleProgressSerializer, TrainingProgressSerializer, TrainingSerializer
from practice.services import training as courses

ADMIN_ONLY = (User.ROLE_ADMIN,)


def _training(pk) -> Training:
    training = Training.objects.filter(pk=pk).first()
    if training is None:
        raise NotFound('Training not found.')
    return training


def _progress(user, training) -> TrainingProgress:
    progress = TrainingProgress.objects.filter(user=user, training=training).select_related('training').first()
    if progress is None:
        raise NotFound('Training has not been started.')
    return progress


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def trainings(request):
    if request.method == 'POST':
        ensure_role(request.user, ADMIN_ONLY)
        s = TrainingSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        training = s.save()
        return created(TrainingSerializer(training).data, message='Training created successfully')
    qs = Training.objects.all()
    if request.user.role != User.ROLE_ADMIN:
        qs = qs.filter(is_active=True)
    return ok(TrainingSerializer(qs.order_by('role'), many=True).data)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def training_detail(request, pk: int):
    training = _training(pk)
    if request.method == 'GET':
        return ok(TrainingSerializer(training).data)
    ensure_role(request.user, ADMIN_ONLY)
    if request.method == 'DELETE':
        training.delete()
        return ok(message='Training deleted successfully')
    s = TrainingSerializer(training, data=request.data, partial=request.method == 'PATCH')
    s.is_valid(raise_exception=True)
    s.save()
    return ok(s.data, message='Training updated successfully')


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def training_for_role(request, role: str):
    training = Training.objects.filter(role=role, is_active=True).first()
    if training is None:
        raise NotFound('No training available for this role.')
    return ok(TrainingSerializer(training).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def start(request, pk: int):
    progress = courses.start_training(request.user, _training(pk))
    return created(TrainingProgressSerializer(progress).data, message='Training started')


@api_view(['PATCH', 'PUT'])
@permission_classes([IsAuthenticated])
def module_progress(request, pk: int):
    progress = _progress(request.user, _training(pk))
    s = ModuleProgressSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    v = s.validated_data
    try:
        progress = courses.update_module(
            progress,
            v['module_id'],
            completed=v['completed'],
            lessons_completed=v.get('lessons_completed'),
            time_spent=v.get('time_spent'),
        )
    except KeyError:
        raise NotFound('Module not found in this training.')
    return ok(TrainingProgressSerializer(progress).data, message='Progress updated')


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def certificate(request, pk: int):
    progress = courses.issue_certificate(_progress(request.user, _training(pk)))
    return ok(TrainingProgressSerializer(progress).data, message='Certificate issued')


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def my_progress(request):
    qs = TrainingProgress.objects.filter(user=request.user).select_related('training').order_by('-last_accessed')
    return ok(TrainingProgressSerializer(qs, many=True).data)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsAdmin])
def analytics(request):
    qs = TrainingProgress.objects.all()
    totals = qs.aggregate(
        started=Count('id'),
        completed=Count('id', filter=Q(is_completed=True)),
        certified=Count('id', filter=Q(certificate_issued=True)),
        average=Avg('overall_progress'),
    )
    by_role = [
        {
            'role': row['role'],
            'started': row['started'],
            'completed': row['completed'],
            'average_progress': round(row['average'] or 0, 1),
        }
        for row in qs.values('role').annotate(
            started=Count('id'),
            completed=Count('id', filter=Q(is_completed=True)),
            average=Avg('overall_progress'),
        ).order_by('role')
    ]
    started = totals['started'] or 0
    return ok({
        'total_started': started,
        'total_completed': totals['completed'] or 0,
        'certificates_issued': totals['certified'] or 0,
        'completion_rate': round((totals['completed'] or 0) / started * 100, 1) if started else 0,
        'average_progress': round(totals['average'] or 0, 1),
        'by_role': by_role,
    })
