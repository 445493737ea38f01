from __future__ import annotations

from django.db.models import Count, Sum
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated

from practice.models import Department, User
from practice.permissions import HasClinicContext, IsStaff, ensure_role
from practice.responses import created, ok
from practice.serializers.crm import DepartmentSerializer
from practice.services.common import paginate
from practice.services.tenancy import clinic_scoped, get_clinic_object

CLINIC_STAFF = [IsAuthenticated, HasClinicContext, IsStaff]
ADMIN_ONLY = (User.ROLE_ADMIN,)


@api_view(['GET', 'POST'])
@permission_classes(CLINIC_STAFF)
def departments(request):
    if request.method == 'POST':
        ensure_role(request.user, ADMIN_ONLY)
        s = DepartmentSerializer(data=request.data, context={'request': request})
        s.is_valid(raise_exception=True)
        department = s.save(clinic=request.clinic)
        return created(DepartmentSerializer(department).data, message='Department created successfully')

    qs = clinic_scoped(Department.objects.all(), request)
    if request.query_params.get('status'):
        qs = qs.filter(status=request.query_params['status'])
    items, meta = paginate(qs.order_by('name'), request.query_params, default_limit=50)
    return ok(DepartmentSerializer(items, many=True).data, pagination=meta)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes(CLINIC_STAFF)
def department_detail(request, pk: int):
    department = get_clinic_object(Department.objects.all(), request, pk)
    if request.method == 'GET':
        return ok(DepartmentSerializer(department).data)
    ensure_role(request.user, ADMIN_ONLY)
    if request.method == 'DELETE':
        department.delete()
        return ok(message='Department deleted successfully')
    s = DepartmentSerializer(department, data=request.data, partial=request.method == 'PATCH', context={'request': request})
    s.is_valid(raise_exception=True)
    s.save()
    return ok(s.data, message='Department updated successfully')


@api_view(['PATCH', 'POST'])
@permission_classes(CLINIC_STAFF)
def toggle_status(request, pk: int):
    ensure_role(request.user, ADMIN_ONLY)
    department = get_clinic_object(Department.objects.all(), request, pk)
    department.status = 'inactive' if department.status == 'active' else 'active'
    department.save(update_fields=['status', 'updated_at'])
    return ok(DepartmentSerializer(department).data, message=f'Department is now {department.status}')


@api_view(['GET'])
@permission_classes(CLINIC_STAFF)
def department_stats(request):
    qs = clinic_scoped(Department.objects.all(), request)
    totals = qs.aggregate(staff=Sum('staff_count'), budget=Sum('budget'))
    return ok({
        'total_departments': qs.count(),
        'active_departments': qs.filter(status='active').count(),
        'total_staff': totals['staff'] or 0,
        'total_budget': totals['budget'] or 0,
        'by_status': {row['status']: row['n'] for row in qs.values('status').annotate(n=Count('id'))},
    })
