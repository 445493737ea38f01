"""
Django admin registrations.

Minimal list displays so superusers can inspect tenant data at ``/admin/``.
"""
from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin

from .models import (
    AITestAnalysis,
    AITestComparison,
    AuditEvent,
    Appointment,
    Clinic,
    Department,
    Expense,
    InventoryItem,
    Invoice,
    LabVendor,
    Lead,
    MedicalRecord,
    Odontogram,
    Patient,
    Payment,
    Payroll,
    Prescription,
    Service,
    TestReport,
    Training,
    TrainingProgress,
    User,
    UserClinic,
    XrayAnalysis,
)


@admin.register(Clinic)
class ClinicAdmin(admin.ModelAdmin):
    list_display = ('name', 'code', 'email', 'currency', 'is_active', 'created_at')
    list_filter = ('is_active', 'currency')
    search_fields = ('name', 'code', 'email')


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    ordering = ('email',)
    list_display = ('email', 'first_name', 'last_name', 'role', 'is_active', 'is_staff')
    list_filter = ('role', 'is_active', 'is_staff')
    search_fields = ('email', 'first_name', 'last_name')
    fieldsets = (
        (None, {'fields': ('email', 'password')}),
        ('Profile', {'fields': ('first_name', 'last_name', 'role', 'phone', 'specialization', 'license_number', 'department')}),
        ('Permissions', {'fields': ('is_active', 'is_staff', 'is_superuser', 'groups', 'user_permissions')}),
    )
    add_fieldsets = (
        (None, {'classes': ('wide',), 'fields': ('email', 'role', 'password1', 'password2')}),
    )


@admin.register(UserClinic)
class UserClinicAdmin(admin.ModelAdmin):
    list_display = ('user', 'clinic', 'role', 'is_active', 'joined_at')
    list_filter = ('role', 'is_active', 'clinic')
    search_fields = ('user__email', 'clinic__name')


@admin.register(Patient)
class PatientAdmin(admin.ModelAdmin):
    list_display = ('first_name', 'last_name', 'gender', 'phone', 'clinic', 'created_at')
    list_filter = ('clinic', 'gender')
    search_fields = ('first_name', 'last_name', 'email', 'phone')


@admin.register(Appointment)
class AppointmentAdmin(admin.ModelAdmin):
    list_display = ('id', 'patient', 'doctor', 'appointment_date', 'status', 'type', 'is_walk_in')
    list_filter = ('status', 'type', 'clinic')
    date_hierarchy = 'appointment_date'


@admin.register(Invoice)
class InvoiceAdmin(admin.ModelAdmin):
    list_display = ('invoice_number', 'patient', 'total_amount', 'status', 'due_date', 'clinic')
    list_filter = ('status', 'clinic')
    search_fields = ('invoice_number',)


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = ('id', 'invoice', 'amount', 'method', 'status', 'payment_date')
    list_filter = ('status', 'method')


@admin.register(Odontogram)
class OdontogramAdmin(admin.ModelAdmin):
    list_display = ('id', 'patient', 'doctor', 'version', 'is_active', 'examination_date')
    list_filter = ('is_active', 'clinic')


@admin.register(TestReport)
class TestReportAdmin(admin.ModelAdmin):
    list_display = ('report_number', 'patient_name', 'test_name', 'status', 'test_date')
    list_filter = ('status', 'category')
    search_fields = ('report_number', 'patient_name', 'test_code')


@admin.register(LabVendor)
class LabVendorAdmin(admin.ModelAdmin):
    list_display = ('code', 'name', 'clinic', 'type', 'status', 'contract_end')
    list_filter = ('status', 'type', 'pricing')
    search_fields = ('code', 'name', 'contact_person')


@admin.register(AuditEvent)
class AuditEventAdmin(admin.ModelAdmin):
    list_display = ('action', 'user', 'clinic', 'object_type', 'object_id', 'created_at')
    list_filter = ('action',)
    readonly_fields = ('user', 'clinic', 'action', 'object_type', 'object_id', 'detail', 'created_at')


for model in (
    Department, Prescription, MedicalRecord, Payroll, Expense, InventoryItem, Lead, Training, TrainingProgress,
    AITestAnalysis, XrayAnalysis, AITestComparison, Service,
):
    admin.site.register(model)
