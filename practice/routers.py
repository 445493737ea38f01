"""
URL mappings for the clinic API.

Trailing slashes are omitted; every tenant-scoped endpoint expects the
``X-Clinic-Id`` header (or a clinic bound token from ``clinics/select``).
"""
from django.urls import include, path

from .auth_views import (
    change_password_view,
    login_view,
    logout_view,
    me_view,
    refresh_view,
    register_view,
)
from .views import (
    ai,
    appointments,
    billing,
    clinics,
    dashboards,
    departments,
    expenses,
    health,
    inventory,
    lab,
    lab_vendors,
    leads,
    odontograms,
    patients,
    payroll,
    prescriptions,
    records,
    services,
    training,
)

urlpatterns = [
    path('', include('django_prometheus.urls')),
    path('healthz', health.healthz),

    # Authentication
    path('api/auth/register', register_view),
    path('api/auth/login', login_view),
    path('api/auth/refresh', refresh_view),
    path('api/auth/logout', logout_view),
    path('api/auth/me', me_view),
    path('api/auth/change-password', change_password_view),

    # Clinics and membership
    path('api/clinics', clinics.create_clinic),
    path('api/clinics/mine', clinics.my_clinics),
    path('api/clinics/current', clinics.current_clinic),
    path('api/clinics/select', clinics.select_clinic),
    path('api/clinics/permissions', clinics.clinic_permissions),
    path('api/clinic', clinics.clinic_detail),
    path('api/clinic/stats', clinics.clinic_stats),
    path('api/clinic/users', clinics.clinic_users),
    path('api/clinic/users/<int:user_id>', clinics.clinic_user_detail),

    # Patients
    path('api/patients', patients.patients),
    path('api/patients/stats', patients.patient_stats),
    path('api/patients/<int:pk>', patients.patient_detail),
    path('api/patients/<int:pk>/history', patients.patient_history),
    path('api/patients/<int:patient_id>/prescriptions', prescriptions.patient_prescriptions),
    path('api/patients/<int:patient_id>/records', records.patient_records),
    path('api/patients/<int:patient_id>/invoices', billing.patient_invoices),
    path('api/patients/<int:patient_id>/test-reports', lab.patient_reports),
    path('api/patients/<int:patient_id>/odontogram', odontograms.active_for_patient),
    path('api/patients/<int:patient_id>/odontograms', odontograms.patient_history),
    path('api/patients/<int:patient_id>/treatment-summary', odontograms.patient_treatment_summary),

    # Appointments
    path('api/appointments', appointments.appointments),
    path('api/appointments/upcoming', appointments.upcoming_appointments),
    path('api/appointments/schedule', appointments.doctor_schedule),
    path('api/appointments/stats', appointments.appointment_stats),
    path('api/appointments/<int:pk>', appointments.appointment_detail),
    path('api/appointments/<int:pk>/cancel', appointments.cancel_appointment),
    path('api/appointments/<int:pk>/status', appointments.appointment_status),

    # Front desk
    path('api/reception/queue', appointments.today_queue),
    path('api/reception/walk-in', appointments.walk_in),
    path('api/reception/check-in/<int:pk>', appointments.check_in),
    path('api/reception/appointments/<int:pk>/status', appointments.appointment_status),

    # Prescriptions
    path('api/prescriptions', prescriptions.prescriptions),
    path('api/prescriptions/stats', prescriptions.prescription_stats),
    path('api/prescriptions/<int:pk>', prescriptions.prescription_detail),
    path('api/prescriptions/<int:pk>/status', prescriptions.prescription_status),
    path('api/prescriptions/<int:pk>/send-to-pharmacy', prescriptions.send_to_pharmacy),

    # Medical records
    path('api/medical-records', records.medical_records),
    path('api/medical-records/<int:pk>', records.medical_record_detail),

    # Invoices and payments
    path('api/invoices', billing.invoices),
    path('api/invoices/overdue', billing.overdue_invoices),
    path('api/invoices/stats', billing.invoice_stats),
    path('api/invoices/<int:pk>', billing.invoice_detail),
    path('api/invoices/<int:pk>/pay', billing.invoice_mark_paid),
    path('api/payments', billing.payments),
    path('api/payments/stats', billing.payment_stats),
    path('api/payments/<int:pk>', billing.payment_detail),
    path('api/payments/<int:pk>/status', billing.payment_status),
    path('api/payments/<int:pk>/refund', billing.refund_payment),

    # Payroll and expenses
    path('api/payroll', payroll.payrolls),
    path('api/payroll/generate', payroll.generate),
    path('api/payroll/stats', payroll.payroll_stats),
    path('api/payroll/<int:pk>', payroll.payroll_detail),
    path('api/payroll/<int:pk>/status', payroll.payroll_status),
    path('api/expenses', expenses.expenses),
    path('api/expenses/bulk', expenses.bulk_create),
    path('api/expenses/stats', expenses.expense_stats),
    path('api/expenses/<int:pk>', expenses.expense_detail),

    # Inventory
    path('api/inventory', inventory.inventory),
    path('api/inventory/low-stock', inventory.low_stock),
    path('api/inventory/expired', inventory.expired),
    path('api/inventory/expiring', inventory.expiring),
    path('api/inventory/stats', inventory.inventory_stats),
    path('api/inventory/<int:pk>', inventory.inventory_detail),
    path('api/inventory/<int:pk>/stock', inventory.adjust_stock),

    # Odontograms
    path('api/odontograms', odontograms.odontograms),
    path('api/odontograms/summary', odontograms.clinic_treatment_summary),
    path('api/odontograms/recalculate', odontograms.recalculate),
    path('api/odontograms/<int:pk>', odontograms.odontogram_detail),
    path('api/odontograms/<int:pk>/activate', odontograms.set_active),
    path('api/odontograms/<int:pk>/teeth/<int:tooth_number>', odontograms.update_tooth),

    # Lab test reports
    path('api/test-reports', lab.reports),
    path('api/test-reports/stats', lab.report_stats),
    path('api/test-reports/<int:pk>', lab.report_detail),
    path('api/test-reports/<int:pk>/status', lab.report_status),
    path('api/test-reports/<int:pk>/attachments', lab.add_attachment),
    path('api/test-reports/<int:pk>/attachments/<int:index>', lab.remove_attachment),

    # Lab vendors
    path('api/lab-vendors', lab_vendors.lab_vendors),
    path('api/lab-vendors/stats', lab_vendors.lab_vendor_stats),
    path('api/lab-vendors/contract-expiring', lab_vendors.contract_expiring),
    path('api/lab-vendors/<int:pk>', lab_vendors.lab_vendor_detail),
    path('api/lab-vendors/<int:pk>/status', lab_vendors.lab_vendor_status),
    path('api/lab-vendors/<int:pk>/test-count', lab_vendors.test_count),
    path('api/lab-vendors/<int:pk>/test-history', lab_vendors.test_history),

    # Leads and departments
    path('api/leads', leads.leads),
    path('api/leads/stats', leads.lead_stats),
    path('api/leads/<int:pk>', leads.lead_detail),
    path('api/leads/<int:pk>/status', leads.lead_status),
    path('api/leads/<int:pk>/convert', leads.convert),
    path('api/departments', departments.departments),
    path('api/departments/stats', departments.department_stats),
    path('api/departments/<int:pk>', departments.department_detail),
    path('api/departments/<int:pk>/toggle-status', departments.toggle_status),

    # Service catalog
    path('api/services', services.services),
    path('api/services/stats', services.service_stats),
    path('api/services/<int:pk>', services.service_detail),
    path('api/services/<int:pk>/toggle-status', services.toggle_status),

    # Training
    path('api/training', training.trainings),
    path('api/training/my-progress', training.my_progress),
    path('api/training/analytics', training.analytics),
    path('api/training/role/<str:role>', training.training_for_role),
    path('api/training/<int:pk>', training.training_detail),
    path('api/training/<int:pk>/start', training.start),
    path('api/training/<int:pk>/progress', training.module_progress),
    path('api/training/<int:pk>/certificate', training.certificate),

    # Dashboards
    path('api/dashboard/admin', dashboards.admin_stats),
    path('api/dashboard/revenue', dashboards.revenue_analytics),
    path('api/dashboard/operational', dashboards.operational_metrics),
    path('api/dashboard/doctor', dashboards.doctor_dashboard),
    path('api/dashboard/receptionist', dashboards.receptionist_dashboard),

    # AI analysis
    path('api/ai/test-analysis', ai.analyze_report),
    path('api/ai/test-analysis/history', ai.report_analyses),
    path('api/ai/test-analysis/<int:pk>', ai.report_analysis_detail),
    path('api/ai/xray', ai.analyze_xray),
    path('api/ai/xray/history', ai.xray_analyses),
    path('api/ai/xray/stats', ai.xray_stats),
    path('api/ai/xray/<int:pk>', ai.xray_analysis_detail),
    path('api/ai/test-comparison/compare', ai.compare_reports),
    path('api/ai/test-comparison', ai.comparison_history),
    path('api/ai/test-comparison/stats', ai.comparison_stats),
    path('api/ai/test-comparison/<int:pk>', ai.comparison_detail),
]
