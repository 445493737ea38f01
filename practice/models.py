"""
Database models for the clinic management backend.

Every tenant-owned record carries a ``clinic`` foreign key; queries are
scoped through :mod:`practice.services.tenancy`.  Structured sub-documents
(service lines, medications, tooth conditions, training modules) are kept in
JSON columns and validated by the serializers in
:mod:`practice.serializers`.
"""
from __future__ import annotations

import random
import uuid
from datetime import date
from decimal import Decimal

from django.contrib.auth.models import AbstractUser, BaseUserManager
from django.core.validators import MaxValueValidator, MinValueValidator, RegexValidator
from django.db import models
from django.db.models import Q
from django.utils import timezone


ZERO = Decimal('0')


def default_working_hours() -> dict:
    weekday = {'start': '09:00', 'end': '17:00', 'isWorking': True}
    return {
        'monday': dict(weekday),
        'tuesday': dict(weekday),
        'wednesday': dict(weekday),
        'thursday': dict(weekday),
        'friday': dict(weekday),
        'saturday': {'start': '09:00', 'end': '13:00', 'isWorking': False},
        'sunday': {'start': '00:00', 'end': '00:00', 'isWorking': False},
    }


class Clinic(models.Model):
    """A tenant.  Identified by a UUID that clients send in ``X-Clinic-Id``."""
    CURRENCY_CHOICES = [(c, c) for c in (
        'USD', 'EUR', 'GBP', 'CAD', 'AUD', 'JPY', 'CNY', 'INR', 'AED', 'SAR', 'NGN', 'VND',
    )]
    LANGUAGE_CHOICES = [(c, c) for c in ('en', 'es', 'fr', 'de', 'it', 'pt', 'ar', 'hi', 'zh', 'ja')]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=200)
    code = models.CharField(
        max_length=20,
        unique=True,
        blank=True,
        validators=[RegexValidator(r'^[A-Z0-9]{3,20}$', 'Clinic code must contain only uppercase letters and numbers')],
    )
    description = models.TextField(blank=True, max_length=1000)
    address = models.JSONField(default=dict, blank=True)
    phone = models.CharField(max_length=20, blank=True)
    email = models.EmailField(blank=True, db_index=True)
    website = models.CharField(max_length=200, blank=True)
    timezone = models.CharField(max_length=64, default='America/New_York')
    currency = models.CharField(max_length=3, choices=CURRENCY_CHOICES, default='USD')
    language = models.CharField(max_length=2, choices=LANGUAGE_CHOICES, default='en')
    working_hours = models.JSONField(default=default_working_hours, blank=True)
    is_active = models.BooleanField(default=True, db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['name']

    def __str__(self) -> str:
        return f"{self.name} ({self.code})"

    @property
    def full_address(self) -> str:
        a = self.address or {}
        parts = [a.get('street'), a.get('city'), ' '.join(p for p in (a.get('state'), a.get('zipCode')) if p), a.get('country')]
        return ', '.join(p for p in parts if p)

    @staticmethod
    def generate_code(name: str) -> str:
        initials = ''.join(w[0] for w in (name or '').split() if w[0].isalnum()).upper()
        return f"{initials or 'CLN'}{random.randint(0, 999):03d}"

    def save(self, *args, **kwargs):
        if not self.code:
            code = self.generate_code(self.name)
            while Clinic.objects.filter(code=code).exists():
                code = self.generate_code(self.name)
            self.code = code
        else:
            self.code = self.code.strip().upper()
        super().save(*args, **kwargs)


class UserManager(BaseUserManager):
    use_in_migrations = True

    def _create_user(self, email, password, **extra_fields):
        if not email:
            raise ValueError('Email is required')
        email = self.normalize_email(email).lower()
        user = self.model(email=email, **extra_fields)
        user.set_password(password)
        user.save(using=self._db)
        return user

    def create_user(self, email, password=None, **extra_fields):
        extra_fields.setdefault('is_staff', False)
        extra_fields.setdefault('is_superuser', False)
        return self._create_user(email, password, **extra_fields)

    def create_superuser(self, email, password=None, **extra_fields):
        extra_fields.setdefault('is_staff', True)
        extra_fields.setdefault('is_superuser', True)
        extra_fields.setdefault('role', 'admin')
        return self._create_user(email, password, **extra_fields)


class User(AbstractUser):
    """Staff account.  Logs in with e-mail; ``role`` is the global role."""
    ROLE_ADMIN = 'admin'
    ROLE_DOCTOR = 'doctor'
    ROLE_NURSE = 'nurse'
    ROLE_RECEPTIONIST = 'receptionist'
    ROLE_ACCOUNTANT = 'accountant'
    ROLE_STAFF = 'staff'
    ROLE_CHOICES = [
        (ROLE_ADMIN, 'Administrator'),
        (ROLE_DOCTOR, 'Doctor'),
        (ROLE_NURSE, 'Nurse'),
        (ROLE_RECEPTIONIST, 'Receptionist'),
        (ROLE_ACCOUNTANT, 'Accountant'),
        (ROLE_STAFF, 'Staff'),
    ]

    username = None
    email = models.EmailField(unique=True)
    role = models.CharField(max_length=20, choices=ROLE_CHOICES, default=ROLE_STAFF, db_index=True)
    phone = models.CharField(max_length=20, blank=True)
    base_currency = models.CharField(max_length=3, default='USD')
    address = models.CharField(max_length=255, blank=True)
    bio = models.TextField(blank=True)
    date_of_birth = models.DateField(null=True, blank=True)
    specialization = models.CharField(max_length=100, blank=True)
    license_number = models.CharField(max_length=50, blank=True)
    department = models.CharField(max_length=100, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    USERNAME_FIELD = 'email'
    REQUIRED_FIELDS: list[str] = []

    objects = UserManager()

    def __str__(self) -> str:
        return f"{self.email} ({self.role})"

    @property
    def full_name(self) -> str:
        return self.get_full_name() or self.email


class UserClinic(models.Model):
    """Grants a user a role and a permission set inside one clinic."""
    ROLE_CHOICES = User.ROLE_CHOICES
    BASIC_PERMISSIONS = [
        'read_patients', 'read_appointments', 'read_medical_records',
        'read_prescriptions', 'read_invoices', 'read_payments', 'manage_services',
    ]

    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='clinic_memberships')
    clinic = models.ForeignKey(Clinic, on_delete=models.CASCADE, related_name='memberships')
    role = models.CharField(max_length=20, choices=ROLE_CHOICES, default=User.ROLE_STAFF)
    permissions = models.JSONField(default=list, blank=True)
    is_active = models.BooleanField(default=True)
    joined_at = models.DateTimeField(auto_now_add=True)
    last_login = models.DateTimeField(null=True, blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=['user', 'clinic'], name='uniq_user_clinic'),
        ]
        indexes = [models.Index(fields=['user', 'is_active'])]

    def __str__(self) -> str:
        return f"{self.user_id}@{self.clinic_id} as {self.role}"

    def has_permission(self, permission: str) -> bool:
        if self.role == User.ROLE_ADMIN:
            return True
        return permission in (self.permissions or [])


class Department(models.Model):
    STATUS_CHOICES = [('active', 'Active'), ('inactive', 'Inactive')]

    clinic = models.ForeignKey(Clinic, on_delete=models.CASCADE, related_name='departments')
    code = models.CharField(max_length=10)
    name = models.CharField(max_length=100)
    description = models.TextField(blank=True, max_length=500)
    head = models.CharField(max_length=100, blank=True)
    location = models.CharField(max_length=100, blank=True)
    phone = models.CharField(max_length=20, blank=True)
    email = models.EmailField(blank=True)
    staff_count = models.PositiveIntegerField(default=0)
    budget = models.DecimalField(max_digits=14, decimal_places=2, default=ZERO)
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default='active', db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=['clinic', 'code'], name='uniq_department_code'),
        ]

    def __str__(self) -> str:
        return f"{self.code} {self.name}"

    def save(self, *args, **kwargs):
        self.code = (self.code or '').strip().upper()
        super().save(*args, **kwargs)


class Service(models.Model):
    """A bookable treatment or procedure in the clinic's price list."""
    clinic = models.ForeignKey(Clinic, on_delete=models.CASCADE, related_name='services')
    name = models.CharField(max_length=200)
    category = models.CharField(max_length=100)
    description = models.TextField(max_length=1000)
    duration = models.PositiveIntegerField(validators=[MinValueValidator(1), MaxValueValidator(1440)])
    price = models.DecimalField(max_digits=12, decimal_places=2, validators=[MinValueValidator(ZERO)])
    department = models.CharField(max_length=100)
    is_active = models.BooleanField(default=True, db_index=True)
    prerequisites = models.CharField(max_length=500, blank=True)
    follow_up_required = models.BooleanField(default=False)
    max_bookings_per_day = models.PositiveIntegerField(validators=[MinValueValidator(1), MaxValueValidator(1000)])
    special_instructions = models.TextField(blank=True, max_length=1000)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=['clinic', 'category']),
            models.Index(fields=['clinic', 'department']),
        ]

    def __str__(self) -> str:
        return self.name


class Patient(models.Model):
    GENDER_CHOICES = [('male', 'Male'), ('female', 'Female'), ('other', 'Other')]

    clinic = models.ForeignKey(Clinic, on_delete=models.CASCADE, related_name='patients')
    first_name = models.CharField(max_length=50)
    last_name = models.CharField(max_length=50)
    date_of_birth = models.DateField()
    gender = models.CharField(max_length=10, choices=GENDER_CHOICES)
    phone = models.CharField(max_length=20, db_index=True)
    email = models.EmailField(blank=True)
    address = models.CharField(max_length=255, blank=True)
    emergency_contact = models.JSONField(default=dict, blank=True)
    insurance_info = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [models.Index(fields=['clinic', 'last_name', 'first_name'])]

    def __str__(self) -> str:
        return self.full_name

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def age(self) -> int | None:
        if not self.date_of_birth:
            return None
        today = date.today()
        dob = self.date_of_birth
        return today.year - dob.year - ((today.month, today.day) < (dob.month, dob.day))


class Appointment(models.Model):
    STATUS_SCHEDULED = 'scheduled'
    STATUS_CONFIRMED = 'confirmed'
    STATUS_IN_PROGRESS = 'in-progress'
    STATUS_COMPLETED = 'completed'
    STATUS_CANCELLED = 'cancelled'
    STATUS_NO_SHOW = 'no-show'
    STATUS_CHOICES = [
        (STATUS_SCHEDULED, 'Scheduled'),
        (STATUS_CONFIRMED, 'Confirmed'),
        (STATUS_IN_PROGRESS, 'In progress'),
        (STATUS_COMPLETED, 'Completed'),
        (STATUS_CANCELLED, 'Cancelled'),
        (STATUS_NO_SHOW, 'No show'),
    ]
    TYPE_CHOICES = [(t, t.replace('-', ' ').title()) for t in (
        'consultation', 'follow-up', 'check-up', 'vaccination', 'procedure', 'emergency', 'screening', 'therapy', 'other',
    )]

    clinic = models.ForeignKey(Clinic, on_delete=models.CASCADE, related_name='appointments')
    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='appointments')
    doctor = models.ForeignKey(User, on_delete=models.PROTECT, related_name='doctor_appointments')
    nurse = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL, related_name='nurse_appointments')
    appointment_date = models.DateTimeField(db_index=True)
    duration = models.PositiveIntegerField(default=30, validators=[MinValueValidator(15), MaxValueValidator(480)])
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_SCHEDULED, db_index=True)
    type = models.CharField(max_length=20, choices=TYPE_CHOICES, default='consultation')
    reason = models.CharField(max_length=500, blank=True)
    notes = models.TextField(blank=True)
    is_walk_in = models.BooleanField(default=False)
    checked_in_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=['clinic', 'appointment_date']),
            models.Index(fields=['doctor', 'appointment_date']),
        ]

    def __str__(self) -> str:
        return f"Appointment #{self.pk} {self.appointment_date:%F %H:%M} ({self.status})"


class Prescription(models.Model):
    STATUS_CHOICES = [(s, s.title()) for s in ('active', 'completed', 'pending', 'cancelled', 'expired')]

    clinic = models.ForeignKey(Clinic, on_delete=models.CASCADE, related_name='prescriptions')
    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='prescriptions')
    doctor = models.ForeignKey(User, on_delete=models.PROTECT, related_name='prescriptions')
    appointment = models.ForeignKey(Appointment, null=True, blank=True, on_delete=models.SET_NULL, related_name='prescriptions')
    prescription_id = models.CharField(max_length=20, blank=True)
    diagnosis = models.CharField(max_length=500)
    medications = models.JSONField(default=list)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='active', db_index=True)
    notes = models.TextField(blank=True)
    follow_up_date = models.DateField(null=True, blank=True)
    pharmacy_dispensed = models.BooleanField(default=False)
    dispensed_date = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=['clinic', 'prescription_id'], name='uniq_prescription_number'),
        ]

    def __str__(self) -> str:
        return self.prescription_id or f"Prescription #{self.pk}"


class MedicalRecord(models.Model):
    clinic = models.ForeignKey(Clinic, on_delete=models.CASCADE, related_name='medical_records')
    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='medical_records')
    doctor = models.ForeignKey(User, on_delete=models.PROTECT, related_name='medical_records')
    visit_date = models.DateTimeField(default=timezone.now)
    chief_complaint = models.CharField(max_length=500)
    diagnosis = models.CharField(max_length=500)
    treatment = models.TextField()
    vital_signs = models.JSONField(default=dict, blank=True)
    medications = models.JSONField(default=list, blank=True)
    allergies = models.JSONField(default=list, blank=True)
    notes = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        return f"Record #{self.pk} for patient {self.patient_id}"


class Invoice(models.Model):
    STATUS_DRAFT = 'draft'
    STATUS_SENT = 'sent'
    STATUS_PENDING = 'pending'
    STATUS_PAID = 'paid'
    STATUS_OVERDUE = 'overdue'
    STATUS_CANCELLED = 'cancelled'
    STATUS_REFUNDED = 'refunded'
    STATUS_CHOICES = [(s, s.title()) for s in (
        STATUS_DRAFT, STATUS_SENT, STATUS_PENDING, STATUS_PAID, STATUS_OVERDUE, STATUS_CANCELLED, STATUS_REFUNDED,
    )]
    LINE_TYPES = ('service', 'test', 'medication', 'procedure')

    clinic = models.ForeignKey(Clinic, on_delete=models.CASCADE, related_name='invoices')
    patient = models.ForeignKey(Patient, on_delete=models.PROTECT, related_name='invoices')
    appointment = models.ForeignKey(Appointment, null=True, blank=True, on_delete=models.SET_NULL, related_name='invoices')
    invoice_number = models.CharField(max_length=30, blank=True)
    services = models.JSONField(default=list)
    subtotal = models.DecimalField(max_digits=12, decimal_places=2, default=ZERO)
    tax_amount = models.DecimalField(max_digits=12, decimal_places=2, default=ZERO)
    discount = models.DecimalField(max_digits=12, decimal_places=2, default=ZERO)
    total_amount = models.DecimalField(max_digits=12, decimal_places=2, default=ZERO)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_PENDING, db_index=True)
    issue_date = models.DateField(default=date.today)
    due_date = models.DateField()
    payment_method = models.CharField(max_length=30, blank=True)
    notes = models.TextField(blank=True)
    paid_at = models.DateTimeField(null=True, blank=True, db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=['clinic', 'invoice_number'], name='uniq_invoice_number'),
        ]

    def __str__(self) -> str:
        return self.invoice_number or f"Invoice #{self.pk}"

    def calculate_totals(self) -> None:
        subtotal = ZERO
        for line in self.services or []:
            total = Decimal(str(line.get('total', 0) or 0))
            subtotal += total
        self.subtotal = subtotal
        self.total_amount = subtotal + Decimal(str(self.tax_amount or 0)) - Decimal(str(self.discount or 0))

    @property
    def is_overdue(self) -> bool:
        return (
            self.status not in (self.STATUS_PAID, self.STATUS_CANCELLED, self.STATUS_REFUNDED)
            and self.due_date is not None
            and self.due_date < date.today()
        )


class Payment(models.Model):
    METHOD_CHOICES = [(m, m.replace('_', ' ').title()) for m in ('credit_card', 'cash', 'bank_transfer', 'upi', 'insurance')]
    STATUS_COMPLETED = 'completed'
    STATUS_PENDING = 'pending'
    STATUS_PROCESSING = 'processing'
    STATUS_FAILED = 'failed'
    STATUS_REFUNDED = 'refunded'
    STATUS_CHOICES = [(s, s.title()) for s in (
        STATUS_COMPLETED, STATUS_PENDING, STATUS_PROCESSING, STATUS_FAILED, STATUS_REFUNDED,
    )]

    clinic = models.ForeignKey(Clinic, on_delete=models.CASCADE, related_name='payments')
    invoice = models.ForeignKey(Invoice, on_delete=models.PROTECT, related_name='payments')
    patient = models.ForeignKey(Patient, on_delete=models.PROTECT, related_name='payments')
    amount = models.DecimalField(max_digits=12, decimal_places=2, validators=[MinValueValidator(ZERO)])
    method = models.CharField(max_length=20, choices=METHOD_CHOICES)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_PENDING, db_index=True)
    transaction_id = models.CharField(max_length=100, blank=True)
    card_last4 = models.CharField(max_length=4, blank=True)
    insurance_provider = models.CharField(max_length=100, blank=True)
    processing_fee = models.DecimalField(max_digits=12, decimal_places=2, default=ZERO)
    net_amount = models.DecimalField(max_digits=12, decimal_places=2, default=ZERO)
    payment_date = models.DateTimeField(default=timezone.now, db_index=True)
    failure_reason = models.CharField(max_length=500, blank=True)
    description = models.CharField(max_length=500, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        return f"PAY-{self.pk:06d} {self.amount} ({self.status})" if self.pk else 'PAY-new'

    def save(self, *args, **kwargs):
        self.net_amount = Decimal(str(self.amount or 0)) - Decimal(str(self.processing_fee or 0))
        super().save(*args, **kwargs)


class Payroll(models.Model):
    MONTHS = ['January', 'February', 'March', 'April', 'May', 'June',
              'July', 'August', 'September', 'October', 'November', 'December']
    MONTH_CHOICES = [(m, m) for m in MONTHS]
    STATUS_CHOICES = [(s, s.title()) for s in ('draft', 'pending', 'processed', 'paid')]

    clinic = models.ForeignKey(Clinic, on_delete=models.CASCADE, related_name='payrolls')
    employee = models.ForeignKey(User, on_delete=models.CASCADE, related_name='payrolls')
    month = models.CharField(max_length=10, choices=MONTH_CHOICES)
    year = models.PositiveIntegerField(validators=[MinValueValidator(2020), MaxValueValidator(2100)])
    base_salary = models.DecimalField(max_digits=12, decimal_places=2, validators=[MinValueValidator(ZERO)])
    overtime = models.DecimalField(max_digits=12, decimal_places=2, default=ZERO)
    bonus = models.DecimalField(max_digits=12, decimal_places=2, default=ZERO)
    allowances = models.DecimalField(max_digits=12, decimal_places=2, default=ZERO)
    deductions = models.DecimalField(max_digits=12, decimal_places=2, default=ZERO)
    tax = models.DecimalField(max_digits=12, decimal_places=2, default=ZERO)
    net_salary = models.DecimalField(max_digits=12, decimal_places=2, default=ZERO)
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default='draft', db_index=True)
    pay_date = models.DateField(null=True, blank=True)
    working_days = models.PositiveIntegerField(default=0, validators=[MaxValueValidator(31)])
    total_days = models.PositiveIntegerField(default=0, validators=[MaxValueValidator(31)])
    leaves = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=['clinic', 'employee', 'month', 'year'], name='uniq_payroll_period'),
        ]

    def __str__(self) -> str:
        return f"{self.employee_id} {self.month} {self.year}"

    @property
    def gross_salary(self) -> Decimal:
        return sum((Decimal(str(v or 0)) for v in (self.base_salary, self.overtime, self.bonus, self.allowances)), ZERO)

    @property
    def attendance_percentage(self) -> float:
        if not self.total_days:
            return 0.0
        return round(self.working_days / self.total_days * 100, 2)

    def save(self, *args, **kwargs):
        self.net_salary = self.gross_salary - Decimal(str(self.deductions or 0)) - Decimal(str(self.tax or 0))
        super().save(*args, **kwargs)


class Expense(models.Model):
    CATEGORY_CHOICES = [(c, c.title()) for c in (
        'supplies', 'equipment', 'utilities', 'maintenance', 'staff', 'marketing', 'insurance', 'rent', 'other',
    )]
    METHOD_CHOICES = [(m, m.replace('_', ' ').title()) for m in ('cash', 'card', 'bank_transfer', 'check')]
    STATUS_CHOICES = [(s, s.title()) for s in ('pending', 'paid', 'cancelled')]

    clinic = models.ForeignKey(Clinic, on_delete=models.CASCADE, related_name='expenses')
    title = models.CharField(max_length=200)
    description = models.TextField(blank=True, max_length=1000)
    amount = models.DecimalField(max_digits=12, decimal_places=2, validators=[MinValueValidator(ZERO)])
    category = models.CharField(max_length=20, choices=CATEGORY_CHOICES)
    vendor = models.CharField(max_length=100, blank=True)
    payment_method = models.CharField(max_length=20, choices=METHOD_CHOICES)
    date = models.DateField(default=date.today, db_index=True)
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default='pending', db_index=True)
    receipt_url = models.CharField(max_length=500, blank=True)
    notes = models.TextField(blank=True)
    created_by = models.ForeignKey(User, null=True, on_delete=models.SET_NULL, related_name='expenses_created')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        return f"{self.title} {self.amount}"


class InventoryItem(models.Model):
    CATEGORY_CHOICES = [(c, c.replace('-', ' ').title()) for c in (
        'medications', 'medical-devices', 'consumables', 'equipment', 'laboratory', 'office-supplies', 'other',
    )]

    clinic = models.ForeignKey(Clinic, on_delete=models.CASCADE, related_name='inventory_items')
    name = models.CharField(max_length=200)
    category = models.CharField(max_length=20, choices=CATEGORY_CHOICES)
    sku = models.CharField(max_length=50)
    current_stock = models.PositiveIntegerField(default=0)
    minimum_stock = models.PositiveIntegerField(default=0)
    unit_price = models.DecimalField(max_digits=12, decimal_places=2, validators=[MinValueValidator(ZERO)])
    supplier = models.CharField(max_length=200, blank=True)
    expiry_date = models.DateField(null=True, blank=True, db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=['clinic', 'sku'], name='uniq_inventory_sku'),
        ]

    def __str__(self) -> str:
        return f"{self.sku} {self.name}"

    def save(self, *args, **kwargs):
        self.sku = (self.sku or '').strip().upper()
        super().save(*args, **kwargs)

    @property
    def total_value(self) -> Decimal:
        return Decimal(self.current_stock) * Decimal(str(self.unit_price or 0))

    @property
    def is_low_stock(self) -> bool:
        return self.current_stock <= self.minimum_stock


class Odontogram(models.Model):
    """A versioned dental chart.  At most one chart per patient is active."""
    NUMBERING_CHOICES = [('universal', 'Universal'), ('palmer', 'Palmer'), ('fdi', 'FDI')]
    PATIENT_TYPE_CHOICES = [('adult', 'Adult'), ('child', 'Child')]

    clinic = models.ForeignKey(Clinic, on_delete=models.CASCADE, related_name='odontograms')
    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='odontograms')
    doctor = models.ForeignKey(User, on_delete=models.PROTECT, related_name='odontograms')
    examination_date = models.DateTimeField(default=timezone.now)
    numbering_system = models.CharField(max_length=10, choices=NUMBERING_CHOICES, default='universal')
    patient_type = models.CharField(max_length=10, choices=PATIENT_TYPE_CHOICES, default='adult')
    teeth_conditions = models.JSONField(default=list, blank=True)
    general_notes = models.TextField(blank=True, max_length=5000)
    periodontal_assessment = models.JSONField(default=dict, blank=True)
    total_planned_treatments = models.PositiveIntegerField(default=0)
    completed_treatments = models.PositiveIntegerField(default=0)
    in_progress_treatments = models.PositiveIntegerField(default=0)
    estimated_total_cost = models.DecimalField(max_digits=12, decimal_places=2, default=ZERO)
    version = models.PositiveIntegerField(default=1, validators=[MinValueValidator(1)])
    is_active = models.BooleanField(default=True, db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-version']
        constraints = [
            models.UniqueConstraint(
                fields=['clinic', 'patient'],
                condition=Q(is_active=True),
                name='uniq_active_odontogram_per_patient',
            ),
            models.UniqueConstraint(fields=['clinic', 'patient', 'version'], name='uniq_odontogram_version'),
        ]
        indexes = [
            models.Index(fields=['clinic', 'examination_date']),
            models.Index(fields=['doctor', 'examination_date']),
        ]

    def __str__(self) -> str:
        return f"Odontogram v{self.version} patient={self.patient_id}{' (active)' if self.is_active else ''}"

    def calculate_treatment_summary(self) -> None:
        planned = completed = in_progress = 0
        cost = ZERO
        for tooth in self.teeth_conditions or []:
            plan = tooth.get('treatment_plan')
            if not plan:
                continue
            planned += 1
            if plan.get('status') == 'completed':
                completed += 1
            elif plan.get('status') == 'in_progress':
                in_progress += 1
            if plan.get('estimated_cost'):
                cost += Decimal(str(plan['estimated_cost']))
        self.total_planned_treatments = planned
        self.completed_treatments = completed
        self.in_progress_treatments = in_progress
        self.estimated_total_cost = cost

    @property
    def treatment_summary(self) -> dict:
        return {
            'total_planned_treatments': self.total_planned_treatments,
            'completed_treatments': self.completed_treatments,
            'in_progress_treatments': self.in_progress_treatments,
            'estimated_total_cost': self.estimated_total_cost,
        }

    @property
    def treatment_progress(self) -> int:
        if not self.total_planned_treatments:
            return 0
        return round(self.completed_treatments / self.total_planned_treatments * 100)

    @property
    def pending_treatments(self) -> int:
        return self.total_planned_treatments - self.completed_treatments - self.in_progress_treatments

    def find_tooth(self, tooth_number: int) -> dict | None:
        for tooth in self.teeth_conditions or []:
            if tooth.get('tooth_number') == tooth_number:
                return tooth
        return None


class TestReport(models.Model):
    STATUS_PENDING = 'pending'
    STATUS_RECORDED = 'recorded'
    STATUS_VERIFIED = 'verified'
    STATUS_DELIVERED = 'delivered'
    STATUS_CHOICES = [(s, s.title()) for s in (STATUS_PENDING, STATUS_RECORDED, STATUS_VERIFIED, STATUS_DELIVERED)]
    TRANSITIONS = {
        STATUS_PENDING: [STATUS_RECORDED],
        STATUS_RECORDED: [STATUS_VERIFIED],
        STATUS_VERIFIED: [STATUS_DELIVERED],
        STATUS_DELIVERED: [],
    }

    clinic = models.ForeignKey(Clinic, on_delete=models.CASCADE, related_name='test_reports')
    report_number = models.CharField(max_length=30, blank=True)
    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='test_reports')
    patient_name = models.CharField(max_length=100)
    patient_age = models.PositiveIntegerField(validators=[MaxValueValidator(150)])
    patient_gender = models.CharField(max_length=10, choices=Patient.GENDER_CHOICES)
    test_name = models.CharField(max_length=200)
    test_code = models.CharField(max_length=20)
    category = models.CharField(max_length=100)
    external_vendor = models.CharField(max_length=200)
    test_date = models.DateTimeField()
    recorded_date = models.DateTimeField(default=timezone.now)
    recorded_by = models.CharField(max_length=100)
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default=STATUS_PENDING, db_index=True)
    results = models.JSONField(null=True, blank=True)
    normal_range = models.CharField(max_length=500, blank=True)
    units = models.CharField(max_length=50, blank=True)
    notes = models.TextField(blank=True, max_length=2000)
    attachments = models.JSONField(default=list, blank=True)
    interpretation = models.TextField(blank=True, max_length=2000)
    verified_by = models.CharField(max_length=100, blank=True)
    verified_date = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=['clinic', 'report_number'], name='uniq_report_number'),
        ]

    def __str__(self) -> str:
        return self.report_number or f"Report #{self.pk}"

    def save(self, *args, **kwargs):
        self.test_code = (self.test_code or '').upper()
        super().save(*args, **kwargs)

    def can_transition(self, new_status: str) -> bool:
        return new_status in self.TRANSITIONS.get(self.status, [])


class LabVendor(models.Model):
    TYPE_CHOICES = [(t, t.replace('_', ' ').title()) for t in (
        'diagnostic_lab', 'pathology_lab', 'imaging_center', 'reference_lab', 'specialty_lab',
    )]
    STATUS_CHOICES = [(s, s.title()) for s in ('active', 'inactive', 'pending', 'suspended')]
    PRICING_CHOICES = [(p, p.title()) for p in ('budget', 'moderate', 'premium')]

    clinic = models.ForeignKey(Clinic, on_delete=models.CASCADE, related_name='lab_vendors')
    name = models.CharField(max_length=200)
    code = models.CharField(
        max_length=10,
        validators=[RegexValidator(r'^[A-Z0-9]+$', 'Code must contain only uppercase letters and numbers.')],
    )
    type = models.CharField(max_length=20, choices=TYPE_CHOICES)
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default='pending', db_index=True)
    contact_person = models.CharField(max_length=100)
    email = models.EmailField()
    phone = models.CharField(max_length=20)
    address = models.CharField(max_length=300)
    city = models.CharField(max_length=100)
    state = models.CharField(max_length=100)
    zip_code = models.CharField(max_length=20)
    website = models.URLField(max_length=200, blank=True)
    license = models.CharField(max_length=50)
    accreditation = models.JSONField(default=list, blank=True)
    specialties = models.JSONField(default=list, blank=True)
    rating = models.DecimalField(
        max_digits=2, decimal_places=1, default=ZERO,
        validators=[MinValueValidator(ZERO), MaxValueValidator(Decimal('5'))],
    )
    total_tests = models.PositiveIntegerField(default=0)
    average_turnaround = models.CharField(max_length=50)
    pricing = models.CharField(max_length=10, choices=PRICING_CHOICES)
    contract_start = models.DateField()
    contract_end = models.DateField()
    last_test_date = models.DateTimeField(null=True, blank=True)
    notes = models.TextField(blank=True, max_length=1000)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=['clinic', 'code'], name='uniq_lab_vendor_code'),
        ]
        indexes = [models.Index(fields=['clinic', 'contract_end'])]

    def __str__(self) -> str:
        return f"{self.code} {self.name}"

    def save(self, *args, **kwargs):
        self.code = (self.code or '').strip().upper()
        super().save(*args, **kwargs)


class Lead(models.Model):
    SOURCE_CHOICES = [(s, s.replace('-', ' ').title()) for s in ('website', 'referral', 'social', 'advertisement', 'walk-in')]
    STATUS_CHOICES = [(s, s.title()) for s in ('new', 'contacted', 'converted', 'lost')]

    clinic = models.ForeignKey(Clinic, on_delete=models.CASCADE, related_name='leads')
    first_name = models.CharField(max_length=50)
    last_name = models.CharField(max_length=50)
    email = models.EmailField(blank=True)
    phone = models.CharField(max_length=20)
    source = models.CharField(max_length=20, choices=SOURCE_CHOICES)
    service_interest = models.CharField(max_length=200)
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default='new', db_index=True)
    assigned_to = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL, related_name='leads')
    notes = models.TextField(blank=True, max_length=2000)
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        return f"{self.first_name} {self.last_name} ({self.status})"


class Training(models.Model):
    """Role-specific onboarding course.  ``modules`` is an ordered list."""
    ROLE_CHOICES = [c for c in User.ROLE_CHOICES if c[0] != User.ROLE_STAFF]

    role = models.CharField(max_length=20, choices=ROLE_CHOICES, unique=True)
    name = models.CharField(max_length=200)
    description = models.TextField()
    overview = models.TextField(blank=True)
    modules = models.JSONField(default=list)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        return f"{self.name} ({self.role})"


class TrainingProgress(models.Model):
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='training_progress')
    training = models.ForeignKey(Training, on_delete=models.CASCADE, related_name='progress')
    role = models.CharField(max_length=20, choices=Training.ROLE_CHOICES)
    overall_progress = models.PositiveIntegerField(default=0, validators=[MaxValueValidator(100)])
    modules_progress = models.JSONField(default=list)
    started_at = models.DateTimeField(default=timezone.now)
    last_accessed = models.DateTimeField(default=timezone.now)
    completed_at = models.DateTimeField(null=True, blank=True)
    is_completed = models.BooleanField(default=False)
    certificate_issued = models.BooleanField(default=False)
    certificate_issued_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=['user', 'training'], name='uniq_training_progress'),
        ]

    def __str__(self) -> str:
        return f"{self.user_id} {self.training_id} {self.overall_progress}%"

    def save(self, *args, **kwargs):
        self.last_accessed = timezone.now()
        modules = self.modules_progress or []
        if modules:
            done = sum(1 for m in modules if m.get('completed'))
            self.overall_progress = round(done / len(modules) * 100)
            if done == len(modules) and not self.is_completed:
                self.is_completed = True
                self.completed_at = timezone.now()
        super().save(*args, **kwargs)


def _analysis_upload(instance, filename: str) -> str:
    import os
    ext = os.path.splitext(filename)[1]
    return f"analyses/{timezone.now():%Y/%m}/{uuid.uuid4().hex}{ext}"


class AITestAnalysis(models.Model):
    STATUS_CHOICES = [(s, s.title()) for s in ('pending', 'completed', 'failed')]

    clinic = models.ForeignKey(Clinic, on_delete=models.CASCADE, related_name='ai_test_analyses')
    patient = models.ForeignKey(Patient, null=True, blank=True, on_delete=models.SET_NULL, related_name='ai_test_analyses')
    requested_by = models.ForeignKey(User, null=True, on_delete=models.SET_NULL, related_name='ai_test_analyses')
    file = models.FileField(upload_to=_analysis_upload, max_length=512)
    file_name = models.CharField(max_length=255)
    content_type = models.CharField(max_length=128, blank=True)
    custom_prompt = models.TextField(blank=True)
    analysis_result = models.TextField(blank=True)
    findings = models.JSONField(default=dict, blank=True)
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default='pending', db_index=True)
    error_message = models.CharField(max_length=500, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        return f"AI analysis #{self.pk} ({self.status})"


class XrayAnalysis(models.Model):
    STATUS_CHOICES = AITestAnalysis.STATUS_CHOICES

    clinic = models.ForeignKey(Clinic, on_delete=models.CASCADE, related_name='xray_analyses')
    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='xray_analyses')
    doctor = models.ForeignKey(User, null=True, on_delete=models.SET_NULL, related_name='xray_analyses')
    image = models.FileField(upload_to=_analysis_upload, max_length=512)
    image_filename = models.CharField(max_length=255)
    custom_prompt = models.TextField(blank=True)
    analysis_result = models.TextField(blank=True)
    analysis_date = models.DateTimeField(default=timezone.now)
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default='pending', db_index=True)
    confidence_score = models.PositiveIntegerField(null=True, blank=True, validators=[MaxValueValidator(100)])
    findings = models.JSONField(default=dict, blank=True)
    recommendations = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        return f"X-ray #{self.pk} patient={self.patient_id} ({self.status})"


class AITestComparison(models.Model):
    """Several lab reports of one patient analysed and lined up per parameter."""
    STATUS_CHOICES = AITestAnalysis.STATUS_CHOICES

    clinic = models.ForeignKey(Clinic, on_delete=models.CASCADE, related_name='ai_test_comparisons')
    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='ai_test_comparisons')
    requested_by = models.ForeignKey(User, null=True, on_delete=models.SET_NULL, related_name='ai_test_comparisons')
    comparison_name = models.CharField(max_length=200)
    comparison_date = models.DateTimeField(default=timezone.now)
    report_count = models.PositiveSmallIntegerField(validators=[MinValueValidator(2), MaxValueValidator(10)])
    start_date = models.DateField(null=True, blank=True)
    end_date = models.DateField(null=True, blank=True)
    # [{"file_name", "path", "content_type", "size", "upload_order"}]
    uploaded_files = models.JSONField(default=list, blank=True)
    custom_prompt = models.TextField(blank=True)
    individual_analyses = models.JSONField(default=list, blank=True)
    parameter_comparisons = models.JSONField(default=list, blank=True)
    comparison_analysis = models.JSONField(default=dict, blank=True)
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default='pending', db_index=True)
    error_message = models.CharField(max_length=500, blank=True)
    processing_time_ms = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        return f"{self.comparison_name} ({self.report_count} reports)"


class AuditEvent(models.Model):
    user = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True)
    clinic = models.ForeignKey(Clinic, on_delete=models.SET_NULL, null=True, blank=True)
    action = models.CharField(max_length=64)
    object_type = models.CharField(max_length=64, blank=True, null=True)
    object_id = models.CharField(max_length=64, blank=True, null=True)
    detail = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [
            models.Index(fields=['action', 'created_at']),
            models.Index(fields=['clinic', 'created_at']),
        ]

    def __str__(self):
        return f"{self.action}:{self.user_id}@{self.created_at:%F %T}"
