from datetime import date, timedelta

from django.core.management.base import BaseCommand
from django.db import transaction

from practice.models import Clinic, Department, InventoryItem, Training, User, UserClinic

DEMO_PASSWORD = "demo12345"

DEMO_USERS = [
    ("admin@demo.clinic", "Ada", "Admin", User.ROLE_ADMIN),
    ("doctor@demo.clinic", "Dan", "Doctor", User.ROLE_DOCTOR),
    ("nurse@demo.clinic", "Nia", "Nurse", User.ROLE_NURSE),
    ("reception@demo.clinic", "Rita", "Reception", User.ROLE_RECEPTIONIST),
    ("accounts@demo.clinic", "Alan", "Accounts", User.ROLE_ACCOUNTANT),
]

TRAININGS = [
    {
        "role": User.ROLE_DOCTOR,
        "name": "Doctor Onboarding",
        "description": "Comprehensive training for doctors",
        "modules": [
            {"id": "emr", "title": "EMR System", "duration": "2 hours",
             "lessons": ["Login", "Patient records", "Prescriptions"], "order": 1},
            {"id": "protocols", "title": "Protocols", "duration": "3 hours",
             "lessons": ["Emergency procedures", "Documentation"], "order": 2},
        ],
    },
    {
        "role": User.ROLE_NURSE,
        "name": "Nurse Onboarding",
        "description": "Training program for nursing staff",
        "modules": [
            {"id": "care", "title": "Patient Care", "duration": "4 hours",
             "lessons": ["Vital signs", "Medication admin"], "order": 1},
        ],
    },
    {
        "role": User.ROLE_RECEPTIONIST,
        "name": "Front Desk Onboarding",
        "description": "Scheduling, check-in and billing basics",
        "modules": [
            {"id": "scheduling", "title": "Scheduling", "duration": "1 hour",
             "lessons": ["Appointments", "Walk-ins"], "order": 1},
            {"id": "billing", "title": "Billing", "duration": "1 hour",
             "lessons": ["Invoices", "Payments"], "order": 2},
        ],
    },
]


class Command(BaseCommand):
    help = f"Create a demo clinic with one user per role (password={DEMO_PASSWORD}). Idempotent."

    @transaction.atomic
    def handle(self, *args, **opts):
        clinic, _ = Clinic.objects.get_or_create(
            code="DEMO001",
            defaults={"name": "Demo Dental Clinic", "email": "hello@demo.clinic", "phone": "+1 555 0100"},
        )
        for email, first, last, role in DEMO_USERS:
            user, created = User.objects.get_or_create(
                email=email, defaults={"first_name": first, "last_name": last, "role": role},
            )
            user.role = role
            user.is_active = True
            user.set_password(DEMO_PASSWORD)
            user.save()
            UserClinic.objects.update_or_create(
                user=user, clinic=clinic,
                defaults={"role": role, "is_active": True, "permissions": list(UserClinic.BASIC_PERMISSIONS)},
            )
            self.stdout.write(self.style.SUCCESS(f"ok: {email} ({role})"))

        for code, name in (("GEN", "General Dentistry"), ("ORTH", "Orthodontics")):
            Department.objects.get_or_create(clinic=clinic, code=code, defaults={"name": name})

        today = date.today()
        for name, category, sku, stock, minimum, price, expiry in (
            ("Surgical Gloves", "consumables", "GL-001", 500, 100, "0.25", today + timedelta(days=365)),
            ("Blood Pressure Monitor", "equipment", "BP-001", 10, 2, "150", None),
            ("Paracetamol 500mg", "medications", "MED-001", 1000, 200, "0.10", today + timedelta(days=20)),
        ):
            InventoryItem.objects.get_or_create(
                clinic=clinic, sku=sku,
                defaults={
                    "name": name, "category": category, "current_stock": stock, "minimum_stock": minimum,
                    "unit_price": price, "supplier": "Medical Supply Co", "expiry_date": expiry,
                },
            )

        for course in TRAININGS:
            Training.objects.update_or_create(role=course["role"], defaults={k: v for k, v in course.items() if k != "role"})

        self.stdout.write(self.style.SUCCESS(f"Demo clinic ready: {clinic.name} id={clinic.pk}"))
