from decimal import Decimal

from rest_framework import serializers

from practice.models import Expense, Invoice, Payment, Payroll
from practice.serializers.base import ClinicModelSerializer, validate_items
from practice.serializers.patient import PatientBriefSerializer


class ServiceLineSerializer(serializers.Serializer):
    description = serializers.CharField(max_length=500)
    quantity = serializers.IntegerField(min_value=1)
    unit_price = serializers.FloatField(min_value=0)
    total = serializers.FloatField(min_value=0, required=False)
    type = serializers.ChoiceField(choices=Invoice.LINE_TYPES, default='service')

    def validate(self, attrs):
        if attrs.get('total') is None:
            attrs['total'] = round(attrs['quantity'] * attrs['unit_price'], 2)
        return attrs


class InvoiceSerializer(ClinicModelSerializer):
    clinic_fields = ('patient', 'appointment')
    text_fields = ('notes',)

    patient_detail = PatientBriefSerializer(source='patient', read_only=True)
    is_overdue = serializers.BooleanField(read_only=True)

    class Meta:
        model = Invoice
        fields = [
            'id', 'invoice_number', 'patient', 'patient_detail', 'appointment', 'services', 'subtotal',
            'tax_amount', 'discount', 'total_amount', 'status', 'issue_date', 'due_date', 'payment_method',
            'notes', 'paid_at', 'is_overdue', 'created_at', 'updated_at',
        ]
        read_only_fields = ['id', 'invoice_number', 'subtotal', 'total_amount', 'paid_at', 'created_at', 'updated_at']
        extra_kwargs = {
            'tax_amount': {'min_value': 0},
            'discount': {'min_value': 0},
        }

    def validate_services(self, v):
        if not isinstance(v, list) or not v:
            raise serializers.ValidationError('At least one service line is required')
        return validate_items(ServiceLineSerializer, v)

    def validate(self, attrs):
        attrs = super().validate(attrs)
        issue = attrs.get('issue_date') or getattr(self.instance, 'issue_date', None)
        due = attrs.get('due_date') or getattr(self.instance, 'due_date', None)
        if issue and due and due < issue:
            raise serializers.ValidationError({'due_date': ['Due date cannot be before the issue date.']})
        lines = attrs.get('services', getattr(self.instance, 'services', None)) or []
        subtotal = sum((Decimal(str(line.get('total') or 0)) for line in lines), Decimal('0'))
        tax = Decimal(str(attrs.get('tax_amount', getattr(self.instance, 'tax_amount', 0)) or 0))
        discount = Decimal(str(attrs.get('discount', getattr(self.instance, 'discount', 0)) or 0))
        if subtotal + tax - discount < 0:
            raise serializers.ValidationError({'discount': ['Total amount cannot be negative.']})
        return attrs


class InvoicePaySerializer(serializers.Serializer):
    payment_method = serializers.CharField(max_length=30, required=False, allow_blank=True)


class PaymentSerializer(ClinicModelSerializer):
    clinic_fields = ('invoice', 'patient')
    text_fields = ('description', 'failure_reason')

    invoice_number = serializers.CharField(source='invoice.invoice_number', read_only=True)
    patient_detail = PatientBriefSerializer(source='patient', read_only=True)

    class Meta:
        model = Payment
        fields = [
            'id', 'invoice', 'invoice_number', 'patient', 'patient_detail', 'amount', 'method', 'status',
            'transaction_id', 'card_last4', 'insurance_provider', 'processing_fee', 'net_amount', 'payment_date',
            'failure_reason', 'description', 'created_at', 'updated_at',
        ]
        read_only_fields = ['id', 'net_amount', 'created_at', 'updated_at']
        extra_kwargs = {
            'patient': {'required': False},
            'processing_fee': {'min_value': 0},
        }

    def validate_card_last4(self, v):
        if v and (len(v) != 4 or not v.isdigit()):
            raise serializers.ValidationError('Card last4 must be 4 digits')
        return v

    def validate(self, attrs):
        attrs = super().validate(attrs)
        invoice = attrs.get('invoice') or getattr(self.instance, 'invoice', None)
        if invoice is not None and attrs.get('patient') is None and self.instance is None:
            attrs['patient'] = invoice.patient
        patient = attrs.get('patient')
        if invoice is not None and patient is not None and invoice.patient_id != patient.pk:
            raise serializers.ValidationError({'patient': ['Patient does not match the invoice.']})
        fee = attrs.get('processing_fee', getattr(self.instance, 'processing_fee', 0)) or 0
        amount = attrs.get('amount', getattr(self.instance, 'amount', 0)) or 0
        if fee > amount:
            raise serializers.ValidationError({'processing_fee': ['Fee cannot exceed the amount.']})
        status = attrs.get('status')
        if self.instance is not None and status is not None and status != self.instance.status:
            # status moves go through the status and refund endpoints
            raise serializers.ValidationError({'status': ['Use the payment status endpoint to change status.']})
        if (
            status == Payment.STATUS_COMPLETED and invoice is not None
            and invoice.status in (Invoice.STATUS_CANCELLED, Invoice.STATUS_REFUNDED)
        ):
            raise serializers.ValidationError({'invoice': [f'Cannot record a payment against a {invoice.status} invoice.']})
        return attrs


class PaymentStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=[s for s, _ in Payment.STATUS_CHOICES])
    failure_reason = serializers.CharField(max_length=500, required=False, allow_blank=True)


class PayrollSerializer(ClinicModelSerializer):
    member_fields = ('employee',)

    employee_name = serializers.CharField(source='employee.full_name', read_only=True)
    gross_salary = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)
    attendance_percentage = serializers.FloatField(read_only=True)

    class Meta:
        model = Payroll
        fields = [
            'id', 'employee', 'employee_name', 'month', 'year', 'base_salary', 'overtime', 'bonus', 'allowances',
            'deductions', 'tax', 'gross_salary', 'net_salary', 'status', 'pay_date', 'working_days', 'total_days',
            'leaves', 'attendance_percentage', 'created_at', 'updated_at',
        ]
        read_only_fields = ['id', 'net_salary', 'created_at', 'updated_at']
        extra_kwargs = {f: {'min_value': 0} for f in ('overtime', 'bonus', 'allowances', 'deductions', 'tax')}

    def validate(self, attrs):
        attrs = super().validate(attrs)
        working = attrs.get('working_days', getattr(self.instance, 'working_days', 0))
        total = attrs.get('total_days', getattr(self.instance, 'total_days', 0))
        if total and working > total:
            raise serializers.ValidationError({'working_days': ['Working days cannot exceed total days.']})
        return attrs


class PayrollGenerateSerializer(serializers.Serializer):
    month = serializers.ChoiceField(choices=Payroll.MONTHS)
    year = serializers.IntegerField(min_value=2020, max_value=2100)


class PayrollStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=[s for s, _ in Payroll.STATUS_CHOICES])


class ExpenseSerializer(ClinicModelSerializer):
    text_fields = ('title', 'description', 'vendor', 'notes')

    created_by_name = serializers.CharField(source='created_by.full_name', read_only=True, default=None)

    class Meta:
        model = Expense
        fields = [
            'id', 'title', 'description', 'amount', 'category', 'vendor', 'payment_method', 'date', 'status',
            'receipt_url', 'notes', 'created_by', 'created_by_name', 'created_at', 'updated_at',
        ]
        read_only_fields = ['id', 'created_by', 'created_at', 'updated_at']
