from django.conf import settings
from rest_framework import serializers

from practice.models import AITestAnalysis, AITestComparison, Patient, XrayAnalysis
from practice.services.comparisons import MAX_REPORTS, MIN_REPORTS


def validate_upload(f):
    limit = settings.UPLOAD_MAX_MB * 1024 * 1024
    if f.size > limit:
        raise serializers.ValidationError(f'File too large (max {settings.UPLOAD_MAX_MB} MB)')
    content_type = getattr(f, 'content_type', '') or ''
    if not any(content_type.startswith(prefix) for prefix in settings.ALLOWED_UPLOAD_TYPES):
        raise serializers.ValidationError('Unsupported file type. Upload an image or a PDF.')
    return f


class AnalysisUploadSerializer(serializers.Serializer):
    file = serializers.FileField(validators=[validate_upload])
    patient = serializers.PrimaryKeyRelatedField(queryset=Patient.objects.all(), required=False, allow_null=True)
    custom_prompt = serializers.CharField(max_length=4000, required=False, allow_blank=True)

    def validate_patient(self, v):
        clinic = getattr(self.context.get('request'), 'clinic', None)
        if v is not None and clinic is not None and v.clinic_id != clinic.pk:
            raise serializers.ValidationError('Not found in this clinic.')
        return v


class XrayUploadSerializer(AnalysisUploadSerializer):
    patient = serializers.PrimaryKeyRelatedField(queryset=Patient.objects.all())

    def validate_file(self, f):
        if not (getattr(f, 'content_type', '') or '').startswith('image/'):
            raise serializers.ValidationError('X-ray analysis accepts image files only.')
        return f


class AITestAnalysisSerializer(serializers.ModelSerializer):
    class Meta:
        model = AITestAnalysis
        fields = [
            'id', 'patient', 'requested_by', 'file', 'file_name', 'content_type', 'custom_prompt',
            'analysis_result', 'findings', 'status', 'error_message', 'created_at', 'updated_at',
        ]
        read_only_fields = fields


class XrayAnalysisSerializer(serializers.ModelSerializer):
    class Meta:
        model = XrayAnalysis
        fields = [
            'id', 'patient', 'doctor', 'image', 'image_filename', 'custom_prompt', 'analysis_result',
            'analysis_date', 'status', 'confidence_score', 'findings', 'recommendations', 'created_at', 'updated_at',
        ]
        read_only_fields = fields


class ComparisonUploadSerializer(serializers.Serializer):
    test_reports = serializers.ListField(
        child=serializers.FileField(validators=[validate_upload]), allow_empty=False,
    )
    patient = serializers.PrimaryKeyRelatedField(queryset=Patient.objects.all())
    comparison_name = serializers.CharField(max_length=200, required=False, allow_blank=True)
    custom_prompt = serializers.CharField(max_length=4000, required=False, allow_blank=True)

    validate_patient = AnalysisUploadSerializer.validate_patient

    def validate_test_reports(self, v):
        if len(v) < MIN_REPORTS:
            raise serializers.ValidationError(f'At least {MIN_REPORTS} test reports are required for comparison')
        if len(v) > MAX_REPORTS:
            raise serializers.ValidationError(f'Maximum {MAX_REPORTS} test reports can be compared at once')
        return v


class AITestComparisonSerializer(serializers.ModelSerializer):
    patient_name = serializers.CharField(source='patient.full_name', read_only=True)

    class Meta:
        model = AITestComparison
        fields = [
            'id', 'patient', 'patient_name', 'requested_by', 'comparison_name', 'comparison_date', 'report_count',
            'start_date', 'end_date', 'uploaded_files', 'custom_prompt', 'individual_analyses',
            'parameter_comparisons', 'comparison_analysis', 'status', 'error_message', 'processing_time_ms',
            'created_at', 'updated_at',
        ]
        read_only_fields = fields
