from rest_framework import serializers

from practice.models import Odontogram
from practice.serializers.base import ClinicModelSerializer, UserBriefSerializer, json_ready, validate_items
from practice.serializers.patient import PatientBriefSerializer

SURFACES = ['mesial', 'distal', 'occlusal', 'buccal', 'lingual', 'incisal']
CONDITIONS = [
    'healthy', 'caries', 'filling', 'crown', 'bridge', 'implant', 'extraction', 'root_canal', 'missing',
    'fractured', 'wear', 'restoration_needed', 'sealant', 'veneer', 'temporary_filling', 'periapical_lesion',
]
PRIORITIES = ['low', 'medium', 'high', 'urgent']
TREATMENT_STATUSES = ['planned', 'in_progress', 'completed', 'cancelled']


class SurfaceSerializer(serializers.Serializer):
    surface = serializers.ChoiceField(choices=SURFACES)
    condition = serializers.ChoiceField(choices=CONDITIONS)
    notes = serializers.CharField(max_length=500, required=False, allow_blank=True)
    color_code = serializers.RegexField(r'^#[0-9A-Fa-f]{6}$', required=False)
    date_diagnosed = serializers.DateField(required=False)
    severity = serializers.ChoiceField(choices=['mild', 'moderate', 'severe'], required=False)


class PocketDepthSerializer(serializers.Serializer):
    mesial = serializers.FloatField(min_value=0, max_value=20, required=False)
    distal = serializers.FloatField(min_value=0, max_value=20, required=False)
    buccal = serializers.FloatField(min_value=0, max_value=20, required=False)
    lingual = serializers.FloatField(min_value=0, max_value=20, required=False)


class TreatmentPlanSerializer(serializers.Serializer):
    planned_treatment = serializers.CharField(max_length=500)
    priority = serializers.ChoiceField(choices=PRIORITIES, default='medium')
    estimated_cost = serializers.FloatField(min_value=0, required=False)
    estimated_duration = serializers.CharField(max_length=100, required=False, allow_blank=True)
    status = serializers.ChoiceField(choices=TREATMENT_STATUSES, default='planned')
    planned_date = serializers.DateField(required=False)
    completed_date = serializers.DateField(required=False)
    notes = serializers.CharField(max_length=1000, required=False, allow_blank=True)


class AttachmentSerializer(serializers.Serializer):
    file_name = serializers.CharField(max_length=255)
    file_url = serializers.CharField(max_length=500)
    file_type = serializers.ChoiceField(choices=['image', 'xray', 'document'])
    uploaded_date = serializers.DateTimeField(required=False)
    description = serializers.CharField(max_length=500, required=False, allow_blank=True)


class ToothConditionSerializer(serializers.Serializer):
    tooth_number = serializers.IntegerField(min_value=1, max_value=85)
    tooth_type = serializers.ChoiceField(choices=['permanent', 'primary'], default='permanent')
    surfaces = SurfaceSerializer(many=True, required=False, default=list)
    overall_condition = serializers.ChoiceField(choices=CONDITIONS)
    mobility = serializers.IntegerField(min_value=0, max_value=3, required=False)
    periodontal_pocket_depth = PocketDepthSerializer(required=False)
    treatment_plan = TreatmentPlanSerializer(required=False)
    attachments = AttachmentSerializer(many=True, required=False, default=list)
    notes = serializers.CharField(max_length=2000, required=False, allow_blank=True)


class PeriodontalAssessmentSerializer(serializers.Serializer):
    bleeding_on_probing = serializers.BooleanField(default=False)
    plaque_index = serializers.FloatField(min_value=0, max_value=3, required=False)
    gingival_index = serializers.FloatField(min_value=0, max_value=3, required=False)
    calculus_present = serializers.BooleanField(default=False)
    general_notes = serializers.CharField(max_length=2000, required=False, allow_blank=True)


class OdontogramSerializer(ClinicModelSerializer):
    clinic_fields = ('patient',)
    member_fields = ('doctor',)
    text_fields = ('general_notes',)

    patient_detail = PatientBriefSerializer(source='patient', read_only=True)
    doctor_detail = UserBriefSerializer(source='doctor', read_only=True)
    treatment_summary = serializers.DictField(read_only=True)
    treatment_progress = serializers.IntegerField(read_only=True)
    pending_treatments = serializers.IntegerField(read_only=True)

    class Meta:
        model = Odontogram
        fields = [
            'id', 'patient', 'patient_detail', 'doctor', 'doctor_detail', 'examination_date', 'numbering_system',
            'patient_type', 'teeth_conditions', 'general_notes', 'periodontal_assessment', 'treatment_summary',
            'treatment_progress', 'pending_treatments', 'version', 'is_active', 'created_at', 'updated_at',
        ]
        read_only_fields = ['id', 'version', 'created_at', 'updated_at']
        extra_kwargs = {'doctor': {'required': False}, 'is_active': {'required': False}}

    def validate_teeth_conditions(self, v):
        if not isinstance(v, list):
            raise serializers.ValidationError('Teeth conditions must be a list')
        teeth = validate_items(ToothConditionSerializer, v)
        numbers = [t['tooth_number'] for t in teeth]
        if len(numbers) != len(set(numbers)):
            raise serializers.ValidationError('Each tooth may appear only once')
        return teeth

    def validate_periodontal_assessment(self, v):
        if v in (None, {}):
            return {}
        s = PeriodontalAssessmentSerializer(data=v)
        s.is_valid(raise_exception=True)
        return json_ready(dict(s.validated_data))


class OdontogramListSerializer(serializers.ModelSerializer):
    patient_detail = PatientBriefSerializer(source='patient', read_only=True)
    doctor_detail = UserBriefSerializer(source='doctor', read_only=True)
    treatment_summary = serializers.DictField(read_only=True)
    treatment_progress = serializers.IntegerField(read_only=True)

    class Meta:
        model = Odontogram
        fields = [
            'id', 'patient', 'patient_detail', 'doctor', 'doctor_detail', 'examination_date', 'numbering_system',
            'patient_type', 'treatment_summary', 'treatment_progress', 'version', 'is_active', 'created_at',
        ]
