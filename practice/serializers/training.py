from rest_framework import serializers

from practice.models import Training, TrainingProgress
from practice.serializers.base import validate_items


class TrainingModuleSerializer(serializers.Serializer):
    id = serializers.CharField(max_length=50)
    title = serializers.CharField(max_length=200)
    description = serializers.CharField(required=False, allow_blank=True)
    duration = serializers.CharField(max_length=50, required=False, allow_blank=True)
    lessons = serializers.ListField(child=serializers.CharField(), required=False, default=list)
    order = serializers.IntegerField(min_value=0)


class TrainingSerializer(serializers.ModelSerializer):
    class Meta:
        model = Training
        fields = ['id', 'role', 'name', 'description', 'overview', 'modules', 'is_active', 'created_at', 'updated_at']
        read_only_fields = ['id', 'created_at', 'updated_at']

    def validate_modules(self, v):
        if not isinstance(v, list) or not v:
            raise serializers.ValidationError('At least one module is required')
        modules = validate_items(TrainingModuleSerializer, v)
        return sorted(modules, key=lambda m: m['order'])


class TrainingProgressSerializer(serializers.ModelSerializer):
    training_name = serializers.CharField(source='training.name', read_only=True)

    class Meta:
        model = TrainingProgress
        fields = [
            'id', 'user', 'training', 'training_name', 'role', 'overall_progress', 'modules_progress',
            'started_at', 'last_accessed', 'completed_at', 'is_completed', 'certificate_issued',
            'certificate_issued_at',
        ]
        read_only_fields = fields


class ModuleProgressSerializer(serializers.Serializer):
    module_id = serializers.CharField(max_length=50)
    completed = serializers.BooleanField(default=False)
    lessons_completed = serializers.ListField(child=serializers.CharField(), required=False)
    time_spent = serializers.IntegerField(min_value=0, required=False)
