from rest_framework import serializers

from practice.models import InventoryItem
from practice.serializers.base import ClinicModelSerializer


class InventoryItemSerializer(ClinicModelSerializer):
    text_fields = ('name', 'supplier')

    total_value = serializers.DecimalField(max_digits=14, decimal_places=2, read_only=True)
    is_low_stock = serializers.BooleanField(read_only=True)

    class Meta:
        model = InventoryItem
        fields = [
            'id', 'name', 'category', 'sku', 'current_stock', 'minimum_stock', 'unit_price', 'supplier',
            'expiry_date', 'total_value', 'is_low_stock', 'created_at', 'updated_at',
        ]
        read_only_fields = ['id', 'created_at', 'updated_at']

    def validate_sku(self, v):
        v = v.strip().upper()
        clinic = self.clinic
        if clinic is not None:
            qs = InventoryItem.objects.filter(clinic=clinic, sku=v)
            if self.instance is not None:
                qs = qs.exclude(pk=self.instance.pk)
            if qs.exists():
                raise serializers.ValidationError('SKU already exists in this clinic')
        return v


class StockAdjustSerializer(serializers.Serializer):
    quantity = serializers.IntegerField(min_value=1)
    operation = serializers.ChoiceField(choices=['add', 'subtract'])
