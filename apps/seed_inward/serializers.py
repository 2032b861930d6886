from rest_framework import serializers

from apps.seed_inward.models import SeedInwardBatch


class SeedInwardBatchSerializer(serializers.ModelSerializer):
    category_name = serializers.CharField(source="category.name", read_only=True)
    variety_name = serializers.CharField(source="variety.name", read_only=True)
    created_by_username = serializers.CharField(source="created_by.username", read_only=True, default=None)
    consumed_quantity = serializers.IntegerField(read_only=True)
    total_quantity = serializers.IntegerField(required=False, min_value=1)

    class Meta:
        model = SeedInwardBatch
        fields = [
            "id",
            "category",
            "category_name",
            "variety",
            "variety_name",
            "lot_number",
            "expiry_date",
            "number_of_packets",
            "total_quantity",
            "available_quantity",
            "consumed_quantity",
            "package_type",
            "received_from",
            "received_at",
            "created_by",
            "created_by_username",
            "created_at",
            "updated_at",
        ]
        read_only_fields = ["id", "available_quantity", "created_by", "created_at", "updated_at"]
        validators = []

    def validate_lot_number(self, value):
        value = value.strip()
        if not value:
            raise serializers.ValidationError("lot_number is required")
        return value

    def validate_number_of_packets(self, value):
        if value <= 0:
            raise serializers.ValidationError("number_of_packets must be greater than 0")
        return value

    def validate(self, attrs):
        category = attrs.get("category", getattr(self.instance, "category", None))
        variety = attrs.get("variety", getattr(self.instance, "variety", None))
        lot_number = attrs.get("lot_number", getattr(self.instance, "lot_number", None))
        if variety is not None and category is not None and variety.category_id != category.id:
            raise serializers.ValidationError({"variety": "Variety does not belong to the selected category."})

        duplicates = SeedInwardBatch.objects.filter(category=category, variety=variety, lot_number=lot_number)
        if self.instance is not None:
            duplicates = duplicates.exclude(pk=self.instance.pk)
        if duplicates.exists():
            raise serializers.ValidationError({"lot_number": "This lot number was already received for the variety."})

        if self.instance is None and "total_quantity" not in attrs:
            attrs["total_quantity"] = attrs["number_of_packets"]
        return attrs


class SeedInwardLotOptionSerializer(serializers.ModelSerializer):
    class Meta:
        model = SeedInwardBatch
        fields = [
            "id",
            "lot_number",
            "category",
            "variety",
            "expiry_date",
            "number_of_packets",
            "total_quantity",
            "available_quantity",
            "package_type",
        ]
        read_only_fields = fields
