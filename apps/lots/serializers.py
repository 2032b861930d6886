from decimal import Decimal

from rest_framework import serializers

from apps.lots.models import LotDamageEntry, SowingLot
from apps.lots.querysets import available_for_lot, booked_quantity_for_lot


class LotSerializer(serializers.ModelSerializer):
    category_name = serializers.CharField(source="category.name", read_only=True)
    variety_name = serializers.CharField(source="variety.name", read_only=True)
    seed_inward_lot_number = serializers.CharField(source="seed_inward.lot_number", read_only=True, default=None)
    seeds_sown = serializers.IntegerField(min_value=1)
    damaged = serializers.IntegerField(min_value=0, required=False)
    damage_percentage = serializers.DecimalField(
        max_digits=5,
        decimal_places=2,
        min_value=Decimal("0"),
        max_value=Decimal("100"),
        required=False,
    )
    booked_quantity = serializers.SerializerMethodField()
    available = serializers.SerializerMethodField()

    class Meta:
        model = SowingLot
        fields = [
            "id",
            "lot_number",
            "category",
            "category_name",
            "variety",
            "variety_name",
            "seed_inward",
            "seed_inward_lot_number",
            "sowing_date",
            "seeds_sown",
            "packets_sown",
            "damaged",
            "damage_percentage",
            "expected_ready_date",
            "remarks",
            "booked_quantity",
            "available",
            "created_by",
            "created_at",
            "updated_at",
        ]
        read_only_fields = ["id", "created_by", "created_at", "updated_at"]

    def get_booked_quantity(self, obj):
        value = getattr(obj, "booked_quantity", None)
        if value is None:
            value = booked_quantity_for_lot(obj.pk)
        return value

    def get_available(self, obj):
        value = getattr(obj, "available", None)
        if value is None:
            value = available_for_lot(obj.pk)
        return value

    def validate_lot_number(self, value):
        value = value.strip()
        if not value:
            raise serializers.ValidationError("lot_number is required")
        duplicates = SowingLot.objects.filter(lot_number__iexact=value)
        if self.instance is not None:
            duplicates = duplicates.exclude(pk=self.instance.pk)
        if duplicates.exists():
            raise serializers.ValidationError("A lot with this number already exists.")
        return value

    def validate(self, attrs):
        category = attrs.get("category", getattr(self.instance, "category", None))
        variety = attrs.get("variety", getattr(self.instance, "variety", None))
        if variety is not None and category is not None and variety.category_id != category.id:
            raise serializers.ValidationError({"variety": "Variety does not belong to the selected category."})

        seed_inward = attrs.get("seed_inward", getattr(self.instance, "seed_inward", None))
        if seed_inward is not None and (
            seed_inward.category_id != category.id or seed_inward.variety_id != variety.id
        ):
            raise serializers.ValidationError(
                {"seed_inward": "Seed inward batch is for a different category or variety."}
            )

        seeds_sown = attrs.get("seeds_sown", getattr(self.instance, "seeds_sown", None))
        damaged = attrs.get("damaged", getattr(self.instance, "damaged", 0))
        if seeds_sown is not None and damaged > seeds_sown:
            raise serializers.ValidationError({"damaged": "Damaged quantity cannot exceed seeds sown."})
        return attrs


class LotDamageEntrySerializer(serializers.ModelSerializer):
    created_by_username = serializers.CharField(source="created_by.username", read_only=True, default=None)

    class Meta:
        model = LotDamageEntry
        fields = ["id", "quantity", "reason", "damaged_after", "created_by", "created_by_username", "created_at"]
        read_only_fields = fields


class LotDetailSerializer(LotSerializer):
    damage_entries = LotDamageEntrySerializer(many=True, read_only=True)

    class Meta(LotSerializer.Meta):
        fields = LotSerializer.Meta.fields + ["damage_entries"]


class RecordDamageSerializer(serializers.Serializer):
    additional_damaged = serializers.IntegerField()
    reason = serializers.CharField(max_length=255, required=False, allow_blank=True, default="")


class AllocateOrdersSerializer(serializers.Serializer):
    order_ids = serializers.ListField(child=serializers.IntegerField(min_value=1), allow_empty=False)
