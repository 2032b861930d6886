from decimal import Decimal

from rest_framework import serializers

from apps.orders.models import Order, OrderStatus, normalize_phone

REQUIRED_TEXT_FIELDS = ("customer_name", "state", "district", "taluk")


class OrderSerializer(serializers.ModelSerializer):
    lot_number = serializers.CharField(source="lot.lot_number", read_only=True, default=None)
    category_name = serializers.CharField(source="category.name", read_only=True)
    variety_name = serializers.CharField(source="variety.name", read_only=True)
    booked_qty = serializers.IntegerField(min_value=1)
    unit_price = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=Decimal("0"))
    discount = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=Decimal("0"), required=False)
    advance_amount = serializers.DecimalField(
        max_digits=12,
        decimal_places=2,
        min_value=Decimal("0"),
        required=False,
    )
    remaining_balance = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)
    payment_status = serializers.CharField(read_only=True)
    lot_status = serializers.CharField(read_only=True)
    status = serializers.ChoiceField(choices=OrderStatus.choices, required=False)

    class Meta:
        model = Order
        fields = [
            "id",
            "invoice_number",
            "lot",
            "lot_number",
            "lot_status",
            "category",
            "category_name",
            "variety",
            "variety_name",
            "customer_name",
            "phone",
            "village",
            "state",
            "district",
            "taluk",
            "booked_qty",
            "unit_price",
            "discount",
            "total_amount",
            "advance_amount",
            "remaining_balance",
            "payment_mode",
            "payment_status",
            "delivery_date",
            "status",
            "actual_delivery_date",
            "actual_delivery_time",
            "delivered_qty",
            "vehicle_details",
            "driver_name",
            "driver_phone",
            "created_by",
            "created_at",
            "updated_at",
        ]
        read_only_fields = [
            "id",
            "total_amount",
            "actual_delivery_date",
            "actual_delivery_time",
            "delivered_qty",
            "vehicle_details",
            "driver_name",
            "driver_phone",
            "created_by",
            "created_at",
            "updated_at",
        ]
        extra_kwargs = {
            "category": {"required": False},
            "variety": {"required": False},
        }

    def validate_phone(self, value):
        value = value.strip()
        if len(normalize_phone(value)) < 10:
            raise serializers.ValidationError("Phone number must have at least 10 digits.")
        return value

    def validate_invoice_number(self, value):
        if value is None:
            return value
        return value.strip() or None

    def validate(self, attrs):
        for name in REQUIRED_TEXT_FIELDS:
            if name in attrs or self.instance is None:
                value = str(attrs.get(name, "") or "").strip()
                if not value:
                    raise serializers.ValidationError({name: f"{name} is required"})
                attrs[name] = value

        if self.instance is None:
            if attrs.pop("status", OrderStatus.BOOKED) != OrderStatus.BOOKED:
                raise serializers.ValidationError({"status": "New orders are always booked."})

        lot = attrs.get("lot", getattr(self.instance, "lot", None))
        if lot is None:
            category = attrs.get("category", getattr(self.instance, "category", None))
            variety = attrs.get("variety", getattr(self.instance, "variety", None))
            if category is None or variety is None:
                raise serializers.ValidationError(
                    {"lot": "Choose a lot, or a category and variety to book without a lot."}
                )
            if variety.category_id != category.id:
                raise serializers.ValidationError({"variety": "Variety does not belong to the selected category."})
        return attrs


class DeliverOrderSerializer(serializers.Serializer):
    actual_delivery_date = serializers.DateField()
    actual_delivery_time = serializers.TimeField()
    delivered_qty = serializers.IntegerField(min_value=0)
    vehicle_details = serializers.CharField(max_length=255, required=False, allow_blank=True, default="")
    driver_name = serializers.CharField(max_length=120, required=False, allow_blank=True, default="")
    driver_phone = serializers.CharField(max_length=20, required=False, allow_blank=True, default="")


class UndoDeliverySerializer(serializers.Serializer):
    reason = serializers.CharField(max_length=500)


class CancelOrderSerializer(serializers.Serializer):
    reason = serializers.CharField(max_length=500, required=False, allow_blank=True, default="")


class CustomerSerializer(serializers.Serializer):
    customer_name = serializers.CharField()
    phone = serializers.CharField()
    village = serializers.CharField()
    state = serializers.CharField()
    district = serializers.CharField()
    taluk = serializers.CharField()
    order_count = serializers.IntegerField(required=False)
    total_quantity = serializers.IntegerField(required=False)
    last_delivery_date = serializers.DateField(required=False)
