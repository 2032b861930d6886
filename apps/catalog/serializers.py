from rest_framework import serializers

from apps.catalog.models import Category, Variety, normalize_name


class CategorySerializer(serializers.ModelSerializer):
    variety_count = serializers.IntegerField(read_only=True, required=False)

    class Meta:
        model = Category
        fields = ["id", "name", "image", "price_per_unit", "is_active", "variety_count", "created_at", "updated_at"]
        read_only_fields = ["id", "variety_count", "created_at", "updated_at"]

    def validate_name(self, value):
        value = normalize_name(value)
        if not value:
            raise serializers.ValidationError("name is required")
        duplicates = Category.objects.filter(name__iexact=value)
        if self.instance is not None:
            duplicates = duplicates.exclude(pk=self.instance.pk)
        if duplicates.exists():
            raise serializers.ValidationError("A category with this name already exists.")
        return value

    def validate_price_per_unit(self, value):
        if value < 0:
            raise serializers.ValidationError("price_per_unit must be >= 0")
        return value


class VarietySerializer(serializers.ModelSerializer):
    category_name = serializers.CharField(source="category.name", read_only=True)

    class Meta:
        model = Variety
        fields = ["id", "category", "category_name", "name", "is_active", "created_at", "updated_at"]
        read_only_fields = ["id", "created_at", "updated_at"]

    def validate(self, attrs):
        name = normalize_name(attrs.get("name", getattr(self.instance, "name", "")))
        if not name:
            raise serializers.ValidationError({"name": "name is required"})
        category = attrs.get("category", getattr(self.instance, "category", None))
        duplicates = Variety.objects.filter(category=category, name__iexact=name)
        if self.instance is not None:
            duplicates = duplicates.exclude(pk=self.instance.pk)
        if duplicates.exists():
            raise serializers.ValidationError({"name": "This variety already exists in the category."})
        if "name" in attrs:
            attrs["name"] = name
        return attrs
