from django.contrib.auth import get_user_model
from rest_framework import serializers

from apps.accounts.models import Page, UserRole

User = get_user_model()


class LoginSerializer(serializers.Serializer):
    username = serializers.CharField()
    password = serializers.CharField(write_only=True, trim_whitespace=False)


class UserSerializer(serializers.ModelSerializer):
    password = serializers.CharField(write_only=True, required=False, min_length=6, trim_whitespace=False)

    class Meta:
        model = User
        fields = [
            "id",
            "username",
            "password",
            "role",
            "first_name",
            "last_name",
            "phone_number",
            "is_active",
            "date_joined",
            "last_login",
        ]
        read_only_fields = ["id", "date_joined", "last_login"]

    def validate(self, attrs):
        if self.instance is None and not attrs.get("password"):
            raise serializers.ValidationError({"password": "Password is required."})
        return attrs

    def create(self, validated_data):
        password = validated_data.pop("password")
        user = User(**validated_data)
        user.set_password(password)
        user.save()
        return user

    def update(self, instance, validated_data):
        password = validated_data.pop("password", None)
        user = super().update(instance, validated_data)
        if password:
            user.set_password(password)
            user.save(update_fields=["password"])
        return user


class RolePagesSerializer(serializers.Serializer):
    pages = serializers.ListField(child=serializers.ChoiceField(choices=Page.choices), allow_empty=True)

    def validate(self, attrs):
        role = self.context.get("role")
        if role == UserRole.ADMIN:
            raise serializers.ValidationError({"role": "Admin pages cannot be restricted."})
        return attrs
