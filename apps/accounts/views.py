from django.contrib.auth import authenticate, get_user_model, login, logout
from django.db import transaction
from rest_framework import generics, status, viewsets
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.views import APIView

from apps.accounts.models import Page, RolePagePermission, UserRole
from apps.accounts.serializers import LoginSerializer, RolePagesSerializer, UserSerializer
from apps.accounts.throttles import LoginRateThrottle
from apps.audit.services import record_audit
from apps.common.exceptions import ConflictError
from apps.common.permissions import IsAdminRole, resolve_role

User = get_user_model()


class LoginView(APIView):
    authentication_classes = []
    permission_classes = [AllowAny]
    throttle_classes = [LoginRateThrottle]

    def post(self, request):
        serializer = LoginSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        user = authenticate(
            request,
            username=serializer.validated_data["username"],
            password=serializer.validated_data["password"],
        )
        if user is None:
            return Response(
                {"code": "invalid_credentials", "detail": "Invalid username or password.", "fields": {}},
                status=status.HTTP_401_UNAUTHORIZED,
            )
        login(request, user)
        record_audit(actor=user, action="auth.login", entity_type="user", entity_id=user.id)
        return Response(UserSerializer(user).data, status=status.HTTP_200_OK)


class LogoutView(APIView):
    def post(self, request):
        logout(request)
        return Response(status=status.HTTP_200_OK)


class CurrentUserView(generics.RetrieveAPIView):
    serializer_class = UserSerializer

    def get_object(self):
        return self.request.user


class UserViewSet(viewsets.ModelViewSet):
    queryset = User.objects.order_by("username")
    serializer_class = UserSerializer
    permission_classes = [IsAdminRole]
    pagination_class = None

    def perform_create(self, serializer):
        user = serializer.save()
        record_audit(
            actor=self.request.user,
            action="users.create",
            entity_type="user",
            entity_id=user.id,
            payload={"username": user.username, "role": user.role},
        )

    def perform_update(self, serializer):
        user = serializer.save()
        record_audit(
            actor=self.request.user,
            action="users.update",
            entity_type="user",
            entity_id=user.id,
            payload={"username": user.username, "role": user.role, "is_active": user.is_active},
        )

    def perform_destroy(self, instance):
        if instance.pk == self.request.user.pk:
            raise ConflictError("You cannot delete your own account.")
        record_audit(
            actor=self.request.user,
            action="users.delete",
            entity_type="user",
            entity_id=instance.id,
            payload={"username": instance.username},
        )
        super().perform_destroy(instance)


class RolePagePermissionView(APIView):
    permission_classes = [IsAdminRole]

    def _validate_role(self, role):
        if role not in UserRole.values:
            return Response(
                {"code": "not_found", "detail": f"Unknown role: {role}", "fields": {}},
                status=status.HTTP_404_NOT_FOUND,
            )
        return None

    def get(self, request, role):
        error = self._validate_role(role)
        if error:
            return error
        return Response({"role": role, "pages": RolePagePermission.pages_for_role(role)})

    def put(self, request, role):
        error = self._validate_role(role)
        if error:
            return error
        serializer = RolePagesSerializer(data=request.data, context={"role": role})
        serializer.is_valid(raise_exception=True)
        allowed_pages = set(serializer.validated_data["pages"])

        with transaction.atomic():
            for page in Page.values:
                RolePagePermission.objects.update_or_create(
                    role=role,
                    page=page,
                    defaults={"allowed": page in allowed_pages},
                )
            record_audit(
                actor=request.user,
                action="roles.permissions.update",
                entity_type="role",
                entity_id=role,
                payload={"pages": sorted(allowed_pages)},
            )
        return Response({"role": role, "pages": RolePagePermission.pages_for_role(role)})


class MyPermissionsView(APIView):
    def get(self, request):
        role = resolve_role(request.user)
        return Response({"role": role, "pages": RolePagePermission.pages_for_role(role)})
