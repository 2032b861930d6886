from django.urls import path
from rest_framework.routers import DefaultRouter

from apps.accounts.views import (
    CurrentUserView,
    LoginView,
    LogoutView,
    MyPermissionsView,
    RolePagePermissionView,
    UserViewSet,
)

router = DefaultRouter()
router.register("users", UserViewSet, basename="user")

urlpatterns = [
    path("login/", LoginView.as_view(), name="login"),
    path("logout/", LogoutView.as_view(), name="logout"),
    path("user/", CurrentUserView.as_view(), name="current-user"),
    path("roles/<str:role>/permissions/", RolePagePermissionView.as_view(), name="role-permissions"),
    path("my-permissions/", MyPermissionsView.as_view(), name="my-permissions"),
]
urlpatterns += router.urls
