from django.urls import include, path
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView

urlpatterns = [
    path("auth/token/", TokenObtainPairView.as_view(), name="token-obtain-pair"),
    path("auth/token/refresh/", TokenRefreshView.as_view(), name="token-refresh"),
    path("", include("apps.accounts.urls")),
    path("", include("apps.audit.urls")),
    path("", include("apps.catalog.urls")),
    path("", include("apps.seed_inward.urls")),
    path("", include("apps.lots.urls")),
    path("", include("apps.orders.urls")),
    path("", include("apps.reports.urls")),
]
