from django.urls import path
from rest_framework.routers import DefaultRouter

from apps.orders.views import CustomerDirectoryView, CustomerLookupView, OrderViewSet

router = DefaultRouter()
router.register("orders", OrderViewSet, basename="orders")

urlpatterns = [
    path("customers/lookup/", CustomerLookupView.as_view(), name="customer-lookup"),
    path("customers/", CustomerDirectoryView.as_view(), name="customer-directory"),
]
urlpatterns += router.urls
