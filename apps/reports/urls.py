from django.urls import path

from apps.reports.views import DashboardView, DeliveryReportView

urlpatterns = [
    path("reports/dashboard/", DashboardView.as_view(), name="reports-dashboard"),
    path("reports/deliveries/", DeliveryReportView.as_view(), name="reports-deliveries"),
]
