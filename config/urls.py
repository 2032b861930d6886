from django.contrib import admin
from django.urls import include, path

admin.site.site_header = "Nursery Manager"
admin.site.site_title = "Nursery Manager admin"

urlpatterns = [
    path("admin/", admin.site.urls),
    path("api/", include("apps.api_urls")),
]
