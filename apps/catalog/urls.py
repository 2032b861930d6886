from rest_framework.routers import DefaultRouter

from apps.catalog.views import CategoryViewSet, VarietyViewSet

router = DefaultRouter()
router.register("categories", CategoryViewSet, basename="category")
router.register("varieties", VarietyViewSet, basename="variety")

urlpatterns = router.urls
