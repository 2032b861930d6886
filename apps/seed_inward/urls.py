from rest_framework.routers import DefaultRouter

from apps.seed_inward.views import SeedInwardViewSet

router = DefaultRouter()
router.register("seed-inward", SeedInwardViewSet, basename="seed-inward")

urlpatterns = router.urls
