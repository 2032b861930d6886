from rest_framework.routers import DefaultRouter

from apps.lots.views import LotViewSet

router = DefaultRouter()
router.register("lots", LotViewSet, basename="lots")

urlpatterns = router.urls
