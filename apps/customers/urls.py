from django.urls import include, path
from rest_framework.routers import SimpleRouter

from .views import AddressViewSet, ProfileView, StatisticsView

router = SimpleRouter()
router.register(r"addresses", AddressViewSet, basename="address")

urlpatterns = [
    path(
        "profile/",
        ProfileView.as_view({"get": "retrieve", "put": "update", "patch": "partial_update"}),
        name="user-profile",
    ),
    path("statistics/", StatisticsView.as_view(), name="user-statistics"),
    path("", include(router.urls)),
]
