from django.urls import include, path
from rest_framework.routers import SimpleRouter

from .views import AdminOrderViewSet, AdminUserViewSet, DashboardView

router = SimpleRouter()
router.register(r"orders", AdminOrderViewSet, basename="admin-order")
router.register(r"users", AdminUserViewSet, basename="admin-user")

urlpatterns = [
    path("dashboard/", DashboardView.as_view(), name="admin-dashboard"),
    path("", include(router.urls)),
]
