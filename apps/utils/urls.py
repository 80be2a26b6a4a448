from django.urls import path

from .health import health_check
from .views import storefront_config

urlpatterns = [
    path("health/", health_check, name="health-check"),
    path("config/", storefront_config, name="storefront-config"),
]
