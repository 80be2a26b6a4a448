from django.urls import path

from .views import StockAdjustmentView, StockMovementListView

urlpatterns = [
    path("adjustments/", StockAdjustmentView.as_view(), name="inventory-adjust"),
    path("movements/", StockMovementListView.as_view(), name="inventory-movements"),
]
