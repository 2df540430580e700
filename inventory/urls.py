from django.urls import path
from .views import *

urlpatterns = [
    path('variants/<uuid:pk>/cost/', VariantCostView.as_view(), name='variant-cost'),
    path('supply-batches/', SupplyBatchListView.as_view(), name='supply-batch-list'),
    path('supply-batches/<uuid:pk>/pull-out/', SupplyBatchPullOutView.as_view(), name='supply-batch-pull-out'),
    path('supply-batches/<uuid:pk>/undo/', SupplyBatchUndoView.as_view(), name='supply-batch-undo'),
    path('losses/', InventoryLossListView.as_view(), name='inventory-loss-list'),
]
