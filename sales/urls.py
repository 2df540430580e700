from django.urls import path
from .views import *

urlpatterns = [
    path('', SaleListCreateView.as_view(), name='sale-list-create'),
    path('margin/', SaleMarginView.as_view(), name='sale-margin'),
    path('<uuid:pk>/', SaleDetailView.as_view(), name='sale-detail'),
    path('<uuid:pk>/return/', SaleReturnView.as_view(), name='sale-return'),
]
