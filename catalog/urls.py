from django.urls import path
from .views import *

urlpatterns = [
    path('categories/', CategoryListCreateView.as_view(), name='category-list-create'),
    path('products/', ProductListCreateView.as_view(), name='product-list-create'),
    path('products/<uuid:pk>/', ProductDetailView.as_view(), name='product-detail'),
    path('products/<uuid:pk>/variants/', VariantCreateView.as_view(), name='variant-create'),
    path('variants/<uuid:pk>/', VariantDetailView.as_view(), name='variant-detail'),
    path('variants/<uuid:pk>/restock/', VariantRestockView.as_view(), name='variant-restock'),
]
