from django.urls import path
from .views import *

urlpatterns = [
    path('', ReservationListCreateView.as_view(), name='reservation-list-create'),
    path('<uuid:pk>/', ReservationDetailView.as_view(), name='reservation-detail'),
    path('<uuid:pk>/status/', ReservationStatusView.as_view(), name='reservation-status'),
    path('<uuid:pk>/complete/', ReservationCompleteView.as_view(), name='reservation-complete'),
]
